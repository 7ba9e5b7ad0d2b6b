"""
Server package exposing the FastAPI app, command dispatcher and realtime gateway.
"""

from .app import app, create_app  # noqa: F401
from .dispatcher import CommandDispatcher  # noqa: F401
from .realtime import RealtimeGateway  # noqa: F401
