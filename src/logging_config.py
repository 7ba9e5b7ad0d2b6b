"""
Process-wide logging setup.

Modules log through `logging.getLogger(__name__)`; this installs a single
console handler on the root logger when the server starts.
"""

from __future__ import annotations

import logging
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_HANDLER_NAME = "monopoly-live-console"


def configure_logging(level: Optional[str] = None) -> None:
    """
    Attach the console handler and set the root level.

    Safe to call repeatedly (tests create many apps); the handler is
    installed once.

    Args:
        level: Level name; defaults to ServerSettings.log_level
    """
    if level is None:
        from src.settings import get_server_settings

        level = get_server_settings().log_level

    root = logging.getLogger()
    root.setLevel(level.upper())

    if not any(h.get_name() == _HANDLER_NAME for h in root.handlers):
        handler = logging.StreamHandler()
        handler.set_name(_HANDLER_NAME)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)

    # SQL echo is controlled by DB_ECHO, not the application level
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
