"""
Application services layer.

Use-case oriented services that apply game rules against the ledger
store: lobby management, the roll state machine, settlement actions
and table chat.
"""

from .chat_service import ChatService
from .lobby_service import LobbyService
from .locks import GameLockRegistry
from .settlement_service import SettlementService
from .turn_service import TurnService

__all__ = ["ChatService", "LobbyService", "GameLockRegistry", "SettlementService", "TurnService"]
