"""
Core domain layer for live Monopoly sessions.

Exposes reference data, money rules, pending-action payloads and the
tagged result type shared by every service.
"""

from src.core.board import BOARD_TILES, TileDefinition, TileType
from src.core.cards import CardAction, CardDefinition, DeckType
from src.core.pending import PendingActionType, PendingPayload, parse_pending_payload
from src.core.results import ActionResult, Failure

__all__ = [
    "BOARD_TILES",
    "TileDefinition",
    "TileType",
    "CardAction",
    "CardDefinition",
    "DeckType",
    "PendingActionType",
    "PendingPayload",
    "parse_pending_payload",
    "ActionResult",
    "Failure",
]
