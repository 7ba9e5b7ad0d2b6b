"""
Realtime event types and builders.

Engine operations return these events instead of publishing them; the
dispatcher hands them to the realtime gateway after the transaction
commits.
"""

from src.core.events.realtime import (
    EventName,
    RealtimeEvent,
    balance_update,
    chat_message,
    game_ended,
    game_room,
    player_joined,
    private_options,
    state_update,
    turn_changed,
    user_room,
)

__all__ = [
    "EventName",
    "RealtimeEvent",
    "balance_update",
    "chat_message",
    "game_ended",
    "game_room",
    "player_joined",
    "private_options",
    "state_update",
    "turn_changed",
    "user_room",
]
