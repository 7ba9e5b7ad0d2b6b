"""
Typed realtime events addressed to a game room or a single user.

Each event maps to one wire message:
    {"event": "<wire name>", "payload": {...}}
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Union

IdLike = Union[str, uuid.UUID]


class EventName(str, Enum):
    """Wire names of realtime events."""

    STATE_UPDATE = "game:state:update"
    TURN_CHANGED = "game:turn:changed"
    PLAYER_JOINED = "game:player:joined"
    PLAYER_OPTIONS = "game:player:options"
    BALANCE_UPDATE = "game:player:balance:update"
    GAME_ENDED = "game:ended"
    CHAT_MESSAGE = "chat:game:message"


def game_room(game_id: IdLike) -> str:
    return f"game:{game_id}"


def user_room(user_id: IdLike) -> str:
    return f"user:{user_id}"


@dataclass(frozen=True)
class RealtimeEvent:
    """One event and the room it is delivered to."""

    name: EventName
    room: str
    payload: Dict[str, Any] = field(default_factory=dict, hash=False)

    def to_message(self) -> Dict[str, Any]:
        return {"event": self.name.value, "payload": self.payload}


# ---- Builders ----


def state_update(game_id: IdLike, state: Dict[str, Any]) -> RealtimeEvent:
    return RealtimeEvent(EventName.STATE_UPDATE, game_room(game_id), state)


def turn_changed(
    game_id: IdLike,
    current_player_id: IdLike,
    previous_player_id: Optional[IdLike] = None,
    turn_number: int = 0,
) -> RealtimeEvent:
    return RealtimeEvent(
        EventName.TURN_CHANGED,
        game_room(game_id),
        {
            "game_id": str(game_id),
            "previous_player_id": str(previous_player_id) if previous_player_id else None,
            "current_player_id": str(current_player_id),
            "turn_number": turn_number,
        },
    )


def player_joined(game_id: IdLike, payload: Dict[str, Any]) -> RealtimeEvent:
    return RealtimeEvent(EventName.PLAYER_JOINED, game_room(game_id), payload)


def private_options(user_id: IdLike, payload: Dict[str, Any]) -> RealtimeEvent:
    return RealtimeEvent(EventName.PLAYER_OPTIONS, user_room(user_id), payload)


def balance_update(
    user_id: IdLike, game_id: IdLike, participant_id: IdLike, balance: int
) -> RealtimeEvent:
    return RealtimeEvent(
        EventName.BALANCE_UPDATE,
        user_room(user_id),
        {"game_id": str(game_id), "player_id": str(participant_id), "balance": balance},
    )


def game_ended(game_id: IdLike, payload: Dict[str, Any]) -> RealtimeEvent:
    return RealtimeEvent(EventName.GAME_ENDED, game_room(game_id), payload)


def chat_message(game_id: IdLike, payload: Dict[str, Any]) -> RealtimeEvent:
    return RealtimeEvent(EventName.CHAT_MESSAGE, game_room(game_id), payload)
