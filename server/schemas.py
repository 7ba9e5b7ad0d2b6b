from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# ---- Requests ----


class RegisterUserRequest(BaseModel):
    display_name: str = Field(min_length=1, max_length=64)


class CreateGameRequest(BaseModel):
    name: str = Field("", max_length=100)
    max_players: Optional[int] = Field(default=None, ge=2, le=6)
    starting_balance: Optional[int] = Field(default=None, gt=0)
    token_color: str = "red"


class JoinGameRequest(BaseModel):
    token_color: str


class JoinByCodeRequest(BaseModel):
    game_code: str = Field(min_length=6, max_length=6)
    token_color: str


class RollRequest(BaseModel):
    pay_to_leave_jail: bool = False
    use_goojf: bool = False


class PendingPropertyRequest(BaseModel):
    pending_action_id: uuid.UUID
    property_id: uuid.UUID


class PendingActionRequest(BaseModel):
    pending_action_id: uuid.UUID


class PropertyRequest(BaseModel):
    property_id: uuid.UUID


class ChatMessageRequest(BaseModel):
    message: str = Field(min_length=1)


# ---- Responses ----


class UserResponse(BaseModel):
    id: str
    display_name: str


class LobbyGame(BaseModel):
    id: str
    name: str
    game_code: str
    status: str
    max_players: int
    created_at: Optional[datetime] = None
    current_players: int
    is_participant: bool = False
    participant_id: Optional[str] = None


class GameListResponse(BaseModel):
    games: List[LobbyGame]
    limit: int
    offset: int


class ActionResponse(BaseModel):
    """Successful command: the operation's data, passed through as-is."""

    ok: bool = True
    data: Dict[str, Any] = Field(default_factory=dict)

