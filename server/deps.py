"""
FastAPI dependencies: repositories, caller identity and app-owned services.
"""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.game_math import DiceSource
from src.data import GameRepository, get_session, session_scope

from .dispatcher import CommandDispatcher
from .realtime import RealtimeGateway


async def get_repo(session: AsyncSession = Depends(get_session)) -> GameRepository:
    return GameRepository(session)


def parse_uuid(value: Optional[str]) -> Optional[uuid.UUID]:
    if not value:
        return None
    try:
        return uuid.UUID(value)
    except ValueError:
        return None


async def get_current_user_id(
    x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
) -> uuid.UUID:
    """
    Resolve the caller from the X-User-Id header.

    Raises:
        HTTPException: 401 when the header is missing, malformed or unknown
    """
    user_id = parse_uuid(x_user_id)
    if user_id is None:
        raise HTTPException(status_code=401, detail={"error": "unauthorized"})
    async with session_scope() as session:
        user = await GameRepository(session).get_user(user_id)
    if user is None:
        raise HTTPException(status_code=401, detail={"error": "unknown_user"})
    return user_id


def get_dispatcher(request: Request) -> CommandDispatcher:
    return request.app.state.dispatcher


def get_gateway(request: Request) -> RealtimeGateway:
    return request.app.state.gateway


def get_dice(request: Request) -> Optional[DiceSource]:
    return request.app.state.dice
