"""
Per-game serialization.

Every mutation of a game runs while holding that game's lock, so two
commands against the same game never interleave inside this process.
Row locks taken by the repository extend the guarantee across
processes on PostgreSQL.
"""

from __future__ import annotations

import asyncio
import uuid
import weakref
from contextlib import asynccontextmanager
from typing import AsyncIterator


class GameLockRegistry:
    """Hands out one asyncio.Lock per game id, dropped once nobody holds it."""

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[uuid.UUID, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    def lock_for(self, game_id: uuid.UUID) -> asyncio.Lock:
        lock = self._locks.get(game_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[game_id] = lock
        return lock

    @asynccontextmanager
    async def hold(self, game_id: uuid.UUID) -> AsyncIterator[None]:
        lock = self.lock_for(game_id)
        async with lock:
            yield

    def __len__(self) -> int:
        return len(self._locks)
