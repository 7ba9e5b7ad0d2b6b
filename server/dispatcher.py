"""
Command dispatcher.

Runs one engine operation per command: takes the game's lock, opens a
transaction, hands the operation a repository, commits on success and
rolls back on failure, then publishes the operation's realtime events.
Events are published only after the commit so no subscriber sees state
that could still be rolled back.
"""

from __future__ import annotations

import logging
import uuid
from typing import Awaitable, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.results import ActionResult, Failure
from src.data import GameRepository, get_session_factory
from src.services.locks import GameLockRegistry

from .realtime import RealtimeGateway

logger = logging.getLogger(__name__)

Operation = Callable[[GameRepository], Awaitable[ActionResult]]

# Refusals a well-behaved client never triggers
CLIENT_ERROR_FAILURES = frozenset(
    {Failure.MISMATCH, Failure.WRONG_PENDING, Failure.CONFLICTING_JAIL_OPTIONS}
)


class CommandDispatcher:
    """Serializes mutations per game and publishes their events."""

    def __init__(
        self,
        gateway: RealtimeGateway,
        locks: Optional[GameLockRegistry] = None,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    ):
        self.gateway = gateway
        self.locks = locks or GameLockRegistry()
        self._session_factory = session_factory

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        return self._session_factory or get_session_factory()

    async def execute(self, game_id: Optional[uuid.UUID], operation: Operation) -> ActionResult:
        """
        Run an operation under the game's lock inside one transaction.

        Args:
            game_id: Game the operation mutates; None for operations that
                create a game and so have nothing to serialize against
            operation: Coroutine function receiving the repository

        Returns:
            The operation's ActionResult

        Raises:
            Whatever the operation raises; the transaction is rolled back
        """
        if game_id is None:
            return await self._run(operation)
        async with self.locks.hold(game_id):
            return await self._run(operation)

    async def _run(self, operation: Operation) -> ActionResult:
        async with self.session_factory() as session:
            try:
                result = await operation(GameRepository(session))
                if result.ok:
                    await session.commit()
                else:
                    await session.rollback()
            except Exception:
                await session.rollback()
                raise

        if result.ok:
            self.gateway.publish_all(result.events)
        elif result.is_invariant_violation:
            logger.error(f"Command refused on inconsistent state: {result.failure.value} {result.data}")
        elif result.failure in CLIENT_ERROR_FAILURES:
            logger.warning(f"Malformed command refused: {result.failure.value}")
        else:
            logger.debug(f"Command refused: {result.failure.value}")
        return result
