"""
Per-game table chat.

Only participants of a game may read or post to its chat, in any phase.
Posting emits a chat message to the game room.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, Optional

from src.core.events import chat_message
from src.core.results import ActionResult, Failure
from src.data.models import ChatMessage
from src.data.repository import GameRepository

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 50
MAX_MESSAGE_LENGTH = 500


def _message_payload(chat: ChatMessage, display_name: str) -> Dict[str, Any]:
    return {
        "id": str(chat.id),
        "game_id": str(chat.game_id),
        "message": chat.message,
        "created_at": chat.created_at.isoformat() if chat.created_at else None,
        "user": {"id": str(chat.user_id), "display_name": display_name},
    }


class ChatService:
    """Reads and posts chat lines for one game."""

    def __init__(self, repo: GameRepository):
        self.repo = repo

    async def _check_access(self, game_id: uuid.UUID, user_id: uuid.UUID) -> Optional[ActionResult]:
        if await self.repo.get_game(game_id) is None:
            return ActionResult.fail(Failure.NOT_FOUND)
        if await self.repo.get_participant_for_user(game_id, user_id) is None:
            return ActionResult.fail(Failure.NOT_PARTICIPANT)
        return None

    async def post_message(self, game_id: uuid.UUID, user_id: uuid.UUID, message: str) -> ActionResult:
        """
        Store a chat line and broadcast it to the game room.

        Args:
            game_id: Game whose table the message goes to
            user_id: Author; must hold a seat in the game
            message: Text, surrounding whitespace is dropped

        Returns:
            ActionResult with the stored message
        """
        denied = await self._check_access(game_id, user_id)
        if denied is not None:
            return denied
        text = message.strip()
        if not text:
            return ActionResult.fail(Failure.EMPTY_MESSAGE)
        if len(text) > MAX_MESSAGE_LENGTH:
            return ActionResult.fail(Failure.MESSAGE_TOO_LONG, max_length=MAX_MESSAGE_LENGTH)

        chat = await self.repo.create_chat_message(game_id, user_id, text)
        names = await self.repo.display_names([user_id])
        payload = _message_payload(chat, names.get(user_id, ""))
        logger.debug(f"Chat message {chat.id} posted to game {game_id}")
        return ActionResult.success({"message": payload}, [chat_message(game_id, payload)])

    async def list_messages(self, game_id: uuid.UUID, user_id: uuid.UUID) -> ActionResult:
        """The latest chat lines of a game, oldest first."""
        denied = await self._check_access(game_id, user_id)
        if denied is not None:
            return denied
        messages = await self.repo.list_chat_messages(game_id, HISTORY_LIMIT)
        names = await self.repo.display_names([m.user_id for m in messages])
        return ActionResult.success(
            {"messages": [_message_payload(m, names.get(m.user_id, "")) for m in messages]}
        )
