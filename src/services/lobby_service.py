"""
Lobby and lifecycle service.

Handles everything before and around play: registering users, creating
games with unique join codes, joining, starting and deleting games, and
the lobby listing.
"""

from __future__ import annotations

import logging
import secrets
import uuid
from typing import Any, Callable, Dict, List, Optional

from src.core.board import TOKEN_COLORS
from src.core.cards import DeckType
from src.core.events import player_joined, private_options, state_update, turn_changed
from src.core.events import game_ended as game_ended_event
from src.core.exceptions import GameCodeExhaustedError
from src.core.results import ActionResult, Failure
from src.data.models import Game, GameParticipant
from src.data.repository import GameRepository
from src.data.seed import ensure_reference_data_seeded
from src.services.game_state import build_public_game_state
from src.services.options import start_turn_options
from src.services.rotation import current_participant
from src.settings import GameSettings, get_game_settings

logger = logging.getLogger(__name__)


def generate_game_code() -> str:
    """Six upper-case hex characters."""
    return secrets.token_hex(3).upper()


def normalize_color(value: Optional[str]) -> Optional[str]:
    """Return the palette colour matching value, or None when it is not one."""
    color = (value or "").strip().lower()
    return color if color in TOKEN_COLORS else None


def _participant_summary(participant: GameParticipant) -> Dict[str, Any]:
    return {
        "id": str(participant.id),
        "game_id": str(participant.game_id),
        "user_id": str(participant.user_id),
        "cash": participant.cash,
        "token_color": participant.token_color,
    }


def _game_summary(game: Game) -> Dict[str, Any]:
    return {
        "id": str(game.id),
        "name": game.name,
        "game_code": game.game_code,
        "max_players": game.max_players,
        "starting_balance": game.starting_balance,
        "status": game.status,
        "created_by": str(game.created_by),
    }


class LobbyService:
    """Game creation, joining, starting and deletion."""

    def __init__(
        self,
        repo: GameRepository,
        settings: Optional[GameSettings] = None,
        code_factory: Optional[Callable[[], str]] = None,
    ):
        self.repo = repo
        self.settings = settings or get_game_settings()
        self.code_factory = code_factory or generate_game_code

    # ---- Users ----

    async def register_user(self, display_name: str) -> ActionResult:
        name = display_name.strip()
        if await self.repo.get_user_by_name(name) is not None:
            return ActionResult.fail(Failure.NAME_TAKEN)
        user = await self.repo.create_user(name)
        return ActionResult.success({"id": str(user.id), "display_name": user.display_name})

    # ---- Creation ----

    async def create_game(
        self,
        user_id: uuid.UUID,
        *,
        name: str = "",
        token_color: str = "red",
        max_players: Optional[int] = None,
        starting_balance: Optional[int] = None,
    ) -> ActionResult:
        """
        Create a waiting game with the creator seated first.

        Args:
            user_id: Creator
            name: Lobby name; defaults to "Game <code>"
            token_color: Creator's token colour
            max_players: Seat limit; defaults from GameSettings and must lie
                within its min/max player bounds
            starting_balance: Starting cash; defaults from GameSettings

        Returns:
            ActionResult with the game, the creator's participant and the snapshot

        Raises:
            GameCodeExhaustedError: if no unused join code was found
            ReferenceDataError: if the board is only partly seeded
        """
        color = normalize_color(token_color)
        if color is None:
            return ActionResult.fail(Failure.INVALID_COLOR)
        seats = max_players or self.settings.default_max_players
        if not self.settings.min_players <= seats <= self.settings.max_players:
            return ActionResult.fail(
                Failure.INVALID_MAX_PLAYERS,
                min_players=self.settings.min_players,
                max_players=self.settings.max_players,
            )

        await ensure_reference_data_seeded(self.repo.session)

        code = await self._unused_code()
        game = await self.repo.create_game(
            name=name.strip() or f"Game {code}",
            game_code=code,
            created_by=user_id,
            max_players=seats,
            starting_balance=starting_balance or self.settings.default_starting_balance,
        )
        participant = await self.repo.add_participant(
            game=game, user_id=user_id, token_color=color, seat_number=1
        )
        await self.repo.create_decks(game.id, [deck.value for deck in DeckType])

        state = await build_public_game_state(self.repo, game.id)
        return ActionResult.success(
            {
                "game": _game_summary(game),
                "participant": _participant_summary(participant),
                "state": state,
            },
            [state_update(game.id, state)],
        )

    async def _unused_code(self) -> str:
        for _ in range(self.settings.code_attempts):
            code = self.code_factory()
            if not await self.repo.game_code_exists(code):
                return code
            logger.warning(f"Game code collision on {code}, retrying")
        raise GameCodeExhaustedError("Failed to generate unique game code")

    # ---- Joining ----

    async def join_game(
        self, game_id: uuid.UUID, user_id: uuid.UUID, token_color: Optional[str]
    ) -> ActionResult:
        """Take a seat in a waiting game with the chosen token colour."""
        game = await self.repo.lock_game(game_id)
        if game is None:
            return ActionResult.fail(Failure.NOT_FOUND)
        if game.status != "waiting":
            return ActionResult.fail(Failure.BAD_PHASE)

        participants = await self.repo.lock_participants(game_id)
        existing = next((p for p in participants if p.user_id == user_id), None)
        if existing is not None:
            return ActionResult.fail(
                Failure.ALREADY_JOINED,
                participant_id=str(existing.id),
                token_color=existing.token_color,
            )

        color = normalize_color(token_color)
        if color is None:
            return ActionResult.fail(Failure.INVALID_COLOR)
        if len(participants) >= game.max_players:
            return ActionResult.fail(Failure.FULL)
        if any(p.token_color == color for p in participants):
            return ActionResult.fail(Failure.COLOR_TAKEN)

        seat = max((p.seat_number for p in participants), default=0) + 1
        participant = await self.repo.add_participant(
            game=game, user_id=user_id, token_color=color, seat_number=seat
        )
        logger.info(f"User {user_id} joined game {game.game_code} as {color}")

        state = await build_public_game_state(self.repo, game_id)
        names = await self.repo.display_names([user_id])
        joined = {
            "game_id": str(game_id),
            "player": {
                "id": str(participant.id),
                "user_id": str(user_id),
                "display_name": names.get(user_id, ""),
                "token_color": color,
            },
            "player_count": len(participants) + 1,
            "max_players": game.max_players,
        }
        return ActionResult.success(
            {"participant": _participant_summary(participant), "state": state},
            [state_update(game_id, state), player_joined(game_id, joined)],
        )

    async def join_by_code(
        self, game_code: str, user_id: uuid.UUID, token_color: Optional[str]
    ) -> ActionResult:
        game = await self.repo.get_game_by_code(game_code.strip())
        if game is None:
            return ActionResult.fail(Failure.CODE_NOT_FOUND)
        result = await self.join_game(game.id, user_id, token_color)
        if result.ok:
            result.data["game_id"] = str(game.id)
        return result

    async def join_auto(self, game_id: uuid.UUID, user_id: uuid.UUID) -> ActionResult:
        """Join with the first palette colour nobody in the game uses."""
        game = await self.repo.lock_game(game_id)
        if game is None:
            return ActionResult.fail(Failure.NOT_FOUND)

        participants = await self.repo.list_participants(game_id)
        existing = next((p for p in participants if p.user_id == user_id), None)
        if existing is not None:
            return await self.join_game(game_id, user_id, existing.token_color)
        if game.status != "waiting":
            return ActionResult.fail(Failure.BAD_PHASE)

        used = {p.token_color for p in participants}
        color = next((c for c in TOKEN_COLORS if c not in used), None)
        if color is None:
            return ActionResult.fail(Failure.NO_COLORS)
        return await self.join_game(game_id, user_id, color)

    # ---- Lifecycle ----

    async def start_game(self, game_id: uuid.UUID, user_id: uuid.UUID) -> ActionResult:
        """Move a waiting game to playing; the first joined participant rolls first."""
        game = await self.repo.lock_game(game_id)
        if game is None:
            return ActionResult.fail(Failure.NOT_FOUND)
        if game.status != "waiting":
            return ActionResult.fail(Failure.BAD_PHASE)
        if game.created_by != user_id:
            return ActionResult.fail(Failure.FORBIDDEN)

        participants = await self.repo.lock_participants(game_id)
        if len(participants) < self.settings.min_players:
            return ActionResult.fail(Failure.NOT_ENOUGH_PLAYERS)

        await self.repo.mark_started(game)
        logger.info(f"Game {game.game_code} started with {len(participants)} players")

        state = await build_public_game_state(self.repo, game_id)
        first = current_participant(game, participants)
        events = [state_update(game_id, state)]
        if first is not None:
            events.append(turn_changed(game_id, first.id, None, state["turn_number"]))
            events.append(private_options(first.user_id, start_turn_options(game_id, first.id)))
        return ActionResult.success(
            {"current_player_id": str(first.id) if first else None, "state": state}, events
        )

    async def delete_game(self, game_id: uuid.UUID, user_id: uuid.UUID) -> ActionResult:
        """Remove a game and its history; only the creator may do this."""
        game = await self.repo.lock_game(game_id)
        if game is None:
            return ActionResult.fail(Failure.NOT_FOUND)
        if game.created_by != user_id:
            return ActionResult.fail(Failure.FORBIDDEN)

        await self.repo.delete_game(game)
        return ActionResult.success(
            {"game_id": str(game_id), "deleted": True},
            [game_ended_event(game_id, {"game_id": str(game_id), "deleted": True})],
        )

    async def list_games(
        self,
        user_id: Optional[uuid.UUID] = None,
        status: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Dict[str, Any]]:
        """Lobby listing, newest first, with seat counts and the caller's seat."""
        games = await self.repo.list_games(status=status, limit=limit, offset=offset)
        ids = [g.id for g in games]
        counts = await self.repo.count_participants_by_game(ids)
        mine = await self.repo.participations(user_id, ids) if user_id else {}

        return [
            {
                "id": str(g.id),
                "name": g.name,
                "game_code": g.game_code,
                "status": g.status,
                "max_players": g.max_players,
                "created_at": g.created_at.isoformat() if g.created_at else None,
                "current_players": counts.get(g.id, 0),
                "is_participant": g.id in mine,
                "participant_id": str(mine[g.id]) if g.id in mine else None,
            }
            for g in games
        ]
