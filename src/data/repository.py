"""
Repository pattern for the game ledger.

Encapsulates every query the engine issues: lobby rows, participants,
ownerships, turns, transactions, card decks, pending actions and chat. No
game rules live here; services decide, the repository reads and writes.

Methods named `lock_*` issue SELECT ... FOR UPDATE and must run inside
the mutation's transaction.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.exceptions import PendingActionConflictError, ReferenceDataError
from src.core.pending import PendingStatus
from src.data.models import (
    Card,
    CardDeck,
    CardDraw,
    ChatMessage,
    Game,
    GameParticipant,
    Ownership,
    PendingAction,
    Tile,
    Transaction,
    Turn,
    User,
    utc_now,
)

logger = logging.getLogger(__name__)


class GameRepository:
    """
    Repository for game ledger operations.

    One instance wraps one session; the caller owns the transaction.
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize repository with a database session.

        Args:
            session: Active async SQLAlchemy session
        """
        self.session = session

    # ---- User Operations ----

    async def create_user(self, display_name: str) -> User:
        user = User(display_name=display_name)
        self.session.add(user)
        await self.session.flush()
        logger.info(f"Registered user {display_name} ({user.id})")
        return user

    async def get_user(self, user_id: uuid.UUID) -> Optional[User]:
        return await self.session.get(User, user_id)

    async def get_user_by_name(self, display_name: str) -> Optional[User]:
        stmt = select(User).where(User.display_name == display_name)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    # ---- Game Operations ----

    async def create_game(
        self,
        *,
        name: str,
        game_code: str,
        created_by: uuid.UUID,
        max_players: int,
        starting_balance: int,
    ) -> Game:
        """
        Create a new game in the waiting phase.

        Args:
            name: Lobby display name
            game_code: Unique join code
            created_by: Creator's user id
            max_players: Seat limit (2-6)
            starting_balance: Cash each participant starts with

        Returns:
            Created Game instance
        """
        game = Game(
            name=name,
            game_code=game_code,
            created_by=created_by,
            max_players=max_players,
            starting_balance=starting_balance,
            status="waiting",
            turn_index=0,
        )
        self.session.add(game)
        await self.session.flush()
        logger.info(f"Created game {game_code} ({game.id})")
        return game

    async def get_game(self, game_id: uuid.UUID) -> Optional[Game]:
        return await self.session.get(Game, game_id)

    async def lock_game(self, game_id: uuid.UUID) -> Optional[Game]:
        """Fetch a game row with a row lock held until the transaction ends."""
        stmt = select(Game).where(Game.id == game_id).with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_game_by_code(self, game_code: str) -> Optional[Game]:
        stmt = select(Game).where(Game.game_code == game_code.upper())
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def game_code_exists(self, game_code: str) -> bool:
        stmt = select(func.count()).select_from(Game).where(Game.game_code == game_code)
        result = await self.session.execute(stmt)
        return (result.scalar() or 0) > 0

    async def list_games(
        self, status: Optional[str] = None, limit: int = 100, offset: int = 0
    ) -> List[Game]:
        stmt = select(Game).order_by(Game.created_at.desc()).limit(limit).offset(offset)
        if status:
            stmt = stmt.where(Game.status == status)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def count_participants_by_game(self, game_ids: Sequence[uuid.UUID]) -> Dict[uuid.UUID, int]:
        if not game_ids:
            return {}
        stmt = (
            select(GameParticipant.game_id, func.count())
            .where(GameParticipant.game_id.in_(list(game_ids)))
            .group_by(GameParticipant.game_id)
        )
        result = await self.session.execute(stmt)
        return {row[0]: row[1] for row in result.all()}

    async def mark_started(self, game: Game) -> None:
        game.status = "playing"
        game.turn_index = 0
        game.started_at = utc_now()
        await self.session.flush()

    async def mark_ended(self, game: Game) -> None:
        game.status = "ended"
        game.ended_at = utc_now()
        await self.session.flush()
        logger.info(f"Game {game.game_code} ended")

    async def set_turn_index(self, game: Game, turn_index: int) -> None:
        game.turn_index = turn_index
        await self.session.flush()

    async def delete_game(self, game: Game) -> None:
        """
        Delete a game and everything recorded for it.

        Children are removed explicitly so the result does not depend on
        the backend enforcing ON DELETE CASCADE.
        """
        game_id, game_code = game.id, game.game_code
        for model in (
            CardDraw, PendingAction, Transaction, Ownership, Turn, CardDeck, ChatMessage
        ):
            await self.session.execute(delete(model).where(model.game_id == game_id))
        await self.session.execute(delete(GameParticipant).where(GameParticipant.game_id == game_id))
        await self.session.delete(game)
        await self.session.flush()
        logger.info(f"Deleted game {game_code} ({game_id})")

    # ---- Participant Operations ----

    async def add_participant(
        self,
        *,
        game: Game,
        user_id: uuid.UUID,
        token_color: str,
        seat_number: int,
    ) -> GameParticipant:
        participant = GameParticipant(
            game_id=game.id,
            user_id=user_id,
            token_color=token_color,
            seat_number=seat_number,
            cash=game.starting_balance,
            position=0,
            in_jail=False,
            jail_turns=0,
            goojf_cards=0,
            is_bankrupt=False,
        )
        self.session.add(participant)
        await self.session.flush()
        return participant

    async def list_participants(self, game_id: uuid.UUID) -> List[GameParticipant]:
        """All participants in join order, bankrupt ones included."""
        stmt = (
            select(GameParticipant)
            .where(GameParticipant.game_id == game_id)
            .order_by(GameParticipant.seat_number)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def lock_participants(self, game_id: uuid.UUID) -> List[GameParticipant]:
        """All participants in join order, row-locked."""
        stmt = (
            select(GameParticipant)
            .where(GameParticipant.game_id == game_id)
            .order_by(GameParticipant.seat_number)
            .with_for_update()
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_active_participants(self, game_id: uuid.UUID) -> List[GameParticipant]:
        await self.session.flush()
        stmt = (
            select(GameParticipant)
            .where(GameParticipant.game_id == game_id, GameParticipant.is_bankrupt.is_(False))
            .order_by(GameParticipant.seat_number)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_participant(self, participant_id: uuid.UUID) -> Optional[GameParticipant]:
        return await self.session.get(GameParticipant, participant_id)

    async def get_participant_for_user(
        self, game_id: uuid.UUID, user_id: uuid.UUID
    ) -> Optional[GameParticipant]:
        stmt = select(GameParticipant).where(
            GameParticipant.game_id == game_id, GameParticipant.user_id == user_id
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def participations(
        self, user_id: uuid.UUID, game_ids: Sequence[uuid.UUID]
    ) -> Dict[uuid.UUID, uuid.UUID]:
        """Map game id -> the user's participant id, for the given games."""
        if not game_ids:
            return {}
        stmt = select(GameParticipant.game_id, GameParticipant.id).where(
            GameParticipant.user_id == user_id, GameParticipant.game_id.in_(list(game_ids))
        )
        result = await self.session.execute(stmt)
        return {row[0]: row[1] for row in result.all()}

    async def display_names(self, user_ids: Sequence[uuid.UUID]) -> Dict[uuid.UUID, str]:
        if not user_ids:
            return {}
        stmt = select(User.id, User.display_name).where(User.id.in_(list(user_ids)))
        result = await self.session.execute(stmt)
        return {row[0]: row[1] for row in result.all()}

    # ---- Tile Operations ----

    async def list_tiles(self) -> List[Tile]:
        result = await self.session.execute(select(Tile).order_by(Tile.position))
        return list(result.scalars().all())

    async def get_tile(self, tile_id: uuid.UUID) -> Optional[Tile]:
        return await self.session.get(Tile, tile_id)

    async def get_tile_at(self, position: int) -> Tile:
        """
        Fetch the tile at a board position.

        Raises:
            ReferenceDataError: if the board was not seeded
        """
        stmt = select(Tile).where(Tile.position == position)
        result = await self.session.execute(stmt)
        tile = result.scalar_one_or_none()
        if tile is None:
            raise ReferenceDataError(f"No tile seeded at position {position}")
        return tile

    # ---- Ownership Operations ----

    async def get_ownership(self, game_id: uuid.UUID, tile_id: uuid.UUID) -> Optional[Ownership]:
        stmt = select(Ownership).where(Ownership.game_id == game_id, Ownership.tile_id == tile_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def lock_ownership(self, game_id: uuid.UUID, tile_id: uuid.UUID) -> Optional[Ownership]:
        stmt = (
            select(Ownership)
            .where(Ownership.game_id == game_id, Ownership.tile_id == tile_id)
            .with_for_update()
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_ownerships(self, game_id: uuid.UUID) -> List[Ownership]:
        result = await self.session.execute(select(Ownership).where(Ownership.game_id == game_id))
        return list(result.scalars().all())

    async def count_owned(self, game_id: uuid.UUID, participant_id: uuid.UUID) -> int:
        stmt = (
            select(func.count())
            .select_from(Ownership)
            .where(Ownership.game_id == game_id, Ownership.participant_id == participant_id)
        )
        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def create_ownership(
        self, game_id: uuid.UUID, tile_id: uuid.UUID, participant_id: uuid.UUID
    ) -> Ownership:
        ownership = Ownership(
            game_id=game_id,
            tile_id=tile_id,
            participant_id=participant_id,
            houses=0,
            hotels=0,
            is_mortgaged=False,
        )
        self.session.add(ownership)
        await self.session.flush()
        return ownership

    async def delete_ownership(self, ownership: Ownership) -> None:
        await self.session.delete(ownership)
        await self.session.flush()

    async def delete_ownerships_for(self, game_id: uuid.UUID, participant_id: uuid.UUID) -> int:
        stmt = delete(Ownership).where(
            Ownership.game_id == game_id, Ownership.participant_id == participant_id
        )
        result = await self.session.execute(stmt)
        return result.rowcount or 0

    # ---- Turn Operations ----

    async def last_turn_number(self, game_id: uuid.UUID) -> int:
        stmt = select(func.max(Turn.turn_number)).where(Turn.game_id == game_id)
        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def create_turn(
        self,
        *,
        game_id: uuid.UUID,
        participant_id: uuid.UUID,
        dice: Sequence[int],
        previous_position: int,
        new_position: int,
        action_taken: Optional[str] = None,
    ) -> Turn:
        turn = Turn(
            game_id=game_id,
            participant_id=participant_id,
            turn_number=await self.last_turn_number(game_id) + 1,
            dice_roll_1=dice[0],
            dice_roll_2=dice[1],
            is_double=dice[0] == dice[1],
            previous_position=previous_position,
            new_position=new_position,
            action_taken=action_taken,
        )
        self.session.add(turn)
        await self.session.flush()
        return turn

    async def last_turn_for(self, game_id: uuid.UUID, participant_id: uuid.UUID) -> Optional[Turn]:
        stmt = (
            select(Turn)
            .where(Turn.game_id == game_id, Turn.participant_id == participant_id)
            .order_by(Turn.turn_number.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_recent_turns(self, game_id: uuid.UUID, limit: int = 50) -> List[Turn]:
        stmt = (
            select(Turn)
            .where(Turn.game_id == game_id)
            .order_by(Turn.turn_number.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    # ---- Transaction Operations ----

    async def last_entry_number(self, game_id: uuid.UUID) -> int:
        stmt = select(func.max(Transaction.entry_number)).where(Transaction.game_id == game_id)
        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def record_transaction(
        self,
        *,
        game_id: uuid.UUID,
        amount: int,
        transaction_type: str,
        from_participant_id: Optional[uuid.UUID] = None,
        to_participant_id: Optional[uuid.UUID] = None,
        description: Optional[str] = None,
        turn_id: Optional[uuid.UUID] = None,
    ) -> Transaction:
        """
        Append a ledger entry. A None participant on either side is the bank.
        """
        txn = Transaction(
            game_id=game_id,
            entry_number=await self.last_entry_number(game_id) + 1,
            from_participant_id=from_participant_id,
            to_participant_id=to_participant_id,
            amount=amount,
            transaction_type=transaction_type,
            description=description,
            turn_id=turn_id,
        )
        self.session.add(txn)
        await self.session.flush()
        return txn

    async def list_recent_transactions(self, game_id: uuid.UUID, limit: int = 100) -> List[Transaction]:
        stmt = (
            select(Transaction)
            .where(Transaction.game_id == game_id)
            .order_by(Transaction.entry_number.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_transactions(
        self, game_id: uuid.UUID, transaction_type: Optional[str] = None
    ) -> List[Transaction]:
        stmt = select(Transaction).where(Transaction.game_id == game_id)
        if transaction_type:
            stmt = stmt.where(Transaction.transaction_type == transaction_type)
        result = await self.session.execute(stmt.order_by(Transaction.entry_number))
        return list(result.scalars().all())

    async def turn_numbers(self, turn_ids: Sequence[uuid.UUID]) -> Dict[uuid.UUID, int]:
        if not turn_ids:
            return {}
        stmt = select(Turn.id, Turn.turn_number).where(Turn.id.in_(list(turn_ids)))
        result = await self.session.execute(stmt)
        return {row[0]: row[1] for row in result.all()}

    # ---- Card Operations ----

    async def create_decks(self, game_id: uuid.UUID, deck_types: Sequence[str]) -> List[CardDeck]:
        decks = [CardDeck(game_id=game_id, deck_type=deck_type, current_index=0) for deck_type in deck_types]
        self.session.add_all(decks)
        await self.session.flush()
        return decks

    async def lock_deck(self, game_id: uuid.UUID, deck_type: str) -> Optional[CardDeck]:
        stmt = (
            select(CardDeck)
            .where(CardDeck.game_id == game_id, CardDeck.deck_type == deck_type)
            .with_for_update()
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def count_cards(self, deck_type: str) -> int:
        stmt = select(func.count()).select_from(Card).where(Card.deck_type == deck_type)
        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def get_card(self, deck_type: str, card_order: int) -> Optional[Card]:
        stmt = select(Card).where(Card.deck_type == deck_type, Card.card_order == card_order)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def record_card_draw(
        self,
        *,
        game_id: uuid.UUID,
        deck: CardDeck,
        card: Card,
        participant_id: uuid.UUID,
        turn_id: Optional[uuid.UUID],
    ) -> CardDraw:
        draw = CardDraw(
            game_id=game_id,
            card_deck_id=deck.id,
            card_id=card.id,
            participant_id=participant_id,
            turn_id=turn_id,
        )
        self.session.add(draw)
        await self.session.flush()
        return draw

    # ---- Pending Action Operations ----

    async def get_open_pending(
        self, game_id: uuid.UUID, participant_id: uuid.UUID
    ) -> Optional[PendingAction]:
        stmt = select(PendingAction).where(
            PendingAction.game_id == game_id,
            PendingAction.participant_id == participant_id,
            PendingAction.status == PendingStatus.PENDING.value,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def lock_pending(self, pending_action_id: uuid.UUID) -> Optional[PendingAction]:
        stmt = select(PendingAction).where(PendingAction.id == pending_action_id).with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create_pending(
        self,
        *,
        game_id: uuid.UUID,
        participant_id: uuid.UUID,
        action_type: str,
        payload: Dict[str, Any],
    ) -> PendingAction:
        """
        Open a pending action for a participant.

        Raises:
            PendingActionConflictError: if one is already open
        """
        if await self.get_open_pending(game_id, participant_id) is not None:
            raise PendingActionConflictError(
                f"Participant {participant_id} already has a pending action"
            )
        pending = PendingAction(
            game_id=game_id,
            participant_id=participant_id,
            action_type=action_type,
            payload_json=payload,
            status=PendingStatus.PENDING.value,
        )
        self.session.add(pending)
        await self.session.flush()
        return pending

    async def set_pending_status(self, pending: PendingAction, status: PendingStatus) -> None:
        pending.status = status.value
        await self.session.flush()

    # ---- Chat Operations ----

    async def create_chat_message(
        self, game_id: uuid.UUID, user_id: uuid.UUID, message: str
    ) -> ChatMessage:
        chat = ChatMessage(game_id=game_id, user_id=user_id, message=message)
        self.session.add(chat)
        await self.session.flush()
        return chat

    async def list_chat_messages(self, game_id: uuid.UUID, limit: int = 50) -> List[ChatMessage]:
        """
        Most recent messages of a game, returned oldest first.

        Args:
            game_id: Game to read
            limit: How many of the newest messages to keep
        """
        stmt = (
            select(ChatMessage)
            .where(ChatMessage.game_id == game_id)
            .order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(reversed(result.scalars().all()))

    # ---- Session Helpers ----

    async def flush(self) -> None:
        """Push pending attribute changes so later queries see them."""
        await self.session.flush()
