"""
SQLAlchemy models for live Monopoly sessions.

Architecture:
- Reference data: Tile, Card (seeded once, read-only afterwards)
- Lobby: User, Game, GameParticipant
- Ledger: Ownership, Turn, Transaction, CardDeck, CardDraw
- Obligation gate: PendingAction (one open row per participant)
- Table talk: ChatMessage

Columns use the generic Uuid/JSON types so the same schema runs on
PostgreSQL (native UUID, JSONB) and on SQLite for tests.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

JsonType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


def utc_now() -> datetime:
    """Generate timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


def _uuid_pk() -> Mapped[uuid.UUID]:
    return mapped_column(Uuid, primary_key=True, default=uuid.uuid4)


def _created_at() -> Mapped[datetime]:
    return mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        server_default=text("CURRENT_TIMESTAMP"),
    )


class User(Base):
    """A person who can create or join games."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = _uuid_pk()
    display_name: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    created_at: Mapped[datetime] = _created_at()

    def __repr__(self) -> str:
        return f"<User(display_name={self.display_name})>"


class Game(Base):
    """
    One game session.

    turn_index is a rotation pointer; it is only meaningful modulo the
    number of non-bankrupt participants at read time.
    """

    __tablename__ = "games"

    id: Mapped[uuid.UUID] = _uuid_pk()
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    game_code: Mapped[str] = mapped_column(
        String(6),
        unique=True,
        nullable=False,
        index=True,
        comment="Short upper-case hex join code",
    )
    game_type: Mapped[str] = mapped_column(String(32), nullable=False, default="monopoly_sf")
    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default="waiting",
        index=True,
        comment="waiting | playing | ended",
    )
    created_by: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    max_players: Mapped[int] = mapped_column(Integer, nullable=False, default=4)
    starting_balance: Mapped[int] = mapped_column(Integer, nullable=False, default=1500)
    turn_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = _created_at()
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    ended_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        CheckConstraint("max_players BETWEEN 2 AND 6", name="ck_games_max_players"),
        CheckConstraint("status IN ('waiting', 'playing', 'ended')", name="ck_games_status"),
    )

    def __repr__(self) -> str:
        return f"<Game(code={self.game_code}, status={self.status}, turn_index={self.turn_index})>"


class GameParticipant(Base):
    """
    A user's seat in one game.

    seat_number records join order and drives turn rotation. Rows are
    never deleted; bankrupt participants stay as history.
    """

    __tablename__ = "game_participants"

    id: Mapped[uuid.UUID] = _uuid_pk()
    game_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("games.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    seat_number: Mapped[int] = mapped_column(Integer, nullable=False)
    token_color: Mapped[str] = mapped_column(String(16), nullable=False)

    cash: Mapped[int] = mapped_column(Integer, nullable=False, default=1500)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    in_jail: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    jail_turns: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    goojf_cards: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_bankrupt: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    joined_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        UniqueConstraint("game_id", "user_id", name="uq_participant_user"),
        UniqueConstraint("game_id", "token_color", name="uq_participant_color"),
        UniqueConstraint("game_id", "seat_number", name="uq_participant_seat"),
        CheckConstraint("position BETWEEN 0 AND 39", name="ck_participant_position"),
        CheckConstraint("jail_turns BETWEEN 0 AND 2", name="ck_participant_jail_turns"),
        CheckConstraint("goojf_cards >= 0", name="ck_participant_goojf"),
    )

    def __repr__(self) -> str:
        return f"<GameParticipant(color={self.token_color}, cash={self.cash}, pos={self.position})>"


class Tile(Base):
    """Reference row for one of the 40 board positions."""

    __tablename__ = "tiles"

    id: Mapped[uuid.UUID] = _uuid_pk()
    position: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(64), nullable=False)
    tile_type: Mapped[str] = mapped_column(String(32), nullable=False)
    property_group: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    purchase_price: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    rent_base: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    def __repr__(self) -> str:
        return f"<Tile(position={self.position}, name={self.name})>"


class Ownership(Base):
    """A tile held by a participant. Deleted on sale or bankruptcy."""

    __tablename__ = "ownerships"

    id: Mapped[uuid.UUID] = _uuid_pk()
    game_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("games.id", ondelete="CASCADE"), nullable=False, index=True
    )
    tile_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("tiles.id"), nullable=False)
    participant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("game_participants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    houses: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    hotels: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_mortgaged: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = _created_at()

    __table_args__ = (
        UniqueConstraint("game_id", "tile_id", name="uq_ownership_tile"),
        CheckConstraint("houses BETWEEN 0 AND 4", name="ck_ownership_houses"),
        CheckConstraint("hotels BETWEEN 0 AND 1", name="ck_ownership_hotels"),
    )


class Turn(Base):
    """Append-only record of one dice roll."""

    __tablename__ = "turns"

    id: Mapped[uuid.UUID] = _uuid_pk()
    game_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("games.id", ondelete="CASCADE"), nullable=False
    )
    participant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("game_participants.id", ondelete="CASCADE"), nullable=False
    )
    turn_number: Mapped[int] = mapped_column(Integer, nullable=False)
    dice_roll_1: Mapped[int] = mapped_column(Integer, nullable=False)
    dice_roll_2: Mapped[int] = mapped_column(Integer, nullable=False)
    is_double: Mapped[bool] = mapped_column(Boolean, nullable=False)
    previous_position: Mapped[int] = mapped_column(Integer, nullable=False)
    new_position: Mapped[int] = mapped_column(Integer, nullable=False)
    action_taken: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = _created_at()

    __table_args__ = (
        UniqueConstraint("game_id", "turn_number", name="uq_turn_number"),
        Index("ix_turns_game_participant", "game_id", "participant_id"),
    )


class Transaction(Base):
    """
    Append-only money movement.

    A null participant on either side is the bank; amount is always
    positive and the direction comes from the from/to columns.
    entry_number counts entries per game and gives a total order where
    created_at ties.
    """

    __tablename__ = "transactions"

    id: Mapped[uuid.UUID] = _uuid_pk()
    game_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("games.id", ondelete="CASCADE"), nullable=False, index=True
    )
    entry_number: Mapped[int] = mapped_column(Integer, nullable=False)
    from_participant_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("game_participants.id", ondelete="CASCADE"), nullable=True
    )
    to_participant_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("game_participants.id", ondelete="CASCADE"), nullable=True
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    transaction_type: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        comment="rent | purchase | tax | pass_go | card | jail_fee | sale | bankruptcy | upgrade_property",
    )
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    turn_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("turns.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = _created_at()

    __table_args__ = (
        UniqueConstraint("game_id", "entry_number", name="uq_transaction_entry"),
        CheckConstraint("amount >= 0", name="ck_transaction_amount"),
    )


class Card(Base):
    """Reference row for one card of a deck."""

    __tablename__ = "cards"

    id: Mapped[uuid.UUID] = _uuid_pk()
    deck_type: Mapped[str] = mapped_column(String(32), nullable=False)
    card_order: Mapped[int] = mapped_column(Integer, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    action_type: Mapped[str] = mapped_column(String(32), nullable=False)
    action_value: Mapped[Optional[Dict[str, Any]]] = mapped_column(JsonType, nullable=True)

    __table_args__ = (UniqueConstraint("deck_type", "card_order", name="uq_card_order"),)


class CardDeck(Base):
    """Per-game cursor into one deck's fixed sequence."""

    __tablename__ = "card_decks"

    id: Mapped[uuid.UUID] = _uuid_pk()
    game_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("games.id", ondelete="CASCADE"), nullable=False
    )
    deck_type: Mapped[str] = mapped_column(String(32), nullable=False)
    current_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (UniqueConstraint("game_id", "deck_type", name="uq_card_deck"),)


class CardDraw(Base):
    """Audit row for a card drawn during a turn."""

    __tablename__ = "card_draws"

    id: Mapped[uuid.UUID] = _uuid_pk()
    game_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("games.id", ondelete="CASCADE"), nullable=False, index=True
    )
    card_deck_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("card_decks.id", ondelete="CASCADE"), nullable=False
    )
    card_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("cards.id"), nullable=False)
    participant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("game_participants.id", ondelete="CASCADE"), nullable=False
    )
    turn_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("turns.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = _created_at()


class PendingAction(Base):
    """
    The obligation gate.

    At most one row with status 'pending' exists per participant; the
    partial unique index backs up the check made under the game lock.
    """

    __tablename__ = "pending_actions"

    id: Mapped[uuid.UUID] = _uuid_pk()
    game_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("games.id", ondelete="CASCADE"), nullable=False
    )
    participant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("game_participants.id", ondelete="CASCADE"), nullable=False
    )
    action_type: Mapped[str] = mapped_column(
        String(32), nullable=False, comment="buy_property | pay_rent | pay_bank_debt"
    )
    payload_json: Mapped[Dict[str, Any]] = mapped_column(JsonType, nullable=False, default=dict)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default="pending", comment="pending | completed | cancelled"
    )
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        Index(
            "uq_pending_action_open",
            "game_id",
            "participant_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
    )

    def __repr__(self) -> str:
        return f"<PendingAction(type={self.action_type}, status={self.status})>"


class ChatMessage(Base):
    """A chat line posted by a participant to their game's table."""

    __tablename__ = "chat_messages"

    id: Mapped[uuid.UUID] = _uuid_pk()
    game_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("games.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    message: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        server_default=text("CURRENT_TIMESTAMP"),
        index=True,
    )

    def __repr__(self) -> str:
        return f"<ChatMessage(game_id={self.game_id}, user_id={self.user_id})>"
