"""initial schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19 00:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JsonType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")
NOW = sa.text("CURRENT_TIMESTAMP")


def _id() -> sa.Column:
    return sa.Column("id", sa.Uuid(), primary_key=True)


def _created_at(name: str = "created_at") -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=False, server_default=NOW)


def _game_fk() -> sa.Column:
    return sa.Column(
        "game_id", sa.Uuid(), sa.ForeignKey("games.id", ondelete="CASCADE"), nullable=False
    )


def _participant_fk(name: str = "participant_id", nullable: bool = False) -> sa.Column:
    return sa.Column(
        name,
        sa.Uuid(),
        sa.ForeignKey("game_participants.id", ondelete="CASCADE"),
        nullable=nullable,
    )


def upgrade() -> None:
    op.create_table(
        "users",
        _id(),
        sa.Column("display_name", sa.String(64), nullable=False, unique=True),
        _created_at(),
    )

    op.create_table(
        "games",
        _id(),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("game_code", sa.String(6), nullable=False),
        sa.Column("game_type", sa.String(32), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column(
            "created_by", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("max_players", sa.Integer(), nullable=False),
        sa.Column("starting_balance", sa.Integer(), nullable=False),
        sa.Column("turn_index", sa.Integer(), nullable=False),
        _created_at(),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=NOW),
        sa.CheckConstraint("max_players BETWEEN 2 AND 6", name="ck_games_max_players"),
        sa.CheckConstraint("status IN ('waiting', 'playing', 'ended')", name="ck_games_status"),
    )
    op.create_index("ix_games_game_code", "games", ["game_code"], unique=True)
    op.create_index("ix_games_status", "games", ["status"])

    op.create_table(
        "game_participants",
        _id(),
        _game_fk(),
        sa.Column(
            "user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("seat_number", sa.Integer(), nullable=False),
        sa.Column("token_color", sa.String(16), nullable=False),
        sa.Column("cash", sa.Integer(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("in_jail", sa.Boolean(), nullable=False),
        sa.Column("jail_turns", sa.Integer(), nullable=False),
        sa.Column("goojf_cards", sa.Integer(), nullable=False),
        sa.Column("is_bankrupt", sa.Boolean(), nullable=False),
        _created_at("joined_at"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=NOW),
        sa.UniqueConstraint("game_id", "user_id", name="uq_participant_user"),
        sa.UniqueConstraint("game_id", "token_color", name="uq_participant_color"),
        sa.UniqueConstraint("game_id", "seat_number", name="uq_participant_seat"),
        sa.CheckConstraint("position BETWEEN 0 AND 39", name="ck_participant_position"),
        sa.CheckConstraint("jail_turns BETWEEN 0 AND 2", name="ck_participant_jail_turns"),
        sa.CheckConstraint("goojf_cards >= 0", name="ck_participant_goojf"),
    )
    op.create_index("ix_game_participants_game_id", "game_participants", ["game_id"])
    op.create_index("ix_game_participants_user_id", "game_participants", ["user_id"])

    op.create_table(
        "tiles",
        _id(),
        sa.Column("position", sa.Integer(), nullable=False, unique=True),
        sa.Column("name", sa.String(64), nullable=False),
        sa.Column("tile_type", sa.String(32), nullable=False),
        sa.Column("property_group", sa.String(32), nullable=True),
        sa.Column("purchase_price", sa.Integer(), nullable=True),
        sa.Column("rent_base", sa.Integer(), nullable=True),
    )

    op.create_table(
        "ownerships",
        _id(),
        _game_fk(),
        sa.Column("tile_id", sa.Uuid(), sa.ForeignKey("tiles.id"), nullable=False),
        _participant_fk(),
        sa.Column("houses", sa.Integer(), nullable=False),
        sa.Column("hotels", sa.Integer(), nullable=False),
        sa.Column("is_mortgaged", sa.Boolean(), nullable=False),
        _created_at(),
        sa.UniqueConstraint("game_id", "tile_id", name="uq_ownership_tile"),
        sa.CheckConstraint("houses BETWEEN 0 AND 4", name="ck_ownership_houses"),
        sa.CheckConstraint("hotels BETWEEN 0 AND 1", name="ck_ownership_hotels"),
    )
    op.create_index("ix_ownerships_game_id", "ownerships", ["game_id"])
    op.create_index("ix_ownerships_participant_id", "ownerships", ["participant_id"])

    op.create_table(
        "turns",
        _id(),
        _game_fk(),
        _participant_fk(),
        sa.Column("turn_number", sa.Integer(), nullable=False),
        sa.Column("dice_roll_1", sa.Integer(), nullable=False),
        sa.Column("dice_roll_2", sa.Integer(), nullable=False),
        sa.Column("is_double", sa.Boolean(), nullable=False),
        sa.Column("previous_position", sa.Integer(), nullable=False),
        sa.Column("new_position", sa.Integer(), nullable=False),
        sa.Column("action_taken", sa.Text(), nullable=True),
        _created_at(),
        sa.UniqueConstraint("game_id", "turn_number", name="uq_turn_number"),
    )
    op.create_index("ix_turns_game_participant", "turns", ["game_id", "participant_id"])

    op.create_table(
        "transactions",
        _id(),
        _game_fk(),
        sa.Column("entry_number", sa.Integer(), nullable=False),
        _participant_fk("from_participant_id", nullable=True),
        _participant_fk("to_participant_id", nullable=True),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("transaction_type", sa.String(32), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "turn_id", sa.Uuid(), sa.ForeignKey("turns.id", ondelete="SET NULL"), nullable=True
        ),
        _created_at(),
        sa.UniqueConstraint("game_id", "entry_number", name="uq_transaction_entry"),
        sa.CheckConstraint("amount >= 0", name="ck_transaction_amount"),
    )
    op.create_index("ix_transactions_game_id", "transactions", ["game_id"])

    op.create_table(
        "cards",
        _id(),
        sa.Column("deck_type", sa.String(32), nullable=False),
        sa.Column("card_order", sa.Integer(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("action_type", sa.String(32), nullable=False),
        sa.Column("action_value", JsonType, nullable=True),
        sa.UniqueConstraint("deck_type", "card_order", name="uq_card_order"),
    )

    op.create_table(
        "card_decks",
        _id(),
        _game_fk(),
        sa.Column("deck_type", sa.String(32), nullable=False),
        sa.Column("current_index", sa.Integer(), nullable=False),
        sa.UniqueConstraint("game_id", "deck_type", name="uq_card_deck"),
    )

    op.create_table(
        "card_draws",
        _id(),
        _game_fk(),
        sa.Column(
            "card_deck_id",
            sa.Uuid(),
            sa.ForeignKey("card_decks.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("card_id", sa.Uuid(), sa.ForeignKey("cards.id"), nullable=False),
        _participant_fk(),
        sa.Column(
            "turn_id", sa.Uuid(), sa.ForeignKey("turns.id", ondelete="SET NULL"), nullable=True
        ),
        _created_at(),
    )
    op.create_index("ix_card_draws_game_id", "card_draws", ["game_id"])

    op.create_table(
        "pending_actions",
        _id(),
        _game_fk(),
        _participant_fk(),
        sa.Column("action_type", sa.String(32), nullable=False),
        sa.Column("payload_json", JsonType, nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=NOW),
    )
    op.create_index(
        "uq_pending_action_open",
        "pending_actions",
        ["game_id", "participant_id"],
        unique=True,
        postgresql_where=sa.text("status = 'pending'"),
        sqlite_where=sa.text("status = 'pending'"),
    )


def downgrade() -> None:
    op.drop_index("uq_pending_action_open", table_name="pending_actions")
    op.drop_table("pending_actions")
    op.drop_index("ix_card_draws_game_id", table_name="card_draws")
    op.drop_table("card_draws")
    op.drop_table("card_decks")
    op.drop_table("cards")
    op.drop_index("ix_transactions_game_id", table_name="transactions")
    op.drop_table("transactions")
    op.drop_index("ix_turns_game_participant", table_name="turns")
    op.drop_table("turns")
    op.drop_index("ix_ownerships_participant_id", table_name="ownerships")
    op.drop_index("ix_ownerships_game_id", table_name="ownerships")
    op.drop_table("ownerships")
    op.drop_table("tiles")
    op.drop_index("ix_game_participants_user_id", table_name="game_participants")
    op.drop_index("ix_game_participants_game_id", table_name="game_participants")
    op.drop_table("game_participants")
    op.drop_index("ix_games_status", table_name="games")
    op.drop_index("ix_games_game_code", table_name="games")
    op.drop_table("games")
    op.drop_table("users")
