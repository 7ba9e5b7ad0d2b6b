"""
Reference data seeder.

Guarantees that all 40 board tiles and both card decks exist before a
game is created. Seeding is idempotent: missing rows are inserted,
existing rows are left alone. A board that is only partly present is
treated as corruption and reported instead of patched.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.board import BOARD_SIZE, BOARD_TILES
from src.core.cards import DECKS
from src.core.exceptions import ReferenceDataError
from src.data.models import Card, Tile

logger = logging.getLogger(__name__)


async def ensure_reference_data_seeded(session: AsyncSession) -> None:
    """
    Insert board tiles and cards if they are missing.

    Raises:
        ReferenceDataError: if tiles exist but some positions are missing
    """
    await _seed_tiles(session)
    await _seed_cards(session)


async def _seed_tiles(session: AsyncSession) -> None:
    result = await session.execute(select(Tile.position))
    positions = set(result.scalars().all())

    if not positions:
        session.add_all(
            Tile(
                position=tile.position,
                name=tile.name,
                tile_type=tile.tile_type.value,
                property_group=tile.property_group,
                purchase_price=tile.purchase_price,
                rent_base=tile.rent_base,
            )
            for tile in BOARD_TILES
        )
        await session.flush()
        logger.info(f"Seeded {len(BOARD_TILES)} board tiles")
        return

    missing = sorted(set(range(BOARD_SIZE)) - positions)
    if missing:
        raise ReferenceDataError(f"Board is missing tile positions: {missing}")


async def _seed_cards(session: AsyncSession) -> None:
    for deck_type, cards in DECKS.items():
        result = await session.execute(
            select(Card.card_order).where(Card.deck_type == deck_type.value)
        )
        existing = set(result.scalars().all())
        new_cards = [
            Card(
                deck_type=card.deck_type.value,
                card_order=card.card_order,
                message=card.message,
                action_type=card.action_type.value,
                action_value=card.action_value,
            )
            for card in cards
            if card.card_order not in existing
        ]
        if new_cards:
            session.add_all(new_cards)
            await session.flush()
            logger.info(f"Seeded {len(new_cards)} {deck_type.value} cards")
