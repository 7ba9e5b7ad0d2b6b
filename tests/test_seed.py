"""
Tests for reference data seeding.
"""

import pytest
from sqlalchemy import delete, func, select

from src.core.exceptions import ReferenceDataError
from src.data import Card, Tile, ensure_reference_data_seeded


async def _count(session, model) -> int:
    return (await session.execute(select(func.count()).select_from(model))).scalar()


async def test_seed_creates_board_and_decks(session):
    assert await _count(session, Tile) == 40
    assert await _count(session, Card) == 28


async def test_seed_is_idempotent(session):
    """Test running the seeder again adds nothing."""
    await ensure_reference_data_seeded(session)
    await ensure_reference_data_seeded(session)
    assert await _count(session, Tile) == 40
    assert await _count(session, Card) == 28


async def test_seed_fills_in_missing_cards(session):
    await session.execute(delete(Card).where(Card.deck_type == "chance", Card.card_order > 10))
    await session.flush()
    assert await _count(session, Card) == 24

    await ensure_reference_data_seeded(session)
    assert await _count(session, Card) == 28


async def test_partial_board_is_reported(session):
    """Test a board with gaps is treated as corruption, not patched."""
    await session.execute(delete(Tile).where(Tile.position == 17))
    await session.flush()

    with pytest.raises(ReferenceDataError):
        await ensure_reference_data_seeded(session)


async def test_seeded_tiles_match_reference(repo):
    tile = await repo.get_tile_at(39)
    assert tile.name == "Embarcadero"
    assert (tile.tile_type, tile.property_group, tile.purchase_price, tile.rent_base) == (
        "property",
        "dark-blue",
        400,
        50,
    )
    utility = await repo.get_tile_at(12)
    assert utility.rent_base is None
