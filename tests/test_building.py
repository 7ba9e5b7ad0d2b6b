"""
Tests for building houses and hotels, and selling tiles back to the bank.
"""

import uuid

from src.core.results import Failure
from src.services import SettlementService, TurnService


# ---- Upgrades ----


async def test_build_houses_then_hotel(repo, make_game, own):
    """Test four houses at $50 each, then a hotel that replaces them."""
    game, (p1, _) = await make_game(2)
    tile, ownership = await own(game, p1, 6)
    service = SettlementService(repo)

    for expected in range(1, 5):
        result = await service.upgrade_property(game.id, p1.user_id, tile.id)
        assert result.ok
        assert result.data["houses"] == expected

    hotel = await service.upgrade_property(game.id, p1.user_id, tile.id)
    assert hotel.ok
    assert (hotel.data["houses"], hotel.data["hotels"]) == (0, 1)
    assert (ownership.houses, ownership.hotels) == (0, 1)
    assert p1.cash == 1500 - 5 * 50

    capped = await service.upgrade_property(game.id, p1.user_id, tile.id)
    assert capped.failure == Failure.MAX_LEVEL

    descriptions = [t.description for t in await repo.list_transactions(game.id, "upgrade_property")]
    assert "Built house #1 on Union Square" in descriptions
    assert "Built a hotel on Union Square" in descriptions
    assert len(descriptions) == 5


async def test_upgrade_out_of_turn(repo, make_game, own):
    game, (_, p2) = await make_game(2)
    tile, _ = await own(game, p2, 6)

    result = await SettlementService(repo).upgrade_property(game.id, p2.user_id, tile.id)
    assert result.failure == Failure.NOT_YOUR_TURN


async def test_upgrade_with_open_pending_action(repo, dice, make_game, own):
    game, (p1, _) = await make_game(2)
    tile, _ = await own(game, p1, 1)
    dice.push((2, 4))
    await TurnService(repo, dice).roll(game.id, p1.user_id)

    result = await SettlementService(repo).upgrade_property(game.id, p1.user_id, tile.id)
    assert result.failure == Failure.HAS_PENDING


async def test_upgrade_someone_elses_tile(repo, make_game, own):
    game, (p1, p2) = await make_game(2)
    tile, _ = await own(game, p2, 6)

    result = await SettlementService(repo).upgrade_property(game.id, p1.user_id, tile.id)
    assert result.failure == Failure.NOT_OWNER


async def test_railroads_and_utilities_cannot_be_upgraded(repo, make_game, own):
    game, (p1, _) = await make_game(2)
    railroad, _ = await own(game, p1, 5)
    utility, _ = await own(game, p1, 12)
    service = SettlementService(repo)

    assert (await service.upgrade_property(game.id, p1.user_id, railroad.id)).failure == (
        Failure.NOT_UPGRADABLE
    )
    assert (await service.upgrade_property(game.id, p1.user_id, utility.id)).failure == (
        Failure.NOT_UPGRADABLE
    )


async def test_upgrade_without_cash(repo, make_game, own, place):
    game, (p1, _) = await make_game(2)
    tile, _ = await own(game, p1, 39)
    await place(p1, 0, cash=150)

    result = await SettlementService(repo).upgrade_property(game.id, p1.user_id, tile.id)
    assert result.failure == Failure.INSUFFICIENT
    assert result.data == {"required": 200, "cash": 150}


async def test_upgrade_unknown_tile(repo, make_game):
    game, (p1, _) = await make_game(2)
    result = await SettlementService(repo).upgrade_property(game.id, p1.user_id, uuid.uuid4())
    assert result.failure == Failure.BAD_TILE


# ---- Sales ----


async def test_sell_with_houses(repo, make_game, own, names):
    """Test a light-blue tile with two houses sells for 50 + (50 * 2) / 2 = 100."""
    game, (p1, _) = await make_game(2)
    tile, _ = await own(game, p1, 6, houses=2)

    result = await SettlementService(repo).sell_property(game.id, p1.user_id, tile.id)

    assert result.ok
    assert result.data["sale_value"] == 100
    assert result.data["options"] is None
    assert p1.cash == 1600
    assert await repo.get_ownership(game.id, tile.id) is None

    sales = await repo.list_transactions(game.id, "sale")
    assert [(t.amount, t.description, t.to_participant_id) for t in sales] == [
        (100, "Sold Union Square", p1.id)
    ]
    assert names(result.events) == ["game:state:update", "game:player:balance:update"]


async def test_sell_out_of_turn(repo, make_game, own):
    """Test selling is allowed whoever's turn it is."""
    game, (_, p2) = await make_game(2)
    tile, _ = await own(game, p2, 1)

    result = await SettlementService(repo).sell_property(game.id, p2.user_id, tile.id)
    assert result.ok
    assert p2.cash == 1530


async def test_sell_refreshes_open_options(repo, dice, make_game, own, place, names):
    game, (p1, p2) = await make_game(2)
    rent_tile, _ = await own(game, p2, 2)
    tile, _ = await own(game, p1, 6)
    await place(p1, 0, cash=1)
    dice.push((1, 1))
    await TurnService(repo, dice).roll(game.id, p1.user_id)

    result = await SettlementService(repo).sell_property(game.id, p1.user_id, tile.id)

    assert result.ok
    assert names(result.events)[-1] == "game:player:options"
    options = result.data["options"]["options"]
    assert options[0]["action"] == "pay_rent"
    assert options[0]["property_id"] == str(rent_tile.id)
    # Cash now covers the rent, so bankruptcy is not offered
    assert len(options) == 1


async def test_sell_tile_not_owned(repo, make_game, own):
    game, (p1, p2) = await make_game(2)
    tile, _ = await own(game, p2, 1)
    free = await repo.get_tile_at(8)
    service = SettlementService(repo)

    assert (await service.sell_property(game.id, p1.user_id, tile.id)).failure == Failure.NOT_OWNER
    assert (await service.sell_property(game.id, p1.user_id, free.id)).failure == Failure.NOT_OWNER
    assert (
        await service.sell_property(game.id, p1.user_id, uuid.uuid4())
    ).failure == Failure.BAD_TILE


async def test_bankrupt_participant_cannot_sell(repo, make_game, own):
    game, (_, _, p3) = await make_game(3)
    tile, _ = await own(game, p3, 1)
    p3.is_bankrupt = True
    await repo.flush()

    result = await SettlementService(repo).sell_property(game.id, p3.user_id, tile.id)
    assert result.failure == Failure.BANKRUPT
