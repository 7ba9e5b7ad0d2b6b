"""
Tests for declaring bankruptcy and win detection.
"""

import uuid

from src.core.results import Failure
from src.services import SettlementService, TurnService


async def _tax_debt(repo, dice, game, participant, place, cash):
    """Leave a participant owing Income Tax they cannot pay."""
    await place(participant, 0, cash=cash)
    dice.push((1, 3))
    rolled = await TurnService(repo, dice).roll(game.id, participant.user_id)
    assert rolled.data["pending_action"]["type"] == "pay_bank_debt"
    return uuid.UUID(rolled.data["pending_action"]["id"])


async def test_must_sell_before_declaring(repo, dice, make_game, place, own):
    """
    Test bankruptcy is refused while the debtor still owns a tile.
    Selling it first makes the declaration go through.
    """
    game, (p1, p2) = await make_game(2)
    tile, _ = await own(game, p1, 1)
    pending_id = await _tax_debt(repo, dice, game, p1, place, cash=10)
    service = SettlementService(repo)

    refused = await service.declare_bankruptcy(game.id, p1.user_id, pending_id)
    assert refused.failure == Failure.MUST_SELL_PROPERTIES
    assert p1.is_bankrupt is False

    sold = await service.sell_property(game.id, p1.user_id, tile.id)
    assert sold.ok
    assert p1.cash == 40
    # Still short of $200, and now nothing left to sell
    actions = [o["action"] for o in sold.data["options"]["options"]]
    assert actions == ["pay_bank_debt", "declare_bankruptcy"]

    result = await service.declare_bankruptcy(game.id, p1.user_id, pending_id)
    assert result.ok
    assert result.data["surrendered"] == 40
    assert result.data["ended"] is True
    assert result.data["winner_participant_id"] == str(p2.id)


async def test_bankruptcy_zeroes_the_participant(repo, dice, make_game, place):
    game, (p1, _, _) = await make_game(3)
    pending_id = await _tax_debt(repo, dice, game, p1, place, cash=30)
    p1.goojf_cards = 2

    result = await SettlementService(repo).declare_bankruptcy(game.id, p1.user_id, pending_id)

    assert result.ok
    assert p1.is_bankrupt is True
    assert p1.cash == 0
    assert p1.goojf_cards == 0
    assert p1.in_jail is False
    assert p1.jail_turns == 0

    pending = await repo.lock_pending(pending_id)
    assert pending.status == "completed"

    turn = await repo.last_turn_for(game.id, p1.id)
    entries = await repo.list_transactions(game.id, "bankruptcy")
    assert [(t.amount, t.description, t.turn_id) for t in entries] == [
        (30, "Declared bankruptcy", turn.id)
    ]


async def test_bankruptcy_on_own_turn_passes_the_turn(repo, dice, make_game, place, names):
    game, (p1, p2, _) = await make_game(3)
    pending_id = await _tax_debt(repo, dice, game, p1, place, cash=30)

    result = await SettlementService(repo).declare_bankruptcy(game.id, p1.user_id, pending_id)

    assert result.ok
    assert result.data["ended"] is False
    assert result.data["next_player_id"] == str(p2.id)
    assert names(result.events) == [
        "game:state:update",
        "game:player:balance:update",
        "game:turn:changed",
        "game:player:options",
    ]
    assert result.events[0].payload["current_player_id"] == str(p2.id)


async def test_bankrupt_players_are_skipped(repo, dice, make_game, place):
    game, (p1, p2, p3) = await make_game(3)
    p2.is_bankrupt = True
    p2.cash = 0
    await repo.flush()

    result = await SettlementService(repo).end_turn(game.id, p1.user_id)

    assert result.ok
    assert result.data["next_player_id"] == str(p3.id)


async def test_rent_bankruptcy_frees_tiles(repo, dice, make_game, own, place):
    game, (p1, p2, p3) = await make_game(3)
    tile, _ = await own(game, p2, 2)
    await place(p1, 0, cash=2)
    dice.push((1, 1))
    rolled = await TurnService(repo, dice).roll(game.id, p1.user_id)
    pending_id = uuid.UUID(rolled.data["pending_action"]["id"])

    options = next(e for e in rolled.events if e.name.value == "game:player:options")
    assert "declare_bankruptcy" in [o["action"] for o in options.payload["options"]]

    result = await SettlementService(repo).declare_bankruptcy(game.id, p1.user_id, pending_id)

    assert result.ok
    assert p2.cash == 1500
    # The creditor gets nothing; the debtor's cash goes to the bank
    entries = await repo.list_transactions(game.id, "bankruptcy")
    assert entries[0].to_participant_id is None
    assert (await repo.get_ownership(game.id, tile.id)).participant_id == p2.id


async def test_bankruptcy_refused_for_buy_offer(repo, dice, make_game):
    game, (p1, _) = await make_game(2)
    dice.push((2, 4))
    rolled = await TurnService(repo, dice).roll(game.id, p1.user_id)
    pending_id = uuid.UUID(rolled.data["pending_action"]["id"])

    result = await SettlementService(repo).declare_bankruptcy(game.id, p1.user_id, pending_id)
    assert result.failure == Failure.WRONG_PENDING
    assert p1.is_bankrupt is False


async def test_ended_game_rejects_commands(repo, dice, make_game, place):
    game, (p1, p2) = await make_game(2)
    pending_id = await _tax_debt(repo, dice, game, p1, place, cash=10)
    service = SettlementService(repo)
    assert (await service.declare_bankruptcy(game.id, p1.user_id, pending_id)).data["ended"]

    assert (await service.end_turn(game.id, p2.user_id)).failure == Failure.BAD_PHASE
    assert (
        await TurnService(repo, dice).roll(game.id, p2.user_id)
    ).failure == Failure.BAD_PHASE
