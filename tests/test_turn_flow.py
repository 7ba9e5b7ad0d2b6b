"""
Tests for the roll command: movement, pass-GO, landing effects and preconditions.
"""

import uuid

from src.core.results import Failure
from src.services import TurnService
from src.services.game_state import build_public_game_state


async def test_pass_go_on_exact_landing(repo, dice, make_game, place, names):
    """
    Test a roll that wraps onto GO credits the salary once.
    From 38, a roll of (1, 1) lands on 0 with $200 collected.
    """
    game, (p1, _) = await make_game(2)
    await place(p1, 38)
    dice.push((1, 1))

    result = await TurnService(repo, dice).roll(game.id, p1.user_id)

    assert result.ok
    assert result.data["dice"] == [1, 1]
    assert result.data["is_double"] is True
    assert result.data["previous_position"] == 38
    assert result.data["new_position"] == 0
    assert result.data["pending_action"] is None
    assert p1.position == 0
    assert p1.cash == 1700

    salaries = await repo.list_transactions(game.id, "pass_go")
    assert len(salaries) == 1
    assert salaries[0].amount == 200
    assert salaries[0].to_participant_id == p1.id
    assert salaries[0].from_participant_id is None

    assert names(result.events) == ["game:state:update", "game:player:balance:update"]


async def test_pass_go_then_rent_due(repo, dice, make_game, place, own, names):
    """
    Test wrapping past GO onto another player's tile.
    From 35, a roll of (3, 4) collects $200 and owes rent of 4 on Mission Street.
    """
    game, (p1, p2) = await make_game(2)
    tile, _ = await own(game, p2, 2)
    await place(p1, 35)
    dice.push((3, 4))

    result = await TurnService(repo, dice).roll(game.id, p1.user_id)

    assert result.ok
    assert result.data["new_position"] == 2
    assert p1.cash == 1700
    assert p2.cash == 1500

    pending = result.data["pending_action"]
    assert pending["type"] == "pay_rent"
    assert pending["amount"] == 4
    assert pending["tile_id"] == str(tile.id)

    stored = await repo.get_open_pending(game.id, p1.id)
    assert stored is not None
    assert stored.payload_json["owner_participant_id"] == str(p2.id)

    assert "game:player:options" in names(result.events)
    options = result.events[-1].payload
    assert options["context"] == "pay_rent"
    assert options["options"][0]["action"] == "pay_rent"


async def test_landing_on_unowned_tile_offers_purchase(repo, dice, make_game, names):
    game, (p1, _) = await make_game(2)
    dice.push((2, 4))

    result = await TurnService(repo, dice).roll(game.id, p1.user_id)

    assert result.ok
    assert result.data["new_position"] == 6
    assert result.data["pending_action"]["type"] == "buy_property"
    assert result.data["pending_action"]["amount"] == 100
    assert p1.cash == 1500

    options = next(e for e in result.events if e.name.value == "game:player:options")
    assert options.room == f"user:{p1.user_id}"
    assert options.payload["context"] == "landed_on_unowned_property"
    assert [o["action"] for o in options.payload["options"]] == ["buy_property", "skip_purchase"]


async def test_own_tile_needs_nothing(repo, dice, make_game, own):
    game, (p1, _) = await make_game(2)
    await own(game, p1, 6)
    dice.push((2, 4))

    result = await TurnService(repo, dice).roll(game.id, p1.user_id)

    assert result.ok
    assert result.data["pending_action"] is None
    assert await repo.get_open_pending(game.id, p1.id) is None


async def test_income_tax_is_paid_immediately(repo, dice, make_game):
    game, (p1, _) = await make_game(2)
    dice.push((1, 3))

    result = await TurnService(repo, dice).roll(game.id, p1.user_id)

    assert result.ok
    assert result.data["new_position"] == 4
    assert p1.cash == 1300
    taxes = await repo.list_transactions(game.id, "tax")
    assert [(t.amount, t.description) for t in taxes] == [(200, "Income Tax")]


async def test_unaffordable_tax_becomes_bank_debt(repo, dice, make_game, place):
    """Test a tax the roller cannot cover opens a pay_bank_debt action instead of paying."""
    game, (p1, _) = await make_game(2)
    await place(p1, 0, cash=100)
    dice.push((1, 3))

    result = await TurnService(repo, dice).roll(game.id, p1.user_id)

    assert result.ok
    assert p1.cash == 100
    assert result.data["pending_action"]["type"] == "pay_bank_debt"
    assert result.data["pending_action"]["amount"] == 200

    stored = await repo.get_open_pending(game.id, p1.id)
    assert stored.payload_json["transaction_type"] == "tax"
    assert stored.payload_json["turn_id"] is not None
    assert await repo.list_transactions(game.id, "tax") == []


async def test_luxury_tax(repo, dice, make_game, place):
    game, (p1, _) = await make_game(2)
    await place(p1, 35)
    dice.push((1, 2))

    result = await TurnService(repo, dice).roll(game.id, p1.user_id)

    assert result.ok
    assert result.data["new_position"] == 38
    assert p1.cash == 1400


async def test_go_to_jail_tile(repo, dice, make_game, place):
    game, (p1, _) = await make_game(2)
    await place(p1, 25)
    dice.push((1, 3))

    result = await TurnService(repo, dice).roll(game.id, p1.user_id)

    assert result.ok
    assert result.data["new_position"] == 9
    assert p1.position == 9
    assert p1.in_jail is True
    assert p1.jail_turns == 0
    assert p1.cash == 1500


async def test_roll_is_recorded_as_a_turn(repo, dice, make_game, place):
    game, (p1, _) = await make_game(2)
    await place(p1, 38)
    dice.push((1, 1))

    await TurnService(repo, dice).roll(game.id, p1.user_id)

    turn = await repo.last_turn_for(game.id, p1.id)
    assert turn.turn_number == 1
    assert (turn.dice_roll_1, turn.dice_roll_2, turn.is_double) == (1, 1, True)
    assert (turn.previous_position, turn.new_position) == (38, 0)
    assert "Passed GO" in turn.action_taken

    state = await build_public_game_state(repo, game.id)
    assert state["turn_number"] == 1
    assert state["last_roll_participant_id"] == str(p1.id)
    assert state["last_roll_new_position"] == 0
    assert state["recent_moves"][0]["turn_id"] == str(turn.id)
    salary = next(t for t in state["recent_transactions"] if t["transaction_type"] == "pass_go")
    assert salary["turn_number"] == 1


async def test_recent_transactions_keep_entry_order(repo, dice, make_game, place):
    """Test entries written by one roll come back newest first even when timestamps tie."""
    game, (p1, _) = await make_game(2)
    await place(p1, 38)
    dice.push((2, 4))

    await TurnService(repo, dice).roll(game.id, p1.user_id)
    entries = await repo.list_transactions(game.id)
    for txn in entries:
        txn.created_at = entries[0].created_at
    await repo.flush()

    state = await build_public_game_state(repo, game.id)
    recent = state["recent_transactions"]
    assert [t["transaction_type"] for t in recent] == ["tax", "pass_go"]
    assert [t["entry_number"] for t in recent] == [2, 1]


async def test_doubles_do_not_grant_another_roll(repo, dice, make_game):
    game, (p1, _) = await make_game(2)
    dice.push((3, 3))

    result = await TurnService(repo, dice).roll(game.id, p1.user_id)
    assert result.ok
    # Position 6 is unowned, so the turn is still open on the purchase offer
    again = await TurnService(repo, dice).roll(game.id, p1.user_id)
    assert again.failure == Failure.HAS_PENDING


# ---- Preconditions ----


async def test_roll_unknown_game(repo, dice, make_users):
    (user,) = await make_users("nobody")
    result = await TurnService(repo, dice).roll(uuid.uuid4(), user.id)
    assert result.failure == Failure.NOT_FOUND


async def test_roll_before_start(repo, dice, make_game):
    game, (p1, _) = await make_game(2, start=False)
    result = await TurnService(repo, dice).roll(game.id, p1.user_id)
    assert result.failure == Failure.BAD_PHASE


async def test_roll_out_of_turn(repo, dice, make_game):
    game, (_, p2) = await make_game(2)
    result = await TurnService(repo, dice).roll(game.id, p2.user_id)
    assert not result.ok
    assert result.failure == Failure.NOT_YOUR_TURN
    assert await repo.last_turn_number(game.id) == 0


async def test_roll_with_both_jail_options(repo, dice, make_game):
    game, (p1, _) = await make_game(2)
    result = await TurnService(repo, dice).roll(
        game.id, p1.user_id, pay_to_leave_jail=True, use_goojf=True
    )
    assert result.failure == Failure.CONFLICTING_JAIL_OPTIONS


async def test_roll_with_open_pending_action(repo, dice, make_game):
    game, (p1, _) = await make_game(2)
    dice.push((2, 4))
    first = await TurnService(repo, dice).roll(game.id, p1.user_id)
    assert first.ok

    second = await TurnService(repo, dice).roll(game.id, p1.user_id)
    assert second.failure == Failure.HAS_PENDING
    assert await repo.last_turn_number(game.id) == 1
