"""
Tests for jail resolution on roll.
"""

from src.services import TurnService


async def test_get_out_of_jail_free_card(repo, dice, make_game, place):
    game, (p1, _) = await make_game(2)
    await place(p1, 9, in_jail=True, goojf_cards=1)
    dice.push((2, 3))

    result = await TurnService(repo, dice).roll(game.id, p1.user_id, use_goojf=True)

    assert result.ok
    assert p1.in_jail is False
    assert p1.goojf_cards == 0
    assert p1.position == 14
    assert p1.cash == 1500
    assert "Used a Get Out of Jail Free card." in result.data["messages"]


async def test_pay_to_leave_jail(repo, dice, make_game, place):
    """Test paying the $50 fee releases before moving and is recorded in the ledger."""
    game, (p1, _) = await make_game(2)
    await place(p1, 9, in_jail=True, jail_turns=1)
    dice.push((1, 2))

    result = await TurnService(repo, dice).roll(game.id, p1.user_id, pay_to_leave_jail=True)

    assert result.ok
    assert p1.in_jail is False
    assert p1.jail_turns == 0
    assert p1.position == 12
    assert p1.cash == 1450

    fees = await repo.list_transactions(game.id, "jail_fee")
    assert len(fees) == 1
    assert fees[0].amount == 50
    assert fees[0].from_participant_id == p1.id
    assert fees[0].to_participant_id is None


async def test_doubles_release_from_jail(repo, dice, make_game, place):
    game, (p1, _) = await make_game(2)
    await place(p1, 9, in_jail=True, jail_turns=2)
    dice.push((2, 2))

    result = await TurnService(repo, dice).roll(game.id, p1.user_id)

    assert result.ok
    assert p1.in_jail is False
    assert p1.position == 13
    assert p1.cash == 1500


async def test_failed_attempt_stays_in_jail(repo, dice, make_game, place):
    game, (p1, _) = await make_game(2)
    await place(p1, 9, in_jail=True)
    dice.push((1, 2), (3, 5))
    service = TurnService(repo, dice)

    first = await service.roll(game.id, p1.user_id)
    assert first.ok
    assert first.data["new_position"] == 9
    assert p1.in_jail is True
    assert p1.jail_turns == 1
    turn = await repo.last_turn_for(game.id, p1.id)
    assert turn.action_taken == "In jail (1/3)"

    second = await service.roll(game.id, p1.user_id)
    assert second.ok
    assert p1.jail_turns == 2
    assert p1.position == 9


async def test_unusable_jail_options_fall_through(repo, dice, make_game, place):
    """Test a card request without a card, or a fee request without cash, counts as a normal attempt."""
    game, (p1, _) = await make_game(2)
    await place(p1, 9, in_jail=True, cash=30)
    dice.push((1, 2), (4, 5))
    service = TurnService(repo, dice)

    first = await service.roll(game.id, p1.user_id, pay_to_leave_jail=True)
    assert first.ok
    assert p1.in_jail is True
    assert p1.jail_turns == 1
    assert p1.cash == 30

    second = await service.roll(game.id, p1.user_id, use_goojf=True)
    assert second.ok
    assert p1.in_jail is True
    assert p1.jail_turns == 2


async def test_third_failure_pays_fee_and_moves(repo, dice, make_game, place):
    game, (p1, _) = await make_game(2)
    await place(p1, 9, in_jail=True, jail_turns=2)
    dice.push((1, 2))

    result = await TurnService(repo, dice).roll(game.id, p1.user_id)

    assert result.ok
    assert p1.in_jail is False
    assert p1.position == 12
    assert p1.cash == 1450
    assert len(await repo.list_transactions(game.id, "jail_fee")) == 1


async def test_third_failure_without_cash_bankrupts_and_passes_turn(
    repo, dice, make_game, place, own, names
):
    """
    Test the forced fee after a third failed attempt.
    With three players, the jailed player goes bankrupt, loses their
    tiles and the next player is told it is their turn.
    """
    game, (p1, p2, p3) = await make_game(3)
    await own(game, p1, 1)
    await place(p1, 9, in_jail=True, jail_turns=2, cash=20, goojf_cards=0)
    dice.push((1, 2))

    result = await TurnService(repo, dice).roll(game.id, p1.user_id)

    assert result.ok
    assert result.data["ended"] is False
    assert result.data["next_player_id"] == str(p2.id)
    assert p1.is_bankrupt is True
    assert p1.cash == 0
    assert p1.in_jail is False
    assert p1.position == 9
    assert await repo.count_owned(game.id, p1.id) == 0
    assert game.status == "playing"

    bankruptcies = await repo.list_transactions(game.id, "bankruptcy")
    assert [(t.amount, t.from_participant_id) for t in bankruptcies] == [(20, p1.id)]

    assert names(result.events) == [
        "game:state:update",
        "game:player:balance:update",
        "game:turn:changed",
        "game:player:options",
    ]
    changed = result.events[2].payload
    assert changed["current_player_id"] == str(p2.id)
    assert changed["previous_player_id"] == str(p1.id)
    assert result.events[3].room == f"user:{p2.user_id}"
    assert result.events[3].payload["context"] == "start_turn"


async def test_third_failure_without_cash_ends_two_player_game(
    repo, dice, make_game, place, names
):
    game, (p1, p2) = await make_game(2)
    await place(p1, 9, in_jail=True, jail_turns=2, cash=10)
    dice.push((5, 6))

    result = await TurnService(repo, dice).roll(game.id, p1.user_id)

    assert result.ok
    assert result.data["ended"] is True
    assert result.data["winner_participant_id"] == str(p2.id)
    assert game.status == "ended"
    assert game.ended_at is not None

    assert names(result.events)[-1] == "game:ended"
    payload = result.events[-1].payload
    assert payload["winner_id"] == str(p2.id)
    assert [s["player_id"] for s in payload["final_standings"]] == [str(p2.id), str(p1.id)]
