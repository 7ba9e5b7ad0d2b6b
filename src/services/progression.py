"""
Game progression: bankruptcy, win detection and the post-mutation hook.

Every action that can move money or change bankruptcy status finishes
through `settle_after_mutation`, which runs win detection once, builds
the snapshot once and decides who is told that their turn started.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from src.core.events import RealtimeEvent, game_ended, private_options, state_update, turn_changed
from src.data.models import Game, GameParticipant
from src.data.repository import GameRepository
from src.services.game_state import build_public_game_state
from src.services.options import start_turn_options
from src.services.rotation import current_participant

logger = logging.getLogger(__name__)


@dataclass
class GameEnd:
    ended: bool
    winner_participant_id: Optional[uuid.UUID] = None


@dataclass
class Settlement:
    """What the post-mutation hook found and what should be broadcast."""

    ended: bool
    winner_participant_id: Optional[uuid.UUID]
    state: Dict[str, Any]
    next_participant: Optional[GameParticipant] = None
    followups: List[RealtimeEvent] = field(default_factory=list)

    def events(self, game_id: uuid.UUID, *private: RealtimeEvent) -> List[RealtimeEvent]:
        """State update first, then the caller's private events, then turn/end notices."""
        return [state_update(game_id, self.state), *private, *self.followups]


async def bankrupt_to_bank(
    repo: GameRepository,
    participant: GameParticipant,
    *,
    reason: str,
    turn_id: Optional[uuid.UUID] = None,
) -> int:
    """
    Liquidate a participant to the bank.

    Records whatever cash they held as a bankruptcy transaction, zeroes
    cash, jail state and cards, releases every owned tile and marks them
    bankrupt.

    Returns:
        The amount surrendered to the bank
    """
    surrendered = max(0, participant.cash)

    participant.cash = 0
    participant.in_jail = False
    participant.jail_turns = 0
    participant.goojf_cards = 0
    participant.is_bankrupt = True

    released = await repo.delete_ownerships_for(participant.game_id, participant.id)
    await repo.record_transaction(
        game_id=participant.game_id,
        from_participant_id=participant.id,
        to_participant_id=None,
        amount=surrendered,
        transaction_type="bankruptcy",
        description=reason,
        turn_id=turn_id,
    )
    await repo.flush()
    logger.info(
        f"Participant {participant.id} bankrupt in game {participant.game_id}: "
        f"{reason} (surrendered ${surrendered}, released {released} tiles)"
    )
    return surrendered


async def maybe_end_game(repo: GameRepository, game: Game) -> GameEnd:
    """End a playing game the moment exactly one participant is left standing."""
    if game.status != "playing":
        return GameEnd(ended=False)

    alive = await repo.list_active_participants(game.id)
    if len(alive) != 1:
        return GameEnd(ended=False)

    await repo.mark_ended(game)
    logger.info(f"Game {game.game_code} won by participant {alive[0].id}")
    return GameEnd(ended=True, winner_participant_id=alive[0].id)


def final_standings(participants: Sequence[GameParticipant]) -> List[Dict[str, Any]]:
    """Rank survivors before bankrupt participants, then by cash descending."""
    ranked = sorted(participants, key=lambda p: (p.is_bankrupt, -p.cash))
    return [
        {"player_id": str(p.id), "rank": rank, "balance": p.cash}
        for rank, p in enumerate(ranked, start=1)
    ]


def game_ended_payload(
    game: Game, winner_id: Optional[uuid.UUID], participants: Sequence[GameParticipant]
) -> Dict[str, Any]:
    return {
        "game_id": str(game.id),
        "winner_id": str(winner_id) if winner_id else None,
        "final_standings": final_standings(participants),
    }


async def settle_after_mutation(
    repo: GameRepository,
    game: Game,
    *,
    notify_next_turn: bool = False,
    previous_player_id: Optional[uuid.UUID] = None,
) -> Settlement:
    """
    Post-mutation hook shared by every cash or bankruptcy affecting action.

    Args:
        repo: Repository bound to the mutation's session
        game: The locked game row
        notify_next_turn: True when the acting participant lost the turn
            (they went bankrupt while holding it); the new current
            participant then gets a turn-changed notice and start options
        previous_player_id: Participant that held the turn before the mutation

    Returns:
        Settlement with the snapshot and any follow-up events
    """
    await repo.flush()
    end = await maybe_end_game(repo, game)
    state = await build_public_game_state(repo, game.id)
    settlement = Settlement(
        ended=end.ended,
        winner_participant_id=end.winner_participant_id,
        state=state,
    )

    if end.ended:
        participants = await repo.list_participants(game.id)
        settlement.followups.append(
            game_ended(game.id, game_ended_payload(game, end.winner_participant_id, participants))
        )
        return settlement

    if notify_next_turn:
        participants = await repo.list_participants(game.id)
        nxt = current_participant(game, participants)
        if nxt is not None:
            settlement.next_participant = nxt
            settlement.followups.extend(
                [
                    turn_changed(game.id, nxt.id, previous_player_id, state["turn_number"]),
                    private_options(nxt.user_id, start_turn_options(game.id, nxt.id)),
                ]
            )
    return settlement
