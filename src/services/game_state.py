"""
Public state projector.

Builds the snapshot broadcast to a game's room after every mutation:
board with owners, players in join order, whose turn it is, the last
roll and recent ledger history.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from src.core.exceptions import GameNotFoundError, NotParticipantError
from src.core.pending import parse_pending_payload
from src.data.repository import GameRepository
from src.services.options import pending_summary
from src.services.rotation import current_participant

RECENT_MOVES_LIMIT = 50
RECENT_TRANSACTIONS_LIMIT = 100


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _str(value: Optional[uuid.UUID]) -> Optional[str]:
    return str(value) if value else None


async def build_public_game_state(repo: GameRepository, game_id: uuid.UUID) -> Dict[str, Any]:
    """
    Snapshot of a game as every participant may see it.

    Raises:
        GameNotFoundError: if the game does not exist
    """
    game = await repo.get_game(game_id)
    if game is None:
        raise GameNotFoundError(game_id)

    tiles = await repo.list_tiles()
    ownerships = {o.tile_id: o for o in await repo.list_ownerships(game_id)}
    participants = await repo.list_participants(game_id)
    names = await repo.display_names([p.user_id for p in participants])
    turns = await repo.list_recent_turns(game_id, RECENT_MOVES_LIMIT)
    transactions = await repo.list_recent_transactions(game_id, RECENT_TRANSACTIONS_LIMIT)

    turn_numbers = {t.id: t.turn_number for t in turns}
    missing = {t.turn_id for t in transactions if t.turn_id and t.turn_id not in turn_numbers}
    turn_numbers.update(await repo.turn_numbers(list(missing)))

    current = current_participant(game, participants) if game.status == "playing" else None
    last = turns[0] if turns else None

    board = []
    for tile in tiles:
        own = ownerships.get(tile.id)
        board.append(
            {
                "id": str(tile.id),
                "position": tile.position,
                "name": tile.name,
                "tile_type": tile.tile_type,
                "property_group": tile.property_group,
                "purchase_price": tile.purchase_price,
                "rent_base": tile.rent_base,
                "owner_participant_id": _str(own.participant_id) if own else None,
                "houses": own.houses if own else 0,
                "hotels": own.hotels if own else 0,
            }
        )

    return {
        "game_id": str(game.id),
        "game_code": game.game_code,
        "name": game.name,
        "created_by": str(game.created_by),
        "phase": game.status,
        "max_players": game.max_players,
        "board": board,
        "players": [
            {
                "id": str(p.id),
                "user_id": str(p.user_id),
                "display_name": names.get(p.user_id, ""),
                "token_color": p.token_color,
                "position": p.position,
                "cash": p.cash,
                "in_jail": p.in_jail,
                "jail_turns": p.jail_turns,
                "goojf_cards": p.goojf_cards,
                "is_bankrupt": p.is_bankrupt,
            }
            for p in participants
        ],
        "current_player_id": _str(current.id) if current else None,
        "turn_number": last.turn_number if last else 0,
        "last_roll_participant_id": _str(last.participant_id) if last else None,
        "last_roll_turn_number": last.turn_number if last else None,
        "last_roll_dice_1": last.dice_roll_1 if last else None,
        "last_roll_dice_2": last.dice_roll_2 if last else None,
        "last_roll_is_double": last.is_double if last else None,
        "last_roll_previous_position": last.previous_position if last else None,
        "last_roll_new_position": last.new_position if last else None,
        "last_roll_action_taken": last.action_taken if last else None,
        "recent_moves": [
            {
                "turn_id": str(t.id),
                "participant_id": str(t.participant_id),
                "turn_number": t.turn_number,
                "created_at": _iso(t.created_at),
                "dice_roll_1": t.dice_roll_1,
                "dice_roll_2": t.dice_roll_2,
                "is_double": t.is_double,
                "previous_position": t.previous_position,
                "new_position": t.new_position,
                "action_taken": t.action_taken,
            }
            for t in turns
        ],
        "recent_transactions": [
            {
                "id": str(t.id),
                "entry_number": t.entry_number,
                "created_at": _iso(t.created_at),
                "turn_id": _str(t.turn_id),
                "turn_number": turn_numbers.get(t.turn_id) if t.turn_id else None,
                "from_participant_id": _str(t.from_participant_id),
                "to_participant_id": _str(t.to_participant_id),
                "amount": t.amount,
                "transaction_type": t.transaction_type,
                "description": t.description,
            }
            for t in transactions
        ],
    }


async def build_game_state_for_user(
    repo: GameRepository, game_id: uuid.UUID, user_id: uuid.UUID
) -> Dict[str, Any]:
    """
    Public snapshot plus the caller's own balance and open obligation.

    Raises:
        GameNotFoundError: if the game does not exist
        NotParticipantError: if the user has no seat in the game
    """
    state = await build_public_game_state(repo, game_id)
    participant = await repo.get_participant_for_user(game_id, user_id)
    if participant is None:
        raise NotParticipantError(f"User {user_id} is not in game {game_id}")

    pending = await repo.get_open_pending(game_id, participant.id)
    summary = None
    if pending is not None:
        summary = pending_summary(pending, parse_pending_payload(pending.action_type, pending.payload_json))

    state["self"] = {
        "participant_id": str(participant.id),
        "balance": participant.cash,
        "pending_action": summary,
    }
    return state
