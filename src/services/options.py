"""
Resolution options sent privately to a participant.

Clients render these as the buttons a player may press next.
"""

from __future__ import annotations

import uuid
from typing import Any, Dict, List, Optional

from src.core.pending import (
    BuyPropertyPayload,
    PayBankDebtPayload,
    PayRentPayload,
    PendingPayload,
    parse_pending_payload,
)
from src.data.models import GameParticipant, PendingAction
from src.data.repository import GameRepository

START_TURN = "start_turn"
PENDING_ACTION = "pending_action"
LANDED_ON_UNOWNED = "landed_on_unowned_property"
PAY_RENT = "pay_rent"
PAY_BANK_DEBT = "pay_bank_debt"


def start_turn_options(game_id: uuid.UUID, participant_id: uuid.UUID) -> Dict[str, Any]:
    return {
        "game_id": str(game_id),
        "player_id": str(participant_id),
        "context": START_TURN,
        "options": [{"action": "roll_dice"}],
    }


def pending_summary(pending: PendingAction, payload: PendingPayload) -> Dict[str, Any]:
    """Compact description of a pending action for command responses."""
    summary: Dict[str, Any] = {"id": str(pending.id), "type": pending.action_type}
    if isinstance(payload, (BuyPropertyPayload, PayRentPayload)):
        summary["tile_id"] = str(payload.tile_id)
    if isinstance(payload, BuyPropertyPayload):
        summary["amount"] = payload.cost
    else:
        summary["amount"] = payload.amount
    return summary


async def build_options_payload(
    repo: GameRepository,
    participant: GameParticipant,
    pending: PendingAction,
    payload: Optional[PendingPayload] = None,
    context: str = PENDING_ACTION,
) -> Dict[str, Any]:
    """
    Options for resolving an open pending action.

    Bankruptcy is offered only when it would be accepted: the participant
    owns nothing left to sell (and, for rent, cannot cover it).

    Raises:
        MalformedPayloadError: if no payload is given and the stored one is invalid
    """
    if payload is None:
        payload = parse_pending_payload(pending.action_type, pending.payload_json)

    pending_id = str(pending.id)
    options: List[Dict[str, Any]] = []

    if isinstance(payload, BuyPropertyPayload):
        options = [
            {
                "action": "buy_property",
                "property_id": str(payload.tile_id),
                "cost": payload.cost,
                "pending_action_id": pending_id,
            },
            {"action": "skip_purchase", "pending_action_id": pending_id},
        ]
    elif isinstance(payload, PayRentPayload):
        options = [
            {
                "action": "pay_rent",
                "property_id": str(payload.tile_id),
                "amount": payload.amount,
                "pending_action_id": pending_id,
            }
        ]
        if participant.cash < payload.amount and await _owns_nothing(repo, participant):
            options.append({"action": "declare_bankruptcy", "pending_action_id": pending_id})
    elif isinstance(payload, PayBankDebtPayload):
        options = [
            {
                "action": "pay_bank_debt",
                "amount": payload.amount,
                "description": payload.description,
                "pending_action_id": pending_id,
            }
        ]
        if await _owns_nothing(repo, participant):
            options.append({"action": "declare_bankruptcy", "pending_action_id": pending_id})

    return {
        "game_id": str(participant.game_id),
        "player_id": str(participant.id),
        "context": context,
        "options": options,
    }


async def _owns_nothing(repo: GameRepository, participant: GameParticipant) -> bool:
    return await repo.count_owned(participant.game_id, participant.id) == 0
