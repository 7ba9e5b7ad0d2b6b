"""
Pending-action payloads as a tagged union.

A participant can owe at most one decision at a time: buy a tile, pay
rent to its owner, or settle a debt with the bank. The stored JSON is
validated into one of the models below before anything acts on it.
"""

from __future__ import annotations

import uuid
from enum import Enum
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from src.core.exceptions import MalformedPayloadError


class PendingActionType(str, Enum):
    BUY_PROPERTY = "buy_property"
    PAY_RENT = "pay_rent"
    PAY_BANK_DEBT = "pay_bank_debt"


class PendingStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class _Payload(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    def to_json(self) -> Dict[str, Any]:
        """Dump for storage; the discriminator stays in the row's action_type."""
        return self.model_dump(mode="json", exclude={"action_type"})


class BuyPropertyPayload(_Payload):
    action_type: Literal["buy_property"] = "buy_property"
    tile_id: uuid.UUID
    cost: int = Field(gt=0)


class PayRentPayload(_Payload):
    action_type: Literal["pay_rent"] = "pay_rent"
    tile_id: uuid.UUID
    owner_participant_id: uuid.UUID
    amount: int = Field(gt=0)


class PayBankDebtPayload(_Payload):
    action_type: Literal["pay_bank_debt"] = "pay_bank_debt"
    amount: int = Field(gt=0)
    transaction_type: Literal["tax", "card"]
    description: str
    turn_id: Optional[uuid.UUID] = None


PendingPayload = Annotated[
    Union[BuyPropertyPayload, PayRentPayload, PayBankDebtPayload],
    Field(discriminator="action_type"),
]

_adapter: TypeAdapter = TypeAdapter(PendingPayload)


def parse_pending_payload(action_type: str, payload: Optional[Dict[str, Any]]) -> PendingPayload:
    """
    Validate a stored payload against its action type.

    Raises:
        MalformedPayloadError: if the payload is missing or does not fit the type
    """
    if not isinstance(payload, dict):
        raise MalformedPayloadError(f"{action_type} payload is not an object")
    try:
        return _adapter.validate_python({**payload, "action_type": action_type})
    except ValidationError as exc:
        raise MalformedPayloadError(f"Invalid {action_type} payload: {exc}") from exc
