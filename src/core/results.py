"""
Tagged results returned by every engine operation.

A failure never carries partial effects: the operation returns before
writing, and the dispatcher rolls the transaction back regardless.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from src.core.events import RealtimeEvent


class Failure(str, Enum):
    """Why an operation was refused."""

    NOT_FOUND = "not_found"
    CODE_NOT_FOUND = "code_not_found"
    BAD_PHASE = "bad_phase"
    BAD_STATE = "bad_state"
    BAD_PAYLOAD = "bad_payload"
    NOT_PARTICIPANT = "not_participant"
    NOT_YOUR_TURN = "not_your_turn"
    FORBIDDEN = "forbidden"
    HAS_PENDING = "has_pending"
    NO_PENDING = "no_pending"
    WRONG_PENDING = "wrong_pending"
    MISMATCH = "mismatch"
    CONFLICTING_JAIL_OPTIONS = "conflicting_jail_options"
    BAD_TILE = "bad_tile"
    ALREADY_OWNED = "already_owned"
    NOT_OWNER = "not_owner"
    NOT_SELLABLE = "not_sellable"
    NOT_UPGRADABLE = "not_upgradable"
    MAX_LEVEL = "max_level"
    INSUFFICIENT = "insufficient"
    MUST_SELL_PROPERTIES = "must_sell_properties"
    BANKRUPT = "bankrupt"
    ALREADY_JOINED = "already_joined"
    INVALID_COLOR = "invalid_color"
    INVALID_MAX_PLAYERS = "invalid_max_players"
    COLOR_TAKEN = "color_taken"
    NO_COLORS = "no_colors"
    FULL = "full"
    NOT_ENOUGH_PLAYERS = "not_enough_players"
    NAME_TAKEN = "name_taken"
    EMPTY_MESSAGE = "empty_message"
    MESSAGE_TOO_LONG = "message_too_long"


# Failures that mean the stored state is inconsistent rather than the request
INVARIANT_FAILURES = frozenset({Failure.BAD_STATE, Failure.BAD_PAYLOAD})


@dataclass
class ActionResult:
    """Outcome of one engine operation plus the realtime events it produced."""

    ok: bool
    failure: Optional[Failure] = None
    data: Dict[str, Any] = field(default_factory=dict)
    events: List[RealtimeEvent] = field(default_factory=list)

    @classmethod
    def success(
        cls,
        data: Optional[Dict[str, Any]] = None,
        events: Optional[List[RealtimeEvent]] = None,
    ) -> "ActionResult":
        return cls(ok=True, data=data or {}, events=events or [])

    @classmethod
    def fail(cls, failure: Failure, **data: Any) -> "ActionResult":
        return cls(ok=False, failure=failure, data=data)

    @property
    def is_invariant_violation(self) -> bool:
        return self.failure in INVARIANT_FAILURES
