"""
Pure money and movement rules.

No persistence here; the services feed these helpers the rows they
locked and act on the numbers they return.
"""

from __future__ import annotations

import random
from typing import Optional, Protocol, Tuple

from src.core.board import BOARD_SIZE, UPGRADE_COST_BY_GROUP


class DiceSource(Protocol):
    """Anything with random.Random's randint."""

    def randint(self, a: int, b: int) -> int: ...


def roll_dice(rng: Optional[DiceSource] = None) -> Tuple[int, int]:
    """Roll two independent six-sided dice."""
    rng = rng or random.SystemRandom()
    return rng.randint(1, 6), rng.randint(1, 6)


def advance(position: int, steps: int) -> Tuple[int, bool]:
    """
    Move a token forward around the board.

    Returns:
        (new_position, passed_go) where passed_go is true iff the move
        wrapped past position 39.
    """
    total = position + steps
    return total % BOARD_SIZE, total >= BOARD_SIZE


def compute_rent(rent_base: Optional[int], purchase_price: Optional[int]) -> int:
    """Base rent, or a tenth of the price (at least 1) for tiles without one."""
    if rent_base is not None:
        return rent_base
    return max(1, (purchase_price or 0) // 10)


def tax_for_tile_name(name: str) -> int:
    lowered = name.lower()
    if "income" in lowered:
        return 200
    if "luxury" in lowered:
        return 100
    return 100


def upgrade_cost_for_group(group: Optional[str]) -> int:
    """Cost of one house or hotel; 0 means the group cannot be upgraded."""
    if not group:
        return 0
    return UPGRADE_COST_BY_GROUP.get(group, 0)


def sale_value(purchase_price: int, group: Optional[str], houses: int) -> int:
    """Half the price plus half of what was spent on houses."""
    return purchase_price // 2 + (upgrade_cost_for_group(group) * max(0, houses)) // 2
