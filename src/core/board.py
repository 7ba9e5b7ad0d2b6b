"""
Board reference data.

The 40 tiles of the San Francisco board, the colour-group upgrade table
and the fixed token palette. Tiles are immutable once seeded; the engine
looks them up by position.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

BOARD_SIZE = 40
GO_POSITION = 0
JAIL_POSITION = 9
GO_TO_JAIL_POSITION = 29

PASS_GO_SALARY = 200
JAIL_FEE = 50
MAX_HOUSES = 4

TOKEN_COLORS = ("red", "blue", "green", "yellow", "purple", "black")


class TileType(str, Enum):
    """Kinds of board tiles."""

    PROPERTY = "property"
    RAILROAD = "railroad"
    UTILITY = "utility"
    TAX = "tax"
    CHANCE = "chance"
    COMMUNITY_CHEST = "community_chest"
    GO = "go"
    JAIL = "jail"
    FREE_PARKING = "free_parking"
    GO_TO_JAIL = "go_to_jail"


PURCHASABLE_TYPES = frozenset({TileType.PROPERTY, TileType.RAILROAD, TileType.UTILITY})
CARD_TYPES = frozenset({TileType.CHANCE, TileType.COMMUNITY_CHEST})

# Cost of one house (or the hotel) per colour group
UPGRADE_COST_BY_GROUP: Dict[str, int] = {
    "brown": 50,
    "light-blue": 50,
    "pink": 100,
    "orange": 100,
    "red": 150,
    "yellow": 150,
    "green": 200,
    "dark-blue": 200,
}


@dataclass(frozen=True)
class TileDefinition:
    """One immutable board position."""

    position: int
    name: str
    tile_type: TileType
    property_group: Optional[str] = None
    purchase_price: Optional[int] = None
    rent_base: Optional[int] = None


def _property(position: int, name: str, group: str, price: int, rent: int) -> TileDefinition:
    return TileDefinition(position, name, TileType.PROPERTY, group, price, rent)


def _railroad(position: int, name: str) -> TileDefinition:
    return TileDefinition(position, name, TileType.RAILROAD, None, 200, 25)


def _utility(position: int, name: str) -> TileDefinition:
    return TileDefinition(position, name, TileType.UTILITY, None, 150, None)


def _special(position: int, name: str, tile_type: TileType) -> TileDefinition:
    return TileDefinition(position, name, tile_type)


BOARD_TILES: List[TileDefinition] = [
    # Bottom row (0-9)
    _special(0, "GO", TileType.GO),
    _property(1, "Market Street", "brown", 60, 2),
    _property(2, "Mission Street", "brown", 60, 4),
    _special(3, "Chance", TileType.CHANCE),
    _special(4, "Income Tax", TileType.TAX),
    _railroad(5, "Caltrain Station"),
    _property(6, "Union Square", "light-blue", 100, 6),
    _special(7, "Community Chest", TileType.COMMUNITY_CHEST),
    _property(8, "Chinatown", "light-blue", 100, 6),
    _special(9, "Jail / Just Visiting", TileType.JAIL),
    # Left side (10-19)
    _property(10, "Fisherman's Wharf", "light-blue", 120, 8),
    _property(11, "Golden Gate Park", "pink", 140, 10),
    _utility(12, "Electric Company"),
    _property(13, "Alcatraz Island", "pink", 140, 10),
    _property(14, "Pier 39", "pink", 160, 12),
    _railroad(15, "Cable Car Barn"),
    _property(16, "Coit Tower", "orange", 180, 14),
    _special(17, "Community Chest", TileType.COMMUNITY_CHEST),
    _property(18, "Lombard Street", "orange", 180, 14),
    _property(19, "Haight-Ashbury", "orange", 200, 16),
    # Top row (20-29)
    _special(20, "Free Parking", TileType.FREE_PARKING),
    _property(21, "Pacific Heights", "red", 220, 18),
    _special(22, "Chance", TileType.CHANCE),
    _property(23, "Castro District", "red", 220, 18),
    _property(24, "North Beach", "red", 240, 20),
    _railroad(25, "BART Station"),
    _property(26, "Marina District", "yellow", 260, 22),
    _property(27, "Presidio", "yellow", 260, 22),
    _utility(28, "Water Works"),
    _special(29, "Go To Jail", TileType.GO_TO_JAIL),
    # Right side (30-39)
    _property(30, "Golden Gate Bridge", "yellow", 280, 24),
    _property(31, "SoMa", "green", 300, 26),
    _special(32, "Community Chest", TileType.COMMUNITY_CHEST),
    _property(33, "Financial District", "green", 300, 26),
    _property(34, "Nob Hill", "green", 320, 28),
    _railroad(35, "Muni Metro"),
    _special(36, "Chance", TileType.CHANCE),
    _property(37, "Russian Hill", "dark-blue", 350, 35),
    _special(38, "Luxury Tax", TileType.TAX),
    _property(39, "Embarcadero", "dark-blue", 400, 50),
]


def tile_at(position: int) -> TileDefinition:
    """Return the reference tile at a board position."""
    return BOARD_TILES[position % BOARD_SIZE]
