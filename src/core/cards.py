"""
Chance and Community Chest card decks.

Each deck is a fixed, ordered sequence. Games never shuffle; they walk
the sequence with a cyclic cursor stored per game.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class DeckType(str, Enum):
    """The two card decks."""

    CHANCE = "chance"
    COMMUNITY_CHEST = "community_chest"


class CardAction(str, Enum):
    """Types of card effects."""

    MOVE = "move"
    COLLECT = "collect"
    PAY = "pay"
    GO_TO_JAIL = "go_to_jail"
    GET_OUT_OF_JAIL_FREE = "get_out_of_jail_free"


@dataclass(frozen=True)
class CardDefinition:
    """Represents one card in a deck."""

    deck_type: DeckType
    card_order: int
    message: str
    action_type: CardAction
    action_value: Optional[Dict[str, Any]] = field(default=None, hash=False)


def _collect(deck: DeckType, order: int, message: str, amount: int) -> CardDefinition:
    return CardDefinition(deck, order, message, CardAction.COLLECT, {"amount": amount})


def _pay(deck: DeckType, order: int, message: str, amount: int) -> CardDefinition:
    return CardDefinition(deck, order, message, CardAction.PAY, {"amount": amount})


def _move(
    deck: DeckType, order: int, message: str, position: int, collect_pass_go: bool = False
) -> CardDefinition:
    return CardDefinition(
        deck,
        order,
        message,
        CardAction.MOVE,
        {"position": position, "collect_pass_go": collect_pass_go},
    )


def _jail(deck: DeckType, order: int, message: str) -> CardDefinition:
    return CardDefinition(deck, order, message, CardAction.GO_TO_JAIL)


def _goojf(deck: DeckType, order: int, message: str) -> CardDefinition:
    return CardDefinition(deck, order, message, CardAction.GET_OUT_OF_JAIL_FREE)


_CH = DeckType.CHANCE
_CC = DeckType.COMMUNITY_CHEST

CHANCE_CARDS: List[CardDefinition] = [
    _move(_CH, 1, "Advance to GO. Collect $200.", 0, collect_pass_go=True),
    _collect(_CH, 2, "Bank pays you a dividend of $50.", 50),
    _jail(_CH, 3, "Go directly to Jail. Do not pass GO, do not collect $200."),
    _pay(_CH, 4, "Speeding fine on the Bay Bridge. Pay $15.", 15),
    _move(_CH, 5, "Take a break at Free Parking.", 20),
    _goojf(_CH, 6, "Get Out of Jail Free. Keep this card until needed."),
    _move(_CH, 7, "Caught jaywalking. Go to the Go To Jail corner.", 29),
    _move(_CH, 8, "Visit a friend at the Jail.", 9),
    _collect(_CH, 9, "Your startup was acquired. Collect $100.", 100),
    _collect(_CH, 10, "You won a hackathon. Collect $25.", 25),
    _pay(_CH, 11, "Parking ticket in SoMa. Pay $25.", 25),
    _pay(_CH, 12, "Rent went up again. Pay $100.", 100),
    _move(_CH, 13, "Take a ride down Lombard Street.", 18),
    _move(_CH, 14, "Stroll along the Embarcadero.", 39),
]

COMMUNITY_CHEST_CARDS: List[CardDefinition] = [
    _pay(_CC, 1, "Doctor's fees. Pay $50.", 50),
    _collect(_CC, 2, "From sale of stock you get $50.", 50),
    _collect(_CC, 3, "Income tax refund. Collect $20.", 20),
    _jail(_CC, 4, "Go directly to Jail. Do not pass GO, do not collect $200."),
    _collect(_CC, 5, "Holiday fund matures. Collect $100.", 100),
    _goojf(_CC, 6, "Get Out of Jail Free. Keep this card until needed."),
    _collect(_CC, 7, "You have won second prize in a beauty contest. Collect $10.", 10),
    _collect(_CC, 8, "Bank error in your favor. Collect $200.", 200),
    _pay(_CC, 9, "Pay your library fine of $10.", 10),
    _pay(_CC, 10, "Hospital fees. Pay $100.", 100),
    _move(_CC, 11, "Advance to GO. Collect $200.", 0, collect_pass_go=True),
    _move(_CC, 12, "Take a day off at Free Parking.", 20),
    _move(_CC, 13, "Visit a friend at the Jail.", 9),
    _goojf(_CC, 14, "Get Out of Jail Free. Keep this card until needed."),
]

DECKS: Dict[DeckType, List[CardDefinition]] = {
    DeckType.CHANCE: CHANCE_CARDS,
    DeckType.COMMUNITY_CHEST: COMMUNITY_CHEST_CARDS,
}


def deck_label(deck_type: DeckType) -> str:
    return "Chance" if deck_type == DeckType.CHANCE else "Community Chest"
