"""
Turn rotation.

The current participant is never stored. It is recomputed on every read
as active[turn_index mod len(active)], where active is the non-bankrupt
participants in join order, so a bankruptcy can never leave the pointer
dangling.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

from src.data.models import Game, GameParticipant


def active_participants(participants: Sequence[GameParticipant]) -> List[GameParticipant]:
    """Non-bankrupt participants, keeping the given (join) order."""
    return [p for p in participants if not p.is_bankrupt]


def current_participant(
    game: Game, participants: Sequence[GameParticipant]
) -> Optional[GameParticipant]:
    """
    Resolve whose turn it is.

    Args:
        game: Game row (its turn_index is read, never trusted as-is)
        participants: All participants of the game in join order

    Returns:
        The current participant, or None when nobody is active
    """
    active = active_participants(participants)
    if not active:
        return None
    return active[game.turn_index % len(active)]


def next_turn_index(game: Game, participants: Sequence[GameParticipant]) -> int:
    """Index of the participant after the current one among the active ones."""
    active = active_participants(participants)
    if not active:
        return 0
    return (game.turn_index % len(active) + 1) % len(active)
