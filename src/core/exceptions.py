"""
Custom exception hierarchy for the turn and settlement engine.

Rule violations a client can correct are returned as tagged results
(see `src.core.results`). The exceptions below cover the rest: broken
reference data, exhausted resources and state that should not exist.
"""


class MonopolyError(Exception):
    """Base exception for all game-related errors."""


class GameNotFoundError(MonopolyError):
    """Game does not exist."""

    def __init__(self, game_id):
        super().__init__(f"Game not found: {game_id}")
        self.game_id = game_id


class NotParticipantError(MonopolyError):
    """User has no seat in the game."""


class ReferenceDataError(MonopolyError):
    """Board tiles or card decks are missing or inconsistent."""


class GameCodeExhaustedError(MonopolyError):
    """Could not generate a unique join code within the allowed attempts."""


class PendingActionConflictError(MonopolyError):
    """A participant already holds an open pending action."""


class MalformedPayloadError(MonopolyError):
    """A stored pending-action payload does not match its action type."""
