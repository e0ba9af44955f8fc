"""Expected, recoverable failures reported by the combat and dungeon engines."""

from __future__ import annotations

__all__ = [
    "AlreadyActive",
    "AlreadyExploring",
    "AlreadyInCombat",
    "CorruptedState",
    "EngineError",
    "EntryRequirementError",
    "InsufficientHp",
    "LevelMismatch",
    "LevelTooLow",
    "NoActiveSession",
    "PersistenceError",
    "PlayerNotFound",
    "Unconscious",
    "UnknownContent",
]


class EngineError(RuntimeError):
    """Base class for every condition the command layer should report to users."""

    default_message = "Something went wrong."

    def __init__(self, message: str | None = None, *, player_id: int | None = None) -> None:
        self.message = message or self.default_message
        self.player_id = player_id
        super().__init__(self.message)


class AlreadyActive(EngineError):
    """Raised when a session already exists for the player id."""

    default_message = "You already have an active session."


class AlreadyInCombat(AlreadyActive):
    default_message = "You're already in combat! Finish your current battle first."


class AlreadyExploring(AlreadyActive):
    default_message = "You're already exploring a dungeon! Finish your current adventure first."


class NoActiveSession(EngineError):
    """Raised when an action targets a session that does not exist."""

    default_message = "No active session."


class EntryRequirementError(EngineError):
    """Raised when gating checks refuse to start a session."""


class LevelMismatch(EntryRequirementError):
    default_message = "Your opponent's level is outside the allowed range."


class LevelTooLow(EntryRequirementError):
    default_message = "Your level is too low to enter."


class InsufficientHp(EntryRequirementError):
    default_message = "You're too injured to enter a dungeon! Heal up first."


class Unconscious(EntryRequirementError):
    default_message = "You're unconscious! Rest at /camp first."


class CorruptedState(EngineError):
    """Raised when a persisted flag has no matching in-memory session."""

    default_message = "Session state was corrupted; you have been safely extracted."


class PersistenceError(EngineError):
    """Raised when a checkpoint could not be written after retrying."""

    default_message = "Your progress could not be saved. Please try again."


class PlayerNotFound(EngineError):
    default_message = "You need to start your RPG journey first!"


class UnknownContent(EngineError):
    default_message = "That doesn't exist."
