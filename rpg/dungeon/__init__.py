"""Dungeon runs: session state, room rolls and the engine."""

from .engine import AdvanceResult, DungeonEngine, EncounterOutcome, RestResult
from .rules import TrapRoll, completion_rewards, resolve_trap, rest_amount, treasure_gold
from .state import DungeonSession, DungeonSummary

__all__ = [
    "AdvanceResult",
    "DungeonEngine",
    "DungeonSession",
    "DungeonSummary",
    "EncounterOutcome",
    "RestResult",
    "TrapRoll",
    "completion_rewards",
    "resolve_trap",
    "rest_amount",
    "treasure_gold",
]
