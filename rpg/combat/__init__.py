"""Turn-based combat: formulas, session state and the engine."""

from .engine import AttackResult, CombatEndListener, CombatEngine, FleeResult
from .rules import (
    DamageRoll,
    FleeRoll,
    flee_chance,
    mitigation,
    primary_stat,
    resolve_damage,
    roll_damage,
    roll_flee,
    roll_initiative,
    turn_order,
)
from .state import (
    AttackState,
    CombatOutcome,
    CombatSession,
    CombatSummary,
    OpponentKind,
    Side,
    StatusEffect,
)

__all__ = [
    "AttackResult",
    "AttackState",
    "CombatEndListener",
    "CombatEngine",
    "CombatOutcome",
    "CombatSession",
    "CombatSummary",
    "DamageRoll",
    "FleeResult",
    "FleeRoll",
    "OpponentKind",
    "Side",
    "StatusEffect",
    "flee_chance",
    "mitigation",
    "primary_stat",
    "resolve_damage",
    "roll_damage",
    "roll_flee",
    "roll_initiative",
    "turn_order",
]
