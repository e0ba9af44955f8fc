"""Combat formulas for initiative, damage and fleeing."""

from __future__ import annotations

import math
import random
from dataclasses import dataclass

from rpg.config import EngineSettings
from rpg.content import Item
from rpg.players import Stat, StatBlock

from .state import OpponentKind, Side

__all__ = [
    "DamageRoll",
    "FleeRoll",
    "flee_chance",
    "mitigation",
    "primary_stat",
    "resolve_damage",
    "roll_damage",
    "roll_flee",
    "roll_initiative",
    "turn_order",
]

DEFAULT_SETTINGS = EngineSettings()


def roll_initiative(dex: int, *, rng: random.Random | None = None, jitter: float = 10.0) -> float:
    """Return ``dex`` plus a uniform jitter in ``[0, jitter)``."""

    generator = rng or random
    return dex + generator.uniform(0, jitter)


def turn_order(
    subject_dex: int,
    opponent_dex: int,
    *,
    rng: random.Random | None = None,
    jitter: float = 10.0,
) -> Side:
    """Decide which side acts first. Ties are re-rolled."""

    generator = rng or random
    while True:
        subject = roll_initiative(subject_dex, rng=generator, jitter=jitter)
        opponent = roll_initiative(opponent_dex, rng=generator, jitter=jitter)
        if subject != opponent:
            return Side.SUBJECT if subject > opponent else Side.OPPONENT


@dataclass(frozen=True)
class DamageRoll:
    amount: int
    critical: bool
    base: float
    mitigation: float


def primary_stat(weapon: Item | None) -> Stat:
    """Magic weapons scale with INT, everything else with STR."""

    if weapon is not None and weapon.is_magic:
        return Stat.INT
    return Stat.STR


def mitigation(defense: int) -> float:
    """Fraction of damage that gets through ``defense``; approaches but never reaches 0."""

    return 100 / (100 + max(0, defense))


def roll_damage(
    attacker: StatBlock,
    weapon: Item | None,
    defender_def: int,
    *,
    rng: random.Random | None = None,
    settings: EngineSettings = DEFAULT_SETTINGS,
) -> DamageRoll:
    generator = rng or random
    weapon_attack = weapon.attack if weapon is not None else 0
    base = attacker.get(primary_stat(weapon)) * settings.damage_coefficient + weapon_attack
    factor = mitigation(defender_def)
    critical = generator.random() < settings.crit_chance
    multiplier = settings.crit_multiplier if critical else 1
    amount = max(0, math.floor(base * factor * multiplier))
    return DamageRoll(amount=amount, critical=critical, base=base, mitigation=factor)


def resolve_damage(
    attacker: StatBlock,
    weapon: Item | None,
    defender_def: int,
    *,
    rng: random.Random | None = None,
    settings: EngineSettings = DEFAULT_SETTINGS,
) -> int:
    """Return the integer damage one attack deals."""

    return roll_damage(attacker, weapon, defender_def, rng=rng, settings=settings).amount


def flee_chance(
    dex: int,
    hp: int,
    max_hp: int,
    opponent_kind: OpponentKind,
    settings: EngineSettings = DEFAULT_SETTINGS,
) -> int:
    """Percentage chance of escaping, clamped to ``[flee_min_chance, 100]``."""

    dex_bonus = min(dex * settings.flee_dex_bonus_per_point, settings.flee_dex_bonus_cap)
    wounded = max_hp > 0 and hp / max_hp < settings.flee_low_hp_threshold
    low_hp = settings.flee_low_hp_penalty if wounded else 0
    versus = settings.flee_pvp_penalty if opponent_kind is OpponentKind.PLAYER else 0
    total = settings.flee_base_chance + dex_bonus + low_hp + versus
    return max(settings.flee_min_chance, min(100, total))


@dataclass(frozen=True)
class FleeRoll:
    roll: int
    chance: int

    @property
    def success(self) -> bool:
        return self.roll <= self.chance


def roll_flee(chance: int, *, rng: random.Random | None = None) -> FleeRoll:
    """Roll a d100; the escape succeeds when the roll is at most ``chance``."""

    generator = rng or random
    return FleeRoll(roll=generator.randint(1, 100), chance=chance)
