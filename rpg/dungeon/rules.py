"""Dice rolls for traps, treasure, resting and clearing a dungeon."""

from __future__ import annotations

import math
import random
from dataclasses import dataclass

from rpg.config import EngineSettings
from rpg.content import Dungeon
from rpg.sync import Rewards

__all__ = ["TrapRoll", "completion_rewards", "resolve_trap", "rest_amount", "treasure_gold"]

DEFAULT_SETTINGS = EngineSettings()


@dataclass(frozen=True)
class TrapRoll:
    save: int
    dc: int
    damage: int

    @property
    def avoided(self) -> bool:
        return self.save >= self.dc


def resolve_trap(
    dex: int,
    *,
    rng: random.Random | None = None,
    settings: EngineSettings = DEFAULT_SETTINGS,
) -> TrapRoll:
    """Roll a DEX save against the trap DC; a save equal to the DC avoids it."""

    generator = rng or random
    save = dex + generator.randrange(settings.trap_save_die)
    if save >= settings.trap_dc:
        return TrapRoll(save=save, dc=settings.trap_dc, damage=0)
    low, high = settings.trap_damage_range
    return TrapRoll(save=save, dc=settings.trap_dc, damage=generator.randint(low, high))


def treasure_gold(
    level: int,
    *,
    rng: random.Random | None = None,
    settings: EngineSettings = DEFAULT_SETTINGS,
) -> int:
    generator = rng or random
    return generator.randrange(settings.treasure_gold_die) * max(1, level)


def rest_amount(max_hp: int, settings: EngineSettings = DEFAULT_SETTINGS) -> int:
    return math.floor(max_hp * settings.rest_fraction)


def completion_rewards(dungeon: Dungeon, settings: EngineSettings = DEFAULT_SETTINGS) -> Rewards:
    """Rewards for clearing the last floor, scaled by the dungeon's max level."""

    return Rewards(
        xp=settings.completion_xp_per_level * dungeon.max_level,
        gold=settings.completion_gold_per_level * dungeon.max_level,
    )
