"""Unit coverage for the combat formulas."""

from __future__ import annotations

import random
from dataclasses import replace

import pytest

from conftest import FixedRandom, SequenceRandom
from rpg.combat import (
    OpponentKind,
    Side,
    StatusEffect,
    flee_chance,
    mitigation,
    resolve_damage,
    roll_damage,
    roll_flee,
    turn_order,
)
from rpg.config import EngineSettings
from rpg.content import Item
from rpg.players import StatBlock

SWORD = Item(id="sword", name="Sword", type="weapon", stats={"atk": 10, "type": "physical"})
STAFF = Item(id="staff", name="Staff", type="weapon", stats={"atk": 8, "type": "magic"})
TAIL = Item(id="tail", name="Tail", type="material", stats={"atk": 99})


def test_damage_matches_formula_without_crit() -> None:
    attacker = StatBlock(strength=20)
    damage = resolve_damage(attacker, SWORD, 0, rng=FixedRandom(value=0.99))
    # 20 * 0.5 + 10 with no mitigation at DEF 0.
    assert damage == 20


def test_critical_hit_doubles_damage() -> None:
    roll = roll_damage(StatBlock(strength=20), SWORD, 0, rng=FixedRandom(value=0.0))
    assert roll.critical is True
    assert roll.amount == 40


def test_magic_weapon_scales_with_intelligence() -> None:
    attacker = StatBlock(strength=100, intelligence=30)
    assert resolve_damage(attacker, STAFF, 0, rng=FixedRandom(value=0.99)) == 23


def test_non_weapon_adds_no_attack() -> None:
    attacker = StatBlock(strength=20)
    assert resolve_damage(attacker, TAIL, 0, rng=FixedRandom(value=0.99)) == 10
    assert resolve_damage(attacker, None, 0, rng=FixedRandom(value=0.99)) == 10


def test_damage_is_monotonic_in_attack_and_defense() -> None:
    rng = FixedRandom(value=0.5)
    by_strength = [resolve_damage(StatBlock(strength=value), SWORD, 25, rng=rng) for value in range(0, 60)]
    assert by_strength == sorted(by_strength)

    by_defense = [resolve_damage(StatBlock(strength=30), SWORD, value, rng=rng) for value in range(0, 300, 5)]
    assert by_defense == sorted(by_defense, reverse=True)
    assert min(by_defense) >= 0


def test_mitigation_never_reaches_zero() -> None:
    assert mitigation(0) == 1
    assert mitigation(100) == 0.5
    assert 0 < mitigation(10_000) < 0.01
    assert mitigation(-50) == 1


def test_turn_order_with_seed_42() -> None:
    assert turn_order(10, 5, rng=random.Random(42), jitter=10) is Side.SUBJECT


def test_turn_order_rerolls_ties() -> None:
    rng = SequenceRandom([0.5, 0.5, 0.1, 0.9])
    assert turn_order(10, 10, rng=rng, jitter=10) is Side.OPPONENT


def test_flee_chance_modifiers() -> None:
    assert flee_chance(10, 100, 100, OpponentKind.MONSTER) == 70
    # The DEX bonus is capped at 30.
    assert flee_chance(40, 100, 100, OpponentKind.MONSTER) == 80
    assert flee_chance(10, 29, 100, OpponentKind.MONSTER) == 50
    assert flee_chance(10, 30, 100, OpponentKind.MONSTER) == 70
    assert flee_chance(10, 100, 100, OpponentKind.PLAYER) == 60


def test_flee_chance_is_clamped() -> None:
    harsh = replace(EngineSettings(), flee_base_chance=-100)
    assert flee_chance(0, 1, 100, OpponentKind.PLAYER, harsh) == 10
    generous = replace(EngineSettings(), flee_base_chance=500)
    assert flee_chance(0, 100, 100, OpponentKind.MONSTER, generous) == 100


def test_flee_roll_boundary() -> None:
    assert roll_flee(70, rng=FixedRandom(offset=69)).success is True
    assert roll_flee(70, rng=FixedRandom(offset=70)).success is False


def test_flee_rate_converges() -> None:
    rng = random.Random(1234)
    trials = 20_000
    successes = sum(roll_flee(70, rng=rng).success for _ in range(trials))
    assert successes / trials == pytest.approx(0.70, abs=0.02)


def test_status_effect_ticks_down() -> None:
    effect = StatusEffect(magnitude=5, turns=2)
    ticked = effect.tick()
    assert ticked == StatusEffect(magnitude=5, turns=1)
    assert ticked.tick() is None
