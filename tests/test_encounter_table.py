import random

import pytest

from conftest import FixedRandom
from rpg.content import EncounterEntry, EncounterKind, EncounterTable, SchemaError


def _table(*weights: float) -> EncounterTable:
    kinds = (EncounterKind.MONSTER, EncounterKind.TRAP, EncounterKind.TREASURE, EncounterKind.BOSS)
    return EncounterTable(
        [
            EncounterEntry(kind=kind, ref="rat" if kind.is_combat else "", chance=weight)
            for kind, weight in zip(kinds, weights)
        ]
    )


def test_select_walks_cumulative_chances() -> None:
    table = _table(0.4, 0.25, 0.25, 0.1)
    assert table.select(0.0).kind is EncounterKind.MONSTER
    assert table.select(0.39).kind is EncounterKind.MONSTER
    assert table.select(0.4).kind is EncounterKind.TRAP
    assert table.select(0.66).kind is EncounterKind.TREASURE
    assert table.select(0.95).kind is EncounterKind.BOSS


def test_chances_are_normalised() -> None:
    table = _table(2, 1, 1)
    assert table.select(0.49).kind is EncounterKind.MONSTER
    assert table.select(0.5).kind is EncounterKind.TRAP
    assert table.select(0.8).kind is EncounterKind.TREASURE


def test_uncovered_roll_falls_back_to_first_entry() -> None:
    table = _table(0.1, 0.2, 0.3)
    assert table.select(1.0).kind is EncounterKind.MONSTER
    assert table.draw(FixedRandom(value=1.5)).kind is EncounterKind.MONSTER


def test_draw_frequencies_follow_weights() -> None:
    table = _table(0.6, 0.4)
    rng = random.Random(7)
    draws = [table.draw(rng).kind for _ in range(10_000)]
    assert draws.count(EncounterKind.MONSTER) / len(draws) == pytest.approx(0.6, abs=0.03)


def test_invalid_tables_are_rejected() -> None:
    with pytest.raises(SchemaError):
        EncounterTable([])
    with pytest.raises(SchemaError):
        _table(0, 0)
    with pytest.raises(SchemaError):
        EncounterEntry.from_mapping({"type": "monster", "chance": 0.5})
    with pytest.raises(SchemaError):
        EncounterEntry.from_mapping({"type": "portal", "chance": 0.5})
