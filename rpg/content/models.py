"""Schema models for read-only game content."""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping, MutableMapping, Sequence

from rpg.players import StatBlock

__all__ = [
    "Dungeon",
    "EncounterEntry",
    "EncounterKind",
    "EncounterTable",
    "Item",
    "Monster",
    "SchemaError",
]

ITEM_TYPES = ("weapon", "armor", "consumable", "artifact", "material")
RARITIES = ("common", "uncommon", "rare", "epic", "legendary", "mythic")


class SchemaError(ValueError):
    """Raised when content data fails validation."""


def _coerce_mapping(name: str, value: object) -> MutableMapping[str, object]:
    if isinstance(value, MutableMapping):
        return value
    if isinstance(value, Mapping):
        return dict(value)
    raise SchemaError(f"{name} must be a mapping")


def _coerce_sequence(name: str, value: object) -> Sequence[object]:
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
        return value
    raise SchemaError(f"{name} must be a sequence")


def _int(name: str, value: object) -> int:
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise SchemaError(f"{name} must be an integer") from exc


def _float(name: str, value: object) -> float:
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise SchemaError(f"{name} must be a number") from exc


@dataclass(frozen=True)
class Monster:
    """Static data describing a monster that can be fought."""

    id: str
    name: str
    level: int
    hp: int
    stats: StatBlock
    xp_reward: int = 0
    gold_reward: int = 0
    comment: str = ""

    @classmethod
    def from_mapping(cls, key: str, data: Mapping[str, object]) -> "Monster":
        mapping = _coerce_mapping("monster", data)
        hp = _int("hp", mapping.get("hp", 1))
        if hp <= 0:
            raise SchemaError(f"Monster '{key}' must have positive hp")
        stats = StatBlock(
            strength=_int("str", mapping.get("str", 0)),
            intelligence=_int("int", mapping.get("int", 0)),
            dexterity=_int("dex", mapping.get("dex", 0)),
            defense=_int("def", mapping.get("def", 0)),
        )
        return cls(
            id=str(key).lower(),
            name=str(mapping.get("name") or key),
            level=_int("level", mapping.get("level", 1)),
            hp=hp,
            stats=stats,
            xp_reward=_int("xp_reward", mapping.get("xp_reward", mapping.get("xpReward", 0))),
            gold_reward=_int("gold_reward", mapping.get("gold_reward", mapping.get("goldReward", 0))),
            comment=str(mapping.get("comment", "")),
        )


@dataclass(frozen=True)
class Item:
    """Static data describing equipment and loot."""

    id: str
    name: str
    type: str
    rarity: str = "common"
    description: str = ""
    stats: Mapping[str, object] = field(default_factory=dict)

    @property
    def is_weapon(self) -> bool:
        return self.type == "weapon"

    @property
    def is_magic(self) -> bool:
        return str(self.stats.get("type", "")).lower() == "magic"

    @property
    def attack(self) -> int:
        """Base attack contributed to damage rolls; only weapons have one."""

        if not self.is_weapon:
            return 0
        try:
            return int(self.stats.get("atk", 0))  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return 0

    @classmethod
    def from_mapping(cls, key: str, data: Mapping[str, object]) -> "Item":
        mapping = _coerce_mapping("item", data)
        item_type = str(mapping.get("type", "material")).lower()
        if item_type not in ITEM_TYPES:
            raise SchemaError(f"Item '{key}' has unknown type '{item_type}'")
        rarity = str(mapping.get("rarity", "common")).lower()
        if rarity not in RARITIES:
            raise SchemaError(f"Item '{key}' has unknown rarity '{rarity}'")
        stats_raw = mapping.get("stats") or {}
        stats = dict(_coerce_mapping("stats", stats_raw))
        return cls(
            id=str(key).lower(),
            name=str(mapping.get("name") or key),
            type=item_type,
            rarity=rarity,
            description=str(mapping.get("description", "")),
            stats=stats,
        )


class EncounterKind(str, Enum):
    MONSTER = "monster"
    TRAP = "trap"
    TREASURE = "treasure"
    BOSS = "boss"

    @property
    def is_combat(self) -> bool:
        return self in (EncounterKind.MONSTER, EncounterKind.BOSS)


@dataclass(frozen=True)
class EncounterEntry:
    kind: EncounterKind
    ref: str
    chance: float

    @classmethod
    def from_mapping(cls, data: Mapping[str, object]) -> "EncounterEntry":
        mapping = _coerce_mapping("encounter", data)
        raw_kind = str(mapping.get("type") or mapping.get("kind") or "").lower()
        try:
            kind = EncounterKind(raw_kind)
        except ValueError as exc:
            raise SchemaError(f"Unknown encounter type '{raw_kind}'") from exc
        ref = str(mapping.get("id") or mapping.get("ref") or "").lower()
        if kind.is_combat and not ref:
            raise SchemaError(f"{kind.value} encounters must reference a monster id")
        chance = _float("encounter chance", mapping.get("chance", 0))
        if chance < 0:
            raise SchemaError("Encounter chance must not be negative")
        return cls(kind=kind, ref=ref, chance=chance)


class EncounterTable:
    """Weighted table of room outcomes.

    Chances need not sum to 1.0; they are normalised by their total. A draw
    walks the entries in declaration order and returns the first whose
    cumulative share exceeds the roll. Should floating point rounding leave
    the roll uncovered, the first entry is returned.
    """

    def __init__(self, entries: Sequence[EncounterEntry]) -> None:
        cleaned = tuple(entries)
        if not cleaned:
            raise SchemaError("Encounter table must contain at least one entry")
        total = sum(entry.chance for entry in cleaned)
        if total <= 0:
            raise SchemaError("Encounter table must contain at least one positive chance")
        self._entries = cleaned
        self._total = total

    def draw(self, rng: random.Random) -> EncounterEntry:
        return self.select(rng.random())

    def select(self, roll: float) -> EncounterEntry:
        cumulative = 0.0
        for entry in self._entries:
            cumulative += entry.chance / self._total
            if roll < cumulative:
                return entry
        return self._entries[0]

    def entries(self) -> Sequence[EncounterEntry]:
        return self._entries

    def monster_refs(self) -> tuple[str, ...]:
        return tuple(entry.ref for entry in self._entries if entry.kind.is_combat)

    def __len__(self) -> int:
        return len(self._entries)


@dataclass(frozen=True)
class Dungeon:
    """Static data describing a multi-floor dungeon."""

    id: str
    name: str
    description: str
    min_level: int
    max_level: int
    floors: int
    encounters: EncounterTable
    comment: str = ""

    @classmethod
    def from_mapping(cls, key: str, data: Mapping[str, object]) -> "Dungeon":
        mapping = _coerce_mapping("dungeon", data)
        min_level = _int("min_level", mapping.get("min_level", mapping.get("minLevel", 1)))
        max_level = _int("max_level", mapping.get("max_level", mapping.get("maxLevel", min_level)))
        if max_level < min_level:
            raise SchemaError(f"Dungeon '{key}' has max_level below min_level")
        floors = _int("floors", mapping.get("floors", 1))
        if floors < 1:
            raise SchemaError(f"Dungeon '{key}' must have at least one floor")
        raw_encounters = _coerce_sequence("encounters", mapping.get("encounters") or ())
        encounters = EncounterTable(
            [EncounterEntry.from_mapping(_coerce_mapping("encounter", entry)) for entry in raw_encounters]
        )
        return cls(
            id=str(key).lower(),
            name=str(mapping.get("name") or key),
            description=str(mapping.get("description", "")),
            min_level=min_level,
            max_level=max_level,
            floors=floors,
            encounters=encounters,
            comment=str(mapping.get("comment", "")),
        )
