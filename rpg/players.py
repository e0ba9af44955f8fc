"""Persistent player records and combat stat blocks."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, Mapping

__all__ = ["Player", "Stat", "StatBlock"]


class Stat(str, Enum):
    """Combat attributes shared by players and monsters."""

    STR = "str"
    INT = "int"
    DEX = "dex"
    DEF = "def"

    @classmethod
    def parse(cls, value: "str | Stat") -> "Stat":
        if isinstance(value, Stat):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            raise ValueError(f"Unknown stat '{value}'") from exc


@dataclass(frozen=True)
class StatBlock:
    """The four combat stats used for damage, initiative, saves and mitigation."""

    strength: int = 0
    intelligence: int = 0
    dexterity: int = 0
    defense: int = 0

    def get(self, stat: Stat) -> int:
        if stat is Stat.STR:
            return self.strength
        if stat is Stat.INT:
            return self.intelligence
        if stat is Stat.DEX:
            return self.dexterity
        if stat is Stat.DEF:
            return self.defense
        raise ValueError(f"Unhandled stat {stat!r}")

    def with_modifiers(self, modifiers: Mapping[Stat, int]) -> "StatBlock":
        """Return a copy with ``modifiers`` added, never dropping a stat below zero."""

        if not modifiers:
            return self
        values = {stat: self.get(stat) for stat in Stat}
        for stat, delta in modifiers.items():
            values[stat] = max(0, values[stat] + int(delta))
        return StatBlock(
            strength=values[Stat.STR],
            intelligence=values[Stat.INT],
            dexterity=values[Stat.DEX],
            defense=values[Stat.DEF],
        )

    def as_lines(self) -> Iterable[str]:
        return (f"{stat.name}: {self.get(stat)}" for stat in Stat)

    def to_dict(self) -> Dict[str, int]:
        return {stat.value: self.get(stat) for stat in Stat}

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "StatBlock":
        values = {Stat.parse(key): int(value) for key, value in data.items()}  # type: ignore[arg-type]
        return cls(
            strength=values.get(Stat.STR, 0),
            intelligence=values.get(Stat.INT, 0),
            dexterity=values.get(Stat.DEX, 0),
            defense=values.get(Stat.DEF, 0),
        )


@dataclass
class Player:
    """Persistent representation of a player's progress."""

    user_id: int
    username: str
    level: int = 1
    xp: int = 0
    gold: int = 0
    hp: int = 100
    max_hp: int = 100
    mana: int = 50
    max_mana: int = 50
    stats: StatBlock = field(default_factory=lambda: StatBlock(10, 10, 10, 10))
    in_combat: bool = False
    in_dungeon: bool = False
    combat_state: Dict[str, object] | None = None
    dungeon_state: Dict[str, object] | None = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "user_id": self.user_id,
            "username": self.username,
            "level": self.level,
            "xp": self.xp,
            "gold": self.gold,
            "hp": self.hp,
            "max_hp": self.max_hp,
            "mana": self.mana,
            "max_mana": self.max_mana,
            "stats": self.stats.to_dict(),
            "in_combat": self.in_combat,
            "in_dungeon": self.in_dungeon,
            "combat_state": dict(self.combat_state) if self.combat_state else None,
            "dungeon_state": dict(self.dungeon_state) if self.dungeon_state else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "Player":
        stats_raw = data.get("stats") or {}
        if not isinstance(stats_raw, Mapping):
            raise ValueError("stats must be a mapping")
        combat_state = data.get("combat_state")
        dungeon_state = data.get("dungeon_state")
        max_hp = int(data.get("max_hp", 100))  # type: ignore[arg-type]
        max_mana = int(data.get("max_mana", 50))  # type: ignore[arg-type]
        return cls(
            user_id=int(data["user_id"]),  # type: ignore[arg-type]
            username=str(data.get("username", "Adventurer")),
            level=int(data.get("level", 1)),  # type: ignore[arg-type]
            xp=int(data.get("xp", 0)),  # type: ignore[arg-type]
            gold=int(data.get("gold", 0)),  # type: ignore[arg-type]
            hp=int(data.get("hp", max_hp)),  # type: ignore[arg-type]
            max_hp=max_hp,
            mana=int(data.get("mana", max_mana)),  # type: ignore[arg-type]
            max_mana=max_mana,
            stats=StatBlock.from_dict(stats_raw),
            in_combat=bool(data.get("in_combat", False)),
            in_dungeon=bool(data.get("in_dungeon", False)),
            combat_state=dict(combat_state) if isinstance(combat_state, Mapping) else None,
            dungeon_state=dict(dungeon_state) if isinstance(dungeon_state, Mapping) else None,
        )
