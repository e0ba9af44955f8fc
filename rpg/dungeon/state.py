"""In-memory dungeon run state."""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from typing import Dict, Mapping, Optional

__all__ = ["DungeonSession", "DungeonSummary"]


@dataclass(frozen=True)
class DungeonSummary:
    player_id: int
    dungeon_id: str
    dungeon_name: str
    floor: int
    floors: int
    hp: int
    max_hp: int
    completed_rooms: int
    buffs: Mapping[str, int] = field(default_factory=dict)

    @property
    def on_last_floor(self) -> bool:
        return self.floor >= self.floors


@dataclass
class DungeonSession:
    """Progress of a single player's dungeon run.

    ``floor`` is 1-indexed and never exceeds ``floors``. ``hp`` is the run's
    own copy of the player's health; it is written back at every checkpoint.
    """

    player_id: int
    dungeon_id: str
    dungeon_name: str
    floor: int
    floors: int
    hp: int
    max_hp: int
    completed_rooms: int = 0
    buffs: Dict[str, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.floor = max(1, min(int(self.floor), int(self.floors)))
        self.hp = self.clamp_hp(self.hp)

    def clamp_hp(self, value: int) -> int:
        return max(0, min(int(value), int(self.max_hp)))

    @property
    def on_last_floor(self) -> bool:
        return self.floor >= self.floors

    def copy(self) -> "DungeonSession":
        return replace(self, buffs=dict(self.buffs))

    def adopt(self, other: "DungeonSession") -> None:
        for item in fields(self):
            setattr(self, item.name, getattr(other, item.name))
        self.buffs = dict(other.buffs)

    def summary(self) -> DungeonSummary:
        return DungeonSummary(
            player_id=self.player_id,
            dungeon_id=self.dungeon_id,
            dungeon_name=self.dungeon_name,
            floor=self.floor,
            floors=self.floors,
            hp=self.hp,
            max_hp=self.max_hp,
            completed_rooms=self.completed_rooms,
            buffs=dict(self.buffs),
        )

    def to_snapshot(self) -> Dict[str, object]:
        return {
            "player_id": self.player_id,
            "dungeon_id": self.dungeon_id,
            "dungeon_name": self.dungeon_name,
            "floor": self.floor,
            "floors": self.floors,
            "hp": self.hp,
            "max_hp": self.max_hp,
            "completed_rooms": self.completed_rooms,
            "buffs": dict(self.buffs),
        }

    @classmethod
    def from_snapshot(cls, data: Mapping[str, object]) -> "DungeonSession":
        raw_buffs = data.get("buffs")
        buffs: Dict[str, int] = {}
        if isinstance(raw_buffs, Mapping):
            buffs = {str(name): int(value) for name, value in raw_buffs.items()}  # type: ignore[arg-type]
        return cls(
            player_id=int(data["player_id"]),  # type: ignore[arg-type]
            dungeon_id=str(data["dungeon_id"]),
            dungeon_name=str(data.get("dungeon_name", data["dungeon_id"])),
            floor=int(data.get("floor", 1)),  # type: ignore[arg-type]
            floors=int(data.get("floors", 1)),  # type: ignore[arg-type]
            hp=int(data["hp"]),  # type: ignore[arg-type]
            max_hp=int(data["max_hp"]),  # type: ignore[arg-type]
            completed_rooms=int(data.get("completed_rooms", 0)),  # type: ignore[arg-type]
            buffs=buffs,
        )

    @staticmethod
    def snapshot_hp(data: Mapping[str, object]) -> Optional[int]:
        """Return the checkpointed HP from a snapshot, or ``None`` if it is unreadable."""

        try:
            return DungeonSession.from_snapshot(data).hp
        except (KeyError, TypeError, ValueError):
            return None
