"""Registries for game content."""

from __future__ import annotations

from typing import Dict, Generic, Iterable, Iterator, Sequence, TypeVar

from .models import Dungeon, Item, Monster

__all__ = [
    "DungeonRegistry",
    "ItemRegistry",
    "MonsterRegistry",
]

T = TypeVar("T", Monster, Item, Dungeon)


class BaseRegistry(Generic[T]):
    """Utility container for validated content entries.

    Entries are addressable by id or by display name, case-insensitively.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, T] = {}
        self._aliases: Dict[str, str] = {}

    @staticmethod
    def _normalise(value: str) -> str:
        return value.strip().lower()

    def register(self, entry: T, *, aliases: Iterable[str] = ()) -> None:
        identifier = self._normalise(entry.id)
        if identifier in self._entries:
            raise ValueError(f"Duplicate entry '{entry.id}'")
        self._entries[identifier] = entry
        self._aliases[identifier] = identifier
        for alias in (*aliases, entry.name):
            self._aliases.setdefault(self._normalise(alias), identifier)

    def get(self, name: str) -> T:
        if not name:
            raise KeyError("Name must be provided")
        identifier = self._normalise(name)
        target = self._aliases.get(identifier, identifier)
        try:
            return self._entries[target]
        except KeyError as exc:
            raise KeyError(f"Unknown entry '{name}'") from exc

    def find(self, query: str) -> T | None:
        """Return an exact match, else the first entry whose id or name contains ``query``."""

        try:
            return self.get(query)
        except KeyError:
            pass
        needle = self._normalise(query)
        if not needle:
            return None
        for entry in self._entries.values():
            if needle in entry.id or needle in entry.name.lower():
                return entry
        return None

    def __contains__(self, name: object) -> bool:
        if not isinstance(name, str) or not name:
            return False
        identifier = self._normalise(name)
        return self._aliases.get(identifier, identifier) in self._entries

    def values(self) -> Sequence[T]:
        return tuple(self._entries.values())

    def keys(self) -> Sequence[str]:
        return tuple(self._entries.keys())

    def __iter__(self) -> Iterator[T]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)


class MonsterRegistry(BaseRegistry[Monster]):
    """Registry responsible for storing monsters."""

    def in_level_band(self, level: int, window: int) -> Sequence[Monster]:
        """Return monsters whose level lies within ``level ± window``."""

        return tuple(
            monster
            for monster in self._entries.values()
            if abs(monster.level - level) <= window
        )


class ItemRegistry(BaseRegistry[Item]):
    """Registry responsible for storing items."""

    def weapons(self) -> Sequence[Item]:
        return tuple(item for item in self._entries.values() if item.is_weapon)


class DungeonRegistry(BaseRegistry[Dungeon]):
    """Registry responsible for storing dungeons."""

    def available_for(self, level: int) -> Sequence[Dungeon]:
        return tuple(
            dungeon for dungeon in self._entries.values() if dungeon.min_level <= level
        )
