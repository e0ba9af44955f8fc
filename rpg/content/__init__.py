"""Content schemas and registries for monsters, items and dungeons."""

from .loader import BUNDLED_CONTENT_PATH, ContentLibrary, ContentLoadError
from .models import Dungeon, EncounterEntry, EncounterKind, EncounterTable, Item, Monster, SchemaError
from .registry import DungeonRegistry, ItemRegistry, MonsterRegistry

__all__ = [
    "BUNDLED_CONTENT_PATH",
    "ContentLibrary",
    "ContentLoadError",
    "Dungeon",
    "DungeonRegistry",
    "EncounterEntry",
    "EncounterKind",
    "EncounterTable",
    "Item",
    "ItemRegistry",
    "Monster",
    "MonsterRegistry",
    "SchemaError",
]
