"""Read monsters, items and dungeons from YAML or JSON folders."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterator, Mapping, Tuple, TypeVar

import yaml

from .models import Dungeon, Item, Monster, SchemaError
from .registry import BaseRegistry, DungeonRegistry, ItemRegistry, MonsterRegistry

__all__ = ["BUNDLED_CONTENT_PATH", "ContentLibrary", "ContentLoadError"]

log = logging.getLogger(__name__)

BUNDLED_CONTENT_PATH = Path(__file__).with_name("data")

E = TypeVar("E", Monster, Item, Dungeon)
Factory = Callable[[str, Mapping[str, object]], E]


class ContentLoadError(RuntimeError):
    """Raised when a content folder cannot be turned into registries."""

    def __init__(self, message: str, *, path: Path | None = None) -> None:
        if path is not None:
            message = f"{message} (source: {path})"
        super().__init__(message)
        self.path = path


def _parse_json(text: str) -> object:
    return json.loads(text)


PARSERS: Dict[str, Callable[[str], object]] = {
    ".json": _parse_json,
    ".yaml": yaml.safe_load,
    ".yml": yaml.safe_load,
}


def read_document(file_path: Path) -> object:
    """Parse one content file, choosing the parser from its suffix."""

    parser = PARSERS.get(file_path.suffix.lower())
    if parser is None:
        raise ContentLoadError(f"Unsupported content file type '{file_path.suffix}'", path=file_path)
    try:
        return parser(file_path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ContentLoadError("Unable to read content file", path=file_path) from exc
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ContentLoadError("Failed to parse structured content", path=file_path) from exc


def iter_records(folder: Path) -> Iterator[Tuple[Path, str, Mapping[str, object]]]:
    """Yield ``(file, key, record)`` for every record under ``folder``.

    A file holds either one mapping or a list of mappings. Records without an
    ``id`` are keyed by the file name, plus their index for lists.
    """

    if not folder.is_dir():
        return
    for file_path in sorted(folder.iterdir()):
        if not file_path.is_file() or file_path.suffix.lower() not in PARSERS:
            continue
        document = read_document(file_path)
        if isinstance(document, Mapping):
            yield file_path, _record_key(document, file_path.stem), document
        elif isinstance(document, list):
            for index, record in enumerate(document):
                if not isinstance(record, Mapping):
                    raise ContentLoadError(
                        f"Entry {index} of {folder.name} content is not a mapping",
                        path=file_path,
                    )
                yield file_path, _record_key(record, f"{file_path.stem}-{index}"), record
        else:
            raise ContentLoadError(
                "Expected a mapping or a list of mappings",
                path=file_path,
            )


def _record_key(record: Mapping[str, object], fallback: str) -> str:
    value = record.get("id")
    if isinstance(value, str) and value.strip():
        return value.strip()
    return fallback


def _fill(registry: BaseRegistry[E], folder: Path, factory: Factory) -> BaseRegistry[E]:
    for file_path, key, record in iter_records(folder):
        try:
            registry.register(factory(key, record))
        except (SchemaError, ValueError) as exc:
            raise ContentLoadError(str(exc), path=file_path) from exc
    return registry


@dataclass(frozen=True)
class ContentLibrary:
    """The read-only monster, item and dungeon tables the engines consult."""

    base_path: Path
    monsters: MonsterRegistry
    items: ItemRegistry
    dungeons: DungeonRegistry

    @classmethod
    def load_from_path(cls, base_path: Path) -> "ContentLibrary":
        monsters = _fill(MonsterRegistry(), base_path / "monsters", Monster.from_mapping)
        items = _fill(ItemRegistry(), base_path / "items", Item.from_mapping)
        dungeons = _fill(DungeonRegistry(), base_path / "dungeons", Dungeon.from_mapping)
        for dungeon in dungeons:
            missing = [ref for ref in dungeon.encounters.monster_refs() if ref not in monsters]
            if missing:
                raise ContentLoadError(
                    f"Dungeon '{dungeon.id}' references unknown monster(s): {', '.join(missing)}",
                    path=base_path / "dungeons",
                )
        log.info(
            "Loaded %s monsters, %s items and %s dungeons from %s",
            len(monsters),
            len(items),
            len(dungeons),
            base_path,
        )
        return cls(base_path=base_path, monsters=monsters, items=items, dungeons=dungeons)  # type: ignore[arg-type]

    @classmethod
    def load_bundled(cls) -> "ContentLibrary":
        return cls.load_from_path(BUNDLED_CONTENT_PATH)
