"""Tunable numbers used by the combat and dungeon engines."""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Mapping, MutableMapping

import yaml

__all__ = ["ENV_PREFIX", "EngineSettings", "SettingsError", "load_settings"]

ENV_PREFIX = "RPG_"


class SettingsError(ValueError):
    """Raised when engine settings cannot be parsed."""


@dataclass(frozen=True)
class EngineSettings:
    """Game constants. Every value can be overridden from YAML or the environment."""

    # Combat gating
    monster_level_window: int = 5
    pvp_level_cap: int = 10

    # Damage
    damage_coefficient: float = 0.5
    crit_chance: float = 0.10
    crit_multiplier: int = 2
    initiative_jitter: float = 10.0

    # Fleeing
    flee_base_chance: int = 50
    flee_dex_bonus_per_point: int = 2
    flee_dex_bonus_cap: int = 30
    flee_low_hp_threshold: float = 0.3
    flee_low_hp_penalty: int = -20
    flee_pvp_penalty: int = -10
    flee_min_chance: int = 10
    flee_damage_range: tuple[int, int] = (5, 19)

    # Dungeons
    dungeon_entry_hp_fraction: float = 0.5
    trap_dc: int = 15
    trap_save_die: int = 20
    trap_damage_range: tuple[int, int] = (10, 29)
    treasure_gold_die: int = 100
    rest_fraction: float = 0.25
    completion_xp_per_level: int = 100
    completion_gold_per_level: int = 50

    # Persistence
    checkpoint_retries: int = 1

    @classmethod
    def from_mapping(cls, data: Mapping[str, object]) -> "EngineSettings":
        known = {field.name: field for field in fields(cls)}
        defaults = cls()
        values: dict[str, object] = {}
        for key, raw in data.items():
            name = str(key).strip().lower()
            if name not in known:
                raise SettingsError(f"Unknown engine setting '{key}'")
            values[name] = _coerce(name, raw, getattr(defaults, name))
        return replace(defaults, **values)

    def with_environment(self, environ: Mapping[str, str] | None = None) -> "EngineSettings":
        """Return a copy with ``RPG_<NAME>`` environment overrides applied."""

        source = os.environ if environ is None else environ
        overrides: MutableMapping[str, object] = {}
        for field in fields(self):
            raw = source.get(f"{ENV_PREFIX}{field.name.upper()}")
            if raw is None or not raw.strip():
                continue
            overrides[field.name] = _coerce(field.name, raw, getattr(self, field.name))
        if not overrides:
            return self
        return replace(self, **overrides)


def _coerce(name: str, raw: object, default: object) -> object:
    try:
        if isinstance(default, tuple):
            if isinstance(raw, str):
                parts = [part for part in raw.replace(",", " ").split() if part]
            elif isinstance(raw, (list, tuple)):
                parts = list(raw)
            else:
                raise TypeError(type(raw).__name__)
            if len(parts) != 2:
                raise ValueError("expected two values")
            low, high = (int(part) for part in parts)
            if low > high:
                raise ValueError("lower bound exceeds upper bound")
            return (low, high)
        if isinstance(default, bool):
            return str(raw).strip().lower() in {"1", "true", "yes", "on"}
        if isinstance(default, int):
            return int(raw)  # type: ignore[arg-type]
        if isinstance(default, float):
            return float(raw)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise SettingsError(f"Invalid value for setting '{name}': {raw!r}") from exc
    return raw


def load_settings(
    path: Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> EngineSettings:
    """Load settings from an optional YAML file, then apply environment overrides."""

    settings = EngineSettings()
    if path is not None and path.exists():
        try:
            raw = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as exc:
            raise SettingsError(f"Unable to read engine settings from {path}") from exc
        if raw is not None:
            if not isinstance(raw, Mapping):
                raise SettingsError(f"Engine settings in {path} must be a mapping")
            settings = EngineSettings.from_mapping(raw)
    return settings.with_environment(environ)
