"""Session-based combat and dungeon engine for the RPG bot."""

from .config import EngineSettings, load_settings
from .errors import EngineError
from .players import Player, Stat, StatBlock
from .repository import PlayerRepository
from .services import GameServices

__all__ = [
    "EngineError",
    "EngineSettings",
    "GameServices",
    "Player",
    "PlayerRepository",
    "Stat",
    "StatBlock",
    "load_settings",
]
