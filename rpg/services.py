"""Wire the repository, session stores and engines together."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from pathlib import Path

from .combat import CombatEngine, CombatSession
from .config import EngineSettings
from .content import ContentLibrary
from .dungeon import DungeonEngine, DungeonSession
from .errors import AlreadyExploring, AlreadyInCombat
from .repository import PlayerRepository
from .sessions import PlayerLocks, SessionStore
from .sync import PlayerStateSync

__all__ = ["GameServices", "PLAYER_STORE_NAME"]

log = logging.getLogger(__name__)

PLAYER_STORE_NAME = "players.json"


@dataclass
class GameServices:
    settings: EngineSettings
    content: ContentLibrary
    repository: PlayerRepository
    locks: PlayerLocks
    combat_sessions: SessionStore[CombatSession]
    dungeon_sessions: SessionStore[DungeonSession]
    state_sync: PlayerStateSync
    combat: CombatEngine
    dungeons: DungeonEngine

    @classmethod
    def build(
        cls,
        data_path: Path,
        *,
        settings: EngineSettings | None = None,
        content: ContentLibrary | None = None,
        rng: random.Random | None = None,
    ) -> "GameServices":
        settings = settings or EngineSettings()
        content = content or ContentLibrary.load_bundled()
        rng = rng or random.Random()
        repository = PlayerRepository(data_path / PLAYER_STORE_NAME)
        locks = PlayerLocks()
        combat_sessions: SessionStore[CombatSession] = SessionStore(AlreadyInCombat)
        dungeon_sessions: SessionStore[DungeonSession] = SessionStore(AlreadyExploring)
        state_sync = PlayerStateSync(
            repository,
            combat_sessions,
            dungeon_sessions,
            retries=settings.checkpoint_retries,
        )
        combat = CombatEngine(
            repository,
            content,
            combat_sessions,
            locks,
            state_sync,
            settings=settings,
            rng=rng,
        )
        dungeons = DungeonEngine(
            repository,
            content,
            dungeon_sessions,
            locks,
            state_sync,
            combat,
            settings=settings,
            rng=rng,
        )
        return cls(
            settings=settings,
            content=content,
            repository=repository,
            locks=locks,
            combat_sessions=combat_sessions,
            dungeon_sessions=dungeon_sessions,
            state_sync=state_sync,
            combat=combat,
            dungeons=dungeons,
        )

    async def shutdown(self) -> None:
        """Drop every in-memory session; persisted flags are reconciled on the next start."""

        fights = await self.combat_sessions.clear()
        runs = await self.dungeon_sessions.clear()
        if fights or runs:
            log.info("Dropped %s combat and %s dungeon session(s) on shutdown", fights, runs)
