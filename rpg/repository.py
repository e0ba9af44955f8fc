"""Concurrency-safe persistence helpers for player records."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Dict, Iterable, Optional

from .players import Player

log = logging.getLogger(__name__)


class PlayerRepository:
    """Store player records keyed by user id, backed by a JSON file on disk."""

    def __init__(self, storage_path: Path) -> None:
        self._storage_path = storage_path
        self._lock = asyncio.Lock()
        self._cache: Dict[str, Dict[str, object]] = {}
        self._loaded = False
        self._storage_serial: Optional[tuple[int, int]] = None

    @property
    def storage_path(self) -> Path:
        return self._storage_path

    async def _ensure_loaded(self) -> None:
        current_serial = await self._current_storage_serial()
        if self._loaded and self._storage_serial == current_serial:
            return
        if current_serial is None:
            self._storage_path.parent.mkdir(parents=True, exist_ok=True)
            self._cache = {}
            self._loaded = True
            self._storage_serial = None
            return
        self._cache = {}
        data = await asyncio.to_thread(self._storage_path.read_text, encoding="utf-8")
        if data.strip():
            try:
                raw = json.loads(data)
            except json.JSONDecodeError:
                log.warning("Ignoring unreadable player store at %s", self._storage_path)
            else:
                if isinstance(raw, dict):
                    self._cache = {
                        str(user_id): dict(record)
                        for user_id, record in raw.items()
                        if isinstance(record, dict)
                    }
        self._loaded = True
        self._storage_serial = current_serial

    async def _persist(self, cache: Dict[str, Dict[str, object]]) -> None:
        self._storage_path.parent.mkdir(parents=True, exist_ok=True)
        text = json.dumps(cache, indent=2, sort_keys=True)
        await asyncio.to_thread(self._storage_path.write_text, text, encoding="utf-8")
        self._cache = cache
        self._storage_serial = await self._current_storage_serial()
        self._loaded = True

    async def _current_storage_serial(self) -> Optional[tuple[int, int]]:
        if not self._storage_path.exists():
            return None
        stat_result = await asyncio.to_thread(self._storage_path.stat)
        mtime_ns = getattr(stat_result, "st_mtime_ns", None) or int(
            stat_result.st_mtime * 1_000_000_000
        )
        return (mtime_ns, stat_result.st_size)

    async def get(self, user_id: int) -> Optional[Player]:
        async with self._lock:
            await self._ensure_loaded()
            raw = self._cache.get(str(user_id))
            return Player.from_dict(raw) if raw else None

    async def exists(self, user_id: int) -> bool:
        async with self._lock:
            await self._ensure_loaded()
            return str(user_id) in self._cache

    async def save(self, player: Player) -> None:
        await self.update_many((player,))

    async def update_many(self, players: Iterable[Player]) -> None:
        """Write every record in ``players`` with a single file write.

        Either all records are stored or, if the write fails, none of them are
        visible in the cache.
        """

        async with self._lock:
            await self._ensure_loaded()
            staged = dict(self._cache)
            for player in players:
                staged[str(player.user_id)] = player.to_dict()
            await self._persist(staged)

    async def clear(self, user_id: int) -> None:
        async with self._lock:
            await self._ensure_loaded()
            if str(user_id) in self._cache:
                staged = dict(self._cache)
                del staged[str(user_id)]
                await self._persist(staged)

    async def list_players(self) -> Dict[int, Player]:
        """Return all stored players keyed by user id."""

        async with self._lock:
            await self._ensure_loaded()
            players: Dict[int, Player] = {}
            for user_id, payload in self._cache.items():
                try:
                    numeric_id = int(user_id)
                except (TypeError, ValueError):
                    continue
                try:
                    players[numeric_id] = Player.from_dict(payload)
                except (KeyError, ValueError):
                    log.warning("Skipping malformed player record %s", user_id)
                    continue
            return players
