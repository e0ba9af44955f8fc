"""In-memory session storage and per-player action locks."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Generic, Optional, Tuple, Type, TypeVar

from .errors import AlreadyActive

__all__ = ["PlayerLocks", "SessionStore"]

T = TypeVar("T")


class SessionStore(Generic[T]):
    """Track active sessions keyed by player id.

    The store is the single source of truth for a run while it is active.
    Access to the internal mapping is serialised via an :class:`asyncio.Lock`
    so compound check-and-set operations cannot interleave.
    """

    __slots__ = ("_sessions", "_lock", "_conflict")

    def __init__(self, conflict: Type[AlreadyActive] = AlreadyActive) -> None:
        self._sessions: Dict[int, T] = {}
        self._lock = asyncio.Lock()
        self._conflict = conflict

    async def create(self, player_id: int, session: T) -> T:
        """Register ``session`` for ``player_id``; fails if one already exists."""

        async with self._lock:
            if player_id in self._sessions:
                raise self._conflict(player_id=player_id)
            self._sessions[player_id] = session
            return session

    async def create_many(self, player_ids: Tuple[int, ...], session: T) -> T:
        """Register one shared ``session`` under every id, or none of them."""

        async with self._lock:
            for player_id in player_ids:
                if player_id in self._sessions:
                    raise self._conflict(player_id=player_id)
            for player_id in player_ids:
                self._sessions[player_id] = session
            return session

    async def get(self, player_id: int) -> Optional[T]:
        async with self._lock:
            return self._sessions.get(player_id)

    async def contains(self, player_id: int) -> bool:
        async with self._lock:
            return player_id in self._sessions

    async def remove(self, player_id: int) -> Optional[T]:
        """Remove and return the session for ``player_id`` if it exists."""

        async with self._lock:
            return self._sessions.pop(player_id, None)

    async def remove_if(self, player_id: int, session: T) -> bool:
        """Remove the entry for ``player_id`` only if it maps to ``session``."""

        async with self._lock:
            if self._sessions.get(player_id) is not session:
                return False
            del self._sessions[player_id]
            return True

    async def keys(self) -> Tuple[int, ...]:
        async with self._lock:
            return tuple(self._sessions.keys())

    async def values(self) -> Tuple[T, ...]:
        async with self._lock:
            return tuple(self._sessions.values())

    async def clear(self) -> int:
        """Drop every session, returning how many were removed."""

        async with self._lock:
            count = len(self._sessions)
            self._sessions.clear()
            return count

    def __len__(self) -> int:
        return len(self._sessions)


class PlayerLocks:
    """One :class:`asyncio.Lock` per player id.

    Actions for the same player run one at a time; actions for different
    players are independent. Multiple ids are always acquired in ascending
    order so two players locking each other cannot deadlock.
    """

    def __init__(self) -> None:
        self._locks: Dict[int, asyncio.Lock] = {}

    def lock_for(self, player_id: int) -> asyncio.Lock:
        lock = self._locks.get(player_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[player_id] = lock
        return lock

    def locked(self, player_id: int) -> bool:
        lock = self._locks.get(player_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def acquire(self, *player_ids: int) -> AsyncIterator[None]:
        ordered = sorted(set(player_ids))
        held: list[asyncio.Lock] = []
        try:
            for player_id in ordered:
                lock = self.lock_for(player_id)
                await lock.acquire()
                held.append(lock)
            yield
        finally:
            for lock in reversed(held):
                lock.release()
