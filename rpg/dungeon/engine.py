"""Multi-floor dungeon runs for a single player."""

from __future__ import annotations

import logging
import random
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

from rpg.combat import CombatEngine, CombatOutcome, CombatSummary
from rpg.config import EngineSettings
from rpg.content import ContentLibrary, Dungeon, EncounterKind
from rpg.errors import (
    AlreadyExploring,
    AlreadyInCombat,
    InsufficientHp,
    LevelTooLow,
    NoActiveSession,
    PersistenceError,
    PlayerNotFound,
    UnknownContent,
)
from rpg.players import Player, Stat, StatBlock
from rpg.repository import PlayerRepository
from rpg.sessions import PlayerLocks, SessionStore
from rpg.sync import PlayerStateSync

from .rules import TrapRoll, completion_rewards, resolve_trap, rest_amount, treasure_gold
from .state import DungeonSession, DungeonSummary

__all__ = ["AdvanceResult", "DungeonEngine", "EncounterOutcome", "RestResult"]

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class EncounterOutcome:
    """What happened in the room that was just explored."""

    kind: EncounterKind
    floor: int
    room: int
    hp: int
    max_hp: int
    damage: int = 0
    gold: int = 0
    trap: Optional[TrapRoll] = None
    combat: Optional[CombatSummary] = None


@dataclass(frozen=True)
class AdvanceResult:
    completed: bool
    floor: int
    xp: int = 0
    gold: int = 0


@dataclass(frozen=True)
class RestResult:
    healed: int
    hp: int
    max_hp: int


class DungeonEngine:
    """Drive dungeon runs, handing monster rooms off to the combat engine.

    Fights started from a room are tracked by the :class:`CombatEngine`; this
    engine listens for their end and folds the final HP back into the run. A
    defeat ends the run with 0 HP written to the player record.
    """

    def __init__(
        self,
        repository: PlayerRepository,
        content: ContentLibrary,
        sessions: SessionStore[DungeonSession],
        locks: PlayerLocks,
        state_sync: PlayerStateSync,
        combat: CombatEngine,
        *,
        settings: EngineSettings | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._repository = repository
        self._content = content
        self._sessions = sessions
        self._locks = locks
        self._sync = state_sync
        self._combat = combat
        self._settings = settings or combat.settings
        self._rng = rng or random.Random()
        combat.add_end_listener(self._on_combat_end)

    async def state(self, player_id: int) -> Optional[DungeonSummary]:
        session = await self._sessions.get(player_id)
        return session.summary() if session is not None else None

    async def enter(self, player_id: int, dungeon_id: str) -> DungeonSummary:
        async with self._locks.acquire(player_id):
            if await self._sessions.contains(player_id):
                raise AlreadyExploring(player_id=player_id)
            if await self._combat.is_fighting(player_id):
                raise AlreadyInCombat("You can't enter a dungeon while in combat!", player_id=player_id)
            player = await self._load_player(player_id)
            dungeon = self._dungeon(dungeon_id)
            if player.level < dungeon.min_level:
                raise LevelTooLow(
                    f"You need to be level {dungeon.min_level} to enter {dungeon.name}!",
                    player_id=player_id,
                )
            if player.hp < player.max_hp * self._settings.dungeon_entry_hp_fraction:
                raise InsufficientHp(player_id=player_id)

            session = DungeonSession(
                player_id=player_id,
                dungeon_id=dungeon.id,
                dungeon_name=dungeon.name,
                floor=1,
                floors=dungeon.floors,
                hp=player.hp,
                max_hp=player.max_hp,
            )
            await self._sessions.create(player_id, session)
            try:
                await self._sync.begin_dungeon(session)
            except PersistenceError:
                await self._sessions.remove_if(player_id, session)
                raise
            log.info("Player %s entered %s (%s floors)", player_id, dungeon.id, dungeon.floors)
            return session.summary()

    async def explore_room(self, player_id: int) -> EncounterOutcome:
        async with self._locked_session(player_id) as session:
            await self._ensure_not_fighting(player_id)
            dungeon = self._dungeon(session.dungeon_id)
            entry = dungeon.encounters.draw(self._rng)
            working = session.copy()
            working.completed_rooms += 1

            if entry.kind.is_combat:
                await self._sync.checkpoint_dungeon(working)
                session.adopt(working)
                combat = await self._combat.start_encounter(player_id, entry.ref, hp=session.hp)
                log.info(
                    "Player %s met %s on floor %s of %s",
                    player_id,
                    entry.ref,
                    session.floor,
                    session.dungeon_id,
                )
                return self._outcome(entry.kind, session, combat=combat)

            player = await self._load_player(player_id)
            if entry.kind is EncounterKind.TRAP:
                stats = self._stats(player, session)
                trap = resolve_trap(stats.dexterity, rng=self._rng, settings=self._settings)
                working.hp = working.clamp_hp(working.hp - trap.damage)
                await self._sync.checkpoint_dungeon(working)
                session.adopt(working)
                return self._outcome(entry.kind, session, damage=trap.damage, trap=trap)

            gold = treasure_gold(player.level, rng=self._rng, settings=self._settings)
            await self._sync.checkpoint_dungeon(working, gold=gold)
            session.adopt(working)
            return self._outcome(entry.kind, session, gold=gold)

    async def advance_floor(self, player_id: int) -> AdvanceResult:
        async with self._locked_session(player_id) as session:
            await self._ensure_not_fighting(player_id)
            working = session.copy()
            if session.on_last_floor:
                dungeon = self._dungeon(session.dungeon_id)
                rewards = completion_rewards(dungeon, self._settings)
                await self._sync.finish_dungeon(working, rewards)
                await self._sessions.remove_if(player_id, session)
                log.info("Player %s completed %s", player_id, session.dungeon_id)
                return AdvanceResult(completed=True, floor=working.floor, xp=rewards.xp, gold=rewards.gold)

            working.floor += 1
            working.completed_rooms = 0
            await self._sync.checkpoint_dungeon(working)
            session.adopt(working)
            return AdvanceResult(completed=False, floor=session.floor)

    async def rest(self, player_id: int) -> RestResult:
        async with self._locked_session(player_id) as session:
            await self._ensure_not_fighting(player_id)
            working = session.copy()
            before = working.hp
            working.hp = working.clamp_hp(before + rest_amount(working.max_hp, self._settings))
            await self._sync.checkpoint_dungeon(working)
            session.adopt(working)
            return RestResult(healed=session.hp - before, hp=session.hp, max_hp=session.max_hp)

    async def camp(self, player_id: int) -> RestResult:
        """Rest between runs, recovering the same share of HP as :meth:`rest`."""

        async with self._locks.acquire(player_id):
            player = await self._load_player(player_id)
            amount = rest_amount(player.max_hp, self._settings)
            updated = await self._sync.restore_hp(player_id, amount)
            log.info("Player %s camped and recovered %s hp", player_id, updated.hp - player.hp)
            return RestResult(healed=updated.hp - player.hp, hp=updated.hp, max_hp=updated.max_hp)

    async def exit(self, player_id: int) -> DungeonSummary:
        """Leave the dungeon, keeping the run's current HP. Rewards are forfeited.

        A fight started from a room is abandoned first; its HP carries over.
        """

        async with self._locked_session(player_id) as session:
            await self._combat.end_encounter(player_id)
            working = session.copy()
            await self._sync.finish_dungeon(working)
            await self._sessions.remove_if(player_id, session)
            log.info("Player %s left %s with %s hp", player_id, session.dungeon_id, working.hp)
            return working.summary()

    # -- combat hand-off ---------------------------------------------------
    async def _on_combat_end(self, summary: CombatSummary, outcome: CombatOutcome) -> None:
        if not summary.from_dungeon:
            return
        session = await self._sessions.get(summary.subject_id)
        if session is None:
            log.warning("Dungeon fight for %s ended without a dungeon run", summary.subject_id)
            return
        # The fight is already written; keep the run in step even if this write fails.
        working = session.copy()
        working.hp = working.clamp_hp(summary.subject_hp)
        session.adopt(working)
        if outcome is CombatOutcome.LOSE:
            await self._sync.finish_dungeon(session)
            await self._sessions.remove_if(summary.subject_id, session)
            log.info("Player %s was defeated in %s", summary.subject_id, session.dungeon_id)
            return
        await self._sync.checkpoint_dungeon(session)

    # -- helpers -----------------------------------------------------------
    @asynccontextmanager
    async def _locked_session(self, player_id: int) -> AsyncIterator[DungeonSession]:
        async with self._locks.acquire(player_id):
            session = await self._sessions.get(player_id)
            if session is None:
                raise NoActiveSession("You're not in a dungeon!", player_id=player_id)
            yield session

    async def _ensure_not_fighting(self, player_id: int) -> None:
        if await self._combat.is_fighting(player_id):
            raise AlreadyInCombat("Finish your current battle first!", player_id=player_id)

    def _outcome(self, kind: EncounterKind, session: DungeonSession, **details) -> EncounterOutcome:
        return EncounterOutcome(
            kind=kind,
            floor=session.floor,
            room=session.completed_rooms,
            hp=session.hp,
            max_hp=session.max_hp,
            **details,
        )

    @staticmethod
    def _stats(player: Player, session: DungeonSession) -> StatBlock:
        modifiers = {}
        for name, magnitude in session.buffs.items():
            try:
                modifiers[Stat.parse(name)] = magnitude
            except ValueError:
                continue
        return player.stats.with_modifiers(modifiers)

    async def _load_player(self, player_id: int) -> Player:
        player = await self._repository.get(player_id)
        if player is None:
            raise PlayerNotFound(player_id=player_id)
        return player

    def _dungeon(self, dungeon_id: str) -> Dungeon:
        try:
            return self._content.dungeons.get(dungeon_id)
        except KeyError as exc:
            raise UnknownContent("That dungeon doesn't exist!") from exc
