"""Turn-based 1v1 combat between a player and a monster or another player."""

from __future__ import annotations

import logging
import random
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, List, Optional

from rpg.config import EngineSettings
from rpg.content import ContentLibrary, Item, Monster
from rpg.errors import (
    AlreadyExploring,
    AlreadyInCombat,
    EntryRequirementError,
    LevelMismatch,
    NoActiveSession,
    PersistenceError,
    PlayerNotFound,
    Unconscious,
    UnknownContent,
)
from rpg.players import Player, StatBlock
from rpg.repository import PlayerRepository
from rpg.sessions import PlayerLocks, SessionStore
from rpg.sync import PlayerStateSync, Rewards

from .rules import DamageRoll, flee_chance, roll_damage, roll_flee, turn_order
from .state import (
    AttackState,
    CombatOutcome,
    CombatSession,
    CombatSummary,
    OpponentKind,
    Side,
    StatusEffect,
)

__all__ = ["AttackResult", "CombatEngine", "CombatEndListener", "FleeResult"]

log = logging.getLogger(__name__)

CombatEndListener = Callable[[CombatSummary, CombatOutcome], Awaitable[None]]


@dataclass(frozen=True)
class AttackResult:
    state: AttackState
    damage: int
    subject_hp: int
    opponent_hp: int
    rewards: Rewards = Rewards()


@dataclass(frozen=True)
class FleeResult:
    success: bool
    damage_taken: int
    chance: int
    roll: int
    knocked_out: bool = False


class CombatEngine:
    """Resolve attacks, fleeing and the end of combat for active sessions.

    Every public coroutine runs while holding the per-player locks of all
    participants, so two actions racing on the same fight never interleave
    their HP changes.
    """

    def __init__(
        self,
        repository: PlayerRepository,
        content: ContentLibrary,
        sessions: SessionStore[CombatSession],
        locks: PlayerLocks,
        state_sync: PlayerStateSync,
        *,
        settings: EngineSettings | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._repository = repository
        self._content = content
        self._sessions = sessions
        self._locks = locks
        self._sync = state_sync
        self._settings = settings or EngineSettings()
        self._rng = rng or random.Random()
        self._end_listeners: List[CombatEndListener] = []

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    def add_end_listener(self, listener: CombatEndListener) -> None:
        """Call ``listener`` after every combat ends, before locks are released."""

        self._end_listeners.append(listener)

    async def is_fighting(self, player_id: int) -> bool:
        return await self._sessions.contains(player_id)

    async def state(self, player_id: int) -> Optional[CombatSummary]:
        session = await self._sessions.get(player_id)
        return session.summary() if session is not None else None

    # -- starting ----------------------------------------------------------
    async def start(
        self,
        player_id: int,
        opponent_ref: str | int,
        opponent_kind: OpponentKind | str = OpponentKind.MONSTER,
    ) -> CombatSummary:
        kind = OpponentKind(opponent_kind)
        lock_ids = [player_id]
        if kind is OpponentKind.PLAYER:
            opponent_id = int(opponent_ref)
            if opponent_id == player_id:
                raise EntryRequirementError("You can't battle yourself!", player_id=player_id)
            lock_ids.append(opponent_id)
        async with self._locks.acquire(*lock_ids):
            player = await self._load_player(player_id)
            if player.in_dungeon:
                raise AlreadyExploring("You can't start a fight while exploring a dungeon!", player_id=player_id)
            if player.hp <= 0:
                raise Unconscious(player_id=player_id)
            return await self._begin(player, str(opponent_ref), kind, enforce_levels=True)

    async def start_encounter(self, player_id: int, monster_id: str, *, hp: int) -> CombatSummary:
        """Start a dungeon-drawn fight; the caller must already hold the player's lock."""

        player = await self._load_player(player_id)
        return await self._begin(
            player,
            monster_id,
            OpponentKind.MONSTER,
            enforce_levels=False,
            subject_hp=hp,
            from_dungeon=True,
        )

    async def end_encounter(self, player_id: int) -> Optional[CombatSummary]:
        """Abandon a dungeon-drawn fight; the caller must already hold the player's lock."""

        session = await self._sessions.get(player_id)
        if session is None or not session.from_dungeon:
            return None
        working = session.copy()
        await self._finish(session, working, CombatOutcome.ABANDONED)
        return working.summary()

    async def _begin(
        self,
        player: Player,
        opponent_ref: str,
        kind: OpponentKind,
        *,
        enforce_levels: bool,
        subject_hp: int | None = None,
        from_dungeon: bool = False,
    ) -> CombatSummary:
        if await self._sessions.contains(player.user_id):
            raise AlreadyInCombat(player_id=player.user_id)

        if kind is OpponentKind.MONSTER:
            monster = self._monster(opponent_ref)
            if enforce_levels:
                window = self._settings.monster_level_window
                if abs(monster.level - player.level) > window:
                    raise LevelMismatch(
                        f"{monster.name} is level {monster.level}; you can only fight monsters "
                        f"within {window} levels of your own.",
                        player_id=player.user_id,
                    )
            opponent_stats = monster.stats
            opponent_name = monster.name
            opponent_hp = opponent_max_hp = monster.hp
            ref = monster.id
        else:
            opponent = await self._load_player(int(opponent_ref))
            if await self._sessions.contains(opponent.user_id) or opponent.in_combat:
                raise AlreadyInCombat(f"{opponent.username} is already in combat!", player_id=player.user_id)
            if opponent.in_dungeon:
                raise AlreadyExploring(f"{opponent.username} is exploring a dungeon!", player_id=player.user_id)
            if opponent.hp <= 0:
                raise Unconscious(f"{opponent.username} is unconscious and can't fight!", player_id=player.user_id)
            difference = abs(player.level - opponent.level)
            if enforce_levels and difference > self._settings.pvp_level_cap:
                raise LevelMismatch(
                    f"Level difference too high! You can only battle players within "
                    f"{self._settings.pvp_level_cap} levels. (Difference: {difference})",
                    player_id=player.user_id,
                )
            opponent_stats = opponent.stats
            opponent_name = opponent.username
            opponent_hp = opponent.hp
            opponent_max_hp = opponent.max_hp
            ref = str(opponent.user_id)

        session = CombatSession(
            subject_id=player.user_id,
            opponent_ref=ref,
            opponent_kind=kind,
            opponent_name=opponent_name,
            turn=turn_order(
                player.stats.dexterity,
                opponent_stats.dexterity,
                rng=self._rng,
                jitter=self._settings.initiative_jitter,
            ),
            subject_hp=player.hp if subject_hp is None else subject_hp,
            subject_max_hp=player.max_hp,
            opponent_hp=opponent_hp,
            opponent_max_hp=opponent_max_hp,
            from_dungeon=from_dungeon,
        )
        await self._sessions.create_many(session.participant_ids, session)
        try:
            await self._sync.begin_combat(session)
        except PersistenceError:
            for participant in session.participant_ids:
                await self._sessions.remove_if(participant, session)
            raise
        log.info(
            "Combat started: %s vs %s %s (%s acts first)",
            player.user_id,
            kind.value,
            ref,
            session.turn.value,
        )
        return session.summary()

    # -- actions -----------------------------------------------------------
    async def compute_damage(self, player_id: int, weapon_id: str | None = None) -> DamageRoll:
        """Roll the damage the side whose turn it is would deal right now.

        ``weapon_id`` is only used when a player is acting.
        """

        async with self._locked_session(player_id) as session:
            attacker_side = session.turn
            weapon: Item | None = None
            if weapon_id and session.player_for(attacker_side) is not None:
                try:
                    weapon = self._content.items.get(weapon_id)
                except KeyError as exc:
                    raise UnknownContent(f"Unknown weapon '{weapon_id}'.", player_id=player_id) from exc
            attacker = await self._stats_for(session, attacker_side)
            defender = await self._stats_for(session, attacker_side.other)
            return roll_damage(
                attacker,
                weapon,
                defender.defense,
                rng=self._rng,
                settings=self._settings,
            )

    async def attack(self, player_id: int, damage: int) -> AttackResult:
        """Apply ``damage`` to the defender of the current turn.

        Returns ``win``/``lose`` from the caller's point of view when the
        defender drops to 0 HP, otherwise ``continue`` after passing the turn.
        """

        async with self._locked_session(player_id) as session:
            caller = session.side_of(player_id)
            working = session.copy()
            attacker = working.turn
            dealt = working.damage(attacker.other, damage)
            if working.hp_of(attacker.other) <= 0:
                outcome = CombatOutcome.WIN if attacker is Side.SUBJECT else CombatOutcome.LOSE
                rewards = await self._finish(session, working, outcome)
                state = AttackState.WIN if attacker is caller else AttackState.LOSE
                return AttackResult(
                    state=state,
                    damage=dealt,
                    subject_hp=working.subject_hp,
                    opponent_hp=working.opponent_hp,
                    rewards=rewards,
                )
            working.pass_turn()
            await self._sync.checkpoint_combat(working)
            session.adopt(working)
            return AttackResult(
                state=AttackState.CONTINUE,
                damage=dealt,
                subject_hp=session.subject_hp,
                opponent_hp=session.opponent_hp,
            )

    async def apply_effect(
        self,
        player_id: int,
        name: str,
        magnitude: int,
        turns: int,
        *,
        debuff: bool = False,
    ) -> CombatSummary:
        """Attach a buff or debuff to the subject; it decays as turns pass."""

        if turns <= 0:
            raise ValueError("Effects must last at least one turn")
        async with self._locked_session(player_id) as session:
            working = session.copy()
            target = working.debuffs if debuff else working.buffs
            target[name.lower()] = StatusEffect(magnitude=int(magnitude), turns=int(turns))
            await self._sync.checkpoint_combat(working)
            session.adopt(working)
            return session.summary()

    async def flee(self, player_id: int) -> FleeResult:
        async with self._locked_session(player_id) as session:
            side = session.side_of(player_id)
            player = await self._load_player(player_id)
            fleeing_from = session.opponent_kind if side is Side.SUBJECT else OpponentKind.PLAYER
            chance = flee_chance(
                player.stats.dexterity,
                session.hp_of(side),
                session.max_hp_of(side),
                fleeing_from,
                self._settings,
            )
            flee_roll = roll_flee(chance, rng=self._rng)
            working = session.copy()
            if flee_roll.success:
                await self._finish(session, working, CombatOutcome.FLED)
                return FleeResult(success=True, damage_taken=0, chance=chance, roll=flee_roll.roll)

            low, high = self._settings.flee_damage_range
            damage = self._rng.randint(low, high)
            working.damage(side, damage)
            if working.hp_of(side) <= 0:
                working.set_hp(side, 1)
                await self._finish(session, working, CombatOutcome.KNOCKED_OUT)
                return FleeResult(
                    success=False,
                    damage_taken=damage,
                    chance=chance,
                    roll=flee_roll.roll,
                    knocked_out=True,
                )
            await self._sync.checkpoint_combat(working)
            session.adopt(working)
            return FleeResult(success=False, damage_taken=damage, chance=chance, roll=flee_roll.roll)

    async def end(
        self,
        player_id: int,
        outcome: CombatOutcome | str = CombatOutcome.ABANDONED,
    ) -> CombatSummary:
        """End the fight immediately. A second call raises :class:`NoActiveSession`."""

        async with self._locked_session(player_id) as session:
            working = session.copy()
            await self._finish(session, working, CombatOutcome(outcome))
            return working.summary()

    # -- internals ---------------------------------------------------------
    @asynccontextmanager
    async def _locked_session(self, player_id: int) -> AsyncIterator[CombatSession]:
        while True:
            session = await self._sessions.get(player_id)
            if session is None:
                raise NoActiveSession("You're not in combat!", player_id=player_id)
            async with self._locks.acquire(*session.participant_ids):
                current = await self._sessions.get(player_id)
                if current is None:
                    raise NoActiveSession("You're not in combat!", player_id=player_id)
                if current is session:
                    yield session
                    return
            # The fight changed while we waited for the locks; look again.

    async def _finish(
        self,
        session: CombatSession,
        working: CombatSession,
        outcome: CombatOutcome,
    ) -> Rewards:
        rewards = Rewards()
        if outcome is CombatOutcome.WIN and working.opponent_kind is OpponentKind.MONSTER:
            monster = self._monster(working.opponent_ref)
            rewards = Rewards(xp=monster.xp_reward, gold=monster.gold_reward)
        await self._sync.finish_combat(working, rewards)
        for participant in working.participant_ids:
            removed = await self._sessions.remove_if(participant, session)
            if not removed:
                log.error(
                    "Combat session for %s was not registered under participant %s; "
                    "force-clearing that entry",
                    working.subject_id,
                    participant,
                )
                await self._sessions.remove(participant)
        session.adopt(working)
        log.info(
            "Combat ended for %s: %s (hp %s/%s)",
            working.subject_id,
            outcome.value,
            working.subject_hp,
            working.subject_max_hp,
        )
        summary = working.summary()
        for listener in self._end_listeners:
            await listener(summary, outcome)
        return rewards

    async def _stats_for(self, session: CombatSession, side: Side) -> StatBlock:
        player_id = session.player_for(side)
        if player_id is None:
            return self._monster(session.opponent_ref).stats
        player = await self._load_player(player_id)
        if side is Side.SUBJECT:
            return player.stats.with_modifiers(session.stat_modifiers())
        return player.stats

    async def _load_player(self, player_id: int) -> Player:
        player = await self._repository.get(player_id)
        if player is None:
            raise PlayerNotFound(player_id=player_id)
        return player

    def _monster(self, monster_id: str) -> Monster:
        try:
            return self._content.monsters.get(monster_id)
        except KeyError as exc:
            raise UnknownContent("That monster doesn't exist!") from exc
