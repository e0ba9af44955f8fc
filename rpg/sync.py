"""Checkpoint engine state onto persistent player records."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, List, Sequence

from .errors import AlreadyExploring, AlreadyInCombat, CorruptedState, PersistenceError, PlayerNotFound
from .players import Player
from .repository import PlayerRepository
from .sessions import SessionStore

if TYPE_CHECKING:
    from .combat.state import CombatSession
    from .dungeon.state import DungeonSession

__all__ = ["PlayerStateSync", "Rewards"]

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Rewards:
    xp: int = 0
    gold: int = 0

    def __bool__(self) -> bool:
        return bool(self.xp or self.gold)


class PlayerStateSync:
    """The only writer of combat/dungeon flags, HP, XP and gold.

    Every write first checks that the engine still holds a session for the
    player; a write for a player without a session is refused with
    :class:`CorruptedState`. Failed writes are retried, then raised as
    :class:`PersistenceError` so the caller can keep its session intact.
    """

    def __init__(
        self,
        repository: PlayerRepository,
        combat_sessions: SessionStore["CombatSession"],
        dungeon_sessions: SessionStore["DungeonSession"],
        *,
        retries: int = 1,
    ) -> None:
        self._repository = repository
        self._combat_sessions = combat_sessions
        self._dungeon_sessions = dungeon_sessions
        self._retries = max(0, retries)

    # -- combat ------------------------------------------------------------
    async def begin_combat(self, session: "CombatSession") -> None:
        players = await self._participants(self._combat_sessions, session.participant_ids, "combat")
        for player in players:
            player.in_combat = True
            player.combat_state = session.to_snapshot()
        await self._write(players, "begin combat")

    async def checkpoint_combat(self, session: "CombatSession") -> None:
        players = await self._participants(self._combat_sessions, session.participant_ids, "combat")
        for player in players:
            player.hp = session.hp_of(session.side_of(player.user_id))
            player.combat_state = session.to_snapshot()
        await self._write(players, "combat checkpoint")

    async def finish_combat(self, session: "CombatSession", rewards: Rewards | None = None) -> None:
        """Clear the combat flag for every participant in a single write."""

        players = await self._participants(self._combat_sessions, session.participant_ids, "combat")
        for player in players:
            player.in_combat = False
            player.combat_state = None
            player.hp = session.hp_of(session.side_of(player.user_id))
            if rewards and player.user_id == session.subject_id:
                player.xp += rewards.xp
                player.gold += rewards.gold
        await self._write(players, "finish combat")

    # -- dungeons ----------------------------------------------------------
    async def begin_dungeon(self, session: "DungeonSession") -> None:
        (player,) = await self._participants(self._dungeon_sessions, (session.player_id,), "dungeon")
        player.in_dungeon = True
        player.dungeon_state = session.to_snapshot()
        await self._write((player,), "begin dungeon")

    async def checkpoint_dungeon(self, session: "DungeonSession", *, gold: int = 0) -> None:
        (player,) = await self._participants(self._dungeon_sessions, (session.player_id,), "dungeon")
        player.hp = session.hp
        player.gold += max(0, gold)
        player.dungeon_state = session.to_snapshot()
        await self._write((player,), "dungeon checkpoint")

    async def finish_dungeon(self, session: "DungeonSession", rewards: Rewards | None = None) -> None:
        (player,) = await self._participants(self._dungeon_sessions, (session.player_id,), "dungeon")
        player.in_dungeon = False
        player.dungeon_state = None
        player.hp = session.hp
        if rewards:
            player.xp += rewards.xp
            player.gold += rewards.gold
        await self._write((player,), "finish dungeon")

    # -- between sessions --------------------------------------------------
    async def restore_hp(self, player_id: int, amount: int) -> Player:
        """Heal a player who is neither fighting nor exploring, capped at max HP."""

        if await self._combat_sessions.contains(player_id):
            raise AlreadyInCombat("You can't rest in the middle of a fight!", player_id=player_id)
        if await self._dungeon_sessions.contains(player_id):
            raise AlreadyExploring("Use /dungeon rest while exploring.", player_id=player_id)
        player = await self._repository.get(player_id)
        if player is None:
            raise PlayerNotFound(player_id=player_id)
        player.hp = max(0, min(player.hp + max(0, amount), player.max_hp))
        await self._write((player,), "camp")
        return player

    # -- recovery ----------------------------------------------------------
    async def reconcile(self, player_id: int) -> None:
        """Force-clear flags that have no matching in-memory session.

        Restores the HP from the last checkpoint snapshot and raises
        :class:`CorruptedState` so the caller can tell the player they were
        extracted. Does nothing when the record is consistent.
        """

        from .combat.state import CombatSession
        from .dungeon.state import DungeonSession

        player = await self._repository.get(player_id)
        if player is None:
            return
        cleared: List[str] = []
        if player.in_combat and not await self._combat_sessions.contains(player_id):
            if player.combat_state:
                hp = CombatSession.snapshot_hp_for(player.combat_state, player_id)
                if hp is not None:
                    player.hp = max(0, min(hp, player.max_hp))
            player.in_combat = False
            player.combat_state = None
            cleared.append("combat")
        if player.in_dungeon and not await self._dungeon_sessions.contains(player_id):
            if player.dungeon_state:
                hp = DungeonSession.snapshot_hp(player.dungeon_state)
                if hp is not None:
                    player.hp = max(0, min(hp, player.max_hp))
            player.in_dungeon = False
            player.dungeon_state = None
            cleared.append("dungeon")
        if not cleared:
            return
        log.warning(
            "Player %s had %s flag(s) without a session; force-cleared",
            player_id,
            "/".join(cleared),
        )
        await self._write((player,), "recovery")
        raise CorruptedState(player_id=player_id)

    async def recover_all(self) -> List[int]:
        """Reconcile every stored player, returning the ids that were extracted."""

        extracted: List[int] = []
        players = await self._repository.list_players()
        for player_id, player in players.items():
            if not (player.in_combat or player.in_dungeon):
                continue
            try:
                await self.reconcile(player_id)
            except CorruptedState:
                extracted.append(player_id)
        if extracted:
            log.info("Safely extracted %s player(s) after restart", len(extracted))
        return extracted

    # -- helpers -----------------------------------------------------------
    async def _participants(
        self,
        store: SessionStore,
        player_ids: Sequence[int],
        kind: str,
    ) -> List[Player]:
        players: List[Player] = []
        for player_id in player_ids:
            if not await store.contains(player_id):
                log.error("Refusing %s write for player %s without a session", kind, player_id)
                raise CorruptedState(
                    f"No active {kind} session matches your saved state.",
                    player_id=player_id,
                )
            player = await self._repository.get(player_id)
            if player is None:
                raise PlayerNotFound(player_id=player_id)
            players.append(player)
        return players

    async def _write(self, players: Iterable[Player], action: str) -> None:
        batch = tuple(players)
        attempts = self._retries + 1
        for attempt in range(1, attempts + 1):
            try:
                await self._repository.update_many(batch)
                return
            except OSError as exc:
                if attempt < attempts:
                    log.warning("Retrying %s write after error: %s", action, exc)
                    continue
                log.error(
                    "Giving up on %s write for %s",
                    action,
                    ", ".join(str(player.user_id) for player in batch),
                    exc_info=exc,
                )
                raise PersistenceError(player_id=batch[0].user_id if batch else None) from exc
