"""In-memory combat session state and its checkpoint snapshot format."""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Dict, Mapping, Optional, Tuple

from rpg.players import Stat

__all__ = [
    "AttackState",
    "CombatOutcome",
    "CombatSession",
    "CombatSummary",
    "OpponentKind",
    "Side",
    "StatusEffect",
]


class Side(str, Enum):
    SUBJECT = "subject"
    OPPONENT = "opponent"

    @property
    def other(self) -> "Side":
        return Side.OPPONENT if self is Side.SUBJECT else Side.SUBJECT


class OpponentKind(str, Enum):
    MONSTER = "monster"
    PLAYER = "player"


class CombatOutcome(str, Enum):
    """How a combat ended, from the subject's point of view."""

    WIN = "win"
    LOSE = "lose"
    FLED = "fled"
    KNOCKED_OUT = "knocked_out"
    ABANDONED = "abandoned"


class AttackState(str, Enum):
    CONTINUE = "continue"
    WIN = "win"
    LOSE = "lose"


@dataclass(frozen=True)
class StatusEffect:
    """A buff or debuff: ``magnitude`` applied for ``turns`` more turns."""

    magnitude: int
    turns: int

    def tick(self) -> Optional["StatusEffect"]:
        remaining = self.turns - 1
        if remaining <= 0:
            return None
        return replace(self, turns=remaining)


def _decay(effects: Dict[str, StatusEffect]) -> Dict[str, StatusEffect]:
    decayed: Dict[str, StatusEffect] = {}
    for name, effect in effects.items():
        ticked = effect.tick()
        if ticked is not None:
            decayed[name] = ticked
    return decayed


def _stat_for(name: str) -> Optional[Stat]:
    try:
        return Stat.parse(name)
    except ValueError:
        return None


@dataclass(frozen=True)
class CombatSummary:
    """Read-only copy of a combat session handed back to callers."""

    subject_id: int
    opponent_ref: str
    opponent_kind: OpponentKind
    opponent_name: str
    turn: Side
    subject_hp: int
    subject_max_hp: int
    opponent_hp: int
    opponent_max_hp: int
    turn_count: int
    from_dungeon: bool
    buffs: Mapping[str, StatusEffect] = field(default_factory=dict)
    debuffs: Mapping[str, StatusEffect] = field(default_factory=dict)

    @property
    def opponent_id(self) -> Optional[int]:
        if self.opponent_kind is OpponentKind.PLAYER:
            return int(self.opponent_ref)
        return None


@dataclass
class CombatSession:
    """Authoritative state of one 1v1 encounter.

    In player-versus-player fights the same object is registered under both
    participants' ids. ``turn`` names the side that acts next.
    """

    subject_id: int
    opponent_ref: str
    opponent_kind: OpponentKind
    opponent_name: str
    turn: Side
    subject_hp: int
    subject_max_hp: int
    opponent_hp: int
    opponent_max_hp: int
    buffs: Dict[str, StatusEffect] = field(default_factory=dict)
    debuffs: Dict[str, StatusEffect] = field(default_factory=dict)
    turn_count: int = 0
    from_dungeon: bool = False

    def __post_init__(self) -> None:
        self.subject_hp = self._clamp(self.subject_hp, self.subject_max_hp)
        self.opponent_hp = self._clamp(self.opponent_hp, self.opponent_max_hp)

    @staticmethod
    def _clamp(value: int, maximum: int) -> int:
        return max(0, min(int(value), int(maximum)))

    @property
    def participant_ids(self) -> Tuple[int, ...]:
        if self.opponent_kind is OpponentKind.PLAYER:
            return (self.subject_id, int(self.opponent_ref))
        return (self.subject_id,)

    def side_of(self, player_id: int) -> Side:
        if player_id == self.subject_id:
            return Side.SUBJECT
        if self.opponent_kind is OpponentKind.PLAYER and player_id == int(self.opponent_ref):
            return Side.OPPONENT
        raise KeyError(f"Player {player_id} is not part of this combat")

    def player_for(self, side: Side) -> Optional[int]:
        if side is Side.SUBJECT:
            return self.subject_id
        if self.opponent_kind is OpponentKind.PLAYER:
            return int(self.opponent_ref)
        return None

    def hp_of(self, side: Side) -> int:
        return self.subject_hp if side is Side.SUBJECT else self.opponent_hp

    def max_hp_of(self, side: Side) -> int:
        return self.subject_max_hp if side is Side.SUBJECT else self.opponent_max_hp

    def set_hp(self, side: Side, value: int) -> int:
        clamped = self._clamp(value, self.max_hp_of(side))
        if side is Side.SUBJECT:
            self.subject_hp = clamped
        else:
            self.opponent_hp = clamped
        return clamped

    def damage(self, side: Side, amount: int) -> int:
        """Subtract ``amount`` from ``side`` and return the HP actually lost."""

        before = self.hp_of(side)
        after = self.set_hp(side, before - max(0, int(amount)))
        return before - after

    def pass_turn(self) -> None:
        self.turn = self.turn.other
        self.turn_count += 1
        self.buffs = _decay(self.buffs)
        self.debuffs = _decay(self.debuffs)

    def stat_modifiers(self) -> Dict[Stat, int]:
        """Net stat changes applied to the subject by active effects."""

        modifiers: Dict[Stat, int] = {}
        for sign, effects in ((1, self.buffs), (-1, self.debuffs)):
            for name, effect in effects.items():
                stat = _stat_for(name)
                if stat is not None:
                    modifiers[stat] = modifiers.get(stat, 0) + sign * effect.magnitude
        return modifiers

    def copy(self) -> "CombatSession":
        return replace(self, buffs=dict(self.buffs), debuffs=dict(self.debuffs))

    def adopt(self, other: "CombatSession") -> None:
        """Overwrite this session's state with ``other``'s, in place."""

        for item in fields(self):
            setattr(self, item.name, getattr(other, item.name))
        self.buffs = dict(other.buffs)
        self.debuffs = dict(other.debuffs)

    def summary(self) -> CombatSummary:
        return CombatSummary(
            subject_id=self.subject_id,
            opponent_ref=self.opponent_ref,
            opponent_kind=self.opponent_kind,
            opponent_name=self.opponent_name,
            turn=self.turn,
            subject_hp=self.subject_hp,
            subject_max_hp=self.subject_max_hp,
            opponent_hp=self.opponent_hp,
            opponent_max_hp=self.opponent_max_hp,
            turn_count=self.turn_count,
            from_dungeon=self.from_dungeon,
            buffs=dict(self.buffs),
            debuffs=dict(self.debuffs),
        )

    def to_snapshot(self) -> Dict[str, object]:
        return {
            "subject_id": self.subject_id,
            "opponent": self.opponent_ref,
            "opponent_type": self.opponent_kind.value,
            "opponent_name": self.opponent_name,
            "turn": self.turn.value,
            "subject_hp": self.subject_hp,
            "subject_max_hp": self.subject_max_hp,
            "opponent_hp": self.opponent_hp,
            "opponent_max_hp": self.opponent_max_hp,
            "turn_count": self.turn_count,
            "from_dungeon": self.from_dungeon,
            "buffs": {name: [effect.magnitude, effect.turns] for name, effect in self.buffs.items()},
            "debuffs": {name: [effect.magnitude, effect.turns] for name, effect in self.debuffs.items()},
        }

    @classmethod
    def from_snapshot(cls, data: Mapping[str, object]) -> "CombatSession":
        def effects(raw: object) -> Dict[str, StatusEffect]:
            parsed: Dict[str, StatusEffect] = {}
            if isinstance(raw, Mapping):
                for name, values in raw.items():
                    magnitude, turns = values  # type: ignore[misc]
                    parsed[str(name)] = StatusEffect(int(magnitude), int(turns))
            return parsed

        return cls(
            subject_id=int(data["subject_id"]),  # type: ignore[arg-type]
            opponent_ref=str(data["opponent"]),
            opponent_kind=OpponentKind(str(data.get("opponent_type", "monster"))),
            opponent_name=str(data.get("opponent_name", data["opponent"])),
            turn=Side(str(data.get("turn", "subject"))),
            subject_hp=int(data["subject_hp"]),  # type: ignore[arg-type]
            subject_max_hp=int(data["subject_max_hp"]),  # type: ignore[arg-type]
            opponent_hp=int(data["opponent_hp"]),  # type: ignore[arg-type]
            opponent_max_hp=int(data["opponent_max_hp"]),  # type: ignore[arg-type]
            buffs=effects(data.get("buffs")),
            debuffs=effects(data.get("debuffs")),
            turn_count=int(data.get("turn_count", 0)),  # type: ignore[arg-type]
            from_dungeon=bool(data.get("from_dungeon", False)),
        )

    @staticmethod
    def snapshot_hp_for(data: Mapping[str, object], player_id: int) -> Optional[int]:
        """Return the checkpointed HP of ``player_id`` from a snapshot, if present."""

        try:
            session = CombatSession.from_snapshot(data)
            side = session.side_of(player_id)
        except (KeyError, TypeError, ValueError):
            return None
        return session.hp_of(side)
