from __future__ import annotations

import random
from pathlib import Path
from typing import Iterable, List

import pytest

from rpg import GameServices, Player, StatBlock
from rpg.config import EngineSettings
from rpg.content import ContentLibrary


class FixedRandom(random.Random):
    """Random source that always returns the same float and integer offset.

    ``randrange``/``randint`` return the lower bound plus ``offset``, capped at
    the upper bound.
    """

    def __init__(self, value: float = 0.5, offset: int = 0) -> None:
        super().__init__(0)
        self.value = value
        self.offset = offset

    def random(self) -> float:
        return self.value

    def randrange(self, start, stop=None, step=1):  # type: ignore[override]
        if stop is None:
            start, stop = 0, start
        return min(start + self.offset, stop - 1)


class SequenceRandom(random.Random):
    """Random source replaying ``values`` for ``random()`` calls, in order."""

    def __init__(self, values: Iterable[float]) -> None:
        super().__init__(0)
        self._values: List[float] = list(values)

    def random(self) -> float:
        return self._values.pop(0)


CONTENT = ContentLibrary.load_bundled()


def build_services(
    data_path: Path,
    *,
    rng: random.Random | None = None,
    settings: EngineSettings | None = None,
) -> GameServices:
    return GameServices.build(data_path, settings=settings, content=CONTENT, rng=rng or FixedRandom())


async def register(services: GameServices, user_id: int, **overrides) -> Player:
    stats = overrides.pop("stats", StatBlock(10, 10, 10, 10))
    player = Player(user_id=user_id, username=f"player-{user_id}", stats=stats, **overrides)
    await services.repository.save(player)
    return player


class FlakyWrites:
    """Wrap ``update_many`` so the first ``failures`` calls raise ``OSError``."""

    def __init__(self, original, failures: int) -> None:
        self.original = original
        self.failures = failures
        self.batches: List[tuple[int, ...]] = []

    async def __call__(self, players) -> None:
        batch = tuple(players)
        if self.failures > 0:
            self.failures -= 1
            raise OSError("disk full")
        self.batches.append(tuple(player.user_id for player in batch))
        await self.original(batch)


@pytest.fixture
def content() -> ContentLibrary:
    return CONTENT
