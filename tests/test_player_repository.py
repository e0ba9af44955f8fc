import asyncio
import json
from dataclasses import replace
from pathlib import Path

import pytest

from rpg import Player, PlayerRepository, StatBlock


def _make_player(user_id: int = 456, *, username: str = "Hero") -> Player:
    return Player(
        user_id=user_id,
        username=username,
        level=3,
        xp=120,
        gold=50,
        hp=80,
        stats=StatBlock(strength=14, intelligence=8, dexterity=12, defense=6),
    )


def test_repository_detects_external_updates(tmp_path) -> None:
    async def scenario() -> None:
        storage = tmp_path / "players.json"
        repo_one = PlayerRepository(storage)
        repo_two = PlayerRepository(storage)

        original = _make_player()
        assert not await repo_two.exists(original.user_id)

        await repo_one.save(original)

        assert await repo_two.exists(original.user_id)
        assert await repo_two.get(original.user_id) == original
        assert await repo_two.list_players() == {original.user_id: original}

        await repo_one.clear(original.user_id)

        assert not await repo_two.exists(original.user_id)
        assert await repo_two.list_players() == {}

        recreated = replace(original, username="Returned Hero")
        await repo_two.save(recreated)

        assert await repo_one.get(recreated.user_id) == recreated

    asyncio.run(scenario())


def test_update_many_writes_once(tmp_path) -> None:
    async def scenario() -> None:
        storage = tmp_path / "players.json"
        repository = PlayerRepository(storage)
        first = _make_player(1)
        second = replace(_make_player(2), in_combat=True, combat_state={"subject_id": 1})

        await repository.update_many((first, second))

        raw = json.loads(storage.read_text(encoding="utf-8"))
        assert sorted(raw) == ["1", "2"]
        assert raw["2"]["in_combat"] is True
        assert raw["2"]["combat_state"] == {"subject_id": 1}
        assert raw["1"]["stats"] == {"str": 14, "int": 8, "dex": 12, "def": 6}

    asyncio.run(scenario())


def test_failed_write_leaves_cache_untouched(tmp_path, monkeypatch) -> None:
    async def scenario() -> None:
        repository = PlayerRepository(tmp_path / "players.json")
        original = _make_player()
        await repository.save(original)

        def broken_write(self, *args, **kwargs):
            raise OSError("read-only file system")

        monkeypatch.setattr(Path, "write_text", broken_write)
        with pytest.raises(OSError):
            await repository.save(replace(original, hp=1))
        monkeypatch.undo()

        assert (await repository.get(original.user_id)).hp == 80

    asyncio.run(scenario())


def test_returned_players_are_copies(tmp_path) -> None:
    async def scenario() -> None:
        repository = PlayerRepository(tmp_path / "players.json")
        await repository.save(_make_player())

        player = await repository.get(456)
        player.gold = 9999
        assert (await repository.get(456)).gold == 50

    asyncio.run(scenario())


def test_malformed_store_is_ignored(tmp_path) -> None:
    async def scenario() -> None:
        storage = tmp_path / "players.json"
        storage.write_text("{not json", encoding="utf-8")
        repository = PlayerRepository(storage)
        assert await repository.list_players() == {}

    asyncio.run(scenario())
