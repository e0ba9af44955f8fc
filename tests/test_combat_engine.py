import asyncio

import pytest

from conftest import FixedRandom, FlakyWrites, build_services, register
from rpg.combat import AttackState, OpponentKind, Side
from rpg.errors import (
    AlreadyActive,
    AlreadyInCombat,
    LevelMismatch,
    NoActiveSession,
    PersistenceError,
    PlayerNotFound,
    Unconscious,
    UnknownContent,
)
from rpg.players import StatBlock


def test_start_marks_player_in_combat(tmp_path) -> None:
    async def scenario() -> None:
        services = build_services(tmp_path)
        await register(services, 1)

        summary = await services.combat.start(1, "cheese_rat")
        assert summary.opponent_name == "Cheese Rat"
        assert summary.opponent_hp == 30
        # DEX 10 + 5 beats the rat's DEX 8 + 5.
        assert summary.turn is Side.SUBJECT

        player = await services.repository.get(1)
        assert player.in_combat is True
        assert player.combat_state["opponent"] == "cheese_rat"

        with pytest.raises(AlreadyActive):
            await services.combat.start(1, "cheese_rat")

    asyncio.run(scenario())


def test_start_rejects_bad_requests(tmp_path) -> None:
    async def scenario() -> None:
        services = build_services(tmp_path)
        await register(services, 1)

        with pytest.raises(PlayerNotFound):
            await services.combat.start(99, "cheese_rat")
        with pytest.raises(UnknownContent):
            await services.combat.start(1, "dragon")
        with pytest.raises(LevelMismatch):
            await services.combat.start(1, "crypt_lich")
        # Level 6 is still inside the five level window.
        summary = await services.combat.start(1, "moss_troll")
        assert summary.opponent_ref == "moss_troll"

    asyncio.run(scenario())


def test_attack_until_victory_grants_rewards(tmp_path) -> None:
    async def scenario() -> None:
        services = build_services(tmp_path)
        await register(services, 1)
        await services.combat.start(1, "cheese_rat")

        first = await services.combat.attack(1, 12)
        assert first.state is AttackState.CONTINUE
        assert first.opponent_hp == 18
        assert (await services.combat.state(1)).turn is Side.OPPONENT

        # The rat's turn: damage lands on the player.
        counter = await services.combat.attack(1, 7)
        assert counter.state is AttackState.CONTINUE
        assert counter.subject_hp == 93

        final = await services.combat.attack(1, 500)
        assert final.state is AttackState.WIN
        assert final.damage == 18
        assert final.rewards.xp == 15
        assert final.rewards.gold == 10

        player = await services.repository.get(1)
        assert player.in_combat is False
        assert player.combat_state is None
        assert player.hp == 93
        assert (player.xp, player.gold) == (15, 10)

        with pytest.raises(NoActiveSession):
            await services.combat.attack(1, 1)

    asyncio.run(scenario())


def test_defeat_persists_zero_hp(tmp_path) -> None:
    async def scenario() -> None:
        services = build_services(tmp_path)
        await register(services, 1, stats=StatBlock(10, 10, 1, 10))
        summary = await services.combat.start(1, "cheese_rat")
        assert summary.turn is Side.OPPONENT

        result = await services.combat.attack(1, 1000)
        assert result.state is AttackState.LOSE
        assert result.rewards.xp == 0

        player = await services.repository.get(1)
        assert player.hp == 0
        assert player.in_combat is False
        assert player.xp == 0

    asyncio.run(scenario())


def test_unconscious_players_cannot_fight_until_they_camp(tmp_path) -> None:
    async def scenario() -> None:
        services = build_services(tmp_path)
        await register(services, 1, stats=StatBlock(10, 10, 1, 10))
        await register(services, 2, hp=0, stats=StatBlock(10, 10, 5, 10))
        await services.combat.start(1, "cheese_rat")
        await services.combat.attack(1, 1000)

        with pytest.raises(Unconscious):
            await services.combat.start(1, "cheese_rat")
        assert not await services.combat.is_fighting(1)

        await services.dungeons.camp(1)
        with pytest.raises(Unconscious):
            await services.combat.start(1, 2, OpponentKind.PLAYER)
        assert not await services.combat.is_fighting(2)
        assert (await services.repository.get(2)).in_combat is False

        summary = await services.combat.start(1, "cheese_rat")
        assert summary.subject_hp == 25

    asyncio.run(scenario())


def test_end_twice_raises(tmp_path) -> None:
    async def scenario() -> None:
        services = build_services(tmp_path)
        await register(services, 1)
        await services.combat.start(1, "cheese_rat")

        summary = await services.combat.end(1)
        assert summary.subject_id == 1
        assert not await services.combat.is_fighting(1)
        with pytest.raises(NoActiveSession):
            await services.combat.end(1)
        assert (await services.repository.get(1)).in_combat is False

    asyncio.run(scenario())


def test_successful_flee_ends_combat(tmp_path) -> None:
    async def scenario() -> None:
        services = build_services(tmp_path, rng=FixedRandom(offset=0))
        await register(services, 1)
        await services.combat.start(1, "cheese_rat")

        result = await services.combat.flee(1)
        assert result.success is True
        assert result.chance == 70
        assert result.damage_taken == 0
        assert not await services.combat.is_fighting(1)
        assert (await services.repository.get(1)).hp == 100

    asyncio.run(scenario())


def test_failed_flee_deals_opportunity_damage(tmp_path) -> None:
    async def scenario() -> None:
        services = build_services(tmp_path, rng=FixedRandom(offset=99))
        await register(services, 1)
        before = await services.combat.start(1, "cheese_rat")

        result = await services.combat.flee(1)
        assert result.success is False
        assert result.damage_taken == 19
        assert result.knocked_out is False

        after = await services.combat.state(1)
        assert after.subject_hp == 81
        assert after.turn is before.turn
        assert (await services.repository.get(1)).hp == 81

    asyncio.run(scenario())


def test_failed_flee_at_low_hp_knocks_out(tmp_path) -> None:
    async def scenario() -> None:
        services = build_services(tmp_path, rng=FixedRandom(offset=99))
        await register(services, 1, hp=10)
        await services.combat.start(1, "cheese_rat")

        result = await services.combat.flee(1)
        assert result.chance == 50
        assert result.knocked_out is True
        assert not await services.combat.is_fighting(1)

        player = await services.repository.get(1)
        assert player.hp == 1
        assert player.in_combat is False

    asyncio.run(scenario())


def test_effects_change_damage_and_decay(tmp_path) -> None:
    async def scenario() -> None:
        services = build_services(tmp_path)
        await register(services, 1)
        await services.combat.start(1, "cheese_rat")

        # STR 10 * 0.5 against DEF 2.
        assert (await services.combat.compute_damage(1)).amount == 4
        assert (await services.combat.compute_damage(1, "rusty_sword")).amount == 14

        await services.combat.apply_effect(1, "str", 10, 2)
        assert (await services.combat.compute_damage(1)).amount == 9

        await services.combat.attack(1, 1)
        state = await services.combat.state(1)
        assert state.buffs["str"].turns == 1
        await services.combat.attack(1, 1)
        assert "str" not in (await services.combat.state(1)).buffs

        with pytest.raises(UnknownContent):
            await services.combat.compute_damage(1, "excalibur")

    asyncio.run(scenario())


def test_pvp_shares_one_session_and_ends_atomically(tmp_path, monkeypatch) -> None:
    async def scenario() -> None:
        services = build_services(tmp_path)
        await register(services, 1)
        await register(services, 2, stats=StatBlock(10, 10, 5, 10))
        await register(services, 3, level=15)

        with pytest.raises(LevelMismatch):
            await services.combat.start(1, 3, OpponentKind.PLAYER)

        summary = await services.combat.start(1, 2, "player")
        assert summary.opponent_id == 2
        assert await services.combat.state(2) == summary
        for user_id in (1, 2):
            assert (await services.repository.get(user_id)).in_combat is True

        with pytest.raises(AlreadyInCombat):
            await services.combat.start(2, 1, OpponentKind.PLAYER)

        # Player 1 acts first, so the hit lands on player 2.
        result = await services.combat.attack(1, 30)
        assert result.opponent_hp == 70
        assert (await services.repository.get(2)).hp == 70

        writes = FlakyWrites(services.repository.update_many, failures=0)
        monkeypatch.setattr(services.repository, "update_many", writes)
        await services.combat.end(2)

        assert writes.batches == [(1, 2)]
        for user_id in (1, 2):
            assert not await services.combat.is_fighting(user_id)
            assert (await services.repository.get(user_id)).in_combat is False

    asyncio.run(scenario())


def test_pvp_win_is_relative_to_caller(tmp_path) -> None:
    async def scenario() -> None:
        services = build_services(tmp_path)
        await register(services, 1)
        await register(services, 2, stats=StatBlock(10, 10, 1, 10))
        await services.combat.start(1, 2, OpponentKind.PLAYER)

        await services.combat.attack(1, 10)
        # Player 2 now strikes player 1 down.
        result = await services.combat.attack(2, 500)
        assert result.state is AttackState.WIN
        assert result.subject_hp == 0
        assert (await services.repository.get(1)).hp == 0
        assert (await services.repository.get(2)).hp == 90

    asyncio.run(scenario())


def test_checkpoint_write_is_retried(tmp_path, monkeypatch) -> None:
    async def scenario() -> None:
        services = build_services(tmp_path)
        await register(services, 1)
        writes = FlakyWrites(services.repository.update_many, failures=1)
        monkeypatch.setattr(services.repository, "update_many", writes)

        await services.combat.start(1, "cheese_rat")
        assert writes.failures == 0
        assert (await services.repository.get(1)).in_combat is True

    asyncio.run(scenario())


def test_failed_end_keeps_session_for_retry(tmp_path, monkeypatch) -> None:
    async def scenario() -> None:
        services = build_services(tmp_path)
        await register(services, 1)
        await services.combat.start(1, "cheese_rat")

        writes = FlakyWrites(services.repository.update_many, failures=2)
        monkeypatch.setattr(services.repository, "update_many", writes)
        with pytest.raises(PersistenceError):
            await services.combat.attack(1, 500)

        state = await services.combat.state(1)
        assert state is not None
        assert state.opponent_hp == 30

        result = await services.combat.attack(1, 500)
        assert result.state is AttackState.WIN
        assert (await services.repository.get(1)).xp == 15

    asyncio.run(scenario())


def test_failed_start_rolls_back_session(tmp_path, monkeypatch) -> None:
    async def scenario() -> None:
        services = build_services(tmp_path)
        await register(services, 1)
        writes = FlakyWrites(services.repository.update_many, failures=2)
        monkeypatch.setattr(services.repository, "update_many", writes)

        with pytest.raises(PersistenceError):
            await services.combat.start(1, "cheese_rat")
        assert not await services.combat.is_fighting(1)

        await services.combat.start(1, "cheese_rat")
        assert await services.combat.is_fighting(1)

    asyncio.run(scenario())


def test_concurrent_attacks_serialise(tmp_path) -> None:
    async def scenario() -> None:
        services = build_services(tmp_path)
        await register(services, 1)
        await services.combat.start(1, "moss_troll")

        results = await asyncio.gather(*(services.combat.attack(1, 1) for _ in range(4)))
        assert [result.state for result in results] == [AttackState.CONTINUE] * 4
        state = await services.combat.state(1)
        assert state.turn_count == 4
        # Turns alternate, so two hits landed on each side.
        assert state.opponent_hp == 118
        assert state.subject_hp == 98

    asyncio.run(scenario())
