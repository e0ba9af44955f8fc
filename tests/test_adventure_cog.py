import asyncio
from types import SimpleNamespace

from conftest import FixedRandom, build_services, register
from cogs.adventure import AdventureCog
from rpg.combat import OpponentKind, Side
from rpg.players import StatBlock


class DummyResponse:
    def __init__(self) -> None:
        self.messages: list[tuple[str, bool]] = []

    def is_done(self) -> bool:
        return bool(self.messages)

    async def send_message(self, content: str, *, ephemeral: bool = False) -> None:
        self.messages.append((content, ephemeral))


def _make_cog(services) -> AdventureCog:
    cog = AdventureCog.__new__(AdventureCog)
    cog.bot = None
    cog.services = services
    return cog


def _interaction(user_id: int) -> SimpleNamespace:
    user = SimpleNamespace(id=user_id, display_name=f"player-{user_id}")
    return SimpleNamespace(user=user, response=DummyResponse())


def test_room_monster_with_initiative_strikes_before_the_player(tmp_path) -> None:
    async def _run() -> None:
        services = build_services(tmp_path, rng=FixedRandom(value=0.1))
        await register(services, 1, stats=StatBlock(10, 10, 0, 10))
        await services.dungeons.enter(1, "mouldy_cellar")
        cog = _make_cog(services)

        explore = _interaction(1)
        await AdventureCog.dungeon_explore.callback(cog, explore)
        content, ephemeral = explore.response.messages[0]
        assert ephemeral is False
        assert "**Cheese Rat**" in content
        assert "It strikes first for 2 damage!" in content
        assert "It's your turn." in content

        fight = await services.combat.state(1)
        assert fight.turn is Side.SUBJECT
        assert fight.subject_hp == 98

        attack = _interaction(1)
        await AdventureCog.attack.callback(cog, attack)
        content, _ = attack.response.messages[0]
        assert content.startswith("You deal 4 damage!")
        assert "Cheese Rat hits back for 2 damage!" in content

        fight = await services.combat.state(1)
        assert (fight.subject_hp, fight.opponent_hp) == (96, 26)
        assert fight.turn is Side.SUBJECT

    asyncio.run(_run())


def test_duel_victory_names_the_defeated_challenger(tmp_path) -> None:
    async def _run() -> None:
        services = build_services(tmp_path)
        await register(services, 1, hp=3, stats=StatBlock(10, 10, 0, 10))
        await register(services, 2, stats=StatBlock(10, 10, 10, 10))
        summary = await services.combat.start(1, 2, OpponentKind.PLAYER)
        assert summary.turn is Side.OPPONENT
        cog = _make_cog(services)

        attack = _interaction(2)
        await AdventureCog.attack.callback(cog, attack)
        content, _ = attack.response.messages[0]
        assert "**<@1>** has been defeated!" in content
        assert "player-2" not in content
        assert not await services.combat.is_fighting(1)
        assert not await services.combat.is_fighting(2)

    asyncio.run(_run())


def test_camp_command_reports_recovered_hp(tmp_path) -> None:
    async def _run() -> None:
        services = build_services(tmp_path)
        await register(services, 1, hp=0)
        cog = _make_cog(services)

        camp = _interaction(1)
        await AdventureCog.camp.callback(cog, camp)
        assert camp.response.messages == [("You make camp and recover 25 HP. (25/100 HP)", False)]

        await register(services, 2, hp=0)
        hunt = _interaction(2)
        await AdventureCog.hunt.callback(cog, hunt, "cheese rat")
        assert hunt.response.messages == [("You're unconscious! Rest at /camp first.", True)]

    asyncio.run(_run())
