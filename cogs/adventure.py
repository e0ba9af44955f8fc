"""Slash commands for hunting monsters, duelling players and exploring dungeons."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable, Optional, Sequence

import discord
from discord import app_commands
from discord.ext import commands

from rpg import GameServices, Player, load_settings
from rpg.combat import AttackResult, AttackState, CombatSummary, OpponentKind, Side
from rpg.content import EncounterKind
from rpg.dungeon import DungeonSummary, EncounterOutcome
from rpg.errors import EngineError

log = logging.getLogger(__name__)


def _default_data_path() -> Path:
    configured = os.getenv("RPG_DATA_PATH")
    if configured:
        return Path(configured)
    return Path(__file__).resolve().parent.parent / "data"


def _settings_path() -> Optional[Path]:
    configured = os.getenv("RPG_SETTINGS")
    return Path(configured) if configured else None


def _format_hp(hp: int, max_hp: int) -> str:
    return f"{hp}/{max_hp} HP"


def _choices(names: Sequence[str], current: str) -> Iterable[app_commands.Choice[str]]:
    filtered = [name for name in names if current.lower() in name.lower()][:25]
    return [app_commands.Choice(name=name, value=name) for name in filtered]


def _foe_name(summary: CombatSummary, viewer_id: int) -> str:
    if viewer_id == summary.subject_id:
        return summary.opponent_name
    return f"<@{summary.subject_id}>"


def _format_combat(summary: CombatSummary, viewer_id: int) -> str:
    subject = _format_hp(summary.subject_hp, summary.subject_max_hp)
    opponent = _format_hp(summary.opponent_hp, summary.opponent_max_hp)
    if viewer_id == summary.subject_id:
        viewer, standing = Side.SUBJECT, f"You: {subject} | {summary.opponent_name}: {opponent}"
    else:
        viewer, standing = Side.OPPONENT, f"You: {opponent} | Challenger: {subject}"
    turn = "your" if summary.turn is viewer else "your opponent's"
    return f"{standing}\nIt's {turn} turn."


def _format_dungeon(summary: DungeonSummary) -> str:
    return (
        f"**{summary.dungeon_name}** - floor {summary.floor}/{summary.floors}, "
        f"{summary.completed_rooms} room(s) explored, {_format_hp(summary.hp, summary.max_hp)}"
    )


class AdventureCog(commands.Cog):
    """Combat and dungeon commands backed by the shared game services."""

    dungeon_group = app_commands.Group(name="dungeon", description="Explore multi-floor dungeons")

    def __init__(self, bot: commands.Bot, services: GameServices | None = None) -> None:
        self.bot = bot
        self.services = services or GameServices.build(
            _default_data_path(),
            settings=load_settings(_settings_path()),
        )

    async def cog_load(self) -> None:
        extracted = await self.services.state_sync.recover_all()
        if extracted:
            log.warning("Extracted %s player(s) left mid-session by the last run", len(extracted))

    async def cog_unload(self) -> None:
        await self.services.shutdown()

    # ------------------------------------------------------------------
    async def _send_error(self, interaction: discord.Interaction, exc: EngineError) -> None:
        if interaction.response.is_done():
            await interaction.followup.send(exc.message, ephemeral=True)
        else:
            await interaction.response.send_message(exc.message, ephemeral=True)

    async def _reconcile(self, user_id: int) -> None:
        async with self.services.locks.acquire(user_id):
            await self.services.state_sync.reconcile(user_id)

    async def _player_level(self, user_id: int) -> int:
        player = await self.services.repository.get(user_id)
        return player.level if player is not None else 1

    async def _monster_turn(self, user_id: int) -> Optional[AttackResult]:
        summary = await self.services.combat.state(user_id)
        if summary is None or summary.opponent_kind is not OpponentKind.MONSTER:
            return None
        if summary.turn is not Side.OPPONENT:
            return None
        roll = await self.services.combat.compute_damage(user_id)
        return await self.services.combat.attack(user_id, roll.amount)

    async def _opening_message(self, user_id: int, message: str, opening: Optional[AttackResult]) -> str:
        """Append the monster's first strike, if it won initiative, and the fight's standing."""

        if opening is not None:
            message += f"\nIt strikes first for {opening.damage} damage!"
            if opening.state is AttackState.LOSE:
                return f"{message}\nYou have been defeated..."
        current = await self.services.combat.state(user_id)
        if current is not None:
            message += "\n" + _format_combat(current, user_id) + "\nUse /attack or /flee."
        return message

    # -- profile -----------------------------------------------------------
    @app_commands.command(name="start", description="Begin your RPG journey")
    async def start(self, interaction: discord.Interaction) -> None:
        repository = self.services.repository
        if await repository.exists(interaction.user.id):
            await interaction.response.send_message("You've already started your journey!", ephemeral=True)
            return
        player = Player(user_id=interaction.user.id, username=interaction.user.display_name)
        await repository.save(player)
        log.info("Registered player %s", interaction.user.id)
        await interaction.response.send_message(
            f"Welcome, {player.username}! Try /hunt or /dungeon enter to begin."
        )

    @app_commands.command(name="profile", description="Show your level, health and stats")
    async def profile(self, interaction: discord.Interaction) -> None:
        player = await self.services.repository.get(interaction.user.id)
        if player is None:
            await interaction.response.send_message(
                "You need to start your RPG journey first! Use /start.",
                ephemeral=True,
            )
            return
        lines = [
            f"**{player.username}** - level {player.level}",
            f"{_format_hp(player.hp, player.max_hp)} | {player.mana}/{player.max_mana} mana",
            f"XP: {player.xp} | Gold: {player.gold}",
            *player.stats.as_lines(),
        ]
        await interaction.response.send_message("\n".join(lines), ephemeral=True)

    @app_commands.command(name="camp", description="Rest outside a dungeon to recover some HP")
    async def camp(self, interaction: discord.Interaction) -> None:
        try:
            await self._reconcile(interaction.user.id)
            result = await self.services.dungeons.camp(interaction.user.id)
        except EngineError as exc:
            await self._send_error(interaction, exc)
            return
        await interaction.response.send_message(
            f"You make camp and recover {result.healed} HP. ({_format_hp(result.hp, result.max_hp)})"
        )

    # -- combat ------------------------------------------------------------
    @app_commands.command(name="hunt", description="Fight a monster")
    @app_commands.describe(monster="Name or id of the monster to fight")
    async def hunt(self, interaction: discord.Interaction, monster: str) -> None:
        user_id = interaction.user.id
        try:
            await self._reconcile(user_id)
            target = self.services.content.monsters.find(monster)
            summary = await self.services.combat.start(user_id, target.id if target else monster)
            opening = await self._monster_turn(user_id)
        except EngineError as exc:
            await self._send_error(interaction, exc)
            return
        message = f"A wild **{summary.opponent_name}** appears!"
        await interaction.response.send_message(await self._opening_message(user_id, message, opening))

    @hunt.autocomplete("monster")
    async def monster_autocomplete(
        self, interaction: discord.Interaction, current: str
    ) -> Iterable[app_commands.Choice[str]]:
        level = await self._player_level(interaction.user.id)
        monsters = self.services.content.monsters.in_level_band(level, self.services.settings.monster_level_window)
        return _choices([monster.name for monster in monsters], current)

    @app_commands.command(name="duel", description="Challenge another player to a battle")
    async def duel(self, interaction: discord.Interaction, opponent: discord.Member) -> None:
        try:
            await self._reconcile(interaction.user.id)
            summary = await self.services.combat.start(
                interaction.user.id,
                opponent.id,
                OpponentKind.PLAYER,
            )
        except EngineError as exc:
            await self._send_error(interaction, exc)
            return
        await interaction.response.send_message(
            f"{interaction.user.mention} challenges {opponent.mention}!\n"
            + _format_combat(summary, interaction.user.id)
        )

    @app_commands.command(name="attack", description="Attack your current opponent")
    @app_commands.describe(weapon="Optional weapon to attack with")
    async def attack(self, interaction: discord.Interaction, weapon: Optional[str] = None) -> None:
        user_id = interaction.user.id
        combat = self.services.combat
        try:
            await self._reconcile(user_id)
            summary = await combat.state(user_id)
            if summary is None:
                await interaction.response.send_message("You're not in combat!", ephemeral=True)
                return
            side = Side.SUBJECT if user_id == summary.subject_id else Side.OPPONENT
            if summary.turn is not side:
                await interaction.response.send_message("It isn't your turn yet!", ephemeral=True)
                return
            roll = await combat.compute_damage(user_id, weapon)
            result = await combat.attack(user_id, roll.amount)
            counter = None
            if result.state is AttackState.CONTINUE:
                counter = await self._monster_turn(user_id)
        except EngineError as exc:
            await self._send_error(interaction, exc)
            return

        foe = _foe_name(summary, user_id)
        lines = [f"You deal {result.damage} damage" + (" - critical hit!" if roll.critical else "!")]
        if result.state is AttackState.WIN:
            lines.append(f"**{foe}** has been defeated!")
            if result.rewards:
                lines.append(f"You gain {result.rewards.xp} XP and {result.rewards.gold} gold.")
        elif result.state is AttackState.LOSE:
            lines.append("You have been defeated...")
        elif counter is not None:
            lines.append(f"{foe} hits back for {counter.damage} damage!")
            if counter.state is AttackState.LOSE:
                lines.append("You have been defeated...")
        current = await combat.state(user_id)
        if current is not None:
            lines.append(_format_combat(current, user_id))
        await interaction.response.send_message("\n".join(lines))

    @attack.autocomplete("weapon")
    async def weapon_autocomplete(
        self, interaction: discord.Interaction, current: str
    ) -> Iterable[app_commands.Choice[str]]:
        return _choices([item.id for item in self.services.content.items.weapons()], current)

    @app_commands.command(name="flee", description="Try to escape from combat")
    async def flee(self, interaction: discord.Interaction) -> None:
        try:
            await self._reconcile(interaction.user.id)
            result = await self.services.combat.flee(interaction.user.id)
        except EngineError as exc:
            await self._send_error(interaction, exc)
            return
        if result.success:
            message = f"You escaped! (rolled {result.roll}, needed {result.chance} or less)"
        elif result.knocked_out:
            message = f"You failed to escape and took {result.damage_taken} damage. You were knocked out!"
        else:
            message = f"You failed to escape and took {result.damage_taken} damage!"
        await interaction.response.send_message(message)

    # -- dungeons ----------------------------------------------------------
    @dungeon_group.command(name="enter", description="Enter a dungeon")
    @app_commands.describe(dungeon="Name or id of the dungeon")
    async def dungeon_enter(self, interaction: discord.Interaction, dungeon: str) -> None:
        try:
            await self._reconcile(interaction.user.id)
            target = self.services.content.dungeons.find(dungeon)
            summary = await self.services.dungeons.enter(interaction.user.id, target.id if target else dungeon)
        except EngineError as exc:
            await self._send_error(interaction, exc)
            return
        await interaction.response.send_message(f"You enter the dungeon.\n{_format_dungeon(summary)}")

    @dungeon_enter.autocomplete("dungeon")
    async def dungeon_autocomplete(
        self, interaction: discord.Interaction, current: str
    ) -> Iterable[app_commands.Choice[str]]:
        level = await self._player_level(interaction.user.id)
        return _choices([dungeon.name for dungeon in self.services.content.dungeons.available_for(level)], current)

    @dungeon_group.command(name="explore", description="Explore the next room")
    async def dungeon_explore(self, interaction: discord.Interaction) -> None:
        user_id = interaction.user.id
        opening = None
        try:
            await self._reconcile(user_id)
            outcome = await self.services.dungeons.explore_room(user_id)
            if outcome.combat is not None:
                opening = await self._monster_turn(user_id)
        except EngineError as exc:
            await self._send_error(interaction, exc)
            return
        message = self._describe_room(outcome)
        if outcome.combat is not None:
            message = await self._opening_message(user_id, message, opening)
            if opening is not None and opening.state is AttackState.LOSE:
                message += "\nYour dungeon run is over."
        await interaction.response.send_message(message)

    @dungeon_group.command(name="advance", description="Descend to the next floor")
    async def dungeon_advance(self, interaction: discord.Interaction) -> None:
        try:
            await self._reconcile(interaction.user.id)
            result = await self.services.dungeons.advance_floor(interaction.user.id)
        except EngineError as exc:
            await self._send_error(interaction, exc)
            return
        if result.completed:
            message = f"Dungeon cleared! You gain {result.xp} XP and {result.gold} gold."
        else:
            message = f"You descend to floor {result.floor}."
        await interaction.response.send_message(message)

    @dungeon_group.command(name="rest", description="Catch your breath and recover some HP")
    async def dungeon_rest(self, interaction: discord.Interaction) -> None:
        try:
            await self._reconcile(interaction.user.id)
            result = await self.services.dungeons.rest(interaction.user.id)
        except EngineError as exc:
            await self._send_error(interaction, exc)
            return
        await interaction.response.send_message(
            f"You rest and recover {result.healed} HP. ({_format_hp(result.hp, result.max_hp)})"
        )

    @dungeon_group.command(name="exit", description="Leave the dungeon")
    async def dungeon_exit(self, interaction: discord.Interaction) -> None:
        try:
            await self._reconcile(interaction.user.id)
            summary = await self.services.dungeons.exit(interaction.user.id)
        except EngineError as exc:
            await self._send_error(interaction, exc)
            return
        await interaction.response.send_message(
            f"You leave {summary.dungeon_name} with {_format_hp(summary.hp, summary.max_hp)}."
        )

    @dungeon_group.command(name="status", description="Show your dungeon progress")
    async def dungeon_status(self, interaction: discord.Interaction) -> None:
        summary = await self.services.dungeons.state(interaction.user.id)
        if summary is None:
            await interaction.response.send_message("You're not in a dungeon!", ephemeral=True)
            return
        await interaction.response.send_message(_format_dungeon(summary), ephemeral=True)

    @staticmethod
    def _describe_room(outcome: EncounterOutcome) -> str:
        header = f"Floor {outcome.floor}, room {outcome.room}: "
        if outcome.combat is not None:
            kind = "boss" if outcome.kind is EncounterKind.BOSS else "monster"
            return f"{header}a {kind} blocks your path - **{outcome.combat.opponent_name}**!"
        if outcome.kind is EncounterKind.TRAP and outcome.trap is not None:
            if outcome.trap.avoided:
                return f"{header}you spot a trap and avoid it. (save {outcome.trap.save} vs DC {outcome.trap.dc})"
            return (
                f"{header}a trap springs! You take {outcome.damage} damage. "
                f"({_format_hp(outcome.hp, outcome.max_hp)})"
            )
        return f"{header}you find a treasure chest with {outcome.gold} gold!"


async def setup(bot: commands.Bot) -> None:
    await bot.add_cog(AdventureCog(bot))
