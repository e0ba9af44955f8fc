import logging
import os
from pathlib import Path

import discord
from discord.ext import commands
from dotenv import load_dotenv

from rpg.config import ENV_PREFIX

log = logging.getLogger("rpg.bot")


def configure_logging() -> None:
    level_name = os.getenv(f"{ENV_PREFIX}LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


def get_cog_module_names(cogs_path: Path) -> list[str]:
    return [
        f"cogs.{path.stem}"
        for path in sorted(cogs_path.glob("*.py"))
        if not path.name.startswith("__")
    ]


def load_environment() -> str:
    """Load ``.env`` and return the bot token.

    ``RPG_DATA_PATH`` and ``RPG_SETTINGS`` are read by the adventure cog
    once the environment is populated.
    """

    load_dotenv()
    token = os.getenv("DISCORD_TOKEN")
    if not token:
        raise RuntimeError(
            "DISCORD_TOKEN environment variable is required. "
            "Set it in the .env file before starting the bot."
        )
    return token


async def load_cogs(bot: commands.Bot, cogs_path: Path) -> None:
    for module_name in get_cog_module_names(cogs_path):
        await bot.load_extension(module_name)
        log.info("Loaded cog: %s", module_name)


class RpgBot(commands.Bot):
    """Bot subclass that only supports slash (application) commands."""

    def __init__(self) -> None:
        super().__init__(
            command_prefix=commands.when_mentioned,
            intents=discord.Intents.default(),
            help_command=None,
        )
        self._cogs_path = Path(__file__).parent / "cogs"

    async def setup_hook(self) -> None:  # type: ignore[override]
        await load_cogs(self, self._cogs_path)
        synced_commands = await self.tree.sync()
        log.info("Synced %s application commands", len(synced_commands))

    def add_command(  # type: ignore[override]
        self, command: commands.Command, *args, **kwargs
    ) -> None:
        raise TypeError("RpgBot does not support prefixed commands.")

    async def process_commands(self, message: discord.Message) -> None:  # type: ignore[override]
        return


def main() -> None:
    token = load_environment()
    configure_logging()
    log.info("Player data stored under %s", os.getenv("RPG_DATA_PATH") or "./data")
    bot = RpgBot()
    try:
        bot.run(token, log_handler=None)
    except KeyboardInterrupt:
        log.info("Shutting down bot")


if __name__ == "__main__":
    main()
