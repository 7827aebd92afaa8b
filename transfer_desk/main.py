from __future__ import annotations

import logging

import discord
from discord.ext import commands
from dotenv import load_dotenv

from .aggregator import TimingAggregator, TimingsBoard
from .backend import BackendError, SqliteBackend
from .commands import register_commands
from .config import Config, load_config
from .db import Database
from .desk import ServiceDesk
from .session import SessionStore


class ServiceDeskBot(commands.Bot):
    def __init__(self, config: Config, db: Database) -> None:
        intents = discord.Intents.none()
        intents.guilds = True

        super().__init__(command_prefix="!", intents=intents)

        self.config = config
        self.db = db
        self.backend = SqliteBackend(db)
        self.session_store = SessionStore(db)
        self.desk = ServiceDesk(self.backend, self.session_store)
        self.board = TimingsBoard(TimingAggregator(self.backend))

        self.logger = logging.getLogger("transfer-desk-bot")

    async def setup_hook(self) -> None:
        register_commands(self)
        await self.tree.sync(guild=discord.Object(id=self.config.guild_id))

        try:
            await self.desk.restore_session()
        except BackendError:
            self.logger.exception("Failed to restore the stored customer session")

    async def on_ready(self) -> None:
        self.logger.info("Connected as %s (%s)", self.user, self.user.id if self.user else "unknown")

        guild = self.get_guild(self.config.guild_id)
        if guild is None:
            self.logger.error("Configured guild %s not found", self.config.guild_id)
            await self.close()

    async def close(self) -> None:
        self.db.close()
        await super().close()


def configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )


def main() -> None:
    load_dotenv()
    configure_logging()

    config = load_config()
    db = Database(config.database_path)
    db.initialize()

    bot = ServiceDeskBot(config=config, db=db)
    bot.run(config.discord_token)


if __name__ == "__main__":
    main()
