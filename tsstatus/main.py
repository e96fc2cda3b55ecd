# tsstatus/main.py
import asyncio
import logging
import os
import discord
from discord.ext import commands

from tsstatus.config import load_settings
from tsstatus.core.scheduler import UpdateScheduler
from tsstatus.core.snapshot import SnapshotReader
from tsstatus.core.state import AppContext
from tsstatus.loader import load_all
from tsstatus.services.db import Database
from tsstatus.services.discord_display import DiscordDisplay
from tsstatus.services.display_store import DisplayStore
from tsstatus.services.supervisor import ConnectionSupervisor
from tsstatus.services.teamspeak import connect_session

logging.basicConfig(level=logging.INFO)
log = logging.getLogger("tsstatus")


async def run():
    settings = load_settings()

    intents = discord.Intents.default()
    intents.message_content = True

    # "@bot create" is the only command
    bot = commands.Bot(
        command_prefix=commands.when_mentioned,
        intents=intents,
        case_insensitive=True,
        help_command=None,
        allowed_mentions=discord.AllowedMentions(everyone=False),
    )

    os.makedirs(settings.db_dir, exist_ok=True)
    db = Database(os.path.join(settings.db_dir, "display.sqlite3"))
    store = DisplayStore(db)

    app = AppContext()
    display = DiscordDisplay(bot)
    reader = SnapshotReader(
        query_timeout=settings.query_timeout_seconds,
        ignore_default=settings.status_ignore_default,
        ignored_patterns=settings.ignored_channel_patterns,
    )
    scheduler = UpdateScheduler(app, settings, reader, display, store)
    supervisor = ConnectionSupervisor(
        app,
        lambda: connect_session(settings),
        on_change=scheduler.mark_dirty,
    )

    @bot.event
    async def setup_hook():
        await db.connect()
        app.display = await store.load()
        await load_all(bot, settings, app, scheduler)
        supervisor.start()
        log.info("setup_hook: cogs loaded, TS supervisor started")

    @bot.event
    async def on_message(message: discord.Message):
        if message.author.bot:
            return
        await bot.process_commands(message)

    try:
        async with bot:
            try:
                await bot.start(settings.token)
            finally:
                log.info("Shutting down...")
                # no persistence writes once closing is set
                app.closing = True
    finally:
        await supervisor.stop()
        await db.close()


def main():
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
