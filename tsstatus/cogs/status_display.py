# tsstatus/cogs/status_display.py

import logging

import discord
from discord.ext import commands, tasks

from tsstatus.core.scheduler import UpdateScheduler

log = logging.getLogger(__name__)


class StatusDisplayCog(commands.Cog):
    """
    Discord side of the status bridge:
    - `@bot create` posts a new status message in the current channel
    - deleting that message stops updates until it is recreated
    - two loops drive the scheduler: status message (fast) and count label (slow)
    """

    def __init__(self, bot: commands.Bot, settings, app, scheduler: UpdateScheduler):
        self.bot = bot
        self.settings = settings
        self.app = app
        self.scheduler = scheduler

        self.status_tick.change_interval(seconds=settings.tick_seconds)
        self.count_tick.change_interval(seconds=settings.count_interval_seconds)

        self.status_tick.start()
        self.count_tick.start()

    def cog_unload(self):
        self.status_tick.cancel()
        self.count_tick.cancel()

    # ---------------- command ----------------

    @commands.command(name="create")
    async def create(self, ctx: commands.Context):
        """
        (Re)create the TeamSpeak status message here.
        Usage:
          @bot create
        """
        if self.app.session is None:
            return await ctx.reply("Not connected to the TeamSpeak server yet!")

        try:
            await self.scheduler.create_display(ctx.channel)
        except (discord.HTTPException, TimeoutError) as e:
            log.error("Error creating status embed: %s", e)
            return await ctx.reply(f"Failed to create status display: {e}")

        # best-effort: missing Manage Messages just leaves the command visible
        try:
            await ctx.message.delete()
        except discord.HTTPException:
            pass

    # ---------------- events ----------------

    @commands.Cog.listener()
    async def on_ready(self):
        log.info("Logged in as %s", self.bot.user)
        await self.scheduler.ensure_count_channel()

    @commands.Cog.listener()
    async def on_raw_message_delete(self, payload: discord.RawMessageDeleteEvent):
        if await self.scheduler.forget_display(payload.message_id):
            log.info("Status message was deleted, stopping updates")

    # ---------------- loops ----------------

    @tasks.loop(seconds=5)
    async def status_tick(self):
        try:
            await self.scheduler.tick()
        except Exception:
            # one bad tick must not stop the loop
            log.exception("status tick failed")

    @tasks.loop(seconds=60)
    async def count_tick(self):
        try:
            await self.scheduler.count_tick()
        except Exception:
            log.exception("count tick failed")

    @status_tick.before_loop
    async def before_status_tick(self):
        await self.bot.wait_until_ready()

    @count_tick.before_loop
    async def before_count_tick(self):
        await self.bot.wait_until_ready()
