import logging

import discord
from discord.ext import commands

log = logging.getLogger(__name__)


class ErrorHandlerCog(commands.Cog):
    def __init__(self, bot: commands.Bot):
        self.bot = bot

    @commands.Cog.listener()
    async def on_command_error(self, ctx: commands.Context, error: Exception):
        # anything else said to the bot is not a command
        if isinstance(error, commands.CommandNotFound):
            return

        original = getattr(error, "original", error)
        if isinstance(original, discord.Forbidden):
            return await ctx.reply("I’m missing permissions (Send Messages / Embed Links) in this channel.")

        log.error("Command %s failed", ctx.command, exc_info=error)
        await ctx.reply(f"Command error: `{type(original).__name__}`")
