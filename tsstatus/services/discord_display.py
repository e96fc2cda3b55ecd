# tsstatus/services/discord_display.py
from __future__ import annotations

import asyncio
import logging

import discord

from tsstatus.core.errors import DisplayMissing
from tsstatus.core.state import DisplayRef

log = logging.getLogger(__name__)


class DiscordDisplay:
    """
    Thin wrapper over the Discord calls the scheduler needs.

    NotFound / Forbidden on the display target become DisplayMissing:
    the message is gone (or unreachable) for good and must be recreated.
    Any other discord.HTTPException is passed through as transient.
    """

    def __init__(self, bot: discord.Client, *, timeout: float = 15.0):
        self.bot = bot
        self.timeout = timeout

    async def _channel(self, channel_id: int):
        ch = self.bot.get_channel(channel_id)
        if ch is not None:
            return ch
        return await self.bot.fetch_channel(channel_id)

    async def send(self, channel: discord.abc.Messageable, embed: discord.Embed) -> DisplayRef:
        msg = await asyncio.wait_for(channel.send(embed=embed), timeout=self.timeout)
        guild = getattr(msg, "guild", None)
        return DisplayRef(
            message_id=msg.id,
            channel_id=msg.channel.id,
            guild_id=guild.id if guild is not None else None,
        )

    async def edit(self, ref: DisplayRef, embed: discord.Embed) -> None:
        try:
            ch = await asyncio.wait_for(self._channel(ref.channel_id), timeout=self.timeout)
            if not hasattr(ch, "get_partial_message"):
                raise DisplayMissing(f"channel {ref.channel_id} cannot hold messages")
            msg = ch.get_partial_message(ref.message_id)
            await asyncio.wait_for(msg.edit(content=None, embed=embed), timeout=self.timeout)
        except (discord.NotFound, discord.Forbidden) as e:
            raise DisplayMissing(f"status message {ref.message_id} unreachable: {e}") from e

    async def resolve_channel(self, channel_id: int):
        """
        Returns the channel, or None if Discord could not answer right now.

        Raises DisplayMissing when the channel does not exist or is hidden
        from the bot; asking again will not help.
        """
        try:
            return await asyncio.wait_for(self._channel(channel_id), timeout=self.timeout)
        except (discord.NotFound, discord.Forbidden) as e:
            raise DisplayMissing(f"count channel {channel_id} is invalid / not found: {e}") from e
        except (discord.HTTPException, TimeoutError) as e:
            log.warning("Could not resolve count channel %s yet: %s", channel_id, e)
            return None

    async def rename(self, channel, name: str) -> None:
        await asyncio.wait_for(channel.edit(name=name), timeout=self.timeout)
