# tsstatus/ui/formatting.py
from __future__ import annotations

from datetime import datetime

import discord

from tsstatus.core.snapshot import OccupancySnapshot

INACTIVE_FIELD_NAME = "Inactive Channels"
FOOTER_TEXT = "Last updated"
TRUNCATION_MARKER = "..."
OVERFLOW_FIELD_NAME = "More Channels"

# Discord embed limits; an embed over any of them is rejected with a 400
MAX_FIELDS = 25
MAX_FIELD_NAME = 256
MAX_FIELD_VALUE = 1024
MAX_EMBED_CHARS = 6000


def format_member(name: str, max_len: int) -> str:
    if len(name) > max_len:
        name = name[:max_len] + TRUNCATION_MARKER
    return f"- {name}"


def _clip(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:max(limit - len(TRUNCATION_MARKER), 0)] + TRUNCATION_MARKER


def status_fields(snapshot: OccupancySnapshot, max_len: int, *,
                  budget: int = MAX_EMBED_CHARS) -> list[tuple[str, str]]:
    """
    Content model of the status embed, as (field name, field value) pairs.

    One field per occupied channel in snapshot order, then a single
    "Inactive Channels" line if any channel is empty.

    The result always fits an embed: at most MAX_FIELDS fields (channels
    that do not fit are listed by name under "More Channels"), every name
    and value clipped to its limit, and no more than `budget` characters
    in total.
    """
    fields = [
        (g.name, "\n".join(format_member(m, max_len) for m in g.members))
        for g in snapshot.groups.values()
    ]

    room = MAX_FIELDS - (1 if snapshot.empty_group_names else 0)
    if len(fields) > room:
        hidden = fields[room - 1:]
        fields = fields[:room - 1]
        fields.append((OVERFLOW_FIELD_NAME, ", ".join(name for name, _ in hidden)))

    if snapshot.empty_group_names:
        fields.append((INACTIVE_FIELD_NAME, ", ".join(snapshot.empty_group_names)))

    out: list[tuple[str, str]] = []
    left = budget
    for name, value in fields:
        name = _clip(name, MAX_FIELD_NAME)
        limit = min(MAX_FIELD_VALUE, left - len(name))
        if len(value) > limit and limit <= len(TRUNCATION_MARKER):
            break
        value = _clip(value, limit)
        out.append((name, value))
        left -= len(name) + len(value)
    return out


def status_embed(snapshot: OccupancySnapshot, settings, *, now: datetime) -> discord.Embed:
    embed = discord.Embed(
        title=settings.embed_title,
        color=settings.embed_color,
        timestamp=now,
    )

    budget = MAX_EMBED_CHARS - len(settings.embed_title) - len(FOOTER_TEXT)
    for name, value in status_fields(snapshot, settings.max_username_length, budget=budget):
        embed.add_field(name=name, value=value, inline=False)

    embed.set_footer(text=FOOTER_TEXT)
    return embed


def loading_embed(settings, *, now: datetime) -> discord.Embed:
    embed = discord.Embed(
        title=settings.embed_title,
        description="Loading status...",
        color=settings.embed_color,
        timestamp=now,
    )
    embed.set_footer(text=FOOTER_TEXT)
    return embed
