# tsstatus/core/snapshot.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable

from tsstatus.core.errors import SourceUnavailable, TransportFatal

log = logging.getLogger(__name__)

# channel names containing any of these are never shown
DEFAULT_IGNORED_PATTERNS = ("spacer", "Server Query")


@dataclass(frozen=True)
class VoiceChannel:
    id: int
    name: str
    is_default: bool = False


@dataclass(frozen=True)
class VoiceClient:
    id: int
    nickname: str
    channel_id: int


@dataclass(frozen=True)
class Group:
    name: str
    members: tuple[str, ...]


@dataclass(frozen=True)
class OccupancySnapshot:
    # channel id -> group, in the server's channel order
    groups: dict[int, Group]
    empty_group_names: tuple[str, ...] = ()

    @property
    def occupant_count(self) -> int:
        return sum(len(g.members) for g in self.groups.values())


def _is_ignored(channel: VoiceChannel, ignore_default: bool, patterns: Iterable[str]) -> bool:
    if ignore_default and channel.is_default:
        return True
    return any(p in channel.name for p in patterns)


def build_snapshot(
    channels: Iterable[VoiceChannel],
    clients: Iterable[VoiceClient],
    *,
    ignore_default: bool = True,
    ignored_patterns: Iterable[str] = DEFAULT_IGNORED_PATTERNS,
) -> OccupancySnapshot:
    """
    Group clients by channel.

    Filtered channels (spacers, the query channel, optionally the default
    lobby) appear neither as groups nor as empty names.
    """
    patterns = tuple(ignored_patterns)
    clients = list(clients)

    groups: dict[int, Group] = {}
    empty: list[str] = []

    for ch in channels:
        if _is_ignored(ch, ignore_default, patterns):
            continue

        members = tuple(c.nickname for c in clients if c.channel_id == ch.id)
        if members:
            groups[ch.id] = Group(name=ch.name, members=members)
        else:
            empty.append(ch.name)

    return OccupancySnapshot(groups=groups, empty_group_names=tuple(empty))


def count_occupants(
    channels: Iterable[VoiceChannel],
    clients: Iterable[VoiceClient],
    *,
    ignore_default: bool = True,
) -> int:
    # only the default channel is excluded here; spacers are not
    if not ignore_default:
        return len(list(clients))

    default_ids = {ch.id for ch in channels if ch.is_default}
    return sum(1 for c in clients if c.channel_id not in default_ids)


def _abandon(session, err: TransportFatal) -> None:
    # a session without abandon() simply fails this read
    abandon = getattr(session, "abandon", None)
    if abandon is not None:
        abandon(err)


class SnapshotReader:
    """Fetches channels + real clients from a live session in one go."""

    def __init__(self, *, query_timeout: float = 10.0, ignore_default: bool = True,
                 ignored_patterns: Iterable[str] = DEFAULT_IGNORED_PATTERNS):
        self.query_timeout = query_timeout
        self.ignore_default = ignore_default
        self.ignored_patterns = tuple(ignored_patterns)

    async def read(self, session) -> tuple[list[VoiceChannel], list[VoiceClient]]:
        if session is None:
            raise SourceUnavailable("not connected to the voice server")

        try:
            channels, clients = await asyncio.wait_for(
                asyncio.gather(session.list_channels(), session.list_clients()),
                timeout=self.query_timeout,
            )
        except asyncio.TimeoutError as e:
            err = TransportFatal("Connection timed out")
            _abandon(session, err)
            raise err from e
        except SourceUnavailable:
            raise
        except OSError as e:
            err = TransportFatal(str(e) or type(e).__name__)
            _abandon(session, err)
            raise err from e

        return list(channels), list(clients)

    async def snapshot(self, session) -> OccupancySnapshot:
        channels, clients = await self.read(session)
        snap = build_snapshot(
            channels,
            clients,
            ignore_default=self.ignore_default,
            ignored_patterns=self.ignored_patterns,
        )
        log.debug("snapshot: groups=%d empty=%d", len(snap.groups), len(snap.empty_group_names))
        return snap
