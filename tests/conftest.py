"""Shared fakes and fixtures."""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from tsstatus.config import Settings
from tsstatus.core.snapshot import SnapshotReader, VoiceChannel, VoiceClient
from tsstatus.core.state import AppContext, DisplayRef


class FakeSession:
    """In-memory voice session returning whatever channels/clients are set."""

    def __init__(self, channels=None, clients=None):
        self.channels = list(channels or [])
        self.clients = list(clients or [])
        self.error: Exception | None = None
        self.calls = 0

    async def list_channels(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.channels)

    async def list_clients(self):
        if self.error is not None:
            raise self.error
        return list(self.clients)


class Clock:
    """Manually advanced monotonic + wall clock."""

    def __init__(self, start: datetime | None = None):
        self.mono = 1000.0
        self.start = start or datetime(2024, 1, 1, 12, 0, tzinfo=UTC)

    def monotonic(self) -> float:
        return self.mono

    def wall(self) -> datetime:
        return self.start + timedelta(seconds=self.mono - 1000.0)

    def advance(self, seconds: float) -> None:
        self.mono += seconds


@pytest.fixture
def settings() -> Settings:
    return Settings(token="t", ts_host="ts.example", ts_username="u", ts_password="p")


@pytest.fixture
def channels() -> list[VoiceChannel]:
    return [
        VoiceChannel(1, "Lobby", is_default=True),
        VoiceChannel(2, "spacer-1"),
        VoiceChannel(3, "Gaming"),
        VoiceChannel(4, "AFK"),
    ]


@pytest.fixture
def clients() -> list[VoiceClient]:
    return [
        VoiceClient(10, "alice", 1),
        VoiceClient(11, "bob", 3),
        VoiceClient(12, "carol", 3),
    ]


@pytest.fixture
def session(channels, clients) -> FakeSession:
    return FakeSession(channels, clients)


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def display() -> MagicMock:
    d = MagicMock()
    d.edit = AsyncMock()
    d.send = AsyncMock(return_value=DisplayRef(message_id=500, channel_id=50, guild_id=5))
    d.rename = AsyncMock()
    d.resolve_channel = AsyncMock()
    return d


@pytest.fixture
def store() -> MagicMock:
    s = MagicMock()
    s.save = AsyncMock()
    s.load = AsyncMock(return_value=DisplayRef.empty())
    return s


@pytest.fixture
def app(session) -> AppContext:
    ctx = AppContext()
    ctx.session = session
    return ctx


@pytest.fixture
def reader() -> SnapshotReader:
    return SnapshotReader(query_timeout=1.0)
