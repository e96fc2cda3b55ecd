# tsstatus/core/state.py
from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class DisplayRef:
    """
    Durable identity of the one status message.

    Holds:
    - where the message lives (message / channel / guild ids)
    - fingerprint of the last snapshot that was actually rendered
    - when that render happened (UTC)
    """

    message_id: int | None = None
    channel_id: int | None = None
    guild_id: int | None = None
    last_fingerprint: str | None = None
    last_update_at: datetime | None = None

    @classmethod
    def empty(cls) -> "DisplayRef":
        return cls()

    @property
    def is_active(self) -> bool:
        return self.message_id is not None and self.channel_id is not None

    def rendered(self, fingerprint: str, at: datetime) -> "DisplayRef":
        return replace(self, last_fingerprint=fingerprint, last_update_at=at)


@dataclass
class CountLabelState:
    last_count: int | None = None
    # monotonic timestamps of recent renames, oldest first
    rename_history: list[float] = field(default_factory=list)


class ConnectionPhase(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


@dataclass(frozen=True)
class ConnectionState:
    phase: ConnectionPhase = ConnectionPhase.DISCONNECTED
    delay: float | None = None

    @classmethod
    def reconnecting(cls, delay: float) -> "ConnectionState":
        return cls(ConnectionPhase.RECONNECTING, delay)

    def __str__(self) -> str:
        if self.phase is ConnectionPhase.RECONNECTING:
            return f"reconnecting({self.delay:g}s)"
        return self.phase.value


DISCONNECTED = ConnectionState(ConnectionPhase.DISCONNECTED)
CONNECTING = ConnectionState(ConnectionPhase.CONNECTING)
CONNECTED = ConnectionState(ConnectionPhase.CONNECTED)


class DirtyFlag:
    """
    Pending-update marker.

    Any number of producers may set it (voice notifications, reconnects,
    display creation). The scheduler tick is the only consumer: consume()
    reads and clears in one step, so a burst of notifications collapses into
    a single render.
    """

    def __init__(self):
        self._pending = False

    @property
    def is_set(self) -> bool:
        return self._pending

    def set(self) -> None:
        self._pending = True

    def consume(self) -> bool:
        pending = self._pending
        self._pending = False
        return pending


@dataclass
class AppContext:
    """Everything the bridge mutates at runtime, owned in one place."""

    display: DisplayRef = field(default_factory=DisplayRef.empty)
    count_label: CountLabelState = field(default_factory=CountLabelState)
    connection: ConnectionState = DISCONNECTED

    # live TeamSpeak session (None while not connected)
    session: Any = None
    # resolved Discord channel whose name shows the occupant count
    count_channel: Any = None

    dirty: DirtyFlag = field(default_factory=DirtyFlag)
    closing: bool = False
    render_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
