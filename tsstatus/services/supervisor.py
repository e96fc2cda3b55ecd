# tsstatus/services/supervisor.py
from __future__ import annotations

import asyncio
import logging

from tsstatus.config import CONNECT_RETRY_SECONDS, RECONNECT_DELAY_SECONDS
from tsstatus.core.errors import SourceUnavailable, is_fatal_transport_error
from tsstatus.core.state import CONNECTED, CONNECTING, DISCONNECTED, AppContext, ConnectionState

log = logging.getLogger(__name__)


class ConnectionSupervisor:
    """
    Keeps one live TeamSpeak session published on the AppContext.

    Disconnected -> Connecting -> Connected
    Connecting   -> Reconnecting(30s)   connect failed
    Connected    -> Reconnecting(5s)    subscribe failed / fatal error / close
    Reconnecting -> Connecting          after the delay, old session closed

    `connect` is an async factory returning a session with subscribe() and
    quit(). Change notifications only set the dirty flag; the scheduler
    decides what to do with it.
    """

    def __init__(self, app: AppContext, connect, *, on_change=None,
                 reconnect_delay: float = RECONNECT_DELAY_SECONDS,
                 connect_retry_delay: float = CONNECT_RETRY_SECONDS,
                 sleep=asyncio.sleep):
        self.app = app
        self.connect = connect
        self.on_change = on_change or app.dirty.set
        self.reconnect_delay = reconnect_delay
        self.connect_retry_delay = connect_retry_delay
        self.sleep = sleep

        self._lost = asyncio.Event()
        self._current = None
        self._task: asyncio.Task | None = None

    # ---------------- state ----------------

    def _transition(self, state: ConnectionState) -> None:
        if state != self.app.connection:
            log.info("TS connection: %s -> %s", self.app.connection, state)
        self.app.connection = state

    async def _discard(self, session) -> None:
        if session is None:
            return
        if self._current is session:
            self._current = None
        if self.app.session is session:
            self.app.session = None
        # best-effort: a dying session often fails to quit cleanly; nothing to recover
        try:
            await session.quit()
        except Exception as e:
            log.debug("ignored error while closing TS session: %s", e)

    # ---------------- session callbacks ----------------

    def _handlers(self, session):
        def on_change():
            if self._current is session:
                self.on_change()

        def on_error(exc):
            if self._current is not session:
                return
            if is_fatal_transport_error(exc):
                log.error("TS fatal error: %s", exc)
                self._lost.set()
            else:
                log.warning("TS error: %s", exc)

        def on_close():
            if self._current is session:
                log.warning("TS connection closed")
                self._lost.set()

        return on_change, on_error, on_close

    # ---------------- main loop ----------------

    async def run(self) -> None:
        delay = 0.0
        while not self.app.closing:
            if delay:
                self._transition(ConnectionState.reconnecting(delay))
                await self.sleep(delay)
                if self.app.closing:
                    break

            self._transition(CONNECTING)
            try:
                session = await self.connect()
            except SourceUnavailable as e:
                log.error("Error connecting to TeamSpeak: %s", e)
                delay = self.connect_retry_delay
                continue

            self._lost.clear()
            self._current = session
            on_change, on_error, on_close = self._handlers(session)
            try:
                await session.subscribe(on_change=on_change, on_error=on_error, on_close=on_close)
            except SourceUnavailable as e:
                log.error("Error registering TS events: %s", e)
                await self._discard(session)
                delay = self.reconnect_delay
                continue

            self.app.session = session
            self._transition(CONNECTED)
            self.on_change()

            await self._lost.wait()
            await self._discard(session)
            delay = self.reconnect_delay

        self._transition(DISCONNECTED)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run(), name="ts3-supervisor")
        return self._task

    async def stop(self) -> None:
        self.app.closing = True
        self._lost.set()
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        await self._discard(self._current or self.app.session)
        self._transition(DISCONNECTED)
