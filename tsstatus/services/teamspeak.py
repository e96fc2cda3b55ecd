# tsstatus/services/teamspeak.py
from __future__ import annotations

import asyncio
import logging
import time

import ts3.query

from tsstatus.core.errors import FATAL_ERROR_IDS, SourceUnavailable, TransportFatal
from tsstatus.core.snapshot import VoiceChannel, VoiceClient

log = logging.getLogger(__name__)

# notifications that mean "someone joined, left or moved"
CHANGE_EVENTS = frozenset({"notifycliententerview", "notifyclientleftview", "notifyclientmoved"})

# clientlist client_type: 0 = voice client, 1 = query connection
REAL_CLIENT_TYPE = "0"

TS3_ERRORS = (
    ts3.query.TS3QueryError,
    ts3.query.TS3TimeoutError,
    ts3.query.TS3TransportError,
    asyncio.TimeoutError,
    EOFError,
    OSError,
)


def channel_from_row(row) -> VoiceChannel:
    return VoiceChannel(
        id=int(row["cid"]),
        name=row.get("channel_name", ""),
        is_default=str(row.get("channel_flag_default", "0")) == "1",
    )


def client_from_row(row) -> VoiceClient:
    return VoiceClient(
        id=int(row["clid"]),
        nickname=row.get("client_nickname", ""),
        channel_id=int(row["cid"]),
    )


def _wrap(e: Exception) -> SourceUnavailable:
    if isinstance(e, ts3.query.TS3QueryError):
        err = getattr(e.resp, "error", None) or {}
        error_id = str(err.get("id", ""))
        msg = err.get("msg") or str(e)
        cls = TransportFatal if error_id in FATAL_ERROR_IDS else SourceUnavailable
        return cls(f"query error {error_id}: {msg}", error_id=error_id)
    if isinstance(e, (ts3.query.TS3TimeoutError, asyncio.TimeoutError)):
        return TransportFatal("Connection timed out")
    return TransportFatal(str(e) or type(e).__name__)


class TeamSpeakSession:
    """
    Async face of a blocking py-ts3 ServerQuery connection.

    Every call runs in a worker thread under one lock (the query protocol is
    strictly request/response). Errors are reported to `on_error` and raised
    as SourceUnavailable / TransportFatal. Once subscribed, a pump task waits
    for notifications and calls `on_change`; if the socket dies it calls
    `on_close`.
    """

    def __init__(self, conn, *, timeout: float = 10.0, poll_seconds: float = 1.0, keepalive_seconds: float = 60.0):
        self.conn = conn
        self.timeout = timeout
        self.poll_seconds = poll_seconds
        self.keepalive_seconds = keepalive_seconds

        self.on_change = None
        self.on_error = None
        self.on_close = None

        self._lock = asyncio.Lock()
        self._pump: asyncio.Task | None = None
        self._closed = False

    # ---------------- plumbing ----------------

    def _report(self, err: SourceUnavailable) -> None:
        if self.on_error is not None:
            self.on_error(err)

    def abandon(self, err: SourceUnavailable) -> None:
        """
        Give up on this connection after a caller lost patience with it.

        A worker thread may still own the socket, so nothing may touch it
        again; the supervisor is told and will replace the session.
        """
        self._closed = True
        self._report(err)

    async def _call(self, fn, *args, **kwargs):
        if self._closed:
            raise TransportFatal("not connected")
        async with self._lock:
            if self._closed:
                raise TransportFatal("not connected")
            try:
                return await asyncio.wait_for(asyncio.to_thread(fn, *args, **kwargs), timeout=self.timeout)
            except asyncio.CancelledError:
                # the worker thread keeps running with the socket
                self._closed = True
                raise
            except TS3_ERRORS as e:
                err = _wrap(e)
                if isinstance(e, asyncio.TimeoutError):
                    self._closed = True
                self._report(err)
                raise err from e

    async def exec_(self, cmd, *options, **params):
        return await self._call(self.conn.exec_, cmd, *options, **params)

    # ---------------- queries ----------------

    async def open(self, host: str, port: int) -> None:
        await self._call(self.conn.open, host, port, timeout=self.timeout)

    async def login(self, username: str, password: str) -> None:
        # credentials travel as escaped command parameters, never inside a URI
        await self.exec_("login", client_login_name=username, client_login_password=password)

    async def use_port(self, port: int) -> None:
        await self.exec_("use", port=port)

    async def list_channels(self) -> list[VoiceChannel]:
        resp = await self.exec_("channellist", "flags")
        return [channel_from_row(r) for r in resp.parsed]

    async def list_clients(self) -> list[VoiceClient]:
        resp = await self.exec_("clientlist")
        return [
            client_from_row(r)
            for r in resp.parsed
            if str(r.get("client_type", REAL_CLIENT_TYPE)) == REAL_CLIENT_TYPE
        ]

    # ---------------- notifications ----------------

    async def subscribe(self, *, on_change, on_error, on_close) -> None:
        self.on_change = on_change
        self.on_error = on_error
        self.on_close = on_close

        await self.exec_("servernotifyregister", event="server")
        await self.exec_("servernotifyregister", event="channel", id=0)

        self._pump = asyncio.create_task(self._pump_events(), name="ts3-event-pump")

    def _wait_for_event(self):
        try:
            return self.conn.wait_for_event(timeout=self.poll_seconds)
        except ts3.query.TS3TimeoutError:
            return None

    async def _pump_events(self) -> None:
        last_keepalive = time.monotonic()
        while not self._closed:
            try:
                async with self._lock:
                    if time.monotonic() - last_keepalive >= self.keepalive_seconds:
                        await asyncio.to_thread(self.conn.send_keepalive)
                        last_keepalive = time.monotonic()
                    event = await asyncio.to_thread(self._wait_for_event)
            except (ts3.query.TS3TransportError, EOFError, OSError) as e:
                if self._closed:
                    return
                log.warning("TS connection closed: %s", e)
                if self.on_close is not None:
                    self.on_close()
                return

            if event is not None and getattr(event, "event", None) in CHANGE_EVENTS:
                if self.on_change is not None:
                    self.on_change()

            # let queued queries grab the lock between polls
            await asyncio.sleep(0)

    # ---------------- teardown ----------------

    async def quit(self) -> None:
        self._closed = True
        if self._pump is not None:
            self._pump.cancel()
            try:
                await self._pump
            except asyncio.CancelledError:
                pass
            self._pump = None
        await asyncio.to_thread(self.conn.close)


async def connect_session(settings) -> TeamSpeakSession:
    """Open the query connection, log in and select the virtual server by voice port."""
    session = TeamSpeakSession(
        ts3.query.TS3ServerConnection(),
        timeout=settings.query_timeout_seconds,
        keepalive_seconds=settings.keepalive_seconds,
    )
    try:
        await session.open(settings.ts_host, settings.ts_query_port)
        await session.login(settings.ts_username, settings.ts_password)
        await session.use_port(settings.ts_voice_port)
    except SourceUnavailable:
        # best-effort: the connect already failed, a close error adds nothing
        try:
            await session.quit()
        except TS3_ERRORS:
            pass
        raise

    log.info("Connected to TS server %s:%s", settings.ts_host, settings.ts_query_port)
    return session
