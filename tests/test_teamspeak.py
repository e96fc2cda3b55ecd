"""Tests for the py-ts3 session adapter, against a fake blocking connection."""

import asyncio
import dataclasses
import time
from types import SimpleNamespace
from unittest.mock import patch

import pytest
import ts3.query

from tsstatus.core.errors import TransportFatal
from tsstatus.core.snapshot import SnapshotReader, VoiceChannel, VoiceClient
from tsstatus.services.teamspeak import TeamSpeakSession, channel_from_row, client_from_row, connect_session


class FakeConn:
    def __init__(self):
        self.commands = []
        self.rows = {}
        self.events = []
        self.closed = False
        self.fail_with: Exception | None = None
        self.delay = 0.0
        self.opened = None

    def open(self, host, port, timeout=None):
        self.opened = (host, port, timeout)

    def exec_(self, cmd, *options, **params):
        if self.delay:
            time.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with
        self.commands.append((cmd, options, params))
        return SimpleNamespace(parsed=self.rows.get(cmd, []))

    def wait_for_event(self, timeout=None):
        return self.events.pop(0) if self.events else None

    def send_keepalive(self):
        pass

    def close(self):
        self.closed = True


@pytest.fixture
def conn() -> FakeConn:
    c = FakeConn()
    c.rows["channellist"] = [
        {"cid": "1", "channel_name": "Lobby", "channel_flag_default": "1"},
        {"cid": "3", "channel_name": "Gaming", "channel_flag_default": "0"},
    ]
    c.rows["clientlist"] = [
        {"clid": "5", "cid": "3", "client_nickname": "bob", "client_type": "0"},
        {"clid": "6", "cid": "1", "client_nickname": "serveradmin", "client_type": "1"},
    ]
    return c


def test_row_mapping() -> None:
    assert channel_from_row({"cid": "4", "channel_name": "AFK"}) == VoiceChannel(4, "AFK", False)
    assert client_from_row({"clid": "9", "cid": "4", "client_nickname": "x"}) == VoiceClient(9, "x", 4)


@pytest.mark.asyncio
async def test_lists_channels_with_flags_and_real_clients_only(conn) -> None:
    session = TeamSpeakSession(conn)

    channels = await session.list_channels()
    clients = await session.list_clients()

    assert channels == [VoiceChannel(1, "Lobby", True), VoiceChannel(3, "Gaming", False)]
    assert clients == [VoiceClient(5, "bob", 3)]
    assert conn.commands[0] == ("channellist", ("flags",), {})


@pytest.mark.asyncio
async def test_transport_error_is_reported_and_fatal(conn) -> None:
    reported = []
    session = TeamSpeakSession(conn)
    session.on_error = reported.append
    conn.fail_with = ConnectionResetError("ECONNRESET")

    with pytest.raises(TransportFatal):
        await session.list_clients()

    assert len(reported) == 1
    assert isinstance(reported[0], TransportFatal)


@pytest.mark.asyncio
async def test_subscribe_registers_and_pumps_change_events(conn) -> None:
    changes = []
    conn.events = [
        SimpleNamespace(event="notifycliententerview"),
        SimpleNamespace(event="notifytextmessage"),
        SimpleNamespace(event="notifyclientmoved"),
    ]
    session = TeamSpeakSession(conn, poll_seconds=0.01)

    await session.subscribe(on_change=lambda: changes.append(1), on_error=lambda e: None, on_close=lambda: None)
    for _ in range(100):
        if len(changes) >= 2:
            break
        await asyncio.sleep(0.01)
    await session.quit()

    assert len(changes) == 2
    assert ("servernotifyregister", (), {"event": "server"}) in conn.commands
    assert ("servernotifyregister", (), {"event": "channel", "id": 0}) in conn.commands
    assert conn.closed


@pytest.mark.asyncio
async def test_pump_reports_close_when_socket_dies(conn) -> None:
    closed = asyncio.Event()

    def wait_for_event(timeout=None):
        raise EOFError()

    conn.wait_for_event = wait_for_event
    session = TeamSpeakSession(conn, poll_seconds=0.01)

    await session.subscribe(on_change=lambda: None, on_error=lambda e: None, on_close=closed.set)
    await asyncio.wait_for(closed.wait(), timeout=1)
    await session.quit()


@pytest.mark.asyncio
async def test_calls_after_quit_fail_fast(conn) -> None:
    session = TeamSpeakSession(conn)
    await session.quit()

    with pytest.raises(TransportFatal):
        await session.list_channels()


@pytest.mark.asyncio
async def test_py_ts3_transport_error_is_reported_and_fatal(conn) -> None:
    reported = []
    session = TeamSpeakSession(conn)
    session.on_error = reported.append
    conn.fail_with = ts3.query.TS3TransportError("connection lost")

    with pytest.raises(TransportFatal):
        await session.list_channels()

    assert [type(e) for e in reported] == [TransportFatal]


@pytest.mark.asyncio
async def test_pump_reports_close_on_py_ts3_transport_error(conn) -> None:
    closed = asyncio.Event()

    def wait_for_event(timeout=None):
        raise ts3.query.TS3TransportError("connection lost")

    conn.wait_for_event = wait_for_event
    session = TeamSpeakSession(conn, poll_seconds=0.01)

    await session.subscribe(on_change=lambda: None, on_error=lambda e: None, on_close=closed.set)
    await asyncio.wait_for(closed.wait(), timeout=1)
    await session.quit()


@pytest.mark.asyncio
async def test_query_timeout_retires_the_connection(conn) -> None:
    reported = []
    session = TeamSpeakSession(conn, timeout=0.05)
    session.on_error = reported.append
    conn.delay = 0.3

    with pytest.raises(TransportFatal):
        await session.list_clients()

    assert [type(e) for e in reported] == [TransportFatal]

    # the worker thread may still be using the socket
    conn.delay = 0.0
    with pytest.raises(TransportFatal):
        await session.list_channels()


@pytest.mark.asyncio
async def test_reader_timeout_reaches_supervisor_and_retires_connection(conn) -> None:
    reported = []
    session = TeamSpeakSession(conn, timeout=5.0)
    session.on_error = reported.append
    conn.delay = 0.3
    reader = SnapshotReader(query_timeout=0.05)

    with pytest.raises(TransportFatal):
        await reader.read(session)

    assert len(reported) == 1
    assert isinstance(reported[0], TransportFatal)

    conn.delay = 0.0
    with pytest.raises(TransportFatal):
        await session.list_channels()


@pytest.mark.asyncio
async def test_connect_passes_credentials_as_parameters(conn, settings) -> None:
    settings = dataclasses.replace(settings, ts_username="bot@home", ts_password="ab/c#d@e?f")

    with patch.object(ts3.query, "TS3ServerConnection", return_value=conn):
        session = await connect_session(settings)

    assert conn.opened == ("ts.example", 10011, settings.query_timeout_seconds)
    assert conn.commands[0] == (
        "login",
        (),
        {"client_login_name": "bot@home", "client_login_password": "ab/c#d@e?f"},
    )
    assert conn.commands[1] == ("use", (), {"port": 9987})
    await session.quit()


@pytest.mark.asyncio
async def test_connect_closes_connection_when_login_fails(conn, settings) -> None:
    conn.fail_with = ts3.query.TS3TransportError("connection refused")

    with patch.object(ts3.query, "TS3ServerConnection", return_value=conn):
        with pytest.raises(TransportFatal):
            await connect_session(settings)

    assert conn.closed
