# tsstatus/services/display_store.py
from __future__ import annotations

import logging
import sqlite3

from tsstatus.core.errors import PersistenceFailure
from tsstatus.core.state import DisplayRef
from tsstatus.core.timecore import now_utc, parse_utc
from tsstatus.services.db import Database

log = logging.getLogger(__name__)


class DisplayStore:
    """
    Durable home of the DisplayRef.

    Read once at startup, rewritten after every successful render or clear.
    A missing row is a normal first run.
    """

    def __init__(self, db: Database):
        self.db = db

    def _conn(self):
        if not self.db.conn:
            raise PersistenceFailure("Database not connected")
        return self.db.conn

    async def load(self) -> DisplayRef:
        conn = self._conn()
        cur = await conn.execute(
            """
            SELECT message_id, channel_id, guild_id, fingerprint, last_update_at
            FROM display_ref
            WHERE slot=1
            """
        )
        row = await cur.fetchone()
        if row is None:
            log.info("No stored status display yet (first run)")
            return DisplayRef.empty()

        message_id, channel_id, guild_id, fp, last_update_at = row
        if message_id is None or channel_id is None:
            return DisplayRef.empty()

        try:
            last = parse_utc(last_update_at)
        except ValueError:
            log.warning("Ignoring malformed last_update_at=%r", last_update_at)
            last = None

        ref = DisplayRef(
            message_id=int(message_id),
            channel_id=int(channel_id),
            guild_id=int(guild_id) if guild_id is not None else None,
            last_fingerprint=fp,
            last_update_at=last,
        )
        log.info("Recovered status display message=%s channel=%s", ref.message_id, ref.channel_id)
        return ref

    async def save(self, ref: DisplayRef) -> None:
        last = ref.last_update_at.isoformat() if ref.last_update_at else None
        try:
            conn = self._conn()
            await conn.execute(
                """
                INSERT INTO display_ref(slot, message_id, channel_id, guild_id, fingerprint, last_update_at, updated_at)
                VALUES(1, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(slot)
                DO UPDATE SET message_id=excluded.message_id,
                              channel_id=excluded.channel_id,
                              guild_id=excluded.guild_id,
                              fingerprint=excluded.fingerprint,
                              last_update_at=excluded.last_update_at,
                              updated_at=excluded.updated_at
                """,
                (ref.message_id, ref.channel_id, ref.guild_id, ref.last_fingerprint, last, now_utc().isoformat()),
            )
            await conn.commit()
        except (sqlite3.Error, OSError, ValueError) as e:
            raise PersistenceFailure(f"could not save display record: {e}") from e
