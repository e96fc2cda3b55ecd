# tsstatus/services/db.py
from __future__ import annotations

import aiosqlite
from pathlib import Path

SCHEMA_SQL = """
PRAGMA journal_mode=WAL;

-- The one status message this bot keeps up to date.
-- Single row (slot = 1); cleared fields mean "no display".
CREATE TABLE IF NOT EXISTS display_ref(
  slot INTEGER PRIMARY KEY CHECK (slot = 1),
  message_id INTEGER,
  channel_id INTEGER,
  guild_id INTEGER,
  fingerprint TEXT,
  last_update_at TEXT,
  updated_at TEXT NOT NULL
);
"""

class Database:
    def __init__(self, db_path: str):
        self.db_path = db_path
        self.conn: aiosqlite.Connection | None = None

    async def connect(self) -> None:
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = await aiosqlite.connect(self.db_path)

        await self.conn.executescript(SCHEMA_SQL)
        await self.conn.commit()

    async def close(self) -> None:
        if self.conn:
            await self.conn.close()
            self.conn = None
