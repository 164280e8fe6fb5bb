"""SqliteAwardStore — AwardStore implementation backed by a single SQLite file.

One table, ``badge_awards``. A unique index on ``recipient_pubkey`` keeps
the one-award-per-recipient rule even when two mints race, and is added
to existing tables on open. Inserts use ``INSERT OR IGNORE`` and report
whether a row was written.

sqlite3 calls block, so every statement runs in a worker thread behind
an asyncio lock (one statement at a time on the shared connection).
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from pathlib import Path
from typing import Any

from lemonade_legends.award import BadgeAward

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS badge_awards (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    recipient_pubkey TEXT NOT NULL,
    award_event_id TEXT NOT NULL UNIQUE,
    created_at INTEGER NOT NULL
);

-- Also upgrades tables created without a unique recipient.
CREATE UNIQUE INDEX IF NOT EXISTS idx_unique_recipient_pubkey ON badge_awards(recipient_pubkey);
"""


class SqliteAwardStore:
    """Award persistence in a local SQLite database.

    Implements the ``AwardStore`` protocol:

    - ``has_award(recipient_pubkey) -> bool``
    - ``insert_award(recipient_pubkey, award_event_id, created_at) -> bool``
    - ``list_awards() -> list[BadgeAward]`` (newest first)
    - ``count_awards() -> int``
    """

    def __init__(self, path: str | Path) -> None:
        self._path = str(path)
        self._conn = sqlite3.connect(self._path, check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL;")
        try:
            self._conn.executescript(_SCHEMA)
        except sqlite3.IntegrityError:
            logger.error(
                "%s holds more than one award for a recipient; "
                "remove the duplicates before starting the server.",
                self._path,
            )
            self._conn.close()
            raise
        self._conn.commit()
        self._lock = asyncio.Lock()
        logger.info("Award store opened at %s", self._path)

    @property
    def path(self) -> str:
        return self._path

    async def _run(self, fn: Any, *args: Any) -> Any:
        async with self._lock:
            return await asyncio.to_thread(fn, *args)

    # -- blocking helpers (worker thread) --------------------------------------

    def _has_award(self, recipient_pubkey: str) -> bool:
        cur = self._conn.execute(
            "SELECT 1 FROM badge_awards WHERE recipient_pubkey = ? LIMIT 1",
            (recipient_pubkey,),
        )
        return cur.fetchone() is not None

    def _insert_award(self, recipient_pubkey: str, award_event_id: str, created_at: int) -> bool:
        cur = self._conn.execute(
            "INSERT OR IGNORE INTO badge_awards (recipient_pubkey, award_event_id, created_at) "
            "VALUES (?, ?, ?)",
            (recipient_pubkey, award_event_id, created_at),
        )
        self._conn.commit()
        return cur.rowcount > 0

    def _list_awards(self) -> list[BadgeAward]:
        cur = self._conn.execute(
            "SELECT id, recipient_pubkey, award_event_id, created_at "
            "FROM badge_awards ORDER BY created_at DESC, id DESC"
        )
        return [BadgeAward.from_row(row) for row in cur.fetchall()]

    def _count_awards(self) -> int:
        cur = self._conn.execute("SELECT COUNT(*) FROM badge_awards")
        return int(cur.fetchone()[0])

    # -- AwardStore ------------------------------------------------------------

    async def has_award(self, recipient_pubkey: str) -> bool:
        return await self._run(self._has_award, recipient_pubkey)

    async def insert_award(
        self, recipient_pubkey: str, award_event_id: str, created_at: int
    ) -> bool:
        """Record an award. Returns False if the recipient already has one."""
        inserted = await self._run(
            self._insert_award, recipient_pubkey, award_event_id, created_at
        )
        if not inserted:
            logger.warning(
                "Award for %s not recorded: recipient or event %s already present.",
                recipient_pubkey, award_event_id,
            )
        return inserted

    async def list_awards(self) -> list[BadgeAward]:
        return await self._run(self._list_awards)

    async def count_awards(self) -> int:
        return await self._run(self._count_awards)

    async def close(self) -> None:
        """Close the underlying connection."""
        async with self._lock:
            self._conn.close()
