"""SQLite bucket storage.

Read and write operations catch ``aiosqlite.Error`` internally and degrade
gracefully: ``match`` failures return ``None`` (treated as a cache miss by
callers), ``put`` failures are logged and ignored (the fetched response is
still returned to the page). ``open_bucket`` is the exception: it lets the
error propagate.

Every write is one statement followed by a commit, so a process killed
between requests never leaves a half-written entry behind. Deleting a bucket
removes its entries and its row in a single transaction.
"""

from __future__ import annotations

import json
from contextlib import suppress
from datetime import UTC, datetime

import aiosqlite
import structlog

from zencache.models.cache import CacheKey, ResponseSnapshot

log = structlog.get_logger()

_CREATE_BUCKET_TABLE = """
CREATE TABLE IF NOT EXISTS buckets (
    name        TEXT PRIMARY KEY,
    created_at  TEXT NOT NULL
)
"""

_CREATE_ENTRY_TABLE = """
CREATE TABLE IF NOT EXISTS entries (
    bucket       TEXT NOT NULL REFERENCES buckets(name) ON DELETE CASCADE,
    method       TEXT NOT NULL,
    url          TEXT NOT NULL,
    status_code  INTEGER NOT NULL,
    reason       TEXT NOT NULL DEFAULT '',
    headers      TEXT NOT NULL DEFAULT '[]',
    content      BLOB NOT NULL,
    opaque       INTEGER NOT NULL DEFAULT 0,
    stored_at    TEXT NOT NULL,
    PRIMARY KEY (bucket, method, url)
)
"""


class SqliteStorage:
    """SQLite-backed bucket storage implementing StorageProtocol."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def init_db(self) -> None:
        """Create tables and set WAL mode. Called once at startup."""
        await self._db.execute("PRAGMA journal_mode = WAL")
        await self._db.execute("PRAGMA foreign_keys = ON")
        await self._db.execute(_CREATE_BUCKET_TABLE)
        await self._db.execute(_CREATE_ENTRY_TABLE)
        await self._db.commit()

    # ------------------------------------------------------------------
    # Buckets
    # ------------------------------------------------------------------

    async def open_bucket(self, name: str) -> None:
        """Create the bucket if absent. Raises ``aiosqlite.Error`` on failure."""
        await self._db.execute(
            "INSERT OR IGNORE INTO buckets (name, created_at) VALUES (?, ?)",
            (name, datetime.now(UTC).isoformat()),
        )
        await self._db.commit()

    async def bucket_names(self) -> list[str]:
        """List bucket names. Returns an empty list on read failure."""
        try:
            cursor = await self._db.execute("SELECT name FROM buckets ORDER BY created_at, name")
            return [row[0] for row in await cursor.fetchall()]
        except aiosqlite.Error:
            log.warning("bucket_list_error", exc_info=True)
            return []

    async def delete_bucket(self, name: str) -> bool:
        """Delete a bucket and all of its entries. Non-fatal on failure."""
        try:
            await self._db.execute("DELETE FROM entries WHERE bucket = ?", (name,))
            cursor = await self._db.execute("DELETE FROM buckets WHERE name = ?", (name,))
            deleted = cursor.rowcount > 0
            await self._db.commit()
            return deleted
        except aiosqlite.Error:
            log.warning("bucket_delete_error", bucket=name, exc_info=True)
            with suppress(aiosqlite.Error):
                await self._db.rollback()
            return False

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------

    async def match(self, bucket: str, key: CacheKey) -> ResponseSnapshot | None:
        """Read an entry. Returns ``None`` on cache miss or read failure."""
        try:
            cursor = await self._db.execute(
                "SELECT url, status_code, reason, headers, content, opaque, stored_at "
                "FROM entries WHERE bucket = ? AND method = ? AND url = ?",
                (bucket, key.method, key.url),
            )
            row = await cursor.fetchone()
            if row is None:
                return None

            return ResponseSnapshot(
                url=row[0],
                status_code=row[1],
                reason=row[2],
                headers=[tuple(pair) for pair in json.loads(row[3])],
                content=bytes(row[4]),
                opaque=bool(row[5]),
                stored_at=datetime.fromisoformat(row[6]),
            )
        except (aiosqlite.Error, ValueError):
            log.warning("cache_read_error", bucket=bucket, key=key.url, exc_info=True)
            return None

    async def put(self, bucket: str, key: CacheKey, snapshot: ResponseSnapshot) -> None:
        """Write an entry, replacing any previous one. Non-fatal on failure."""
        try:
            await self._db.execute(
                "INSERT OR REPLACE INTO entries "
                "(bucket, method, url, status_code, reason, headers, content, opaque, stored_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    bucket,
                    key.method,
                    key.url,
                    snapshot.status_code,
                    snapshot.reason,
                    json.dumps(snapshot.headers),
                    snapshot.content,
                    int(snapshot.opaque),
                    snapshot.stored_at.isoformat(),
                ),
            )
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("cache_write_error", bucket=bucket, key=key.url, exc_info=True)

    async def keys(self, bucket: str) -> list[CacheKey]:
        """List the keys stored in a bucket. Returns an empty list on failure."""
        try:
            cursor = await self._db.execute(
                "SELECT method, url FROM entries WHERE bucket = ? ORDER BY url", (bucket,)
            )
            return [CacheKey(method=row[0], url=row[1]) for row in await cursor.fetchall()]
        except aiosqlite.Error:
            log.warning("cache_keys_error", bucket=bucket, exc_info=True)
            return []
