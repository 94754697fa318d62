"""
Chart index database schema + access layer.

Goals:
- SQLite + aiosqlite, async/await friendly.
- Explicit transactions: the batch persister decides where a unit of work starts
  and ends, so the connection runs in autocommit mode and `transaction()` issues
  BEGIN/COMMIT/ROLLBACK itself.

Note:
- Models/DTOs live in `bmsindex.core.db.models`
- Schema/migrations live in `bmsindex.core.db.schema`
- Query functions live in `bmsindex.core.db.queries_*` modules
- `IndexDb` remains the public facade used by the rest of the codebase
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import aiosqlite

from bmsindex.core.db import queries_patterns, queries_songs
from bmsindex.core.db.models import PatternRow, SongRow, UpsertPattern
from bmsindex.core.db.schema import ensure_schema as ensure_schema_sql

logger = logging.getLogger(__name__)


class IndexDb:
    """
    Async access layer for the chart index DB.

    Usage:
        db = IndexDb("bms.db")
        await db.open()
        await db.ensure_schema()
        async with db.transaction():
            ... writes ...
        await db.close()

    Notes:
    - This class is designed to be injected into other components.
    - Connections are not pooled; we keep a single connection.
    """

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = str(db_path)
        self._conn: aiosqlite.Connection | None = None

    @property
    def path(self) -> str:
        return self._db_path

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @property
    def in_transaction(self) -> bool:
        return self._conn is not None and self._conn.in_transaction

    async def open(self) -> None:
        if self._conn is not None:
            return
        # isolation_level=None: no implicit BEGIN, transactions are explicit.
        self._conn = await aiosqlite.connect(self._db_path, isolation_level=None)
        self._conn.row_factory = aiosqlite.Row

        await self._conn.execute("PRAGMA foreign_keys = ON;")
        await self._conn.execute("PRAGMA journal_mode = WAL;")
        await self._conn.execute("PRAGMA synchronous = NORMAL;")
        await self._conn.execute("PRAGMA temp_store = MEMORY;")

    async def close(self) -> None:
        if self._conn is None:
            return
        await self._conn.close()
        self._conn = None

    async def __aenter__(self) -> IndexDb:
        await self.open()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def _require_conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("IndexDb is not open. Call await db.open() first.")
        return self._conn

    async def ensure_schema(self) -> None:
        """Create or migrate schema to current version."""
        conn = self._require_conn()
        await ensure_schema_sql(conn)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """
        Run the enclosed writes as one transaction.

        COMMIT on normal exit, ROLLBACK on any exception (including a failed COMMIT).
        """
        conn = self._require_conn()
        await conn.execute("BEGIN IMMEDIATE;")
        try:
            yield
            await conn.execute("COMMIT;")
        except BaseException:
            if conn.in_transaction:
                await conn.execute("ROLLBACK;")
                logger.debug("Transaction rolled back")
            raise

    # ===========================================================================
    # Songs (delegated to queries_songs module)
    # ===========================================================================

    async def list_songs(self) -> list[tuple[str, str]]:
        """All (id, path) pairs currently stored."""
        return await queries_songs.list_song_paths(self._require_conn())

    async def insert_song(self, song_id: str, path: str | Path) -> None:
        await queries_songs.insert_song(self._require_conn(), song_id, str(path))

    async def get_song_by_id(self, song_id: str) -> SongRow | None:
        return await queries_songs.get_song_by_id(self._require_conn(), song_id)

    async def get_song_by_path(self, path: str | Path) -> SongRow | None:
        rows = await queries_songs.get_songs_by_path(self._require_conn(), str(path))
        return rows[0] if rows else None

    async def list_songs_by_path(self, path: str | Path) -> list[SongRow]:
        return await queries_songs.get_songs_by_path(self._require_conn(), str(path))

    async def count_songs(self) -> int:
        return await queries_songs.count_songs(self._require_conn())

    # ===========================================================================
    # Patterns (delegated to queries_patterns module)
    # ===========================================================================

    async def upsert_pattern(self, pattern: UpsertPattern) -> None:
        await queries_patterns.upsert_pattern(self._require_conn(), pattern)

    async def get_pattern_by_hash(self, pattern_hash: str) -> PatternRow | None:
        return await queries_patterns.get_pattern_by_hash(self._require_conn(), pattern_hash)

    async def list_patterns_by_song(
        self, song_id: str, *, limit: int = 500, offset: int = 0
    ) -> list[PatternRow]:
        return await queries_patterns.list_patterns_by_song(
            self._require_conn(), song_id, limit=limit, offset=offset
        )

    async def count_patterns(self) -> int:
        return await queries_patterns.count_patterns(self._require_conn())
