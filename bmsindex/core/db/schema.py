"""
Chart index schema and its forward-only migrations.

The schema version lives in `PRAGMA user_version`. Each entry of `MIGRATIONS`
lifts the database by exactly one version; `ensure_schema` applies whatever
is missing and refuses databases written by a newer bmsindex.
"""

from __future__ import annotations

from typing import Final

import aiosqlite

_V1_TABLES: Final[tuple[str, ...]] = (
    """
    CREATE TABLE IF NOT EXISTS songs (
        id TEXT NOT NULL PRIMARY KEY,
        path TEXT NOT NULL,
        updated_at TEXT NOT NULL DEFAULT (datetime('now')),
        created_at TEXT NOT NULL DEFAULT (datetime('now'))
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS patterns (
        hash TEXT NOT NULL PRIMARY KEY,
        title TEXT,
        subtitle TEXT,
        artist TEXT,
        subartist TEXT,
        path TEXT NOT NULL,
        song_id TEXT NOT NULL REFERENCES songs(id),
        updated_at TEXT NOT NULL DEFAULT (datetime('now')),
        created_at TEXT NOT NULL DEFAULT (datetime('now'))
    )
    """,
)

# Registry preload reads every song; pattern lookups by song are the main browse path.
_V2_INDEXES: Final[tuple[str, ...]] = (
    "CREATE INDEX IF NOT EXISTS idx_songs_path ON songs(path)",
    "CREATE INDEX IF NOT EXISTS idx_patterns_song_id ON patterns(song_id)",
)

# MIGRATIONS[n] upgrades version n to n + 1.
MIGRATIONS: Final[tuple[tuple[str, ...], ...]] = (_V1_TABLES, _V2_INDEXES)

SCHEMA_VERSION: Final[int] = len(MIGRATIONS)


async def get_schema_version(conn: aiosqlite.Connection) -> int:
    cursor = await conn.execute("PRAGMA user_version;")
    row = await cursor.fetchone()
    return int(row[0]) if row is not None else 0


async def ensure_schema(conn: aiosqlite.Connection) -> None:
    """
    Bring the database up to `SCHEMA_VERSION`.

    Raises:
        RuntimeError: the database was created by a newer schema.
    """
    current = await get_schema_version(conn)
    if current > SCHEMA_VERSION:
        raise RuntimeError(
            f"Index schema version {current} is newer than supported {SCHEMA_VERSION}."
        )
    if current < SCHEMA_VERSION:
        await migrate(conn, from_version=current, to_version=SCHEMA_VERSION)


async def migrate(conn: aiosqlite.Connection, *, from_version: int, to_version: int) -> None:
    """Apply migration steps one version at a time, recording each in user_version."""
    for version in range(from_version, to_version):
        for statement in MIGRATIONS[version]:
            await conn.execute(statement)
        await conn.execute(f"PRAGMA user_version = {version + 1};")
        await conn.commit()
