"""
Song-related DB queries extracted from `bmsindex.core.index_db.IndexDb`.

Design:
- Functions are *pure DB helpers*: they take an open `aiosqlite.Connection`
  and return rows/materialized dataclasses.
- These functions assume `conn.row_factory = aiosqlite.Row`.
- None of them commit; transaction boundaries belong to the caller.
"""

from __future__ import annotations

import aiosqlite

from bmsindex.core.db.models import SongRow

_SONG_COLUMNS = "id, path, created_at, updated_at"


def _row_to_song(row: aiosqlite.Row) -> SongRow:
    return SongRow(
        id=row["id"],
        path=row["path"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


async def list_song_paths(conn: aiosqlite.Connection) -> list[tuple[str, str]]:
    """Return every (id, path) pair; used to preload the song registry."""
    cursor = await conn.execute("SELECT id, path FROM songs;")
    rows = await cursor.fetchall()
    return [(r["id"], r["path"]) for r in rows]


async def insert_song(conn: aiosqlite.Connection, song_id: str, path: str) -> None:
    await conn.execute(
        "INSERT INTO songs (id, path) VALUES (?, ?);",
        (song_id, path),
    )


async def get_song_by_id(conn: aiosqlite.Connection, song_id: str) -> SongRow | None:
    cursor = await conn.execute(f"SELECT {_SONG_COLUMNS} FROM songs WHERE id = ?;", (song_id,))
    row = await cursor.fetchone()
    return _row_to_song(row) if row is not None else None


async def get_songs_by_path(conn: aiosqlite.Connection, path: str) -> list[SongRow]:
    """All songs recorded for a directory (more than one means a broken index)."""
    cursor = await conn.execute(
        f"SELECT {_SONG_COLUMNS} FROM songs WHERE path = ? ORDER BY created_at, id;",
        (path,),
    )
    rows = await cursor.fetchall()
    return [_row_to_song(r) for r in rows]


async def count_songs(conn: aiosqlite.Connection) -> int:
    cursor = await conn.execute("SELECT COUNT(*) AS c FROM songs;")
    row = await cursor.fetchone()
    return int(row["c"]) if row else 0
