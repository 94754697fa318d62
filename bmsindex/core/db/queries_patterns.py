"""
Pattern-related DB queries extracted from `bmsindex.core.index_db.IndexDb`.

Important:
- Do NOT interpolate user input into SQL.
- None of these functions commit.
"""

from __future__ import annotations

import aiosqlite

from bmsindex.core.db.models import PatternRow, UpsertPattern

_PATTERN_COLUMNS = (
    "hash, title, subtitle, artist, subartist, path, song_id, created_at, updated_at"
)


def _row_to_pattern(row: aiosqlite.Row) -> PatternRow:
    return PatternRow(
        hash=row["hash"],
        title=row["title"],
        subtitle=row["subtitle"],
        artist=row["artist"],
        subartist=row["subartist"],
        path=row["path"],
        song_id=row["song_id"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


async def upsert_pattern(conn: aiosqlite.Connection, pattern: UpsertPattern) -> None:
    """Insert a pattern, or overwrite every non-key column of the existing row."""
    await conn.execute(
        """
        INSERT INTO patterns (hash, title, subtitle, artist, subartist, path, song_id)
        VALUES (:hash, :title, :subtitle, :artist, :subartist, :path, :song_id)
        ON CONFLICT(hash) DO UPDATE SET
            title      = excluded.title,
            subtitle   = excluded.subtitle,
            artist     = excluded.artist,
            subartist  = excluded.subartist,
            path       = excluded.path,
            song_id    = excluded.song_id,
            updated_at = datetime('now')
        """,
        {
            "hash": pattern.hash,
            "title": pattern.title,
            "subtitle": pattern.subtitle,
            "artist": pattern.artist,
            "subartist": pattern.subartist,
            "path": pattern.path,
            "song_id": pattern.song_id,
        },
    )


async def get_pattern_by_hash(conn: aiosqlite.Connection, pattern_hash: str) -> PatternRow | None:
    cursor = await conn.execute(
        f"SELECT {_PATTERN_COLUMNS} FROM patterns WHERE hash = ?;",
        (pattern_hash,),
    )
    row = await cursor.fetchone()
    return _row_to_pattern(row) if row is not None else None


async def list_patterns_by_song(
    conn: aiosqlite.Connection,
    song_id: str,
    *,
    limit: int,
    offset: int,
) -> list[PatternRow]:
    cursor = await conn.execute(
        f"""
        SELECT {_PATTERN_COLUMNS}
        FROM patterns
        WHERE song_id = ?
        ORDER BY path
        LIMIT ? OFFSET ?;
        """,
        (song_id, int(limit), int(offset)),
    )
    rows = await cursor.fetchall()
    return [_row_to_pattern(r) for r in rows]


async def count_patterns(conn: aiosqlite.Connection) -> int:
    cursor = await conn.execute("SELECT COUNT(*) AS c FROM patterns;")
    row = await cursor.fetchone()
    return int(row["c"]) if row else 0
