"""
DB models (DTOs) for the chart index.

This module is intentionally lightweight:
- No DB connection knowledge
- No SQL
- Pure dataclasses
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class SongRow:
    """
    Song record as stored in SQLite.

    A song is the directory that groups one or more chart variants.
    `id` is a random UUID minted the first time the directory is persisted.
    """

    id: str
    path: str
    created_at: str | None = None
    updated_at: str | None = None


@dataclass(frozen=True, slots=True)
class PatternRow:
    """
    Pattern (single chart file) record as stored in SQLite.

    Notes:
    - `hash` is the SHA-256 of the UTF-8 normalized file and the primary key.
    - `path` is whatever path was seen last for that content.
    """

    hash: str
    title: str | None
    subtitle: str | None
    artist: str | None
    subartist: str | None
    path: str
    song_id: str
    created_at: str | None = None
    updated_at: str | None = None


@dataclass(frozen=True, slots=True)
class UpsertPattern:
    """Input record used by the batch persister."""

    hash: str
    path: str
    song_id: str
    title: str = ""
    subtitle: str = ""
    artist: str = ""
    subartist: str = ""
