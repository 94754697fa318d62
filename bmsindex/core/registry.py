"""
Song Registry - maps a chart's directory to its durable song id.

The registry is preloaded once from the index and then grows while batches are
flushed. New ids are only minted from inside the persister's flush critical
section, which is what guarantees that two charts from the same unseen folder
never end up with two different songs.

Ids minted during a flush stay *pending* until that flush commits. A rolled back
flush discards them, so the in-memory view never refers to a row that is not in
the store.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from pathlib import Path

from bmsindex.core.index_db import IndexDb

logger = logging.getLogger(__name__)


class SongRegistry:
    """
    In-memory directory -> song id map backed by the `songs` table.

    Thread-safety: This class uses an asyncio lock for safe concurrent
    access from multiple coroutines.
    """

    def __init__(self) -> None:
        self._songs_by_path: dict[str, str] = {}
        self._pending: dict[str, str] = {}
        self._lock = asyncio.Lock()
        self._loaded = False

    @property
    def loaded(self) -> bool:
        return self._loaded

    def __len__(self) -> int:
        return len(self._songs_by_path)

    def __contains__(self, path: object) -> bool:
        return str(path) in self._songs_by_path

    async def load(self, db: IndexDb) -> int:
        """
        Preload every known song from the store.

        Returns:
            Number of songs loaded.
        """
        rows = await db.list_songs()
        async with self._lock:
            self._songs_by_path = {path: song_id for song_id, path in rows}
            self._pending.clear()
            self._loaded = True
        logger.debug("Song registry loaded %d songs", len(rows))
        return len(rows)

    async def get(self, directory: str | Path) -> str | None:
        """Committed song id for `directory`, if any."""
        async with self._lock:
            return self._songs_by_path.get(str(directory))

    async def resolve(self, db: IndexDb, directory: str | Path) -> str:
        """
        Return the song id for `directory`, creating the song row on first sight.

        Must be called inside an open `db.transaction()`; the INSERT joins it.
        The new id is only recorded after the INSERT has executed.
        """
        path = str(directory)
        async with self._lock:
            song_id = self._songs_by_path.get(path) or self._pending.get(path)
            if song_id is not None:
                return song_id

            song_id = str(uuid.uuid4())
            await db.insert_song(song_id, path)
            self._pending[path] = song_id
            logger.debug("New song %s for %s", song_id, path)
            return song_id

    async def commit(self) -> int:
        """Promote ids minted in the current flush. Returns how many were added."""
        async with self._lock:
            added = len(self._pending)
            self._songs_by_path.update(self._pending)
            self._pending.clear()
            return added

    async def rollback(self) -> int:
        """Forget ids minted in a flush whose transaction was rolled back."""
        async with self._lock:
            dropped = len(self._pending)
            self._pending.clear()
            if dropped:
                logger.debug("Discarded %d uncommitted song ids", dropped)
            return dropped
