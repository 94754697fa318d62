"""
Batch Persister - buffers parsed charts and writes them in batched transactions.

Each flush is one transaction:
1. resolve (and possibly create) the song of every buffered chart
2. upsert its pattern row keyed by content hash
3. commit, then clear the buffer

Flushes never overlap. That is what lets the song registry mint ids without a
race: a directory can only be seen for the first time inside one flush at a time.
"""

from __future__ import annotations

import asyncio
import logging

from bmsindex.core import PersistenceError
from bmsindex.core.chart import ChartRecord
from bmsindex.core.db.models import UpsertPattern
from bmsindex.core.index_db import IndexDb
from bmsindex.core.registry import SongRegistry

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 1000


class BatchPersister:
    """
    Accumulates `ChartRecord`s and flushes them when the batch threshold is reached.

    Locks:
    - `_buffer_lock` guards the pending record list
    - `_flush_lock` serializes flush transactions

    A failed flush raises `PersistenceError` and leaves the buffer untouched;
    re-running the whole index is the recovery path.
    """

    def __init__(
        self,
        db: IndexDb,
        registry: SongRegistry,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be > 0")
        self._db = db
        self._registry = registry
        self._batch_size = batch_size
        self._buffer: list[ChartRecord] = []
        self._buffer_lock = asyncio.Lock()
        self._flush_lock = asyncio.Lock()

        self.flushed_batches = 0
        self.persisted_patterns = 0
        self.created_songs = 0

    @property
    def batch_size(self) -> int:
        return self._batch_size

    @property
    def pending(self) -> int:
        """Number of buffered records not yet committed."""
        return len(self._buffer)

    async def add(self, record: ChartRecord) -> int:
        """
        Buffer a record; flush when the buffer reaches the batch size.

        Returns:
            Number of patterns committed by a triggered flush (0 if none ran).
        """
        async with self._buffer_lock:
            self._buffer.append(record)
            full = len(self._buffer) >= self._batch_size
        if not full:
            return 0
        return await self.flush()

    async def flush(self) -> int:
        """
        Commit every buffered record in one transaction.

        Returns:
            Number of patterns committed.

        Raises:
            PersistenceError: the transaction failed and was rolled back.
        """
        async with self._flush_lock:
            async with self._buffer_lock:
                batch = list(self._buffer)
            if not batch:
                return 0

            try:
                async with self._db.transaction():
                    for record in batch:
                        song_id = await self._registry.resolve(self._db, record.directory)
                        await self._db.upsert_pattern(
                            UpsertPattern(
                                hash=record.hash,
                                path=str(record.path),
                                song_id=song_id,
                                title=record.title,
                                subtitle=record.subtitle,
                                artist=record.artist,
                                subartist=record.subartist,
                            )
                        )
            except BaseException as e:
                await self._registry.rollback()
                if not isinstance(e, Exception):
                    raise
                logger.error("Batch of %d charts rolled back: %s", len(batch), e)
                raise PersistenceError(f"failed to persist batch of {len(batch)}: {e}") from e

            created = await self._registry.commit()
            async with self._buffer_lock:
                # Records added while we were writing stay for the next flush.
                del self._buffer[: len(batch)]

            self.flushed_batches += 1
            self.persisted_patterns += len(batch)
            self.created_songs += created
            logger.debug(
                "Flushed batch #%d: %d patterns, %d new songs",
                self.flushed_batches,
                len(batch),
                created,
            )
            return len(batch)

    async def close(self) -> int:
        """Flush the trailing partial batch."""
        return await self.flush()
