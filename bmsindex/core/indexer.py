from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass

from bmsindex.core import CoreError, TooManyErrorsError
from bmsindex.core.chart import ChartRecord, parse_chart
from bmsindex.core.events import EventBus, IndexScanEvent, event_bus
from bmsindex.core.index_db import IndexDb
from bmsindex.core.persister import DEFAULT_BATCH_SIZE, BatchPersister
from bmsindex.core.registry import SongRegistry
from bmsindex.core.scanner import Parser, ScanConfig, ScanDispatcher, ScanIssue

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class IndexResult:
    dispatched: int
    parsed: int
    persisted: int
    created_songs: int
    batches: int
    issues: tuple[ScanIssue, ...]
    cancelled: bool = False
    duration_seconds: float = 0.0

    @property
    def failed(self) -> int:
        return len(self.issues)


class IndexerError(CoreError):
    """Base error for ChartIndexer operations."""


class IndexerNotReadyError(IndexerError):
    """Raised when a run is attempted before the indexer is initialized."""


class ChartIndexer:
    """
    High-level facade for one index run.

    Wires the pieces together:
    - `ScanDispatcher` walks the roots and parses charts concurrently
    - `BatchPersister` buffers the records and writes batched transactions
    - `SongRegistry` gives every chart folder exactly one song id

    Per-file failures are collected in `IndexResult.issues`. When `max_errors`
    is set and exceeded, the run is aborted with `TooManyErrorsError`; batches
    committed before that stay in the index.
    """

    def __init__(
        self,
        *,
        db: IndexDb,
        scan_config: ScanConfig,
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_errors: int | None = None,
        events: EventBus | None = None,
        parser: Parser = parse_chart,
    ) -> None:
        self._db = db
        self._scan_config = scan_config
        self._batch_size = batch_size
        self._max_errors = max_errors
        self._events = events if events is not None else event_bus
        self._parser = parser
        self._registry = SongRegistry()
        self._initialized = False
        self._dispatcher: ScanDispatcher | None = None

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def registry(self) -> SongRegistry:
        return self._registry

    async def initialize(self) -> None:
        """
        Ensure the schema and preload known songs.

        Contract:
        - `IndexDb` must already be open.
        """
        if not self._db.is_open:
            raise IndexerError("IndexDb is not open. Open it before initializing ChartIndexer.")

        await self._db.ensure_schema()
        known = await self._registry.load(self._db)
        logger.info("Index %s holds %d songs", self._db.path, known)
        self._initialized = True

    def cancel(self) -> None:
        """Stop a running index early; charts parsed so far are still persisted."""
        if self._dispatcher is not None:
            self._dispatcher.cancel()

    async def run(self, *, cancel_event: asyncio.Event | None = None) -> IndexResult:
        """Scan every root, persist all parsed charts and return a summary."""
        self._require_initialized()
        started = time.perf_counter()

        persister = BatchPersister(self._db, self._registry, batch_size=self._batch_size)
        issues: list[ScanIssue] = []

        async def _on_record(record: ChartRecord) -> None:
            flushed = await persister.add(record)
            if flushed:
                await self._publish("batch_flushed", dispatcher, persister, issues)

        async def _on_issue(issue: ScanIssue) -> None:
            issues.append(issue)
            logger.warning("Skipping %s: %s", issue.path, issue.message)
            await self._publish(
                "file_failed", dispatcher, persister, issues, path=str(issue.path)
            )
            if self._max_errors is not None and len(issues) > self._max_errors:
                raise TooManyErrorsError(
                    f"{len(issues)} charts failed, more than the allowed {self._max_errors}"
                )

        dispatcher = ScanDispatcher(
            self._scan_config,
            on_record=_on_record,
            on_issue=_on_issue,
            parser=self._parser,
            cancel_event=cancel_event,
        )
        self._dispatcher = dispatcher

        logger.info(
            "Indexing %d source folders (%d workers, batch size %d)",
            len(self._scan_config.roots),
            self._scan_config.max_workers,
            self._batch_size,
        )
        await self._publish("started", dispatcher, persister, issues)

        try:
            summary = await dispatcher.run()
            if await persister.close():
                await self._publish("batch_flushed", dispatcher, persister, issues)
        except Exception as e:
            await self._publish("failed", dispatcher, persister, issues, error=str(e))
            raise
        finally:
            self._dispatcher = None

        result = IndexResult(
            dispatched=summary.dispatched,
            parsed=summary.parsed,
            persisted=persister.persisted_patterns,
            created_songs=persister.created_songs,
            batches=persister.flushed_batches,
            issues=tuple(issues),
            cancelled=summary.cancelled,
            duration_seconds=round(time.perf_counter() - started, 3),
        )
        logger.info(
            "Index complete: %d charts, %d persisted, %d new songs, %d failed in %.1fs",
            result.dispatched,
            result.persisted,
            result.created_songs,
            result.failed,
            result.duration_seconds,
        )
        await self._publish("completed", dispatcher, persister, issues)
        return result

    async def _publish(
        self,
        status: str,
        dispatcher: ScanDispatcher,
        persister: BatchPersister,
        issues: list[ScanIssue],
        *,
        path: str = "",
        error: str = "",
    ) -> None:
        await self._events.publish(
            IndexScanEvent(
                status=status,
                parsed=dispatcher.summary.parsed,
                persisted=persister.persisted_patterns,
                failed=len(issues),
                path=path,
                error=error,
            )
        )

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise IndexerNotReadyError(
                "ChartIndexer is not initialized. Call await ChartIndexer.initialize() first."
            )
