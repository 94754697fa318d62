from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path

from bmsindex.core.chart import ChartRecord, parse_chart

logger = logging.getLogger(__name__)


DEFAULT_CHART_EXTENSIONS: frozenset[str] = frozenset(
    {
        ".bms",
        ".bme",
        ".bml",
        ".pms",
    }
)

DEFAULT_MAX_WORKERS = 10


@dataclass(frozen=True, slots=True)
class ScanConfig:
    """
    Configuration for scanning chart folders.

    `extensions` are dotted and compared case-insensitively against file suffixes.
    """

    roots: tuple[Path, ...]
    extensions: frozenset[str] = DEFAULT_CHART_EXTENSIONS
    follow_symlinks: bool = False
    max_workers: int = DEFAULT_MAX_WORKERS
    queue_size: int | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "roots", tuple(Path(r) for r in self.roots))
        object.__setattr__(self, "extensions", frozenset(e.lower() for e in self.extensions))

    def accepts(self, path: Path) -> bool:
        return path.suffix.lower() in self.extensions


@dataclass(frozen=True, slots=True)
class ScanIssue:
    """A file or folder that could not be processed. `kind` is "parse" or "walk"."""

    path: Path
    message: str
    kind: str = "parse"


@dataclass(slots=True)
class ScanSummary:
    dispatched: int = 0
    parsed: int = 0
    issues: list[ScanIssue] = field(default_factory=list)
    cancelled: bool = False


RecordSink = Callable[[ChartRecord], Awaitable[object]]
IssueSink = Callable[[ScanIssue], Awaitable[object]]
Parser = Callable[[Path], ChartRecord]


def _walk(root: Path, config: ScanConfig) -> tuple[list[Path], list[ScanIssue]]:
    """
    Collect accepted chart paths under `root`.

    Unreadable sub-folders are reported as issues and skipped; the rest of the
    tree is still walked. Symlinked chart files are always taken;
    `follow_symlinks` only decides whether symlinked folders are descended into.
    """
    paths: list[Path] = []
    issues: list[ScanIssue] = []

    def _on_error(err: OSError) -> None:
        where = Path(err.filename) if err.filename else root
        issues.append(ScanIssue(path=where, message=f"{type(err).__name__}: {err}", kind="walk"))
        logger.warning("Cannot list %s: %s", where, err)

    for dirpath, _dirnames, filenames in os.walk(
        root, onerror=_on_error, followlinks=config.follow_symlinks
    ):
        for name in filenames:
            p = Path(dirpath) / name
            if not config.accepts(p):
                continue
            try:
                if not p.is_file():
                    continue
            except OSError as e:
                issues.append(ScanIssue(path=p, message=f"{type(e).__name__}: {e}", kind="walk"))
                continue
            paths.append(p)
    return paths, issues


async def iter_chart_files(
    root: Path,
    config: ScanConfig,
    issues: list[ScanIssue] | None = None,
) -> AsyncIterator[Path]:
    """
    Asynchronously yields chart file paths under `root`.

    Implementation notes:
    - We collect file paths in a thread to avoid blocking the event loop on large trees.
    - Extension-based filtering only; non-matching files are never yielded.
    - Walk problems below the root are appended to `issues` when given.
    """
    if not root.exists():
        raise FileNotFoundError(root)
    if not root.is_dir():
        raise NotADirectoryError(root)

    paths, walk_issues = await asyncio.to_thread(_walk, root, config)
    if issues is not None:
        issues.extend(walk_issues)
    for p in paths:
        yield p


class ScanDispatcher:
    """
    Walks the configured roots and parses charts with a fixed pool of workers.

    Pipeline:
    - one producer per root feeds a bounded path queue
    - `max_workers` persistent workers parse in threads and push outcomes to a
      result queue
    - a single aggregator drains the result queue into `on_record` / `on_issue`

    Workers never touch shared state; only the aggregator calls the sinks, so
    whatever the sinks mutate needs no extra coordination with the workers.

    Per-file failures become `ScanIssue`s. Anything raised by a sink is fatal:
    the cancel event is set, outstanding tasks are cancelled and the error
    propagates from `run()`.
    """

    def __init__(
        self,
        config: ScanConfig,
        *,
        on_record: RecordSink,
        on_issue: IssueSink | None = None,
        parser: Parser = parse_chart,
        cancel_event: asyncio.Event | None = None,
    ) -> None:
        if config.max_workers <= 0:
            raise ValueError("max_workers must be > 0")
        self._config = config
        self._on_record = on_record
        self._on_issue = on_issue
        self._parser = parser
        self._cancel_event = cancel_event or asyncio.Event()
        queue_size = config.queue_size or config.max_workers * 4
        self._paths: asyncio.Queue[Path | None] = asyncio.Queue(maxsize=queue_size)
        self._results: asyncio.Queue[ChartRecord | ScanIssue | None] = asyncio.Queue(
            maxsize=queue_size
        )
        self._summary = ScanSummary()

    @property
    def summary(self) -> ScanSummary:
        return self._summary

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def cancel(self) -> None:
        """Ask producers and workers to stop; already parsed charts are still delivered."""
        self._cancel_event.set()

    async def run(self) -> ScanSummary:
        dispatch = asyncio.create_task(self._dispatch(), name="scan-dispatch")
        aggregate = asyncio.create_task(self._aggregate(), name="scan-aggregate")
        pending: set[asyncio.Task[None]] = {dispatch, aggregate}
        try:
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_EXCEPTION)
            for task in done:
                task.result()
        except BaseException:
            self._cancel_event.set()
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            raise

        self._summary.cancelled = self._cancel_event.is_set()
        return self._summary

    async def _dispatch(self) -> None:
        workers = [
            asyncio.create_task(self._work(), name=f"scan-worker-{i}")
            for i in range(self._config.max_workers)
        ]
        producers = [
            asyncio.create_task(self._produce(root), name=f"scan-walk-{i}")
            for i, root in enumerate(self._config.roots)
        ]
        try:
            await asyncio.gather(*producers)
            for _ in workers:
                await self._paths.put(None)
            await asyncio.gather(*workers)
        except BaseException:
            for task in (*producers, *workers):
                task.cancel()
            await asyncio.gather(*producers, *workers, return_exceptions=True)
            raise
        await self._results.put(None)

    async def _produce(self, root: Path) -> None:
        issues: list[ScanIssue] = []
        async for path in iter_chart_files(root, self._config, issues):
            if self._cancel_event.is_set():
                break
            self._summary.dispatched += 1
            await self._paths.put(path)
        for issue in issues:
            await self._results.put(issue)

    async def _work(self) -> None:
        while True:
            path = await self._paths.get()
            if path is None:
                return
            if self._cancel_event.is_set():
                continue
            try:
                record = await asyncio.to_thread(self._parser, path)
            except Exception as e:  # noqa: BLE001 - one bad chart must not stop the scan
                msg = f"{type(e).__name__}: {e}"
                logger.debug("Scan issue for %s: %s", path, msg)
                await self._results.put(ScanIssue(path=path, message=msg))
                continue
            await self._results.put(record)

    async def _aggregate(self) -> None:
        while True:
            item = await self._results.get()
            if item is None:
                return
            if isinstance(item, ScanIssue):
                self._summary.issues.append(item)
                if self._on_issue is not None:
                    await self._on_issue(item)
                continue
            self._summary.parsed += 1
            await self._on_record(item)


async def scan_chart_folders(
    roots: Iterable[Path],
    *,
    extensions: Iterable[str] = DEFAULT_CHART_EXTENSIONS,
    max_workers: int = DEFAULT_MAX_WORKERS,
) -> tuple[list[ChartRecord], list[ScanIssue]]:
    """
    Scan folders and return parsed charts without persisting anything.

    Deterministic ordering (by path) is useful for tests and tooling.
    """
    records: list[ChartRecord] = []

    async def _collect(record: ChartRecord) -> None:
        records.append(record)

    config = ScanConfig(
        roots=tuple(roots),
        extensions=frozenset(extensions),
        max_workers=max_workers,
    )
    summary = await ScanDispatcher(config, on_record=_collect).run()
    records.sort(key=lambda r: str(r.path).lower())
    return records, summary.issues
