"""
Progress events for index runs.

`ChartIndexer` reports what it is doing through an `EventBus` so the CLI, tests
or any other observer can follow a run without the pipeline knowing about them.

Event types:
- index.scan: one `IndexScanEvent` per status change. `status` is one of
  started, batch_flushed, file_failed, completed or failed

Subscriptions match exact types, a `prefix.*` family or everything via `*`:

    async def on_scan(event: IndexScanEvent) -> None:
        print(event.status, event.persisted)

    await event_bus.subscribe("index.*", on_scan)
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Coroutine, Final

logger = logging.getLogger(__name__)

EventHandler = Callable[["Event"], Coroutine[Any, Any, None]]

SCAN_STATUSES: Final[frozenset[str]] = frozenset(
    {"started", "batch_flushed", "file_failed", "completed", "failed"}
)


@dataclass
class Event:
    event_type: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.event_type}


@dataclass
class IndexScanEvent(Event):
    """
    Snapshot of an index run.

    Counters are cumulative for the run. `path` names the chart of a
    `file_failed` event; `error` carries the message of a `failed` run.
    """

    event_type: str = field(default="index.scan", init=False)
    status: str = ""
    parsed: int = 0
    persisted: int = 0
    failed: int = 0
    path: str = ""
    error: str = ""

    def __post_init__(self) -> None:
        if self.status not in SCAN_STATUSES:
            raise ValueError(f"unknown scan status: {self.status!r}")

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(
            status=self.status,
            parsed=self.parsed,
            persisted=self.persisted,
            failed=self.failed,
        )
        if self.path:
            data["path"] = self.path
        if self.error:
            data["error"] = self.error
        return data


def _matches(pattern: str, event_type: str) -> bool:
    if pattern == "*" or pattern == event_type:
        return True
    return pattern.endswith(".*") and event_type.startswith(pattern[:-1])


class EventBus:
    """
    Async pub/sub with pattern subscriptions.

    A handler that raises is logged and skipped; the remaining handlers and
    the publisher are not affected.
    """

    def __init__(self) -> None:
        self._subscriptions: list[tuple[str, EventHandler]] = []
        self._lock = asyncio.Lock()

    async def subscribe(self, pattern: str, handler: EventHandler) -> None:
        async with self._lock:
            self._subscriptions.append((pattern, handler))
        logger.debug("Subscribed %s to %s", handler, pattern)

    async def unsubscribe(self, pattern: str, handler: EventHandler) -> bool:
        """Remove one subscription. Returns False if it was not registered."""
        async with self._lock:
            try:
                self._subscriptions.remove((pattern, handler))
            except ValueError:
                return False
        return True

    async def publish(self, event: Event) -> int:
        """
        Deliver `event` to every matching handler, in subscription order.

        Returns:
            Number of handlers that completed without raising.
        """
        async with self._lock:
            handlers = [h for p, h in self._subscriptions if _matches(p, event.event_type)]

        delivered = 0
        for handler in handlers:
            try:
                await handler(event)
            except Exception:
                logger.exception("Event handler %s failed on %s", handler, event.event_type)
                continue
            delivered += 1
        return delivered

    async def clear(self) -> None:
        async with self._lock:
            self._subscriptions.clear()


event_bus = EventBus()
