"""
Core domain package.

This package contains the scan -> parse -> persist pipeline. It has no CLI or
configuration-file knowledge; callers hand it an `IndexerConfig` and an open
`IndexDb`.

We intentionally keep exports minimal; consumers should usually import from the
specific module they need (e.g. `bmsindex.core.indexer`).
"""

from __future__ import annotations

__all__: list[str] = [
    "CoreError",
    "ChartParseError",
    "EncodingDetectionError",
    "DecodingError",
    "PersistenceError",
    "TooManyErrorsError",
]


class CoreError(Exception):
    """Base class for core-layer exceptions."""


class ChartParseError(CoreError):
    """Raised when a single chart file cannot be turned into a record."""


class EncodingDetectionError(ChartParseError):
    """Raised when the charset detector fails on a chart's bytes."""


class DecodingError(ChartParseError):
    """Raised when a chart's bytes cannot be converted to UTF-8."""


class PersistenceError(CoreError):
    """Raised when a batch flush fails and its transaction was rolled back."""


class TooManyErrorsError(CoreError):
    """Raised when isolated per-file failures exceed the configured threshold."""
