"""
Chart parsing: header extraction, content identity and the per-file parse task.

Everything here is synchronous and free of shared state, so the scanner can run
`parse_chart` in a worker thread without locking.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from pathlib import Path

from bmsindex.core import ChartParseError
from bmsindex.core.encoding import Detector, icu_detect, normalize_encoding

# Only CR, LF and CRLF end a line. Form feeds, separators and the Unicode line
# breaks that str.splitlines() honours are ordinary header text.
LINE_BREAK = re.compile(r"\r\n|\r|\n")

# Anchored, case-insensitive header prefixes. Order matters: a line is tested
# against each in turn and claims at most one field.
HEADER_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("title", re.compile(r"^#title[ \t]*(.*)$", re.IGNORECASE)),
    ("subtitle", re.compile(r"^#subtitle[ \t]*(.*)$", re.IGNORECASE)),
    ("artist", re.compile(r"^#artist[ \t]*(.*)$", re.IGNORECASE)),
    ("subartist", re.compile(r"^#subartist[ \t]*(.*)$", re.IGNORECASE)),
)


@dataclass(slots=True)
class ChartMetadata:
    """Header values of a chart. Missing headers stay empty strings."""

    title: str = ""
    subtitle: str = ""
    artist: str = ""
    subartist: str = ""

    def is_complete(self) -> bool:
        return bool(self.title and self.subtitle and self.artist and self.subartist)


@dataclass(frozen=True, slots=True)
class ChartRecord:
    """
    One parsed chart file, ready to be persisted.

    `hash` is the identity of the pattern row; `path` is informational and
    `directory` decides which song the chart belongs to.
    """

    path: Path
    hash: str
    title: str = ""
    subtitle: str = ""
    artist: str = ""
    subartist: str = ""

    @property
    def directory(self) -> Path:
        return self.path.parent


def extract_metadata(text: str) -> ChartMetadata:
    """
    Extract the first #TITLE, #SUBTITLE, #ARTIST and #SUBARTIST of a chart.

    Single pass, no backtracking. Stops as soon as all four fields are filled.
    """
    meta = ChartMetadata()
    for line in LINE_BREAK.split(text):
        if meta.is_complete():
            break
        for field_name, pattern in HEADER_PATTERNS:
            match = pattern.match(line)
            if match is None:
                continue
            if not getattr(meta, field_name):
                setattr(meta, field_name, match.group(1).rstrip())
            break
    return meta


def content_hash(data: bytes) -> str:
    """SHA-256 hex digest of canonical chart bytes."""
    return hashlib.sha256(data).hexdigest()


def parse_chart(path: Path, *, detector: Detector = icu_detect) -> ChartRecord:
    """
    Read, normalize, hash and extract one chart file.

    Raises:
        ChartParseError: the file could not be read or decoded (subclasses name the cause).
    """
    try:
        raw = path.read_bytes()
    except OSError as e:
        raise ChartParseError(f"cannot read {path}: {e}") from e

    canonical = normalize_encoding(raw, detector=detector)
    meta = extract_metadata(canonical.decode("utf-8", errors="replace"))

    return ChartRecord(
        path=path,
        hash=content_hash(canonical),
        title=meta.title,
        subtitle=meta.subtitle,
        artist=meta.artist,
        subartist=meta.subartist,
    )
