"""Small builders shared by the test modules."""

from __future__ import annotations

from pathlib import Path
from typing import Callable


def fixed_detector(name: str | None, confidence: int) -> Callable[[bytes], tuple[str | None, int]]:
    """Build a charset detector stub that always reports the same (name, confidence)."""

    def _detect(data: bytes) -> tuple[str | None, int]:
        return name, confidence

    return _detect


def write_chart(
    path: Path,
    title: str = "Title",
    artist: str = "Artist",
    *,
    body: str = "#00111:01\n",
    encoding: str = "ascii",
) -> Path:
    """Write a minimal chart file, creating parent folders as needed."""
    path.parent.mkdir(parents=True, exist_ok=True)
    text = f"#PLAYER 1\n#TITLE {title}\n#ARTIST {artist}\n{body}"
    path.write_bytes(text.encode(encoding))
    return path
