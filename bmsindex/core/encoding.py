"""
Charset normalization for chart files.

Charts in the wild come in whatever encoding the author's editor used: mostly
Shift-JIS, but also EUC-KR, UTF-8 and the occasional UTF-32 file. Everything is
converted to UTF-8 bytes before hashing so the same chart always hashes the same.

Detection uses ICU's CharsetDetector, which scores candidates from 0 to 100.

Policy:
- only trust the detector when it is fully confident (exactly 100)
- anything else is decoded as Shift-JIS, the overwhelmingly common case
- decoding never fails on bad sequences; they are replaced
"""

from __future__ import annotations

import logging
from typing import Callable, Final

import icu

from bmsindex.core import DecodingError, EncodingDetectionError

logger = logging.getLogger(__name__)

# bytes -> (charset name, confidence 0..100)
Detector = Callable[[bytes], tuple[str | None, int]]

FULL_CONFIDENCE: Final[int] = 100

# cp932 is the Windows superset of Shift-JIS that chart editors actually emit.
SHIFT_JIS_CODEC: Final[str] = "cp932"

UTF8_LABELS: Final[frozenset[str]] = frozenset({"UTF-8"})

# Detector label -> Python codec. Every Korean label ICU reports is listed.
LABEL_CODECS: Final[dict[str, str]] = {
    "UTF-32BE": "utf-32-be",
    "UTF-32LE": "utf-32-le",
    "EUC-KR": "euc_kr",
    "ISO-2022-KR": "iso2022_kr",
    "SHIFT-JIS": SHIFT_JIS_CODEC,
}


def icu_detect(data: bytes) -> tuple[str | None, int]:
    """Best ICU match for `data` as (name, confidence)."""
    match = icu.CharsetDetector(data).detect()
    if match is None:
        return None, 0
    return match.getName(), match.getConfidence()


def _normalize_label(label: str | None) -> str:
    if not label:
        return ""
    return label.strip().upper().replace("_", "-")


def detect_charset(data: bytes, *, detector: Detector = icu_detect) -> tuple[str, int]:
    """
    Run the charset detector and return (normalized label, confidence).

    Raises:
        EncodingDetectionError: the detector raised or returned something unusable.
    """
    try:
        label, confidence = detector(data)
    except Exception as e:
        raise EncodingDetectionError(f"charset detection failed: {e}") from e

    if not isinstance(confidence, int) or isinstance(confidence, bool):
        raise EncodingDetectionError(f"invalid detector confidence: {confidence!r}")
    return _normalize_label(label), confidence


def select_codec(label: str, confidence: int) -> str | None:
    """
    Map a detection result onto a codec name.

    Returns None when the input is already UTF-8 and must be passed through.
    """
    if confidence != FULL_CONFIDENCE:
        return SHIFT_JIS_CODEC

    if label in UTF8_LABELS:
        return None

    codec = LABEL_CODECS.get(label)
    if codec is None:
        if label != "SHIFT-JIS":
            logger.warning("Unknown encoding: %s", label or "<none>")
        return SHIFT_JIS_CODEC
    return codec


def normalize_encoding(data: bytes, *, detector: Detector = icu_detect) -> bytes:
    """
    Return `data` re-encoded as canonical UTF-8.

    Raises:
        EncodingDetectionError: detection failed.
        DecodingError: the chosen codec could not be applied.
    """
    label, confidence = detect_charset(data, detector=detector)
    codec = select_codec(label, confidence)
    if codec is None:
        return data

    try:
        text = data.decode(codec, errors="replace")
    except (LookupError, UnicodeError) as e:
        raise DecodingError(f"cannot decode as {codec}: {e}") from e

    if codec.startswith("utf-32"):
        text = text.lstrip("\ufeff")
    return text.encode("utf-8")
