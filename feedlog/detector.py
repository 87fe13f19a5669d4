"""
detector.py — Pick the row parser for a CSV-like input

Header cells are normalized (control characters removed, trimmed, lower-cased)
and matched against each known layout in priority order: canonical export,
legacy bilingual, then pivot daily. Workbooks never go through header
matching; they are routed by input kind.
"""

from __future__ import annotations

from dataclasses import dataclass

from feedlog.models import FileFormat
from feedlog.sanitize import normalize_header

LEGACY_LEFT_MARKERS = ("izq", "iq")
PIVOT_HEADER_SEARCH_DEPTH = 2


@dataclass(frozen=True)
class Detection:
    format: FileFormat
    header_index: int = 0


def _has_exact(headers: list[str], name: str) -> bool:
    return any(h == name for h in headers)


def _has_all(headers: list[str], *parts: str) -> bool:
    return any(all(part in h for part in parts) for h in headers)


def is_canonical_export_header(headers: list[str]) -> bool:
    return (
        _has_exact(headers, "type")
        and _has_exact(headers, "side")
        and _has_all(headers, "amount", "ml")
        and _has_all(headers, "left", "ml")
    )


def is_legacy_bilingual_header(headers: list[str]) -> bool:
    return (
        _has_all(headers, "feed", "time")
        and _has_all(headers, "pump", "time")
        and any(marker in h for h in headers for marker in LEGACY_LEFT_MARKERS)
    )


def is_pivot_daily_header(headers: list[str]) -> bool:
    return all(_has_exact(headers, name) for name in ("date", "feeding", "pump"))


def detect_records(records: list[list[str]]) -> Detection:
    """
    Classify CSV records by their header row.

    Returns a Detection with FileFormat.UNRECOGNIZED when nothing matches.
    ``header_index`` is the record holding the header (pivot exports may carry
    one title row above it).
    """
    if not records:
        return Detection(FileFormat.UNRECOGNIZED)

    first = [normalize_header(cell) for cell in records[0]]
    if is_canonical_export_header(first):
        return Detection(FileFormat.CANONICAL_EXPORT)
    if is_legacy_bilingual_header(first):
        return Detection(FileFormat.LEGACY_BILINGUAL)

    for index, record in enumerate(records[:PIVOT_HEADER_SEARCH_DEPTH]):
        if is_pivot_daily_header([normalize_header(cell) for cell in record]):
            return Detection(FileFormat.PIVOT_DAILY, header_index=index)

    return Detection(FileFormat.UNRECOGNIZED)
