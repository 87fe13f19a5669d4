"""
export_csv.py — Parser for the app's own 13-column CSV export

Columns are looked up through a header map built once from the header row,
so column order comes from the file while the set of fields is fixed by
ExportColumn.
"""

from __future__ import annotations

import math
import re
from datetime import datetime
from enum import Enum

from feedlog.models import SessionRecord, SessionType, Side, Unit
from feedlog.parsers.shared import ParseContext, ParsedRows, parse_positive_finite
from feedlog.sanitize import normalize_header, sanitize_text
from feedlog.units import oz_to_ml
from feedlog.validator import INVALID_AMOUNT, normalize_source, validate_candidate

EXPORT_HEADERS = [
    "Date",
    "Time",
    "Type",
    "Amount (ml)",
    "Amount (oz)",
    "Side",
    "Left (ml)",
    "Left (oz)",
    "Right (ml)",
    "Right (oz)",
    "Duration (min)",
    "Notes",
    "Source",
]

DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
TIME_RE = re.compile(r"^\d{1,2}:\d{2}$")
DATETIME_FORMAT = "%Y-%m-%d %H:%M"


class ExportColumn(str, Enum):
    DATE = "date"
    TIME = "time"
    TYPE = "type"
    AMOUNT_ML = "amount (ml)"
    AMOUNT_OZ = "amount (oz)"
    SIDE = "side"
    LEFT_ML = "left (ml)"
    LEFT_OZ = "left (oz)"
    RIGHT_ML = "right (ml)"
    RIGHT_OZ = "right (oz)"
    DURATION = "duration (min)"
    NOTES = "notes"
    SOURCE = "source"


SESSION_TYPES = {t.value: t for t in SessionType}
SIDES = {s.value: s for s in Side}


class ExportRow:
    """Typed access to one data row through the header map."""

    def __init__(self, header_map: dict[str, int], cells: list[str]) -> None:
        self._header_map = header_map
        self._cells = cells

    def get(self, column: ExportColumn) -> str:
        index = self._header_map.get(column.value)
        if index is None or index >= len(self._cells):
            return ""
        return self._cells[index].strip()

    def amount(self, ml_column: ExportColumn, oz_column: ExportColumn) -> tuple[float, float, Unit] | None:
        """Metric column wins; otherwise convert the ounce column. None when neither is usable."""
        ml = parse_positive_finite(self.get(ml_column))
        if ml is not None:
            return ml, ml, Unit.ML
        oz = parse_positive_finite(self.get(oz_column))
        if oz is not None and math.isfinite(oz_to_ml(oz)):
            return oz_to_ml(oz), oz, Unit.OZ
        return None


def build_header_map(header: list[str]) -> dict[str, int]:
    header_map: dict[str, int] = {}
    for index, cell in enumerate(header):
        header_map.setdefault(normalize_header(cell), index)
    return header_map


def parse_timestamp(date_text: str, time_text: str) -> datetime | None:
    if not DATE_RE.match(date_text) or not TIME_RE.match(time_text):
        return None
    try:
        return datetime.strptime(f"{date_text} {time_text}", DATETIME_FORMAT)
    except ValueError:
        return None


def parse_export_records(records: list[list[str]], ctx: ParseContext | None = None) -> ParsedRows:
    """
    Parse records whose first entry is the canonical export header.

    Row numbers count the header as row 1.
    """
    ctx = ctx or ParseContext()
    result = ParsedRows()
    header = records[0]
    header_map = build_header_map(header)

    for row_number, cells in enumerate(records[1:], start=2):
        if len(cells) != len(header):
            result.add_error(row_number, f"expected {len(header)} columns, got {len(cells)}")
            continue

        row = ExportRow(header_map, cells)
        date_text = row.get(ExportColumn.DATE)
        time_text = row.get(ExportColumn.TIME)
        if not date_text or not time_text:
            result.add_error(row_number, "missing date or time")
            continue

        timestamp = parse_timestamp(date_text, time_text)
        if timestamp is None:
            result.add_error(row_number, "invalid date/time format")
            continue

        session_type = SESSION_TYPES.get(row.get(ExportColumn.TYPE).lower())
        if session_type is None:
            result.add_error(row_number, 'invalid type. Expected "feeding" or "pumping"')
            continue

        amount = row.amount(ExportColumn.AMOUNT_ML, ExportColumn.AMOUNT_OZ)
        if amount is None:
            result.add_error(row_number, INVALID_AMOUNT)
            continue
        amount_ml, amount_entered, unit_entered = amount

        left = row.amount(ExportColumn.LEFT_ML, ExportColumn.LEFT_OZ)
        right = row.amount(ExportColumn.RIGHT_ML, ExportColumn.RIGHT_OZ)

        record = SessionRecord(
            timestamp=timestamp,
            session_type=session_type,
            amount_ml=amount_ml,
            amount_entered=amount_entered,
            unit_entered=unit_entered,
            side=SIDES.get(row.get(ExportColumn.SIDE).lower()),
            amount_left_ml=left[0] if left else None,
            amount_right_ml=right[0] if right else None,
            duration_min=parse_positive_finite(row.get(ExportColumn.DURATION)),
            notes=sanitize_text(row.get(ExportColumn.NOTES)),
            source=normalize_source(row.get(ExportColumn.SOURCE)),
            confidence=1.0,
            created_at=ctx.now,
            updated_at=ctx.now,
        )

        reason = validate_candidate(record, now=ctx.now, config=ctx.config)
        if reason:
            result.add_error(row_number, reason)
            continue
        result.sessions.append(record)

    return result
