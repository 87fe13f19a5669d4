"""
workbook.py — Parser for pump-tracker workbook exports

The first worksheet is read positionally, whatever its header says:
Date | Type | Time | Left (oz) | Right (oz) | Total (oz) | Note

For feeding rows the device writes the fed volume into the left column, so
per-side volumes are only kept for pumping rows. Dates and times may arrive
as native cells, spreadsheet serial numbers, or text.
"""

from __future__ import annotations

import numbers
from datetime import date, datetime, time, timedelta
from enum import IntEnum

import pandas as pd

from feedlog.models import SessionRecord, SessionType, Side, Source, Unit
from feedlog.parsers.shared import (
    ParseContext,
    ParsedRows,
    cell_text,
    is_blank,
    parse_number,
    parse_positive_finite,
    strip_thousands,
)
from feedlog.sanitize import sanitize_text
from feedlog.units import oz_to_ml
from feedlog.validator import INVALID_AMOUNT, validate_candidate

EXCEL_EPOCH = datetime(1899, 12, 30)
NOTE_PREFIX = "Note: "
TEXT_TIME_FORMATS = ("%H:%M", "%H:%M:%S", "%I:%M %p", "%I:%M%p", "%I:%M:%S %p")

WORKBOOK_TYPES = {
    "feeding": SessionType.FEEDING,
    "feed": SessionType.FEEDING,
    "pumping": SessionType.PUMPING,
    "pump": SessionType.PUMPING,
}


class WorkbookColumn(IntEnum):
    DATE = 0
    TYPE = 1
    TIME = 2
    LEFT_OZ = 3
    RIGHT_OZ = 4
    TOTAL_OZ = 5
    NOTE = 6


WORKBOOK_COLUMN_COUNT = len(WorkbookColumn)


# ══════════════════════════════════════════════════════════════════════════════
# CELL CONVERSION
# ══════════════════════════════════════════════════════════════════════════════

def _missing(value: object) -> bool:
    if value is None or value is pd.NaT:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def serial_to_datetime(serial: float) -> datetime:
    return EXCEL_EPOCH + timedelta(days=float(serial))


def parse_cell_date(value: object) -> datetime | None:
    """Return the cell as a datetime (time part kept), or None when unreadable."""
    if _missing(value):
        return None
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time())
    if isinstance(value, numbers.Real) and not isinstance(value, bool):
        try:
            return serial_to_datetime(value)
        except (OverflowError, ValueError):
            return None
    text = str(value).strip()
    if not text:
        return None
    parsed = pd.to_datetime(text, errors="coerce")
    if _missing(parsed):
        return None
    return parsed.to_pydatetime().replace(tzinfo=None)


def parse_cell_time(value: object) -> time | None:
    """
    Return the time of day held by a cell.

    Numbers are fractions of a day; only the fractional part counts, so a
    full date serial also works. Returns None for unreadable text.
    """
    if isinstance(value, pd.Timestamp):
        value = value.to_pydatetime()
    if isinstance(value, datetime):
        return value.time().replace(second=0, microsecond=0)
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)
    if isinstance(value, numbers.Real) and not isinstance(value, bool):
        total_minutes = int(round(float(value) * 24 * 60))
        return time((total_minutes // 60) % 24, total_minutes % 60)
    text = " ".join(str(value).split())
    for fmt in TEXT_TIME_FORMATS:
        try:
            return datetime.strptime(text, fmt).time().replace(second=0)
        except ValueError:
            continue
    return None


def clean_note(value: object) -> str | None:
    text = cell_text(value)
    if text.startswith(NOTE_PREFIX):
        text = text[len(NOTE_PREFIX):]
    return sanitize_text(text)


# ══════════════════════════════════════════════════════════════════════════════
# ROWS
# ══════════════════════════════════════════════════════════════════════════════

def data_rows(frame: pd.DataFrame) -> list[tuple[int, list[object]]]:
    """
    Return ``(sheet_row_number, cells)`` for every non-empty row below the header.

    Cells are padded with None so every row has the seven positional columns.
    """
    rows: list[tuple[int, list[object]]] = []
    for position, values in enumerate(frame.itertuples(index=False, name=None)):
        if position == 0:
            continue
        cells = list(values[:WORKBOOK_COLUMN_COUNT])
        cells.extend([None] * (WORKBOOK_COLUMN_COUNT - len(cells)))
        cells = [None if _missing(cell) else cell for cell in cells]
        if all(is_blank(cell) for cell in cells):
            continue
        rows.append((position + 1, cells))
    return rows


def _row_timestamp(date_cell: object, time_cell: object) -> datetime | str:
    day = parse_cell_date(date_cell)
    if day is None:
        return "invalid date"
    if is_blank(time_cell):
        return day.replace(second=0, microsecond=0)
    clock = parse_cell_time(time_cell)
    if clock is None:
        return "invalid time format"
    return datetime.combine(day.date(), clock)


def parse_workbook_rows(rows: list[tuple[int, list[object]]], ctx: ParseContext | None = None) -> ParsedRows:
    ctx = ctx or ParseContext()
    result = ParsedRows()

    for row_number, cells in rows:
        timestamp = _row_timestamp(cells[WorkbookColumn.DATE], cells[WorkbookColumn.TIME])
        if isinstance(timestamp, str):
            result.add_error(row_number, timestamp)
            continue

        session_type = WORKBOOK_TYPES.get(cell_text(cells[WorkbookColumn.TYPE]).lower())
        if session_type is None:
            result.add_error(row_number, 'invalid type. Expected "feeding" or "pumping"')
            continue

        total_oz = parse_number(strip_thousands(cells[WorkbookColumn.TOTAL_OZ]))
        if total_oz is None:
            result.add_error(row_number, INVALID_AMOUNT)
            continue

        left_ml = right_ml = None
        side = None
        if session_type == SessionType.PUMPING:
            left_oz = parse_positive_finite(strip_thousands(cells[WorkbookColumn.LEFT_OZ]))
            right_oz = parse_positive_finite(strip_thousands(cells[WorkbookColumn.RIGHT_OZ]))
            left_ml = oz_to_ml(left_oz) if left_oz is not None else None
            right_ml = oz_to_ml(right_oz) if right_oz is not None else None
            if left_ml is not None or right_ml is not None:
                side = Side.BOTH

        record = SessionRecord(
            timestamp=timestamp,
            session_type=session_type,
            amount_ml=oz_to_ml(total_oz),
            amount_entered=total_oz,
            unit_entered=Unit.OZ,
            side=side,
            amount_left_ml=left_ml,
            amount_right_ml=right_ml,
            notes=clean_note(cells[WorkbookColumn.NOTE]),
            source=Source.IMPORTED,
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
