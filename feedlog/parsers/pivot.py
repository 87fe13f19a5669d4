"""
pivot.py — Parser for pivot-table daily totals (Date, Feeding, Pump, Grand Total)

Each day yields up to two aggregate records stamped at local noon. Daily
totals are not single sessions, so the per-session amount cap does not apply.
"""

from __future__ import annotations

from datetime import datetime, time

from feedlog.models import SessionRecord, SessionType, Source, Unit
from feedlog.parsers.shared import (
    ParseContext,
    ParsedRows,
    is_blank,
    parse_number,
    strip_thousands,
)
from feedlog.sanitize import normalize_header
from feedlog.units import oz_to_ml
from feedlog.validator import validate_candidate

DATE_FORMAT = "%m/%d/%Y"
DAILY_TIMESTAMP = time(12, 0)
SUMMARY_LABEL = "Grand Total"
AGGREGATE_NOTE = "Daily aggregate from pivot table"

CATEGORIES = (
    ("feeding", SessionType.FEEDING),
    ("pump", SessionType.PUMPING),
)


def parse_pivot_date(raw: str) -> datetime | None:
    try:
        return datetime.strptime(raw.strip(), DATE_FORMAT)
    except ValueError:
        return None


def parse_pivot_records(
    records: list[list[str]],
    header_index: int = 0,
    ctx: ParseContext | None = None,
) -> ParsedRows:
    """
    Parse records whose header sits at ``header_index`` (0 or 1).

    Row numbers are 1-based positions among the non-blank input lines, so a
    title row above the header shifts the first data row to row 3.
    """
    ctx = ctx or ParseContext()
    result = ParsedRows()
    header = [normalize_header(cell) for cell in records[header_index]]
    date_idx = header.index("date")
    columns = [(header.index(name), name, session_type) for name, session_type in CATEGORIES]

    first_row_number = header_index + 2
    for row_number, cells in enumerate(records[header_index + 1:], start=first_row_number):
        date_text = cells[date_idx].strip() if date_idx < len(cells) else ""
        if date_text == SUMMARY_LABEL:
            continue

        day = parse_pivot_date(date_text)
        if day is None:
            result.add_error(row_number, "invalid date")
            continue
        timestamp = datetime.combine(day.date(), DAILY_TIMESTAMP)

        for idx, name, session_type in columns:
            raw = strip_thousands(cells[idx]) if idx < len(cells) else ""
            if is_blank(raw):
                continue
            total_oz = parse_number(raw)
            if total_oz is None:
                result.add_error(row_number, f"invalid {name} total")
                continue
            if total_oz <= 0:
                continue

            record = SessionRecord(
                timestamp=timestamp,
                session_type=session_type,
                amount_ml=oz_to_ml(total_oz),
                amount_entered=total_oz,
                unit_entered=Unit.OZ,
                notes=AGGREGATE_NOTE,
                source=Source.IMPORTED,
                confidence=1.0,
                created_at=ctx.now,
                updated_at=ctx.now,
            )
            reason = validate_candidate(record, now=ctx.now, config=ctx.config, enforce_amount_cap=False)
            if reason:
                result.add_error(row_number, reason)
                continue
            result.sessions.append(record)

    return result
