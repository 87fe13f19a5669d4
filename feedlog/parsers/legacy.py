"""
legacy.py — Parser for the 8-column bilingual feeding/pumping log

Date,Feed Time,Feed Amount (oz),Feed Notes,Pump Time,Pump IZQ,Pump DER,Pump Total

One row may describe a feed, a pump session, both, or neither. The two halves
are parsed independently so a broken pump half never hides a good feed half.
"""

from __future__ import annotations

from datetime import datetime, time
from enum import IntEnum

from feedlog.models import SessionRecord, SessionType, Side, Source, Unit
from feedlog.parsers.shared import ParseContext, ParsedRows, parse_positive_finite
from feedlog.sanitize import sanitize_text
from feedlog.units import oz_to_ml
from feedlog.validator import validate_candidate

DATE_FORMAT = "%d-%b-%y"
TIME_FORMATS = ("%I:%M %p", "%I:%M%p")


class LegacyColumn(IntEnum):
    DATE = 0
    FEED_TIME = 1
    FEED_AMOUNT_OZ = 2
    FEED_NOTES = 3
    PUMP_TIME = 4
    PUMP_LEFT_OZ = 5
    PUMP_RIGHT_OZ = 6
    PUMP_TOTAL_OZ = 7


LEGACY_COLUMN_COUNT = len(LegacyColumn)


def parse_legacy_date(raw: str) -> datetime | None:
    try:
        return datetime.strptime(raw.strip(), DATE_FORMAT)
    except ValueError:
        return None


def parse_legacy_time(raw: str) -> time | None:
    text = " ".join(raw.split())
    for fmt in TIME_FORMATS:
        try:
            return datetime.strptime(text, fmt).time()
        except ValueError:
            continue
    return None


def _feed_candidate(cells: list[str], day: datetime, ctx: ParseContext) -> SessionRecord | str:
    clock = parse_legacy_time(cells[LegacyColumn.FEED_TIME])
    if clock is None:
        return "invalid feed time format"
    amount_oz = parse_positive_finite(cells[LegacyColumn.FEED_AMOUNT_OZ])
    if amount_oz is None:
        return "invalid feed amount"

    record = SessionRecord(
        timestamp=datetime.combine(day.date(), clock),
        session_type=SessionType.FEEDING,
        amount_ml=oz_to_ml(amount_oz),
        amount_entered=amount_oz,
        unit_entered=Unit.OZ,
        notes=sanitize_text(cells[LegacyColumn.FEED_NOTES]),
        source=Source.IMPORTED,
        created_at=ctx.now,
        updated_at=ctx.now,
    )
    reason = validate_candidate(record, now=ctx.now, config=ctx.config)
    return f"feed {reason}" if reason else record


def _pump_candidate(cells: list[str], day: datetime, ctx: ParseContext) -> SessionRecord | str:
    clock = parse_legacy_time(cells[LegacyColumn.PUMP_TIME])
    if clock is None:
        return "invalid pump time format"
    total_oz = parse_positive_finite(cells[LegacyColumn.PUMP_TOTAL_OZ])
    if total_oz is None:
        return "invalid pump total"

    left_oz = parse_positive_finite(cells[LegacyColumn.PUMP_LEFT_OZ])
    right_oz = parse_positive_finite(cells[LegacyColumn.PUMP_RIGHT_OZ])
    has_split = left_oz is not None or right_oz is not None

    record = SessionRecord(
        timestamp=datetime.combine(day.date(), clock),
        session_type=SessionType.PUMPING,
        amount_ml=oz_to_ml(total_oz),
        amount_entered=total_oz,
        unit_entered=Unit.OZ,
        side=Side.BOTH if has_split else None,
        amount_left_ml=oz_to_ml(left_oz) if left_oz is not None else None,
        amount_right_ml=oz_to_ml(right_oz) if right_oz is not None else None,
        source=Source.IMPORTED,
        created_at=ctx.now,
        updated_at=ctx.now,
    )
    reason = validate_candidate(record, now=ctx.now, config=ctx.config)
    return f"pump {reason}" if reason else record


def parse_legacy_records(records: list[list[str]], ctx: ParseContext | None = None) -> ParsedRows:
    ctx = ctx or ParseContext()
    result = ParsedRows()

    for row_number, cells in enumerate(records[1:], start=2):
        if len(cells) < LEGACY_COLUMN_COUNT:
            result.add_error(row_number, f"expected {LEGACY_COLUMN_COUNT} columns, got {len(cells)}")
            continue

        day = parse_legacy_date(cells[LegacyColumn.DATE])
        if day is None:
            result.add_error(row_number, "invalid date format")
            continue

        branches = []
        if cells[LegacyColumn.FEED_TIME].strip():
            branches.append(_feed_candidate)
        if cells[LegacyColumn.PUMP_TIME].strip():
            branches.append(_pump_candidate)

        for build in branches:
            outcome = build(cells, day, ctx)
            if isinstance(outcome, str):
                result.add_error(row_number, outcome)
            else:
                result.sessions.append(outcome)

    return result
