"""
validator.py — bounds and temporal checks shared by every row parser

Each check returns one fixed, parameter-free reason string so the raw value
never leaks into an error message.
"""

from __future__ import annotations

import math
from datetime import datetime

from feedlog.config import DEFAULT_CONFIG, ImportConfig
from feedlog.models import SessionRecord, Source

INVALID_AMOUNT = "missing or invalid amount"
AMOUNT_TOO_LARGE = "amount exceeds maximum"
INVALID_SIDE_AMOUNT = "invalid side amount"
DURATION_TOO_LARGE = "duration exceeds maximum"
FUTURE_DATE = "date is in the future"

SOURCE_LOOKUP = {source.value: source for source in Source}


def normalize_source(raw: str | Source | None) -> Source:
    """Return the allow-listed source for ``raw``; anything unknown becomes ``imported``."""
    if isinstance(raw, Source):
        return raw
    if raw is None:
        return Source.IMPORTED
    return SOURCE_LOOKUP.get(str(raw).strip().lower(), Source.IMPORTED)


def is_positive_finite(value: float | None) -> bool:
    return value is not None and math.isfinite(value) and value > 0


def check_amount(amount_ml: float | None, config: ImportConfig = DEFAULT_CONFIG, *, enforce_cap: bool = True) -> str | None:
    if not is_positive_finite(amount_ml):
        return INVALID_AMOUNT
    if enforce_cap and amount_ml > config.max_amount_ml:
        return AMOUNT_TOO_LARGE
    return None


def check_side_amounts(record: SessionRecord) -> str | None:
    for value in (record.amount_left_ml, record.amount_right_ml):
        if value is not None and not is_positive_finite(value):
            return INVALID_SIDE_AMOUNT
    return None


def check_duration(duration_min: float | None, config: ImportConfig = DEFAULT_CONFIG) -> str | None:
    if duration_min is None:
        return None
    if not math.isfinite(duration_min) or duration_min > config.max_duration_min:
        return DURATION_TOO_LARGE
    return None


def check_timestamp(timestamp: datetime, now: datetime, config: ImportConfig = DEFAULT_CONFIG) -> str | None:
    if timestamp > now + config.future_tolerance:
        return FUTURE_DATE
    return None


def validate_candidate(
    record: SessionRecord,
    *,
    now: datetime | None = None,
    config: ImportConfig = DEFAULT_CONFIG,
    enforce_amount_cap: bool = True,
) -> str | None:
    """
    Screen one candidate record.

    Returns the rejection reason, or None when the record may be kept.
    ``enforce_amount_cap=False`` is used for daily aggregates, which are
    legitimately larger than a single session.
    """
    now = now or datetime.now()
    return (
        check_amount(record.amount_ml, config, enforce_cap=enforce_amount_cap)
        or check_side_amounts(record)
        or check_duration(record.duration_min, config)
        or check_timestamp(record.timestamp, now, config)
    )
