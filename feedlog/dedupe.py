"""Tolerance-based matching of a candidate against stored sessions."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Protocol

from feedlog.config import DEFAULT_CONFIG, ImportConfig
from feedlog.models import SessionRecord, SessionType
from feedlog.store import SessionStore


class Timed(Protocol):
    timestamp: datetime
    amount_ml: float


def is_duplicate(a: Timed, b: Timed, config: ImportConfig = DEFAULT_CONFIG) -> bool:
    """True when both the time gap and the volume gap are within tolerance (inclusive)."""
    time_gap = abs(a.timestamp - b.timestamp)
    amount_gap = abs(a.amount_ml - b.amount_ml)
    return time_gap <= config.dedupe_window and amount_gap <= config.dedupe_amount_tolerance_ml


def find_duplicates(
    store: SessionStore,
    candidate: Timed,
    config: ImportConfig = DEFAULT_CONFIG,
) -> list[SessionRecord]:
    """Stored records within the time window whose volume differs by at most the tolerance."""
    window: timedelta = config.dedupe_window
    nearby = store.find_between(candidate.timestamp - window, candidate.timestamp + window)
    return [
        record
        for record in nearby
        if abs(record.amount_ml - candidate.amount_ml) <= config.dedupe_amount_tolerance_ml
    ]


def same_type(stored: SessionRecord, session_type: SessionType | None) -> bool:
    """A stored record without a type matches anything; otherwise types must agree."""
    if stored.session_type is None:
        return True
    return stored.session_type == (session_type or SessionType.FEEDING)
