"""
vision.py — Review entries extracted from log photos

The extraction service returns already-structured entries:

    {"entries": [{"timestamp_local": "2026-02-06T10:30", "amount": 4,
                  "unit": "fl_oz", "notes": "...", "confidence": 0.82,
                  "assumptions": ["..."]}],
     "warnings": []}

Each entry becomes a review row with a candidate record (source ai_vision),
a duplicate flag against the store, and an accepted flag that defaults to
"no duplicate and a usable amount".
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from feedlog.config import DEFAULT_CONFIG, ImportConfig
from feedlog.dedupe import find_duplicates
from feedlog.models import FileFormat, ImportResult, SessionRecord, Source
from feedlog.parsers.shared import parse_iso_timestamp, parse_number
from feedlog.sanitize import sanitize_text
from feedlog.store import SessionStore
from feedlog.units import parse_unit, to_ml
from feedlog.validator import INVALID_AMOUNT, validate_candidate


@dataclass
class VisionReview:
    index: int
    record: SessionRecord | None
    has_duplicate: bool = False
    accepted: bool = False
    error: str | None = None
    assumptions: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "record": self.record.to_dict() if self.record else None,
            "has_duplicate": self.has_duplicate,
            "accepted": self.accepted,
            "error": self.error,
            "assumptions": list(self.assumptions),
        }


def _clamp_confidence(raw: Any) -> float:
    value = parse_number(raw)
    if value is None:
        return 0.0
    return min(max(value, 0.0), 1.0)


def entry_to_record(entry: dict[str, Any], now: datetime) -> SessionRecord | str:
    timestamp = parse_iso_timestamp(entry.get("timestamp_local"))
    if timestamp is None:
        return "invalid date/time format"
    unit = parse_unit(str(entry.get("unit") or ""))
    amount = parse_number(entry.get("amount"))
    if unit is None or amount is None or amount <= 0:
        return INVALID_AMOUNT

    notes = entry.get("notes")
    return SessionRecord(
        timestamp=timestamp,
        amount_ml=to_ml(amount, unit),
        amount_entered=amount,
        unit_entered=unit,
        notes=sanitize_text(notes) if isinstance(notes, str) else None,
        source=Source.AI_VISION,
        confidence=_clamp_confidence(entry.get("confidence")),
        created_at=now,
        updated_at=now,
    )


def review_entries(
    entries: list[dict[str, Any]],
    store: SessionStore,
    *,
    now: datetime | None = None,
    config: ImportConfig = DEFAULT_CONFIG,
) -> list[VisionReview]:
    now = now or datetime.now()
    reviews: list[VisionReview] = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            reviews.append(VisionReview(index=index, record=None, error="invalid entry"))
            continue
        assumptions = [str(item) for item in entry.get("assumptions") or [] if item is not None]
        outcome = entry_to_record(entry, now)
        if isinstance(outcome, str):
            reviews.append(VisionReview(index=index, record=None, error=outcome, assumptions=assumptions))
            continue
        reason = validate_candidate(outcome, now=now, config=config)
        if reason:
            reviews.append(VisionReview(index=index, record=outcome, error=reason, assumptions=assumptions))
            continue
        has_duplicate = bool(find_duplicates(store, outcome, config))
        reviews.append(
            VisionReview(
                index=index,
                record=outcome,
                has_duplicate=has_duplicate,
                accepted=not has_duplicate,
                assumptions=assumptions,
            )
        )
    return reviews


def review_response(
    payload: dict[str, Any],
    store: SessionStore,
    *,
    now: datetime | None = None,
    config: ImportConfig = DEFAULT_CONFIG,
) -> tuple[list[VisionReview], list[str]]:
    """Review a full extraction response; returns (reviews, service warnings)."""
    entries = payload.get("entries")
    if not isinstance(entries, list):
        raise ValueError("Vision response has no entries list")
    warnings = [str(item) for item in payload.get("warnings") or []]
    return review_entries(entries, store, now=now, config=config), warnings


def accepted_sessions(reviews: list[VisionReview]) -> list[SessionRecord]:
    return [review.record for review in reviews if review.accepted and review.record is not None]


def reviews_to_result(reviews: list[VisionReview], warnings: list[str] | None = None) -> ImportResult:
    """Summarize reviews as an ImportResult holding only the accepted records."""
    errors = tuple(f"Row {review.index + 1}: {review.error}" for review in reviews if review.error)
    return ImportResult(
        format=FileFormat.VISION_ENTRIES,
        sessions=tuple(accepted_sessions(reviews)),
        errors=errors,
        warnings=tuple(warnings or ()),
    )
