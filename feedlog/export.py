"""
export.py — Canonical CSV export and JSON backups

sessions_to_csv() writes the same 13-column layout the export parser reads,
so an exported file can be imported again. Backups keep every field and are
read back through parse_backup(), which applies the same sanitizing and
validation as the CSV parsers.
"""

from __future__ import annotations

import csv
import io
import json
import logging
from datetime import datetime
from typing import Any, Iterable

from feedlog.config import DEFAULT_CONFIG, ImportConfig
from feedlog.models import FileFormat, ImportResult, SessionRecord, SessionType, Side, Unit
from feedlog.parsers.export_csv import EXPORT_HEADERS
from feedlog.parsers.shared import ParsedRows, parse_iso_timestamp, parse_number, parse_positive_finite
from feedlog.sanitize import sanitize_text
from feedlog.units import ml_to_oz, round_half_up
from feedlog.validator import INVALID_AMOUNT, normalize_source, validate_candidate

logger = logging.getLogger(__name__)

BACKUP_VERSION = 2
INVALID_BACKUP = "Invalid backup file format"


# ══════════════════════════════════════════════════════════════════════════════
# CSV EXPORT
# ══════════════════════════════════════════════════════════════════════════════

def _whole_ml(value: float) -> str:
    return str(int(round_half_up(value)))


def _oz_text(value_ml: float) -> str:
    return f"{ml_to_oz(value_ml):.1f}"


def _number_text(value: float | None) -> str:
    if value is None:
        return ""
    return str(int(value)) if float(value).is_integer() else str(value)


def session_to_row(session: SessionRecord) -> list[str]:
    left = session.amount_left_ml
    right = session.amount_right_ml
    return [
        session.timestamp.strftime("%Y-%m-%d"),
        session.timestamp.strftime("%H:%M"),
        session.session_type.value if session.session_type else "",
        _whole_ml(session.amount_ml),
        _oz_text(session.amount_ml),
        session.side.value if session.side else "",
        _whole_ml(left) if left is not None else "",
        _oz_text(left) if left is not None else "",
        _whole_ml(right) if right is not None else "",
        _oz_text(right) if right is not None else "",
        _number_text(session.duration_min),
        sanitize_text(session.notes) or "",
        session.source.value,
    ]


def sessions_to_csv(sessions: Iterable[SessionRecord]) -> str:
    """Render sessions as canonical export CSV with every cell quoted."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(EXPORT_HEADERS)
    for session in sessions:
        writer.writerow(session_to_row(session))
    return buffer.getvalue()


# ══════════════════════════════════════════════════════════════════════════════
# JSON BACKUP
# ══════════════════════════════════════════════════════════════════════════════

def export_backup(sessions: Iterable[SessionRecord], exported_at: datetime | None = None) -> str:
    payload = {
        "version": BACKUP_VERSION,
        "exported_at": (exported_at or datetime.now()).isoformat(timespec="seconds"),
        "sessions": [session.to_dict() for session in sessions],
    }
    return json.dumps(payload, indent=2, ensure_ascii=False)


def _optional_enum(enum_cls, raw: Any):
    if not isinstance(raw, str):
        return None
    try:
        return enum_cls(raw.strip().lower())
    except ValueError:
        return None


def _backup_entry(entry: Any, now: datetime) -> SessionRecord | str:
    if not isinstance(entry, dict):
        return "invalid session entry"

    timestamp = parse_iso_timestamp(entry.get("timestamp"))
    if timestamp is None:
        return "invalid date/time format"

    amount_ml = parse_number(entry.get("amount_ml"))
    if amount_ml is None or amount_ml <= 0:
        return INVALID_AMOUNT

    unit_entered = _optional_enum(Unit, entry.get("unit_entered")) or Unit.ML
    amount_entered = parse_positive_finite(entry.get("amount_entered"))
    if amount_entered is None:
        amount_entered = amount_ml if unit_entered == Unit.ML else ml_to_oz(amount_ml)

    confidence = parse_number(entry.get("confidence"))
    if confidence is None or not 0 <= confidence <= 1:
        confidence = 1.0

    return SessionRecord(
        timestamp=timestamp,
        session_type=_optional_enum(SessionType, entry.get("session_type")),
        amount_ml=amount_ml,
        amount_entered=amount_entered,
        unit_entered=unit_entered,
        side=_optional_enum(Side, entry.get("side")),
        amount_left_ml=parse_positive_finite(entry.get("amount_left_ml")),
        amount_right_ml=parse_positive_finite(entry.get("amount_right_ml")),
        duration_min=parse_positive_finite(entry.get("duration_min")),
        notes=sanitize_text(entry.get("notes")) if isinstance(entry.get("notes"), str) else None,
        source=normalize_source(entry.get("source") if isinstance(entry.get("source"), str) else None),
        confidence=confidence,
        created_at=parse_iso_timestamp(entry.get("created_at")) or now,
        updated_at=parse_iso_timestamp(entry.get("updated_at")) or now,
    )


def parse_backup(
    text: str,
    *,
    now: datetime | None = None,
    config: ImportConfig = DEFAULT_CONFIG,
) -> ImportResult:
    """
    Read a JSON backup into candidates.

    A document without ``version`` and a ``sessions`` list is a whole-file
    failure. Entries are numbered from 1 in error messages.
    """
    now = now or datetime.now()
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return ImportResult.failure(INVALID_BACKUP, FileFormat.JSON_BACKUP)
    if not isinstance(data, dict) or not data.get("version") or not isinstance(data.get("sessions"), list):
        return ImportResult.failure(INVALID_BACKUP, FileFormat.JSON_BACKUP)

    parsed = ParsedRows()
    for number, entry in enumerate(data["sessions"], start=1):
        outcome = _backup_entry(entry, now)
        if isinstance(outcome, str):
            parsed.add_error(number, outcome)
            continue
        # Backups may hold daily aggregates above the per-session cap.
        reason = validate_candidate(outcome, now=now, config=config, enforce_amount_cap=False)
        if reason:
            parsed.add_error(number, reason)
            continue
        parsed.sessions.append(outcome)

    logger.info("Read %d sessions from backup version %s", len(parsed.sessions), data["version"])
    return ImportResult(
        format=FileFormat.JSON_BACKUP,
        sessions=tuple(parsed.sessions),
        errors=tuple(parsed.errors),
    )
