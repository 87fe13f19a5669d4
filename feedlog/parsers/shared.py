from __future__ import annotations

import math
import numbers
import re
from dataclasses import dataclass, field
from datetime import datetime

from feedlog.config import DEFAULT_CONFIG, ImportConfig
from feedlog.models import SessionRecord

NUMBER_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")
THOUSANDS_SEPARATOR = ","


def parse_number(raw: object) -> float | None:
    """
    Read a plain decimal number from a cell.

    Numeric cells pass through; text must look like a decimal literal, so
    ``Infinity``, ``NaN`` and ``12abc`` are all rejected.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, numbers.Real):
        value = float(raw)
        return value if math.isfinite(value) else None
    text = str(raw).strip()
    if not NUMBER_RE.match(text):
        return None
    value = float(text)
    return value if math.isfinite(value) else None


def parse_positive_finite(raw: object) -> float | None:
    value = parse_number(raw)
    if value is None or value <= 0:
        return None
    return value


def strip_thousands(raw: object) -> object:
    if isinstance(raw, str):
        return raw.replace(THOUSANDS_SEPARATOR, "").strip()
    return raw


def is_blank(raw: object) -> bool:
    if raw is None:
        return True
    if isinstance(raw, float) and math.isnan(raw):
        return True
    return isinstance(raw, str) and not raw.strip()


def cell_text(raw: object) -> str:
    return "" if is_blank(raw) else str(raw).strip()


@dataclass
class ParseContext:
    """Per-call settings every row parser shares."""

    config: ImportConfig = DEFAULT_CONFIG
    now: datetime = field(default_factory=datetime.now)


@dataclass
class ParsedRows:
    sessions: list[SessionRecord] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def add_error(self, row_number: int, reason: str) -> None:
        self.errors.append(f"Row {row_number}: {reason}")


def parse_iso_timestamp(raw: object) -> datetime | None:
    """
    Parse an ISO-8601 timestamp into a naive local datetime.

    Offsets (including a trailing ``Z``) are converted to local time first.
    """
    if isinstance(raw, datetime):
        value = raw
    elif isinstance(raw, str) and raw.strip():
        text = raw.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            value = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if value.tzinfo is not None:
        value = value.astimezone().replace(tzinfo=None)
    return value
