"""Free-text hygiene for header cells and notes."""

from __future__ import annotations

import re

CONTROL_CHARS_RE = re.compile(r"[\x00-\x1f\x7f]")
FORMULA_TRIGGERS = ("=", "+", "-", "@")


def strip_control_chars(value: str) -> str:
    return CONTROL_CHARS_RE.sub("", value)


def escape_formula(value: str) -> str:
    """Prefix a single apostrophe when text would be read as a spreadsheet formula."""
    if value.startswith(FORMULA_TRIGGERS):
        return "'" + value
    return value


def sanitize_text(value: str | None) -> str | None:
    """
    Strip control characters, trim, then neutralize a leading formula trigger.

    Returns None for blank input. Applying this twice gives the same result as
    applying it once: an escaped value starts with ``'``, which is not a trigger.
    """
    if value is None:
        return None
    clean = strip_control_chars(str(value)).strip()
    if not clean:
        return None
    return escape_formula(clean)


def normalize_header(value: str) -> str:
    return strip_control_chars(str(value)).strip().lower()
