"""Import limits and tolerances, overridable from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from datetime import timedelta

MAX_REASONABLE_AMOUNT_ML = 500
MAX_DURATION_MIN = 120
DEDUPE_TIME_TOLERANCE_MIN = 10
DEDUPE_AMOUNT_TOLERANCE_ML = 5
MAX_WORKBOOK_ROWS = 50_000
MAX_FILE_BYTES = 10 * 1024 * 1024
MAX_SKIPPED_ITEMS = 1000

ENV_OVERRIDES = {
    "FEEDLOG_MAX_AMOUNT_ML": ("max_amount_ml", float),
    "FEEDLOG_MAX_DURATION_MIN": ("max_duration_min", float),
    "FEEDLOG_DEDUPE_MINUTES": ("dedupe_time_tolerance_min", float),
    "FEEDLOG_DEDUPE_ML": ("dedupe_amount_tolerance_ml", float),
    "FEEDLOG_MAX_WORKBOOK_ROWS": ("max_workbook_rows", int),
}


@dataclass(frozen=True)
class ImportConfig:
    max_amount_ml: float = MAX_REASONABLE_AMOUNT_ML
    max_duration_min: float = MAX_DURATION_MIN
    future_tolerance: timedelta = field(default=timedelta(days=1))
    dedupe_time_tolerance_min: float = DEDUPE_TIME_TOLERANCE_MIN
    dedupe_amount_tolerance_ml: float = DEDUPE_AMOUNT_TOLERANCE_ML
    max_workbook_rows: int = MAX_WORKBOOK_ROWS
    max_file_bytes: int = MAX_FILE_BYTES
    max_skipped_items: int = MAX_SKIPPED_ITEMS

    @property
    def dedupe_window(self) -> timedelta:
        return timedelta(minutes=self.dedupe_time_tolerance_min)

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "ImportConfig":
        """Build a config from ``FEEDLOG_*`` variables, falling back to defaults."""
        env = os.environ if environ is None else environ
        overrides: dict[str, float | int] = {}
        for name, (attr, cast) in ENV_OVERRIDES.items():
            raw = env.get(name)
            if raw is None or not raw.strip():
                continue
            try:
                value = cast(raw.strip())
            except ValueError:
                raise ValueError(f"{name} must be a number, got {raw!r}") from None
            if value <= 0:
                raise ValueError(f"{name} must be positive")
            overrides[attr] = value

        raw_mb = env.get("FEEDLOG_MAX_FILE_MB")
        if raw_mb is not None and raw_mb.strip():
            try:
                megabytes = float(raw_mb.strip())
            except ValueError:
                raise ValueError(f"FEEDLOG_MAX_FILE_MB must be a number, got {raw_mb!r}") from None
            if megabytes <= 0:
                raise ValueError("FEEDLOG_MAX_FILE_MB must be positive")
            overrides["max_file_bytes"] = int(megabytes * 1024 * 1024)

        return replace(cls(), **overrides)


DEFAULT_CONFIG = ImportConfig()
