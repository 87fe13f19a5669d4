"""
pipeline.py — Turn raw import input into an ImportResult

    result = parse_file("export.csv")
    result = parse_bytes(raw, filename="tracker.xlsx")
    result = parse_csv_text(text)

Content problems never raise: whole-file failures come back as a result with
``fatal=True`` and exactly one error, row failures as ``"Row <n>: <reason>"``
entries next to the sessions that did parse. Missing files and missing
optional workbook engines still raise.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path

from feedlog.config import DEFAULT_CONFIG, ImportConfig
from feedlog.detector import detect_records
from feedlog.loader import WorkbookError, load_bytes, load_path, split_records
from feedlog.models import FileFormat, ImportResult
from feedlog.parsers import (
    ParseContext,
    ParsedRows,
    data_rows,
    parse_export_records,
    parse_legacy_records,
    parse_pivot_records,
    parse_workbook_rows,
)

logger = logging.getLogger(__name__)

NO_CSV_ROWS = "CSV has no data rows"
NO_SHEET_ROWS = "Sheet has no data rows"
UNRECOGNIZED_FORMAT = (
    "Unrecognized CSV format. Expected the app export format (13 columns), "
    "the legacy feed/pump log (8 columns), or a pivot-daily table "
    "(Date, Feeding, Pump, Grand Total)."
)


def _finish(file_format: FileFormat, parsed: ParsedRows, warnings: list[str]) -> ImportResult:
    logger.info(
        "Parsed %s input: %d sessions, %d row errors",
        file_format.value,
        len(parsed.sessions),
        len(parsed.errors),
    )
    return ImportResult(
        format=file_format,
        sessions=tuple(parsed.sessions),
        errors=tuple(parsed.errors),
        warnings=tuple(warnings),
    )


def parse_csv_text(
    text: str,
    *,
    now: datetime | None = None,
    config: ImportConfig = DEFAULT_CONFIG,
    warnings: list[str] | None = None,
) -> ImportResult:
    """Detect the layout of CSV text and parse every data row."""
    warnings = list(warnings or [])
    ctx = ParseContext(config=config, now=now or datetime.now())
    records = split_records(text)

    if len(records) < 2:
        return ImportResult.failure(NO_CSV_ROWS, warnings=tuple(warnings))

    detection = detect_records(records)
    logger.debug("Detected %s (header at record %d)", detection.format.value, detection.header_index)

    if detection.format == FileFormat.UNRECOGNIZED:
        return ImportResult.failure(UNRECOGNIZED_FORMAT, warnings=tuple(warnings))
    if detection.format == FileFormat.CANONICAL_EXPORT:
        parsed = parse_export_records(records, ctx)
    elif detection.format == FileFormat.LEGACY_BILINGUAL:
        parsed = parse_legacy_records(records, ctx)
    elif detection.format == FileFormat.PIVOT_DAILY:
        if len(records) <= detection.header_index + 1:
            return ImportResult.failure(NO_CSV_ROWS, FileFormat.PIVOT_DAILY, tuple(warnings))
        parsed = parse_pivot_records(records, detection.header_index, ctx)
    else:
        raise ValueError(f"Unhandled format: {detection.format}")

    return _finish(detection.format, parsed, warnings)


def parse_loaded(
    loaded: dict,
    *,
    now: datetime | None = None,
    config: ImportConfig = DEFAULT_CONFIG,
) -> ImportResult:
    """Parse the dict returned by ``loader.load_bytes`` / ``loader.load_path``."""
    warnings = list(loaded.get("warnings") or [])
    if loaded["kind"] == "text":
        return parse_csv_text(loaded["raw_text"], now=now, config=config, warnings=warnings)

    rows = data_rows(loaded["dataframe"])
    if not rows:
        return ImportResult.failure(NO_SHEET_ROWS, FileFormat.WORKBOOK, tuple(warnings))
    if len(rows) > config.max_workbook_rows:
        message = f"Too many rows. Maximum is {config.max_workbook_rows}."
        return ImportResult.failure(message, FileFormat.WORKBOOK, tuple(warnings))

    ctx = ParseContext(config=config, now=now or datetime.now())
    return _finish(FileFormat.WORKBOOK, parse_workbook_rows(rows, ctx), warnings)


def parse_bytes(
    raw: bytes,
    filename: str | None = None,
    *,
    now: datetime | None = None,
    config: ImportConfig = DEFAULT_CONFIG,
) -> ImportResult:
    """
    Parse raw upload bytes.

    ``filename`` only contributes its suffix; without one, workbooks are
    recognized by magic bytes and everything else is treated as CSV text.
    """
    try:
        loaded = load_bytes(raw, filename=filename, config=config)
    except WorkbookError as exc:
        return ImportResult.failure(str(exc), FileFormat.WORKBOOK)
    except ValueError as exc:
        return ImportResult.failure(str(exc))
    return parse_loaded(loaded, now=now, config=config)


def parse_file(
    path: "str | Path",
    *,
    now: datetime | None = None,
    config: ImportConfig = DEFAULT_CONFIG,
) -> ImportResult:
    """
    Parse a file from disk.

    Raises:
        FileNotFoundError  if the file does not exist.
        ImportError        if an optional workbook engine is missing.
    """
    try:
        loaded = load_path(path, config=config)
    except WorkbookError as exc:
        return ImportResult.failure(str(exc), FileFormat.WORKBOOK)
    except ValueError as exc:
        return ImportResult.failure(str(exc))
    return parse_loaded(loaded, now=now, config=config)
