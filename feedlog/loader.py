"""
loader.py — Read raw import input into text records or a worksheet frame

Supports: .csv .txt (comma separated text) and .xlsx .xlsm .xls .ods workbooks.
Workbooks are also recognized by their magic bytes when no filename is known.

Public API:
    loaded = load_path("path/to/export.csv")
    loaded = load_bytes(raw, filename="upload.xlsx")

Result dict keys:
    kind              — "text" or "workbook"
    detected_format   — file suffix without the dot ("csv", "xlsx", ...)
    detected_encoding — encoding name for text input; None for workbooks
    encoding_info     — full dict: detected, confidence, is_utf8, suspicious_chars
    raw_text          — decoded text (BOM removed) for text input; None otherwise
    dataframe         — first worksheet as a header-less pandas DataFrame; None for text
    sheet_name        — first sheet name for workbooks; None otherwise
    sheet_names       — all sheet names for workbooks; None otherwise
    warnings          — list of warning strings
"""

from __future__ import annotations

import csv
import io
import logging
from pathlib import Path

import chardet
import pandas as pd

from feedlog.config import DEFAULT_CONFIG, ImportConfig

logger = logging.getLogger(__name__)

# ── Format groups ──────────────────────────────────────────────────────────────
TEXT_FORMATS     = {".csv", ".txt"}
WORKBOOK_FORMATS = {".xlsx", ".xlsm", ".xls", ".ods"}
ALL_FORMATS      = TEXT_FORMATS | WORKBOOK_FORMATS

ZIP_MAGIC = b"PK\x03\x04"
OLE_MAGIC = b"\xd0\xcf\x11\xe0"
ODS_MIMETYPE = b"application/vnd.oasis.opendocument.spreadsheet"


class WorkbookError(ValueError):
    """A workbook could not be opened or has nothing to import."""


# ══════════════════════════════════════════════════════════════════════════════
# ENCODING DETECTION
# ══════════════════════════════════════════════════════════════════════════════

def _detect_encoding_info(raw: bytes) -> dict:
    """
    Detect encoding from raw bytes.

    Returns dict with: detected, confidence, is_utf8, suspicious_chars.
    """
    result     = chardet.detect(raw)
    detected   = result.get("encoding") or "unknown"
    confidence = round(result.get("confidence") or 0.0, 2)

    is_utf8 = detected.upper().replace("-", "") in ("UTF8", "UTF8SIG", "ASCII")

    suspicious: list[str] = []
    if not is_utf8:
        for row_idx, line in enumerate(raw.split(b"\n")[:100], start=1):
            try:
                line.decode("utf-8")
            except UnicodeDecodeError as e:
                suspicious.append(f"row {row_idx}: byte at position {e.start}")

    return {
        "detected":         detected,
        "confidence":       confidence,
        "is_utf8":          is_utf8,
        "suspicious_chars": suspicious[:10],
    }


# ══════════════════════════════════════════════════════════════════════════════
# SAFE TEXT READING (mixed-encoding tolerant)
# ══════════════════════════════════════════════════════════════════════════════

def _read_text_safely(raw: bytes, preferred_encoding: str) -> str:
    """
    Decode raw bytes line-by-line.

    Strategy per line:
      1. Try UTF-8
      2. Try preferred_encoding (chardet result)
      3. Try latin-1
      4. CP1252 with replace (never crashes)

    Also strips embedded null bytes so the CSV reader doesn't choke.
    """
    decoded_lines: list[str] = []
    for raw_line in raw.split(b"\n"):
        decoded: str | None = None
        for enc in ("utf-8", preferred_encoding, "latin-1"):
            if not enc or enc == "unknown":
                continue
            try:
                decoded = raw_line.decode(enc)
                break
            except (LookupError, UnicodeDecodeError):
                continue
        if decoded is None:
            decoded = raw_line.decode("cp1252", errors="replace")
        decoded_lines.append(decoded.replace("\x00", ""))
    return "\n".join(decoded_lines)


def decode_text(raw: bytes) -> tuple[str, dict, list[str]]:
    """Decode text input, dropping a leading byte-order mark."""
    warnings: list[str] = []
    if raw.startswith((b"\xff\xfe", b"\xfe\xff")):
        text = raw.decode("utf-16").replace("\x00", "")
        enc_info = {"detected": "UTF-16", "confidence": 1.0, "is_utf8": False, "suspicious_chars": []}
    else:
        if raw.startswith(b"\xef\xbb\xbf"):
            raw = raw[3:]
        enc_info = _detect_encoding_info(raw)
        enc      = enc_info["detected"] if enc_info["detected"] != "unknown" else "utf-8"
        text     = _read_text_safely(raw, enc)
    text = text.lstrip("\ufeff")
    if not enc_info["is_utf8"] and text.strip():
        warnings.append(f"Input decoded as {enc_info['detected']} (not UTF-8)")
    return text, enc_info, warnings


# ══════════════════════════════════════════════════════════════════════════════
# CSV RECORDS
# ══════════════════════════════════════════════════════════════════════════════

def split_records(text: str) -> list[list[str]]:
    """
    Split decoded text into CSV records, one per non-blank line.

    Blank lines are dropped before numbering, so record ``i`` (0-based) is
    reported to users as row ``i + 1``. Quoted fields follow standard CSV
    rules (``""`` for an embedded quote) but may not span lines.
    """
    records: list[list[str]] = []
    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue
        records.append(next(csv.reader([line])))
    return records


# ══════════════════════════════════════════════════════════════════════════════
# WORKBOOKS
# ══════════════════════════════════════════════════════════════════════════════

def sniff_workbook_suffix(raw: bytes) -> str | None:
    """Guess a workbook suffix from magic bytes; None for anything else."""
    if raw.startswith(OLE_MAGIC):
        return ".xls"
    if raw.startswith(ZIP_MAGIC):
        return ".ods" if ODS_MIMETYPE in raw[:256] else ".xlsx"
    return None


def _workbook_engine(suffix: str) -> str:
    # Optional engines get a clear error when missing.
    if suffix == ".xls":
        try:
            import xlrd  # noqa: F401
        except ImportError:
            raise ImportError(".xls files require xlrd — run: pip install xlrd")
        return "xlrd"
    if suffix == ".ods":
        try:
            import odf  # noqa: F401
        except ImportError:
            raise ImportError(".ods files require odfpy — run: pip install odfpy")
        return "odf"
    return "openpyxl"


def _load_workbook(raw: bytes, suffix: str) -> dict:
    """
    Load the whole first worksheet with every cell kept as a Python object.

    Blank rows may sit anywhere, so the row cap is applied later to the
    non-blank rows rather than to a read window.
    """
    engine = _workbook_engine(suffix)
    try:
        with pd.ExcelFile(io.BytesIO(raw), engine=engine) as xf:
            sheet_names = list(xf.sheet_names)
            if not sheet_names:
                raise WorkbookError("No sheets found in workbook")
            frame = xf.parse(
                sheet_names[0],
                header=None,
                dtype=object,
            )
    except WorkbookError:
        raise
    except Exception as exc:
        raise WorkbookError(f"Could not read workbook: {exc}") from exc

    warnings: list[str] = []
    if len(sheet_names) > 1:
        warnings.append(
            f"Multiple sheets found ({len(sheet_names)} total); used '{sheet_names[0]}'"
        )

    return {
        "kind":              "workbook",
        "detected_format":   suffix.lstrip("."),
        "detected_encoding": None,
        "encoding_info":     None,
        "raw_text":          None,
        "dataframe":         frame,
        "sheet_name":        sheet_names[0],
        "sheet_names":       sheet_names,
        "warnings":          warnings,
    }


# ══════════════════════════════════════════════════════════════════════════════
# PUBLIC API
# ══════════════════════════════════════════════════════════════════════════════

def load_bytes(
    raw: bytes,
    filename: str | None = None,
    config: ImportConfig = DEFAULT_CONFIG,
) -> dict:
    """
    Classify and load raw input.

    Raises:
        ValueError     if the input is too large, has an unsupported suffix,
                       or is a workbook that cannot be read (WorkbookError).
        ImportError    if a required optional workbook engine is missing.
    """
    if len(raw) > config.max_file_bytes:
        limit_mb = config.max_file_bytes / (1024 * 1024)
        raise ValueError(f"File is too large. Maximum size is {limit_mb:g} MB.")

    suffix = Path(filename).suffix.lower() if filename else ""
    if suffix and suffix not in ALL_FORMATS:
        supported = ", ".join(sorted(ALL_FORMATS))
        raise ValueError(f"Unsupported format '{suffix}'. Supported: {supported}")

    workbook_suffix = suffix if suffix in WORKBOOK_FORMATS else None
    if workbook_suffix is None and suffix not in TEXT_FORMATS:
        workbook_suffix = sniff_workbook_suffix(raw)

    if workbook_suffix:
        logger.debug("Loading %s workbook (%d bytes)", workbook_suffix, len(raw))
        return _load_workbook(raw, workbook_suffix)

    text, enc_info, warnings = decode_text(raw)
    logger.debug("Decoded text input as %s", enc_info["detected"])
    return {
        "kind":              "text",
        "detected_format":   (suffix or ".csv").lstrip("."),
        "detected_encoding": enc_info["detected"],
        "encoding_info":     enc_info,
        "raw_text":          text,
        "dataframe":         None,
        "sheet_name":        None,
        "sheet_names":       None,
        "warnings":          warnings,
    }


def load_path(path: "str | Path", config: ImportConfig = DEFAULT_CONFIG) -> dict:
    """
    Load a file from disk.

    Raises:
        FileNotFoundError  if the file does not exist.
        ValueError         if the input is oversized, unsupported or unreadable.
        ImportError        if a required optional dependency is missing.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    if path.stat().st_size > config.max_file_bytes:
        limit_mb = config.max_file_bytes / (1024 * 1024)
        raise ValueError(f"File is too large. Maximum size is {limit_mb:g} MB.")
    return load_bytes(path.read_bytes(), filename=path.name, config=config)
