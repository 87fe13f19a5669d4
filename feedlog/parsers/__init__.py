"""Row parsers, one module per supported input layout."""

from feedlog.parsers.export_csv import EXPORT_HEADERS, ExportColumn, parse_export_records
from feedlog.parsers.legacy import LegacyColumn, parse_legacy_records
from feedlog.parsers.pivot import AGGREGATE_NOTE, parse_pivot_records
from feedlog.parsers.shared import ParseContext, ParsedRows
from feedlog.parsers.workbook import WorkbookColumn, data_rows, parse_workbook_rows

__all__ = [
    "AGGREGATE_NOTE",
    "EXPORT_HEADERS",
    "ExportColumn",
    "LegacyColumn",
    "ParseContext",
    "ParsedRows",
    "WorkbookColumn",
    "data_rows",
    "parse_export_records",
    "parse_legacy_records",
    "parse_pivot_records",
    "parse_workbook_rows",
]
