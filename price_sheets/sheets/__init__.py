"""
Spreadsheet (xlsx) reading and writing.
"""

from .workbook import (
    SpreadsheetError,
    read_import_rows,
    write_export_workbook,
    write_rows_workbook,
)

__all__ = [
    "SpreadsheetError",
    "read_import_rows",
    "write_export_workbook",
    "write_rows_workbook",
]
