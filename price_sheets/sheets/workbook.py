"""
xlsx reading and writing with openpyxl.
"""

import logging
import zipfile
from io import BytesIO
from typing import Any, Dict, List, Sequence, Tuple

from openpyxl import Workbook, load_workbook
from openpyxl.utils import get_column_letter
from openpyxl.utils.exceptions import InvalidFileException

from ..processor.export import EXPORT_COLUMNS, ExportRow
from ..processor.prices import is_blank
from ..processor.reconcile import SKU_COLUMN, ImportRow

logger = logging.getLogger(__name__)

EXPORT_SHEET_TITLE = "Products"
EXPORT_FILENAME = "product_prices_export.xlsx"
XLSX_MIME_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


class SpreadsheetError(Exception):
    """The uploaded file is not a readable workbook."""
    pass


def _header_name(value: Any) -> str:
    return str(value).strip() if value is not None else ""


def read_import_rows(content: bytes) -> Tuple[List[str], List[ImportRow]]:
    """
    Read the first worksheet of an uploaded price file.

    The first row is the header and defines column order. Rows without a
    SKU are dropped here; every other cell is kept, including columns the
    import does not use.

    Returns:
        (columns in header order, rows)

    Raises:
        SpreadsheetError: If the file cannot be opened as xlsx
    """
    try:
        wb = load_workbook(BytesIO(content), data_only=True, read_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError, ValueError) as e:
        raise SpreadsheetError(f"Could not read spreadsheet: {e}") from e

    try:
        ws = wb.worksheets[0]
        row_iter = ws.iter_rows(values_only=True)
        header_row = next(row_iter, None)
        if header_row is None:
            return [], []

        header = [_header_name(v) for v in header_row]
        columns = [name for name in header if name]

        rows: List[ImportRow] = []
        for line_number, values in enumerate(row_iter, start=2):
            cells = [
                (header[i], value)
                for i, value in enumerate(values)
                if i < len(header) and header[i]
            ]
            row = ImportRow(cells=cells, line_number=line_number)
            if not is_blank(row.get(SKU_COLUMN)):
                rows.append(row)
    finally:
        wb.close()

    logger.info(f"Read {len(rows)} rows with a SKU from spreadsheet")
    return columns, rows


def _to_bytes(wb: Workbook) -> bytes:
    buffer = BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def _autosize(ws, columns: Sequence[str]) -> None:
    for i, name in enumerate(columns, start=1):
        ws.column_dimensions[get_column_letter(i)].width = max(12, len(name) + 2)


def write_export_workbook(rows: Sequence[ExportRow]) -> bytes:
    """Export rows as an xlsx file with a single "Products" sheet."""
    wb = Workbook()
    ws = wb.active
    ws.title = EXPORT_SHEET_TITLE
    ws.append(EXPORT_COLUMNS)
    for row in rows:
        ws.append(row.as_values())
    _autosize(ws, EXPORT_COLUMNS)
    return _to_bytes(wb)


def write_rows_workbook(rows: Sequence[Dict[str, Any]], title: str) -> bytes:
    """
    Write dict rows (e.g. failed or skipped import rows) to xlsx.

    Columns follow the key order of the first row.
    """
    wb = Workbook()
    ws = wb.active
    ws.title = title

    columns: List[str] = list(rows[0].keys()) if rows else []
    ws.append(columns)
    for row in rows:
        ws.append(["" if row.get(c) is None else row.get(c) for c in columns])
    _autosize(ws, columns)
    return _to_bytes(wb)
