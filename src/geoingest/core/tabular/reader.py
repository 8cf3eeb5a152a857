"""
Tabular reader for delimited text and spreadsheet uploads.

Produces raw rows: ordered mappings of column header to cell text. No type
coercion happens here, so leading zeros and accented text survive until the
point-table normalizer decides what is numeric.
"""

import csv
import datetime as _dt
import io
import logging
import zipfile
from typing import Any, Dict, Iterable, List, Optional, Sequence

import openpyxl
import xlrd
from openpyxl.utils.exceptions import InvalidFileException

from geoingest.core.errors import ParseError

logger = logging.getLogger(__name__)

RawRow = Dict[str, str]

XLSX_MAGIC = b"PK\x03\x04"
XLS_MAGIC = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"


def _header_names(cells: Sequence[str]) -> List[str]:
    """Turn a header row into unique, non-empty column names."""
    names: List[str] = []
    seen: Dict[str, int] = {}
    for index, cell in enumerate(cells):
        name = cell.strip() or f"column_{index + 1}"
        if name in seen:
            seen[name] += 1
            name = f"{name}_{seen[name]}"
        else:
            seen[name] = 0
        names.append(name)
    return names


def _is_blank(cells: Iterable[str]) -> bool:
    return all(not cell.strip() for cell in cells)


def _build_row(header: Sequence[str], cells: Sequence[str]) -> RawRow:
    """Pair cells with header names; short rows pad with "", extra cells keep an _extra key."""
    row: RawRow = {}
    for index, name in enumerate(header):
        row[name] = cells[index] if index < len(cells) else ""
    for index in range(len(header), len(cells)):
        if cells[index] != "":
            row[f"_extra_{index - len(header) + 1}"] = cells[index]
    return row


def _divergence_column(line: str, delimiter: str) -> int:
    """Best guess (1-based) of the field in which the csv parser gave up."""
    quote = line.find('"')
    if quote < 0:
        return 1
    return line.count(delimiter, 0, quote) + 1


def read_delimited(
    text: str, delimiter: Optional[str] = None, file_name: Optional[str] = None
) -> List[RawRow]:
    """
    Parse delimiter-separated text into raw rows.

    The first non-empty line is the header. Empty lines are skipped and
    values are kept verbatim.

    Args:
        text: Decoded text
        delimiter: Field delimiter; defaults to ``settings.csv_delimiter``
        file_name: Name of the source file, for error reporting

    Returns:
        List of raw rows

    Raises:
        ParseError: If the text has malformed quoting or NUL bytes
    """
    if delimiter is None:
        from geoingest.core.config import settings

        delimiter = settings.csv_delimiter

    reader = csv.reader(io.StringIO(text, newline=""), delimiter=delimiter, strict=True)
    header: Optional[List[str]] = None
    rows: List[RawRow] = []

    try:
        for cells in reader:
            if not cells or _is_blank(cells):
                continue
            if header is None:
                header = _header_names(cells)
                continue
            rows.append(_build_row(header, cells))
    except csv.Error as e:
        line_number = reader.line_num
        lines = text.splitlines()
        line = lines[line_number - 1] if 0 < line_number <= len(lines) else ""
        column = _divergence_column(line, delimiter)
        raise ParseError(
            message=f"Malformed delimited text at line {line_number}, column {column}: {e}",
            file_name=file_name,
            file_type="CSV",
            line_number=line_number,
            column=column,
            suggestions=[
                f"Check quoting around line {line_number}",
                f"Fields must be separated by '{delimiter}'",
            ],
        ) from e

    logger.debug(f"Read {len(rows)} rows with columns {header or []}")
    return rows


def _percent_decimals(number_format: str) -> int:
    body = number_format.split("%")[0]
    if "." not in body:
        return 0
    return sum(1 for ch in body.split(".", 1)[1] if ch in "0#")


def format_cell_value(value: Any, number_format: Optional[str] = None) -> str:
    """
    Render a spreadsheet cell the way it reads in the sheet.

    Args:
        value: Cell value as returned by openpyxl or xlrd
        number_format: Excel number format of the cell, when known

    Returns:
        Display text of the cell
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, _dt.datetime):
        if value.time() == _dt.time(0, 0):
            return value.date().isoformat()
        return value.isoformat(sep=" ")
    if isinstance(value, (_dt.date, _dt.time)):
        return value.isoformat()
    if isinstance(value, (int, float)):
        if number_format and "%" in number_format:
            decimals = _percent_decimals(number_format)
            return f"{value * 100:.{decimals}f}%"
        if isinstance(value, float) and value.is_integer():
            return str(int(value))
        return str(value)
    return str(value)


def _rows_from_table(table: Iterable[List[str]]) -> List[RawRow]:
    header: Optional[List[str]] = None
    rows: List[RawRow] = []
    for cells in table:
        if _is_blank(cells):
            continue
        if header is None:
            while cells and cells[-1] == "":
                cells = cells[:-1]
            header = _header_names(cells)
            continue
        rows.append(_build_row(header, cells))
    return rows


def _xlsx_table(raw: bytes) -> List[List[str]]:
    workbook = openpyxl.load_workbook(io.BytesIO(raw), read_only=True, data_only=True)
    try:
        sheet = workbook.worksheets[0]
        return [
            [format_cell_value(cell.value, getattr(cell, "number_format", None)) for cell in row]
            for row in sheet.iter_rows()
        ]
    finally:
        workbook.close()


def _xls_cell_text(cell: Any, datemode: int) -> str:
    if cell.ctype == xlrd.XL_CELL_DATE:
        return format_cell_value(xlrd.xldate.xldate_as_datetime(cell.value, datemode))
    if cell.ctype == xlrd.XL_CELL_BOOLEAN:
        return format_cell_value(bool(cell.value))
    if cell.ctype == xlrd.XL_CELL_ERROR:
        return xlrd.error_text_from_code.get(cell.value, "")
    if cell.ctype in (xlrd.XL_CELL_EMPTY, xlrd.XL_CELL_BLANK):
        return ""
    return format_cell_value(cell.value)


def _xls_table(raw: bytes) -> List[List[str]]:
    book = xlrd.open_workbook(file_contents=raw, on_demand=True)
    try:
        sheet = book.sheet_by_index(0)
        return [
            [_xls_cell_text(cell, book.datemode) for cell in sheet.row(index)]
            for index in range(sheet.nrows)
        ]
    finally:
        book.release_resources()


def read_spreadsheet(raw: bytes, file_name: Optional[str] = None) -> List[RawRow]:
    """
    Read the first sheet of a workbook into raw rows.

    ``.xlsx`` workbooks go through openpyxl, legacy ``.xls`` through xlrd.
    The format is chosen from the file signature, falling back to the
    file extension.

    Args:
        raw: Workbook bytes
        file_name: Name of the source file

    Returns:
        List of raw rows with display-text values

    Raises:
        ParseError: If the workbook cannot be opened
    """
    name = (file_name or "").lower()
    is_xls = raw.startswith(XLS_MAGIC) or (
        not raw.startswith(XLSX_MAGIC) and name.endswith(".xls")
    )

    try:
        table = _xls_table(raw) if is_xls else _xlsx_table(raw)
    except (
        InvalidFileException,
        zipfile.BadZipFile,
        xlrd.XLRDError,
        KeyError,
        IndexError,
        ValueError,
        OSError,
    ) as e:
        raise ParseError(
            message=f"Invalid spreadsheet: {e}",
            file_name=file_name,
            file_type="XLS" if is_xls else "XLSX",
            suggestions=["Re-save the workbook as .xlsx or export the first sheet as CSV"],
        ) from e

    rows = _rows_from_table(table)
    logger.debug(f"Read {len(rows)} rows from first sheet of {file_name or 'workbook'}")
    return rows
