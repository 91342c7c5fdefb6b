"""
Upload parsing for student imports. Only file-level problems are raised here (StructuralError);
per-row problems are left to row validation so the operator gets a full report.
"""

import csv
import io
import zipfile
from datetime import date, datetime
from typing import Dict, Iterable, Iterator, List, NamedTuple, Sequence

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from academic_ops.core.exceptions import StructuralError

TEMPLATE_HEADERS = (
    "first_name",
    "last_name",
    "middle_name",
    "admission_no",
    "gender",
    "date_of_birth",
    "session",
    "class",
    "class_arm",
    "class_section",
    "parent_email",
)
REQUIRED_HEADERS = ("first_name", "last_name", "admission_no", "session", "class", "class_arm")

CSV_EXTENSION = ".csv"
XLSX_EXTENSION = ".xlsx"


class ParsedRow(NamedTuple):
    row_number: int  # 1-based file row; the header is row 1
    values: Dict[str, str]


def normalize_header(s) -> str:
    return (str(s).strip().lower() if s is not None else "").replace(" ", "_")


def cell_str(row: Sequence, col: int) -> str:
    if col >= len(row):
        return ""
    v = row[col]
    if v is None:
        return ""
    if isinstance(v, datetime):
        return v.date().isoformat()
    if isinstance(v, date):
        return v.isoformat()
    if isinstance(v, float) and v.is_integer():
        # Excel stores numeric admission numbers as floats
        return str(int(v))
    return str(v).strip()


def _is_blank(row: Sequence) -> bool:
    return not row or all(c is None or (isinstance(c, str) and not c.strip()) for c in row)


def _csv_rows(content: bytes) -> Iterator[Sequence]:
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise StructuralError("CSV file must be UTF-8 encoded")
    try:
        yield from csv.reader(io.StringIO(text))
    except csv.Error as e:
        raise StructuralError(f"Invalid CSV file: {e}") from e


def _xlsx_rows(content: bytes) -> Iterator[Sequence]:
    try:
        wb = load_workbook(filename=io.BytesIO(content), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, ValueError, OSError) as e:
        raise StructuralError(f"Invalid Excel file: {e}") from e
    try:
        ws = wb.active
        if ws is None:
            raise StructuralError("Excel file has no active sheet")
        yield from ws.iter_rows(values_only=True)
    finally:
        wb.close()


def _rows_for(filename: str, content: bytes) -> Iterator[Sequence]:
    lowered = filename.lower()
    if lowered.endswith(CSV_EXTENSION):
        return _csv_rows(content)
    if lowered.endswith(XLSX_EXTENSION):
        return _xlsx_rows(content)
    raise StructuralError("File must be a .csv or .xlsx file")


def _column_index(header: Iterable) -> Dict[str, int]:
    normalized = [normalize_header(h) for h in header]
    missing = [h for h in REQUIRED_HEADERS if h not in normalized]
    if missing:
        raise StructuralError(
            f"Missing required column(s): {', '.join(missing)}. Found: {[h for h in normalized if h]}"
        )
    col_idx = {}
    for h in TEMPLATE_HEADERS:
        if h in normalized:
            col_idx[h] = normalized.index(h)
    return col_idx


def check_upload_size(size: int, max_bytes: int) -> None:
    if size > max_bytes:
        limit = f"{max_bytes // (1024 * 1024)} MB" if max_bytes >= 1024 * 1024 else f"{max_bytes} bytes"
        raise StructuralError(f"File exceeds the {limit} upload limit")


def parse_upload(filename: str, content: bytes, max_rows: int, max_bytes: int) -> List[ParsedRow]:
    """Parse an uploaded CSV or XLSX file into rows keyed by template column. Blank rows are skipped."""
    if not filename:
        raise StructuralError("File must be a .csv or .xlsx file")
    if not content:
        raise StructuralError("File is empty")
    check_upload_size(len(content), max_bytes)

    rows_iter = _rows_for(filename, content)
    header = next(rows_iter, None)
    if header is None or _is_blank(header):
        raise StructuralError("File has no header row")
    col_idx = _column_index(header)

    parsed: List[ParsedRow] = []
    for row_number, row in enumerate(rows_iter, start=2):
        if _is_blank(row):
            continue
        if len(parsed) >= max_rows:
            raise StructuralError(f"Maximum {max_rows} data rows allowed")
        parsed.append(ParsedRow(row_number, {h: cell_str(row, i) for h, i in col_idx.items()}))
    if not parsed:
        raise StructuralError("File has no data rows")
    return parsed
