# File: /app/engine/spreadsheet.py | Version: 1.0 | Title: Spreadsheet parsing & export (pandas / openpyxl)
from __future__ import annotations

import io
import re
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from pathlib import Path
from typing import Any, List, Optional, Sequence, Union
from zipfile import BadZipFile

import numpy as np
import pandas as pd
from openpyxl.utils.exceptions import InvalidFileException

from app.core import errors
from app.schemas.filters import CellValue

SPREADSHEET_EXTENSIONS = frozenset({".csv", ".xlsx", ".xlsm"})
DOCUMENT_EXTENSIONS = frozenset(
    {".pdf", ".doc", ".docx", ".txt", ".md", ".ppt", ".pptx", ".png", ".jpg", ".jpeg"}
)

_UNNAMED = re.compile(r"^Unnamed: (\d+)$")
_SHEET_TITLE_INVALID = re.compile(r"[\[\]:*?/\\]")


@dataclass
class ParsedSheet:
    headers: List[str]
    rows: List[List[CellValue]] = field(default_factory=list)


def file_kind(filename: str) -> str:
    ext = Path(filename or "").suffix.lower()
    if ext in SPREADSHEET_EXTENSIONS:
        return "spreadsheet"
    if ext in DOCUMENT_EXTENSIONS:
        return "document"
    raise errors.ValidationError(f"Unsupported file type: {ext or 'no extension'}")


def display_name_for(filename: str) -> str:
    return Path(filename or "").stem.strip() or "Untitled"


def to_cell(value: Any) -> CellValue:
    """pandas/numpy scalar -> plain Python cell value (NaN/NaT/NA -> None)."""
    if value is None:
        return None
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        pass
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, (pd.Timestamp, datetime, date, time)):
        return value.isoformat()
    if isinstance(value, (timedelta, pd.Timedelta)):
        return str(value)
    if isinstance(value, (bool, int, float, str)):
        return value
    return str(value)


def _header(label: Any) -> str:
    text = str(label).strip()
    match = _UNNAMED.match(text)
    if match:
        return f"Column {int(match.group(1)) + 1}"
    return text


def _sheet_selector(sheet: Optional[Union[str, int]]) -> Union[str, int]:
    if sheet is None or sheet == "":
        return 0
    if isinstance(sheet, str) and sheet.strip().isdigit():
        return int(sheet.strip())
    return sheet


def read_sheet(
    contents: bytes,
    filename: str,
    *,
    sheet: Optional[Union[str, int]] = None,
    header_row: int = 1,
) -> ParsedSheet:
    """Header row plus every non-blank row of a CSV or Excel upload."""
    if header_row < 1:
        raise errors.ValidationError("headerRow must be 1 or greater")
    ext = Path(filename or "").suffix.lower()
    buffer = io.BytesIO(contents)
    try:
        if ext == ".csv":
            df = pd.read_csv(buffer, header=header_row - 1)
        else:
            df = pd.read_excel(
                buffer,
                sheet_name=_sheet_selector(sheet),
                header=header_row - 1,
                engine="openpyxl",
            )
    except pd.errors.EmptyDataError:
        raise errors.ValidationError("The file contains no data")
    except (ValueError, KeyError, IndexError, BadZipFile, InvalidFileException, pd.errors.ParserError) as exc:
        raise errors.ValidationError(f"Could not read {filename}: {exc}")

    df = df.dropna(how="all").convert_dtypes()
    headers = [_header(c) for c in df.columns]
    rows = [[to_cell(v) for v in record] for record in df.itertuples(index=False, name=None)]
    return ParsedSheet(headers=headers, rows=rows)


def list_sheets(contents: bytes, filename: str) -> List[str]:
    if Path(filename or "").suffix.lower() == ".csv":
        return [display_name_for(filename)]
    try:
        with pd.ExcelFile(io.BytesIO(contents), engine="openpyxl") as book:
            return [str(name) for name in book.sheet_names]
    except (ValueError, KeyError, BadZipFile, InvalidFileException) as exc:
        raise errors.ValidationError(f"Could not read {filename}: {exc}")


def export_workbook(headers: Sequence[str], rows: Sequence[Sequence[Any]], sheet_name: str = "Sheet1") -> bytes:
    df = pd.DataFrame(list(rows), columns=list(headers))
    buffer = io.BytesIO()
    title = _SHEET_TITLE_INVALID.sub("_", sheet_name or "").strip()[:31] or "Sheet1"
    df.to_excel(buffer, index=False, sheet_name=title, engine="openpyxl")
    return buffer.getvalue()
