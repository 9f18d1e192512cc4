"""Parse uploaded CSV / Excel files into ordered rows of raw values."""

from __future__ import annotations

import csv
import math
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Any

import pandas as pd

from errors import ParseError, UnsupportedFormatError

SUPPORTED_UPLOAD_SUFFIX: dict[str, str] = {
    ".csv": "csv",
    ".xlsx": "excel",
    ".xls": "excel",
}

# DuckDB pseudo columns; a user column of the same name would shadow them
RESERVED_COLUMNS = frozenset({"rowid"})


@dataclass
class ParsedFile:
    columns: list[str]
    rows: list[dict[str, Any]]
    file_type: str


def detect_format(filename: str) -> str:
    suffix = Path(filename).suffix.lower()
    file_format = SUPPORTED_UPLOAD_SUFFIX.get(suffix)
    if not file_format:
        raise UnsupportedFormatError(f"Unsupported file format: {suffix or filename}")
    return file_format


def check_columns(columns: list[str]) -> None:
    """Header names are used verbatim as column names, so they must be usable ones."""
    if not columns:
        raise ParseError("No columns found in file")
    seen: dict[str, str] = {}
    for name in columns:
        if not name:
            raise ParseError("Column names must not be empty")
        key = name.lower()
        if key in RESERVED_COLUMNS:
            raise ParseError(f"Column name {name!r} is reserved")
        if key in seen:
            raise ParseError(
                f"Duplicate column name: {name!r} (conflicts with {seen[key]!r})"
            )
        seen[key] = name


def parse_file(path: str | Path, filename: str) -> ParsedFile:
    file_format = detect_format(filename)
    if file_format == "csv":
        columns, rows = _read_csv(Path(path))
    else:
        columns, rows = _read_excel(Path(path))
    check_columns(columns)
    return ParsedFile(columns=columns, rows=rows, file_type=file_format)


def _read_csv(path: Path) -> tuple[list[str], list[dict[str, Any]]]:
    try:
        with path.open("r", encoding="utf-8-sig", newline="") as fh:
            reader = csv.reader(fh)
            header = next(reader, None)
            if header is None:
                raise ParseError("No data found in file")
            columns = [h.strip() for h in header]
            rows: list[dict[str, Any]] = []
            for record in reader:
                if not any(cell.strip() for cell in record):
                    continue
                # short records are padded with nulls, extra cells dropped
                padded = record + [None] * (len(columns) - len(record))
                rows.append(dict(zip(columns, padded)))
    except UnicodeDecodeError as exc:
        raise ParseError(f"File is not valid UTF-8 text: {exc}") from exc
    except csv.Error as exc:
        raise ParseError(f"Malformed CSV: {exc}") from exc
    return columns, rows


def _read_excel(path: Path) -> tuple[list[str], list[dict[str, Any]]]:
    try:
        df = pd.read_excel(path, sheet_name=0, dtype=object)
    except Exception as exc:
        # openpyxl, xlrd and pandas each raise their own types for corrupt files
        raise ParseError(f"Cannot read spreadsheet: {exc}") from exc

    df = df.dropna(how="all")
    columns = [str(c).strip() for c in df.columns]
    rows = [
        {col: _normalize_cell(val) for col, val in zip(columns, record)}
        for record in df.itertuples(index=False, name=None)
    ]
    return columns, rows


def _normalize_cell(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
        return None
    if value is pd.NaT:
        return None
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if hasattr(value, "item"):
        return _normalize_cell(value.item())
    return value
