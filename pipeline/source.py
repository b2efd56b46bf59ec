"""
Tabular source — reads the raw records the form is built from.

The first non-empty row of the sheet is the header; every later non-empty row
becomes one read-only Record keyed by the header names.  Two readers share
that contract:

    SheetSource   .xlsx / .xlsm workbooks via openpyxl (read-only, cached values)
    CsvSource     plain CSV exports

Anything structurally wrong with the input (missing file or sheet, no header,
missing required columns) raises SourceError.  All of this happens before the
builder touches the form store, so a SourceError never leaves partial state.
"""

from __future__ import annotations

import csv
import logging
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path
from types import MappingProxyType
from typing import Any

import openpyxl

from utils.config import DEFAULT_SHEET_NAME
from utils.patterns import WORKBOOK_EXTENSIONS
from utils.strings import cell_text

logger = logging.getLogger(__name__)

Record = Mapping[str, Any]


class SourceError(Exception):
    """The tabular input is missing or structurally invalid."""


def _is_blank_row(row: Sequence[Any]) -> bool:
    return all(cell_text(v) == "" for v in row)


def _header_names(row: Sequence[Any]) -> list[str]:
    """Normalise header cells; blank cells get a positional placeholder name."""
    names: list[str] = []
    for i, val in enumerate(row, start=1):
        name = cell_text(val)
        names.append(name if name else f"column_{i}")
    return names


def parse_grid(rows: Iterable[Sequence[Any]]) -> tuple[list[str], list[Record]]:
    """Split a grid of cell values into (header, records).

    The first non-empty row is the header.  Fully blank rows (common at the
    end of exported sheets) are dropped.  Short rows are padded with None;
    cells beyond the header are ignored.

    Raises:
        SourceError: If the grid has no header row.
    """
    header: list[str] | None = None
    records: list[Record] = []
    for row in rows:
        if row is None or _is_blank_row(row):
            continue
        if header is None:
            header = _header_names(row)
            continue
        values = list(row[:len(header)])
        values += [None] * (len(header) - len(values))
        records.append(MappingProxyType(dict(zip(header, values))))

    if header is None:
        raise SourceError("No header row found in tabular input")
    return header, records


def records_from_rows(rows: Iterable[Sequence[Any]]) -> list[Record]:
    """Turn a grid of cell values into Records (see parse_grid)."""
    return parse_grid(rows)[1]


def require_columns(records: Sequence[Record], columns: Iterable[str],
                    header: Sequence[str] | None = None) -> None:
    """Fail fast when a column the build depends on is absent.

    ``header`` is checked when given (it covers sheets with a header but no
    data rows); otherwise the keys of the first record are used.

    Raises:
        SourceError: Listing every missing column.
    """
    if header is None:
        if not records:
            return
        header = list(records[0].keys())
    missing = [c for c in columns if c not in header]
    if missing:
        raise SourceError(
            f"Missing required column(s): {', '.join(missing)} "
            f"(found: {', '.join(header)})"
        )


class SheetSource:
    """Reads one worksheet of an Excel workbook."""

    def __init__(self, path: Path | str, sheet_name: str = DEFAULT_SHEET_NAME) -> None:
        self.path = Path(path)
        self.sheet_name = sheet_name
        self.header: list[str] = []

    def fetch_records(self) -> list[Record]:
        if not self.path.exists():
            raise SourceError(f"Workbook not found: {self.path}")
        try:
            wb = openpyxl.load_workbook(str(self.path), read_only=True, data_only=True)
        except Exception as exc:
            raise SourceError(f"Cannot open workbook {self.path}: {exc}") from exc
        try:
            if self.sheet_name not in wb.sheetnames:
                raise SourceError(
                    f"Sheet '{self.sheet_name}' not found in {self.path.name} "
                    f"(sheets: {', '.join(wb.sheetnames)})"
                )
            ws = wb[self.sheet_name]
            self.header, records = parse_grid(ws.iter_rows(values_only=True))
        finally:
            wb.close()

        logger.info("Read %d record(s) from %s [%s]",
                    len(records), self.path.name, self.sheet_name)
        return records


class CsvSource:
    """Reads a CSV export of the raw data sheet."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self.header: list[str] = []

    def fetch_records(self) -> list[Record]:
        if not self.path.exists():
            raise SourceError(f"CSV file not found: {self.path}")
        with open(self.path, newline="", encoding="utf-8-sig") as f:
            self.header, records = parse_grid(csv.reader(f))
        logger.info("Read %d record(s) from %s", len(records), self.path.name)
        return records


def open_source(path: Path | str,
                sheet_name: str = DEFAULT_SHEET_NAME) -> SheetSource | CsvSource:
    """Pick the reader for ``path`` by file extension."""
    path = Path(path)
    if WORKBOOK_EXTENSIONS.search(path.name):
        return SheetSource(path, sheet_name)
    if path.suffix.lower() == ".csv":
        return CsvSource(path)
    raise SourceError(f"Unsupported source file type: {path.name}")
