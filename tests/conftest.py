"""
Pytest fixtures for the form builder tests.

Provides reusable fixtures: sample records, Raw Data workbooks written with
openpyxl, temporary builder databases, and a controllable clock for time
budget tests.
"""

import sys
from pathlib import Path
from types import MappingProxyType

import openpyxl
import pytest

_PROJECT_ROOT = str(Path(__file__).resolve().parent.parent)
if _PROJECT_ROOT not in sys.path:
    sys.path.insert(0, _PROJECT_ROOT)

from utils.database import create_database  # noqa: E402

RAW_HEADER = ["Borough", "Park Name", "Name", "Location"]

RAW_ROWS = [
    ("Queens", "Flushing Meadows", "Unisphere Comfort Station", "Near the Unisphere"),
    ("Bronx", "Claremont Park", "Claremont Playground", "Teller Ave"),
    ("Bronx", "Claremont Park", "Claremont Playground", "Duplicate row"),
    ("Bronx", "Crotona Park", "Crotona Pool", "Fulton Ave"),
    ("Queens", "Flushing Meadows", "Meadow Lake", "West shore"),
    ("Bronx", "Claremont Park", "Clay Ave Building", "Clay Ave"),
]


class FakeClock:
    """Manually advanced stand-in for time.monotonic."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _create_raw_data_xlsx(path: Path, rows, header=RAW_HEADER,
                          sheet_name: str = "Raw Data") -> Path:
    """Write a one-sheet workbook with a header row and the given data rows."""
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = sheet_name
    if header is not None:
        ws.append(list(header))
    for row in rows:
        ws.append(list(row))
    path.parent.mkdir(parents=True, exist_ok=True)
    wb.save(str(path))
    return path


@pytest.fixture
def make_workbook(tmp_path):
    """Factory fixture: make_workbook(rows, header=..., sheet_name=...) -> Path."""
    def _make(rows=RAW_ROWS, header=RAW_HEADER, sheet_name="Raw Data",
              name="raw.xlsx"):
        return _create_raw_data_xlsx(tmp_path / name, rows, header, sheet_name)
    return _make


@pytest.fixture
def raw_workbook(make_workbook):
    return make_workbook()


@pytest.fixture
def example_records():
    """The three-record Bronx/Queens example."""
    return [
        MappingProxyType({"Borough": "Bronx", "Park Name": "A", "Name": "A1"}),
        MappingProxyType({"Borough": "Bronx", "Park Name": "B", "Name": "B1"}),
        MappingProxyType({"Borough": "Queens", "Park Name": "C", "Name": "C1"}),
    ]


@pytest.fixture
def db_conn(tmp_path):
    """Fresh builder database with all tables."""
    conn = create_database(tmp_path / "form.sqlite")
    yield conn
    conn.close()


@pytest.fixture
def clock():
    return FakeClock()
