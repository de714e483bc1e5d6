"""Shared fixtures: an in-memory grid source and common tables."""

from __future__ import annotations

import re
from typing import Any

import pytest

from sheet_sql.config import Settings
from sheet_sql.engine import SheetSqlEngine
from sheet_sql.location import GridLocation, column_index
from sheet_sql.remote import CellUpdate, WriteReceipt

SPREADSHEET_ID = "1BxiMVs0XRA5nFMdKvBdBZjgmUUqptlbs74OgvE2upms"

_CELL_RE = re.compile(r"^(?:(?P<sheet>'(?:[^']|'')+'|[^!]+)!)?(?P<col>[A-Z]+)(?P<row>\d+)$")


class FakeGridSource:
    """GridSource over in-memory sheets, recording every call.

    Each sheet is a list of rows starting at row 1, column A.
    """

    def __init__(self, sheets: dict[str, list[list[Any]]] | None = None) -> None:
        self.sheets = {name: [list(r) for r in rows] for name, rows in (sheets or {}).items()}
        self.calls: list[tuple[str, Any]] = []
        self.native_tables: list[dict[str, Any]] = []
        self.metadata: Any = [{"values": [{"formattedValue": "Name"}]}]
        self.fail_with: Exception | None = None

    def _sheet(self, location: GridLocation) -> list[list[Any]]:
        name = location.sheet_name or next(iter(self.sheets))
        return self.sheets.setdefault(name, [])

    def _check(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    def read_range(self, location: GridLocation) -> list[list[Any]]:
        self.calls.append(("read_range", location.range))
        self._check()
        rows = self._sheet(location)
        start = location.first_row - 1
        end = location.last_row if location.last_row else len(rows)
        first = column_index(location.first_column)
        last = column_index(location.last_column) + 1 if location.last_column else None
        window = [list(r[first:last]) for r in rows[start:end]]
        while window and not any(v not in (None, "") for v in window[-1]):
            window.pop()
        return window

    def query(self, location: GridLocation, native_query: str) -> dict[str, Any]:
        self.calls.append(("query", native_query))
        self._check()
        return self.native_tables.pop(0)

    def read_metadata(self, location: GridLocation) -> Any:
        self.calls.append(("read_metadata", location.range))
        self._check()
        return self.metadata

    def update_cells(self, location: GridLocation, updates: list[CellUpdate]) -> WriteReceipt:
        self.calls.append(("update_cells", [(u.range, u.values) for u in updates]))
        self._check()
        rows = self._sheet(location)
        for update in updates:
            m = _CELL_RE.match(update.range)
            assert m, update.range
            r, c = int(m.group("row")) - 1, column_index(m.group("col"))
            while len(rows) <= r:
                rows.append([])
            rows[r].extend([""] * (c + 1 - len(rows[r])))
            rows[r][c] = update.values[0][0]
        return WriteReceipt(update_time="2024-05-01T10:00:00Z")

    def append_rows(self, location: GridLocation, rows: list[list[Any]]) -> WriteReceipt:
        self.calls.append(("append_rows", rows))
        self._check()
        self._sheet(location).extend(list(r) for r in rows)
        return WriteReceipt(update_time="2024-05-01T10:00:00Z")

    def delete_rows(self, location: GridLocation, row_numbers: list[int]) -> WriteReceipt:
        self.calls.append(("delete_rows", list(row_numbers)))
        self._check()
        rows = self._sheet(location)
        for n in sorted(row_numbers, reverse=True):
            del rows[n - 1]
        return WriteReceipt(update_time="2024-05-01T10:00:00Z")

    @property
    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]


@pytest.fixture
def settings() -> Settings:
    """Settings with the native dialect disabled, so grid SELECTs are evaluated directly."""
    return Settings(native_dialect_enabled=False)


@pytest.fixture
def people() -> list[list[Any]]:
    return [
        ["Name", "Amount", "Status"],
        ["Alice", 100, "active"],
        ["Bob", 30, "pending"],
        ["Carol", 75, "active"],
    ]


@pytest.fixture
def grid_source() -> FakeGridSource:
    return FakeGridSource(
        {
            "Sheet1": [
                ["Name", "Amount", "Status"],
                ["Alice", 100, "active"],
                ["Bob", 30, "pending"],
                ["Carol", 75, "active"],
            ]
        }
    )


@pytest.fixture
def location() -> GridLocation:
    return GridLocation.parse(SPREADSHEET_ID, "Sheet1!A:C")


@pytest.fixture
def engine(settings: Settings) -> SheetSqlEngine:
    """Engine for virtual-table statements."""
    return SheetSqlEngine(settings=settings)


@pytest.fixture
def grid_engine(grid_source: FakeGridSource, settings: Settings) -> SheetSqlEngine:
    return SheetSqlEngine(source=grid_source, settings=settings)
