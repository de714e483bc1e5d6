"""Uniform in-memory tables built from virtual-table payloads or grid reads."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Sequence

from sheet_sql.errors import ValidationError
from sheet_sql.location import GridLocation, column_letter, column_index
from sheet_sql.values import NULL, CellType, CellValue, infer_type


class SourceKind(Enum):
    VIRTUAL = "virtual"
    GRID = "grid"


@dataclass(frozen=True)
class TableSource:
    """Where a table's rows physically live."""

    kind: SourceKind
    name: str  # virtual-table name or A1 range
    location: GridLocation | None = None


@dataclass
class Column:
    """A column: letter code (grid) or header name (virtual), plus its label."""

    id: str
    label: str
    type: CellType = CellType.STRING
    alias: str | None = None  # owning table's alias, for alias.column lookups
    used: bool = True  # false for grid columns past the last non-empty cell

    @property
    def qualified_id(self) -> str:
        return f"{self.alias}.{self.id}" if self.alias else self.id


@dataclass
class Row:
    """One data row; ``ordinal`` is its position among the source's data rows."""

    ordinal: int
    values: list[CellValue]


@dataclass
class Table:
    """Ordered columns and rows from a single source (or a join of several)."""

    columns: list[Column]
    rows: list[Row]
    source: TableSource
    alias: str | None = None
    joined: bool = False
    header: list[Any] = field(default_factory=list)

    @classmethod
    def from_virtual(cls, name: str, data: Sequence[Sequence[Any]], alias: str | None = None) -> Table:
        """Build a table from a header-plus-rows 2-D array."""
        if not data:
            raise ValidationError(f"Virtual table ':{name}' is empty: a header row is required")
        header = [str(h) if h is not None else "" for h in data[0]]
        width = len(header)
        rows = []
        for ordinal, raw in enumerate(data[1:]):
            cells = [CellValue.from_raw(v) for v in list(raw)[:width]]
            cells.extend([NULL] * (width - len(cells)))
            rows.append(Row(ordinal=ordinal, values=cells))
        effective_alias = alias or name
        columns = [
            Column(id=h, label=h, type=infer_type([r.values[i] for r in rows]), alias=effective_alias)
            for i, h in enumerate(header)
        ]
        return cls(
            columns=columns,
            rows=rows,
            source=TableSource(SourceKind.VIRTUAL, name),
            alias=effective_alias,
            header=list(data[0]),
        )

    @classmethod
    def from_grid(
        cls,
        location: GridLocation,
        cells: Sequence[Sequence[Any]],
        header_rows: int = 1,
        alias: str | None = None,
    ) -> Table:
        """Build a table from the cell values of a grid range.

        Columns are letter-coded from the range's first column; the first
        ``header_rows`` rows supply labels and are not data. Empty cells are
        null.
        """
        used = max([len(r) for r in cells] + [0])
        width = max(used, len(location.column_letters) if location.last_column else 0)
        start = column_index(location.first_column)
        letters = [column_letter(start + i) for i in range(width)]
        labels = [""] * width
        for raw in cells[:header_rows]:
            for i, v in enumerate(raw):
                if v not in (None, ""):
                    labels[i] = f"{labels[i]} {v}".strip()
        rows = []
        for ordinal, raw in enumerate(cells[header_rows:]):
            values = [NULL if v in (None, "") else CellValue.from_raw(v) for v in list(raw)[:width]]
            values.extend([NULL] * (width - len(values)))
            rows.append(Row(ordinal=ordinal, values=values))
        columns = [
            Column(
                id=letter,
                label=labels[i],
                type=infer_type([r.values[i] for r in rows]),
                alias=alias,
                used=i < used,
            )
            for i, letter in enumerate(letters)
        ]
        return cls(
            columns=columns,
            rows=rows,
            source=TableSource(SourceKind.GRID, location.range, location),
            alias=alias,
            header=labels,
        )

    @property
    def is_virtual(self) -> bool:
        return self.source.kind is SourceKind.VIRTUAL

    def column_position(self, name: str) -> int:
        """Index of a column by id, then label, then case-insensitively."""
        for matcher in (
            lambda c: c.id == name,
            lambda c: c.label == name,
            lambda c: c.id.lower() == name.lower() or c.label.lower() == name.lower(),
        ):
            hits = [i for i, c in enumerate(self.columns) if matcher(c)]
            if hits:
                return hits[0]
        raise ValidationError(f"Column '{name}' not found in {self.describe()}")

    def describe(self) -> str:
        if self.is_virtual:
            return f"virtual table ':{self.source.name}'"
        return f"range '{self.source.name}'"
