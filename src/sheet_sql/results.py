"""Uniform result shapes shared by every execution path."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from sheet_sql.values import CellType, CellValue


@dataclass
class ResultColumn:
    """One output column."""

    id: str
    label: str
    type: CellType = CellType.STRING
    pattern: str | None = None

    def to_dict(self) -> dict[str, Any]:
        kind = CellType.STRING if self.type is CellType.NULL else self.type
        return {"id": self.id, "label": self.label, "type": kind.value}


@dataclass
class ResultCell:
    """One output cell: its value and, when a FORMAT applies, the formatted text."""

    value: CellValue
    formatted: str | None = None

    def to_dict(self) -> dict[str, Any]:
        cell: dict[str, Any] = {"v": self.value.to_json()}
        if self.formatted is not None:
            cell["f"] = self.formatted
        return cell


@dataclass
class SelectResult:
    """Result of a SELECT, whichever backend produced it."""

    columns: list[ResultColumn]
    rows: list[list[ResultCell]]
    metadata: Any = None
    operation: str = "SELECT"

    @property
    def data(self) -> dict[str, Any]:
        return {
            "cols": [c.to_dict() for c in self.columns],
            "rows": [{"c": [cell.to_dict() for cell in row]} for row in self.rows],
        }

    def records(self) -> list[list[Any]]:
        """Plain cell values, row by row."""
        return [[cell.value.to_json() for cell in row] for row in self.rows]

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"operation": self.operation, "data": self.data}
        if self.metadata is not None:
            result["metadata"] = self.metadata
        return result


@dataclass
class MutationResult:
    """Summary of an INSERT, UPDATE or DELETE.

    Virtual-table mutations carry the whole resulting table in ``data``,
    header row included.
    """

    operation: str
    count: int
    update_time: str | None = None
    message: str | None = None
    data: list[list[Any]] | None = field(default=None, repr=False)

    @property
    def count_key(self) -> str:
        return "deletedRows" if self.operation == "DELETE" else "updatedRows"

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"operation": self.operation, self.count_key: self.count}
        if self.update_time is not None:
            result["updateTime"] = self.update_time
        if self.message is not None:
            result["message"] = self.message
        if self.data is not None:
            result["data"] = self.data
        return result
