"""Resolution of FROM/JOIN/INTO targets to tables."""

from __future__ import annotations

from typing import Any, Mapping, Sequence

from sheet_sql.errors import ValidationError
from sheet_sql.location import GridLocation
from sheet_sql.parsing.sql_parser import TableRef
from sheet_sql.remote import GridSource, guarded
from sheet_sql.table import Table

VirtualTableSet = Mapping[str, Sequence[Sequence[Any]]]


class TableResolver:
    """Builds tables from one call's virtual tables or from grid ranges.

    ``check`` validates a target without I/O; ``resolve`` loads it. Each
    grid range is read at most once per resolver.
    """

    def __init__(
        self,
        virtual_tables: VirtualTableSet | None = None,
        source: GridSource | None = None,
        default_location: GridLocation | None = None,
        header_rows: int = 1,
    ) -> None:
        self.virtual_tables = dict(virtual_tables or {})
        self.source = source
        self.default_location = default_location
        self.header_rows = header_rows
        self._grid_cells: dict[tuple[str, str], list[list[Any]]] = {}

    def check(self, ref: TableRef | None) -> None:
        if ref is not None and ref.virtual:
            self.virtual_data(ref.name)
        else:
            self.location_for(ref)
            if self.source is None:
                raise ValidationError("Invalid target: no grid source is available to read ranges")

    def virtual_data(self, name: str) -> Sequence[Sequence[Any]]:
        if name not in self.virtual_tables:
            raise ValidationError(f"Virtual table ':{name}' not found")
        data = self.virtual_tables[name]
        if not isinstance(data, Sequence) or isinstance(data, (str, bytes)) or not data:
            raise ValidationError(f"Invalid virtual table ':{name}': expected a header row followed by data rows")
        return data

    def location_for(self, ref: TableRef | None) -> GridLocation:
        """Grid location of a target; a bare range addresses the default spreadsheet."""
        if ref is None:
            if self.default_location is None:
                raise ValidationError("Invalid target: no range given and the statement names no table")
            return self.default_location
        if ref.virtual:
            raise ValidationError(f"Invalid target: ':{ref.name}' is a virtual table, not a range")
        if self.default_location is None:
            raise ValidationError(f"Invalid target: a spreadsheet ID or URL is required to read '{ref.name}'")
        return self.default_location.with_range(ref.name)

    def resolve(self, ref: TableRef | None) -> Table:
        if ref is not None and ref.virtual:
            return Table.from_virtual(ref.name, self.virtual_data(ref.name), alias=ref.alias)
        location = self.location_for(ref)
        return self.read_grid(location, alias=ref.alias if ref else None)

    def read_grid(self, location: GridLocation, alias: str | None = None) -> Table:
        if self.source is None:
            raise ValidationError("Invalid target: no grid source is available to read ranges")
        key = (location.spreadsheet_id, location.range)
        if key not in self._grid_cells:
            self._grid_cells[key] = guarded(f"Read of {location.range}", self.source.read_range, location)
        cells = self._grid_cells[key]
        return Table.from_grid(location, cells, header_rows=self.header_rows, alias=alias)
