"""INSERT, UPDATE and DELETE against virtual tables and grid ranges.

Target rows are always chosen here: filter by WHERE, then ORDER BY, then
LIMIT. Virtual tables are changed in a copy of the caller's array, which
is returned whole. Grid ranges are read once and written once, addressing
the computed rows by their sheet row numbers.
"""

from __future__ import annotations

import copy
import logging
from typing import Any

from sheet_sql.config import Settings
from sheet_sql.errors import ValidationError
from sheet_sql.evaluator import Evaluator, RowContext, Scope, constant_value
from sheet_sql.location import GridLocation
from sheet_sql.ordering import page, sort_order
from sheet_sql.parsing.sql_parser import DeleteQuery, InsertQuery, SortKey, UpdateQuery
from sheet_sql.remote import CellUpdate, guarded
from sheet_sql.resolver import TableResolver
from sheet_sql.results import MutationResult
from sheet_sql.table import Row, Table

logger = logging.getLogger(__name__)

NO_MATCH = "No rows matched WHERE clause"


class MutationExecutor:
    """Applies INSERT/UPDATE/DELETE statements."""

    def __init__(self, resolver: TableResolver, evaluator: Evaluator, settings: Settings) -> None:
        self.resolver = resolver
        self.evaluator = evaluator
        self.settings = settings

    def execute(self, query: InsertQuery | UpdateQuery | DeleteQuery) -> MutationResult:
        target = query.target
        if target is not None and target.virtual:
            data = copy.deepcopy([list(r) for r in self.resolver.virtual_data(target.name)])
            table = Table.from_virtual(target.name, data, alias=target.alias)
            if isinstance(query, InsertQuery):
                return self._insert_virtual(query, table, data)
            if isinstance(query, UpdateQuery):
                return self._update_virtual(query, table, data)
            return self._delete_virtual(query, table, data)

        location = self.resolver.location_for(target)
        if isinstance(query, InsertQuery):
            return self._insert_grid(query, location)
        table = self.resolver.read_grid(location, alias=target.alias if target else None)
        if isinstance(query, UpdateQuery):
            return self._update_grid(query, table, location)
        return self._delete_grid(query, table, location)

    # --- Row selection ---

    def select_rows(
        self,
        table: Table,
        where: Any,
        order_by: list[SortKey],
        limit: int | None,
    ) -> list[Row]:
        """Rows matching ``where``, ordered and limited."""
        scope = Scope(table)
        scope.validate(where)
        for key in order_by:
            scope.validate(key.expr)
        rows = [r for r in table.rows if self.evaluator.matches(where, RowContext(scope, r.values))]
        if order_by:
            keys = [[self.evaluator.value(k.expr, RowContext(scope, r.values)) for k in order_by] for r in rows]
            order = sort_order(keys, [k.descending for k in order_by])
            rows = [rows[i] for i in order]
        return page(rows, 0, limit)

    def _new_values(self, query: UpdateQuery, table: Table) -> tuple[list[int], list[Row], list[list[Any]]]:
        """Target positions, target rows, and each row's new values (from pre-update values)."""
        scope = Scope(table)
        positions = [scope.resolve(a.column) for a in query.assignments]
        for assignment in query.assignments:
            scope.validate(assignment.value)
        rows = self.select_rows(table, query.where, query.order_by, query.limit)
        updates = [
            [self.evaluator.value(a.value, RowContext(scope, row.values)).to_json() for a in query.assignments]
            for row in rows
        ]
        return positions, rows, updates

    def _insert_rows(self, query: InsertQuery, table: Table | None, width: int | None) -> list[list[Any]]:
        """VALUES tuples as raw rows, sparse tuples spread over the table's columns."""
        if query.columns is not None and table is None:
            raise ValidationError("INSERT with a column list needs the target table's header")
        rows = []
        for items in query.rows:
            values = [constant_value(self.evaluator, item).to_json() for item in items]
            if query.columns is None:
                if width is not None and len(values) > width:
                    raise ValidationError(f"INSERT has {len(values)} values but the table has {width} columns")
                if width is not None:
                    values += [""] * (width - len(values))
                rows.append(values)
                continue
            if len(values) != len(query.columns):
                raise ValidationError(
                    f"INSERT names {len(query.columns)} columns but supplies {len(values)} values"
                )
            row: list[Any] = [""] * len(table.columns)
            for name, value in zip(query.columns, values):
                row[table.column_position(name)] = value
            rows.append(row)
        return rows

    # --- Virtual tables ---

    def _insert_virtual(self, query: InsertQuery, table: Table, data: list[list[Any]]) -> MutationResult:
        if not self.settings.virtual_insert_enabled:
            raise ValidationError("INSERT is not supported for virtual tables")
        rows = self._insert_rows(query, table, len(table.columns))
        data.extend(rows)
        return MutationResult("INSERT", len(rows), data=data)

    def _update_virtual(self, query: UpdateQuery, table: Table, data: list[list[Any]]) -> MutationResult:
        positions, rows, updates = self._new_values(query, table)
        if not rows:
            return MutationResult("UPDATE", 0, message=NO_MATCH, data=data)
        width = len(table.columns)
        for row, values in zip(rows, updates):
            raw = data[row.ordinal + 1]
            raw.extend([""] * (width - len(raw)))
            for position, value in zip(positions, values):
                raw[position] = value
        return MutationResult("UPDATE", len(rows), data=data)

    def _delete_virtual(self, query: DeleteQuery, table: Table, data: list[list[Any]]) -> MutationResult:
        rows = self.select_rows(table, query.where, query.order_by, query.limit)
        if not rows:
            return MutationResult("DELETE", 0, message=NO_MATCH, data=data)
        doomed = {row.ordinal + 1 for row in rows}
        remaining = [r for i, r in enumerate(data) if i not in doomed]
        return MutationResult("DELETE", len(rows), data=remaining)

    # --- Grid ranges ---

    def _sheet_row(self, location: GridLocation, row: Row) -> int:
        return location.first_row + self.resolver.header_rows + row.ordinal

    def _insert_grid(self, query: InsertQuery, location: GridLocation) -> MutationResult:
        table = None
        if query.columns is not None:
            table = self.resolver.read_grid(location)
        rows = self._insert_rows(query, table, None)
        source = self.resolver.source
        receipt = guarded("INSERT", source.append_rows, location, rows)
        logger.debug("Appended %d rows to %s", len(rows), location)
        return MutationResult("INSERT", len(rows), update_time=receipt.update_time)

    def _update_grid(self, query: UpdateQuery, table: Table, location: GridLocation) -> MutationResult:
        positions, rows, updates = self._new_values(query, table)
        if not rows:
            return MutationResult("UPDATE", 0, message=NO_MATCH)
        letters = [table.columns[p].id for p in positions]
        cell_updates = [
            CellUpdate(range=location.cell(letter, self._sheet_row(location, row)), values=[["" if v is None else v]])
            for row, values in zip(rows, updates)
            for letter, v in zip(letters, values)
        ]
        receipt = guarded("UPDATE", self.resolver.source.update_cells, location, cell_updates)
        logger.debug("Updated %d rows in %s", len(rows), location)
        return MutationResult("UPDATE", len(rows), update_time=receipt.update_time)

    def _delete_grid(self, query: DeleteQuery, table: Table, location: GridLocation) -> MutationResult:
        rows = self.select_rows(table, query.where, query.order_by, query.limit)
        if not rows:
            return MutationResult("DELETE", 0, message=NO_MATCH)
        numbers = sorted(self._sheet_row(location, row) for row in rows)
        receipt = guarded("DELETE", self.resolver.source.delete_rows, location, numbers)
        logger.debug("Deleted rows %s from %s", numbers, location)
        return MutationResult("DELETE", len(rows), update_time=receipt.update_time)
