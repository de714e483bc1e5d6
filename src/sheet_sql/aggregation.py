"""GROUP BY buckets, aggregate functions, HAVING and PIVOT."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterator

from sheet_sql.errors import ValidationError
from sheet_sql.evaluator import Evaluator, RowContext, Scope
from sheet_sql.ordering import distinct_key, sort_order
from sheet_sql.parsing.sql_parser import (
    BinaryExpr,
    ColumnRef,
    CompoundCondition,
    Condition,
    FunctionCall,
    NotCondition,
    NullCheck,
    UnaryExpr,
)
from sheet_sql.table import Row
from sheet_sql.values import NULL, CellValue, sort_key


def apply_aggregate(name: str, cells: list[CellValue]) -> CellValue:
    """COUNT counts non-blank cells; the others ignore non-numeric cells (MIN/MAX also order text and dates)."""
    present = [c for c in cells if not c.is_blank]
    if name == "count":
        return CellValue.number(len(present))
    if name in ("min", "max"):
        if not present:
            return NULL
        pick = min if name == "min" else max
        return pick(present, key=sort_key)
    numbers = [n for n in (c.as_number() for c in present) if n is not None]
    if not numbers:
        return NULL
    total = sum(numbers)
    if name == "sum":
        return CellValue.number(total)
    return CellValue.number(total / len(numbers))


@dataclass
class Group:
    """Rows sharing one combination of grouping values."""

    key: list[CellValue]
    rows: list[Row] = field(default_factory=list)


class GroupContext:
    """Evaluation context for one group.

    Bare column references read the group's first row: they are grouping
    columns, constant across the group.
    """

    def __init__(self, scope: Scope, rows: list[Row]) -> None:
        self.scope = scope
        self.rows = rows

    def column(self, ref: ColumnRef) -> CellValue:
        if not self.rows:
            return NULL
        return self.rows[0].values[self.scope.resolve(ref)]

    def aggregate(self, call: FunctionCall, evaluator: Evaluator) -> CellValue:
        if call.star:
            return CellValue.number(len(self.rows))
        cells = [evaluator.value(call.args[0], RowContext(self.scope, row.values)) for row in self.rows]
        return apply_aggregate(call.name, cells)


def group_rows(evaluator: Evaluator, scope: Scope, rows: list[Row], group_by: list[Any]) -> list[Group]:
    """Bucket ``rows`` by their grouping values, groups ordered by key.

    Without grouping expressions every row falls in one group, which exists
    even when there are no rows.
    """
    if not group_by:
        return [Group(key=[], rows=list(rows))]
    groups: dict[tuple, Group] = {}
    for row in rows:
        ctx = RowContext(scope, row.values)
        key = [evaluator.value(expr, ctx) for expr in group_by]
        groups.setdefault(distinct_key(key), Group(key=key)).rows.append(row)
    ordered = list(groups.values())
    order = sort_order([g.key for g in ordered], [False] * len(group_by))
    return [ordered[i] for i in order]


def bare_columns(expr: Any) -> Iterator[ColumnRef]:
    """Column references outside any aggregate call."""
    if isinstance(expr, ColumnRef):
        yield expr
    elif isinstance(expr, FunctionCall):
        if not expr.is_aggregate:
            for arg in expr.args:
                yield from bare_columns(arg)
    elif isinstance(expr, (BinaryExpr, Condition, CompoundCondition)):
        yield from bare_columns(expr.left)
        yield from bare_columns(expr.right)
    elif isinstance(expr, (UnaryExpr, NullCheck, NotCondition)):
        yield from bare_columns(expr.operand)


def check_grouping(scope: Scope, group_by: list[Any], exprs: list[Any], aliases: set[str] | None = None) -> None:
    """Every bare column must be one of the grouping columns (or a projection alias)."""
    grouped_exprs = list(group_by)
    grouped_positions = {scope.resolve(e) for e in group_by if isinstance(e, ColumnRef)}
    for expr in exprs:
        if any(expr == g for g in grouped_exprs):
            continue
        for ref in bare_columns(expr):
            if ref.qualifier is None and aliases and ref.name in aliases:
                continue
            if scope.resolve(ref) not in grouped_positions:
                raise ValidationError(
                    f"Column '{ref}' must appear in GROUP BY or be used in an aggregate function"
                )


@dataclass
class PivotColumn:
    """One generated pivot column: a pivot value combined with an aggregate."""

    key: list[CellValue]
    aggregate: Any
    label: str


def pivot_columns(
    evaluator: Evaluator,
    scope: Scope,
    rows: list[Row],
    pivot: list[Any],
    aggregates: list[tuple[Any, str]],
) -> list[PivotColumn]:
    """Generated columns for each distinct pivot value, times each aggregate.

    ``aggregates`` pairs each aggregate projection with its default label.
    A single aggregate is labeled by the pivot value alone.
    """
    values = group_rows(evaluator, scope, rows, pivot)
    columns = []
    for group in values:
        text = ", ".join(v.as_text() or "" for v in group.key)
        for expr, label in aggregates:
            name = text if len(aggregates) == 1 else f"{text} {label}"
            columns.append(PivotColumn(key=group.key, aggregate=expr, label=name))
    return columns


def pivot_cell(
    evaluator: Evaluator,
    scope: Scope,
    group: Group,
    pivot: list[Any],
    column: PivotColumn,
) -> CellValue:
    """The aggregate over the group's rows whose pivot values equal the column's key."""
    marker = distinct_key(column.key)
    matching = [
        row
        for row in group.rows
        if distinct_key([evaluator.value(expr, RowContext(scope, row.values)) for expr in pivot]) == marker
    ]
    if not matching:
        return NULL
    return evaluator.value(column.aggregate, GroupContext(scope, matching))
