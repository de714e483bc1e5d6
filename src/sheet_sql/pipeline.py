"""Direct evaluation of SELECT statements.

Stages run in a fixed order whatever the source: join, WHERE, grouping and
aggregation (with PIVOT and HAVING), projection, DISTINCT, ORDER BY,
OFFSET, LIMIT, then LABEL and FORMAT.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sheet_sql.aggregation import GroupContext, check_grouping, group_rows, pivot_cell, pivot_columns
from sheet_sql.errors import ValidationError
from sheet_sql.evaluator import AliasContext, Context, Evaluator, RowContext, Scope
from sheet_sql.formatting import format_cell
from sheet_sql.joins import join
from sheet_sql.ordering import distinct, page, sort_order
from sheet_sql.parsing.sql_parser import (
    BinaryExpr,
    ColumnRef,
    CompoundCondition,
    Condition,
    FunctionCall,
    Literal,
    NotCondition,
    NullCheck,
    Projection,
    SelectQuery,
    Star,
    UnaryExpr,
    contains_aggregate,
    walk,
)
from sheet_sql.resolver import TableResolver
from sheet_sql.results import ResultCell, ResultColumn, SelectResult
from sheet_sql.table import Table
from sheet_sql.values import CellValue, infer_type

_SYMBOLS = {
    "eq": "=",
    "neq": "!=",
    "lt": "<",
    "lte": "<=",
    "gt": ">",
    "gte": ">=",
    "contains": "contains",
    "starts_with": "starts with",
    "ends_with": "ends with",
    "like": "like",
    "matches": "matches",
}


@dataclass
class OutputColumn:
    """A projected column before rendering."""

    expr: Any
    id: str
    label: str
    alias: str | None = None
    position: int | None = None  # source column, for plain column projections


@dataclass
class OutputRow:
    values: list[CellValue]
    ctx: Context


class SelectPipeline:
    """Evaluates a SELECT over resolved tables."""

    def __init__(self, resolver: TableResolver, evaluator: Evaluator) -> None:
        self.resolver = resolver
        self.evaluator = evaluator

    def load(self, query: SelectQuery) -> Table:
        """Resolve the FROM target and apply the JOINs."""
        table = self.resolver.resolve(query.source)
        for clause in query.joins:
            table = join(table, self.resolver.resolve(clause.table), clause)
        return table

    def run(self, query: SelectQuery) -> SelectResult:
        return self.evaluate(query, self.load(query))

    def evaluate(self, query: SelectQuery, table: Table) -> SelectResult:
        scope = Scope(table)
        columns = self._expand(query, scope)
        aliases = {c.alias for c in columns if c.alias}
        self._validate(query, scope, columns, aliases)

        rows = table.rows
        if query.where is not None:
            rows = [r for r in rows if self.evaluator.matches(query.where, RowContext(scope, r.values))]

        if self._is_aggregated(query, columns):
            check_grouping(
                scope,
                query.group_by,
                [c.expr for c in columns if not (query.pivot and contains_aggregate(c.expr))]
                + [k.expr for k in query.order_by]
                + ([query.having] if query.having is not None else []),
                aliases,
            )
            columns, outputs = self._aggregate(query, scope, columns, rows)
        else:
            if query.having is not None:
                raise ValidationError("HAVING requires GROUP BY or an aggregate function")
            outputs = [self._project(columns, RowContext(scope, r.values)) for r in rows]

        if query.distinct:
            if query.distinct_on:
                keys = [[self.evaluator.value(e, o.ctx) for e in query.distinct_on] for o in outputs]
            else:
                keys = [o.values for o in outputs]
            outputs = distinct(outputs, keys)

        if query.order_by:
            keys = [[self.evaluator.value(k.expr, o.ctx) for k in query.order_by] for o in outputs]
            order = sort_order(keys, [k.descending for k in query.order_by])
            outputs = [outputs[i] for i in order]

        outputs = page(outputs, query.offset, query.limit)
        return self._render(query, scope, columns, outputs)

    # --- Projection ---

    def _expand(self, query: SelectQuery, scope: Scope) -> list[OutputColumn]:
        table = scope.table
        columns: list[OutputColumn] = []
        for item in query.projections:
            if isinstance(item, Star):
                picked = [
                    (i, c)
                    for i, c in enumerate(table.columns)
                    if item.qualifier is None or (c.alias and c.alias.lower() == item.qualifier.lower())
                ]
                if not picked:
                    raise ValidationError(f"Table alias '{item.qualifier}' not found")
                for i, c in picked:
                    ref = ColumnRef(c.id, c.alias if table.joined else None)
                    columns.append(OutputColumn(ref, self._name(ref, scope), self._name(ref, scope, True), position=i))
                continue
            assert isinstance(item, Projection)
            columns.append(
                OutputColumn(
                    expr=item.expr,
                    id=self._name(item.expr, scope),
                    label=item.alias or self._name(item.expr, scope, True),
                    alias=item.alias,
                )
            )
        return columns

    def _project(self, columns: list[OutputColumn], ctx: RowContext) -> OutputRow:
        values = [
            ctx.values[c.position] if c.position is not None else self.evaluator.value(c.expr, ctx)
            for c in columns
        ]
        return OutputRow(values, AliasContext(ctx, _alias_values(columns, values)))

    # --- Aggregation ---

    @staticmethod
    def _is_aggregated(query: SelectQuery, columns: list[OutputColumn]) -> bool:
        return bool(
            query.group_by
            or query.pivot
            or any(contains_aggregate(c.expr) for c in columns)
            or contains_aggregate(query.having)
            or any(contains_aggregate(k.expr) for k in query.order_by)
        )

    def _aggregate(
        self,
        query: SelectQuery,
        scope: Scope,
        columns: list[OutputColumn],
        rows: list,
    ) -> tuple[list[OutputColumn], list[OutputRow]]:
        ev = self.evaluator
        groups = group_rows(ev, scope, rows, query.group_by)
        generated = []
        if query.pivot:
            aggregates = [c for c in columns if contains_aggregate(c.expr)]
            columns = [c for c in columns if not contains_aggregate(c.expr)]
            generated = pivot_columns(ev, scope, rows, query.pivot, [(c.expr, c.label) for c in aggregates])
        outputs = []
        for group in groups:
            if query.pivot and not group.rows:
                continue
            gctx = GroupContext(scope, group.rows)
            values = [ev.value(c.expr, gctx) for c in columns]
            values += [pivot_cell(ev, scope, group, query.pivot, p) for p in generated]
            ctx = AliasContext(gctx, _alias_values(columns, values))
            if query.having is not None and not ev.matches(query.having, ctx):
                continue
            outputs.append(OutputRow(values, ctx))
        columns = columns + [OutputColumn(p.aggregate, p.label, p.label) for p in generated]
        return columns, outputs

    # --- Validation ---

    def _validate(self, query: SelectQuery, scope: Scope, columns: list[OutputColumn], aliases: set[str]) -> None:
        if contains_aggregate(query.where):
            raise ValidationError("Aggregate functions are not allowed in WHERE")
        for expr in [c.expr for c in columns if c.position is None] + query.group_by + query.pivot:
            scope.validate(expr)
        if query.where is not None:
            scope.validate(query.where)
        late = [k.expr for k in query.order_by] + query.distinct_on
        if query.having is not None:
            late.append(query.having)
        for expr in late:
            for node in walk(expr):
                if isinstance(node, ColumnRef) and not (node.qualifier is None and node.name in aliases):
                    scope.resolve(node)

    # --- Rendering ---

    def _render(
        self,
        query: SelectQuery,
        scope: Scope,
        columns: list[OutputColumn],
        outputs: list[OutputRow],
    ) -> SelectResult:
        patterns: dict[int, str] = {}
        labels: dict[int, str] = {}
        for expr, text in query.labels:
            labels[self._find(expr, "LABEL", scope, columns)] = text
        for expr, pattern in query.formats:
            patterns[self._find(expr, "FORMAT", scope, columns)] = pattern

        result_columns = []
        for i, column in enumerate(columns):
            cells = [o.values[i] for o in outputs]
            kind = infer_type(cells)
            if column.position is not None and all(c.is_blank for c in cells):
                kind = scope.table.columns[column.position].type
            result_columns.append(
                ResultColumn(id=column.id, label=labels.get(i, column.label), type=kind, pattern=patterns.get(i))
            )
        rows = [
            [
                ResultCell(value, format_cell(value, patterns[i]) if i in patterns else None)
                for i, value in enumerate(o.values)
            ]
            for o in outputs
        ]
        return SelectResult(columns=result_columns, rows=rows)

    @staticmethod
    def _find(expr: Any, clause: str, scope: Scope, columns: list[OutputColumn]) -> int:
        """Index of the projected column a LABEL/FORMAT entry refers to."""
        if isinstance(expr, ColumnRef) and expr.qualifier is None:
            for i, column in enumerate(columns):
                if column.alias == expr.name:
                    return i
        for i, column in enumerate(columns):
            if column.expr == expr:
                return i
            if isinstance(expr, ColumnRef) and isinstance(column.expr, ColumnRef):
                if scope.resolve(expr) == scope.resolve(column.expr):
                    return i
        raise ValidationError(f"{clause} column '{expr}' not found in SELECT")

    def _name(self, expr: Any, scope: Scope, label: bool = False) -> str:
        """Default column id (or label) for a projected expression."""
        if isinstance(expr, ColumnRef):
            column = scope.table.columns[scope.resolve(expr)]
            ident = column.qualified_id if scope.table.joined else column.id
            if not label:
                return ident
            if scope.table.joined and column.alias and column.label:
                return f"{column.alias}.{column.label}"
            return column.label or ident
        if isinstance(expr, Literal):
            text = expr.value.as_text()
            return "null" if text is None else text
        if isinstance(expr, FunctionCall):
            if expr.star:
                return f"{expr.name}(*)" if label else expr.name
            inner = ", ".join(self._name(a, scope, label) for a in expr.args)
            if expr.is_aggregate:
                return f"{expr.name} {inner}" if label else f"{expr.name}-{inner}"
            return f"{expr.name}({inner})"
        if isinstance(expr, BinaryExpr):
            return f"{self._operand(expr.left, scope, label)} {expr.op} {self._operand(expr.right, scope, label)}"
        if isinstance(expr, UnaryExpr):
            return f"-{self._operand(expr.operand, scope, label)}"
        if isinstance(expr, Condition):
            return f"{self._name(expr.left, scope, label)} {_SYMBOLS[expr.operator]} {self._name(expr.right, scope, label)}"
        if isinstance(expr, NullCheck):
            return f"{self._name(expr.operand, scope, label)} is {'not ' if expr.negate else ''}null"
        if isinstance(expr, CompoundCondition):
            return f"{self._operand(expr.left, scope, label)} {expr.operator} {self._operand(expr.right, scope, label)}"
        if isinstance(expr, NotCondition):
            return f"not {self._operand(expr.operand, scope, label)}"
        return str(expr)

    def _operand(self, expr: Any, scope: Scope, label: bool) -> str:
        text = self._name(expr, scope, label)
        if isinstance(expr, (BinaryExpr, CompoundCondition, Condition)):
            return f"({text})"
        return text


def _alias_values(columns: list[OutputColumn], values: list[CellValue]) -> dict[str, CellValue]:
    return {c.alias: v for c, v in zip(columns, values) if c.alias}
