"""Native-dialect bridge for simple SELECTs against one grid range.

A SELECT over a single grid range with no JOIN can be answered by the
remote source's own query language. ``translate`` renders the statement in
that dialect, or returns None when any part of it cannot be expressed with
identical results; ``reshape`` turns the response into a SelectResult.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Any

from sheet_sql.location import GridLocation, column_index
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
    walk,
)
from sheet_sql.results import ResultCell, ResultColumn, SelectResult
from sheet_sql.values import NULL, CellType, CellValue, parse_date

logger = logging.getLogger(__name__)

_LETTERS_RE = re.compile(r"^[A-Z]+$")

_OPERATORS = {
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

_CASE_FOLDED = frozenset({"contains", "starts_with", "ends_with", "like"})

_TYPES = {
    "string": CellType.STRING,
    "number": CellType.NUMBER,
    "boolean": CellType.BOOLEAN,
    "date": CellType.DATE,
    "datetime": CellType.DATE,
    "timeofday": CellType.STRING,
}


class Unsupported(Exception):
    """A construct the native dialect cannot express identically."""


class NativeTranslator:
    """Renders a SELECT in the native dialect."""

    def __init__(self, location: GridLocation, case_sensitive: bool = False) -> None:
        self.location = location
        self.case_sensitive = case_sensitive

    def translate(self, query: SelectQuery) -> str:
        self._check_shape(query)
        aliases = {p.alias for p in query.projections if isinstance(p, Projection) and p.alias}
        parts = ["select " + self._projections(query)]
        if query.where is not None:
            parts.append("where " + self._predicate(query.where))
        if query.group_by:
            parts.append("group by " + ", ".join(self._expr(e) for e in query.group_by))
        if query.pivot:
            parts.append("pivot " + ", ".join(self._expr(e) for e in query.pivot))
        if query.order_by:
            keys = []
            for key in query.order_by:
                if any(isinstance(n, ColumnRef) and n.name in aliases for n in walk(key.expr)):
                    raise Unsupported("ORDER BY a projection alias")
                keys.append(self._expr(key.expr) + (" desc" if key.descending else " asc"))
            parts.append("order by " + ", ".join(keys))
        if query.limit is not None:
            parts.append(f"limit {query.limit}")
        if query.offset:
            parts.append(f"offset {query.offset}")
        labels = self._labels(query)
        if labels:
            parts.append("label " + ", ".join(f"{self._expr(e)} {self._string(t)}" for e, t in labels))
        if query.formats:
            parts.append("format " + ", ".join(f"{self._expr(e)} {self._string(p)}" for e, p in query.formats))
        return " ".join(parts)

    def _check_shape(self, query: SelectQuery) -> None:
        if query.joins:
            raise Unsupported("JOIN")
        if query.source is not None and query.source.virtual:
            raise Unsupported("virtual table")
        if query.distinct or query.distinct_on:
            raise Unsupported("DISTINCT")
        if query.having is not None:
            raise Unsupported("HAVING")

    def _projections(self, query: SelectQuery) -> str:
        if query.is_star:
            return "*"
        items = []
        for item in query.projections:
            if isinstance(item, Star):
                raise Unsupported("qualified star")
            items.append(self._expr(item.expr))
        return ", ".join(items)

    @staticmethod
    def _labels(query: SelectQuery) -> list[tuple[Any, str]]:
        """AS aliases become LABEL entries; explicit LABEL entries win."""
        labels = list(query.labels)
        for item in query.projections:
            if isinstance(item, Projection) and item.alias and not any(e == item.expr for e, _ in labels):
                labels.append((item.expr, item.alias))
        return labels

    def _predicate(self, expr: Any) -> str:
        if isinstance(expr, CompoundCondition):
            return f"({self._predicate(expr.left)} {expr.operator} {self._predicate(expr.right)})"
        if isinstance(expr, NotCondition):
            return f"not ({self._predicate(expr.operand)})"
        if isinstance(expr, NullCheck):
            return f"{self._expr(expr.operand)} is {'not ' if expr.negate else ''}null"
        if isinstance(expr, Condition):
            return self._condition(expr)
        raise Unsupported("bare value as a condition")

    def _condition(self, cond: Condition) -> str:
        if any(isinstance(side, Literal) and side.value.is_null for side in (cond.left, cond.right)):
            raise Unsupported("comparison with null")
        op = _OPERATORS[cond.operator]
        if cond.operator in _CASE_FOLDED and not self.case_sensitive:
            if not isinstance(cond.right, Literal) or cond.right.value.type is not CellType.STRING:
                raise Unsupported("case-insensitive match against a non-literal")
            pattern = self._string(cond.right.value.value.lower())
            return f"lower({self._expr(cond.left)}) {op} {pattern}"
        return f"{self._expr(cond.left)} {op} {self._expr(cond.right)}"

    def _expr(self, expr: Any) -> str:
        if isinstance(expr, ColumnRef):
            return self._column(expr)
        if isinstance(expr, Literal):
            return self._literal(expr.value)
        if isinstance(expr, FunctionCall):
            if expr.star:
                raise Unsupported("COUNT(*)")
            if expr.name == "today":
                return "toDate(now())"
            return f"{expr.name}({', '.join(self._expr(a) for a in expr.args)})"
        if isinstance(expr, BinaryExpr):
            return f"({self._expr(expr.left)} {expr.op} {self._expr(expr.right)})"
        if isinstance(expr, UnaryExpr):
            raise Unsupported("unary minus on an expression")
        raise Unsupported(type(expr).__name__)

    def _column(self, ref: ColumnRef) -> str:
        if ref.qualifier is not None:
            raise Unsupported("qualified column")
        if not _LETTERS_RE.match(ref.name):
            raise Unsupported("column referenced by header name")
        index = column_index(ref.name)
        if index < column_index(self.location.first_column):
            raise Unsupported("column outside the range")
        if self.location.last_column and index > column_index(self.location.last_column):
            raise Unsupported("column outside the range")
        return ref.name

    def _literal(self, value: CellValue) -> str:
        if value.type is CellType.STRING:
            return self._string(value.value)
        if value.type is CellType.BOOLEAN:
            return "true" if value.value else "false"
        if value.type is CellType.NUMBER:
            return repr(value.value) if isinstance(value.value, float) else str(value.value)
        if value.type is CellType.DATE:
            moment: datetime = value.value
            if moment.hour or moment.minute or moment.second:
                return f"datetime '{moment:%Y-%m-%d %H:%M:%S}'"
            return f"date '{moment:%Y-%m-%d}'"
        raise Unsupported("null literal")

    @staticmethod
    def _string(text: str) -> str:
        # The dialect has no escapes: pick the quote the text does not contain
        if '"' not in text:
            return f'"{text}"'
        if "'" not in text:
            return f"'{text}'"
        raise Unsupported("literal containing both quote characters")


def translate(query: SelectQuery, location: GridLocation, case_sensitive: bool = False) -> str | None:
    """Native-dialect text for ``query``, or None if it must be evaluated directly."""
    try:
        text = NativeTranslator(location, case_sensitive).translate(query)
    except Unsupported as e:
        logger.debug("Not bridged (%s)", e)
        return None
    return text


def _native_id(expr: Any) -> str | None:
    if isinstance(expr, ColumnRef):
        return expr.name
    if isinstance(expr, FunctionCall) and expr.is_aggregate and expr.args and isinstance(expr.args[0], ColumnRef):
        return f"{expr.name}-{expr.args[0].name}"
    return None


def _cell(raw: Any, kind: str) -> CellValue:
    if raw is None:
        return NULL
    if kind in ("date", "datetime") and isinstance(raw, str):
        moment = parse_date(raw)
        return CellValue.date(moment) if moment else CellValue.string(raw)
    if kind == "timeofday" and isinstance(raw, list):
        return CellValue.string(":".join(f"{int(p):02d}" for p in raw[:3]))
    return CellValue.from_raw(raw)


def reshape(table: dict[str, Any], query: SelectQuery) -> SelectResult:
    """Convert a native response table to the uniform result.

    Formatted text is kept only for columns named in FORMAT; dates arrive
    as ``Date(y,m,d)`` and become ISO dates.
    """
    formatted = {i for i in (_native_id(e) for e, _ in query.formats) if i}
    cols = table.get("cols", [])
    columns = []
    keep = []
    for col in cols:
        ident = col.get("id", "")
        columns.append(
            ResultColumn(
                id=ident,
                label=col.get("label", "") or ident,
                type=_TYPES.get(col.get("type", "string"), CellType.STRING),
                pattern=col.get("pattern") if ident in formatted else None,
            )
        )
        keep.append(ident in formatted or any(ident.endswith(f" {f}") for f in formatted))
    rows = []
    for row in table.get("rows", []):
        cells = list(row.get("c") or [])
        cells += [None] * (len(cols) - len(cells))
        out = []
        for col, raw, keep_f in zip(cols, cells, keep):
            raw = raw or {}
            value = _cell(raw.get("v"), col.get("type", "string"))
            out.append(ResultCell(value, raw.get("f") if keep_f else None))
        rows.append(out)
    return SelectResult(columns=columns, rows=rows)
