"""Expression and predicate evaluation over rows and groups."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Callable, Protocol

from sheet_sql.errors import ValidationError
from sheet_sql.parsing.sql_parser import (
    BinaryExpr,
    ColumnRef,
    CompoundCondition,
    Condition,
    FunctionCall,
    Literal,
    NotCondition,
    NullCheck,
    UnaryExpr,
    walk,
)
from sheet_sql.table import Table
from sheet_sql.values import FALSE, NULL, TRUE, CellValue, compare, like_pattern

_ORDERING = frozenset({"eq", "neq", "lt", "lte", "gt", "gte"})


class Scope:
    """Resolves column references against a (possibly joined) table."""

    def __init__(self, table: Table) -> None:
        self.table = table
        self._cache: dict[tuple[str | None, str], int] = {}

    def resolve(self, ref: ColumnRef) -> int:
        key = (ref.qualifier, ref.name)
        if key not in self._cache:
            self._cache[key] = self._lookup(ref)
        return self._cache[key]

    def _lookup(self, ref: ColumnRef) -> int:
        columns = list(enumerate(self.table.columns))
        if ref.qualifier is not None:
            scoped = [(i, c) for i, c in columns if c.alias and c.alias.lower() == ref.qualifier.lower()]
            if not scoped:
                raise ValidationError(f"Table alias '{ref.qualifier}' not found")
            columns = scoped
        name = ref.name
        for matcher in (
            lambda c: c.id == name,
            lambda c: c.label == name,
            lambda c: c.id.lower() == name.lower() or c.label.lower() == name.lower(),
        ):
            hits = [(i, c) for i, c in columns if matcher(c)]
            if not hits:
                continue
            aliases = {c.alias for _, c in hits}
            if len(aliases) > 1:
                choices = ", ".join(sorted(f"{a}.{name}" for a in aliases if a))
                raise ValidationError(f"Column '{name}' is ambiguous; qualify it as one of: {choices}")
            return hits[0][0]
        if ref.qualifier is not None:
            raise ValidationError(f"Column '{ref}' not found")
        raise ValidationError(f"Column '{name}' not found in {self.table.describe()}")

    def validate(self, expr: Any) -> None:
        """Resolve every column reference in ``expr`` or raise."""
        for node in walk(expr):
            if isinstance(node, ColumnRef):
                self.resolve(node)


class Context(Protocol):
    def column(self, ref: ColumnRef) -> CellValue: ...

    def aggregate(self, call: FunctionCall, evaluator: Evaluator) -> CellValue: ...


class RowContext:
    """Evaluation context for a single row."""

    def __init__(self, scope: Scope, values: list[CellValue]) -> None:
        self.scope = scope
        self.values = values

    def column(self, ref: ColumnRef) -> CellValue:
        return self.values[self.scope.resolve(ref)]

    def aggregate(self, call: FunctionCall, evaluator: Evaluator) -> CellValue:
        raise ValidationError(f"Aggregate {call.name.upper()}() is not allowed here")


class AliasContext:
    """Wraps a context so that projection aliases resolve to their projected values."""

    def __init__(self, base: Context, aliases: dict[str, CellValue]) -> None:
        self.base = base
        self.aliases = aliases

    def column(self, ref: ColumnRef) -> CellValue:
        if ref.qualifier is None and ref.name in self.aliases:
            return self.aliases[ref.name]
        return self.base.column(ref)

    def aggregate(self, call: FunctionCall, evaluator: Evaluator) -> CellValue:
        return self.base.aggregate(call, evaluator)


class ConstantContext:
    """Evaluation context with no row, for VALUES items."""

    def column(self, ref: ColumnRef) -> CellValue:
        raise ValidationError(f"Column reference '{ref}' is not allowed in VALUES")

    def aggregate(self, call: FunctionCall, evaluator: Evaluator) -> CellValue:
        raise ValidationError(f"Aggregate {call.name.upper()}() is not allowed in VALUES")


class Evaluator:
    """Evaluates expressions to cell values and predicates to booleans.

    Type mismatches never raise: arithmetic on non-numbers yields null and
    a comparison between incompatible values does not match.
    """

    def __init__(self, case_sensitive: bool = False, clock: Callable[[], datetime] | None = None) -> None:
        self.case_sensitive = case_sensitive
        self.clock = clock or datetime.now
        self._patterns: dict[tuple[str, str], re.Pattern[str]] = {}

    def value(self, expr: Any, ctx: Context) -> CellValue:
        if isinstance(expr, Literal):
            return expr.value
        if isinstance(expr, ColumnRef):
            return ctx.column(expr)
        if isinstance(expr, FunctionCall):
            if expr.is_aggregate:
                return ctx.aggregate(expr, self)
            return self._scalar(expr, ctx)
        if isinstance(expr, BinaryExpr):
            return self._arithmetic(expr.op, self.value(expr.left, ctx), self.value(expr.right, ctx))
        if isinstance(expr, UnaryExpr):
            number = self.value(expr.operand, ctx).as_number()
            return NULL if number is None else CellValue.number(-number)
        return TRUE if self.matches(expr, ctx) else FALSE

    def matches(self, expr: Any, ctx: Context) -> bool:
        """Evaluate a predicate."""
        if isinstance(expr, CompoundCondition):
            if expr.operator == "and":
                return self.matches(expr.left, ctx) and self.matches(expr.right, ctx)
            return self.matches(expr.left, ctx) or self.matches(expr.right, ctx)
        if isinstance(expr, NotCondition):
            return not self.matches(expr.operand, ctx)
        if isinstance(expr, NullCheck):
            blank = self.value(expr.operand, ctx).is_blank
            return not blank if expr.negate else blank
        if isinstance(expr, Condition):
            return self._condition(expr, ctx)
        return self.value(expr, ctx).truthy()

    def today(self) -> CellValue:
        now = self.clock()
        return CellValue.date(now.replace(hour=0, minute=0, second=0, microsecond=0))

    def _condition(self, cond: Condition, ctx: Context) -> bool:
        left = self.value(cond.left, ctx)
        right = self.value(cond.right, ctx)
        if cond.operator in _ORDERING:
            return compare(left, cond.operator, right)
        text, pattern = left.as_text(), right.as_text()
        if text is None or pattern is None:
            return False
        if cond.operator == "matches":
            return self._pattern("matches", pattern).fullmatch(text) is not None
        if cond.operator == "like":
            return self._pattern("like", pattern).fullmatch(text) is not None
        if not self.case_sensitive:
            text, pattern = text.lower(), pattern.lower()
        if cond.operator == "contains":
            return pattern in text
        if cond.operator == "starts_with":
            return text.startswith(pattern)
        if cond.operator == "ends_with":
            return text.endswith(pattern)
        raise ValidationError(f"Unsupported operator '{cond.operator}'")

    def _pattern(self, kind: str, pattern: str) -> re.Pattern[str]:
        key = (kind, pattern)
        if key not in self._patterns:
            if kind == "like":
                self._patterns[key] = like_pattern(pattern, self.case_sensitive)
            else:
                try:
                    self._patterns[key] = re.compile(pattern, re.DOTALL)
                except re.error as e:
                    raise ValidationError(f"Invalid regular expression '{pattern}': {e}") from e
        return self._patterns[key]

    def _scalar(self, call: FunctionCall, ctx: Context) -> CellValue:
        if call.name == "today":
            return self.today()
        arg = self.value(call.args[0], ctx)
        text = arg.as_text()
        if text is None:
            return NULL
        return CellValue.string(text.lower() if call.name == "lower" else text.upper())

    @staticmethod
    def _arithmetic(op: str, left: CellValue, right: CellValue) -> CellValue:
        a, b = left.as_number(), right.as_number()
        if a is None or b is None:
            return NULL
        if op == "+":
            return CellValue.number(a + b)
        if op == "-":
            return CellValue.number(a - b)
        if op == "*":
            return CellValue.number(a * b)
        if b == 0:
            return NULL
        return CellValue.number(a / b)


def constant_value(evaluator: Evaluator, expr: Any) -> CellValue:
    """Evaluate an expression that may not reference any column."""
    return evaluator.value(expr, ConstantContext())
