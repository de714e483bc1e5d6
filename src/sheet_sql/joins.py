"""Equality joins between resolved tables."""

from __future__ import annotations

from collections import defaultdict

from sheet_sql.errors import ValidationError
from sheet_sql.evaluator import Scope
from sheet_sql.parsing.sql_parser import ColumnRef, JoinClause
from sheet_sql.table import Column, Row, Table, TableSource
from sheet_sql.values import NULL, CellValue, match_key


def _key_positions(left: Table, right: Table, a: ColumnRef, b: ColumnRef) -> tuple[int, int]:
    """Positions of the ON columns in the left and right tables, whichever way round they were written."""
    left_scope, right_scope = Scope(left), Scope(right)
    try:
        return left_scope.resolve(a), right_scope.resolve(b)
    except ValidationError:
        try:
            return left_scope.resolve(b), right_scope.resolve(a)
        except ValidationError:
            raise ValidationError(f"JOIN condition {a} = {b} must reference one column from each side") from None


def _index(rows: list[Row], position: int) -> dict[tuple, list[Row]]:
    index: dict[tuple, list[Row]] = defaultdict(list)
    for row in rows:
        key = match_key(row.values[position])
        if key is not None:
            index[key].append(row)
    return index


def join(left: Table, right: Table, clause: JoinClause) -> Table:
    """Join ``right`` onto ``left`` by the equality in ``clause``.

    INNER emits matching pairs only; LEFT keeps every left row and RIGHT
    every right row, padding the missing side with nulls. Blank keys never
    match.
    """
    lpos, rpos = _key_positions(left, right, clause.left, clause.right)
    left_pad = [NULL] * len(left.columns)
    right_pad = [NULL] * len(right.columns)
    combined: list[list[CellValue]] = []

    if clause.kind == "right":
        index = _index(left.rows, lpos)
        for rrow in right.rows:
            key = match_key(rrow.values[rpos])
            matches = index.get(key, []) if key is not None else []
            for lrow in matches:
                combined.append(lrow.values + rrow.values)
            if not matches:
                combined.append(left_pad + rrow.values)
    else:
        index = _index(right.rows, rpos)
        for lrow in left.rows:
            key = match_key(lrow.values[lpos])
            matches = index.get(key, []) if key is not None else []
            for rrow in matches:
                combined.append(lrow.values + rrow.values)
            if not matches and clause.kind == "left":
                combined.append(lrow.values + right_pad)

    columns = [
        Column(id=c.id, label=c.label, type=c.type, alias=c.alias, used=c.used)
        for c in left.columns + right.columns
    ]
    return Table(
        columns=columns,
        rows=[Row(ordinal=i, values=values) for i, values in enumerate(combined)],
        source=TableSource(left.source.kind, left.source.name, left.source.location),
        alias=None,
        joined=True,
    )
