"""Sort, distinct and paging over evaluated rows."""

from __future__ import annotations

from functools import cmp_to_key
from typing import Sequence, TypeVar

from sheet_sql.values import CellValue, sort_key

T = TypeVar("T")


def _cmp(a: tuple, b: tuple) -> int:
    return (a > b) - (a < b)


def sort_order(keys: Sequence[Sequence[CellValue]], descending: Sequence[bool]) -> list[int]:
    """Positions of ``keys`` in sorted order.

    ``keys[i]`` holds row ``i``'s sort values, one per ORDER BY key. Rows
    tied on every key keep their input order when the last key ascends and
    reverse it when it descends, so flipping every direction reverses the
    whole result.
    """
    converted = [[sort_key(v) for v in row] for row in keys]
    tie_descending = bool(descending) and descending[-1]

    def compare(i: int, j: int) -> int:
        for position, desc in enumerate(descending):
            result = _cmp(converted[i][position], converted[j][position])
            if result:
                return -result if desc else result
        return j - i if tie_descending else i - j

    return sorted(range(len(keys)), key=cmp_to_key(compare))


def distinct_key(values: Sequence[CellValue]) -> tuple:
    return tuple((v.type, v.value) for v in values)


def distinct(items: Sequence[T], keys: Sequence[Sequence[CellValue]]) -> list[T]:
    """Keep the first item for each distinct key tuple."""
    seen: set[tuple] = set()
    kept = []
    for item, key in zip(items, keys):
        marker = distinct_key(key)
        if marker in seen:
            continue
        seen.add(marker)
        kept.append(item)
    return kept


def page(items: Sequence[T], offset: int = 0, limit: int | None = None) -> list[T]:
    """Skip ``offset`` items, then take at most ``limit``."""
    items = list(items)[offset:]
    return items if limit is None else items[:limit]
