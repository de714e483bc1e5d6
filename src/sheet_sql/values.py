"""Cell values: a closed variant over string, number, boolean, date and null."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import date, datetime, time
from enum import Enum
from typing import Any


class CellType(Enum):
    """The kinds of value a cell can hold."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    NULL = "null"


_NUMERIC_RE = re.compile(r"^\s*[-+]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][-+]?\d+)?\s*$")

# 2024-01-15, 2024/1/15, 2024-01-15 10:30, 2024-01-15T10:30:00Z
_DATE_RE = re.compile(
    r"^(\d{4})[-/](\d{1,2})[-/](\d{1,2})"
    r"(?:[T ](\d{1,2}):(\d{2})(?::(\d{2}))?(?:\.\d+)?)?Z?$"
)

# Remote dialect encoding: Date(2024,0,15) / Date(2024,0,15,10,30,0) - months are 0-based
_DIALECT_DATE_RE = re.compile(r"^Date\((\d+),(\d+),(\d+)(?:,(\d+),(\d+),(\d+)(?:,\d+)?)?\)$")


def parse_date(text: str) -> datetime | None:
    """Parse an ISO-like date string; return None if it does not look like one."""
    text = text.strip()
    m = _DIALECT_DATE_RE.match(text)
    if m:
        year, month, day = int(m.group(1)), int(m.group(2)) + 1, int(m.group(3))
    else:
        m = _DATE_RE.match(text)
        if not m:
            return None
        year, month, day = int(m.group(1)), int(m.group(2)), int(m.group(3))
    hour = int(m.group(4) or 0)
    minute = int(m.group(5) or 0)
    second = int(m.group(6) or 0)
    try:
        return datetime(year, month, day, hour, minute, second)
    except ValueError:
        return None


def format_date(value: datetime) -> str:
    """Render a date as ISO-8601, dropping a midnight time part."""
    if value.time() == time():
        return value.strftime("%Y-%m-%d")
    return value.isoformat(timespec="seconds")


def format_number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


def _cmp(a: Any, b: Any) -> int:
    return (a > b) - (a < b)


@dataclass(frozen=True)
class CellValue:
    """A typed cell value.

    Numbers are stored as int or float, dates as naive datetimes, and the
    null value carries ``None``.
    """

    type: CellType
    value: Any = None

    @classmethod
    def string(cls, text: str) -> CellValue:
        return cls(CellType.STRING, text)

    @classmethod
    def number(cls, number: int | float) -> CellValue:
        return cls(CellType.NUMBER, number)

    @classmethod
    def boolean(cls, flag: bool) -> CellValue:
        return cls(CellType.BOOLEAN, bool(flag))

    @classmethod
    def date(cls, moment: datetime) -> CellValue:
        return cls(CellType.DATE, moment)

    @classmethod
    def from_raw(cls, raw: Any) -> CellValue:
        """Wrap a plain Python value (as found in a 2-D array) in a CellValue."""
        if raw is None:
            return NULL
        if isinstance(raw, CellValue):
            return raw
        if isinstance(raw, bool):
            return cls.boolean(raw)
        if isinstance(raw, (int, float)):
            if isinstance(raw, float) and math.isnan(raw):
                return NULL
            return cls.number(raw)
        if isinstance(raw, datetime):
            return cls.date(raw)
        if isinstance(raw, date):
            return cls.date(datetime.combine(raw, time()))
        if isinstance(raw, str):
            return cls.string(raw)
        return cls.string(str(raw))

    @property
    def is_null(self) -> bool:
        return self.type is CellType.NULL

    @property
    def is_blank(self) -> bool:
        """True for null and for the empty string."""
        return self.is_null or (self.type is CellType.STRING and self.value == "")

    def as_number(self) -> float | None:
        """Numeric view: numbers, and strings that look like numbers."""
        if self.type is CellType.NUMBER:
            return self.value
        if self.type is CellType.STRING:
            if _NUMERIC_RE.match(self.value):
                return float(self.value)
            return None
        if self.type is CellType.BOOLEAN:
            return None
        if self.type is CellType.DATE:
            return None
        return None

    def as_date(self) -> datetime | None:
        """Date view: dates, and ISO-like date strings."""
        if self.type is CellType.DATE:
            return self.value
        if self.type is CellType.STRING:
            return parse_date(self.value)
        return None

    def as_boolean(self) -> bool | None:
        if self.type is CellType.BOOLEAN:
            return self.value
        if self.type is CellType.STRING and self.value.lower() in ("true", "false"):
            return self.value.lower() == "true"
        return None

    def as_text(self) -> str | None:
        """Text view used by string operators; None for null."""
        if self.type is CellType.STRING:
            return self.value
        if self.type is CellType.NUMBER:
            return format_number(self.value)
        if self.type is CellType.BOOLEAN:
            return "true" if self.value else "false"
        if self.type is CellType.DATE:
            return format_date(self.value)
        return None

    def truthy(self) -> bool:
        if self.type is CellType.BOOLEAN:
            return self.value
        if self.type is CellType.NUMBER:
            return self.value != 0
        if self.type is CellType.STRING:
            flag = self.as_boolean()
            return flag if flag is not None else self.value != ""
        if self.type is CellType.DATE:
            return True
        return False

    def to_json(self) -> Any:
        """JSON-ready form: integral numbers as int, dates as ISO strings."""
        if self.type is CellType.NUMBER:
            if isinstance(self.value, float) and self.value.is_integer():
                return int(self.value)
            return self.value
        if self.type is CellType.DATE:
            return format_date(self.value)
        return self.value


NULL = CellValue(CellType.NULL, None)
TRUE = CellValue.boolean(True)
FALSE = CellValue.boolean(False)


def order(left: CellValue, right: CellValue) -> int | None:
    """Three-way comparison of two non-null values, or None if incomparable."""
    if left.type is CellType.DATE or right.type is CellType.DATE:
        a, b = left.as_date(), right.as_date()
        return None if a is None or b is None else _cmp(a, b)
    if left.type is CellType.NUMBER or right.type is CellType.NUMBER:
        a, b = left.as_number(), right.as_number()
        return None if a is None or b is None else _cmp(a, b)
    if left.type is CellType.BOOLEAN or right.type is CellType.BOOLEAN:
        a, b = left.as_boolean(), right.as_boolean()
        return None if a is None or b is None else _cmp(a, b)
    if left.type is CellType.STRING and right.type is CellType.STRING:
        return _cmp(left.value, right.value)
    return None


_RESULTS = {
    "eq": lambda c: c == 0,
    "neq": lambda c: c != 0,
    "lt": lambda c: c < 0,
    "lte": lambda c: c <= 0,
    "gt": lambda c: c > 0,
    "gte": lambda c: c >= 0,
}


def compare(left: CellValue, operator: str, right: CellValue) -> bool:
    """Evaluate ``left <operator> right``; incompatible values never match."""
    if left.is_null or right.is_null:
        if operator == "eq":
            return left.is_null and right.is_null
        if operator == "neq":
            return left.is_null != right.is_null
        return False
    result = order(left, right)
    if result is None:
        return False
    return _RESULTS[operator](result)


def sort_key(cell: CellValue) -> tuple:
    """Total ordering across types: null, boolean, number, date, string."""
    if cell.type is CellType.NULL:
        return (0, 0)
    if cell.type is CellType.BOOLEAN:
        return (1, cell.value)
    if cell.type is CellType.NUMBER:
        return (2, cell.value)
    if cell.type is CellType.DATE:
        return (3, cell.value)
    number = cell.as_number()
    if number is not None:
        return (2, number)
    return (4, cell.value)


def match_key(cell: CellValue) -> tuple | None:
    """Hashable key under which equal values (per ``compare``) collide."""
    if cell.is_blank:
        return None
    if cell.type is CellType.BOOLEAN:
        return ("b", cell.value)
    number = cell.as_number()
    if number is not None:
        return ("n", number)
    moment = cell.as_date()
    if moment is not None:
        return ("d", moment)
    return ("s", cell.value)


def like_pattern(pattern: str, case_sensitive: bool = False) -> re.Pattern[str]:
    """Compile a SQL LIKE pattern (``%`` and ``_`` wildcards)."""
    parts = []
    for ch in pattern:
        if ch == "%":
            parts.append(".*")
        elif ch == "_":
            parts.append(".")
        else:
            parts.append(re.escape(ch))
    flags = re.DOTALL if case_sensitive else re.DOTALL | re.IGNORECASE
    return re.compile("".join(parts), flags)


def infer_type(cells: list[CellValue]) -> CellType:
    """Majority type of the non-blank cells in a column (string on ties)."""
    counts: dict[CellType, int] = {}
    for cell in cells:
        if cell.is_blank:
            continue
        counts[cell.type] = counts.get(cell.type, 0) + 1
    if not counts:
        return CellType.STRING
    best = max(counts.values())
    winners = [t for t, n in counts.items() if n == best]
    if len(winners) == 1:
        return winners[0]
    return CellType.STRING
