"""FORMAT patterns for directly evaluated results.

Supports the common subset of the remote dialect's patterns: number
patterns (``#,##0.00``, ``0%``, ``$#,##0``), date patterns (``yyyy-MM-dd``,
``MMM d, yyyy``, ``HH:mm``) and boolean ``"yes:no"`` pairs.
"""

from __future__ import annotations

import re
from datetime import datetime

from sheet_sql.values import CellType, CellValue

_NUMBER_CORE_RE = re.compile(r"[#0][#0,]*(?:\.[#0]*)?|\.[#0]+")
_DATE_TOKEN_RE = re.compile(r"yyyy|yy|MMMM|MMM|MM|M|dd|d|HH|H|hh|h|mm|m|ss|s|a|'[^']*'")

_MONTHS = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]


def format_cell(cell: CellValue, pattern: str) -> str | None:
    """Render ``cell`` with ``pattern``; None for null cells."""
    if cell.is_null:
        return None
    if cell.type is CellType.BOOLEAN and ":" in pattern:
        yes, _, no = pattern.partition(":")
        return yes if cell.value else no
    if cell.type is CellType.DATE:
        return format_date_pattern(cell.value, pattern)
    number = cell.as_number()
    if number is not None and _NUMBER_CORE_RE.search(pattern):
        return format_number_pattern(number, pattern)
    return cell.as_text()


def format_number_pattern(number: float, pattern: str) -> str:
    m = _NUMBER_CORE_RE.search(pattern)
    if m is None:
        return str(number)
    prefix, core, suffix = pattern[: m.start()], m.group(0), pattern[m.end() :]
    if "%" in prefix or "%" in suffix:
        number *= 100
    integer_part, _, fraction = core.partition(".")
    max_places = len(fraction)
    min_places = len(fraction.rstrip("#"))
    grouping = "," in integer_part
    text = f"{abs(number):{',' if grouping else ''}.{max_places}f}"
    if max_places > min_places and "." in text:
        whole, frac = text.split(".")
        frac = frac.rstrip("0").ljust(min_places, "0")
        text = f"{whole}.{frac}" if frac else whole
    min_digits = integer_part.replace(",", "").count("0")
    whole, dot, frac = text.partition(".")
    if whole == "0" and min_digits == 0 and frac:
        whole = ""
    text = whole + dot + frac
    sign = "-" if number < 0 and text.strip("0.,") else ""
    return f"{sign}{prefix}{text}{suffix}"


def format_date_pattern(moment: datetime, pattern: str) -> str:
    def render(m: re.Match[str]) -> str:
        token = m.group(0)
        if token.startswith("'"):
            return token[1:-1]
        hour12 = moment.hour % 12 or 12
        return {
            "yyyy": f"{moment.year:04d}",
            "yy": f"{moment.year % 100:02d}",
            "MMMM": _MONTHS[moment.month - 1],
            "MMM": _MONTHS[moment.month - 1][:3],
            "MM": f"{moment.month:02d}",
            "M": str(moment.month),
            "dd": f"{moment.day:02d}",
            "d": str(moment.day),
            "HH": f"{moment.hour:02d}",
            "H": str(moment.hour),
            "hh": f"{hour12:02d}",
            "h": str(hour12),
            "mm": f"{moment.minute:02d}",
            "m": str(moment.minute),
            "ss": f"{moment.second:02d}",
            "s": str(moment.second),
            "a": "AM" if moment.hour < 12 else "PM",
        }[token]

    return _DATE_TOKEN_RE.sub(render, pattern)
