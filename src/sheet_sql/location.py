"""Grid locations: a spreadsheet plus an A1-notation range."""

from __future__ import annotations

import re
from dataclasses import dataclass, replace

from sheet_sql.errors import ValidationError

_URL_RE = re.compile(r"/spreadsheets/d/([a-zA-Z0-9_-]+)")
_ID_RE = re.compile(r"^[a-zA-Z0-9_-]{20,60}$")

# Sheet1!A1:Z1000, Sales!A:F, 'My Sheet'!B2:D, A:F
_RANGE_RE = re.compile(
    r"^(?:(?P<sheet>'(?:[^']|'')+'|[A-Za-z0-9_ ]+)!)?"
    r"(?P<c1>[A-Za-z]+)(?P<r1>[0-9]*)"
    r"(?::(?P<c2>[A-Za-z]+)(?P<r2>[0-9]*))?$"
)


def column_index(letters: str) -> int:
    """Zero-based index of a column letter code: A -> 0, Z -> 25, AA -> 26."""
    index = 0
    for ch in letters.upper():
        index = index * 26 + (ord(ch) - ord("A") + 1)
    return index - 1


def column_letter(index: int) -> str:
    """Column letter code for a zero-based index: 0 -> A, 26 -> AA."""
    letters = ""
    index += 1
    while index > 0:
        index, rem = divmod(index - 1, 26)
        letters = chr(ord("A") + rem) + letters
    return letters


def extract_spreadsheet_id(value: str) -> str:
    """Accept a bare spreadsheet id or a full spreadsheet URL."""
    match = _URL_RE.search(value)
    if match:
        return match.group(1)
    if not _ID_RE.match(value):
        raise ValidationError(f"Invalid spreadsheetId '{value}': expected a spreadsheet ID or URL")
    return value


@dataclass(frozen=True)
class GridLocation:
    """A rectangular range of one sheet in one spreadsheet."""

    spreadsheet_id: str
    range: str
    sheet_name: str = ""
    first_column: str = "A"
    last_column: str | None = None
    first_row: int = 1
    last_row: int | None = None

    @classmethod
    def parse(cls, spreadsheet: str, range_: str) -> GridLocation:
        """Validate and split a spreadsheet id/URL and an A1 range."""
        if not spreadsheet:
            raise ValidationError("Invalid target: a spreadsheet ID or URL is required")
        spreadsheet_id = extract_spreadsheet_id(spreadsheet.strip())
        return cls._from_range(spreadsheet_id, range_)

    @classmethod
    def _from_range(cls, spreadsheet_id: str, range_: str) -> GridLocation:
        if not range_:
            raise ValidationError("Invalid range: a range in A1 notation is required")
        range_ = range_.strip()
        m = _RANGE_RE.match(range_)
        if not m:
            raise ValidationError(
                f"Invalid range '{range_}': expected A1 notation such as \"Sheet1!A1:Z1000\" or \"A:F\""
            )
        sheet = m.group("sheet") or ""
        if sheet.startswith("'"):
            sheet = sheet[1:-1].replace("''", "'")
        c1 = m.group("c1").upper()
        c2 = m.group("c2").upper() if m.group("c2") else None
        if c2 is not None and column_index(c2) < column_index(c1):
            raise ValidationError(f"Invalid range '{range_}': columns are reversed")
        return cls(
            spreadsheet_id=spreadsheet_id,
            range=range_,
            sheet_name=sheet,
            first_column=c1,
            last_column=c2,
            first_row=int(m.group("r1")) if m.group("r1") else 1,
            last_row=int(m.group("r2")) if m.group("r2") else None,
        )

    def with_range(self, range_: str) -> GridLocation:
        """Another range of the same spreadsheet; a bare range keeps this sheet."""
        location = self._from_range(self.spreadsheet_id, range_)
        if not location.sheet_name and self.sheet_name:
            location = replace(location, sheet_name=self.sheet_name, range=f"{self.sheet_qualifier}!{location.range}")
        return location

    @property
    def sheet_qualifier(self) -> str:
        if not self.sheet_name:
            return ""
        if re.fullmatch(r"[A-Za-z0-9_]+", self.sheet_name):
            return self.sheet_name
        return "'" + self.sheet_name.replace("'", "''") + "'"

    @property
    def column_letters(self) -> list[str]:
        """Letters spanned by the range (a single column when open-ended)."""
        start = column_index(self.first_column)
        end = column_index(self.last_column) if self.last_column else start
        return [column_letter(i) for i in range(start, end + 1)]

    def cell(self, column: str, row: int) -> str:
        """A1 reference of one cell on this range's sheet."""
        ref = f"{column}{row}"
        return f"{self.sheet_qualifier}!{ref}" if self.sheet_name else ref

    def __str__(self) -> str:
        return self.range
