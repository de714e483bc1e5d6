"""Tests for grid locations."""

from __future__ import annotations

import pytest

from sheet_sql.errors import ValidationError
from sheet_sql.location import GridLocation, column_index, column_letter, extract_spreadsheet_id

SPREADSHEET_ID = "1BxiMVs0XRA5nFMdKvBdBZjgmUUqptlbs74OgvE2upms"


class TestColumnLetters:
    """Tests for column letter conversion."""

    def test_index(self):
        assert column_index("A") == 0
        assert column_index("z") == 25
        assert column_index("AA") == 26
        assert column_index("AZ") == 51

    def test_letter(self):
        assert column_letter(0) == "A"
        assert column_letter(25) == "Z"
        assert column_letter(26) == "AA"
        assert column_letter(701) == "ZZ"


class TestSpreadsheetId:
    """Tests for spreadsheet id extraction."""

    def test_bare_id(self):
        assert extract_spreadsheet_id(SPREADSHEET_ID) == SPREADSHEET_ID

    def test_url(self):
        """The id is taken from a spreadsheet URL."""
        url = f"https://docs.google.com/spreadsheets/d/{SPREADSHEET_ID}/edit#gid=0"

        assert extract_spreadsheet_id(url) == SPREADSHEET_ID

    def test_invalid(self):
        with pytest.raises(ValidationError, match="Invalid spreadsheetId"):
            extract_spreadsheet_id("not an id")


class TestGridLocation:
    """Tests for parsing and deriving ranges."""

    def test_parse_full_range(self):
        """Test a sheet-qualified bounded range."""
        location = GridLocation.parse(SPREADSHEET_ID, "Sales!B2:D40")

        assert location.sheet_name == "Sales"
        assert location.first_column == "B"
        assert location.last_column == "D"
        assert location.first_row == 2
        assert location.last_row == 40
        assert location.column_letters == ["B", "C", "D"]

    def test_parse_quoted_sheet(self):
        """Quoted sheet names may contain spaces and doubled quotes."""
        location = GridLocation.parse(SPREADSHEET_ID, "'Bob''s Sheet'!A:C")

        assert location.sheet_name == "Bob's Sheet"
        assert location.sheet_qualifier == "'Bob''s Sheet'"
        assert location.cell("B", 7) == "'Bob''s Sheet'!B7"

    def test_parse_open_range(self):
        """A range without rows starts at row 1 and is unbounded."""
        location = GridLocation.parse(SPREADSHEET_ID, "A:F")

        assert location.sheet_name == ""
        assert location.first_row == 1
        assert location.last_row is None
        assert location.cell("C", 3) == "C3"

    def test_missing_spreadsheet(self):
        with pytest.raises(ValidationError, match="Invalid target"):
            GridLocation.parse("", "A:C")

    def test_invalid_range(self):
        """Malformed or reversed ranges are rejected."""
        with pytest.raises(ValidationError, match="Invalid range"):
            GridLocation.parse(SPREADSHEET_ID, "Sheet1!")
        with pytest.raises(ValidationError, match="reversed"):
            GridLocation.parse(SPREADSHEET_ID, "D:A")

    def test_with_range_keeps_sheet(self):
        """A bare range inherits the sheet of the default location."""
        location = GridLocation.parse(SPREADSHEET_ID, "Sheet1!A:C").with_range("B2:B9")

        assert location.sheet_name == "Sheet1"
        assert location.range == "Sheet1!B2:B9"
        assert location.spreadsheet_id == SPREADSHEET_ID

    def test_with_range_other_sheet(self):
        """A qualified range names its own sheet."""
        location = GridLocation.parse(SPREADSHEET_ID, "Sheet1!A:C").with_range("Other!A1:B2")

        assert location.sheet_name == "Other"
        assert str(location) == "Other!A1:B2"
