"""Tests for FORMAT patterns."""

from __future__ import annotations

from datetime import datetime

import pytest

from sheet_sql.formatting import format_cell
from sheet_sql.values import NULL, CellValue


class TestNumberPatterns:
    """Tests for number patterns."""

    @pytest.mark.parametrize(
        ("number", "pattern", "expected"),
        [
            (1234.5, "#,##0.00", "1,234.50"),
            (1234.6, "0", "1235"),
            (0.256, "0.0%", "25.6%"),
            (-42, "$#,##0", "-$42"),
            (3.1, "0.###", "3.1"),
            (0.5, "#.00", ".50"),
        ],
    )
    def test_number(self, number, pattern, expected):
        assert format_cell(CellValue.number(number), pattern) == expected

    def test_numeric_string(self):
        """Numeric text is formatted as a number."""
        assert format_cell(CellValue.string("7"), "0.00") == "7.00"


class TestOtherPatterns:
    """Tests for date, boolean and fallback formatting."""

    def test_date(self):
        moment = CellValue.date(datetime(2024, 3, 5, 14, 7))

        assert format_cell(moment, "yyyy-MM-dd") == "2024-03-05"
        assert format_cell(moment, "MMM d, yyyy") == "Mar 5, 2024"
        assert format_cell(moment, "h:mm a") == "2:07 PM"
        assert format_cell(moment, "'Week of' MMMM") == "Week of March"

    def test_boolean(self):
        assert format_cell(CellValue.boolean(True), "yes:no") == "yes"
        assert format_cell(CellValue.boolean(False), "yes:no") == "no"

    def test_null(self):
        assert format_cell(NULL, "0.00") is None

    def test_text_unchanged(self):
        assert format_cell(CellValue.string("abc"), "0.00") == "abc"
