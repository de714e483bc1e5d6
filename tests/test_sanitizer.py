"""Tests for literal masking and unescaping."""

from __future__ import annotations

import pytest

from sheet_sql.errors import StatementSyntaxError
from sheet_sql.parsing.sanitizer import (
    clause_at,
    detect_verb,
    find_table_references,
    mask_literals,
    unescape_literal,
)


class TestMaskLiterals:
    """Tests for masking string literal interiors."""

    def test_same_length(self):
        """Masking keeps every position in place."""
        statement = 'SELECT * FROM :data WHERE Name = "a:b" AND x = \'y\''
        masked = mask_literals(statement)

        assert len(masked) == len(statement)
        assert masked.startswith("SELECT * FROM :data WHERE Name = \"")
        assert ":b" not in masked

    def test_escaped_quote_does_not_terminate(self):
        """A backslash-escaped quote stays inside the literal."""
        masked = mask_literals(r'WHERE A = "say \"hi\" :x" AND :t')

        assert ":x" not in masked
        assert masked.endswith(":t")

    def test_doubled_quote_does_not_terminate(self):
        """A doubled quote is a literal quote, not a terminator."""
        masked = mask_literals('WHERE A = "x"" :fake" OR B = 1')

        assert ":fake" not in masked
        assert masked.endswith("OR B = 1")

    def test_comments_blanked(self):
        """Comments are replaced by spaces, references in them included."""
        statement = "-- uses :old\nSELECT * FROM :new"
        masked = mask_literals(statement)

        assert len(masked) == len(statement)
        assert masked.startswith(" " * 12 + "\n")
        assert detect_verb(statement) == "SELECT"
        assert find_table_references(statement) == ["new"]

    def test_unterminated_literal(self):
        """An unterminated literal is a syntax error."""
        with pytest.raises(StatementSyntaxError, match="Unterminated"):
            mask_literals('SELECT * WHERE A = "open')


class TestUnescape:
    """Tests for resolving escape sequences."""

    def test_standard_escapes(self):
        """Tab, newline, quotes and backslash map to their characters."""
        assert unescape_literal(r'a\tb\nc\"d\\e') == 'a\tb\nc"d\\e'

    def test_doubled_quote(self):
        """A doubled quote maps to one quote character."""
        assert unescape_literal('it""s', '"') == 'it"s'
        assert unescape_literal("it''s", "'") == "it's"

    def test_unknown_escape_kept(self):
        """Other backslash pairs survive, so regex escapes work."""
        assert unescape_literal(r"\d+") == r"\d+"


class TestStructureScans:
    """Tests for verb, table reference and clause detection."""

    def test_detect_verb(self):
        """The leading keyword is upper-cased."""
        assert detect_verb("  select * from :t") == "SELECT"
        assert detect_verb("Update SET A = 1 WHERE true") == "UPDATE"
        assert detect_verb("123") is None

    def test_table_reference_in_literal_ignored(self):
        """A :name inside a string literal is not a table reference."""
        statement = 'SELECT * FROM :orders WHERE Note = "see :customers" AND Code = \':skip\''

        assert find_table_references(statement) == ["orders"]

    def test_table_references_deduplicated(self):
        """Each referenced table is listed once, in order of appearance."""
        statement = "SELECT * FROM :a JOIN :b ON a.id = b.id JOIN :a AS x ON x.id = b.id"

        assert find_table_references(statement) == ["a", "b"]

    def test_range_colon_not_a_reference(self):
        """The colon inside an A1 range is not a table reference."""
        assert find_table_references("SELECT * FROM Sheet1!A1:C10") == []

    def test_clause_at(self):
        """The enclosing clause is the last clause keyword before a position."""
        statement = "SELECT A FROM :t WHERE A > > 1 ORDER BY A"

        assert clause_at(statement, statement.index("> >") + 2) == "WHERE"
        assert clause_at(statement, len(statement) - 1) == "ORDER BY"
        assert clause_at(statement, 0) == "SELECT"
