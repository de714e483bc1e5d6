"""Tests for the sheet SQL lexer and parser."""

from __future__ import annotations

from datetime import datetime

import pytest

from sheet_sql.errors import StatementSyntaxError
from sheet_sql.parsing.sql_lexer import SqlLexer, quote_identifier
from sheet_sql.parsing.sql_parser import (
    Assignment,
    BinaryExpr,
    ColumnRef,
    CompoundCondition,
    Condition,
    DeleteQuery,
    FunctionCall,
    InsertQuery,
    Literal,
    NotCondition,
    NullCheck,
    Projection,
    SelectQuery,
    SqlParser,
    Star,
    UpdateQuery,
)
from sheet_sql.values import CellType, CellValue


@pytest.fixture
def parser() -> SqlParser:
    return SqlParser()


class TestSqlLexer:
    """Tests for the SQL lexer."""

    def test_tokenize_select(self):
        """Test tokenizing a select statement."""
        lexer = SqlLexer()
        lexer.build()

        tokens = lexer.tokenize("select Name, Amount from :data where Amount >= 50")
        token_types = [t.type for t in tokens]

        assert token_types == [
            "SELECT", "IDENTIFIER", "COMMA", "IDENTIFIER", "FROM", "TABLE_REF",
            "WHERE", "IDENTIFIER", "GTE", "INTEGER",
        ]

    def test_table_ref_value(self):
        """The table reference token drops its colon."""
        lexer = SqlLexer()
        lexer.build()

        tokens = lexer.tokenize(":orders")

        assert tokens[0].type == "TABLE_REF"
        assert tokens[0].value == "orders"

    def test_not_equal_spellings(self):
        """Both != and <> lex as NEQ."""
        lexer = SqlLexer()
        lexer.build()

        tokens = lexer.tokenize("A != 1 AND B <> 2")

        assert [t.type for t in tokens if t.type == "NEQ"] == ["NEQ", "NEQ"]

    def test_range_token(self):
        """A sheet-qualified range is one token."""
        lexer = SqlLexer()
        lexer.build()

        tokens = lexer.tokenize("FROM Sales!A1:F100")

        assert [t.type for t in tokens] == ["FROM", "RANGE"]
        assert tokens[1].value == "Sales!A1:F100"

    def test_string_unescaped(self):
        """String values have their escapes resolved."""
        lexer = SqlLexer()
        lexer.build()

        tokens = lexer.tokenize(r'"a\tb"' + " 'it''s'")

        assert tokens[0].value == "a\tb"
        assert tokens[1].value == "it's"

    def test_backtick_identifier(self):
        """Backticks allow spaces and keywords in identifiers."""
        lexer = SqlLexer()
        lexer.build()

        tokens = lexer.tokenize("`Unit Price`, `order`")

        assert tokens[0].type == "IDENTIFIER"
        assert tokens[0].value == "Unit Price"
        assert tokens[2].type == "IDENTIFIER"
        assert tokens[2].value == "order"

    def test_keywords_case_insensitive(self):
        """Keywords match in any case."""
        lexer = SqlLexer()
        lexer.build()

        assert [t.type for t in lexer.tokenize("SeLeCt DiStInCt")] == ["SELECT", "DISTINCT"]

    def test_illegal_character(self):
        """An unknown character is a syntax error."""
        lexer = SqlLexer()
        lexer.build()

        with pytest.raises(StatementSyntaxError, match="Illegal character"):
            lexer.tokenize("SELECT # FROM :t")

    def test_quote_identifier(self):
        """Names that would not lex as identifiers get backticks."""
        assert quote_identifier("Amount") == "Amount"
        assert quote_identifier("Unit Price") == "`Unit Price`"
        assert quote_identifier("order") == "`order`"
        assert quote_identifier("2024") == "`2024`"


class TestSelectParsing:
    """Tests for parsing SELECT statements."""

    def test_star(self, parser):
        """Test SELECT *."""
        query = parser.parse("SELECT * FROM :data")

        assert isinstance(query, SelectQuery)
        assert query.is_star
        assert query.source.name == "data"
        assert query.source.virtual

    def test_projection_alias(self, parser):
        """Test AS aliases on projections."""
        query = parser.parse("SELECT Name, Amount * 2 AS doubled FROM :data")

        assert query.projections[0] == Projection(expr=ColumnRef("Name"))
        second = query.projections[1]
        assert second.alias == "doubled"
        assert isinstance(second.expr, BinaryExpr)
        assert second.expr.op == "*"

    def test_arithmetic_precedence(self, parser):
        """Multiplication binds tighter than addition."""
        query = parser.parse("SELECT A + B * C")
        expr = query.projections[0].expr

        assert expr.op == "+"
        assert isinstance(expr.right, BinaryExpr)
        assert expr.right.op == "*"

    def test_parenthesized_arithmetic(self, parser):
        """Parentheses override precedence."""
        query = parser.parse("SELECT (A + B) * C")
        expr = query.projections[0].expr

        assert expr.op == "*"
        assert expr.left.op == "+"

    def test_qualified_star_and_columns(self, parser):
        """Test alias.* and alias.column."""
        query = parser.parse("SELECT o.*, c.Name FROM :orders o JOIN :customers AS c ON o.cid = c.id")

        assert query.projections[0] == Star(qualifier="o")
        assert query.projections[1].expr == ColumnRef("Name", "c")
        assert query.source.alias == "o"
        join = query.joins[0]
        assert join.kind == "inner"
        assert join.table.effective_alias == "c"
        assert join.left == ColumnRef("cid", "o")
        assert join.right == ColumnRef("id", "c")

    def test_join_kinds(self, parser):
        """Test LEFT and RIGHT [OUTER] JOIN."""
        query = parser.parse(
            "SELECT * FROM :a LEFT JOIN :b ON a.k = b.k RIGHT OUTER JOIN :c ON a.k = c.k"
        )

        assert [j.kind for j in query.joins] == ["left", "right"]

    def test_join_requires_column_equality(self, parser):
        """A JOIN condition must compare two columns for equality."""
        with pytest.raises(StatementSyntaxError, match="JOIN"):
            parser.parse("SELECT * FROM :a JOIN :b ON a.k > b.k")

    def test_where_and_or_precedence(self, parser):
        """AND binds tighter than OR."""
        query = parser.parse("SELECT * WHERE A = 1 OR B = 2 AND C = 3")

        assert isinstance(query.where, CompoundCondition)
        assert query.where.operator == "or"
        assert query.where.right.operator == "and"

    def test_string_operators(self, parser):
        """Test contains, starts with, ends with, like and matches."""
        query = parser.parse(
            "SELECT * WHERE A contains 'x' AND B starts with 'y' AND C ends with 'z' "
            "AND D like 'a%' AND E matches '[0-9]+'"
        )
        operators = []
        node = query.where
        while isinstance(node, CompoundCondition):
            operators.append(node.right.operator)
            node = node.left
        operators.append(node.operator)

        assert sorted(operators) == ["contains", "ends_with", "like", "matches", "starts_with"]

    def test_null_checks(self, parser):
        """Test IS NULL and IS NOT NULL."""
        query = parser.parse("SELECT * WHERE A IS NULL AND B IS NOT NULL")

        assert query.where.left == NullCheck(ColumnRef("A"), negate=False)
        assert query.where.right == NullCheck(ColumnRef("B"), negate=True)

    def test_not(self, parser):
        """NOT applies to the whole comparison."""
        query = parser.parse("SELECT * WHERE NOT A = 1")

        assert isinstance(query.where, NotCondition)
        assert isinstance(query.where.operand, Condition)

    def test_date_literal_and_today(self, parser):
        """Test DATE "..." literals and TODAY()."""
        query = parser.parse('SELECT * WHERE A > DATE "2024-01-15" AND B < today()')

        assert query.where.left.right == Literal(CellValue.date(datetime(2024, 1, 15)))
        assert query.where.right.right == FunctionCall("today")

    def test_invalid_date_literal(self, parser):
        """A malformed date literal is a syntax error."""
        with pytest.raises(StatementSyntaxError, match="date"):
            parser.parse('SELECT * WHERE A > DATE "yesterday"')

    def test_negative_number_folded(self, parser):
        """A negated number literal is a literal."""
        query = parser.parse("SELECT * WHERE A > -5")

        assert query.where.right == Literal(CellValue.number(-5))

    def test_aggregates(self, parser):
        """Test aggregate calls including COUNT(*)."""
        query = parser.parse("SELECT Region, SUM(Amount), COUNT(*) GROUP BY Region")

        assert query.projections[1].expr == FunctionCall("sum", [ColumnRef("Amount")])
        assert query.projections[2].expr == FunctionCall("count", star=True)
        assert query.group_by == [ColumnRef("Region")]

    def test_star_only_for_count(self, parser):
        """Only COUNT accepts *."""
        with pytest.raises(StatementSyntaxError, match="COUNT"):
            parser.parse("SELECT SUM(*)")

    def test_unknown_function(self, parser):
        """Unknown functions are rejected."""
        with pytest.raises(StatementSyntaxError, match="Unknown function"):
            parser.parse("SELECT median(A)")

    def test_full_clause_order(self, parser):
        """Test every SELECT clause together."""
        query = parser.parse(
            "SELECT DISTINCT A, sum(B) FROM Sheet1!A1:C50 WHERE B > 0 GROUP BY A "
            "HAVING sum(B) > 10 ORDER BY sum(B) DESC, A LIMIT 5 OFFSET 2 "
            "LABEL A 'Name', sum(B) 'Total' FORMAT sum(B) '#,##0.00'"
        )

        assert query.distinct
        assert not query.source.virtual
        assert query.source.name == "Sheet1!A1:C50"
        assert query.having.operator == "gt"
        assert [k.descending for k in query.order_by] == [True, False]
        assert query.limit == 5
        assert query.offset == 2
        assert query.labels == [(ColumnRef("A"), "Name"), (FunctionCall("sum", [ColumnRef("B")]), "Total")]
        assert query.formats == [(FunctionCall("sum", [ColumnRef("B")]), "#,##0.00")]

    def test_pivot_positions(self, parser):
        """PIVOT may follow GROUP BY or close the statement."""
        early = parser.parse("SELECT A, sum(C) GROUP BY A PIVOT B ORDER BY A")
        late = parser.parse("SELECT A, sum(C) GROUP BY A PIVOT B")

        assert early.pivot == [ColumnRef("B")]
        assert late.pivot == [ColumnRef("B")]

    def test_distinct_on(self, parser):
        """Test DISTINCT ON (columns)."""
        query = parser.parse("SELECT DISTINCT ON (A, B) A, B, C FROM :t")

        assert query.distinct
        assert query.distinct_on == [ColumnRef("A"), ColumnRef("B")]

    def test_quoted_range_source(self, parser):
        """A quoted string names a grid range."""
        query = parser.parse("SELECT * FROM \"'My Sheet'!A:C\" AS s")

        assert query.source.name == "'My Sheet'!A:C"
        assert not query.source.virtual
        assert query.source.alias == "s"

    def test_trailing_semicolon(self, parser):
        """A trailing semicolon is allowed."""
        assert isinstance(parser.parse("SELECT * FROM :t;"), SelectQuery)


class TestMutationParsing:
    """Tests for parsing INSERT, UPDATE and DELETE."""

    def test_insert_positional(self, parser):
        """Test INSERT VALUES with several rows."""
        query = parser.parse("INSERT INTO :data VALUES ('Dan', 20, 'new'), ('Eve', -3, 'new')")

        assert isinstance(query, InsertQuery)
        assert query.target.name == "data"
        assert query.columns is None
        assert len(query.rows) == 2
        assert query.rows[1][1] == Literal(CellValue.number(-3))

    def test_insert_sparse(self, parser):
        """Test INSERT INTO (columns) VALUES."""
        query = parser.parse("INSERT INTO (Name, Status) VALUES ('Dan', 'new') FROM :data")

        assert query.columns == ["Name", "Status"]
        assert query.target.name == "data"

    def test_insert_default_target(self, parser):
        """Without a target the statement applies to the default range."""
        query = parser.parse("INSERT VALUES (1, 2)")

        assert query.target is None

    def test_update(self, parser):
        """Test UPDATE SET ... FROM ... WHERE."""
        query = parser.parse('UPDATE SET Status = "done", Amount = Amount * 2 FROM :data WHERE Amount > 50')

        assert isinstance(query, UpdateQuery)
        assert query.assignments[0] == Assignment(ColumnRef("Status"), Literal(CellValue.string("done")))
        assert isinstance(query.assignments[1].value, BinaryExpr)
        assert query.target.name == "data"
        assert query.where.operator == "gt"

    def test_update_from_after_where(self, parser):
        """FROM may follow WHERE."""
        query = parser.parse("UPDATE SET A = 1 WHERE B = 2 FROM :t ORDER BY C DESC LIMIT 1")

        assert query.target.name == "t"
        assert query.order_by[0].descending
        assert query.limit == 1

    def test_update_target_twice(self, parser):
        """Naming the target twice is an error."""
        with pytest.raises(StatementSyntaxError, match="twice"):
            parser.parse("UPDATE :a SET A = 1 FROM :b WHERE true")

    def test_update_without_where_parses(self, parser):
        """A missing WHERE is a validation matter, not a syntax error."""
        query = parser.parse("UPDATE SET A = 1 FROM :t")

        assert query.where is None

    def test_delete(self, parser):
        """Test DELETE with ORDER BY and LIMIT."""
        query = parser.parse('DELETE FROM :data WHERE Status = "pending" ORDER BY Priority DESC LIMIT 1')

        assert isinstance(query, DeleteQuery)
        assert query.target.name == "data"
        assert query.order_by[0].expr == ColumnRef("Priority")
        assert query.limit == 1

    def test_where_true(self, parser):
        """WHERE true is a boolean literal."""
        query = parser.parse("DELETE WHERE true")

        assert query.where == Literal(CellValue(CellType.BOOLEAN, True))


class TestSyntaxErrors:
    """Tests for syntax error reporting."""

    def test_error_names_clause(self, parser):
        """The message names the clause containing the bad token."""
        with pytest.raises(StatementSyntaxError, match="in WHERE clause near '>'"):
            parser.parse("SELECT * FROM :t WHERE A > > 1")

    def test_error_in_order_by(self, parser):
        """Errors in ORDER BY name that clause."""
        with pytest.raises(StatementSyntaxError, match="ORDER BY"):
            parser.parse("SELECT * FROM :t ORDER BY , A")

    def test_unexpected_end(self, parser):
        """A truncated statement is reported."""
        with pytest.raises(StatementSyntaxError, match="unexpected end"):
            parser.parse("SELECT * FROM :t WHERE A =")

    def test_syntax_error_is_builtin_syntax_error(self, parser):
        """Syntax errors are also Python SyntaxErrors."""
        with pytest.raises(SyntaxError):
            parser.parse("SELECT FROM WHERE")
