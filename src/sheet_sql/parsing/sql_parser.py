"""Parser for the sheet SQL dialect."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import ply.yacc as yacc

from sheet_sql.errors import StatementSyntaxError
from sheet_sql.parsing.sanitizer import clause_at
from sheet_sql.parsing.sql_lexer import SqlLexer
from sheet_sql.values import FALSE, NULL, TRUE, CellType, CellValue, parse_date

AGGREGATES = frozenset({"count", "sum", "avg", "min", "max"})
SCALAR_FUNCTIONS = frozenset({"lower", "upper", "today"})


# --- Expressions ---


@dataclass
class ColumnRef:
    """A column reference, optionally qualified by a table alias: ``o.Amount``."""

    name: str
    qualifier: str | None = None

    def __str__(self) -> str:
        return f"{self.qualifier}.{self.name}" if self.qualifier else self.name


@dataclass
class Literal:
    """A constant value."""

    value: CellValue


@dataclass
class FunctionCall:
    """A function call: aggregate (``sum(B)``, ``count(*)``) or scalar (``lower(A)``)."""

    name: str
    args: list[Any] = field(default_factory=list)
    star: bool = False

    @property
    def is_aggregate(self) -> bool:
        return self.name in AGGREGATES


@dataclass
class BinaryExpr:
    """Arithmetic: ``+ - * /``."""

    op: str
    left: Any
    right: Any


@dataclass
class UnaryExpr:
    """Unary minus."""

    op: str
    operand: Any


@dataclass
class Condition:
    """A comparison or string predicate."""

    operator: str  # eq, neq, lt, lte, gt, gte, contains, starts_with, ends_with, like, matches
    left: Any
    right: Any


@dataclass
class NullCheck:
    """``expr IS [NOT] NULL``."""

    operand: Any
    negate: bool = False


@dataclass
class CompoundCondition:
    """A compound condition (AND/OR)."""

    left: Any
    operator: str  # and, or
    right: Any


@dataclass
class NotCondition:
    operand: Any


# --- Clauses ---


@dataclass
class Star:
    """``*`` or ``alias.*`` in a projection list."""

    qualifier: str | None = None


@dataclass
class Projection:
    """One item of a SELECT list."""

    expr: Any
    alias: str | None = None


@dataclass
class TableRef:
    """A FROM/JOIN/INTO target: ``:name`` (virtual) or a grid range."""

    name: str
    virtual: bool
    alias: str | None = None

    @property
    def effective_alias(self) -> str | None:
        if self.alias:
            return self.alias
        return self.name if self.virtual else None


@dataclass
class JoinClause:
    kind: str  # inner, left, right
    table: TableRef
    left: ColumnRef
    right: ColumnRef


@dataclass
class SortKey:
    expr: Any
    descending: bool = False


@dataclass
class Assignment:
    column: ColumnRef
    value: Any


@dataclass
class SelectQuery:
    """A SELECT statement."""

    projections: list[Projection | Star] = field(default_factory=list)
    source: TableRef | None = None
    joins: list[JoinClause] = field(default_factory=list)
    where: Any = None
    group_by: list[Any] = field(default_factory=list)
    having: Any = None
    order_by: list[SortKey] = field(default_factory=list)
    limit: int | None = None
    offset: int = 0
    distinct: bool = False
    distinct_on: list[Any] = field(default_factory=list)
    pivot: list[Any] = field(default_factory=list)
    labels: list[tuple[Any, str]] = field(default_factory=list)
    formats: list[tuple[Any, str]] = field(default_factory=list)

    @property
    def is_star(self) -> bool:
        return len(self.projections) == 1 and isinstance(self.projections[0], Star) and self.projections[0].qualifier is None


@dataclass
class InsertQuery:
    """An INSERT statement: positional or sparse (named columns)."""

    target: TableRef | None = None
    columns: list[str] | None = None
    rows: list[list[Any]] = field(default_factory=list)


@dataclass
class UpdateQuery:
    """An UPDATE statement."""

    target: TableRef | None = None
    assignments: list[Assignment] = field(default_factory=list)
    where: Any = None
    order_by: list[SortKey] = field(default_factory=list)
    limit: int | None = None


@dataclass
class DeleteQuery:
    """A DELETE statement."""

    target: TableRef | None = None
    where: Any = None
    order_by: list[SortKey] = field(default_factory=list)
    limit: int | None = None


Statement = SelectQuery | InsertQuery | UpdateQuery | DeleteQuery


def walk(node: Any):
    """Yield an expression node and all of its sub-expressions."""
    if node is None:
        return
    yield node
    if isinstance(node, (BinaryExpr, Condition, CompoundCondition)):
        yield from walk(node.left)
        yield from walk(node.right)
    elif isinstance(node, (UnaryExpr, NullCheck, NotCondition)):
        yield from walk(node.operand)
    elif isinstance(node, FunctionCall):
        for arg in node.args:
            yield from walk(arg)


def contains_aggregate(node: Any) -> bool:
    return any(isinstance(n, FunctionCall) and n.is_aggregate for n in walk(node))


_COMPARISONS = {"=": "eq", "!=": "neq", "<": "lt", "<=": "lte", ">": "gt", ">=": "gte"}


class _ActionError(Exception):
    """Failure detected inside a grammar action."""


class SqlParser:
    """Parser for sheet SQL statements."""

    tokens = SqlLexer.tokens

    precedence = (
        ("left", "OR"),
        ("left", "AND"),
        ("right", "NOT"),
        ("nonassoc", "EQ", "NEQ", "LT", "LTE", "GT", "GTE", "CONTAINS", "STARTS", "ENDS", "LIKE", "MATCHES", "IS"),
        ("left", "PLUS", "MINUS"),
        ("left", "STAR", "SLASH"),
        ("right", "UMINUS"),
    )

    def __init__(self) -> None:
        self.lexer = SqlLexer()
        self.lexer.build()
        self.parser: yacc.LRParser = None  # type: ignore
        self._text = ""

    # --- Statements ---

    def p_statement(self, p: yacc.YaccProduction) -> None:
        """statement : query SEMICOLON
                     | query"""
        p[0] = p[1]

    def p_query(self, p: yacc.YaccProduction) -> None:
        """query : select_query
                 | insert_query
                 | update_query
                 | delete_query"""
        p[0] = p[1]

    def p_select_query(self, p: yacc.YaccProduction) -> None:
        """select_query : SELECT distinct_clause projection_clause from_clause join_list where_clause group_clause pivot_clause having_clause order_clause limit_clause offset_clause label_clause format_clause pivot_clause"""
        distinct, distinct_on = p[2]
        if p[8] and p[15]:
            self._fail("PIVOT specified twice", p.lexpos(1))
        p[0] = SelectQuery(
            projections=p[3],
            source=p[4],
            joins=p[5],
            where=p[6],
            group_by=p[7],
            pivot=p[8] or p[15],
            having=p[9],
            order_by=p[10],
            limit=p[11],
            offset=p[12],
            labels=p[13],
            formats=p[14],
            distinct=distinct,
            distinct_on=distinct_on,
        )

    def p_insert_query(self, p: yacc.YaccProduction) -> None:
        """insert_query : INSERT insert_target insert_columns VALUES values_list from_clause"""
        if p[2] is not None and p[6] is not None:
            self._fail("INSERT target specified twice", p.lexpos(1))
        p[0] = InsertQuery(target=p[2] or p[6], columns=p[3], rows=p[5])

    def p_update_query(self, p: yacc.YaccProduction) -> None:
        """update_query : UPDATE update_target SET assignment_list from_clause where_clause from_clause order_clause limit_clause"""
        targets = [t for t in (p[2], p[5], p[7]) if t is not None]
        if len(targets) > 1:
            self._fail("UPDATE target specified twice", p.lexpos(1))
        p[0] = UpdateQuery(
            target=targets[0] if targets else None,
            assignments=p[4],
            where=p[6],
            order_by=p[8],
            limit=p[9],
        )

    def p_delete_query(self, p: yacc.YaccProduction) -> None:
        """delete_query : DELETE from_clause where_clause from_clause order_clause limit_clause"""
        if p[2] is not None and p[4] is not None:
            self._fail("DELETE target specified twice", p.lexpos(1))
        p[0] = DeleteQuery(target=p[2] or p[4], where=p[3], order_by=p[5], limit=p[6])

    # --- SELECT clauses ---

    def p_distinct_clause_empty(self, p: yacc.YaccProduction) -> None:
        """distinct_clause : """
        p[0] = (False, [])

    def p_distinct_clause(self, p: yacc.YaccProduction) -> None:
        """distinct_clause : DISTINCT"""
        p[0] = (True, [])

    def p_distinct_clause_on(self, p: yacc.YaccProduction) -> None:
        """distinct_clause : DISTINCT ON LPAREN expr_list RPAREN"""
        p[0] = (True, p[4])

    def p_projection_clause_star(self, p: yacc.YaccProduction) -> None:
        """projection_clause : STAR"""
        p[0] = [Star()]

    def p_projection_clause_list(self, p: yacc.YaccProduction) -> None:
        """projection_clause : projection_list"""
        p[0] = p[1]

    def p_projection_list_single(self, p: yacc.YaccProduction) -> None:
        """projection_list : projection"""
        p[0] = [p[1]]

    def p_projection_list_multiple(self, p: yacc.YaccProduction) -> None:
        """projection_list : projection_list COMMA projection"""
        p[0] = p[1] + [p[3]]

    def p_projection_expr(self, p: yacc.YaccProduction) -> None:
        """projection : expr"""
        p[0] = Projection(expr=p[1])

    def p_projection_alias(self, p: yacc.YaccProduction) -> None:
        """projection : expr AS IDENTIFIER
                      | expr AS STRING"""
        p[0] = Projection(expr=p[1], alias=p[3])

    def p_projection_qualified_star(self, p: yacc.YaccProduction) -> None:
        """projection : IDENTIFIER DOT STAR"""
        p[0] = Star(qualifier=p[1])

    def p_from_clause_empty(self, p: yacc.YaccProduction) -> None:
        """from_clause : """
        p[0] = None

    def p_from_clause(self, p: yacc.YaccProduction) -> None:
        """from_clause : FROM table_ref"""
        p[0] = p[2]

    def p_table_ref_virtual(self, p: yacc.YaccProduction) -> None:
        """table_ref : TABLE_REF
                     | TABLE_REF AS IDENTIFIER
                     | TABLE_REF IDENTIFIER"""
        alias = p[len(p) - 1] if len(p) > 2 else None
        p[0] = TableRef(name=p[1], virtual=True, alias=alias)

    def p_table_ref_range(self, p: yacc.YaccProduction) -> None:
        """table_ref : STRING
                     | STRING AS IDENTIFIER
                     | STRING IDENTIFIER
                     | RANGE
                     | RANGE AS IDENTIFIER
                     | RANGE IDENTIFIER"""
        alias = p[len(p) - 1] if len(p) > 2 else None
        p[0] = TableRef(name=p[1], virtual=False, alias=alias)

    def p_join_list_empty(self, p: yacc.YaccProduction) -> None:
        """join_list : """
        p[0] = []

    def p_join_list(self, p: yacc.YaccProduction) -> None:
        """join_list : join_list join_clause"""
        p[0] = p[1] + [p[2]]

    def p_join_clause(self, p: yacc.YaccProduction) -> None:
        """join_clause : join_kind JOIN table_ref ON expr"""
        on = p[5]
        if not (
            isinstance(on, Condition)
            and on.operator == "eq"
            and isinstance(on.left, ColumnRef)
            and isinstance(on.right, ColumnRef)
        ):
            self._fail("JOIN ... ON requires an equality between two columns", p.lexpos(2))
        p[0] = JoinClause(kind=p[1], table=p[3], left=on.left, right=on.right)

    def p_join_kind(self, p: yacc.YaccProduction) -> None:
        """join_kind :
                     | INNER
                     | LEFT
                     | LEFT OUTER
                     | RIGHT
                     | RIGHT OUTER"""
        p[0] = p[1].lower() if len(p) > 1 else "inner"

    def p_where_clause_empty(self, p: yacc.YaccProduction) -> None:
        """where_clause : """
        p[0] = None

    def p_where_clause(self, p: yacc.YaccProduction) -> None:
        """where_clause : WHERE expr"""
        p[0] = p[2]

    def p_group_clause_empty(self, p: yacc.YaccProduction) -> None:
        """group_clause : """
        p[0] = []

    def p_group_clause(self, p: yacc.YaccProduction) -> None:
        """group_clause : GROUP BY expr_list"""
        p[0] = p[3]

    def p_pivot_clause_empty(self, p: yacc.YaccProduction) -> None:
        """pivot_clause : """
        p[0] = []

    def p_pivot_clause(self, p: yacc.YaccProduction) -> None:
        """pivot_clause : PIVOT expr_list"""
        p[0] = p[2]

    def p_having_clause_empty(self, p: yacc.YaccProduction) -> None:
        """having_clause : """
        p[0] = None

    def p_having_clause(self, p: yacc.YaccProduction) -> None:
        """having_clause : HAVING expr"""
        p[0] = p[2]

    def p_order_clause_empty(self, p: yacc.YaccProduction) -> None:
        """order_clause : """
        p[0] = []

    def p_order_clause(self, p: yacc.YaccProduction) -> None:
        """order_clause : ORDER BY sort_list"""
        p[0] = p[3]

    def p_sort_list_single(self, p: yacc.YaccProduction) -> None:
        """sort_list : sort_key"""
        p[0] = [p[1]]

    def p_sort_list_multiple(self, p: yacc.YaccProduction) -> None:
        """sort_list : sort_list COMMA sort_key"""
        p[0] = p[1] + [p[3]]

    def p_sort_key(self, p: yacc.YaccProduction) -> None:
        """sort_key : expr
                    | expr ASC
                    | expr DESC"""
        descending = len(p) == 3 and p[2].lower() == "desc"
        p[0] = SortKey(expr=p[1], descending=descending)

    def p_limit_clause_empty(self, p: yacc.YaccProduction) -> None:
        """limit_clause : """
        p[0] = None

    def p_limit_clause(self, p: yacc.YaccProduction) -> None:
        """limit_clause : LIMIT INTEGER"""
        p[0] = p[2]

    def p_offset_clause_empty(self, p: yacc.YaccProduction) -> None:
        """offset_clause : """
        p[0] = 0

    def p_offset_clause(self, p: yacc.YaccProduction) -> None:
        """offset_clause : OFFSET INTEGER"""
        p[0] = p[2]

    def p_label_clause_empty(self, p: yacc.YaccProduction) -> None:
        """label_clause : """
        p[0] = []

    def p_label_clause(self, p: yacc.YaccProduction) -> None:
        """label_clause : LABEL annotation_list"""
        p[0] = p[2]

    def p_format_clause_empty(self, p: yacc.YaccProduction) -> None:
        """format_clause : """
        p[0] = []

    def p_format_clause(self, p: yacc.YaccProduction) -> None:
        """format_clause : FORMAT annotation_list"""
        p[0] = p[2]

    def p_annotation_list_single(self, p: yacc.YaccProduction) -> None:
        """annotation_list : expr STRING"""
        p[0] = [(p[1], p[2])]

    def p_annotation_list_multiple(self, p: yacc.YaccProduction) -> None:
        """annotation_list : annotation_list COMMA expr STRING"""
        p[0] = p[1] + [(p[3], p[4])]

    # --- INSERT / UPDATE clauses ---

    def p_insert_target_empty(self, p: yacc.YaccProduction) -> None:
        """insert_target :
                         | INTO"""
        p[0] = None

    def p_insert_target(self, p: yacc.YaccProduction) -> None:
        """insert_target : INTO table_ref
                         | table_ref"""
        p[0] = p[len(p) - 1]

    def p_insert_columns_empty(self, p: yacc.YaccProduction) -> None:
        """insert_columns : """
        p[0] = None

    def p_insert_columns(self, p: yacc.YaccProduction) -> None:
        """insert_columns : LPAREN identifier_list RPAREN"""
        p[0] = p[2]

    def p_identifier_list_single(self, p: yacc.YaccProduction) -> None:
        """identifier_list : IDENTIFIER"""
        p[0] = [p[1]]

    def p_identifier_list_multiple(self, p: yacc.YaccProduction) -> None:
        """identifier_list : identifier_list COMMA IDENTIFIER"""
        p[0] = p[1] + [p[3]]

    def p_values_list_single(self, p: yacc.YaccProduction) -> None:
        """values_list : LPAREN expr_list RPAREN"""
        p[0] = [p[2]]

    def p_values_list_multiple(self, p: yacc.YaccProduction) -> None:
        """values_list : values_list COMMA LPAREN expr_list RPAREN"""
        p[0] = p[1] + [p[4]]

    def p_update_target_empty(self, p: yacc.YaccProduction) -> None:
        """update_target : """
        p[0] = None

    def p_update_target(self, p: yacc.YaccProduction) -> None:
        """update_target : table_ref"""
        p[0] = p[1]

    def p_assignment_list_single(self, p: yacc.YaccProduction) -> None:
        """assignment_list : assignment"""
        p[0] = [p[1]]

    def p_assignment_list_multiple(self, p: yacc.YaccProduction) -> None:
        """assignment_list : assignment_list COMMA assignment"""
        p[0] = p[1] + [p[3]]

    def p_assignment(self, p: yacc.YaccProduction) -> None:
        """assignment : column_ref EQ expr"""
        p[0] = Assignment(column=p[1], value=p[3])

    # --- Expressions ---

    def p_expr_list_single(self, p: yacc.YaccProduction) -> None:
        """expr_list : expr"""
        p[0] = [p[1]]

    def p_expr_list_multiple(self, p: yacc.YaccProduction) -> None:
        """expr_list : expr_list COMMA expr"""
        p[0] = p[1] + [p[3]]

    def p_expr_logical(self, p: yacc.YaccProduction) -> None:
        """expr : expr AND expr
                | expr OR expr"""
        p[0] = CompoundCondition(left=p[1], operator=p[2].lower(), right=p[3])

    def p_expr_not(self, p: yacc.YaccProduction) -> None:
        """expr : NOT expr"""
        p[0] = NotCondition(operand=p[2])

    def p_expr_comparison(self, p: yacc.YaccProduction) -> None:
        """expr : expr EQ expr
                | expr NEQ expr
                | expr LT expr
                | expr LTE expr
                | expr GT expr
                | expr GTE expr"""
        p[0] = Condition(operator=_COMPARISONS[p[2]], left=p[1], right=p[3])

    def p_expr_string_predicate(self, p: yacc.YaccProduction) -> None:
        """expr : expr CONTAINS expr
                | expr LIKE expr
                | expr MATCHES expr"""
        p[0] = Condition(operator=p[2].lower(), left=p[1], right=p[3])

    def p_expr_starts_with(self, p: yacc.YaccProduction) -> None:
        """expr : expr STARTS WITH expr %prec STARTS"""
        p[0] = Condition(operator="starts_with", left=p[1], right=p[4])

    def p_expr_ends_with(self, p: yacc.YaccProduction) -> None:
        """expr : expr ENDS WITH expr %prec ENDS"""
        p[0] = Condition(operator="ends_with", left=p[1], right=p[4])

    def p_expr_is_null(self, p: yacc.YaccProduction) -> None:
        """expr : expr IS NULL %prec IS
                | expr IS NOT NULL %prec IS"""
        p[0] = NullCheck(operand=p[1], negate=len(p) == 5)

    def p_expr_arithmetic(self, p: yacc.YaccProduction) -> None:
        """expr : expr PLUS expr
                | expr MINUS expr
                | expr STAR expr
                | expr SLASH expr"""
        p[0] = BinaryExpr(op=p[2], left=p[1], right=p[3])

    def p_expr_uminus(self, p: yacc.YaccProduction) -> None:
        """expr : MINUS expr %prec UMINUS"""
        operand = p[2]
        if isinstance(operand, Literal) and operand.value.type is CellType.NUMBER:
            p[0] = Literal(CellValue.number(-operand.value.value))
        else:
            p[0] = UnaryExpr(op="-", operand=operand)

    def p_expr_group(self, p: yacc.YaccProduction) -> None:
        """expr : LPAREN expr RPAREN"""
        p[0] = p[2]

    def p_expr_column(self, p: yacc.YaccProduction) -> None:
        """expr : column_ref"""
        p[0] = p[1]

    def p_column_ref(self, p: yacc.YaccProduction) -> None:
        """column_ref : IDENTIFIER"""
        p[0] = ColumnRef(name=p[1])

    def p_column_ref_qualified(self, p: yacc.YaccProduction) -> None:
        """column_ref : IDENTIFIER DOT IDENTIFIER"""
        p[0] = ColumnRef(name=p[3], qualifier=p[1])

    def p_expr_number(self, p: yacc.YaccProduction) -> None:
        """expr : INTEGER
                | FLOAT"""
        p[0] = Literal(CellValue.number(p[1]))

    def p_expr_string(self, p: yacc.YaccProduction) -> None:
        """expr : STRING"""
        p[0] = Literal(CellValue.string(p[1]))

    def p_expr_boolean(self, p: yacc.YaccProduction) -> None:
        """expr : TRUE
                | FALSE"""
        p[0] = Literal(TRUE if p[1].lower() == "true" else FALSE)

    def p_expr_null(self, p: yacc.YaccProduction) -> None:
        """expr : NULL"""
        p[0] = Literal(NULL)

    def p_expr_date(self, p: yacc.YaccProduction) -> None:
        """expr : DATE STRING"""
        moment = parse_date(p[2])
        if moment is None:
            self._fail(f"Invalid date literal \"{p[2]}\" (expected YYYY-MM-DD)", p.lexpos(2))
        p[0] = Literal(CellValue.date(moment))

    def p_expr_function(self, p: yacc.YaccProduction) -> None:
        """expr : IDENTIFIER LPAREN RPAREN
                | IDENTIFIER LPAREN expr_list RPAREN
                | IDENTIFIER LPAREN STAR RPAREN"""
        name = p[1].lower()
        if name not in AGGREGATES and name not in SCALAR_FUNCTIONS:
            self._fail(f"Unknown function '{p[1]}'", p.lexpos(1))
        if len(p) == 4:
            call = FunctionCall(name=name)
        elif p[3] == "*":
            call = FunctionCall(name=name, star=True)
        else:
            call = FunctionCall(name=name, args=p[3])
        self._check_arity(call, p.lexpos(1))
        p[0] = call

    def _check_arity(self, call: FunctionCall, position: int) -> None:
        if call.star and call.name != "count":
            self._fail(f"{call.name.upper()}(*) is not supported; only COUNT(*)", position)
        expected = 0 if call.name == "today" else 1
        if not call.star and len(call.args) != expected:
            self._fail(f"{call.name.upper()}() takes {expected} argument(s)", position)

    def p_error(self, p: yacc.YaccProduction) -> None:
        if p:
            raise StatementSyntaxError(f"Syntax error{self._clause(p.lexpos)} near '{p.value}' (position {p.lexpos})")
        raise StatementSyntaxError(f"Syntax error{self._clause(len(self._text))}: unexpected end of statement")

    # --- Parser methods ---

    def _clause(self, position: int) -> str:
        clause = clause_at(self._text, position) if self._text else None
        return f" in {clause} clause" if clause else ""

    def _fail(self, message: str, position: int) -> None:
        raise _ActionError(f"Syntax error{self._clause(position)}: {message} (position {position})")

    def build(self, **kwargs: Any) -> None:
        """Build the parser."""
        self.parser = yacc.yacc(module=self, start="statement", **kwargs)

    def parse(self, data: str) -> Statement:
        """Parse one statement."""
        if self.parser is None:
            self.build(debug=False, write_tables=False)
        self._text = data
        try:
            result = self.parser.parse(data, lexer=self.lexer.lexer)
        except _ActionError as e:
            raise StatementSyntaxError(str(e)) from None
        finally:
            self._text = ""
        if result is None:
            raise StatementSyntaxError("Syntax error: statement could not be parsed")
        return result
