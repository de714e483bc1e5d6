"""Lexer for the sheet SQL dialect."""

import ply.lex as lex

from sheet_sql.errors import StatementSyntaxError
from sheet_sql.parsing.sanitizer import unescape_literal


class SqlLexer:
    """Lexer for tokenizing sheet SQL statements."""

    # Reserved keywords (matched case-insensitively)
    reserved = {
        "select": "SELECT",
        "distinct": "DISTINCT",
        "from": "FROM",
        "join": "JOIN",
        "inner": "INNER",
        "left": "LEFT",
        "right": "RIGHT",
        "outer": "OUTER",
        "on": "ON",
        "as": "AS",
        "where": "WHERE",
        "group": "GROUP",
        "by": "BY",
        "having": "HAVING",
        "order": "ORDER",
        "asc": "ASC",
        "desc": "DESC",
        "limit": "LIMIT",
        "offset": "OFFSET",
        "label": "LABEL",
        "format": "FORMAT",
        "pivot": "PIVOT",
        "insert": "INSERT",
        "into": "INTO",
        "values": "VALUES",
        "update": "UPDATE",
        "set": "SET",
        "delete": "DELETE",
        "and": "AND",
        "or": "OR",
        "not": "NOT",
        "is": "IS",
        "null": "NULL",
        "true": "TRUE",
        "false": "FALSE",
        "contains": "CONTAINS",
        "starts": "STARTS",
        "ends": "ENDS",
        "with": "WITH",
        "like": "LIKE",
        "matches": "MATCHES",
        "date": "DATE",
    }

    tokens = [
        "IDENTIFIER",
        "TABLE_REF",
        "RANGE",
        "INTEGER",
        "FLOAT",
        "STRING",
        "STAR",
        "COMMA",
        "DOT",
        "LPAREN",
        "RPAREN",
        "EQ",
        "NEQ",
        "LT",
        "LTE",
        "GT",
        "GTE",
        "PLUS",
        "MINUS",
        "SLASH",
        "SEMICOLON",
    ] + list(reserved.values())

    t_STAR = r"\*"
    t_COMMA = r","
    t_DOT = r"\."
    t_LPAREN = r"\("
    t_RPAREN = r"\)"
    t_LTE = r"<="
    t_GTE = r">="
    t_LT = r"<"
    t_GT = r">"
    t_PLUS = r"\+"
    t_MINUS = r"-"
    t_SLASH = r"/"
    t_SEMICOLON = r";"

    t_ignore = " \t\r"

    def __init__(self) -> None:
        self.lexer: lex.Lexer = None  # type: ignore

    def t_NEQ(self, t: lex.LexToken) -> lex.LexToken:
        r"!=|<>"
        t.value = "!="
        return t

    def t_EQ(self, t: lex.LexToken) -> lex.LexToken:
        r"==?"
        t.value = "="
        return t

    def t_TABLE_REF(self, t: lex.LexToken) -> lex.LexToken:
        r":[A-Za-z_][A-Za-z0-9_]*"
        t.value = t.value[1:]
        return t

    def t_RANGE(self, t: lex.LexToken) -> lex.LexToken:
        r"[A-Za-z0-9_]+![A-Za-z]+[0-9]*(?::[A-Za-z]+[0-9]*)?"
        return t

    def t_FLOAT(self, t: lex.LexToken) -> lex.LexToken:
        r"\d+\.\d*(?:[eE][-+]?\d+)?|\.\d+(?:[eE][-+]?\d+)?|\d+[eE][-+]?\d+"
        t.value = float(t.value)
        return t

    def t_INTEGER(self, t: lex.LexToken) -> lex.LexToken:
        r"\d+"
        t.value = int(t.value)
        return t

    def t_STRING(self, t: lex.LexToken) -> lex.LexToken:
        r'"(?:[^"\\]|\\.|"")*"|\'(?:[^\'\\]|\\.|\'\')*\''
        quote = t.value[0]
        t.value = unescape_literal(t.value[1:-1], quote)
        return t

    def t_BACKTICK_IDENTIFIER(self, t: lex.LexToken) -> lex.LexToken:
        r"`[^`]+`"
        # Always an identifier, bypassing keyword lookup
        t.value = t.value[1:-1]
        t.type = "IDENTIFIER"
        return t

    def t_IDENTIFIER(self, t: lex.LexToken) -> lex.LexToken:
        r"[A-Za-z_][A-Za-z0-9_]*"
        t.type = self.reserved.get(t.value.lower(), "IDENTIFIER")
        return t

    def t_NEWLINE(self, t: lex.LexToken) -> None:
        r"\n+"
        t.lexer.lineno += len(t.value)

    def t_COMMENT(self, t: lex.LexToken) -> None:
        r"--[^\n]*"
        pass

    def t_error(self, t: lex.LexToken) -> None:
        raise StatementSyntaxError(f"Illegal character '{t.value[0]}' at position {t.lexpos}")

    def build(self, **kwargs) -> None:  # type: ignore
        """Build the lexer."""
        self.lexer = lex.lex(module=self, **kwargs)

    def input(self, data: str) -> None:
        self.lexer.input(data)

    def token(self) -> lex.LexToken | None:
        return self.lexer.token()

    def tokenize(self, data: str) -> list[lex.LexToken]:
        """Tokenize the input and return all tokens."""
        self.input(data)
        tokens = []
        while True:
            tok = self.token()
            if tok is None:
                break
            tokens.append(tok)
        return tokens


RESERVED_KEYWORDS: frozenset[str] = frozenset(SqlLexer.reserved.keys())


def quote_identifier(name: str) -> str:
    """Wrap a name in backticks unless it lexes as a plain identifier."""
    if name.lower() in RESERVED_KEYWORDS or not name.replace("_", "a").isalnum() or name[0].isdigit():
        return f"`{name}`"
    return name
