"""Parsing module for the sheet SQL dialect."""

from sheet_sql.parsing.sanitizer import (
    detect_verb,
    find_table_references,
    mask_literals,
    unescape_literal,
)
from sheet_sql.parsing.sql_lexer import SqlLexer, quote_identifier
from sheet_sql.parsing.sql_parser import (
    DeleteQuery,
    InsertQuery,
    SelectQuery,
    SqlParser,
    UpdateQuery,
)

__all__ = [
    "DeleteQuery",
    "InsertQuery",
    "SelectQuery",
    "SqlLexer",
    "SqlParser",
    "UpdateQuery",
    "detect_verb",
    "find_table_references",
    "mask_literals",
    "quote_identifier",
    "unescape_literal",
]
