"""Literal masking and unescaping.

Structural scans over a statement (verb detection, ``:table`` references,
locating the clause around a syntax error) run over a masked copy in which
the interior of every quoted literal is replaced by a placeholder. The copy
has the same length as the original, so positions carry across.
"""

from __future__ import annotations

import re

from sheet_sql.errors import StatementSyntaxError

PLACEHOLDER = "_"

_QUOTES = ('"', "'", "`")

_ESCAPES = {
    "t": "\t",
    "n": "\n",
    "r": "\r",
    "\\": "\\",
    '"': '"',
    "'": "'",
}

_TABLE_REF_RE = re.compile(r"(?<![\w:!]):([A-Za-z_][A-Za-z0-9_]*)")
_VERB_RE = re.compile(r"^\s*([A-Za-z_]+)")

# Clause keywords in the order they can open a clause, longest phrases first
_CLAUSE_RE = re.compile(
    r"\b(GROUP\s+BY|ORDER\s+BY|LEFT\s+(?:OUTER\s+)?JOIN|RIGHT\s+(?:OUTER\s+)?JOIN|INNER\s+JOIN|JOIN|"
    r"SELECT|INSERT|UPDATE|DELETE|FROM|WHERE|HAVING|LIMIT|OFFSET|LABEL|FORMAT|PIVOT|SET|VALUES|ON)\b",
    re.IGNORECASE,
)


def mask_literals(statement: str) -> str:
    """Return ``statement`` with quoted literal interiors masked.

    Quote characters themselves are kept. Backslash escape pairs and doubled
    quotes (``""`` / ``''``) stay inside the literal. ``--`` comments are
    replaced by spaces.
    """
    out = list(statement)
    quote: str | None = None
    start = 0
    i = 0
    n = len(statement)
    while i < n:
        ch = statement[i]
        if quote is None:
            if ch == "-" and statement.startswith("--", i):
                # Comments are blanked out entirely
                end = statement.find("\n", i)
                end = n if end == -1 else end
                out[i:end] = " " * (end - i)
                i = end
                continue
            if ch in _QUOTES:
                quote = ch
                start = i
            i += 1
            continue
        if ch == "\\" and quote != "`" and i + 1 < n:
            out[i] = out[i + 1] = PLACEHOLDER
            i += 2
            continue
        if ch == quote:
            if i + 1 < n and statement[i + 1] == quote and quote != "`":
                out[i] = out[i + 1] = PLACEHOLDER
                i += 2
                continue
            quote = None
            i += 1
            continue
        out[i] = PLACEHOLDER
        i += 1
    if quote is not None:
        raise StatementSyntaxError(f"Unterminated string literal starting at position {start}")
    return "".join(out)


def unescape_literal(body: str, quote: str = '"') -> str:
    """Resolve the escape sequences in a literal's interior.

    ``\\t \\n \\r \\\\ \\" \\'`` map to their characters and a doubled quote
    maps to one quote. Any other backslash pair is kept as written, so
    regular-expression escapes like ``\\d`` survive.
    """
    out = []
    i = 0
    n = len(body)
    while i < n:
        ch = body[i]
        if ch == "\\" and i + 1 < n:
            nxt = body[i + 1]
            if nxt in _ESCAPES:
                out.append(_ESCAPES[nxt])
            else:
                out.append(ch + nxt)
            i += 2
            continue
        if ch == quote and i + 1 < n and body[i + 1] == quote:
            out.append(quote)
            i += 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def detect_verb(statement: str) -> str | None:
    """Upper-cased leading keyword of the statement, if any."""
    m = _VERB_RE.match(mask_literals(statement))
    return m.group(1).upper() if m else None


def find_table_references(statement: str) -> list[str]:
    """Names of ``:name`` virtual-table references outside string literals, in order."""
    masked = mask_literals(statement)
    names: list[str] = []
    for m in _TABLE_REF_RE.finditer(masked):
        if m.group(1) not in names:
            names.append(m.group(1))
    return names


def clause_at(statement: str, position: int) -> str | None:
    """Name of the clause enclosing ``position`` (e.g. "WHERE", "ORDER BY")."""
    masked = mask_literals(statement)
    clause = None
    for m in _CLAUSE_RE.finditer(masked):
        if m.start() > position:
            break
        clause = " ".join(m.group(1).upper().split())
    return clause
