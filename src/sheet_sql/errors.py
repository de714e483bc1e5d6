"""Error taxonomy for statement execution."""

from __future__ import annotations


class SheetSqlError(Exception):
    """Base class for every error raised while executing a statement."""


class StatementSyntaxError(SheetSqlError, SyntaxError):
    """The statement does not parse (unknown verb, malformed clause)."""


class ValidationError(SheetSqlError, ValueError):
    """The statement parsed but cannot be executed as written.

    Missing WHERE on UPDATE/DELETE, unknown virtual tables, and bad
    locations are caught before any remote I/O. Unknown or ambiguous
    columns of a grid range are only known once its header has been read.
    """


class RemoteError(SheetSqlError):
    """A read or write against the remote grid failed."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status
