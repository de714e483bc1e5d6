"""Statement execution: parse, validate, then bridge, evaluate or mutate."""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Callable

from sheet_sql import bridge
from sheet_sql.config import Settings, get_settings
from sheet_sql.errors import StatementSyntaxError, ValidationError
from sheet_sql.evaluator import Evaluator
from sheet_sql.location import GridLocation
from sheet_sql.mutation import MutationExecutor
from sheet_sql.parsing.sanitizer import detect_verb, find_table_references
from sheet_sql.parsing.sql_parser import (
    DeleteQuery,
    InsertQuery,
    SelectQuery,
    SqlParser,
    Statement,
    UpdateQuery,
)
from sheet_sql.pipeline import SelectPipeline
from sheet_sql.remote import GridSource, guarded
from sheet_sql.resolver import TableResolver, VirtualTableSet
from sheet_sql.results import MutationResult, SelectResult

logger = logging.getLogger(__name__)

VERBS = ("SELECT", "INSERT", "UPDATE", "DELETE")


class SheetSqlEngine:
    """Executes one statement per call against grid ranges and virtual tables.

    The engine keeps no state between calls; ``source`` supplies grid reads
    and writes and may be omitted when only virtual tables are used.
    """

    def __init__(
        self,
        source: GridSource | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.source = source
        self.settings = settings or get_settings()
        self.clock = clock
        self._local = threading.local()

    @property
    def parser(self) -> SqlParser:
        parser = getattr(self._local, "parser", None)
        if parser is None:
            parser = self._local.parser = SqlParser()
        return parser

    def parse(self, statement: str) -> Statement:
        """Parse a statement, rejecting unknown verbs before the grammar runs."""
        if not statement or not statement.strip():
            raise StatementSyntaxError("Invalid statement: statement is empty")
        verb = detect_verb(statement)
        if verb not in VERBS:
            raise StatementSyntaxError(
                f"Invalid statement: unknown verb '{verb or statement.strip()[:1]}' "
                "(expected SELECT, INSERT, UPDATE or DELETE)"
            )
        return self.parser.parse(statement)

    def execute(
        self,
        statement: str,
        target: GridLocation | None = None,
        virtual_tables: VirtualTableSet | None = None,
        return_metadata: bool = False,
    ) -> SelectResult | MutationResult:
        query = self.parse(statement)
        tables = {name.lstrip(":"): data for name, data in (virtual_tables or {}).items()}
        for name in find_table_references(statement):
            if name not in tables:
                raise ValidationError(f"Virtual table ':{name}' not found")

        resolver = TableResolver(tables, self.source, target, self.settings.header_rows)
        self.validate(query, resolver)
        evaluator = Evaluator(case_sensitive=self.settings.case_sensitive_matching, clock=self.clock)

        if isinstance(query, SelectQuery):
            return self._select(query, resolver, evaluator, return_metadata)
        result = MutationExecutor(resolver, evaluator, self.settings).execute(query)
        logger.debug("%s affected %d rows", result.operation, result.count)
        return result

    def validate(self, query: Statement, resolver: TableResolver) -> None:
        """Checks that need no data: required WHERE clauses and resolvable targets."""
        if isinstance(query, (UpdateQuery, DeleteQuery)) and query.where is None:
            verb = "UPDATE" if isinstance(query, UpdateQuery) else "DELETE"
            action = "update" if verb == "UPDATE" else "delete"
            raise ValidationError(f"{verb} requires a WHERE clause (use WHERE true to {action} all rows)")
        if isinstance(query, SelectQuery):
            resolver.check(query.source)
            for clause in query.joins:
                resolver.check(clause.table)
            return
        resolver.check(query.target)
        if (
            isinstance(query, InsertQuery)
            and query.target is not None
            and query.target.virtual
            and not self.settings.virtual_insert_enabled
        ):
            raise ValidationError("INSERT is not supported for virtual tables")

    def _select(
        self,
        query: SelectQuery,
        resolver: TableResolver,
        evaluator: Evaluator,
        return_metadata: bool,
    ) -> SelectResult:
        on_grid = not query.joins and (query.source is None or not query.source.virtual)
        location = resolver.location_for(query.source) if on_grid else None

        native = None
        if location is not None and self.settings.native_dialect_enabled:
            native = bridge.translate(query, location, self.settings.case_sensitive_matching)
        if native is not None:
            logger.debug("Bridged SELECT on %s: %s", location, native)
            table = guarded("SELECT query", self.source.query, location, native)
            result = bridge.reshape(table, query)
        else:
            logger.debug("Evaluating SELECT directly")
            result = SelectPipeline(resolver, evaluator).run(query)

        if return_metadata and location is not None:
            result.metadata = guarded("Metadata read", self.source.read_metadata, location)
        return result


def execute(
    statement: str,
    target: GridLocation | None = None,
    virtual_tables: VirtualTableSet | None = None,
    return_metadata: bool = False,
    source: GridSource | None = None,
    settings: Settings | None = None,
) -> SelectResult | MutationResult:
    """Execute one statement with a fresh engine."""
    engine = SheetSqlEngine(source=source, settings=settings)
    return engine.execute(statement, target, virtual_tables, return_metadata)
