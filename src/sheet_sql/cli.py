"""Command line front-end: run one statement and print the result as JSON."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from sheet_sql.config import get_settings
from sheet_sql.engine import SheetSqlEngine
from sheet_sql.errors import SheetSqlError
from sheet_sql.location import GridLocation
from sheet_sql.remote import SheetsGridSource

logger = logging.getLogger(__name__)


def load_tables(path: Path) -> dict[str, Any]:
    """Read a JSON object mapping virtual-table names to 2-D arrays."""
    try:
        tables = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as e:
        raise SheetSqlError(f"Cannot read virtual tables from {path}: {e}") from e
    if not isinstance(tables, dict):
        raise SheetSqlError(f"Virtual tables file {path} must contain a JSON object")
    return tables


def run(args: argparse.Namespace) -> dict[str, Any]:
    settings = get_settings()
    statement = args.command if args.command is not None else args.file.read_text()
    tables = load_tables(args.tables) if args.tables else None

    target = None
    if args.spreadsheet:
        target = GridLocation.parse(args.spreadsheet, args.range)

    source = None
    token = args.token or settings.access_token
    if target is not None and token:
        source = SheetsGridSource(token, settings=settings)
    logger.debug("Target: %s", target or "virtual tables only")
    try:
        engine = SheetSqlEngine(source=source, settings=settings)
        result = engine.execute(statement, target, tables, return_metadata=args.metadata)
    finally:
        if source is not None:
            source.close()
    return result.to_dict()


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    arg_parser = argparse.ArgumentParser(
        description="Run a SQL statement against a spreadsheet range or virtual tables"
    )
    statement = arg_parser.add_mutually_exclusive_group(required=True)
    statement.add_argument(
        "-c", "--command",
        type=str,
        help="Statement to execute",
    )
    statement.add_argument(
        "-f", "--file",
        type=Path,
        help="Read the statement from a file",
    )
    arg_parser.add_argument(
        "-t", "--tables",
        type=Path,
        help="JSON file mapping virtual-table names to header-plus-rows arrays",
    )
    arg_parser.add_argument(
        "--spreadsheet",
        type=str,
        help="Spreadsheet ID or URL",
    )
    arg_parser.add_argument(
        "--range",
        type=str,
        default="A:Z",
        help="Range in A1 notation (default: A:Z)",
    )
    arg_parser.add_argument(
        "--token",
        type=str,
        help="OAuth access token (default: SHEET_SQL_ACCESS_TOKEN)",
    )
    arg_parser.add_argument(
        "--metadata",
        action="store_true",
        help="Include cell metadata in SELECT results",
    )
    arg_parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log routing decisions and remote calls",
    )

    args = arg_parser.parse_args(argv)

    level = "DEBUG" if args.verbose else get_settings().log_level.upper()
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    if args.file is not None and not args.file.exists():
        print(f"Error: File not found: {args.file}", file=sys.stderr)
        return 1

    try:
        result = run(args)
    except SheetSqlError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(json.dumps(result, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
