"""Sheet SQL - SQL statements over spreadsheet ranges and in-memory virtual tables."""

from sheet_sql.config import Settings, get_settings
from sheet_sql.engine import SheetSqlEngine, execute
from sheet_sql.errors import RemoteError, SheetSqlError, StatementSyntaxError, ValidationError
from sheet_sql.location import GridLocation
from sheet_sql.remote import GridSource, SheetsGridSource
from sheet_sql.results import MutationResult, SelectResult
from sheet_sql.values import CellType, CellValue

__all__ = [
    # Main API
    "SheetSqlEngine",
    "execute",
    "GridLocation",
    # Results
    "SelectResult",
    "MutationResult",
    "CellType",
    "CellValue",
    # Grid access
    "GridSource",
    "SheetsGridSource",
    # Configuration
    "Settings",
    "get_settings",
    # Errors
    "SheetSqlError",
    "StatementSyntaxError",
    "ValidationError",
    "RemoteError",
]

__version__ = "0.1.0"
