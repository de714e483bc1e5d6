"""Allow ``python -m sheet_sql``."""

import sys

from sheet_sql.cli import main

sys.exit(main())
