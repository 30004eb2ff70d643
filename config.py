"""
config.py
Runtime settings (read from the environment, with local defaults).
"""

from __future__ import annotations

import os
from pathlib import Path

APP_DIR = Path(__file__).parent

DB_FILE = Path(os.getenv("NIGHTCLUB_DB", str(APP_DIR / "nightclub.db")))

# All rows belong to one venue; kept as a column so the data can be split later.
VENUE_ID = int(os.getenv("NIGHTCLUB_VENUE_ID", "1"))

LOG_LEVEL = os.getenv("NIGHTCLUB_LOG_LEVEL", "INFO").upper()

DEFAULT_REPORT_DAYS = 30
TOP_ITEMS_LIMIT = 5
CSV_DELIMITER = ","
CURRENCY = "USD"
