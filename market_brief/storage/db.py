"""
SQLite connections for the cost ledger.
"""

import sqlite3
from pathlib import Path

DEFAULT_DB_PATH = "market_brief.db"

# Seconds a writer waits on a locked ledger held by another process
BUSY_TIMEOUT = 5.0


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Open the ledger database, creating its directory on first use.

    Rows come back as sqlite3.Row so columns can be read by name.
    """
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path), timeout=BUSY_TIMEOUT)
    conn.row_factory = sqlite3.Row
    return conn
