"""
Database connection management.

Provides the SQLite connection backing the local key-value store.
"""

import sqlite3
from pathlib import Path

DEFAULT_DB_PATH = "usage_telemetry.db"


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Create and return a SQLite database connection.

    Parent directories are created on demand so a fresh profile
    directory works on first run.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLite connection
    """
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    return sqlite3.connect(str(path))
