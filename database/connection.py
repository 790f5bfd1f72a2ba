import sqlite3
from pathlib import Path
from typing import Any

from core.config import settings


def _get_sqlite_connection(db_path: str) -> Any:
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    return conn


def get_connection(db_path: str | None = None) -> Any:
    """
    Returns a sqlite connection to the app state database.
    Defaults to settings.db_path when no explicit path is given.
    """
    return _get_sqlite_connection(db_path or settings.db_path)
