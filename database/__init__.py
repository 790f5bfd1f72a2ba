import logging

# Public API for the database package
from database.connection import get_connection as get_connection
from database.repositories.app_state_repository import (
    clear_app_state as clear_app_state,
    delete_app_state_values as delete_app_state_values,
    get_all_app_state as get_all_app_state,
    get_app_state_value as get_app_state_value,
    set_app_state_value as set_app_state_value,
    set_app_state_values as set_app_state_values,
)

__all__ = [
    "get_connection",
    "create_table",
    "table_exists",
    "clear_app_state",
    "delete_app_state_values",
    "get_all_app_state",
    "get_app_state_value",
    "set_app_state_value",
    "set_app_state_values",
]


def create_table(db_path: str | None = None):
    """Initializes the database schema."""
    conn = get_connection(db_path)
    cursor = conn.cursor()

    # app_state (durable launch state, one JSON value per key)
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS app_state (
            key TEXT PRIMARY KEY,
            val TEXT,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """)

    conn.commit()
    conn.close()
    logging.debug("app_state schema ready")


def table_exists(table_name: str, db_path: str | None = None) -> bool:
    conn = get_connection(db_path)
    cursor = conn.cursor()
    try:
        cursor.execute("SELECT name FROM sqlite_master WHERE type='table' AND name=?", (table_name,))
        return cursor.fetchone() is not None
    finally:
        conn.close()
