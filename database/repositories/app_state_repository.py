from database.connection import get_connection
import json
import logging


def _decode(key: str, raw):
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        logging.warning("Corrupt app_state value for %s, ignoring", key)
        return None


def get_all_app_state(db_path: str | None = None, keys: list | None = None) -> dict:
    """Returns decoded values, optionally limited to `keys`. Corrupt rows are left out."""
    conn = get_connection(db_path)
    cursor = conn.cursor()
    try:
        if keys is None:
            cursor.execute("SELECT key, val FROM app_state")
        else:
            placeholders = ", ".join("?" for _ in keys)
            cursor.execute(f"SELECT key, val FROM app_state WHERE key IN ({placeholders})", list(keys))
        rows = cursor.fetchall()
    finally:
        conn.close()
    values = {}
    for key, raw in rows:
        value = _decode(key, raw)
        if value is not None:
            values[key] = value
    return values


def get_app_state_value(key: str, db_path: str | None = None):
    conn = get_connection(db_path)
    cursor = conn.cursor()
    try:
        cursor.execute("SELECT val FROM app_state WHERE key = ?", (key,))
        row = cursor.fetchone()
    finally:
        conn.close()
    if not row:
        return None
    return _decode(key, row[0])


def set_app_state_values(values: dict, db_path: str | None = None):
    """Upserts every key in one transaction; a None value deletes the key."""
    conn = get_connection(db_path)
    cursor = conn.cursor()
    try:
        for key, value in values.items():
            if value is None:
                cursor.execute("DELETE FROM app_state WHERE key = ?", (key,))
                continue
            cursor.execute("""
                INSERT INTO app_state (key, val)
                VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    val = excluded.val,
                    updated_at = CURRENT_TIMESTAMP
            """, (key, json.dumps(value, ensure_ascii=False)))
        conn.commit()
    finally:
        conn.close()


def set_app_state_value(key: str, value, db_path: str | None = None):
    set_app_state_values({key: value}, db_path=db_path)


def delete_app_state_values(keys: list, db_path: str | None = None):
    conn = get_connection(db_path)
    cursor = conn.cursor()
    try:
        cursor.executemany("DELETE FROM app_state WHERE key = ?", [(k,) for k in keys])
        conn.commit()
    finally:
        conn.close()


def clear_app_state(db_path: str | None = None):
    conn = get_connection(db_path)
    cursor = conn.cursor()
    try:
        cursor.execute("DELETE FROM app_state")
        conn.commit()
    finally:
        conn.close()
