import logging
import sqlite3
import threading
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable

from database import (
    create_table,
    delete_app_state_values,
    get_all_app_state,
    get_app_state_value,
    set_app_state_value,
    set_app_state_values,
    clear_app_state,
)

KEY_APP_MODE = "app_mode"
KEY_IS_FIRST_LAUNCH = "is_first_launch"
KEY_CURRENT_URL = "current_url"
KEY_URL_EXPIRES = "url_expires"
KEY_PUSH_TOKEN = "push_token"
KEY_ATTRIBUTION_ID = "attribution_id"
KEY_NOTIFICATION_DENIED_AT = "notification_denied_date"
KEY_LAST_OPENED_URL = "last_opened_url"
KEY_CONVERSION_DATA = "conversion_data"

# Rows that make up PersistedState; side-channel keys are read on their own.
STATE_KEYS = [
    KEY_APP_MODE,
    KEY_IS_FIRST_LAUNCH,
    KEY_CURRENT_URL,
    KEY_URL_EXPIRES,
    KEY_PUSH_TOKEN,
    KEY_ATTRIBUTION_ID,
    KEY_NOTIFICATION_DENIED_AT,
]


class AppMode(str, Enum):
    UNDEFINED = "undefined"
    WEBVIEW = "webview"
    GAME = "game"


@dataclass(frozen=True)
class PersistedState:
    app_mode: AppMode = AppMode.UNDEFINED
    is_first_launch: bool = True
    current_url: str | None = None
    url_expires_at: float | None = None
    push_token: str | None = None
    is_push_token_ready: bool = False
    attribution_id: str | None = None
    notification_permission_denied_at: float | None = None


def _as_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _as_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value)
    return text or None


def _state_from_raw(raw: dict) -> PersistedState:
    try:
        mode = AppMode(raw.get(KEY_APP_MODE, AppMode.UNDEFINED.value))
    except ValueError:
        mode = AppMode.UNDEFINED

    first_launch_raw = raw.get(KEY_IS_FIRST_LAUNCH)
    is_first_launch = True if first_launch_raw is None else bool(first_launch_raw)

    current_url = _as_str(raw.get(KEY_CURRENT_URL))
    expires = _as_float(raw.get(KEY_URL_EXPIRES))
    if current_url is None or expires is None:
        # URL and expiry only exist as a pair.
        current_url, expires = None, None

    push_token = _as_str(raw.get(KEY_PUSH_TOKEN))
    return PersistedState(
        app_mode=mode,
        is_first_launch=is_first_launch,
        current_url=current_url,
        url_expires_at=expires,
        push_token=push_token,
        is_push_token_ready=push_token is not None,
        attribution_id=_as_str(raw.get(KEY_ATTRIBUTION_ID)),
        notification_permission_denied_at=_as_float(raw.get(KEY_NOTIFICATION_DENIED_AT)),
    )


def _state_to_raw(state: PersistedState) -> dict:
    has_url = bool(state.current_url) and state.url_expires_at is not None
    return {
        KEY_APP_MODE: AppMode(state.app_mode).value,
        KEY_IS_FIRST_LAUNCH: bool(state.is_first_launch),
        KEY_CURRENT_URL: state.current_url if has_url else None,
        KEY_URL_EXPIRES: state.url_expires_at if has_url else None,
        KEY_PUSH_TOKEN: state.push_token or None,
        KEY_ATTRIBUTION_ID: state.attribution_id or None,
        KEY_NOTIFICATION_DENIED_AT: state.notification_permission_denied_at,
    }


class PersistedAppState:
    """
    Durable launch state backed by the app_state table.

    Every mutator is a load-modify-save under one lock so writes coming from
    different callbacks (push token, URL, permission) never overwrite each other.
    """

    def __init__(self, db_path: str | None = None, clock: Callable[[], float] = time.time):
        self.db_path = db_path
        self._clock = clock
        self._lock = threading.RLock()
        create_table(db_path)

    def load(self) -> PersistedState:
        with self._lock:
            try:
                raw = get_all_app_state(self.db_path, keys=STATE_KEYS)
            except sqlite3.DatabaseError as e:
                logging.warning("App state unreadable, starting from defaults: %s", e)
                return PersistedState()
            return _state_from_raw(raw)

    def save(self, state: PersistedState) -> None:
        with self._lock:
            set_app_state_values(_state_to_raw(state), db_path=self.db_path)

    def update(self, **changes) -> PersistedState:
        with self._lock:
            state = replace(self.load(), **changes)
            self.save(state)
            return state

    def set_app_mode(self, mode: AppMode) -> PersistedState:
        with self._lock:
            state = self.update(app_mode=AppMode(mode), is_first_launch=False)
            if state.app_mode == AppMode.GAME:
                # Entering game mode drops web session continuity for good.
                delete_app_state_values([KEY_LAST_OPENED_URL], db_path=self.db_path)
                logging.info("Cleared last opened URL - switching to game mode")
            return state

    def save_url(self, url: str, expires_at: float) -> PersistedState:
        return self.update(current_url=url, url_expires_at=float(expires_at))

    def is_url_expired(self) -> bool:
        expires = self.load().url_expires_at
        if expires is None:
            return True
        return self._clock() > expires

    def save_push_token(self, token: str) -> PersistedState:
        return self.update(push_token=token, is_push_token_ready=True)

    def save_attribution_id(self, attribution_id: str) -> PersistedState:
        return self.update(attribution_id=attribution_id)

    def save_notification_permission_denied(self) -> PersistedState:
        state = self.update(notification_permission_denied_at=self._clock())
        logging.info("Notification permission denied, next prompt after retry interval")
        return state

    def record_opened_url(self, url: str) -> None:
        if not url:
            return
        with self._lock:
            set_app_state_value(KEY_LAST_OPENED_URL, url, db_path=self.db_path)

    def get_last_opened_url(self) -> str | None:
        try:
            return _as_str(get_app_state_value(KEY_LAST_OPENED_URL, db_path=self.db_path))
        except sqlite3.DatabaseError as e:
            logging.warning("Last opened URL unreadable: %s", e)
            return None

    def save_conversion_data(self, data: dict) -> None:
        with self._lock:
            set_app_state_value(KEY_CONVERSION_DATA, dict(data), db_path=self.db_path)

    def get_conversion_data(self) -> dict | None:
        try:
            value = get_app_state_value(KEY_CONVERSION_DATA, db_path=self.db_path)
        except sqlite3.DatabaseError as e:
            logging.warning("Conversion data unreadable: %s", e)
            return None
        return value if isinstance(value, dict) else None

    def reset(self) -> PersistedState:
        """Profile deletion: forget everything and start from defaults."""
        with self._lock:
            clear_app_state(self.db_path)
            return PersistedState()
