import logging
import time
from enum import Enum
from typing import Callable, Protocol

from core.config import settings
from services.app_state_service import AppMode, PersistedAppState


class AuthorizationStatus(str, Enum):
    NOT_DETERMINED = "not_determined"
    DENIED = "denied"
    AUTHORIZED = "authorized"
    PROVISIONAL = "provisional"


class NotificationCenter(Protocol):
    async def get_authorization_status(self) -> AuthorizationStatus: ...

    async def request_permission(self) -> bool: ...


class NotificationPermissionService:
    """Decides when to show the custom notification-permission screen."""

    def __init__(
        self,
        center: NotificationCenter,
        state_store: PersistedAppState,
        retry_interval_seconds: float | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.center = center
        self.state_store = state_store
        self.retry_interval_seconds = (
            settings.notification_retry_interval_seconds
            if retry_interval_seconds is None
            else retry_interval_seconds
        )
        self._clock = clock

    async def should_show_permission_screen(self) -> bool:
        state = self.state_store.load()
        if state.app_mode != AppMode.WEBVIEW:
            return False

        try:
            status = await self.center.get_authorization_status()
        except Exception as e:
            logging.warning("Notification settings unavailable: %s", e)
            return False
        # The system prompt already settled it.
        if status in (AuthorizationStatus.AUTHORIZED, AuthorizationStatus.DENIED):
            return False

        denied_at = state.notification_permission_denied_at
        if denied_at is not None and self._clock() - denied_at < self.retry_interval_seconds:
            return False
        return True

    async def request_permission(self) -> bool:
        try:
            granted = await self.center.request_permission()
        except Exception as e:
            logging.warning("Notification permission request failed: %s", e)
            granted = False
        if not granted:
            self.state_store.save_notification_permission_denied()
        return granted

    def skip(self) -> None:
        self.state_store.save_notification_permission_denied()
