import asyncio
import logging
from enum import Enum
from typing import Any

from core.config import settings
from utils.ops_logging import log_structured


class PushTokenState(str, Enum):
    NOT_WAITING = "not_waiting"
    WAITING = "waiting"
    READY = "ready"


class PushTokenWaiter:
    """
    Gate that opens when a push token arrives or the timeout fires.

    READY is terminal: a timeout opens the gate without a token so the launch
    flow never hangs on a token that may never come.
    """

    def __init__(self, timeout_seconds: float | None = None, initial_token: str | None = None):
        self.timeout_seconds = (
            settings.push_token_timeout_seconds if timeout_seconds is None else timeout_seconds
        )
        self._token = initial_token or None
        self._state = PushTokenState.NOT_WAITING
        self._ready_event: asyncio.Event | None = None
        self._timer: asyncio.TimerHandle | None = None
        if self._token:
            self._state = PushTokenState.READY

    @property
    def state(self) -> PushTokenState:
        return self._state

    @property
    def token(self) -> str | None:
        return self._token

    @property
    def is_ready(self) -> bool:
        return self._state == PushTokenState.READY

    def _event(self) -> asyncio.Event:
        if self._ready_event is None:
            self._ready_event = asyncio.Event()
            if self.is_ready:
                self._ready_event.set()
        return self._ready_event

    def start_waiting(self) -> None:
        if self._state != PushTokenState.NOT_WAITING:
            return
        self._state = PushTokenState.WAITING
        self._event()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.timeout_seconds, self._on_timeout)
        logging.info("Started waiting for push token (timeout %ss)", self.timeout_seconds)

    def token_arrived(self, token: str) -> None:
        if not token:
            return
        self._token = token
        if self._state == PushTokenState.READY:
            return
        self._mark_ready("token")

    def _on_timeout(self) -> None:
        self._timer = None
        if self._state == PushTokenState.WAITING:
            logging.warning("Push token timeout - proceeding without token")
            self._mark_ready("timeout")

    def _mark_ready(self, reason: str) -> None:
        self._state = PushTokenState.READY
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._ready_event is not None:
            self._ready_event.set()
        log_structured("push_token_ready", reason=reason, has_token=bool(self._token))

    async def ready(self) -> str | None:
        if self._state == PushTokenState.NOT_WAITING:
            self.start_waiting()
        await self._event().wait()
        return self._token


def extract_notification_url(payload: dict[str, Any]) -> str | None:
    """Returns the URL carried by a push payload: root "url" first, then aps["url"]."""
    url = payload.get("url")
    if isinstance(url, str) and url:
        return url
    aps = payload.get("aps")
    if isinstance(aps, dict):
        url = aps.get("url")
        if isinstance(url, str) and url:
            return url
    return None
