import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Protocol

from utils.ops_logging import log_structured

ConversionData = dict[str, Any]
ConversionCallback = Callable[[ConversionData], None]

AF_STATUS_KEY = "af_status"
ORGANIC_STATUS = "Organic"


def organic_fallback_data() -> ConversionData:
    return {
        AF_STATUS_KEY: ORGANIC_STATUS,
        "is_first_launch": True,
        "error_fallback": True,
    }


class TrackingStatus(str, Enum):
    AUTHORIZED = "authorized"
    DENIED = "denied"
    RESTRICTED = "restricted"
    NOT_DETERMINED = "not_determined"


class TrackingPrompt(Protocol):
    async def request_authorization(self) -> TrackingStatus: ...


class AttributionSDK(Protocol):
    def start(
        self,
        on_conversion_data: ConversionCallback,
        on_failure: Callable[[Exception], None],
    ) -> None: ...

    def get_attribution_id(self) -> str | None: ...


class TrackingAndAttributionGateway:
    """
    Tracking prompt plus attribution SDK behind one async-friendly facade.

    Conversion data is delivered at most once. Callbacks registered before the
    delivery are called with it; callbacks registered after it get the memoized
    value right away. SDK failures never propagate: they become organic data.
    """

    def __init__(self, tracking_prompt: TrackingPrompt, sdk: AttributionSDK):
        self._tracking_prompt = tracking_prompt
        self._sdk = sdk
        self._initialized = False
        self._loop: asyncio.AbstractEventLoop | None = None
        self._callbacks: list[ConversionCallback] = []
        self._data: ConversionData | None = None

    async def request_tracking_permission(self) -> bool:
        try:
            status = await self._tracking_prompt.request_authorization()
        except Exception as e:
            logging.warning("Tracking permission prompt failed: %s", e)
            return False
        granted = status == TrackingStatus.AUTHORIZED
        log_structured("tracking_permission", status=str(getattr(status, "value", status)), granted=granted)
        return granted

    def initialize(self) -> None:
        if self._initialized:
            return
        self._initialized = True
        self._loop = asyncio.get_running_loop()
        try:
            self._sdk.start(self._on_sdk_data, self._on_sdk_failure)
        except Exception as e:
            logging.warning("Attribution SDK failed to start: %s", e)
            self._on_sdk_failure(e)

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def attribution_id(self) -> str | None:
        try:
            return self._sdk.get_attribution_id() or None
        except Exception as e:
            logging.warning("Attribution id unavailable: %s", e)
            return None

    @property
    def delivered_data(self) -> ConversionData | None:
        return None if self._data is None else dict(self._data)

    def on_conversion_data(self, callback: ConversionCallback) -> None:
        if self._data is not None:
            callback(dict(self._data))
            return
        self._callbacks.append(callback)

    async def conversion_data(self, timeout: float | None = None) -> ConversionData:
        """Waits for the single delivery; on timeout settles with organic data."""
        if self._data is not None:
            return dict(self._data)
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()

        def _resolve(data: ConversionData):
            if not future.done():
                future.set_result(data)

        self.on_conversion_data(_resolve)
        try:
            return await asyncio.wait_for(asyncio.shield(future), timeout)
        except asyncio.TimeoutError:
            logging.warning("Conversion data did not arrive in %ss, using organic fallback", timeout)
            self._deliver(organic_fallback_data())
            return dict(self._data)

    def _on_sdk_data(self, data: dict) -> None:
        self._dispatch(dict(data))

    def _on_sdk_failure(self, error: Exception) -> None:
        logging.warning("Attribution conversion failed, using organic fallback: %s", error)
        self._dispatch(organic_fallback_data())

    def _dispatch(self, data: ConversionData) -> None:
        # SDK callbacks may come from a foreign thread; settle on the loop.
        if self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._deliver, data)
        else:
            self._deliver(data)

    def _deliver(self, data: ConversionData) -> None:
        if self._data is not None:
            logging.info("Ignoring repeated conversion data delivery")
            return
        self._data = data
        log_structured(
            "conversion_data_received",
            af_status=data.get(AF_STATUS_KEY),
            error_fallback=bool(data.get("error_fallback")),
            keys=sorted(data.keys()),
        )
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback(dict(data))
            except Exception:
                logging.exception("Conversion data callback failed")
