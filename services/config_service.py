import asyncio
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any
from urllib.parse import urlparse

import aiohttp

from core.config import Config, settings
from core.texts import CONFIG_ERROR_TEXTS, UNKNOWN_ERROR_TEXT
from services.attribution_service import AF_STATUS_KEY, ORGANIC_STATUS
from utils.network_monitor import NetworkMonitor
from utils.ops_logging import log_structured

PLATFORM_OS = "iOS"


class ConfigErrorKind(str, Enum):
    NO_CONNECTION = "no_connection"
    INVALID_URL = "invalid_url"
    ENCODING = "encoding"
    NETWORK = "network"
    INVALID_RESPONSE = "invalid_response"
    NO_DATA = "no_data"
    DECODING = "decoding"
    SERVER_ERROR = "server_error"
    RECHECK_UNAVAILABLE = "recheck_unavailable"


TRANSIENT_ERROR_KINDS = frozenset({
    ConfigErrorKind.NO_CONNECTION,
    ConfigErrorKind.NETWORK,
    ConfigErrorKind.ENCODING,
    ConfigErrorKind.NO_DATA,
    ConfigErrorKind.DECODING,
    ConfigErrorKind.INVALID_RESPONSE,
})


@dataclass(frozen=True)
class ConfigError:
    kind: ConfigErrorKind
    status_code: int | None = None
    message: str | None = None
    cause: Exception | None = None

    @classmethod
    def server_error(cls, status_code: int, message: str | None = None) -> "ConfigError":
        return cls(ConfigErrorKind.SERVER_ERROR, status_code=status_code, message=message)

    @property
    def is_rejection(self) -> bool:
        """The server explicitly refused this install (404 or any other 4xx)."""
        if self.kind != ConfigErrorKind.SERVER_ERROR or self.status_code is None:
            return False
        # 5xx is not a rejection: it goes through the saved-URL fallback chain.
        return 400 <= self.status_code < 500

    @property
    def is_transient(self) -> bool:
        """Connectivity or response-shape failure that a later attempt can fix."""
        return self.kind in TRANSIENT_ERROR_KINDS

    @property
    def description(self) -> str:
        detail = self.message or (str(self.cause) if self.cause else UNKNOWN_ERROR_TEXT)
        template = CONFIG_ERROR_TEXTS.get(self.kind.value, UNKNOWN_ERROR_TEXT)
        return template.format(detail=detail, status_code=self.status_code)


@dataclass(frozen=True)
class ConfigResponse:
    ok: bool
    url: str | None = None
    expires: float | None = None
    message: str | None = None

    @property
    def has_destination(self) -> bool:
        return bool(self.url) and self.expires is not None


@dataclass(frozen=True)
class ConfigResult:
    value: Any = None
    error: ConfigError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, kind: ConfigErrorKind, **kwargs) -> "ConfigResult":
        return cls(error=ConfigError(kind, **kwargs))


@dataclass(frozen=True)
class DeviceInfo:
    bundle_id: str
    store_id: str
    locale: str
    os_version: str
    device_model: str

    @classmethod
    def from_config(cls, config: Config) -> "DeviceInfo":
        return cls(
            bundle_id=config.bundle_id,
            store_id=config.store_id,
            locale=config.device_locale or "en",
            os_version=config.device_os_version,
            device_model=config.device_model,
        )


def create_user_agent(device: DeviceInfo) -> str:
    os_version = device.os_version.replace(".", "_")
    return (
        f"Mozilla/5.0 ({device.device_model}; CPU OS {os_version} like Mac OS X) "
        f"AppleWebKit/605.1.15 (KHTML, like Gecko) Version/{device.os_version} "
        "Mobile/15E148 Safari/604.1"
    )


def _json_scalar(value: Any) -> Any:
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    return str(value)


def build_request_body(
    conversion_data: dict,
    device: DeviceInfo,
    attribution_id: str | None = None,
    push_token: str | None = None,
    firebase_project_id: str | None = None,
) -> dict:
    body = {str(k): _json_scalar(v) for k, v in conversion_data.items()}
    if attribution_id:
        body["af_id"] = attribution_id
    body["bundle_id"] = device.bundle_id
    body["os"] = PLATFORM_OS
    body["store_id"] = device.store_id
    body["locale"] = device.locale
    if push_token:
        body["push_token"] = push_token
    if firebase_project_id:
        body["firebase_project_id"] = firebase_project_id
    return body


def parse_config_response(payload: Any) -> ConfigResponse:
    if not isinstance(payload, dict):
        raise ValueError("response body is not a JSON object")
    ok = payload.get("ok")
    if not isinstance(ok, bool):
        raise ValueError("missing or non-boolean 'ok'")
    url = payload.get("url")
    if url is not None and not isinstance(url, str):
        raise ValueError("'url' must be a string")
    expires = payload.get("expires")
    if expires is not None:
        if isinstance(expires, bool) or not isinstance(expires, (int, float)):
            raise ValueError("'expires' must be a number")
        expires = float(expires)
    message = payload.get("message")
    if message is not None and not isinstance(message, str):
        message = str(message)
    return ConfigResponse(ok=ok, url=url, expires=expires, message=message)


def _is_valid_endpoint(endpoint: str) -> bool:
    parsed = urlparse(endpoint or "")
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def should_recheck_conversion(conversion_data: dict) -> bool:
    return conversion_data.get(AF_STATUS_KEY) == ORGANIC_STATUS


class RemoteConfigClient:
    def __init__(
        self,
        network_monitor: NetworkMonitor,
        config: Config = settings,
        session: aiohttp.ClientSession | None = None,
        endpoint: str | None = None,
    ):
        self.config = config
        self.endpoint = endpoint if endpoint is not None else config.config_endpoint
        self.network_monitor = network_monitor
        self.device = DeviceInfo.from_config(config)
        self._session = session
        self._owns_session = session is None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.http_timeout_seconds)
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def fetch_config(
        self,
        conversion_data: dict,
        attribution_id: str | None = None,
        push_token: str | None = None,
    ) -> ConfigResult:
        if not self.network_monitor.is_connected:
            logging.warning("Config request skipped: no internet connection")
            return ConfigResult.failure(ConfigErrorKind.NO_CONNECTION)

        if not _is_valid_endpoint(self.endpoint):
            logging.error("Invalid config endpoint: %s", self.endpoint)
            return ConfigResult.failure(ConfigErrorKind.INVALID_URL)

        body = build_request_body(
            conversion_data,
            self.device,
            attribution_id=attribution_id,
            push_token=push_token,
            firebase_project_id=self.config.firebase_project_id or None,
        )
        try:
            payload = json.dumps(body, ensure_ascii=False, allow_nan=False).encode("utf-8")
        except (TypeError, ValueError) as e:
            logging.error("Config request encoding failed: %s", e)
            return ConfigResult.failure(ConfigErrorKind.ENCODING, cause=e)

        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": create_user_agent(self.device),
        }
        log_structured(
            "config_request",
            endpoint=self.endpoint,
            keys=sorted(body.keys()),
            size=len(payload),
        )

        try:
            async with self._get_session().post(self.endpoint, data=payload, headers=headers) as resp:
                status = resp.status
                raw = await resp.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logging.warning("Config request network error: %s", e)
            return ConfigResult.failure(ConfigErrorKind.NETWORK, cause=e)

        if not isinstance(status, int):
            return ConfigResult.failure(ConfigErrorKind.INVALID_RESPONSE)
        if not raw:
            logging.warning("Config response had no body (status %s)", status)
            return ConfigResult.failure(ConfigErrorKind.NO_DATA, status_code=status)

        try:
            response = parse_config_response(json.loads(raw))
        except ValueError as e:
            logging.warning("Config response decoding failed (status %s): %s", status, e)
            return ConfigResult.failure(ConfigErrorKind.DECODING, status_code=status, cause=e)

        log_structured(
            "config_response",
            status=status,
            ok=response.ok,
            has_url=bool(response.url),
            expires=response.expires,
            message=response.message,
        )
        if status == 200 and response.ok:
            return ConfigResult(value=response)
        return ConfigResult(error=ConfigError.server_error(status, response.message))

    def should_recheck_conversion(self, conversion_data: dict) -> bool:
        return should_recheck_conversion(conversion_data)

    async def recheck_conversion_data(self, attribution_id: str) -> ConfigResult:
        """Attribution pull API is not wired up; callers keep their original data."""
        await asyncio.sleep(self.config.conversion_recheck_delay_seconds)
        logging.info("Conversion recheck unavailable for %s", attribution_id)
        return ConfigResult.failure(ConfigErrorKind.RECHECK_UNAVAILABLE)
