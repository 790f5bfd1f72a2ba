"""
Headless stand-ins for the device SDKs, driven by configuration.

The composition root uses these when no real device bridge is attached.
"""
import json
import logging

from core.config import Config, settings
from services.attribution_service import TrackingStatus
from services.notification_service import AuthorizationStatus


class HeadlessTrackingPrompt:
    def __init__(self, authorized: bool = True):
        self.authorized = authorized

    async def request_authorization(self) -> TrackingStatus:
        return TrackingStatus.AUTHORIZED if self.authorized else TrackingStatus.DENIED


class StaticAttributionSDK:
    """Delivers a fixed conversion payload, or fails when none is configured."""

    def __init__(self, conversion_data: dict | None, attribution_id: str | None = None):
        self.conversion_data = conversion_data
        self.attribution_id = attribution_id
        self.start_calls = 0

    def start(self, on_conversion_data, on_failure) -> None:
        self.start_calls += 1
        if self.conversion_data is None:
            on_failure(RuntimeError("no attribution data configured"))
            return
        on_conversion_data(dict(self.conversion_data))

    def get_attribution_id(self) -> str | None:
        return self.attribution_id


class HeadlessNotificationCenter:
    def __init__(self, status: AuthorizationStatus = AuthorizationStatus.NOT_DETERMINED, grant: bool = False):
        self.status = status
        self.grant = grant

    async def get_authorization_status(self) -> AuthorizationStatus:
        return self.status

    async def request_permission(self) -> bool:
        self.status = AuthorizationStatus.AUTHORIZED if self.grant else AuthorizationStatus.DENIED
        return self.grant


def _parse_attribution_data(raw: str) -> dict | None:
    if not raw:
        return None
    try:
        data = json.loads(raw)
    except ValueError as e:
        logging.warning("ATTRIBUTION_DATA_JSON is not valid JSON: %s", e)
        return None
    if not isinstance(data, dict):
        logging.warning("ATTRIBUTION_DATA_JSON must be a JSON object")
        return None
    return data


def build_headless_adapters(config: Config = settings):
    try:
        status = AuthorizationStatus(config.notification_status)
    except ValueError:
        status = AuthorizationStatus.NOT_DETERMINED
    return (
        HeadlessTrackingPrompt(authorized=config.tracking_authorized),
        StaticAttributionSDK(
            _parse_attribution_data(config.attribution_data_json),
            attribution_id=config.attribution_id or None,
        ),
        HeadlessNotificationCenter(status=status),
    )
