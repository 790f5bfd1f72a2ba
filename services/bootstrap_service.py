import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from core.config import settings
from core.texts import INIT_ERROR_TEXT, INIT_ERROR_TITLE, RETRY_BUTTON_TEXT
from services.app_state_service import AppMode, PersistedAppState, PersistedState
from services.attribution_service import ConversionData, TrackingAndAttributionGateway
from services.config_service import (
    ConfigError,
    ConfigErrorKind,
    ConfigResponse,
    ConfigResult,
    RemoteConfigClient,
)
from services.push_token_service import PushTokenWaiter, extract_notification_url
from utils.ops_logging import log_structured


class BootstrapStage(str, Enum):
    INIT = "init"
    REQUESTING_TRACKING = "requesting_tracking"
    INITIALIZING_ATTRIBUTION = "initializing_attribution"
    AWAITING_CONVERSION_DATA = "awaiting_conversion_data"
    RECHECKING = "rechecking"
    AWAITING_PUSH_TOKEN = "awaiting_push_token"
    FETCHING_CONFIG = "fetching_config"
    RESOLVED = "resolved"
    RESUMING = "resuming"
    FAILED = "failed"


@dataclass(frozen=True)
class BootstrapOutcome:
    stage: BootstrapStage
    mode: AppMode
    url: str | None = None
    config_error: ConfigError | None = None
    from_cache: bool = False
    error_title: str | None = None
    error_text: str | None = None
    retry_label: str | None = None

    @property
    def is_resolved(self) -> bool:
        return self.stage == BootstrapStage.RESOLVED

    @property
    def needs_retry(self) -> bool:
        return self.stage == BootstrapStage.FAILED


class BootstrapCoordinator:
    """
    Resolves which mode the app launches into.

    tracking prompt -> attribution -> conversion data (+ optional recheck)
    -> push token gate -> remote config -> webview or game.

    The pipeline runs once per install: after a mode is stored, later runs
    return it without touching any collaborator. Collaborator failures are
    folded into fallback data or a fallback mode. A connectivity or
    response-shape error with no URL to fall back on, or an unexpected
    internal error, ends in FAILED with no mode stored; the UI answers it
    with a retry.
    """

    def __init__(
        self,
        state_store: PersistedAppState,
        gateway: TrackingAndAttributionGateway,
        push_waiter: PushTokenWaiter,
        config_client: RemoteConfigClient,
        attribution_timeout: float | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.state_store = state_store
        self.gateway = gateway
        self.push_waiter = push_waiter
        self.config_client = config_client
        self.attribution_timeout = (
            settings.attribution_timeout_seconds if attribution_timeout is None else attribution_timeout
        )
        self._clock = clock
        self._stage = BootstrapStage.INIT
        self._task: asyncio.Future | None = None
        self._refreshing = False
        self.pending_notification_url: str | None = None

    @property
    def stage(self) -> BootstrapStage:
        return self._stage

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def _set_stage(self, stage: BootstrapStage) -> None:
        if stage != self._stage:
            log_structured("bootstrap_stage", stage=stage.value, previous=self._stage.value)
        self._stage = stage

    def _outcome(self, state: PersistedState, **kwargs) -> BootstrapOutcome:
        return BootstrapOutcome(
            stage=self._stage,
            mode=state.app_mode,
            url=state.current_url,
            **kwargs,
        )

    async def run(self) -> BootstrapOutcome:
        # One bootstrap at a time: concurrent callers share the in-flight run.
        if not self.is_running:
            self._task = asyncio.ensure_future(self._run_guarded())
        return await asyncio.shield(self._task)

    async def retry(self) -> BootstrapOutcome:
        if not self.is_running:
            self._set_stage(BootstrapStage.INIT)
        return await self.run()

    async def cancel(self) -> None:
        task = self._task
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        self._set_stage(BootstrapStage.INIT)

    async def _run_guarded(self) -> BootstrapOutcome:
        try:
            return await self._run_pipeline()
        except asyncio.CancelledError:
            logging.info("Bootstrap cancelled at stage %s", self._stage.value)
            self._set_stage(BootstrapStage.INIT)
            raise
        except Exception:
            logging.exception("Bootstrap failed at stage %s", self._stage.value)
            return self._failed()

    def _failed(self, error: ConfigError | None = None) -> BootstrapOutcome:
        self._set_stage(BootstrapStage.FAILED)
        return BootstrapOutcome(
            stage=BootstrapStage.FAILED,
            mode=AppMode.UNDEFINED,
            config_error=error,
            error_title=INIT_ERROR_TITLE,
            error_text=INIT_ERROR_TEXT,
            retry_label=RETRY_BUTTON_TEXT,
        )

    async def _run_pipeline(self) -> BootstrapOutcome:
        self._set_stage(BootstrapStage.INIT)
        state = self.state_store.load()
        if not state.is_first_launch and state.app_mode != AppMode.UNDEFINED:
            self._set_stage(BootstrapStage.RESOLVED)
            logging.info("App mode already resolved: %s", state.app_mode.value)
            return self._outcome(state, from_cache=True)

        self._set_stage(BootstrapStage.REQUESTING_TRACKING)
        await self.gateway.request_tracking_permission()

        self._set_stage(BootstrapStage.INITIALIZING_ATTRIBUTION)
        self.gateway.initialize()

        self._set_stage(BootstrapStage.AWAITING_CONVERSION_DATA)
        conversion_data = await self.gateway.conversion_data(timeout=self.attribution_timeout)
        attribution_id = self.gateway.attribution_id or state.attribution_id

        conversion_data = await self._maybe_recheck(conversion_data, attribution_id)

        if attribution_id:
            self.state_store.save_attribution_id(attribution_id)
        self.state_store.save_conversion_data(conversion_data)

        self._set_stage(BootstrapStage.AWAITING_PUSH_TOKEN)
        token = await self.push_waiter.ready()
        push_token = token or self.state_store.load().push_token

        self._set_stage(BootstrapStage.FETCHING_CONFIG)
        result = await self.config_client.fetch_config(
            conversion_data,
            attribution_id=attribution_id,
            push_token=push_token,
        )
        return self._resolve(result)

    async def _maybe_recheck(self, data: ConversionData, attribution_id: str | None) -> ConversionData:
        if not self.config_client.should_recheck_conversion(data):
            return data
        if not attribution_id:
            logging.info("Organic install without attribution id, skipping recheck")
            return data
        self._set_stage(BootstrapStage.RECHECKING)
        result = await self.config_client.recheck_conversion_data(attribution_id)
        if result.ok and isinstance(result.value, dict):
            logging.info("Conversion data replaced by recheck")
            return dict(result.value)
        reason = result.error.kind.value if result.error else "no data"
        logging.info("Conversion recheck failed (%s), keeping original data", reason)
        return data

    @staticmethod
    def _classify(result: ConfigResult) -> tuple[ConfigResponse | None, ConfigError | None]:
        if result.ok:
            response = result.value
            if isinstance(response, ConfigResponse) and response.has_destination:
                return response, None
            # ok without url/expires is not a usable answer
            return None, ConfigError(ConfigErrorKind.INVALID_RESPONSE)
        return None, result.error

    def _resolve(self, result: ConfigResult) -> BootstrapOutcome:
        response, error = self._classify(result)
        if response is not None:
            self.state_store.save_url(response.url, response.expires)
            state = self.state_store.set_app_mode(AppMode.WEBVIEW)
            return self._finish(state, None, "config")

        if error.is_rejection:
            state = self.state_store.set_app_mode(AppMode.GAME)
            return self._finish(state, error, "rejected")

        return self._fallback(error)

    def _fallback(self, error: ConfigError) -> BootstrapOutcome:
        state = self.state_store.load()
        if state.current_url:
            state = self.state_store.set_app_mode(AppMode.WEBVIEW)
            return self._finish(state, error, "saved_url")

        last_url = self.state_store.get_last_opened_url()
        if last_url:
            logging.info("Using last opened URL after config error: %s", last_url)
            # Adopted without a server expiry, so the next foreground refreshes it.
            self.state_store.save_url(last_url, self._clock())
            state = self.state_store.set_app_mode(AppMode.WEBVIEW)
            return self._finish(state, error, "last_opened_url")

        if error.is_transient:
            # Nothing to show yet and the failure may pass: leave the mode
            # undefined so the next attempt runs the whole pipeline again.
            log_structured("bootstrap_retryable", error=error.kind.value)
            return self._failed(error)

        state = self.state_store.set_app_mode(AppMode.GAME)
        return self._finish(state, error, "no_url")

    def _finish(self, state: PersistedState, error: ConfigError | None, source: str) -> BootstrapOutcome:
        self._set_stage(BootstrapStage.RESOLVED)
        log_structured(
            "bootstrap_resolved",
            mode=state.app_mode.value,
            source=source,
            has_url=bool(state.current_url),
            error=error.kind.value if error else None,
            status_code=error.status_code if error else None,
        )
        return self._outcome(state, config_error=error)

    async def on_foreground(self) -> BootstrapOutcome | None:
        """Refreshes an expired webview URL; a failed refresh keeps the stale one."""
        if self._stage != BootstrapStage.RESOLVED or self._refreshing or self.is_running:
            return None
        state = self.state_store.load()
        if state.app_mode != AppMode.WEBVIEW or not self.state_store.is_url_expired():
            return None

        conversion_data = self.state_store.get_conversion_data()
        if conversion_data is None:
            logging.info("No stored conversion data, keeping current URL")
            return self._outcome(state)

        self._refreshing = True
        self._set_stage(BootstrapStage.RESUMING)
        error = None
        try:
            result = await self.config_client.fetch_config(
                conversion_data,
                attribution_id=state.attribution_id,
                push_token=state.push_token,
            )
            response, error = self._classify(result)
            if response is not None:
                self.state_store.save_url(response.url, response.expires)
                logging.info("Webview URL refreshed")
            else:
                logging.info("URL refresh failed (%s), keeping stale URL", error.kind.value)
        except Exception as e:
            logging.warning("URL refresh crashed, keeping stale URL: %s", e)
        finally:
            self._refreshing = False
            self._set_stage(BootstrapStage.RESOLVED)
        return self._outcome(self.state_store.load(), config_error=error)

    async def handle_push_token(self, token: str) -> ConfigResult | None:
        if not token:
            return None
        state = self.state_store.save_push_token(token)
        self.push_waiter.token_arrived(token)
        if self._stage != BootstrapStage.RESOLVED:
            return None

        conversion_data = self.state_store.get_conversion_data()
        if conversion_data is None:
            return None
        result = await self.config_client.fetch_config(
            conversion_data,
            attribution_id=state.attribution_id,
            push_token=token,
        )
        if result.ok:
            logging.info("Push token successfully updated in config")
        else:
            logging.warning("Failed to update push token in config: %s", result.error.description)
        return result

    def handle_push_notification(self, payload: dict) -> str | None:
        url = extract_notification_url(payload)
        if url:
            self.pending_notification_url = url
            log_structured("push_notification_url", url=url)
        else:
            logging.info("No URL in notification payload")
        return url

    def clear_pending_notification_url(self) -> None:
        self.pending_notification_url = None

    def record_page_loaded(self, url: str) -> None:
        self.state_store.record_opened_url(url)
