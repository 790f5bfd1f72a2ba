import asyncio
import logging
import sys

from core.config import settings, validate_configuration
from database import create_table
from services.app_state_service import PersistedAppState
from services.attribution_service import TrackingAndAttributionGateway
from services.bootstrap_service import BootstrapCoordinator
from services.config_service import RemoteConfigClient
from services.notification_service import NotificationPermissionService
from services.platform_adapters import build_headless_adapters
from services.push_token_service import PushTokenWaiter
from utils.network_monitor import NetworkMonitor
from utils.ops_logging import log_structured


async def main():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stdout
    )

    for problem in validate_configuration(settings):
        logging.warning("Config: %s", problem)

    # Initialize Database
    create_table()
    logging.info("DB path: %s", settings.db_path)

    state_store = PersistedAppState()
    state = state_store.load()

    tracking_prompt, attribution_sdk, notification_center = build_headless_adapters(settings)
    network_monitor = NetworkMonitor()
    await network_monitor.start()
    config_client = RemoteConfigClient(network_monitor)

    coordinator = BootstrapCoordinator(
        state_store=state_store,
        gateway=TrackingAndAttributionGateway(tracking_prompt, attribution_sdk),
        push_waiter=PushTokenWaiter(initial_token=state.push_token),
        config_client=config_client,
    )
    notifications = NotificationPermissionService(notification_center, state_store)

    try:
        outcome = await coordinator.run()
        if outcome.needs_retry:
            logging.error("%s: %s", outcome.error_title, outcome.error_text)
            outcome = await coordinator.retry()

        log_structured(
            "launch_mode",
            stage=outcome.stage.value,
            mode=outcome.mode.value,
            url=outcome.url,
            from_cache=outcome.from_cache,
        )

        refreshed = await coordinator.on_foreground()
        if refreshed is not None:
            logging.info("Foreground refresh done, url=%s", refreshed.url)

        if await notifications.should_show_permission_screen():
            logging.info("Notification permission screen is due")
    finally:
        network_monitor.stop()
        await config_client.close()

if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logging.info("Stopped by user.")
