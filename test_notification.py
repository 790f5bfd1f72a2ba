import asyncio

from services.app_state_service import AppMode, PersistedAppState
from services.notification_service import AuthorizationStatus, NotificationPermissionService
from services.platform_adapters import HeadlessNotificationCenter

NOW = 1_700_000_000.0
THREE_DAYS = 259200


def _service(tmp_path, status=AuthorizationStatus.NOT_DETERMINED, grant=False, now=NOW, mode=AppMode.WEBVIEW):
    store = PersistedAppState(db_path=str(tmp_path / "state.db"), clock=lambda: now)
    if mode != AppMode.UNDEFINED:
        store.set_app_mode(mode)
    center = HeadlessNotificationCenter(status=status, grant=grant)
    service = NotificationPermissionService(center, store, retry_interval_seconds=THREE_DAYS, clock=lambda: now)
    return service, store


def test_prompt_shown_in_webview_when_undecided(tmp_path):
    service, _ = _service(tmp_path)
    assert asyncio.run(service.should_show_permission_screen()) is True


def test_prompt_hidden_in_game_mode(tmp_path):
    service, _ = _service(tmp_path, mode=AppMode.GAME)
    assert asyncio.run(service.should_show_permission_screen()) is False


def test_prompt_hidden_once_system_decided(tmp_path):
    for status in (AuthorizationStatus.AUTHORIZED, AuthorizationStatus.DENIED):
        service, _ = _service(tmp_path, status=status)
        assert asyncio.run(service.should_show_permission_screen()) is False


def test_skip_hides_prompt_until_retry_interval(tmp_path):
    service, store = _service(tmp_path)
    service.skip()
    assert asyncio.run(service.should_show_permission_screen()) is False

    later = NotificationPermissionService(
        service.center, store, retry_interval_seconds=THREE_DAYS, clock=lambda: NOW + THREE_DAYS + 1
    )
    assert asyncio.run(later.should_show_permission_screen()) is True


def test_declined_request_records_denial(tmp_path):
    service, store = _service(tmp_path, grant=False)
    assert asyncio.run(service.request_permission()) is False
    assert store.load().notification_permission_denied_at == NOW


def test_granted_request_leaves_no_denial(tmp_path):
    service, store = _service(tmp_path, grant=True)
    assert asyncio.run(service.request_permission()) is True
    assert store.load().notification_permission_denied_at is None
