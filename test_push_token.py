import asyncio

from core.config import settings
from services.push_token_service import PushTokenState, PushTokenWaiter, extract_notification_url


def test_token_arrival_opens_gate():
    async def scenario():
        waiter = PushTokenWaiter(timeout_seconds=5)
        waiter.start_waiting()
        assert waiter.state == PushTokenState.WAITING
        asyncio.get_running_loop().call_later(0.01, waiter.token_arrived, "fcm-token")
        return await asyncio.wait_for(waiter.ready(), 1), waiter.state

    token, state = asyncio.run(scenario())
    assert token == "fcm-token"
    assert state == PushTokenState.READY


def test_timeout_opens_gate_without_token():
    async def scenario():
        waiter = PushTokenWaiter(timeout_seconds=0.05)
        loop = asyncio.get_running_loop()
        started = loop.time()
        waiter.start_waiting()
        token = await asyncio.wait_for(waiter.ready(), 2)
        return token, loop.time() - started, waiter.state

    token, elapsed, state = asyncio.run(scenario())
    assert token is None
    assert state == PushTokenState.READY
    assert 0.04 <= elapsed < 1.0


def test_known_token_is_ready_immediately():
    async def scenario():
        waiter = PushTokenWaiter(timeout_seconds=30, initial_token="saved")
        return await asyncio.wait_for(waiter.ready(), 0.5)

    assert asyncio.run(scenario()) == "saved"


def test_late_timer_does_not_undo_ready():
    async def scenario():
        waiter = PushTokenWaiter(timeout_seconds=0.02)
        waiter.start_waiting()
        waiter.token_arrived("fcm-token")
        await asyncio.sleep(0.05)
        return waiter.state, await waiter.ready()

    state, token = asyncio.run(scenario())
    assert state == PushTokenState.READY
    assert token == "fcm-token"


def test_ready_without_start_begins_waiting():
    async def scenario():
        waiter = PushTokenWaiter(timeout_seconds=0.02)
        assert waiter.state == PushTokenState.NOT_WAITING
        return await asyncio.wait_for(waiter.ready(), 1)

    assert asyncio.run(scenario()) is None


def test_token_after_timeout_is_still_recorded():
    async def scenario():
        waiter = PushTokenWaiter(timeout_seconds=0.01)
        await waiter.ready()
        waiter.token_arrived("late-token")
        return waiter.state, waiter.token

    assert asyncio.run(scenario()) == (PushTokenState.READY, "late-token")


def test_extract_notification_url_prefers_root():
    payload = {"url": "https://root.example", "aps": {"url": "https://aps.example"}}
    assert extract_notification_url(payload) == "https://root.example"


def test_extract_notification_url_falls_back_to_aps():
    payload = {"url": "", "aps": {"alert": "hi", "url": "https://aps.example"}}
    assert extract_notification_url(payload) == "https://aps.example"


def test_extract_notification_url_missing():
    assert extract_notification_url({"aps": {"alert": "hi"}, "link": "https://x.example"}) is None


def test_default_timeout_comes_from_settings():
    assert settings.push_token_timeout_seconds == 10
    assert PushTokenWaiter().timeout_seconds == settings.push_token_timeout_seconds
