from database.connection import get_connection
from services.app_state_service import AppMode, PersistedAppState, PersistedState

NOW = 1_700_000_000.0


def _store(tmp_path, now=NOW):
    return PersistedAppState(db_path=str(tmp_path / "state.db"), clock=lambda: now)


def test_load_returns_defaults_on_fresh_install(tmp_path):
    state = _store(tmp_path).load()
    assert state == PersistedState()
    assert state.app_mode == AppMode.UNDEFINED
    assert state.is_first_launch is True


def test_save_of_loaded_state_changes_nothing(tmp_path):
    store = _store(tmp_path)
    store.save_url("https://a.example", NOW + 60)
    store.save_push_token("tok-1")
    store.set_app_mode(AppMode.WEBVIEW)

    before = store.load()
    store.save(store.load())
    assert store.load() == before


def test_set_app_mode_flips_first_launch(tmp_path):
    store = _store(tmp_path)
    state = store.set_app_mode(AppMode.WEBVIEW)
    assert state.is_first_launch is False
    assert store.load().app_mode == AppMode.WEBVIEW


def test_game_mode_clears_last_opened_url(tmp_path):
    store = _store(tmp_path)
    store.record_opened_url("https://last.example")
    store.set_app_mode(AppMode.WEBVIEW)
    assert store.get_last_opened_url() == "https://last.example"

    store.set_app_mode(AppMode.GAME)
    assert store.get_last_opened_url() is None


def test_url_expiry_boundaries(tmp_path):
    store = _store(tmp_path)
    assert store.is_url_expired() is True

    store.save_url("https://a.example", NOW - 1)
    assert store.is_url_expired() is True

    store.save_url("https://a.example", NOW + 1)
    assert store.is_url_expired() is False


def test_half_url_pair_loads_as_absent(tmp_path):
    store = _store(tmp_path)
    store.save_url("https://a.example", NOW + 60)
    conn = get_connection(store.db_path)
    conn.execute("DELETE FROM app_state WHERE key = 'url_expires'")
    conn.commit()
    conn.close()

    state = store.load()
    assert state.current_url is None
    assert state.url_expires_at is None


def _corrupt(store, key):
    conn = get_connection(store.db_path)
    conn.execute(
        "INSERT INTO app_state (key, val) VALUES (?, '{broken') "
        "ON CONFLICT(key) DO UPDATE SET val = excluded.val",
        (key,),
    )
    conn.commit()
    conn.close()


def test_corrupt_field_loads_its_default(tmp_path):
    store = _store(tmp_path)
    store.save_push_token("tok-1")
    store.set_app_mode(AppMode.GAME)
    _corrupt(store, "app_mode")

    state = store.load()
    assert state.app_mode == AppMode.UNDEFINED
    assert state.is_first_launch is False
    assert state.push_token == "tok-1"

    store.set_app_mode(AppMode.WEBVIEW)
    assert store.load().app_mode == AppMode.WEBVIEW


def test_corrupt_conversion_data_does_not_block_mode(tmp_path):
    store = _store(tmp_path)
    store.save_conversion_data({"af_status": "Organic"})
    _corrupt(store, "conversion_data")

    store.set_app_mode(AppMode.WEBVIEW)

    state = store.load()
    assert state.app_mode == AppMode.WEBVIEW
    assert state.is_first_launch is False
    assert store.get_conversion_data() is None


def test_corrupt_last_opened_url_does_not_block_mode(tmp_path):
    store = _store(tmp_path)
    store.record_opened_url("https://last.example")
    _corrupt(store, "last_opened_url")

    store.set_app_mode(AppMode.GAME)
    assert store.load().app_mode == AppMode.GAME


def test_push_token_marks_ready_after_reload(tmp_path):
    store = _store(tmp_path)
    assert store.load().is_push_token_ready is False
    store.save_push_token("tok-1")

    reloaded = PersistedAppState(db_path=store.db_path).load()
    assert reloaded.push_token == "tok-1"
    assert reloaded.is_push_token_ready is True


def test_notification_denial_uses_clock(tmp_path):
    store = _store(tmp_path)
    store.save_notification_permission_denied()
    assert store.load().notification_permission_denied_at == NOW


def test_reset_restores_defaults(tmp_path):
    store = _store(tmp_path)
    store.save_url("https://a.example", NOW + 60)
    store.set_app_mode(AppMode.WEBVIEW)
    store.save_conversion_data({"af_status": "Non-organic"})

    store.reset()
    assert store.load() == PersistedState()
    assert store.get_conversion_data() is None


def test_conversion_data_round_trips(tmp_path):
    store = _store(tmp_path)
    store.save_conversion_data({"af_status": "Organic", "campaign": "spring", "is_first_launch": True})
    assert store.get_conversion_data() == {
        "af_status": "Organic",
        "campaign": "spring",
        "is_first_launch": True,
    }
