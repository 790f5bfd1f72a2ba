from core.config import PLACEHOLDER_ENDPOINT, Config, validate_configuration


def test_placeholder_endpoint_is_reported():
    problems = validate_configuration(Config(config_endpoint=PLACEHOLDER_ENDPOINT))
    assert "CONFIG_ENDPOINT is not configured" in problems


def test_store_id_must_be_prefixed():
    problems = validate_configuration(
        Config(config_endpoint="https://cfg.example/config.php", apple_app_id="6749934948")
    )
    assert problems == ["APPLE_APP_ID must start with 'id'"]


def test_complete_configuration_has_no_problems():
    config = Config(
        config_endpoint="https://cfg.example/config.php",
        bundle_id="com.linguaboost.app",
        apple_app_id="id6749934948",
        push_token_timeout_seconds=10,
        attribution_timeout_seconds=30,
    )
    assert validate_configuration(config) == []
