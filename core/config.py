import os
from dotenv import load_dotenv
from dataclasses import dataclass

load_dotenv()

_PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

PLACEHOLDER_ENDPOINT = "https://example.com/config"


def _resolve_db_path(raw_path: str) -> str:
    candidate = (raw_path or "").strip() or "./data/app_state.db"
    candidate = os.path.expanduser(candidate)
    if os.path.isabs(candidate):
        return os.path.abspath(candidate)
    return os.path.abspath(os.path.join(_PROJECT_ROOT, candidate))


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


@dataclass(frozen=True)
class Config:
    # Remote config
    config_endpoint: str = os.getenv("CONFIG_ENDPOINT", PLACEHOLDER_ENDPOINT).strip()
    http_timeout_seconds: float = float(os.getenv("HTTP_TIMEOUT_SECONDS", "60"))

    # App identity
    bundle_id: str = os.getenv("BUNDLE_ID", "com.linguaboost.app").strip()
    apple_app_id: str = os.getenv("APPLE_APP_ID", "").strip()
    firebase_project_id: str = os.getenv("FIREBASE_PROJECT_ID", "").strip()

    # Device
    device_locale: str = os.getenv("DEVICE_LOCALE", "en").strip()
    device_os_version: str = os.getenv("DEVICE_OS_VERSION", "17.0").strip()
    device_model: str = os.getenv("DEVICE_MODEL", "iPhone").strip()

    # Storage
    db_path: str = _resolve_db_path(os.getenv("DB_PATH", "./data/app_state.db"))

    # Bootstrap timing (seconds)
    push_token_timeout_seconds: float = float(os.getenv("PUSH_TOKEN_TIMEOUT_SECONDS", "10"))
    conversion_recheck_delay_seconds: float = float(os.getenv("CONVERSION_RECHECK_DELAY_SECONDS", "5"))
    attribution_timeout_seconds: float = float(os.getenv("ATTRIBUTION_TIMEOUT_SECONDS", "30"))
    notification_retry_interval_seconds: float = float(
        os.getenv("NOTIFICATION_RETRY_INTERVAL_SECONDS", "259200")
    )

    # Connectivity probe
    network_probe_host: str = os.getenv("NETWORK_PROBE_HOST", "1.1.1.1").strip()
    network_probe_port: int = int(os.getenv("NETWORK_PROBE_PORT", "443"))
    network_probe_interval_seconds: int = int(os.getenv("NETWORK_PROBE_INTERVAL_SECONDS", "15"))

    # Headless platform adapters
    tracking_authorized: bool = _env_bool("TRACKING_AUTHORIZED", "true")
    attribution_id: str = os.getenv("ATTRIBUTION_ID", "").strip()
    attribution_data_json: str = os.getenv("ATTRIBUTION_DATA_JSON", "").strip()
    notification_status: str = os.getenv("NOTIFICATION_STATUS", "not_determined").strip().lower()

    @property
    def store_id(self) -> str:
        # The store expects the "id"-prefixed App Store id; fall back to the bundle id.
        return self.apple_app_id or self.bundle_id


def validate_configuration(config: Config) -> list[str]:
    """Returns human-readable configuration problems (empty when ready)."""
    errors = []
    if not config.config_endpoint or config.config_endpoint == PLACEHOLDER_ENDPOINT:
        errors.append("CONFIG_ENDPOINT is not configured")
    if not config.bundle_id:
        errors.append("BUNDLE_ID is empty")
    if config.apple_app_id and not config.apple_app_id.startswith("id"):
        errors.append("APPLE_APP_ID must start with 'id'")
    if config.push_token_timeout_seconds <= 0:
        errors.append("PUSH_TOKEN_TIMEOUT_SECONDS must be positive")
    if config.attribution_timeout_seconds <= 0:
        errors.append("ATTRIBUTION_TIMEOUT_SECONDS must be positive")
    return errors

# Global Instance
settings = Config()
