"""Project-level configuration and path helpers."""

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Union

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
DATA_DIR = PROJECT_ROOT / "03_data"
LOGS_DIR = PROJECT_ROOT / "04_logs"
DEFAULT_DB_PATH = DATA_DIR / "salesbot.db"
DEFAULT_LOG_PATH = LOGS_DIR / "app.log"
DEFAULT_AUTH_DIR = DATA_DIR / "session"
DEFAULT_SMS_SETTINGS_PATH = PROJECT_ROOT / "smsSettings.json"

DATA_DIR.mkdir(parents=True, exist_ok=True)
LOGS_DIR.mkdir(parents=True, exist_ok=True)


PathLike = Union[str, Path]


def resolve_db_path(env_value: PathLike | None = None) -> PathLike:
    """Resolve DATABASE_URL to an absolute path."""
    if not env_value:
        return DEFAULT_DB_PATH

    if str(env_value) == ":memory:":
        return ":memory:"

    candidate = Path(env_value)
    return candidate if candidate.is_absolute() else PROJECT_ROOT / candidate


def _resolve_path(env_value: str | None, default: Path) -> Path:
    if not env_value:
        return default
    candidate = Path(env_value)
    return candidate if candidate.is_absolute() else PROJECT_ROOT / candidate


@dataclass
class SmsSettings:
    """Credentials for the SMS gateway used for order alerts."""

    api_key: str = ""
    sender: str = ""
    recipient: str = ""

    @classmethod
    def load(cls, path: PathLike | None = None) -> "SmsSettings":
        """Read smsSettings.json; a missing or unreadable file yields empty settings."""
        settings_path = Path(path) if path else DEFAULT_SMS_SETTINGS_PATH
        if not settings_path.exists():
            return cls()
        try:
            with open(settings_path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, ValueError):
            return cls()
        return cls(
            api_key=raw.get("apiKey", ""),
            sender=raw.get("sender", ""),
            recipient=raw.get("recipient", ""),
        )


@dataclass
class Settings:
    """Runtime settings, read from the environment."""

    db_path: PathLike = DEFAULT_DB_PATH
    auth_dir: Path = DEFAULT_AUTH_DIR
    session_profile: str = "default"
    max_reconnect_attempts: int = 3
    identity_timeout: float = 2.0
    identity_poll_interval: float = 0.1
    reconnect_base_delay: float = 1.0
    reconnect_max_delay: float = 30.0
    send_retries: int = 3
    send_base_delay: float = 1.0
    health_check_interval: float = 30.0
    business_name: str = "Fx Cobra X"
    sms_settings_path: Path = DEFAULT_SMS_SETTINGS_PATH
    api_host: str = "localhost"
    api_port: int = 8000

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables, falling back to defaults."""
        return cls(
            db_path=resolve_db_path(os.getenv("DATABASE_URL")),
            auth_dir=_resolve_path(os.getenv("AUTH_DIR"), DEFAULT_AUTH_DIR),
            session_profile=os.getenv("SESSION_PROFILE", "default"),
            max_reconnect_attempts=int(os.getenv("MAX_RECONNECT_ATTEMPTS", "3")),
            identity_timeout=float(os.getenv("IDENTITY_TIMEOUT", "2.0")),
            reconnect_base_delay=float(os.getenv("RECONNECT_BASE_DELAY", "1.0")),
            reconnect_max_delay=float(os.getenv("RECONNECT_MAX_DELAY", "30.0")),
            send_retries=int(os.getenv("SEND_RETRIES", "3")),
            send_base_delay=float(os.getenv("SEND_BASE_DELAY", "1.0")),
            health_check_interval=float(os.getenv("HEALTH_CHECK_INTERVAL", "30.0")),
            business_name=os.getenv("BUSINESS_NAME", "Fx Cobra X"),
            sms_settings_path=_resolve_path(
                os.getenv("SMS_SETTINGS_PATH"), DEFAULT_SMS_SETTINGS_PATH
            ),
            api_host=os.getenv("API_HOST", "localhost"),
            api_port=int(os.getenv("API_PORT", "8000")),
        )
