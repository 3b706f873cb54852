"""
Environment-driven configuration for the sync server and the sync client.

Module constants capture the values at import time for display and defaults;
the getter functions re-read the environment so tests can override settings
without reloading the module.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List

from dotenv import load_dotenv

load_dotenv()

# Version string
VERSION = "1.2.8"

# Collections known to both sides, mapped to their merge key field
KNOWN_COLLECTIONS: Dict[str, str] = {
    "cotizaciones": "numero",
    "clientes": "rut",
    "ordenesCompra": "numero",
    "ordenesTrabajo": "numero",
}
DEFAULT_MERGE_KEY = "id"

# Server: storage and runtime
DB_PATH = os.getenv("DB_PATH", "./data/sync.db")
DEBUG = os.getenv("DEBUG", "false").lower() == "true"  # Diagnostic detail in error bodies; off in production
SEED_USER_KEYS = os.getenv("SEED_USER_KEYS", "")
CORS_ALLOWED_ORIGINS = os.getenv("CORS_ALLOWED_ORIGINS", "*")

# Server: tombstone retention
RETENTION_ENABLED = os.getenv("RETENTION_ENABLED", "true").lower() == "true"
RETENTION_DAYS = int(os.getenv("RETENTION_DAYS", "30"))
RETENTION_SCHEDULE_SEC = int(os.getenv("RETENTION_SCHEDULE_SEC", "86400"))  # Daily
RETENTION_STARTUP_DELAY_SEC = int(os.getenv("RETENTION_STARTUP_DELAY_SEC", "10"))

# Client: sync coordinator
SYNC_ENABLED = os.getenv("SYNC_ENABLED", "true").lower() == "true"
SYNC_API_URL = os.getenv("SYNC_API_URL", "http://localhost:3001")
SYNC_INTERVAL_SEC = float(os.getenv("SYNC_INTERVAL_SEC", "30"))
SYNC_REQUEST_TIMEOUT_SEC = float(os.getenv("SYNC_REQUEST_TIMEOUT_SEC", "60"))  # Large attachments
SYNC_MAX_RETRIES = int(os.getenv("SYNC_MAX_RETRIES", "3"))
SYNC_RETRY_DELAY_SEC = float(os.getenv("SYNC_RETRY_DELAY_SEC", "5"))
SYNC_STARTUP_DELAY_SEC = float(os.getenv("SYNC_STARTUP_DELAY_SEC", "2"))
SYNC_RECONNECT_DELAY_SEC = float(os.getenv("SYNC_RECONNECT_DELAY_SEC", "1"))
CONNECTIVITY_CHECK_INTERVAL_SEC = float(os.getenv("CONNECTIVITY_CHECK_INTERVAL_SEC", "30"))
LOCAL_DB_PATH = os.getenv("LOCAL_DB_PATH", "./data/local.db")


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def get_db_path() -> str:
    """Get the server database path."""
    return os.getenv("DB_PATH", DB_PATH)


def debug_enabled() -> bool:
    """Check if debug mode is enabled (diagnostic detail in error responses)."""
    return _env_bool("DEBUG", str(DEBUG).lower())


def ensure_db_directory(path: str = None):
    """Ensure the database directory exists."""
    Path(path or get_db_path()).parent.mkdir(parents=True, exist_ok=True)


def get_seed_user_keys() -> List[str]:
    """User keys that get a default dataset at server startup."""
    raw = os.getenv("SEED_USER_KEYS", SEED_USER_KEYS)
    return [key.strip() for key in raw.split(",") if key.strip()]


def get_cors_origins() -> List[str]:
    raw = os.getenv("CORS_ALLOWED_ORIGINS", CORS_ALLOWED_ORIGINS)
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def is_retention_enabled() -> bool:
    """Check if the tombstone retention sweeper should be scheduled."""
    return _env_bool("RETENTION_ENABLED", "true")


def get_retention_days() -> int:
    return int(os.getenv("RETENTION_DAYS", str(RETENTION_DAYS)))


def get_retention_schedule() -> int:
    """Get the sweeper interval in seconds."""
    return int(os.getenv("RETENTION_SCHEDULE_SEC", str(RETENTION_SCHEDULE_SEC)))


def get_retention_startup_delay() -> int:
    return int(os.getenv("RETENTION_STARTUP_DELAY_SEC", str(RETENTION_STARTUP_DELAY_SEC)))


def validate_retention_config():
    """Validate retention configuration and return any issues."""
    issues = []

    if get_retention_days() < 1:
        issues.append("RETENTION_DAYS must be >= 1")

    if get_retention_schedule() < 1:
        issues.append("RETENTION_SCHEDULE_SEC must be >= 1")

    if get_retention_startup_delay() < 0:
        issues.append("RETENTION_STARTUP_DELAY_SEC must be >= 0")

    return issues


def is_sync_enabled() -> bool:
    """Check if client synchronization is enabled."""
    return _env_bool("SYNC_ENABLED", "true")


def get_sync_api_url() -> str:
    return os.getenv("SYNC_API_URL", SYNC_API_URL).rstrip("/")


@dataclass
class SyncSettings:
    """Settings consumed by the sync coordinator and its transport."""
    api_url: str = SYNC_API_URL
    enabled: bool = SYNC_ENABLED
    interval_sec: float = SYNC_INTERVAL_SEC
    request_timeout_sec: float = SYNC_REQUEST_TIMEOUT_SEC
    max_retries: int = SYNC_MAX_RETRIES
    retry_delay_sec: float = SYNC_RETRY_DELAY_SEC
    startup_delay_sec: float = SYNC_STARTUP_DELAY_SEC
    reconnect_delay_sec: float = SYNC_RECONNECT_DELAY_SEC
    connectivity_check_sec: float = CONNECTIVITY_CHECK_INTERVAL_SEC

    @classmethod
    def from_env(cls) -> "SyncSettings":
        """Build settings from the current environment."""
        return cls(
            api_url=get_sync_api_url(),
            enabled=is_sync_enabled(),
            interval_sec=float(os.getenv("SYNC_INTERVAL_SEC", str(SYNC_INTERVAL_SEC))),
            request_timeout_sec=float(os.getenv("SYNC_REQUEST_TIMEOUT_SEC", str(SYNC_REQUEST_TIMEOUT_SEC))),
            max_retries=int(os.getenv("SYNC_MAX_RETRIES", str(SYNC_MAX_RETRIES))),
            retry_delay_sec=float(os.getenv("SYNC_RETRY_DELAY_SEC", str(SYNC_RETRY_DELAY_SEC))),
            startup_delay_sec=float(os.getenv("SYNC_STARTUP_DELAY_SEC", str(SYNC_STARTUP_DELAY_SEC))),
            reconnect_delay_sec=float(os.getenv("SYNC_RECONNECT_DELAY_SEC", str(SYNC_RECONNECT_DELAY_SEC))),
            connectivity_check_sec=float(
                os.getenv("CONNECTIVITY_CHECK_INTERVAL_SEC", str(CONNECTIVITY_CHECK_INTERVAL_SEC))
            ),
        )


def validate_sync_config(settings: SyncSettings = None):
    """Validate client sync configuration and return any issues."""
    settings = settings or SyncSettings.from_env()
    issues = []

    if not settings.api_url.startswith(("http://", "https://")):
        issues.append(f"Invalid SYNC_API_URL: {settings.api_url}")

    if settings.interval_sec <= 0:
        issues.append("SYNC_INTERVAL_SEC must be > 0")

    if settings.request_timeout_sec <= 0:
        issues.append("SYNC_REQUEST_TIMEOUT_SEC must be > 0")

    if settings.max_retries < 0:
        issues.append("SYNC_MAX_RETRIES must be >= 0")

    if settings.retry_delay_sec < 0:
        issues.append("SYNC_RETRY_DELAY_SEC must be >= 0")

    return issues


def get_local_db_path() -> str:
    return os.getenv("LOCAL_DB_PATH", LOCAL_DB_PATH)
