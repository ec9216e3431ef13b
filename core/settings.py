"""Runtime configuration resolved from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass
class Settings:
    db_url: str = "sqlite+aiosqlite:///schedules.db"
    poll_interval_seconds: float = 30.0
    log_level: str = "INFO"
    app_base_url: str = "http://localhost:8000"
    push_subscription_id: str | None = None
    notification_permission: str = "granted"
    poller_enabled: bool = False

    def __post_init__(self) -> None:
        if os.getenv("SCHEDULES_DB_URL"):
            self.db_url = os.environ["SCHEDULES_DB_URL"]
        if os.getenv("POLL_INTERVAL_SECONDS"):
            self.poll_interval_seconds = float(os.environ["POLL_INTERVAL_SECONDS"])
        if os.getenv("LOG_LEVEL"):
            self.log_level = os.environ["LOG_LEVEL"]
        if os.getenv("APP_BASE_URL"):
            self.app_base_url = os.environ["APP_BASE_URL"].rstrip("/")
        if os.getenv("PUSH_SUBSCRIPTION_ID"):
            self.push_subscription_id = os.environ["PUSH_SUBSCRIPTION_ID"]
        if os.getenv("NOTIFICATION_PERMISSION"):
            self.notification_permission = os.environ["NOTIFICATION_PERMISSION"].lower()
        if os.getenv("POLLER_ENABLED"):
            self.poller_enabled = os.environ["POLLER_ENABLED"].lower() in _TRUTHY


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached settings instance."""
    return Settings()


def push_credentials() -> tuple[str | None, str | None]:
    """Read the push provider app id and REST key.

    Looked up on every call rather than cached so a server started without
    credentials reports them as missing per request.
    """
    app_id = (
        os.getenv("ONE_SIGNAL_APP_ID")
        or os.getenv("OS_APP_ID")
        or os.getenv("REACT_APP_ONESIGNAL_APP_ID")
    )
    api_key = os.getenv("ONE_SIGNAL_API_KEY") or os.getenv("OS_API_KEY")
    return app_id, api_key
