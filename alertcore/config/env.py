from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


def _env_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return v.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class AlertcoreEnv:
    """Runtime configuration read once by the composition root."""

    platform: str = "ios"
    gateway: str = "memory"
    queue_interval: float = 0.1
    history_limit: int = 100
    database_url: Optional[str] = None
    db_init: bool = False
    settings_enc_key: Optional[str] = None
    pushover_api_token: Optional[str] = None
    pushover_user_key: Optional[str] = None

    @classmethod
    def from_env(cls) -> "AlertcoreEnv":
        return cls(
            platform=os.getenv("ALERTCORE_PLATFORM", "ios").strip().lower(),
            gateway=os.getenv("ALERTCORE_GATEWAY", "memory").strip().lower(),
            queue_interval=max(0.0, _env_float("ALERTCORE_QUEUE_INTERVAL", 0.1)),
            history_limit=max(1, _env_int("ALERTCORE_HISTORY_LIMIT", 100)),
            database_url=os.getenv("DATABASE_URL") or None,
            db_init=_env_bool("DB_INIT", True),
            settings_enc_key=os.getenv("SETTINGS_ENC_KEY") or None,
            pushover_api_token=os.getenv("PUSHOVER_API_TOKEN") or None,
            pushover_user_key=os.getenv("PUSHOVER_USER_KEY") or None,
        )
