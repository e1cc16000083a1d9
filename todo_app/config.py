from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

def _resolve_project_root() -> Path:
    if getattr(sys, "frozen", False):
        return Path(sys.executable).resolve().parent
    return Path(__file__).resolve().parents[1]


PROJECT_ROOT = _resolve_project_root()


def load_env() -> None:
    env_name = os.getenv("APP_ENV", "development")
    candidates = [Path.cwd(), PROJECT_ROOT]
    for base in candidates:
        env_path = base / ".env"
        if env_path.exists():
            load_dotenv(env_path)
            break

    for base in candidates:
        env_specific = base / f".env.{env_name}"
        if env_specific.exists():
            load_dotenv(env_specific, override=True)
            break


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name, "").strip().lower()
    if not value:
        return default
    return value in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    database_url: str
    log_level: str = "INFO"
    log_dir: str = "logs"
    badge_refresh_seconds: int = 30
    delivery_poll_ms: int = 1000
    notifications_enabled: bool = True
    strict_recurrence: bool = False
    notification_body_limit: int = 50


load_env()

DATABASE_URL = os.getenv("DATABASE_URL", "").strip() or f"sqlite:///{PROJECT_ROOT / 'todo.db'}"

SETTINGS = Settings(
    database_url=DATABASE_URL,
    log_level=os.getenv("LOG_LEVEL", "INFO"),
    log_dir=os.getenv("LOG_DIR", "logs"),
    badge_refresh_seconds=int(os.getenv("BADGE_REFRESH_SECONDS", "30")),
    delivery_poll_ms=int(os.getenv("DELIVERY_POLL_MS", "1000")),
    notifications_enabled=_env_flag("NOTIFICATIONS_ENABLED", True),
    strict_recurrence=_env_flag("STRICT_RECURRENCE", False),
    notification_body_limit=int(os.getenv("NOTIFICATION_BODY_LIMIT", "50")),
)
