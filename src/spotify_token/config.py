"""Paths and default settings."""

import os
from pathlib import Path

from platformdirs import user_data_dir

APP_NAME = "spotify-token-api"


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


def _env_str(name: str) -> str | None:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    return raw.strip()


DATA_DIR = Path(user_data_dir(APP_NAME))
LOG_DIR = DATA_DIR / "logs"
LOG_FILE = LOG_DIR / "server.log"
LOG_RETENTION_DAYS = max(1, _env_int("STA_LOG_RETENTION_DAYS", 14))

# Upstream web player
TARGET_URL = "https://open.spotify.com/"
TOKEN_PATH = "/api/token"

# Browser
BROWSER_PATH = _env_str("BROWSER_PATH")
USER_AGENT = _env_str("STA_USER_AGENT")
TOKEN_DEADLINE_SECONDS = max(1.0, _env_float("STA_TOKEN_DEADLINE_SECONDS", 15.0))

# Cache and refresh timing (milliseconds unless noted)
SAFETY_MARGIN_MS = 10_000
REFRESH_LAG_MS = 100
REFRESH_RETRY_SECONDS = max(1.0, _env_float("STA_REFRESH_RETRY_SECONDS", 30.0))

# Server
HOST = os.getenv("HOST", "127.0.0.1")
PORT = _env_int("PORT", 3000)


def ensure_dirs() -> None:
    """Create required directories on first run."""
    for d in (DATA_DIR, LOG_DIR):
        d.mkdir(parents=True, exist_ok=True)
