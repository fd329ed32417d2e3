# src/collab_tasklist/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- No secrets and no network access required at import time.
- Every tunable of the sync layer (reconnect policy, timeouts, presence TTL) lives here.

Environment variables (prefix COLLAB_):
    COLLAB_APP_NAME                 App display name (default: collab-tasklist).
    COLLAB_LOG_LEVEL                Console logging level (default: INFO).
    COLLAB_SERVER_URL               WebSocket endpoint (default: ws://localhost:8080/ws).
    COLLAB_DATA_DIR                 Local data directory (default: .local/collab).
    COLLAB_IDENTITY_PATH            Client identity JSON (default: <data_dir>/identity.json).
    COLLAB_CONSOLE_ENABLED          Run the interactive console (true/false).
    COLLAB_MAX_RECONNECT_ATTEMPTS   Automatic reconnect attempts before giving up (default: 10).
    COLLAB_RECONNECT_BASE_DELAY     Delay before the first reconnect, seconds (default: 1.0).
    COLLAB_RECONNECT_STEP           Delay growth per attempt, seconds (default: 1.0).
    COLLAB_RECONNECT_MAX_DELAY      Delay cap, seconds (default: 30.0).
    COLLAB_USERNAME_ANNOUNCE_DELAY  Pause after open before re-sending the username (default: 0.3).
    COLLAB_OPEN_TIMEOUT             Connection open timeout, seconds (default: 10.0).
    COLLAB_PING_INTERVAL            Keepalive ping interval, seconds; 0 disables (default: 30.0).
    COLLAB_CURSOR_TTL               Presence entry lifetime, seconds; 0 disables (default: 120.0).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "COLLAB"

DEFAULT_SERVER_URL = "ws://localhost:8080/ws"

# Never override variables that are already set in the real environment.
load_dotenv(override=False)


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    s = raw.strip()
    if not s:
        return default
    try:
        return float(s)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Connector flags ----
    console_enabled: bool

    # ---- Server ----
    server_url: str

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    identity_path: Path

    # ---- Reconnect policy ----
    max_reconnect_attempts: int
    reconnect_base_delay: float
    reconnect_step: float
    reconnect_max_delay: float

    # ---- Transport tuning ----
    username_announce_delay: float
    open_timeout: float
    ping_interval: float

    # ---- Presence ----
    cursor_ttl_seconds: float

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "collab-tasklist").strip() or "collab-tasklist"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)

        server_url = _env(_k("SERVER_URL"), DEFAULT_SERVER_URL).strip() or DEFAULT_SERVER_URL

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/collab"))
        identity_path = _env_path(_k("IDENTITY_PATH"), data_dir / "identity.json")

        # Negative values make no sense for any of these; clamp instead of failing at startup.
        max_reconnect_attempts = max(0, _env_int(_k("MAX_RECONNECT_ATTEMPTS"), 10))
        reconnect_base_delay = max(0.0, _env_float(_k("RECONNECT_BASE_DELAY"), 1.0))
        reconnect_step = max(0.0, _env_float(_k("RECONNECT_STEP"), 1.0))
        reconnect_max_delay = max(0.0, _env_float(_k("RECONNECT_MAX_DELAY"), 30.0))

        username_announce_delay = max(0.0, _env_float(_k("USERNAME_ANNOUNCE_DELAY"), 0.3))
        open_timeout = max(0.1, _env_float(_k("OPEN_TIMEOUT"), 10.0))
        ping_interval = max(0.0, _env_float(_k("PING_INTERVAL"), 30.0))

        cursor_ttl_seconds = max(0.0, _env_float(_k("CURSOR_TTL"), 120.0))

        return Settings(
            app_name=app_name,
            log_level=log_level,
            console_enabled=console_enabled,
            server_url=server_url,
            data_dir=data_dir,
            identity_path=identity_path,
            max_reconnect_attempts=max_reconnect_attempts,
            reconnect_base_delay=reconnect_base_delay,
            reconnect_step=reconnect_step,
            reconnect_max_delay=reconnect_max_delay,
            username_announce_delay=username_announce_delay,
            open_timeout=open_timeout,
            ping_interval=ping_interval,
            cursor_ttl_seconds=cursor_ttl_seconds,
        )


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    """Return the process-wide settings, reading the environment on first use."""
    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = Settings.from_env()
    return _SETTINGS
