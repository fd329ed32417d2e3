# tests/test_config.py

from __future__ import annotations

from pathlib import Path

import pytest

from collab_tasklist.config import DEFAULT_SERVER_URL, Settings


def test_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in ("SERVER_URL", "DATA_DIR", "IDENTITY_PATH", "MAX_RECONNECT_ATTEMPTS", "RECONNECT_MAX_DELAY"):
        monkeypatch.delenv(f"COLLAB_{key}", raising=False)

    s = Settings.from_env()
    assert s.server_url == DEFAULT_SERVER_URL
    assert s.data_dir == Path(".local/collab")
    assert s.identity_path == Path(".local/collab") / "identity.json"
    assert s.max_reconnect_attempts == 10
    assert s.reconnect_max_delay == 30.0


def test_env_overrides_and_clamping(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("COLLAB_SERVER_URL", "wss://tasks.example/ws")
    monkeypatch.setenv("COLLAB_DATA_DIR", str(tmp_path))
    monkeypatch.delenv("COLLAB_IDENTITY_PATH", raising=False)
    monkeypatch.setenv("COLLAB_MAX_RECONNECT_ATTEMPTS", "-3")
    monkeypatch.setenv("COLLAB_RECONNECT_BASE_DELAY", "not-a-number")
    monkeypatch.setenv("COLLAB_CONSOLE_ENABLED", "off")

    s = Settings.from_env()
    assert s.server_url == "wss://tasks.example/ws"
    assert s.identity_path == tmp_path / "identity.json"
    assert s.max_reconnect_attempts == 0
    assert s.reconnect_base_delay == 1.0
    assert s.console_enabled is False
