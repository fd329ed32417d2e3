# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from collab_tasklist.client import CollabClient
from collab_tasklist.store.store import StateStore

from .fakes import FakeClock, FakeIdentity, FakeSender, FakeServer


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with CollabClient.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic (tiny delays, no real network).
    """
    return SimpleNamespace(
        app_name="collab-test",
        log_level="DEBUG",
        console_enabled=False,
        server_url="ws://collab.test/ws",
        data_dir=tmp_path,
        identity_path=tmp_path / "identity.json",
        max_reconnect_attempts=5,
        reconnect_base_delay=0.01,
        reconnect_step=0.0,
        reconnect_max_delay=0.05,
        username_announce_delay=0.0,
        open_timeout=1.0,
        ping_interval=0.0,
        cursor_ttl_seconds=60.0,
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def identity() -> FakeIdentity:
    return FakeIdentity()


@pytest.fixture()
def sender() -> FakeSender:
    return FakeSender()


@pytest.fixture()
def store(identity: FakeIdentity, sender: FakeSender, clock: FakeClock) -> StateStore:
    """StateStore wired to a recording sender (no connection involved)."""
    return StateStore(
        client_id=identity.client_id,
        sender=sender,
        identity=identity,
        cursor_ttl=60.0,
        clock=clock,
    )


@pytest.fixture()
def server() -> FakeServer:
    return FakeServer()


@pytest.fixture()
def client(settings: SimpleNamespace, identity: FakeIdentity, server: FakeServer, clock: FakeClock) -> CollabClient:
    """Full client (manager + router + store) talking to an in-memory server."""
    return CollabClient(settings, identity=identity, connect_fn=server.connect, clock=clock)
