# tests/test_identity.py

from __future__ import annotations

import json
from pathlib import Path

import pytest

from collab_tasklist.connection.identity import IdentityStore


def test_client_id_is_generated_once_and_persisted(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "identity.json"
    first = IdentityStore(path)
    cid = first.client_id

    assert cid
    assert first.client_id == cid
    assert json.loads(path.read_text("utf-8"))["clientId"] == cid
    assert IdentityStore(path).client_id == cid


def test_username_round_trip(tmp_path: Path) -> None:
    path = tmp_path / "identity.json"
    store = IdentityStore(path)
    assert store.username is None

    store.set_username("  bob ")
    assert IdentityStore(path).username == "bob"

    with pytest.raises(ValueError):
        store.set_username("")


def test_corrupt_file_starts_fresh(tmp_path: Path) -> None:
    path = tmp_path / "identity.json"
    path.write_text("[not an object]", "utf-8")

    store = IdentityStore(path)
    assert store.username is None
    cid = store.client_id
    assert json.loads(path.read_text("utf-8")) == {"clientId": cid}
