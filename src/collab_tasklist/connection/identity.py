# src/collab_tasklist/connection/identity.py

from __future__ import annotations

import contextlib
import json
import logging
import os
import uuid
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

_KEY_CLIENT_ID = "clientId"
_KEY_USERNAME = "username"


def _safe_mkdir(path: Path) -> None:
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.warning("Failed to create directory %s: %r", path, e)


def _load_json(path: Path) -> dict[str, Any]:
    raw = path.read_text("utf-8")
    val = json.loads(raw)
    if isinstance(val, dict):
        return val
    raise ValueError("Expected JSON object")


def _atomic_write_json(path: Path, data: dict[str, Any]) -> None:
    tmp = path.with_suffix(".tmp")
    tmp.write_text(json.dumps(data, ensure_ascii=False), "utf-8")
    os.replace(tmp, path)
    with contextlib.suppress(OSError):
        # Best-effort: not critical on Windows or restricted FS.
        os.chmod(path, 0o600)


def generate_client_id() -> str:
    return str(uuid.uuid4())


class IdentityStore:
    """
    Durable client identity (+ last display name) kept in one small JSON file.

    Why a file:
    - the server recognizes a returning participant (and its task list ownership)
      by client id, so the id must survive reconnects and process restarts;
    - the display name is re-announced automatically after every reconnect.

    The id is generated lazily on first access and never rotated by the client.
    Write failures are logged; the in-memory values stay usable for this process.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._data: dict[str, Any] | None = None

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, Any]:
        if self._data is not None:
            return self._data

        data: dict[str, Any] = {}
        if self._path.exists():
            try:
                data = _load_json(self._path)
            except (OSError, ValueError) as e:
                logger.warning("Failed to read identity file %s, starting fresh: %r", self._path, e)
                data = {}
        self._data = data
        return data

    def _save(self) -> None:
        data = self._load()
        _safe_mkdir(self._path.parent)
        try:
            _atomic_write_json(self._path, data)
        except OSError as e:
            logger.error("Failed to write identity file %s: %r", self._path, e)

    @property
    def client_id(self) -> str:
        data = self._load()
        cid = data.get(_KEY_CLIENT_ID)
        if isinstance(cid, str) and cid.strip():
            return cid

        cid = generate_client_id()
        data[_KEY_CLIENT_ID] = cid
        self._save()
        logger.info("Generated new client id %s (stored in %s)", cid, self._path)
        return cid

    @property
    def username(self) -> str | None:
        name = self._load().get(_KEY_USERNAME)
        if isinstance(name, str) and name.strip():
            return name
        return None

    def set_username(self, username: str) -> None:
        name = (username or "").strip()
        if not name:
            raise ValueError("username is required")
        data = self._load()
        if data.get(_KEY_USERNAME) == name:
            return
        data[_KEY_USERNAME] = name
        self._save()
        logger.debug("Saved username %r", name)
