# src/collab_tasklist/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires the identity file, transport and reconnect policy into a CollabClient.
"""

from __future__ import annotations

import logging

from ..client import CollabClient
from ..config import Settings, get_settings
from ..connection.identity import IdentityStore
from ..core.ports import TransportFactory

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings: Settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.identity_path.parent.mkdir(parents=True, exist_ok=True)


def create_client(*, settings: Settings | None = None, connect_fn: TransportFactory | None = None) -> CollabClient:
    """
    Create a CollabClient from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    identity = IdentityStore(settings.identity_path)
    client = CollabClient(settings, identity=identity, connect_fn=connect_fn)
    logger.info(
        "Client %s ready (username=%s, server=%s)",
        identity.client_id,
        identity.username or "-",
        settings.server_url,
    )
    return client
