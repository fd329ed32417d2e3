# src/collab_tasklist/client.py

"""
Composition of the three sync components:

    transport frames -> ConnectionManager -> MessageRouter -> StateStore -> listeners
    StateStore intents -> ConnectionManager.send -> transport

Everything here runs on one asyncio event loop.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from .config import Settings
from .connection.backoff import ReconnectPolicy
from .connection.identity import IdentityStore
from .connection.manager import ConnectionManager, websocket_factory
from .core.ports import IdentityRepo, TransportFactory
from .protocol.router import MessageRouter
from .store.state import SyncState
from .store.store import StateStore

logger = logging.getLogger(__name__)


class CollabClient:
    def __init__(
        self,
        settings: Settings,
        *,
        identity: IdentityRepo | None = None,
        connect_fn: TransportFactory | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings
        self.identity: IdentityRepo = identity or IdentityStore(settings.identity_path)

        self.connection = ConnectionManager(
            self.identity,
            policy=ReconnectPolicy.from_settings(settings),
            connect_fn=connect_fn
            or websocket_factory(open_timeout=settings.open_timeout, ping_interval=settings.ping_interval),
            announce_delay=settings.username_announce_delay,
        )
        self.store = StateStore(
            client_id=self.identity.client_id,
            sender=self.connection,
            identity=self.identity,
            username=self.identity.username,
            cursor_ttl=settings.cursor_ttl_seconds,
            clock=clock,
        )
        self.router = MessageRouter(self.store.handlers())

        self.connection.on_status = self.store.set_connection_state
        self.connection.on_frame = self.router.route
        self.connection.on_transport_error = self.store.report_transport_error
        self.connection.on_ready = self.store.rejoin

    @property
    def state(self) -> SyncState:
        return self.store.state

    def connect(self, endpoint: str | None = None) -> None:
        """Start (or restart after FAILED) the connection; must run on the event loop."""
        self.connection.connect(endpoint or self.connection.endpoint or self.settings.server_url)

    async def stop(self) -> None:
        await self.connection.disconnect()
        logger.info("Client stopped (router stats: %s)", self.router.stats)
