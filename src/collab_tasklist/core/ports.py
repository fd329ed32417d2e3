# src/collab_tasklist/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the sync layer.

The store and the connection manager depend on Protocols instead of concrete
implementations. This keeps the transport and the identity storage swappable and
lets tests drive the whole client without a network.
"""

from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from typing import Any, Protocol

Frame = str | bytes


class Transport(Protocol):
    """
    One open full-duplex text connection.

    Iteration yields inbound frames in arrival order. It ends normally on a clean
    close and raises (ConnectionClosed / OSError) on an abrupt one.
    """

    async def send(self, message: str) -> None: ...
    async def close(self) -> None: ...
    def __aiter__(self) -> AsyncIterator[Frame]: ...


TransportFactory = Callable[[str], Awaitable[Transport]]
# Opens a Transport to the given URL; raises OSError / WebSocketException / TimeoutError on failure.


class IdentityRepo(Protocol):
    """The two durably persisted client fields."""

    @property
    def client_id(self) -> str: ...

    @property
    def username(self) -> str | None: ...

    def set_username(self, username: str) -> None: ...


class OutboundSender(Protocol):
    """
    How the store hands intents to the network.

    Returns False (and logs) when there is no open connection; never raises for
    transport problems.
    """

    async def send(self, kind: Any, payload: Mapping[str, Any]) -> bool: ...
