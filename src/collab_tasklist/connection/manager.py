# src/collab_tasklist/connection/manager.py

"""
Connection lifecycle for the collaboration server.

State machine:

    DISCONNECTED --connect--> CONNECTING --open--> CONNECTED
    CONNECTED --close--> RECONNECTING(n) --open--> CONNECTED
    RECONNECTING(n) --close, n >= max--> FAILED
    any --disconnect--> DISCONNECTED

Shutdown model:
- the pending reconnect is an owned asyncio.TimerHandle, cancelled synchronously by
  disconnect() before the socket is closed;
- the username re-announce after open is an owned task, cancelled on close/disconnect.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from ..core.models import ConnectionState, ConnectionStatus
from ..core.ports import Frame, IdentityRepo, Transport, TransportFactory
from ..protocol.messages import OutboundKind, encode_message
from .backoff import ReconnectPolicy

logger = logging.getLogger(__name__)

StatusListener = Callable[[ConnectionState], None]
FrameListener = Callable[[Frame], None]
ErrorListener = Callable[[BaseException], None]
ReadyHook = Callable[[bool], Awaitable[None]]
# ReadyHook(reconnected) runs after the post-open username announce. `reconnected` is
# True for every open after the first one in this manager's lifetime, including a
# manual connect() after FAILED or disconnect().

_OPEN_ERRORS = (OSError, WebSocketException, asyncio.TimeoutError)
_READ_ERRORS = (ConnectionClosed, OSError)


def with_client_id(endpoint: str, client_id: str) -> str:
    """Append (or replace) the clientId query parameter on the endpoint URL."""
    parts = urlsplit(endpoint)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != "clientId"]
    query.append(("clientId", client_id))
    return urlunsplit(parts._replace(query=urlencode(query)))


def websocket_factory(*, open_timeout: float = 10.0, ping_interval: float | None = 30.0) -> TransportFactory:
    """Default transport: a `websockets` client connection."""

    async def _open(url: str) -> Transport:
        return await websockets.connect(
            url,
            open_timeout=open_timeout,
            ping_interval=ping_interval or None,
            close_timeout=5,
        )

    return _open


async def _close_quietly(transport: Transport) -> None:
    try:
        await transport.close()
    except Exception:
        logger.debug("Transport close failed.", exc_info=True)


class ConnectionManager:
    """
    Owns the single transport connection and the automatic reconnect policy.

    Must be used from one asyncio event loop. Inbound frames are delivered to
    `on_frame` synchronously, one at a time, in arrival order.
    """

    def __init__(
        self,
        identity: IdentityRepo,
        *,
        policy: ReconnectPolicy | None = None,
        connect_fn: TransportFactory | None = None,
        announce_delay: float = 0.3,
        on_status: StatusListener | None = None,
        on_frame: FrameListener | None = None,
        on_transport_error: ErrorListener | None = None,
        on_ready: ReadyHook | None = None,
    ) -> None:
        self._identity = identity
        self._policy = policy or ReconnectPolicy()
        self._connect_fn = connect_fn or websocket_factory()
        self._announce_delay = max(0.0, float(announce_delay))

        self.on_status = on_status
        self.on_frame = on_frame
        self.on_transport_error = on_transport_error
        self.on_ready = on_ready

        self._state = ConnectionState()
        self._endpoint: str | None = None
        self._transport: Transport | None = None
        self._conn_task: asyncio.Task[None] | None = None
        self._announce_task: asyncio.Task[None] | None = None
        self._reconnect_handle: asyncio.TimerHandle | None = None
        self._attempts = 0
        self._stopped = True
        self._opened_before = False

    # ---- read-only views ----

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def endpoint(self) -> str | None:
        return self._endpoint

    @property
    def policy(self) -> ReconnectPolicy:
        return self._policy

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_handle is not None

    @property
    def is_connected(self) -> bool:
        return self._state.status is ConnectionStatus.CONNECTED and self._transport is not None

    # ---- public API ----

    def connect(self, endpoint: str | None = None) -> None:
        """
        Start connecting (must be called on the event loop).

        No-op while connected or while an attempt is in flight. From DISCONNECTED or
        FAILED this starts a fresh cycle with the attempt counter at zero. While a
        reconnect is merely scheduled, the timer is dropped and the attempt starts now.
        """
        if endpoint:
            self._endpoint = endpoint
        if not self._endpoint:
            raise ValueError("endpoint is required")

        if self._state.status in (ConnectionStatus.CONNECTED, ConnectionStatus.CONNECTING):
            logger.debug("connect() ignored: already %s", self._state.status.value)
            return
        if self._conn_task is not None and not self._conn_task.done():
            logger.debug("connect() ignored: attempt in flight")
            return

        self._stopped = False
        self._cancel_reconnect()

        if self._state.status in (ConnectionStatus.DISCONNECTED, ConnectionStatus.FAILED):
            self._attempts = 0
            self._set_state(ConnectionState(ConnectionStatus.CONNECTING))

        self._start_attempt()

    async def send(self, kind: OutboundKind, payload: Mapping[str, Any]) -> bool:
        """
        Serialize and transmit one message. Messages are never queued: without an
        open connection this logs and returns False.
        """
        transport = self._transport
        if transport is None or self._state.status is not ConnectionStatus.CONNECTED:
            logger.error("Not connected, dropping %s message", kind)
            return False

        text = encode_message(kind, payload)
        try:
            await transport.send(text)
        except _READ_ERRORS as e:
            logger.error("Failed to send %s message: %r", kind, e)
            return False
        logger.debug("Sent %s", kind)
        return True

    async def disconnect(self) -> None:
        """Idempotent. Cancels any pending reconnect, closes the socket, stops reconnecting."""
        self._stopped = True
        self._cancel_reconnect()
        self._cancel_announce()

        transport, self._transport = self._transport, None
        task, self._conn_task = self._conn_task, None

        if transport is not None:
            await _close_quietly(transport)

        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        self._attempts = 0
        if self._state.status is not ConnectionStatus.DISCONNECTED:
            logger.info("Disconnected from %s", self._endpoint)
            self._set_state(ConnectionState(ConnectionStatus.DISCONNECTED))

    # ---- internals ----

    def _set_state(self, new_state: ConnectionState) -> None:
        if new_state == self._state:
            return
        self._state = new_state
        if self.on_status is None:
            return
        try:
            self.on_status(new_state)
        except Exception:
            logger.exception("Connection status listener failed.")

    def _report_error(self, exc: BaseException) -> None:
        if self.on_transport_error is None:
            return
        try:
            self.on_transport_error(exc)
        except Exception:
            logger.exception("Transport error listener failed.")

    def _start_attempt(self) -> None:
        assert self._endpoint is not None
        loop = asyncio.get_running_loop()
        self._conn_task = loop.create_task(self._run_connection(self._endpoint), name="collab-connection")

    def _cancel_reconnect(self) -> None:
        handle, self._reconnect_handle = self._reconnect_handle, None
        if handle is not None:
            handle.cancel()

    def _cancel_announce(self) -> None:
        task, self._announce_task = self._announce_task, None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    async def _run_connection(self, endpoint: str) -> None:
        url = with_client_id(endpoint, self._identity.client_id)
        logger.info("Connecting to %s (attempt %d)", endpoint, self._attempts)

        try:
            transport = await self._connect_fn(url)
        except _OPEN_ERRORS as e:
            logger.warning("Connection to %s failed: %r", endpoint, e)
            self._report_error(e)
            self._handle_close()
            return
        except Exception as e:
            logger.exception("Unexpected error while connecting to %s", endpoint)
            self._report_error(e)
            self._handle_close()
            return

        if self._stopped:
            # disconnect() won the race against the open.
            await _close_quietly(transport)
            return

        self._transport = transport
        self._handle_open()

        try:
            async for frame in transport:
                self._deliver(frame)
        except _READ_ERRORS as e:
            logger.warning("Connection lost: %r", e)
            self._report_error(e)
        finally:
            if self._transport is transport:
                self._transport = None

        logger.info("Connection to %s closed", endpoint)
        self._handle_close()

    def _deliver(self, frame: Frame) -> None:
        if self.on_frame is None:
            return
        try:
            self.on_frame(frame)
        except Exception:
            logger.exception("Frame listener failed.")

    def _handle_open(self) -> None:
        reconnected = self._opened_before
        self._opened_before = True
        self._attempts = 0
        logger.info("Connected to %s", self._endpoint)
        self._set_state(ConnectionState(ConnectionStatus.CONNECTED))

        self._cancel_announce()
        self._announce_task = asyncio.get_running_loop().create_task(
            self._after_open(reconnected), name="collab-announce"
        )

    async def _after_open(self, reconnected: bool) -> None:
        # The server may not process identity messages in the first instant after open.
        await asyncio.sleep(self._announce_delay)

        username = self._identity.username
        if username:
            await self.send(OutboundKind.SET_USERNAME, {"username": username})

        if self.on_ready is not None:
            try:
                await self.on_ready(reconnected)
            except Exception:
                logger.exception("Connection ready hook failed.")

    def _handle_close(self) -> None:
        self._cancel_announce()
        if self._stopped:
            return

        if self._policy.exhausted(self._attempts):
            logger.error(
                "Max reconnection attempts reached (%d), giving up on %s",
                self._attempts,
                self._endpoint,
            )
            self._set_state(ConnectionState(ConnectionStatus.FAILED, attempt=self._attempts))
            return

        delay = self._policy.delay_for(self._attempts)
        self._attempts += 1
        self._set_state(ConnectionState(ConnectionStatus.RECONNECTING, attempt=self._attempts))
        logger.info(
            "Reconnecting in %.1fs (attempt %d/%d)",
            delay,
            self._attempts,
            self._policy.max_attempts,
        )
        self._cancel_reconnect()
        self._reconnect_handle = asyncio.get_running_loop().call_later(delay, self._reconnect)

    def _reconnect(self) -> None:
        self._reconnect_handle = None
        if self._stopped:
            return
        self._start_attempt()
