# src/collab_tasklist/connectors/background.py

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from typing import Any, TypeVar

from ..client import CollabClient
from ..logging_setup import CLIENT_THREAD_NAME

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def _run_client(client: CollabClient, stop_event: asyncio.Event) -> None:
    """
    Client lifecycle on the background loop:

    connect -> (frames flow until stop) -> disconnect

    Shutdown model:
    - main thread sets stop_event via loop.call_soon_threadsafe(stop_event.set);
    - disconnect() cancels the pending reconnect timer before closing the socket.
    """
    client.connect()
    try:
        await stop_event.wait()
    finally:
        await client.stop()


async def _invoke(fn: Callable[..., T], *args: Any) -> T:
    return fn(*args)


@dataclass
class ClientBackgroundRunner:
    thread: threading.Thread
    loop: asyncio.AbstractEventLoop
    stop_event: asyncio.Event

    def call(self, coro: Coroutine[Any, Any, T], timeout: float | None = 10.0) -> T:
        """Run a coroutine on the client loop and wait for its result (from another thread)."""
        fut = asyncio.run_coroutine_threadsafe(coro, self.loop)
        return fut.result(timeout=timeout)

    def call_sync(self, fn: Callable[..., T], *args: Any, timeout: float | None = 10.0) -> T:
        """Run a plain loop-bound function (e.g. client.connect) on the client loop."""
        return self.call(_invoke(fn, *args), timeout=timeout)

    def stop(self) -> None:
        try:
            self.loop.call_soon_threadsafe(self.stop_event.set)
        except RuntimeError:
            logger.debug("Failed to signal client stop.", exc_info=True)

    def join(self, timeout: float | None = None) -> None:
        self.thread.join(timeout=timeout)


def start_client_in_background(client: CollabClient) -> ClientBackgroundRunner | None:
    """
    Start the sync client in a background thread with its own event loop.

    The console REPL is blocking (input()), the client is async; commands reach the
    client through ClientBackgroundRunner.call().
    """
    ready = threading.Event()
    holder: dict[str, object] = {}

    def runner() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        stop_event = asyncio.Event()

        holder["loop"] = loop
        holder["stop_event"] = stop_event
        ready.set()

        try:
            loop.run_until_complete(_run_client(client, stop_event))
        except Exception:
            logger.exception("Client loop crashed.")
        finally:
            with contextlib.suppress(Exception):
                loop.run_until_complete(loop.shutdown_asyncgens())
            with contextlib.suppress(Exception):
                loop.close()

    t = threading.Thread(target=runner, name=CLIENT_THREAD_NAME, daemon=True)
    t.start()

    ready.wait(timeout=5.0)
    loop = holder.get("loop")
    stop_event = holder.get("stop_event")

    if not isinstance(loop, asyncio.AbstractEventLoop) or not isinstance(stop_event, asyncio.Event):
        logger.error("Client thread did not initialize properly.")
        return None

    logger.info("Client background thread started.")
    return ClientBackgroundRunner(thread=t, loop=loop, stop_event=stop_event)
