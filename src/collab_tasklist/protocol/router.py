# src/collab_tasklist/protocol/router.py

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from ..core.errors import MalformedFrameError, UnknownMessageError
from .messages import InboundKind, decode_frame

InboundHandler = Callable[[Any], None]

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RouterStats:
    routed: int = 0
    malformed: int = 0
    unknown: int = 0
    failed: int = 0


class MessageRouter:
    """
    Decode inbound frames and hand `data` to the handler registered for its kind.

    Frames are processed strictly one at a time, in the order `route()` is called.
    Nothing raised while decoding or handling a frame escapes `route()`: one bad
    frame never breaks the stream.
    """

    def __init__(self, handlers: Mapping[InboundKind, InboundHandler]) -> None:
        missing = [k.value for k in InboundKind if k not in handlers]
        if missing:
            raise ValueError(f"no handler registered for message kinds: {', '.join(missing)}")
        self._handlers: dict[InboundKind, InboundHandler] = dict(handlers)
        self.stats = RouterStats()

    def route(self, frame: str | bytes) -> bool:
        """Returns True if the frame reached its handler and the handler completed."""
        try:
            envelope = decode_frame(frame)
        except UnknownMessageError as e:
            self.stats.unknown += 1
            logger.warning("Unknown message type %r ignored", e.kind)
            return False
        except MalformedFrameError as e:
            self.stats.malformed += 1
            logger.error("Dropping malformed frame (%s): %.120r", e, frame)
            return False

        handler = self._handlers[envelope.kind]
        logger.debug("Routing %s", envelope.kind.value)
        try:
            handler(envelope.data)
        except Exception:
            self.stats.failed += 1
            logger.exception("Handler for %s failed", envelope.kind.value)
            return False

        self.stats.routed += 1
        return True
