# src/collab_tasklist/core/errors.py

from __future__ import annotations


class CollabError(Exception):
    """Base class for errors raised by the sync layer."""


class ProtocolError(CollabError, ValueError):
    """Something on the wire could not be understood."""


class MalformedFrameError(ProtocolError):
    """Frame is not UTF-8 JSON, not an object, or lacks `type`/`data`."""


class UnknownMessageError(ProtocolError):
    """Well-formed envelope whose `type` is not part of the protocol."""

    def __init__(self, kind: str) -> None:
        super().__init__(f"unknown message type: {kind!r}")
        self.kind = kind


class PayloadError(ProtocolError):
    """Known message type, but `data` does not have the expected shape."""
