# src/collab_tasklist/protocol/messages.py

"""
Wire envelope: every frame is one UTF-8 JSON object `{"type": str, "data": any}`.

Both directions use a closed set of message kinds. Inbound frames with an
unrecognized `type` are reported as UnknownMessageError so callers can ignore
them (forward compatible with protocol additions on the server).
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from ..core.errors import MalformedFrameError, UnknownMessageError


class InboundKind(StrEnum):
    """Server -> client message types (aliases from older server builds included)."""

    INITIAL_STATE = "initial_state"
    TASK_LIST_DATA = "task_list_data"
    TASK_CREATED = "task_created"
    CREATE_TASK = "create_task"
    TASK_UPDATED = "task_updated"
    UPDATE_TASK = "update_task"
    TASK_DELETED = "task_deleted"
    DELETE_TASK = "delete_task"
    CURSOR_POSITION = "cursor_position"
    USERNAME_SET = "username_set"
    TASK_LIST_CREATED = "task_list_created"
    TASK_LIST_UPDATED = "task_list_updated"
    ERROR = "error"


class OutboundKind(StrEnum):
    """Client -> server message types."""

    SET_USERNAME = "set_username"
    CREATE_TASK_LIST = "create_task_list"
    GET_TASK_LIST = "get_task_list"
    TOGGLE_LOCK_TASK_LIST = "toggle_lock_task_list"
    CREATE_TASK = "create_task"
    UPDATE_TASK = "update_task"
    DELETE_TASK = "delete_task"
    CURSOR_POSITION = "cursor_position"


@dataclass(frozen=True, slots=True)
class Envelope:
    kind: InboundKind
    # Passed through untouched; shape validation belongs to the store.
    data: Any


def decode_frame(frame: str | bytes) -> Envelope:
    """
    Parse one inbound frame.

    Raises:
        MalformedFrameError: not UTF-8, not JSON, not an object, or missing `type`/`data`.
        UnknownMessageError: well-formed, but `type` is not an InboundKind.
    """
    if isinstance(frame, (bytes, bytearray)):
        try:
            frame = bytes(frame).decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedFrameError("frame is not valid UTF-8") from e

    try:
        obj = json.loads(frame)
    except json.JSONDecodeError as e:
        raise MalformedFrameError(f"invalid JSON at pos {e.pos}: {e.msg}") from e

    if not isinstance(obj, dict):
        raise MalformedFrameError(f"frame is a JSON {type(obj).__name__}, expected object")

    raw_type = obj.get("type")
    if not isinstance(raw_type, str) or not raw_type:
        raise MalformedFrameError("frame has no 'type'")
    if "data" not in obj:
        raise MalformedFrameError(f"frame of type {raw_type!r} has no 'data'")

    try:
        kind = InboundKind(raw_type)
    except ValueError:
        raise UnknownMessageError(raw_type) from None

    return Envelope(kind=kind, data=obj["data"])


def encode_message(kind: OutboundKind, payload: Mapping[str, Any]) -> str:
    """Serialize one outbound message as a single text frame."""
    return json.dumps({"type": str(kind), "data": dict(payload)}, ensure_ascii=False)
