# src/collab_tasklist/core/models.py

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from .errors import PayloadError


def _require_dict(data: Any, what: str) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise PayloadError(f"{what}: expected JSON object, got {type(data).__name__}")
    return data


def _req_str(data: dict[str, Any], key: str, what: str) -> str:
    val = data.get(key)
    if not isinstance(val, str) or not val:
        raise PayloadError(f"{what}: field {key!r} must be a non-empty string")
    return val


def _opt_str(data: dict[str, Any], key: str, default: str = "") -> str:
    val = data.get(key)
    if val is None:
        return default
    if not isinstance(val, str):
        raise PayloadError(f"field {key!r} must be a string")
    return val


def _opt_id(data: dict[str, Any], key: str) -> str | None:
    # Missing, null and "" all mean "no reference".
    val = data.get(key)
    if val is None or val == "":
        return None
    if not isinstance(val, str):
        raise PayloadError(f"field {key!r} must be a string or null")
    return val


def _opt_bool(data: dict[str, Any], key: str, default: bool = False) -> bool:
    val = data.get(key)
    if val is None:
        return default
    if not isinstance(val, bool):
        raise PayloadError(f"field {key!r} must be a boolean")
    return val


@dataclass(frozen=True, slots=True)
class Task:
    id: str
    task_list_id: str
    title: str
    description: str = ""
    completed: bool = False
    parent_id: str | None = None
    # Timestamps are kept exactly as the server formats them (RFC 3339).
    created_at: str = ""
    updated_at: str = ""

    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    @classmethod
    def from_wire(cls, data: Any) -> Task:
        """
        Parse a server task object.

        Unknown keys are ignored; in particular an embedded `subTasks` list is NOT
        interpreted: the hierarchy is carried only by `parentId`.
        """
        d = _require_dict(data, "task")
        return cls(
            id=_req_str(d, "id", "task"),
            task_list_id=_opt_str(d, "taskListId"),
            title=_opt_str(d, "title"),
            description=_opt_str(d, "description"),
            completed=_opt_bool(d, "completed"),
            parent_id=_opt_id(d, "parentId"),
            created_at=_opt_str(d, "createdAt"),
            updated_at=_opt_str(d, "updatedAt"),
        )

    def to_wire(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "id": self.id,
            "taskListId": self.task_list_id,
            "title": self.title,
            "description": self.description,
            "completed": self.completed,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        if self.parent_id is not None:
            out["parentId"] = self.parent_id
        return out


@dataclass(frozen=True, slots=True)
class TaskList:
    id: str
    owner_id: str
    owner_name: str
    title: str
    is_locked: bool = False
    created_at: str = ""
    updated_at: str = ""

    def is_owned_by(self, client_id: str) -> bool:
        return bool(client_id) and self.owner_id == client_id

    @classmethod
    def from_wire(cls, data: Any) -> TaskList:
        d = _require_dict(data, "taskList")
        return cls(
            id=_req_str(d, "id", "taskList"),
            owner_id=_opt_str(d, "ownerId"),
            owner_name=_opt_str(d, "ownerName"),
            title=_opt_str(d, "title"),
            is_locked=_opt_bool(d, "isLocked"),
            created_at=_opt_str(d, "createdAt"),
            updated_at=_opt_str(d, "updatedAt"),
        )

    def to_wire(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "ownerId": self.owner_id,
            "ownerName": self.owner_name,
            "title": self.title,
            "isLocked": self.is_locked,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


@dataclass(frozen=True, slots=True)
class CursorPosition:
    user_id: str
    task_id: str
    position: int
    # Local receive time (monotonic seconds); used only for staleness, not compared.
    seen_at: float = field(default=0.0, compare=False)

    @classmethod
    def from_wire(cls, data: Any, *, seen_at: float = 0.0) -> CursorPosition:
        d = _require_dict(data, "cursor_position")
        pos = d.get("position")
        # bool is an int subclass; reject it explicitly.
        if not isinstance(pos, int) or isinstance(pos, bool) or pos < 0:
            raise PayloadError("cursor_position: field 'position' must be a non-negative integer")
        return cls(
            user_id=_req_str(d, "userId", "cursor_position"),
            task_id=_req_str(d, "taskId", "cursor_position"),
            position=pos,
            seen_at=seen_at,
        )


@dataclass(frozen=True, slots=True)
class ErrorInfo:
    code: str
    message: str

    @classmethod
    def from_wire(cls, data: Any) -> ErrorInfo:
        d = _require_dict(data, "error")
        message = d.get("message")
        if not isinstance(message, str):
            raise PayloadError("error: field 'message' must be a string")
        code = d.get("code")
        return cls(code=code if isinstance(code, str) and code else "UNKNOWN", message=message)


CONNECTION_FAILED = ErrorInfo(
    code="CONNECTION_FAILED",
    message="Failed to connect to the server after multiple attempts",
)


class ConnectionStatus(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class ConnectionState:
    status: ConnectionStatus = ConnectionStatus.DISCONNECTED
    # Reconnect attempt number; meaningful only while RECONNECTING (and kept on FAILED).
    attempt: int = 0

    @property
    def is_connected(self) -> bool:
        return self.status is ConnectionStatus.CONNECTED

    @property
    def is_reconnecting(self) -> bool:
        return self.status is ConnectionStatus.RECONNECTING

    def describe(self) -> str:
        if self.status is ConnectionStatus.RECONNECTING:
            return f"reconnecting (attempt {self.attempt})"
        if self.status is ConnectionStatus.FAILED:
            return f"failed after {self.attempt} attempts"
        return self.status.value
