# src/collab_tasklist/store/events.py

"""Closed set of events the store reacts to (server-originated and local)."""

from __future__ import annotations

from dataclasses import dataclass

from ..core.models import ConnectionState, CursorPosition, ErrorInfo, Task, TaskList


@dataclass(frozen=True, slots=True)
class SnapshotReceived:
    # None keeps the current list metadata (bare task-array snapshots).
    task_list: TaskList | None
    tasks: tuple[Task, ...]
    # None means "derive from ownerId".
    is_owner: bool | None = None


@dataclass(frozen=True, slots=True)
class TaskCreated:
    task: Task


@dataclass(frozen=True, slots=True)
class TaskUpdated:
    task: Task


@dataclass(frozen=True, slots=True)
class TaskDeleted:
    task_id: str
    task_list_id: str | None = None


@dataclass(frozen=True, slots=True)
class CursorMoved:
    cursor: CursorPosition


@dataclass(frozen=True, slots=True)
class CursorsExpired:
    # Drop every cursor last seen before this monotonic timestamp.
    before: float


@dataclass(frozen=True, slots=True)
class UsernameConfirmed:
    username: str | None
    task_list: TaskList | None = None


@dataclass(frozen=True, slots=True)
class TaskListChanged:
    task_list: TaskList
    created: bool = False


@dataclass(frozen=True, slots=True)
class ServerErrorReported:
    error: ErrorInfo


@dataclass(frozen=True, slots=True)
class ErrorDismissed:
    pass


@dataclass(frozen=True, slots=True)
class ConnectionStatusChanged:
    connection: ConnectionState


@dataclass(frozen=True, slots=True)
class TransportFailed:
    detail: str


@dataclass(frozen=True, slots=True)
class LoadingStarted:
    task_list_id: str


@dataclass(frozen=True, slots=True)
class LoadingCancelled:
    task_list_id: str


StoreEvent = (
    SnapshotReceived
    | TaskCreated
    | TaskUpdated
    | TaskDeleted
    | CursorMoved
    | CursorsExpired
    | UsernameConfirmed
    | TaskListChanged
    | ServerErrorReported
    | ErrorDismissed
    | ConnectionStatusChanged
    | TransportFailed
    | LoadingStarted
    | LoadingCancelled
)
