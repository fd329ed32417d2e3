# src/collab_tasklist/store/store.py

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any, assert_never

from ..core.errors import PayloadError
from ..core.models import ConnectionState, CursorPosition, ErrorInfo, Task, TaskList
from ..core.ports import IdentityRepo, OutboundSender
from ..core.tree import would_create_cycle
from ..protocol.messages import InboundKind, OutboundKind
from .events import (
    ConnectionStatusChanged,
    CursorMoved,
    CursorsExpired,
    ErrorDismissed,
    LoadingCancelled,
    LoadingStarted,
    ServerErrorReported,
    SnapshotReceived,
    StoreEvent,
    TaskCreated,
    TaskDeleted,
    TaskListChanged,
    TaskUpdated,
    TransportFailed,
    UsernameConfirmed,
)
from .state import SyncState
from .transitions import reduce

StateListener = Callable[[SyncState], None]
InboundHandler = Callable[[Any], None]

logger = logging.getLogger(__name__)


def _unwrap(data: Any, key: str) -> Any:
    """Accept both `{key: {...}}` and the bare object (older server builds)."""
    if isinstance(data, dict) and isinstance(data.get(key), dict):
        return data[key]
    return data


def _parse_tasks(raw: Any) -> tuple[Task, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise PayloadError("snapshot: 'tasks' must be an array")
    return tuple(Task.from_wire(item) for item in raw)


class StateStore:
    """
    Canonical client-visible state, derived only from the event stream.

    Inbound: one handler per protocol message kind (see `handlers()`); each
    validates `data`, builds a store event and applies the pure transition.

    Outbound: intent methods build protocol messages and hand them to the sender.
    They never touch local task data; the authoritative echo from the server does.

    Not thread-safe by itself: call it from the event loop that owns the connection.
    Reading `state` from other threads is fine (it is immutable).
    """

    def __init__(
        self,
        *,
        client_id: str,
        sender: OutboundSender,
        identity: IdentityRepo | None = None,
        username: str | None = None,
        cursor_ttl: float | None = 120.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if not client_id:
            raise ValueError("client_id is required")
        self._sender = sender
        self._identity = identity
        self._cursor_ttl = cursor_ttl if cursor_ttl and cursor_ttl > 0 else None
        self._clock = clock
        self._state = SyncState(client_id=client_id, username=username or "")
        self._listeners: list[StateListener] = []

    @property
    def state(self) -> SyncState:
        return self._state

    # ---- subscriptions ----

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return _unsubscribe

    def dispatch(self, event: StoreEvent) -> SyncState:
        """Apply one event; listeners are notified only if the state changed."""
        old = self._state
        new = reduce(old, event)
        if new is old:
            return old
        self._state = new
        for listener in list(self._listeners):
            try:
                listener(new)
            except Exception:
                logger.exception("State listener failed.")
        return new

    # ---- inbound (server -> client) ----

    def handlers(self) -> dict[InboundKind, InboundHandler]:
        return {kind: self._handler_for(kind) for kind in InboundKind}

    def _handler_for(self, kind: InboundKind) -> InboundHandler:
        match kind:
            case InboundKind.INITIAL_STATE | InboundKind.TASK_LIST_DATA:
                return self.on_snapshot
            case InboundKind.TASK_CREATED | InboundKind.CREATE_TASK:
                return self.on_task_created
            case InboundKind.TASK_UPDATED | InboundKind.UPDATE_TASK:
                return self.on_task_updated
            case InboundKind.TASK_DELETED | InboundKind.DELETE_TASK:
                return self.on_task_deleted
            case InboundKind.CURSOR_POSITION:
                return self.on_cursor_position
            case InboundKind.USERNAME_SET:
                return self.on_username_set
            case InboundKind.TASK_LIST_CREATED:
                return self.on_task_list_created
            case InboundKind.TASK_LIST_UPDATED:
                return self.on_task_list_updated
            case InboundKind.ERROR:
                return self.on_error
            case _:
                assert_never(kind)

    def _apply_parsed(self, what: str, parse: Callable[[Any], StoreEvent | None], data: Any) -> bool:
        try:
            event = parse(data)
        except PayloadError as e:
            logger.warning("Ignoring %s with invalid payload: %s", what, e)
            return False
        if event is not None:
            self.dispatch(event)
        return True

    def on_snapshot(self, data: Any) -> None:
        def parse(d: Any) -> StoreEvent:
            if isinstance(d, list):
                return SnapshotReceived(task_list=None, tasks=_parse_tasks(d))
            if not isinstance(d, dict):
                raise PayloadError("snapshot: expected object or task array")

            raw_list = d.get("taskList")
            task_list = TaskList.from_wire(raw_list) if raw_list is not None else None
            is_owner = d.get("isOwner")
            if is_owner is not None and not isinstance(is_owner, bool):
                raise PayloadError("snapshot: 'isOwner' must be a boolean")
            return SnapshotReceived(task_list=task_list, tasks=_parse_tasks(d.get("tasks")), is_owner=is_owner)

        if self._apply_parsed("snapshot", parse, data):
            logger.info("Snapshot applied: %d tasks", len(self._state.tasks))

    def on_task_created(self, data: Any) -> None:
        self._apply_parsed("task_created", lambda d: TaskCreated(Task.from_wire(_unwrap(d, "task"))), data)

    def on_task_updated(self, data: Any) -> None:
        self._apply_parsed("task_updated", lambda d: TaskUpdated(Task.from_wire(_unwrap(d, "task"))), data)

    def on_task_deleted(self, data: Any) -> None:
        def parse(d: Any) -> StoreEvent:
            if isinstance(d, str) and d:
                return TaskDeleted(task_id=d)
            if isinstance(d, dict):
                task_id = d.get("taskId")
                list_id = d.get("taskListId")
                if isinstance(task_id, str) and task_id:
                    return TaskDeleted(task_id=task_id, task_list_id=list_id if isinstance(list_id, str) else None)
            raise PayloadError("task_deleted: expected a task id or {taskId}")

        self._apply_parsed("task_deleted", parse, data)

    def on_cursor_position(self, data: Any) -> None:
        now = self._clock()
        self._apply_parsed("cursor_position", lambda d: CursorMoved(CursorPosition.from_wire(d, seen_at=now)), data)
        self.expire_cursors()

    def on_username_set(self, data: Any) -> None:
        def parse(d: Any) -> StoreEvent | None:
            if not isinstance(d, dict):
                raise PayloadError("username_set: expected object")
            if d.get("success") is not True:
                logger.warning("Server rejected username: %r", d)
                return None
            username = d.get("username")
            raw_list = d.get("taskList")
            return UsernameConfirmed(
                username=username if isinstance(username, str) and username else None,
                task_list=TaskList.from_wire(raw_list) if raw_list is not None else None,
            )

        self._apply_parsed("username_set", parse, data)

    def on_task_list_created(self, data: Any) -> None:
        self._apply_parsed(
            "task_list_created",
            lambda d: TaskListChanged(TaskList.from_wire(_unwrap(d, "taskList")), created=True),
            data,
        )

    def on_task_list_updated(self, data: Any) -> None:
        self._apply_parsed(
            "task_list_updated",
            lambda d: TaskListChanged(TaskList.from_wire(_unwrap(d, "taskList"))),
            data,
        )

    def on_error(self, data: Any) -> None:
        def parse(d: Any) -> StoreEvent:
            err = ErrorInfo.from_wire(d)
            logger.warning("Server error %s: %s", err.code, err.message)
            return ServerErrorReported(err)

        self._apply_parsed("error", parse, data)

    # ---- connection notifications ----

    def set_connection_state(self, connection: ConnectionState) -> None:
        self.dispatch(ConnectionStatusChanged(connection))

    def report_transport_error(self, exc: BaseException) -> None:
        detail = f"{type(exc).__name__}: {exc}" if str(exc) else type(exc).__name__
        self.dispatch(TransportFailed(detail))

    async def rejoin(self, reconnected: bool) -> None:
        """
        Ready hook after every open. After a reconnect the active list is requested
        again, so its snapshot replaces whatever was missed while offline.
        """
        if not reconnected:
            return
        task_list_id = self._state.task_list_id
        if task_list_id:
            logger.info("Rejoining task list %s after reconnect", task_list_id)
            await self.get_task_list(task_list_id)

    # ---- local-only UI state ----

    def dismiss_error(self) -> None:
        self.dispatch(ErrorDismissed())

    def expire_cursors(self) -> None:
        if self._cursor_ttl is None:
            return
        self.dispatch(CursorsExpired(before=self._clock() - self._cursor_ttl))

    # ---- intents (client -> server) ----

    async def set_username(self, username: str) -> bool:
        name = (username or "").strip()
        if not name:
            raise ValueError("username is required")
        if self._identity is not None:
            self._identity.set_username(name)
        return await self._sender.send(OutboundKind.SET_USERNAME, {"username": name})

    async def create_task_list(self, title: str) -> bool:
        title = (title or "").strip()
        if not title:
            raise ValueError("title is required")
        return await self._sender.send(OutboundKind.CREATE_TASK_LIST, {"title": title})

    async def get_task_list(self, task_list_id: str) -> bool:
        if not task_list_id:
            raise ValueError("task_list_id is required")
        self.dispatch(LoadingStarted(task_list_id))
        sent = await self._sender.send(OutboundKind.GET_TASK_LIST, {"taskListId": task_list_id})
        if not sent:
            # No snapshot is coming for a dropped request.
            self.dispatch(LoadingCancelled(task_list_id))
        return sent

    async def toggle_lock_task_list(self, task_list_id: str | None = None) -> bool:
        task_list_id = task_list_id or self._state.task_list_id
        if not task_list_id:
            logger.warning("toggle_lock_task_list: no active task list")
            return False
        return await self._sender.send(OutboundKind.TOGGLE_LOCK_TASK_LIST, {"taskListId": task_list_id})

    def _check_parent(self, task_id: str | None, parent_id: str | None) -> None:
        if parent_id is None:
            return
        if self._state.task_by_id(parent_id) is None:
            raise ValueError(f"unknown parent task: {parent_id}")
        if task_id is not None and would_create_cycle(self._state.tasks, task_id, parent_id):
            raise ValueError(f"task {task_id} cannot be moved under its own subtree")

    async def create_task(self, title: str, description: str = "", parent_id: str | None = None) -> bool:
        task_list_id = self._state.task_list_id
        if not task_list_id:
            logger.warning("create_task: no active task list")
            return False
        title = (title or "").strip()
        if not title:
            raise ValueError("title is required")
        self._check_parent(None, parent_id)

        payload: dict[str, Any] = {
            "taskListId": task_list_id,
            "title": title,
            "description": description or "",
        }
        if parent_id is not None:
            payload["parentId"] = parent_id
        return await self._sender.send(OutboundKind.CREATE_TASK, payload)

    async def update_task(
        self,
        task_id: str,
        *,
        title: str,
        description: str = "",
        completed: bool = False,
        parent_id: str | None = None,
    ) -> bool:
        if not task_id:
            raise ValueError("task_id is required")
        title = (title or "").strip()
        if not title:
            raise ValueError("title is required")
        self._check_parent(task_id, parent_id)

        payload: dict[str, Any] = {
            "taskId": task_id,
            "title": title,
            "description": description or "",
            "completed": bool(completed),
        }
        if parent_id is not None:
            payload["parentId"] = parent_id
        return await self._sender.send(OutboundKind.UPDATE_TASK, payload)

    async def toggle_task_completed(self, task_id: str) -> bool:
        task = self._state.task_by_id(task_id)
        if task is None:
            logger.warning("toggle_task_completed: unknown task %s", task_id)
            return False
        return await self.update_task(
            task.id,
            title=task.title,
            description=task.description,
            completed=not task.completed,
            parent_id=task.parent_id,
        )

    async def move_task(self, task_id: str, parent_id: str | None) -> bool:
        task = self._state.task_by_id(task_id)
        if task is None:
            logger.warning("move_task: unknown task %s", task_id)
            return False
        return await self.update_task(
            task.id,
            title=task.title,
            description=task.description,
            completed=task.completed,
            parent_id=parent_id,
        )

    async def delete_task(self, task_id: str) -> bool:
        if not task_id:
            raise ValueError("task_id is required")
        return await self._sender.send(OutboundKind.DELETE_TASK, {"taskId": task_id})

    async def update_cursor_position(self, task_id: str, position: int) -> bool:
        if not task_id:
            raise ValueError("task_id is required")
        if position < 0:
            raise ValueError("position must be non-negative")
        return await self._sender.send(OutboundKind.CURSOR_POSITION, {"taskId": task_id, "position": int(position)})
