# src/collab_tasklist/store/transitions.py

"""
Pure state transitions: (SyncState, event) -> SyncState.

Rules shared by every transition:
- no I/O, no clock reads, no logging; same input -> same output;
- an event that changes nothing returns the *same* state object, so callers can
  skip notifying listeners with `new is old`;
- task events for a list other than the active one are ignored (the server
  broadcasts task events for every list).
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import replace
from types import MappingProxyType
from typing import assert_never

from ..core.models import CONNECTION_FAILED, ConnectionStatus, CursorPosition, Task, TaskList
from ..core.tree import descendant_ids
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


def _freeze(cursors: dict[str, CursorPosition]) -> Mapping[str, CursorPosition]:
    return MappingProxyType(cursors)


def _cursors_on_tasks(state: SyncState, task_ids: set[str]) -> Mapping[str, CursorPosition]:
    kept = {uid: c for uid, c in state.cursors.items() if c.task_id in task_ids}
    if len(kept) == len(state.cursors):
        return state.cursors
    return _freeze(kept)


def _dedupe(tasks: Iterable[Task]) -> tuple[Task, ...]:
    # Later duplicates win but keep the first position.
    order: dict[str, Task] = {}
    for t in tasks:
        order[t.id] = t
    return tuple(order.values())


def _belongs_to_active_list(state: SyncState, task_list_id: str | None) -> bool:
    if state.task_list is None or not task_list_id:
        return True
    return task_list_id == state.task_list.id


def _owner_flag(state: SyncState, task_list: TaskList | None, explicit: bool | None) -> bool:
    if explicit is not None:
        return explicit
    if task_list is None:
        return state.is_owner
    return task_list.is_owned_by(state.client_id)


def _switch_list(state: SyncState, task_list: TaskList, *, loading: bool) -> SyncState:
    """Activate `task_list`; data of a previously active, different list is discarded."""
    same = state.task_list is not None and state.task_list.id == task_list.id
    return replace(
        state,
        task_list=task_list,
        is_owner=task_list.is_owned_by(state.client_id),
        tasks=state.tasks if same else (),
        cursors=state.cursors if same else _freeze({}),
        is_loading=state.is_loading if same else loading,
    )


def apply_snapshot(state: SyncState, event: SnapshotReceived) -> SyncState:
    """Authoritative replacement: the collection becomes exactly the snapshot's tasks."""
    task_list = event.task_list if event.task_list is not None else state.task_list
    tasks = _dedupe(event.tasks)
    next_state = replace(
        state,
        task_list=task_list,
        tasks=tasks,
        is_owner=_owner_flag(state, event.task_list, event.is_owner),
        is_loading=False,
    )
    return replace(next_state, cursors=_cursors_on_tasks(next_state, {t.id for t in tasks}))


def apply_task_created(state: SyncState, event: TaskCreated) -> SyncState:
    task = event.task
    if not _belongs_to_active_list(state, task.task_list_id):
        return state

    for i, existing in enumerate(state.tasks):
        if existing.id == task.id:
            if existing == task:
                return state
            tasks = state.tasks[:i] + (task,) + state.tasks[i + 1 :]
            return replace(state, tasks=tasks)

    return replace(state, tasks=state.tasks + (task,))


def apply_task_updated(state: SyncState, event: TaskUpdated) -> SyncState:
    task = event.task
    if not _belongs_to_active_list(state, task.task_list_id):
        return state

    for i, existing in enumerate(state.tasks):
        if existing.id == task.id:
            if existing == task:
                return state
            tasks = state.tasks[:i] + (task,) + state.tasks[i + 1 :]
            return replace(state, tasks=tasks)

    # Unknown id: a later snapshot corrects any real divergence.
    return state


def apply_task_deleted(state: SyncState, event: TaskDeleted) -> SyncState:
    """Removes the task and, explicitly, its whole subtree."""
    if not _belongs_to_active_list(state, event.task_list_id):
        return state
    if state.task_by_id(event.task_id) is None:
        return state

    doomed = descendant_ids(state.tasks, event.task_id)
    doomed.add(event.task_id)
    tasks = tuple(t for t in state.tasks if t.id not in doomed)
    next_state = replace(state, tasks=tasks)
    return replace(next_state, cursors=_cursors_on_tasks(next_state, {t.id for t in tasks}))


def apply_cursor_moved(state: SyncState, event: CursorMoved) -> SyncState:
    cursor = event.cursor
    current = state.cursors.get(cursor.user_id)
    if current is not None and current == cursor and current.seen_at == cursor.seen_at:
        return state
    cursors = dict(state.cursors)
    cursors[cursor.user_id] = cursor
    return replace(state, cursors=_freeze(cursors))


def apply_cursors_expired(state: SyncState, event: CursorsExpired) -> SyncState:
    kept = {uid: c for uid, c in state.cursors.items() if c.seen_at >= event.before}
    if len(kept) == len(state.cursors):
        return state
    return replace(state, cursors=_freeze(kept))


def apply_username_confirmed(state: SyncState, event: UsernameConfirmed) -> SyncState:
    next_state = state
    if event.username and event.username != state.username:
        next_state = replace(next_state, username=event.username)
    if event.task_list is not None:
        # The server follows up with the list's snapshot.
        next_state = _switch_list(next_state, event.task_list, loading=True)
    return next_state


def apply_task_list_changed(state: SyncState, event: TaskListChanged) -> SyncState:
    task_list = event.task_list
    if event.created:
        # A freshly created list has no tasks, so there is nothing to wait for.
        return _switch_list(state, task_list, loading=False)

    if state.task_list is not None and state.task_list.id != task_list.id:
        return state
    if state.task_list == task_list:
        return state
    return replace(state, task_list=task_list, is_owner=task_list.is_owned_by(state.client_id))


def apply_server_error(state: SyncState, event: ServerErrorReported) -> SyncState:
    return replace(state, error=event.error, is_loading=False)


def apply_error_dismissed(state: SyncState, event: ErrorDismissed) -> SyncState:
    if state.error is None:
        return state
    return replace(state, error=None)


def apply_connection_status(state: SyncState, event: ConnectionStatusChanged) -> SyncState:
    conn = event.connection
    if conn == state.connection:
        return state

    if conn.status is ConnectionStatus.CONNECTED:
        error = None if state.error == CONNECTION_FAILED else state.error
        return replace(state, connection=conn, error=error, transport_error=None)

    if conn.status is ConnectionStatus.FAILED:
        return replace(state, connection=conn, error=CONNECTION_FAILED, is_loading=False)

    return replace(state, connection=conn)


def apply_transport_failed(state: SyncState, event: TransportFailed) -> SyncState:
    if state.transport_error == event.detail:
        return state
    return replace(state, transport_error=event.detail)


def apply_loading_started(state: SyncState, event: LoadingStarted) -> SyncState:
    if state.is_loading:
        return state
    return replace(state, is_loading=True)


def apply_loading_cancelled(state: SyncState, event: LoadingCancelled) -> SyncState:
    if not state.is_loading:
        return state
    return replace(state, is_loading=False)


def reduce(state: SyncState, event: StoreEvent) -> SyncState:
    match event:
        case SnapshotReceived():
            return apply_snapshot(state, event)
        case TaskCreated():
            return apply_task_created(state, event)
        case TaskUpdated():
            return apply_task_updated(state, event)
        case TaskDeleted():
            return apply_task_deleted(state, event)
        case CursorMoved():
            return apply_cursor_moved(state, event)
        case CursorsExpired():
            return apply_cursors_expired(state, event)
        case UsernameConfirmed():
            return apply_username_confirmed(state, event)
        case TaskListChanged():
            return apply_task_list_changed(state, event)
        case ServerErrorReported():
            return apply_server_error(state, event)
        case ErrorDismissed():
            return apply_error_dismissed(state, event)
        case ConnectionStatusChanged():
            return apply_connection_status(state, event)
        case TransportFailed():
            return apply_transport_failed(state, event)
        case LoadingStarted():
            return apply_loading_started(state, event)
        case LoadingCancelled():
            return apply_loading_cancelled(state, event)
        case _:
            assert_never(event)
