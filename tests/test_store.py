# tests/test_store.py

from __future__ import annotations

import logging

import pytest

from collab_tasklist.core.models import ConnectionState, ConnectionStatus
from collab_tasklist.protocol.messages import InboundKind
from collab_tasklist.store.store import StateStore

from .fakes import FakeClock, FakeIdentity, FakeSender, list_wire, task_wire


def _load(store: StateStore, *tasks: dict, owner: str = "owner-1", locked: bool = False) -> None:
    store.on_snapshot({"taskList": list_wire(owner_id=owner, locked=locked), "tasks": list(tasks)})


def test_handlers_cover_every_inbound_kind(store: StateStore) -> None:
    handlers = store.handlers()
    assert set(handlers) == set(InboundKind)
    assert handlers[InboundKind.CREATE_TASK] == store.on_task_created
    assert handlers[InboundKind.TASK_LIST_DATA] == store.on_snapshot


def test_snapshot_shapes(store: StateStore) -> None:
    _load(store, task_wire("a"), task_wire("b", parent_id="a"))
    assert [r.task.id for r in store.state.rows()] == ["a", "b"]
    assert store.state.task_list.title == "Groceries"

    # Bare task array keeps the list metadata.
    store.on_snapshot([task_wire("c")])
    assert [t.id for t in store.state.tasks] == ["c"]
    assert store.state.task_list_id == "L1"


def test_invalid_payload_is_dropped_with_warning(store: StateStore, caplog: pytest.LogCaptureFixture) -> None:
    _load(store, task_wire("a"))
    before = store.state

    with caplog.at_level(logging.WARNING, logger="collab_tasklist.store.store"):
        store.on_snapshot({"taskList": list_wire(), "tasks": "nope"})
        store.on_task_created({"task": {"title": "no id"}})
        store.on_cursor_position({"userId": "u", "taskId": "a", "position": -3})
        store.on_task_deleted(42)

    assert store.state is before
    assert sum("invalid payload" in r.getMessage() for r in caplog.records) == 4


def test_task_events_accept_wrapped_and_bare_objects(store: StateStore) -> None:
    _load(store)
    store.on_task_created({"task": task_wire("a")})
    store.on_task_created(task_wire("b"))
    store.on_task_updated({"task": task_wire("a", title="Milk")})
    store.on_task_updated(task_wire("b", completed=True))

    assert store.state.task_by_id("a").title == "Milk"
    assert store.state.task_by_id("b").completed


def test_task_deleted_accepts_id_or_object(store: StateStore) -> None:
    _load(store, task_wire("a"), task_wire("b"), task_wire("c"))
    store.on_task_deleted("a")
    store.on_task_deleted({"taskId": "b", "taskListId": "L1"})
    store.on_task_deleted({"taskId": "c", "taskListId": "other"})
    assert [t.id for t in store.state.tasks] == ["c"]


def test_username_set_updates_name_and_active_list(store: StateStore) -> None:
    store.on_username_set({"success": True, "username": "bob", "taskList": list_wire("L7", owner_id="client-1")})
    assert store.state.username == "bob"
    assert store.state.task_list_id == "L7"
    assert store.state.is_owner
    assert store.state.is_loading


def test_username_set_failure_is_ignored(store: StateStore) -> None:
    before = store.state
    store.on_username_set({"success": False, "username": "bob"})
    assert store.state is before


def test_task_list_created_and_updated_shapes(store: StateStore) -> None:
    store.on_task_list_created({"taskList": list_wire("L2", owner_id="client-1")})
    assert store.state.task_list_id == "L2" and store.state.is_owner

    store.on_task_list_updated(list_wire("L2", owner_id="client-1", locked=True))
    assert store.state.task_list.is_locked


def test_server_error_is_recorded(store: StateStore) -> None:
    store.on_error({"code": "TASK_LIST_LOCKED", "message": "Task list is locked"})
    assert store.state.error.code == "TASK_LIST_LOCKED"
    store.dismiss_error()
    assert store.state.error is None


def test_cursor_ttl_evicts_stale_entries(store: StateStore, clock: FakeClock) -> None:
    _load(store, task_wire("a"))
    store.on_cursor_position({"userId": "bob", "taskId": "a", "position": 1})
    clock.advance(61)
    store.on_cursor_position({"userId": "eve", "taskId": "a", "position": 2})
    assert set(store.state.cursors) == {"eve"}

    clock.advance(61)
    store.expire_cursors()
    assert dict(store.state.cursors) == {}


def test_subscribers_only_hear_real_changes(store: StateStore) -> None:
    seen = []
    unsubscribe = store.subscribe(seen.append)

    _load(store, task_wire("a"))
    store.on_task_updated(task_wire("ghost"))
    store.on_task_created(task_wire("a"))
    assert len(seen) == 1

    unsubscribe()
    store.on_task_created(task_wire("b"))
    assert len(seen) == 1


def test_listener_failure_does_not_break_dispatch(store: StateStore) -> None:
    def bad(_state):
        raise RuntimeError("ui bug")

    store.subscribe(bad)
    _load(store, task_wire("a"))
    assert [t.id for t in store.state.tasks] == ["a"]


def test_connection_inputs(store: StateStore) -> None:
    store.set_connection_state(ConnectionState(ConnectionStatus.RECONNECTING, 2))
    assert store.state.connection.attempt == 2
    store.report_transport_error(ConnectionResetError("reset by peer"))
    assert store.state.transport_error == "ConnectionResetError: reset by peer"


# ---- intents ----


@pytest.mark.asyncio
async def test_intents_send_messages_without_touching_tasks(store: StateStore, sender: FakeSender) -> None:
    _load(store, task_wire("a"))
    before = store.state.tasks

    assert await store.create_task("Milk", "2L")
    assert await store.create_task("Oat", parent_id="a")
    assert await store.update_task("a", title="Bread", completed=True)
    assert await store.delete_task("a")
    assert await store.update_cursor_position("a", 3)

    assert store.state.tasks is before
    assert sender.sent == [
        ("create_task", {"taskListId": "L1", "title": "Milk", "description": "2L"}),
        ("create_task", {"taskListId": "L1", "title": "Oat", "description": "", "parentId": "a"}),
        ("update_task", {"taskId": "a", "title": "Bread", "description": "", "completed": True}),
        ("delete_task", {"taskId": "a"}),
        ("cursor_position", {"taskId": "a", "position": 3}),
    ]


@pytest.mark.asyncio
async def test_list_intents(store: StateStore, sender: FakeSender) -> None:
    assert await store.create_task_list("Trip")
    assert await store.get_task_list("L1")
    assert store.state.is_loading

    _load(store, owner="client-1")
    assert await store.toggle_lock_task_list()
    assert sender.sent == [
        ("create_task_list", {"title": "Trip"}),
        ("get_task_list", {"taskListId": "L1"}),
        ("toggle_lock_task_list", {"taskListId": "L1"}),
    ]


@pytest.mark.asyncio
async def test_set_username_persists_and_sends(store: StateStore, sender: FakeSender, identity: FakeIdentity) -> None:
    assert await store.set_username("  bob ")
    assert identity.saved == ["bob"]
    assert sender.sent == [("set_username", {"username": "bob"})]

    with pytest.raises(ValueError):
        await store.set_username("   ")


@pytest.mark.asyncio
async def test_create_task_requires_active_list(store: StateStore, sender: FakeSender) -> None:
    assert await store.create_task("Milk") is False
    assert sender.sent == []


@pytest.mark.asyncio
async def test_invalid_intents_are_rejected_before_sending(store: StateStore, sender: FakeSender) -> None:
    _load(store, task_wire("a"), task_wire("b", parent_id="a"))

    with pytest.raises(ValueError):
        await store.create_task("   ")
    with pytest.raises(ValueError):
        await store.create_task("x", parent_id="missing")
    with pytest.raises(ValueError):
        await store.move_task("a", "b")
    with pytest.raises(ValueError):
        await store.update_cursor_position("a", -1)
    assert sender.sent == []


@pytest.mark.asyncio
async def test_toggle_and_move_keep_other_fields(store: StateStore, sender: FakeSender) -> None:
    _load(store, task_wire("a"), task_wire("b", parent_id="a", description="note"))

    assert await store.toggle_task_completed("b")
    assert await store.move_task("b", None)
    assert await store.toggle_task_completed("ghost") is False

    assert sender.sent == [
        ("update_task", {"taskId": "b", "title": "Task b", "description": "note", "completed": True, "parentId": "a"}),
        ("update_task", {"taskId": "b", "title": "Task b", "description": "note", "completed": False}),
    ]


@pytest.mark.asyncio
async def test_intents_report_not_connected(identity: FakeIdentity, clock: FakeClock) -> None:
    sender = FakeSender(connected=False)
    store = StateStore(client_id=identity.client_id, sender=sender, clock=clock)
    assert await store.create_task_list("Trip") is False


@pytest.mark.asyncio
async def test_dropped_list_request_does_not_leave_loading_set() -> None:
    store = StateStore(client_id="me", sender=FakeSender(connected=False))
    assert await store.get_task_list("L1") is False
    assert store.state.is_loading is False


@pytest.mark.asyncio
async def test_rejoin_requests_active_list_only_after_reconnect(store: StateStore, sender: FakeSender) -> None:
    await store.rejoin(True)
    assert sender.sent == []

    _load(store, task_wire("a"))
    await store.rejoin(False)
    assert sender.sent == []

    await store.rejoin(True)
    assert sender.sent == [("get_task_list", {"taskListId": "L1"})]
