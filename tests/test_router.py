# tests/test_router.py

from __future__ import annotations

import json
import logging

import pytest

from collab_tasklist.core.errors import MalformedFrameError, UnknownMessageError
from collab_tasklist.protocol.messages import InboundKind, OutboundKind, decode_frame, encode_message
from collab_tasklist.protocol.router import MessageRouter

from .fakes import frame, task_wire


def _recording_handlers() -> tuple[dict, list]:
    calls: list[tuple[InboundKind, object]] = []

    def make(kind: InboundKind):
        return lambda data: calls.append((kind, data))

    return {k: make(k) for k in InboundKind}, calls


def test_decode_frame_accepts_text_and_bytes() -> None:
    env = decode_frame(frame("task_created", {"id": "t1"}))
    assert env.kind is InboundKind.TASK_CREATED
    assert env.data == {"id": "t1"}
    assert decode_frame(frame("error", None).encode("utf-8")).kind is InboundKind.ERROR


@pytest.mark.parametrize(
    "raw",
    [
        "{not json",
        b"\xff\xfe",
        "[1, 2]",
        json.dumps({"data": {}}),
        json.dumps({"type": "", "data": {}}),
        json.dumps({"type": "task_created"}),
    ],
)
def test_decode_frame_rejects_malformed(raw) -> None:
    with pytest.raises(MalformedFrameError):
        decode_frame(raw)


def test_decode_frame_reports_unknown_type() -> None:
    with pytest.raises(UnknownMessageError) as ei:
        decode_frame(frame("presence_ping", {}))
    assert ei.value.kind == "presence_ping"


def test_encode_message_envelope() -> None:
    text = encode_message(OutboundKind.CREATE_TASK, {"title": "Milk ü"})
    assert json.loads(text) == {"type": "create_task", "data": {"title": "Milk ü"}}
    assert "ü" in text


def test_router_requires_a_handler_per_kind() -> None:
    handlers, _ = _recording_handlers()
    del handlers[InboundKind.ERROR]
    with pytest.raises(ValueError):
        MessageRouter(handlers)


def test_router_dispatches_in_order() -> None:
    handlers, calls = _recording_handlers()
    router = MessageRouter(handlers)

    assert router.route(frame("task_created", task_wire("t1")))
    assert router.route(frame("task_deleted", {"taskId": "t1"}))
    assert [k for k, _ in calls] == [InboundKind.TASK_CREATED, InboundKind.TASK_DELETED]
    assert router.stats.routed == 2


def test_malformed_frame_is_dropped_and_stream_continues(caplog: pytest.LogCaptureFixture) -> None:
    handlers, calls = _recording_handlers()
    router = MessageRouter(handlers)

    with caplog.at_level(logging.DEBUG, logger="collab_tasklist.protocol.router"):
        assert router.route("{oops") is False
        assert router.route(frame("task_created", task_wire("t2")))

    assert [k for k, _ in calls] == [InboundKind.TASK_CREATED]
    assert router.stats.malformed == 1
    assert any(r.levelno == logging.ERROR and "malformed" in r.getMessage() for r in caplog.records)


def test_unknown_type_is_logged_and_ignored(caplog: pytest.LogCaptureFixture) -> None:
    handlers, calls = _recording_handlers()
    router = MessageRouter(handlers)

    with caplog.at_level(logging.WARNING, logger="collab_tasklist.protocol.router"):
        assert router.route(frame("something_new", {"x": 1})) is False

    assert calls == []
    assert router.stats.unknown == 1
    assert any("something_new" in r.getMessage() for r in caplog.records)


def test_handler_exception_does_not_escape() -> None:
    handlers, calls = _recording_handlers()

    def boom(data):
        raise RuntimeError("handler bug")

    handlers[InboundKind.ERROR] = boom
    router = MessageRouter(handlers)

    assert router.route(frame("error", {"message": "x"})) is False
    assert router.route(frame("task_updated", task_wire("t1")))
    assert router.stats.failed == 1
    assert [k for k, _ in calls] == [InboundKind.TASK_UPDATED]
