# tests/test_logging_setup.py

from __future__ import annotations

import logging
from collections.abc import Iterator
from pathlib import Path

import pytest

from collab_tasklist.logging_setup import CLIENT_THREAD_NAME, _ConsoleNoiseFilter, setup_logging


def _record(name: str, level: int, thread: str) -> logging.LogRecord:
    record = logging.LogRecord(name, level, __file__, 1, "msg", None, None)
    record.threadName = thread
    return record


def test_client_thread_records_reach_console_only_at_warning() -> None:
    flt = _ConsoleNoiseFilter()
    assert not flt.filter(_record("collab_tasklist.connection.manager", logging.INFO, CLIENT_THREAD_NAME))
    assert not flt.filter(_record("collab_tasklist.connectors.background", logging.INFO, CLIENT_THREAD_NAME))
    assert flt.filter(_record("collab_tasklist.store.store", logging.WARNING, CLIENT_THREAD_NAME))


def test_console_thread_records_always_pass() -> None:
    flt = _ConsoleNoiseFilter()
    assert flt.filter(_record("collab_tasklist.cli.commands", logging.INFO, "MainThread"))
    assert flt.filter(_record("collab_tasklist.store.store", logging.DEBUG, "MainThread"))


def test_third_party_and_warnings_need_error() -> None:
    flt = _ConsoleNoiseFilter()
    for name in ("websockets.client", "py.warnings", "collab_tasklist_other"):
        assert not flt.filter(_record(name, logging.WARNING, "MainThread"))
        assert flt.filter(_record(name, logging.ERROR, CLIENT_THREAD_NAME))


@pytest.fixture()
def restore_root_logging() -> Iterator[None]:
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)
    logging.captureWarnings(False)


def test_setup_logging_writes_file_log(tmp_path: Path, restore_root_logging: None) -> None:
    log_file = setup_logging(log_dir=tmp_path / "logs")
    assert log_file == tmp_path / "logs" / "collab.log"

    logging.getLogger("collab_tasklist.store.store").debug("snapshot applied")
    for handler in logging.getLogger().handlers:
        handler.flush()

    text = log_file.read_text(encoding="utf-8")
    assert "DEBUG [MainThread] collab_tasklist.store.store: snapshot applied" in text
    assert logging.getLogger("websockets").level == logging.INFO
