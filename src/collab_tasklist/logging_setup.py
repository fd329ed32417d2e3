# src/collab_tasklist/logging_setup.py

from __future__ import annotations

import logging
import sys
from pathlib import Path


# Name of the daemon thread that runs the client event loop (connectors/background.py).
CLIENT_THREAD_NAME = "collab-client"


class _ConsoleNoiseFilter(logging.Filter):
    """
    Keep the console prompt readable while the client loop runs beside it.

    Records emitted on the client thread (frames routed, reconnect attempts, snapshots
    applied) arrive at arbitrary moments and would interleave with the prompt, so only
    WARNING+ of them reach stderr. Records from the console thread answer a command the
    user just typed and always pass. Third-party loggers, websockets included, and
    captured Python warnings reach the console at ERROR+ only.
    """

    def __init__(self, client_thread: str = CLIENT_THREAD_NAME) -> None:
        super().__init__()
        self._client_thread = client_thread

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name == "collab_tasklist" or record.name.startswith("collab_tasklist."):
            if record.threadName == self._client_thread:
                return record.levelno >= logging.WARNING
            return True

        return record.levelno >= logging.ERROR


def setup_logging(
    *,
    log_dir: str | Path = ".local/collab",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> Path:
    """
    Install the stderr handler (filtered, see `_ConsoleNoiseFilter`) and `collab.log`,
    which keeps every routed frame and reconnect step. Replaces existing root handlers,
    so call it once before the client thread starts. Returns the log file path.
    """
    log_file = Path(log_dir) / "collab.log"
    log_file.parent.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    formatter = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s [%(threadName)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.addFilter(_ConsoleNoiseFilter())

    file_handler = logging.FileHandler(str(log_file), encoding="utf-8")
    file_handler.setLevel(file_level)

    for handler in (console, file_handler):
        handler.setFormatter(formatter)
        root.addHandler(handler)

    # warnings.warn(...) arrives as 'py.warnings' and goes through the same filter.
    logging.captureWarnings(True)

    # websockets logs every frame at DEBUG; the client already logs what it routes.
    logging.getLogger("websockets").setLevel(logging.INFO)

    return log_file
