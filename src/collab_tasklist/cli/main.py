# src/collab_tasklist/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds the client, then:
- runs the sync client in a background thread with its own event loop,
- runs the console REPL in the main thread (optional).
"""

from __future__ import annotations

import logging
import signal
import threading

from ..cli.bootstrap import create_client
from ..config import get_settings
from ..connectors.background import start_client_in_background
from ..connectors.console_connector import make_console_session, run_console_loop
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


def main() -> None:
    settings = get_settings()

    level_name = str(settings.log_level).upper()
    console_level = getattr(logging, level_name, logging.INFO)
    setup_logging(log_dir=settings.data_dir, console_level=console_level)

    logger.info("Starting %s...", settings.app_name)

    client = create_client(settings=settings)
    runner = start_client_in_background(client)
    if runner is None:
        logger.error("Could not start the client loop, exiting.")
        raise SystemExit(1)

    # Use an Event so main can wait without a busy while-loop.
    stop_main = threading.Event()

    def _handle_signal(signum, _frame) -> None:
        logger.info("Signal %s received, shutting down...", signum)
        stop_main.set()

    try:
        signal.signal(signal.SIGTERM, _handle_signal)
        if not settings.console_enabled:
            # The console handles Ctrl+C itself via KeyboardInterrupt.
            signal.signal(signal.SIGINT, _handle_signal)
    except (ValueError, OSError, AttributeError):
        # Some platforms may not support SIGTERM, etc.
        pass

    try:
        if settings.console_enabled:
            run_console_loop(make_console_session(runner, client))
            stop_main.set()
        else:
            logger.info("Console disabled. Staying connected. Press Ctrl+C to stop.")
            stop_main.wait()
    finally:
        runner.stop()
        runner.join(timeout=10.0)
        logger.info("Bye.")


if __name__ == "__main__":
    main()
