# src/collab_tasklist/connectors/console_connector.py

from __future__ import annotations

import logging
import sys
from collections.abc import Callable
from datetime import datetime

from ..cli.commands import ConsoleSession
from ..cli.commands import registry as command_registry
from ..client import CollabClient
from ..core.models import ConnectionStatus
from ..store.state import SyncState
from .background import ClientBackgroundRunner

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _rewrite_prev_line(line: str) -> None:
    """
    Replace the last terminal line with `line`.
    Best-effort: if not a TTY, just print a new line.
    """
    try:
        if sys.stdout.isatty():
            sys.stdout.write("\033[1A\033[2K\r")
            sys.stdout.write(line + "\n")
            sys.stdout.flush()
        else:
            print(line)
    except OSError:
        print(line)


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


def state_notifier(emit: Callable[[str], None]) -> Callable[[SyncState], None]:
    """
    Store listener that reports what a console user would otherwise miss:
    connection changes, new errors and finished list loads. Runs on the client loop.
    """
    last: dict[str, SyncState | None] = {"state": None}

    def _on_state(state: SyncState) -> None:
        prev = last["state"]
        last["state"] = state

        if prev is None or prev.connection != state.connection:
            if state.connection.status is not ConnectionStatus.CONNECTING:
                emit(f"[NET] {state.connection.describe()}")

        if state.error is not None and (prev is None or prev.error != state.error):
            emit(f"[ERROR] [{state.error.code}] {state.error.message} (use /dismiss)")

        if state.task_list is not None and not state.is_loading:
            if prev is None or prev.is_loading or prev.task_list_id != state.task_list_id:
                emit(f"[LIST] Opened {state.task_list.title!r} ({state.task_list.id}), {len(state.tasks)} tasks")

    return _on_state


def run_console_loop(session: ConsoleSession) -> None:
    logger.info("Console connector started (server=%s).", session.client.settings.server_url)
    _print_ts("[CONSOLE] Type /help for commands. Use /exit to quit.\n")

    def emit(text: str) -> None:
        # Immediate user-visible feedback for slow operations (e.g. connecting)
        _print_ts(text)

    unsubscribe = session.client.store.subscribe(state_notifier(emit))
    prompt_name = session.state.username or "you"

    try:
        while True:
            try:
                user_input = input(f">>> {prompt_name}: ").strip()
                _rewrite_prev_line(f"[{_ts_local()}] >>> {prompt_name}: {user_input}")
            except EOFError:
                logger.info("Console EOF received, exiting.")
                break
            except KeyboardInterrupt:
                logger.info("Console KeyboardInterrupt, exiting.")
                print()
                break

            if not user_input:
                continue

            if user_input.lower() in ("/exit", "/quit"):
                logger.info("Console exit command received.")
                break

            if not user_input.startswith("/"):
                # Plain text is a shortcut for /add.
                user_input = f"/add {user_input}"

            try:
                cmd_response = command_registry.handle(session, user_input, emit=emit)
            except TimeoutError:
                logger.warning("Command timed out: %s", user_input)
                cmd_response = "The client did not respond in time."
            except Exception:
                logger.exception("Command handler crashed.")
                cmd_response = "Internal error while handling a command."

            if cmd_response is not None:
                _print_ts(cmd_response)

            prompt_name = session.state.username or "you"
    finally:
        unsubscribe()

    logger.info("Console connector finished.")


def make_console_session(runner: ClientBackgroundRunner, client: CollabClient) -> ConsoleSession:
    return ConsoleSession(client=client, run=runner.call, run_sync=runner.call_sync)
