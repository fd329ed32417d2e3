# src/collab_tasklist/cli/commands.py

from __future__ import annotations

import contextlib
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, cast

from ..client import CollabClient
from ..core.models import Task
from ..store.state import SyncState

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[["ConsoleSession", list[str]], str]
CommandHandler3 = Callable[["ConsoleSession", list[str], CommandEmitter | None], str]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ConsoleSession:
    """What a command can reach: the client and a way to run coroutines on its loop."""

    client: CollabClient
    # Runs a coroutine on the client's event loop and returns its result.
    run: Callable[[Awaitable[Any]], Any]
    # Runs a plain loop-bound callable (client.connect) on the client's event loop.
    run_sync: Callable[..., Any]

    @property
    def state(self) -> SyncState:
        return self.client.state


class UsageError(Exception):
    """Bad command arguments; the message is shown to the user as-is."""


class CommandRegistry:
    """Simple slash-command registry used by the console (/help, /add, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(
        self,
        session: ConsoleSession,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 3

        try:
            if nparams >= 3:
                h3 = cast(CommandHandler3, handler)
                return h3(session, args, emit)
            h2 = cast(CommandHandler2, handler)
            return h2(session, args)
        except UsageError as e:
            return str(e)
        except ValueError as e:
            # Intent validation (empty title, cycle, unknown parent, ...).
            return f"Rejected: {e}"

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        lines.append("  /exit - Quit.")
        return "\n".join(lines)


registry = CommandRegistry()


def _sent(ok: bool, what: str) -> str:
    if ok:
        return f"{what} sent."
    return f"Not connected: {what} was not sent. Use /status or /reconnect."


def _split_description(args: list[str]) -> tuple[str, str]:
    """`title words -- description words` -> (title, description)."""
    if "--" in args:
        i = args.index("--")
        return " ".join(args[:i]), " ".join(args[i + 1 :])
    return " ".join(args), ""


def resolve_task(state: SyncState, token: str) -> Task:
    """Find a task by full id or unique id prefix."""
    exact = state.task_by_id(token)
    if exact is not None:
        return exact
    matches = [t for t in state.tasks if t.id.startswith(token)]
    if not matches:
        raise UsageError(f"No task matches {token!r}. Use /tree to list tasks.")
    if len(matches) > 1:
        raise UsageError(f"Task id prefix {token!r} is ambiguous ({len(matches)} matches).")
    return matches[0]


def _require_list(state: SyncState) -> None:
    if state.task_list is None:
        raise UsageError("No active task list. Use /new <title> or /open <listId>.")


def render_tree(state: SyncState) -> str:
    if state.task_list is None:
        return "No active task list."
    lock = " [locked]" if state.task_list.is_locked else ""
    header = f"{state.task_list.title}{lock} ({state.task_list.id})"
    if state.is_loading:
        return f"{header}\n  (loading...)"
    rows = state.rows()
    if not rows:
        return f"{header}\n  (no tasks)"

    lines = [header]
    for row in rows:
        t = row.task
        mark = "x" if t.completed else " "
        editing = ", ".join(c.user_id[:8] for c in state.cursors_on(t.id))
        presence = f"  <- {editing}" if editing else ""
        lines.append(f"{'  ' * (row.depth + 1)}[{mark}] {t.title}  ({t.id[:8]}){presence}")
    return "\n".join(lines)


def render_status(session: ConsoleSession) -> str:
    state = session.state
    tl = state.task_list
    stats = session.client.router.stats
    lines = [
        "Status:",
        f"  Connection: {state.connection.describe()}",
        f"  Server: {session.client.connection.endpoint or session.client.settings.server_url}",
        f"  Client id: {state.client_id}",
        f"  Username: {state.username or '(not set)'}",
    ]
    if tl is None:
        lines.append("  Task list: (none)")
    else:
        role = "owner" if state.is_owner else "collaborator"
        lines.append(f"  Task list: {tl.title} ({tl.id}) by {tl.owner_name or tl.owner_id}")
        lines.append(
            f"  Locked: {'yes' if tl.is_locked else 'no'}, you are {role}, "
            f"can edit: {'yes' if state.can_edit else 'no'}"
        )
        lines.append(f"  Tasks: {len(state.tasks)}{' (loading)' if state.is_loading else ''}")
    if state.error is not None:
        lines.append(f"  Error: [{state.error.code}] {state.error.message}")
    if state.transport_error:
        lines.append(f"  Last transport error: {state.transport_error}")
    lines.append(
        f"  Frames: {stats.routed} routed, {stats.malformed} malformed, "
        f"{stats.unknown} unknown, {stats.failed} failed"
    )
    return "\n".join(lines)


def cmd_help(session: ConsoleSession, args: list[str]) -> str:
    return registry.build_help()


def cmd_status(session: ConsoleSession, args: list[str]) -> str:
    return render_status(session)


def cmd_name(session: ConsoleSession, args: list[str]) -> str:
    if not args:
        current = session.state.username
        return f"Username: {current}" if current else "Usage: /name <username>"
    name = " ".join(args)
    return _sent(session.run(session.client.store.set_username(name)), f"Username {name!r}")


def cmd_new(session: ConsoleSession, args: list[str]) -> str:
    if not args:
        return "Usage: /new <title>"
    return _sent(session.run(session.client.store.create_task_list(" ".join(args))), "Create list")


def cmd_open(session: ConsoleSession, args: list[str]) -> str:
    if len(args) != 1:
        return "Usage: /open <taskListId>"
    return _sent(session.run(session.client.store.get_task_list(args[0])), "Open list")


def cmd_lock(session: ConsoleSession, args: list[str]) -> str:
    state = session.state
    _require_list(state)
    if not state.is_owner:
        return "Only the list owner can lock or unlock it."
    return _sent(session.run(session.client.store.toggle_lock_task_list()), "Lock toggle")


def cmd_add(session: ConsoleSession, args: list[str]) -> str:
    _require_list(session.state)
    title, description = _split_description(args)
    if not title:
        return "Usage: /add <title> [-- description]"
    return _sent(session.run(session.client.store.create_task(title, description)), "Create task")


def cmd_sub(session: ConsoleSession, args: list[str]) -> str:
    state = session.state
    _require_list(state)
    if len(args) < 2:
        return "Usage: /sub <parentId> <title> [-- description]"
    parent = resolve_task(state, args[0])
    title, description = _split_description(args[1:])
    ok = session.run(session.client.store.create_task(title, description, parent_id=parent.id))
    return _sent(ok, f"Create subtask of {parent.title!r}")


def cmd_edit(session: ConsoleSession, args: list[str]) -> str:
    state = session.state
    if len(args) < 2:
        return "Usage: /edit <taskId> <title> [-- description]"
    task = resolve_task(state, args[0])
    title, description = _split_description(args[1:])
    ok = session.run(
        session.client.store.update_task(
            task.id,
            title=title,
            description=description if "--" in args else task.description,
            completed=task.completed,
            parent_id=task.parent_id,
        )
    )
    return _sent(ok, "Update task")


def _set_completed(session: ConsoleSession, args: list[str], completed: bool) -> str:
    if len(args) != 1:
        return "Usage: /done <taskId> or /undo <taskId>"
    task = resolve_task(session.state, args[0])
    if task.completed == completed:
        return f"Task {task.title!r} is already {'done' if completed else 'open'}."
    return _sent(session.run(session.client.store.toggle_task_completed(task.id)), "Update task")


def cmd_done(session: ConsoleSession, args: list[str]) -> str:
    return _set_completed(session, args, True)


def cmd_undo(session: ConsoleSession, args: list[str]) -> str:
    return _set_completed(session, args, False)


def cmd_move(session: ConsoleSession, args: list[str]) -> str:
    state = session.state
    if len(args) != 2:
        return "Usage: /move <taskId> <parentId|root>"
    task = resolve_task(state, args[0])
    parent_id = None if args[1].lower() == "root" else resolve_task(state, args[1]).id
    return _sent(session.run(session.client.store.move_task(task.id, parent_id)), "Move task")


def cmd_rm(session: ConsoleSession, args: list[str]) -> str:
    if len(args) != 1:
        return "Usage: /rm <taskId>"
    task = resolve_task(session.state, args[0])
    return _sent(session.run(session.client.store.delete_task(task.id)), f"Delete {task.title!r}")


def cmd_tree(session: ConsoleSession, args: list[str]) -> str:
    return render_tree(session.state)


def cmd_who(session: ConsoleSession, args: list[str]) -> str:
    state = session.state
    cursors = state.other_cursors()
    if not cursors:
        return "Nobody else is editing right now."
    lines = ["Currently editing:"]
    for c in cursors:
        task = state.task_by_id(c.task_id)
        label = task.title if task is not None else c.task_id
        lines.append(f"  {c.user_id[:8]} on {label!r} at {c.position}")
    return "\n".join(lines)


def cmd_cursor(session: ConsoleSession, args: list[str]) -> str:
    if not args or len(args) > 2:
        return "Usage: /cursor <taskId> [position]"
    task = resolve_task(session.state, args[0])
    try:
        position = int(args[1]) if len(args) == 2 else 0
    except ValueError:
        return "Position must be a number."
    return _sent(session.run(session.client.store.update_cursor_position(task.id, position)), "Cursor")


def cmd_dismiss(session: ConsoleSession, args: list[str]) -> str:
    if session.state.error is None:
        return "No error to dismiss."
    session.run_sync(session.client.store.dismiss_error)
    return "Error dismissed."


def cmd_reconnect(
    session: ConsoleSession,
    args: list[str],
    emit: CommandEmitter | None = None,
) -> str:
    if session.state.connection.is_connected:
        return "Already connected."
    if emit:
        with contextlib.suppress(Exception):
            emit("[NET] Connecting...")
    logger.debug("Manual reconnect requested")
    session.run_sync(session.client.connect)
    return f"Connection: {session.state.connection.describe()}"


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show connection, identity and list status.")
registry.register("name", cmd_name, help_text="Set your display name: /name <username>.")
registry.register("new", cmd_new, help_text="Create a task list: /new <title>.")
registry.register("open", cmd_open, help_text="Open a task list by id: /open <taskListId>.")
registry.register("lock", cmd_lock, help_text="Lock/unlock the active list (owner only).")
registry.register("add", cmd_add, help_text="Add a task: /add <title> [-- description].")
registry.register("sub", cmd_sub, help_text="Add a subtask: /sub <parentId> <title> [-- description].")
registry.register("edit", cmd_edit, help_text="Edit a task: /edit <taskId> <title> [-- description].")
registry.register("done", cmd_done, help_text="Mark a task completed: /done <taskId>.")
registry.register("undo", cmd_undo, help_text="Mark a task open again: /undo <taskId>.")
registry.register("move", cmd_move, help_text="Re-parent a task: /move <taskId> <parentId|root>.")
registry.register("rm", cmd_rm, help_text="Delete a task and its subtasks: /rm <taskId>.")
registry.register("tree", cmd_tree, help_text="Show the task tree.", aliases=["ls"])
registry.register("who", cmd_who, help_text="Show who is editing which task.")
registry.register("cursor", cmd_cursor, help_text="Share your cursor: /cursor <taskId> [position].")
registry.register("dismiss", cmd_dismiss, help_text="Dismiss the current error.")
registry.register("reconnect", cmd_reconnect, help_text="Reconnect now (also after giving up).")
