# src/collab_tasklist/store/state.py

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from ..core.models import ConnectionState, CursorPosition, ErrorInfo, Task, TaskList
from ..core.tree import TaskNode, TreeRow, build_task_tree, flatten_tree


def _empty_cursors() -> Mapping[str, CursorPosition]:
    return MappingProxyType({})


@dataclass(frozen=True, slots=True)
class SyncState:
    """
    Everything a consumer may read. Never mutated: every transition returns a new
    instance, so a reference taken on any thread stays internally consistent.
    """

    client_id: str
    username: str = ""

    task_list: TaskList | None = None
    tasks: tuple[Task, ...] = ()
    is_owner: bool = False

    # userId -> latest cursor (last write wins).
    cursors: Mapping[str, CursorPosition] = field(default_factory=_empty_cursors)

    connection: ConnectionState = ConnectionState()
    is_loading: bool = False
    error: ErrorInfo | None = None
    transport_error: str | None = None

    # ---- derived reads (pure, recomputed on every call) ----

    @property
    def task_list_id(self) -> str | None:
        return self.task_list.id if self.task_list is not None else None

    @property
    def can_edit(self) -> bool:
        """Mirrors the server rule: owners always, others only while the list is unlocked."""
        if self.task_list is None:
            return False
        return self.is_owner or not self.task_list.is_locked

    def task_by_id(self, task_id: str) -> Task | None:
        for t in self.tasks:
            if t.id == task_id:
                return t
        return None

    def tree(self) -> list[TaskNode]:
        return build_task_tree(self.tasks)

    def rows(self) -> list[TreeRow]:
        return flatten_tree(self.tasks)

    def root_tasks(self) -> list[Task]:
        return [node.task for node in build_task_tree(self.tasks)]

    def other_cursors(self) -> list[CursorPosition]:
        return [c for uid, c in self.cursors.items() if uid != self.client_id]

    def cursors_on(self, task_id: str) -> list[CursorPosition]:
        return [c for c in self.other_cursors() if c.task_id == task_id]
