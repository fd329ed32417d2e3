# src/collab_tasklist/core/tree.py

"""
Derived task hierarchy.

Tasks are stored flat with a `parent_id` back-reference. The tree is recomputed
from that collection on demand:

- one pass groups tasks into a parent -> children index,
- an explicit stack walks the index in display order.

No recursion is used, so very deep (or corrupted, cyclic) data cannot blow the
stack. A task whose parent does not resolve within the same list is a root.
Tasks that only participate in a parent cycle have no root and are not shown.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from .models import Task


@dataclass(slots=True)
class TaskNode:
    task: Task
    depth: int
    children: list[TaskNode] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class TreeRow:
    task: Task
    depth: int
    has_children: bool


def index_children(tasks: Sequence[Task]) -> tuple[list[Task], dict[str, list[Task]]]:
    """Split tasks into (roots, parent_id -> children), both in collection order."""
    by_id: dict[str, Task] = {}
    for t in tasks:
        by_id.setdefault(t.id, t)

    roots: list[Task] = []
    children: dict[str, list[Task]] = {}
    for t in tasks:
        parent = by_id.get(t.parent_id) if t.parent_id is not None else None
        if parent is None or parent.id == t.id or parent.task_list_id != t.task_list_id:
            roots.append(t)
        else:
            children.setdefault(parent.id, []).append(t)
    return roots, children


def build_task_tree(tasks: Sequence[Task]) -> list[TaskNode]:
    roots, children = index_children(tasks)
    forest = [TaskNode(task=t, depth=0) for t in roots]

    seen: set[str] = set()
    stack = list(reversed(forest))
    while stack:
        node = stack.pop()
        if node.task.id in seen:
            continue
        seen.add(node.task.id)

        for child in children.get(node.task.id, ()):
            if child.id in seen:
                continue
            child_node = TaskNode(task=child, depth=node.depth + 1)
            node.children.append(child_node)
        stack.extend(reversed(node.children))

    return forest


def flatten_tree(tasks: Sequence[Task]) -> list[TreeRow]:
    """Pre-order display rows (parent before its children, siblings in collection order)."""
    roots, children = index_children(tasks)

    rows: list[TreeRow] = []
    seen: set[str] = set()
    stack: list[tuple[Task, int]] = [(t, 0) for t in reversed(roots)]
    while stack:
        task, depth = stack.pop()
        if task.id in seen:
            continue
        seen.add(task.id)

        kids = [c for c in children.get(task.id, ()) if c.id not in seen]
        rows.append(TreeRow(task=task, depth=depth, has_children=bool(kids)))
        stack.extend((c, depth + 1) for c in reversed(kids))

    return rows


def descendant_ids(tasks: Iterable[Task], task_id: str) -> set[str]:
    """Ids of every task below `task_id` (not including it), following parent links."""
    children: dict[str, list[str]] = {}
    for t in tasks:
        if t.parent_id is not None:
            children.setdefault(t.parent_id, []).append(t.id)

    out: set[str] = set()
    queue = list(children.get(task_id, ()))
    while queue:
        tid = queue.pop()
        if tid in out or tid == task_id:
            continue
        out.add(tid)
        queue.extend(children.get(tid, ()))
    return out


def would_create_cycle(tasks: Iterable[Task], task_id: str, new_parent_id: str | None) -> bool:
    """True if re-parenting `task_id` under `new_parent_id` makes it its own ancestor."""
    if new_parent_id is None:
        return False
    if new_parent_id == task_id:
        return True
    return new_parent_id in descendant_ids(tasks, task_id)
