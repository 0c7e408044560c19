"""Pure reducers for the client-side board mirror.

``reduce(state, action)`` never mutates ``state``; it returns a new
:class:`BoardState`. Positional changes go through
:mod:`kanban_sync.ordering` so the local order matches what the server
computes for the same request.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from ..domain.models import Board, Column, Task
from ..ordering import (
    Assignment,
    append_at_end,
    compact_columns_after_delete,
    move_across_columns,
    remove_and_compact,
    reorder_within_column,
    sort_by_rank,
)


@dataclass(frozen=True)
class Action:
    type: str
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass
class BoardState:
    """Snapshot of one board as the UI sees it.

    ``tasks`` maps a column id to that column's tasks in display order.
    """

    board: Optional[Board] = None
    columns: list[Column] = field(default_factory=list)
    tasks: dict[int, list[Task]] = field(default_factory=dict)
    loading: bool = False
    error: Optional[str] = None

    def clone(self) -> "BoardState":
        return copy.deepcopy(self)

    def find_task(self, task_id: int) -> Optional[Task]:
        for bucket in self.tasks.values():
            for task in bucket:
                if task.id == task_id:
                    return task
        return None

    def find_column(self, column_id: int) -> Optional[Column]:
        for column in self.columns:
            if column.id == column_id:
                return column
        return None

    def tasks_in(self, column_id: int) -> list[Task]:
        return self.tasks.get(column_id, [])

    def task_ids(self) -> dict[int, list[int]]:
        """``{column_id: [task ids in order]}``, handy for comparisons."""
        return {column.id: [t.id for t in self.tasks_in(column.id)] for column in self.columns}


def _apply(items: list[Any], assignments: list[Assignment]) -> list[Any]:
    orders = dict(assignments)
    for item in items:
        if item.id in orders:
            item.order = orders[item.id]
    return sort_by_rank(items)


# ---------------------------------------------------------------------------
# Board
# ---------------------------------------------------------------------------

def _board_loading(state: BoardState, payload: dict[str, Any]) -> BoardState:
    state.loading = True
    state.error = None
    return state


def _board_loaded(state: BoardState, payload: dict[str, Any]) -> BoardState:
    columns: list[Column] = sort_by_rank(copy.deepcopy(payload["columns"]))
    tasks: dict[int, list[Task]] = {column.id: [] for column in columns}
    for column_id, bucket in payload.get("tasks", {}).items():
        tasks[int(column_id)] = sort_by_rank(copy.deepcopy(bucket))
    return BoardState(board=copy.deepcopy(payload["board"]), columns=columns, tasks=tasks)


def _board_failed(state: BoardState, payload: dict[str, Any]) -> BoardState:
    state.loading = False
    state.error = str(payload.get("error") or "Failed to load board")
    return state


def _restore(state: BoardState, payload: dict[str, Any]) -> BoardState:
    return payload["state"].clone()


# ---------------------------------------------------------------------------
# Columns
# ---------------------------------------------------------------------------

def _column_added(state: BoardState, payload: dict[str, Any]) -> BoardState:
    column: Column = copy.deepcopy(payload["column"])
    column.order = append_at_end([c.order for c in state.columns])
    state.columns.append(column)
    state.tasks.setdefault(column.id, [])
    return state


def _column_replaced(state: BoardState, payload: dict[str, Any]) -> BoardState:
    """Install the server's copy of a column, dropping any placeholder."""
    column: Column = copy.deepcopy(payload["column"])
    temp_id = payload.get("temp_id")
    stale = {column.id} | ({temp_id} if temp_id is not None else set())
    state.columns = sort_by_rank([c for c in state.columns if c.id not in stale] + [column])
    bucket = state.tasks.pop(temp_id, []) if temp_id is not None else []
    state.tasks.setdefault(column.id, bucket)
    return state


def _column_renamed(state: BoardState, payload: dict[str, Any]) -> BoardState:
    column = state.find_column(payload["column_id"])
    if column is not None:
        column.name = payload["name"]
    return state


def _column_moved(state: BoardState, payload: dict[str, Any]) -> BoardState:
    assignments = reorder_within_column(state.columns, payload["column_id"], payload["index"], entity="column")
    state.columns = _apply(state.columns, assignments)
    return state


def _column_removed(state: BoardState, payload: dict[str, Any]) -> BoardState:
    column_id = payload["column_id"]
    if state.find_column(column_id) is None:
        return state
    assignments = compact_columns_after_delete(state.columns, column_id)
    state.columns = _apply([c for c in state.columns if c.id != column_id], assignments)
    state.tasks.pop(column_id, None)
    return state


def _column_tasks_loaded(state: BoardState, payload: dict[str, Any]) -> BoardState:
    state.tasks[payload["column_id"]] = sort_by_rank(copy.deepcopy(payload["tasks"]))
    return state


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------

def _task_added(state: BoardState, payload: dict[str, Any]) -> BoardState:
    task: Task = copy.deepcopy(payload["task"])
    bucket = state.tasks.setdefault(task.column_id, [])
    task.order = append_at_end([t.order for t in bucket])
    bucket.append(task)
    return state


def _task_replaced(state: BoardState, payload: dict[str, Any]) -> BoardState:
    """Install the server's copy of a task; server fields win."""
    task: Task = copy.deepcopy(payload["task"])
    temp_id = payload.get("temp_id")
    stale = {task.id} | ({temp_id} if temp_id is not None else set())
    for column_id, bucket in state.tasks.items():
        state.tasks[column_id] = [t for t in bucket if t.id not in stale]
    state.tasks[task.column_id] = sort_by_rank(state.tasks.get(task.column_id, []) + [task])
    return state


def _task_updated(state: BoardState, payload: dict[str, Any]) -> BoardState:
    task = state.find_task(payload["task_id"])
    if task is not None:
        for key, value in payload["changes"].items():
            setattr(task, key, value)
    return state


def _task_moved(state: BoardState, payload: dict[str, Any]) -> BoardState:
    task = state.find_task(payload["task_id"])
    if task is None:
        return state
    source_id = task.column_id
    destination_id = payload["column_id"]
    source = state.tasks_in(source_id)
    destination = state.tasks_in(destination_id)
    result = move_across_columns(source, destination, task.id, payload["index"])
    if result.same_column:
        state.tasks[source_id] = _apply(source, result.inserted_into_destination)
        return state
    task.column_id = destination_id
    state.tasks[source_id] = _apply([t for t in source if t.id != task.id], result.removed_from_source)
    state.tasks[destination_id] = _apply(destination + [task], result.inserted_into_destination)
    return state


def _task_removed(state: BoardState, payload: dict[str, Any]) -> BoardState:
    task = state.find_task(payload["task_id"])
    if task is None:
        return state
    bucket = state.tasks_in(task.column_id)
    assignments = remove_and_compact(bucket, task.id)
    state.tasks[task.column_id] = _apply([t for t in bucket if t.id != task.id], assignments)
    return state


REDUCERS: dict[str, Callable[[BoardState, dict[str, Any]], BoardState]] = {
    "board/loading": _board_loading,
    "board/loaded": _board_loaded,
    "board/failed": _board_failed,
    "state/restore": _restore,
    "column/added": _column_added,
    "column/replaced": _column_replaced,
    "column/renamed": _column_renamed,
    "column/moved": _column_moved,
    "column/removed": _column_removed,
    "column/tasks_loaded": _column_tasks_loaded,
    "task/added": _task_added,
    "task/replaced": _task_replaced,
    "task/updated": _task_updated,
    "task/moved": _task_moved,
    "task/removed": _task_removed,
}


def reduce(state: BoardState, action: Action) -> BoardState:
    """Apply ``action`` to a copy of ``state``.

    Raises:
        ValueError: unknown action type.
        NotFoundError, InvalidIndexError: a positional action is invalid for
            ``state``; ``state`` itself is left untouched.
    """
    handler = REDUCERS.get(action.type)
    if handler is None:
        raise ValueError(f"Unknown action type: {action.type}")
    return handler(state.clone(), action.payload)
