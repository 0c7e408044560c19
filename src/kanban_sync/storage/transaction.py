"""In-memory view of every board table for the duration of one transaction.

Both store backends load their persisted state into a
:class:`StoreTransaction`, let the caller mutate it, and serialize it back
with :meth:`StoreTransaction.to_state` on commit.
"""

from __future__ import annotations

from typing import Any, Callable, Generic, Iterable, Optional, TypeVar

from ..constants import STORE_SCHEMA_VERSION, TABLES
from ..domain.models import UNSAVED_ID, Board, Column, Comment, Task, Team, User, UserTeam, Workspace
from ..errors import NotFoundError
from ..ordering import Assignment, sort_by_rank

T = TypeVar("T")


class _Table(Generic[T]):
    def __init__(self, entity: str, rows: Iterable[T], next_id: int = 1) -> None:
        self.entity = entity
        self._rows: dict[int, T] = {}
        for row in rows:
            self._rows[row.id] = row  # type: ignore[attr-defined]
        self._next_id = max(int(next_id or 1), max(self._rows, default=0) + 1)
        self.dirty = False

    def __len__(self) -> int:
        return len(self._rows)

    @property
    def next_id(self) -> int:
        return self._next_id

    # -- lookups ------------------------------------------------------------

    def get(self, row_id: int) -> Optional[T]:
        return self._rows.get(row_id)

    def require(self, row_id: int) -> T:
        row = self._rows.get(row_id)
        if row is None:
            raise NotFoundError(self.entity, row_id)
        return row

    def list(self, **filters: Any) -> list[T]:
        out: list[T] = []
        for row in self._rows.values():
            if all(getattr(row, key) == value for key, value in filters.items()):
                out.append(row)
        return out

    # -- mutations ----------------------------------------------------------

    def insert(self, row: T) -> T:
        row_id = row.id  # type: ignore[attr-defined]
        if row_id == UNSAVED_ID:
            row_id = self._next_id
            row.id = row_id  # type: ignore[attr-defined]
        if row_id in self._rows:
            raise ValueError(f"{self.entity.capitalize()} {row_id} already exists")
        self._rows[row_id] = row
        self._next_id = max(self._next_id, row_id + 1)
        self.dirty = True
        return row

    def mark_changed(self, row: T) -> T:
        """Flag an in-place edit of ``row`` so the transaction commits it."""
        self.require(row.id)  # type: ignore[attr-defined]
        self.dirty = True
        return row

    def delete(self, row_id: int) -> bool:
        if self._rows.pop(row_id, None) is None:
            return False
        self.dirty = True
        return True

    def delete_where(self, **filters: Any) -> list[T]:
        doomed = self.list(**filters)
        for row in doomed:
            del self._rows[row.id]  # type: ignore[attr-defined]
        if doomed:
            self.dirty = True
        return doomed

    def set_orders(self, assignments: Iterable[Assignment], on_change: Optional[Callable[[T], None]] = None) -> list[T]:
        """Apply ``(id, order)`` pairs; returns the rows whose order changed."""
        changed: list[T] = []
        for row_id, order in assignments:
            row = self.require(row_id)
            if row.order != order:  # type: ignore[attr-defined]
                row.order = order  # type: ignore[attr-defined]
                if on_change is not None:
                    on_change(row)
                changed.append(row)
        if changed:
            self.dirty = True
        return changed

    def dump(self) -> list[dict[str, Any]]:
        return [row.to_dict() for row in self._rows.values()]  # type: ignore[attr-defined]


def _rows(state: dict[str, Any], key: str) -> list[dict[str, Any]]:
    items = state.get(key)
    if not isinstance(items, list):
        return []
    return [item for item in items if isinstance(item, dict)]


class StoreTransaction:
    """All board tables plus the queries the ordering engine needs."""

    def __init__(self, state: Optional[dict[str, Any]] = None) -> None:
        state = state if isinstance(state, dict) else {}
        seq = state.get("sequences") if isinstance(state.get("sequences"), dict) else {}
        self.users = _Table[User]("user", (User.from_dict(d) for d in _rows(state, "users")), seq.get("users", 1))
        self.workspaces = _Table[Workspace]("workspace", (Workspace.from_dict(d) for d in _rows(state, "workspaces")), seq.get("workspaces", 1))
        self.teams = _Table[Team]("team", (Team.from_dict(d) for d in _rows(state, "teams")), seq.get("teams", 1))
        self.user_teams = _Table[UserTeam]("user team", (UserTeam.from_dict(d) for d in _rows(state, "user_teams")), seq.get("user_teams", 1))
        self.boards = _Table[Board]("board", (Board.from_dict(d) for d in _rows(state, "boards")), seq.get("boards", 1))
        self.columns = _Table[Column]("column", (Column.from_dict(d) for d in _rows(state, "columns")), seq.get("columns", 1))
        self.tasks = _Table[Task]("task", (Task.from_dict(d) for d in _rows(state, "tasks")), seq.get("tasks", 1))
        self.comments = _Table[Comment]("comment", (Comment.from_dict(d) for d in _rows(state, "comments")), seq.get("comments", 1))

    def _tables(self) -> dict[str, _Table[Any]]:
        return {name: getattr(self, name) for name in TABLES}

    @property
    def dirty(self) -> bool:
        return any(table.dirty for table in self._tables().values())

    def to_state(self) -> dict[str, Any]:
        tables = self._tables()
        state: dict[str, Any] = {
            "version": STORE_SCHEMA_VERSION,
            "sequences": {name: table.next_id for name, table in tables.items()},
        }
        for name, table in tables.items():
            state[name] = table.dump()
        return state

    # -- ordered queries ----------------------------------------------------

    def columns_for_board(self, board_id: int) -> list[Column]:
        return sort_by_rank(self.columns.list(board_id=board_id))

    def tasks_for_column(self, column_id: int) -> list[Task]:
        return sort_by_rank(self.tasks.list(column_id=column_id))

    def comments_for_task(self, task_id: int) -> list[Comment]:
        return sorted(self.comments.list(task_id=task_id), key=lambda c: (c.created_at, c.id))

    def board_for_column(self, column_id: int) -> Board:
        column = self.columns.require(column_id)
        return self.boards.require(column.board_id)
