"""Board service: every read and mutation of the board tables.

Each mutating method runs inside a single store transaction. The live
snapshot is read, new orders are computed by :mod:`kanban_sync.ordering`,
and all resulting writes commit together; any error inside the block
leaves the persisted state untouched. Events are published only after a
successful commit.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator, Optional

import yaml
from filelock import Timeout
from loguru import logger

from ..constants import DEFAULT_CATEGORY, DEFAULT_COLUMNS, DEFAULT_PRIORITY, DEFAULT_TEAM_ROLE, PRIORITIES
from ..domain.models import Board, Column, Comment, Task, Team, User, UserTeam, Workspace, now_iso
from ..errors import KanbanError, TransportError, ValidationError
from ..events.bus import EventBus
from ..logging_utils import summarize_assignments
from ..ordering import (
    append_at_end,
    compact_columns_after_delete,
    move_across_columns,
    remove_and_compact,
    reorder_within_column,
)
from ..storage.interfaces import BoardStore
from ..storage.transaction import StoreTransaction
from .loader import BoardAggregate, BoardLoader

_TASK_FIELDS = {
    "title",
    "description",
    "column_id",
    "order",
    "assignee_id",
    "priority",
    "category",
    "due_date",
    "is_completed",
}

_STORAGE_ERRORS = (OSError, yaml.YAMLError, Timeout)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------

def _required_text(field: str, value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError.for_field(field, "must be a non-empty string")
    return value.strip()


def _priority(value: Any) -> str:
    if value not in PRIORITIES:
        raise ValidationError.for_field("priority", f"must be one of {', '.join(PRIORITIES)}")
    return str(value)


def _index(field: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError.for_field(field, "must be an integer")
    return value


class _Pending:
    """Events collected inside a transaction and published after commit."""

    def __init__(self) -> None:
        self.events: list[dict[str, Any]] = []

    def add(self, channel: str, event_type: str, entity_id: int, payload: dict[str, Any], board_id: Optional[int]) -> None:
        self.events.append(
            {
                "channel": channel,
                "event_type": event_type,
                "entity_id": entity_id,
                "payload": payload,
                "board_id": board_id,
            }
        )


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class BoardService:
    """Transport-agnostic operations over a :class:`BoardStore`.

    Parameters
    ----------
    store:
        Backing store; all writes go through ``store.transaction()``.
    bus:
        Optional event bus. When omitted mutations are not broadcast.
    """

    def __init__(self, store: BoardStore, bus: Optional[EventBus] = None) -> None:
        self.store = store
        self.bus = bus
        self.loader = BoardLoader(store)

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    @contextmanager
    def _transaction(self, action: str) -> Iterator[tuple[StoreTransaction, _Pending]]:
        pending = _Pending()
        try:
            with self.store.transaction() as txn:
                yield txn, pending
        except KanbanError:
            raise
        except _STORAGE_ERRORS as exc:
            logger.error("Storage failure during {}: {}", action, exc)
            raise TransportError(f"Storage failure during {action}: {exc}") from exc
        self._publish(pending)

    def _snapshot(self) -> StoreTransaction:
        try:
            return self.store.read_snapshot()
        except _STORAGE_ERRORS as exc:
            logger.error("Storage failure during read: {}", exc)
            raise TransportError(f"Storage failure during read: {exc}") from exc

    def _publish(self, pending: _Pending) -> None:
        if self.bus is None:
            return
        # The mutation is already committed; a lost event must not fail it.
        for event in pending.events:
            try:
                self.bus.emit(**event)
            except _STORAGE_ERRORS as exc:
                logger.error(
                    "Failed to record {} event for entity {}: {}", event["event_type"], event["entity_id"], exc
                )

    @staticmethod
    def _touch_board(txn: StoreTransaction, board_id: int) -> None:
        board = txn.boards.get(board_id)
        if board is not None:
            board.updated_at = now_iso()
            txn.boards.mark_changed(board)

    # ------------------------------------------------------------------
    # Users, workspaces, teams
    # ------------------------------------------------------------------

    def create_user(
        self,
        username: str,
        email: str,
        password: str,
        avatar_url: Optional[str] = None,
    ) -> User:
        username = _required_text("username", username)
        email = _required_text("email", email)
        password = _required_text("password", password)
        with self._transaction("create user") as (txn, pending):
            if any(u.username == username for u in txn.users.list()):
                raise ValidationError.for_field("username", "is already taken")
            user = txn.users.insert(User(username=username, email=email, password=password, avatar_url=avatar_url))
            pending.add("system", "user.created", user.id, {"username": user.username}, None)
        logger.info("Created user {} ({})", user.id, user.username)
        return user

    def get_user(self, user_id: int) -> User:
        return self._snapshot().users.require(user_id)

    def list_users(self) -> list[User]:
        return sorted(self._snapshot().users.list(), key=lambda u: u.id)

    def authenticate(self, username: str, password: str) -> Optional[User]:
        """Return the user whose credentials match, else ``None``."""
        for user in self._snapshot().users.list(username=username):
            if user.password == password:
                return user
        return None

    def create_workspace(self, name: str, owner_id: int) -> Workspace:
        name = _required_text("name", name)
        with self._transaction("create workspace") as (txn, pending):
            txn.users.require(owner_id)
            workspace = txn.workspaces.insert(Workspace(name=name, owner_id=owner_id))
            pending.add("system", "workspace.created", workspace.id, workspace.to_dict(), None)
        return workspace

    def list_workspaces(self, owner_id: int) -> list[Workspace]:
        return sorted(self._snapshot().workspaces.list(owner_id=owner_id), key=lambda w: w.id)

    def get_workspace(self, workspace_id: int) -> Workspace:
        return self._snapshot().workspaces.require(workspace_id)

    def create_team(self, name: str, workspace_id: int) -> Team:
        name = _required_text("name", name)
        with self._transaction("create team") as (txn, pending):
            txn.workspaces.require(workspace_id)
            team = txn.teams.insert(Team(name=name, workspace_id=workspace_id))
            pending.add("system", "team.created", team.id, team.to_dict(), None)
        return team

    def list_teams(self, workspace_id: int) -> list[Team]:
        return sorted(self._snapshot().teams.list(workspace_id=workspace_id), key=lambda t: t.id)

    def add_user_to_team(self, user_id: int, team_id: int, role: str = DEFAULT_TEAM_ROLE) -> UserTeam:
        role = _required_text("role", role)
        with self._transaction("add user to team") as (txn, pending):
            txn.users.require(user_id)
            txn.teams.require(team_id)
            if txn.user_teams.list(user_id=user_id, team_id=team_id):
                raise ValidationError.for_field("teamId", f"user {user_id} is already a member of team {team_id}")
            membership = txn.user_teams.insert(UserTeam(user_id=user_id, team_id=team_id, role=role))
            pending.add("system", "team.member_added", membership.id, membership.to_dict(), None)
        return membership

    def list_user_teams(self, user_id: int) -> list[tuple[UserTeam, Team]]:
        """Memberships of ``user_id`` paired with their team."""
        txn = self._snapshot()
        out: list[tuple[UserTeam, Team]] = []
        for membership in sorted(txn.user_teams.list(user_id=user_id), key=lambda m: m.id):
            team = txn.teams.get(membership.team_id)
            if team is not None:
                out.append((membership, team))
        return out

    # ------------------------------------------------------------------
    # Boards
    # ------------------------------------------------------------------

    def create_board(self, name: str, workspace_id: int, *, with_default_columns: bool = False) -> Board:
        name = _required_text("name", name)
        with self._transaction("create board") as (txn, pending):
            txn.workspaces.require(workspace_id)
            board = txn.boards.insert(Board(name=name, workspace_id=workspace_id))
            if with_default_columns:
                for order, column_name in enumerate(DEFAULT_COLUMNS):
                    txn.columns.insert(Column(name=column_name, board_id=board.id, order=order))
            pending.add("boards", "board.created", board.id, board.to_dict(), board.id)
        logger.info("Created board {} '{}' in workspace {}", board.id, board.name, workspace_id)
        return board

    def get_board(self, board_id: int) -> Board:
        return self._snapshot().boards.require(board_id)

    def list_boards(self, workspace_id: Optional[int] = None) -> list[Board]:
        txn = self._snapshot()
        boards = txn.boards.list() if workspace_id is None else txn.boards.list(workspace_id=workspace_id)
        return sorted(boards, key=lambda b: b.id)

    def update_board(self, board_id: int, *, name: Optional[str] = None) -> Board:
        with self._transaction("update board") as (txn, pending):
            board = txn.boards.require(board_id)
            if name is not None:
                board.name = _required_text("name", name)
            board.updated_at = now_iso()
            txn.boards.mark_changed(board)
            pending.add("boards", "board.updated", board.id, board.to_dict(), board.id)
        return board

    def delete_board(self, board_id: int) -> None:
        with self._transaction("delete board") as (txn, pending):
            txn.boards.require(board_id)
            removed_tasks = 0
            for column in txn.columns.delete_where(board_id=board_id):
                for task in txn.tasks.delete_where(column_id=column.id):
                    txn.comments.delete_where(task_id=task.id)
                    removed_tasks += 1
            txn.boards.delete(board_id)
            pending.add("boards", "board.deleted", board_id, {"tasks_removed": removed_tasks}, board_id)
        logger.info("Deleted board {} ({} tasks)", board_id, removed_tasks)

    def load_board(self, board_id: int) -> BoardAggregate:
        """Return the ordered aggregate, persisting any order repair."""
        aggregate = BoardLoader.load_from(self._snapshot(), board_id)
        if not aggregate.repaired:
            return aggregate
        with self._transaction("repair board order") as (txn, pending):
            aggregate = BoardLoader.load_from(txn, board_id)
            for column_id, _ in aggregate.column_repairs:
                txn.columns.mark_changed(txn.columns.require(column_id))
            for task_id, _ in aggregate.task_repairs:
                txn.tasks.mark_changed(txn.tasks.require(task_id))
            if aggregate.repaired:
                pending.add(
                    "boards",
                    "board.order_repaired",
                    board_id,
                    {
                        "columns": [list(a) for a in aggregate.column_repairs],
                        "tasks": [list(a) for a in aggregate.task_repairs],
                    },
                    board_id,
                )
        logger.info(
            "Repaired order on board {}: columns [{}] tasks [{}]",
            board_id,
            summarize_assignments(aggregate.column_repairs),
            summarize_assignments(aggregate.task_repairs),
        )
        return aggregate

    # ------------------------------------------------------------------
    # Columns
    # ------------------------------------------------------------------

    def create_column(self, name: str, board_id: int) -> Column:
        name = _required_text("name", name)
        with self._transaction("create column") as (txn, pending):
            txn.boards.require(board_id)
            existing = [c.order for c in txn.columns.list(board_id=board_id)]
            column = txn.columns.insert(Column(name=name, board_id=board_id, order=append_at_end(existing)))
            self._touch_board(txn, board_id)
            pending.add("columns", "column.created", column.id, column.to_dict(), board_id)
        return column

    def get_column(self, column_id: int) -> Column:
        return self._snapshot().columns.require(column_id)

    def list_columns(self, board_id: int) -> list[Column]:
        txn = self._snapshot()
        txn.boards.require(board_id)
        return txn.columns_for_board(board_id)

    def update_column(self, column_id: int, *, name: Optional[str] = None, order: Optional[int] = None) -> Column:
        """Rename a column and/or move it to position ``order`` on its board."""
        with self._transaction("update column") as (txn, pending):
            column = txn.columns.require(column_id)
            if name is not None:
                column.name = _required_text("name", name)
                txn.columns.mark_changed(column)
            assignments = []
            if order is not None:
                assignments = self._reorder_columns(txn, column, _index("order", order))
            self._touch_board(txn, column.board_id)
            pending.add(
                "columns",
                "column.updated",
                column.id,
                {**column.to_dict(), "assignments": [list(a) for a in assignments]},
                column.board_id,
            )
        return column

    def move_column(self, column_id: int, index: int) -> list[Column]:
        """Move a column to ``index``; returns the board's columns in order."""
        with self._transaction("move column") as (txn, pending):
            column = txn.columns.require(column_id)
            assignments = self._reorder_columns(txn, column, _index("index", index))
            self._touch_board(txn, column.board_id)
            pending.add(
                "columns",
                "column.moved",
                column.id,
                {"index": index, "assignments": [list(a) for a in assignments]},
                column.board_id,
            )
            columns = txn.columns_for_board(column.board_id)
        return columns

    @staticmethod
    def _reorder_columns(txn: StoreTransaction, column: Column, index: int) -> list[tuple[int, int]]:
        assignments = reorder_within_column(
            txn.columns_for_board(column.board_id), column.id, index, entity="column"
        )
        changed = txn.columns.set_orders(assignments)
        logger.debug("Column reorder on board {}: {}", column.board_id, summarize_assignments(assignments))
        return [(c.id, c.order) for c in changed]

    def delete_column(self, column_id: int) -> None:
        with self._transaction("delete column") as (txn, pending):
            column = txn.columns.require(column_id)
            assignments = compact_columns_after_delete(txn.columns_for_board(column.board_id), column_id)
            removed = txn.tasks.delete_where(column_id=column_id)
            for task in removed:
                txn.comments.delete_where(task_id=task.id)
            txn.columns.delete(column_id)
            txn.columns.set_orders(assignments)
            self._touch_board(txn, column.board_id)
            pending.add(
                "columns",
                "column.deleted",
                column_id,
                {"tasks_removed": [t.id for t in removed], "assignments": [list(a) for a in assignments]},
                column.board_id,
            )
        logger.info("Deleted column {} and {} task(s)", column_id, len(removed))

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def create_task(
        self,
        title: str,
        column_id: int,
        *,
        category: str = DEFAULT_CATEGORY,
        priority: str = DEFAULT_PRIORITY,
        description: Optional[str] = None,
        assignee_id: Optional[int] = None,
        due_date: Optional[str] = None,
        is_completed: bool = False,
        order: Optional[int] = None,
    ) -> Task:
        """Append a task to the end of ``column_id``.

        ``order`` is accepted for wire compatibility and ignored; the
        position is always computed from the live column.
        """
        title = _required_text("title", title)
        category = _required_text("category", category)
        priority = _priority(priority)
        with self._transaction("create task") as (txn, pending):
            column = txn.columns.require(column_id)
            if assignee_id is not None:
                txn.users.require(assignee_id)
            existing = [t.order for t in txn.tasks.list(column_id=column_id)]
            if order is not None and order != len(existing):
                logger.debug("Ignoring client order {} for new task in column {}", order, column_id)
            task = txn.tasks.insert(
                Task(
                    title=title,
                    description=description,
                    column_id=column_id,
                    order=append_at_end(existing),
                    assignee_id=assignee_id,
                    priority=priority,  # type: ignore[arg-type]
                    category=category,
                    due_date=due_date,
                    is_completed=bool(is_completed),
                )
            )
            self._touch_board(txn, column.board_id)
            pending.add("tasks", "task.created", task.id, task.to_dict(), column.board_id)
        return task

    def get_task(self, task_id: int) -> Task:
        return self._snapshot().tasks.require(task_id)

    def list_tasks(self, column_id: int) -> list[Task]:
        txn = self._snapshot()
        txn.columns.require(column_id)
        return txn.tasks_for_column(column_id)

    def update_task(self, task_id: int, **changes: Any) -> Task:
        """Merge ``changes`` into a task.

        A changed ``column_id`` or ``order`` is applied as a move in the
        same transaction, so the partial update and the reorder commit
        together.
        """
        unknown = set(changes) - _TASK_FIELDS
        if unknown:
            raise ValidationError(
                f"Unknown task field(s): {', '.join(sorted(unknown))}",
                errors=[{"field": name, "message": "unknown field"} for name in sorted(unknown)],
            )
        with self._transaction("update task") as (txn, pending):
            task = txn.tasks.require(task_id)
            if "title" in changes:
                task.title = _required_text("title", changes["title"])
            if "category" in changes:
                task.category = _required_text("category", changes["category"])
            if "priority" in changes:
                task.priority = _priority(changes["priority"])  # type: ignore[assignment]
            if "description" in changes:
                task.description = changes["description"]
            if "assignee_id" in changes:
                if changes["assignee_id"] is not None:
                    txn.users.require(changes["assignee_id"])
                task.assignee_id = changes["assignee_id"]
            if "due_date" in changes:
                task.due_date = changes["due_date"]
            if "is_completed" in changes:
                task.is_completed = bool(changes["is_completed"])

            destination = changes.get("column_id")
            index = changes.get("order")
            moved = False
            if destination is not None and destination != task.column_id:
                if index is None:
                    index = len(txn.tasks.list(column_id=destination))
                moved = True
            elif index is not None and index != task.order:
                destination = task.column_id
                moved = True

            board_ids = {txn.board_for_column(task.column_id).id}
            if moved:
                move_payload = self._apply_move(txn, task, int(destination), _index("order", index))
                board_ids |= set(move_payload["board_ids"])
            task.touch()
            txn.tasks.mark_changed(task)
            for board_id in board_ids:
                self._touch_board(txn, board_id)
            pending.add("tasks", "task.updated", task.id, task.to_dict(), txn.board_for_column(task.column_id).id)
        return task

    def delete_task(self, task_id: int) -> None:
        with self._transaction("delete task") as (txn, pending):
            task = txn.tasks.require(task_id)
            assignments = remove_and_compact(txn.tasks_for_column(task.column_id), task_id)
            txn.comments.delete_where(task_id=task_id)
            txn.tasks.delete(task_id)
            txn.tasks.set_orders(assignments, on_change=Task.touch)
            board_id = txn.board_for_column(task.column_id).id
            self._touch_board(txn, board_id)
            pending.add(
                "tasks",
                "task.deleted",
                task_id,
                {"column_id": task.column_id, "assignments": [list(a) for a in assignments]},
                board_id,
            )

    def move_task(self, task_id: int, destination_column_id: int, destination_index: int) -> Task:
        """Move a task to ``destination_index`` of ``destination_column_id``.

        Moving within the task's own column is a reorder. Source and
        destination orders are written in one commit.

        Raises:
            NotFoundError: unknown task or destination column.
            InvalidIndexError: index outside the destination's valid range.
        """
        destination_index = _index("order", destination_index)
        with self._transaction("move task") as (txn, pending):
            task = txn.tasks.require(task_id)
            payload = self._apply_move(txn, task, destination_column_id, destination_index)
            task.touch()
            txn.tasks.mark_changed(task)
            for board_id in payload["board_ids"]:
                self._touch_board(txn, board_id)
            pending.add("tasks", "task.moved", task.id, {**task.to_dict(), **payload}, txn.board_for_column(task.column_id).id)
        return task

    def _apply_move(self, txn: StoreTransaction, task: Task, destination_column_id: int, destination_index: int) -> dict[str, Any]:
        destination = txn.columns.require(destination_column_id)
        source_column_id = task.column_id
        source_tasks = txn.tasks_for_column(source_column_id)
        if destination.id == source_column_id:
            destination_tasks = source_tasks
        else:
            destination_tasks = txn.tasks_for_column(destination.id)
        result = move_across_columns(source_tasks, destination_tasks, task.id, destination_index)
        task.column_id = destination.id
        txn.tasks.set_orders(result.all_assignments(), on_change=Task.touch)
        logger.debug(
            "Moved task {} from column {} to {}[{}]; source [{}] destination [{}]",
            task.id,
            source_column_id,
            destination.id,
            destination_index,
            summarize_assignments(result.removed_from_source),
            summarize_assignments(result.inserted_into_destination),
        )
        board_ids = sorted({txn.board_for_column(source_column_id).id, destination.board_id})
        return {
            "from_column_id": source_column_id,
            "to_column_id": destination.id,
            "removed_from_source": [list(a) for a in result.removed_from_source],
            "inserted_into_destination": [list(a) for a in result.inserted_into_destination],
            "board_ids": board_ids,
        }

    # ------------------------------------------------------------------
    # Comments
    # ------------------------------------------------------------------

    def list_comments(self, task_id: int) -> list[Comment]:
        txn = self._snapshot()
        txn.tasks.require(task_id)
        return txn.comments_for_task(task_id)

    def create_comment(self, content: str, task_id: int, user_id: int) -> Comment:
        content = _required_text("content", content)
        with self._transaction("create comment") as (txn, pending):
            task = txn.tasks.require(task_id)
            txn.users.require(user_id)
            comment = txn.comments.insert(Comment(content=content, task_id=task_id, user_id=user_id))
            pending.add("comments", "comment.created", comment.id, comment.to_dict(), txn.board_for_column(task.column_id).id)
        return comment

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def recent_events(self, limit: int = 100) -> list[dict[str, Any]]:
        if self.bus is None:
            return []
        return self.bus.recent(limit)
