"""Assemble a board with its columns and tasks in display order."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Sequence

from loguru import logger

from ..domain.models import Board, Column, Task
from ..errors import OrderInvariantViolation
from ..logging_utils import summarize_assignments
from ..ordering import Assignment, changed_assignments, dense_ranks, find_order_violations, sort_by_rank
from ..storage.interfaces import BoardStore
from ..storage.transaction import StoreTransaction


@dataclass
class ColumnView:
    column: Column
    tasks: list[Task] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {**self.column.to_dict(), "tasks": [t.to_dict() for t in self.tasks]}


@dataclass
class BoardAggregate:
    """A board with ordered columns, each holding its ordered tasks.

    ``repaired`` is set when stored orders had gaps or duplicates. The ranks
    in this view are already dense; ``column_repairs`` and ``task_repairs``
    hold the ``(id, order)`` pairs that differ from what is stored.
    """

    board: Board
    columns: list[ColumnView] = field(default_factory=list)
    column_repairs: list[Assignment] = field(default_factory=list)
    task_repairs: list[Assignment] = field(default_factory=list)

    @property
    def repaired(self) -> bool:
        return bool(self.column_repairs or self.task_repairs)

    def to_dict(self) -> dict[str, Any]:
        return {"board": self.board.to_dict(), "columns": [c.to_dict() for c in self.columns]}

    def task_count(self) -> int:
        return sum(len(view.tasks) for view in self.columns)


def _rerank(items: Sequence[Any], scope: str, repairs: list[Assignment]) -> list[Any]:
    ordered = sort_by_rank(items)
    problems = find_order_violations(ordered)
    if not problems:
        return ordered
    logger.warning("{}; serving re-ranked view", OrderInvariantViolation(scope, problems).message)
    changed = changed_assignments(ordered, dense_ranks(ordered))
    logger.debug("Repair for {}: {}", scope, summarize_assignments(changed))
    repairs.extend(changed)
    by_id = {item.id: item for item in ordered}
    for item_id, order in changed:
        by_id[item_id].order = order
    return ordered


class BoardLoader:
    """Read-only aggregate loader over a :class:`BoardStore` snapshot."""

    def __init__(self, store: BoardStore) -> None:
        self._store = store

    def load(self, board_id: int) -> BoardAggregate:
        return self.load_from(self._store.read_snapshot(), board_id)

    @staticmethod
    def load_from(txn: StoreTransaction, board_id: int) -> BoardAggregate:
        """Build the aggregate from an already open snapshot.

        Rows in the returned aggregate are the snapshot's own records, so a
        repair applied here is visible to a caller holding ``txn`` open.

        Raises:
            NotFoundError: the board does not exist.
        """
        board = txn.boards.require(board_id)
        column_repairs: list[Assignment] = []
        task_repairs: list[Assignment] = []
        columns = _rerank(txn.columns.list(board_id=board_id), f"board {board_id} columns", column_repairs)
        views = [
            ColumnView(
                column=column,
                tasks=_rerank(txn.tasks.list(column_id=column.id), f"column {column.id} tasks", task_repairs),
            )
            for column in columns
        ]
        return BoardAggregate(board=board, columns=views, column_repairs=column_repairs, task_repairs=task_repairs)
