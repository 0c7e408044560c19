"""Optimistic client-side mirror of one board.

Every mutation is applied locally first, then sent to the server:

* on success the server's copy replaces the optimistic one, and the
  columns a move touched are re-read so sibling orders match the server;
* on failure the last server-confirmed snapshot is restored, a
  :class:`Notification` is recorded, and the error is re-raised.

Two snapshots are kept. ``state`` is what the UI renders. ``confirmed``
only ever receives server-authoritative actions, so it is always the
rollback target.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from loguru import logger

from ..domain.models import Column, Task, now_iso
from ..errors import KanbanError
from .api_client import BoardApiClient
from .reducers import Action, BoardState, reduce

Listener = Callable[[BoardState], None]
ErrorListener = Callable[["Notification"], None]

_POSITIONAL = {"column_id", "order"}


@dataclass
class Notification:
    """A user-visible message, typically rendered as a toast."""

    message: str
    level: str = "error"
    entity: Optional[str] = None
    entity_id: Optional[int] = None
    created_at: str = field(default_factory=now_iso)


class ClientStateStore:
    def __init__(self, api: BoardApiClient, state: Optional[BoardState] = None) -> None:
        self._api = api
        self._state = state.clone() if state else BoardState()
        self._confirmed = self._state.clone()
        self._listeners: list[Listener] = []
        self._error_listeners: list[ErrorListener] = []
        self.notifications: list[Notification] = []
        self._seq = itertools.count(1)
        self._latest: dict[tuple[str, int], int] = {}
        self._temp_ids = itertools.count(-1, -1)

    # ------------------------------------------------------------------
    # Observable snapshot
    # ------------------------------------------------------------------

    @property
    def state(self) -> BoardState:
        return self._state

    @property
    def confirmed(self) -> BoardState:
        return self._confirmed

    def dispatch(self, action: Action) -> BoardState:
        self._state = reduce(self._state, action)
        self._notify()
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener`` after every state change; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def on_error(self, listener: ErrorListener) -> Callable[[], None]:
        self._error_listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._error_listeners:
                self._error_listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self._state)

    # ------------------------------------------------------------------
    # Request bookkeeping
    # ------------------------------------------------------------------

    def _issue(self, entity: str, entity_id: int) -> int:
        seq = next(self._seq)
        self._latest[(entity, entity_id)] = seq
        return seq

    def _is_current(self, entity: str, entity_id: int, seq: int) -> bool:
        return self._latest.get((entity, entity_id)) == seq

    def _settle(self, entity: str, entity_id: int, seq: int) -> None:
        """Forget ``seq`` once its response is applied and nothing newer is in flight."""
        if self._is_current(entity, entity_id, seq):
            del self._latest[(entity, entity_id)]

    @property
    def in_flight(self) -> int:
        return len(self._latest)

    def _confirm(self, *actions: Action) -> None:
        """Apply server-authoritative actions to both snapshots."""
        for action in actions:
            self._confirmed = reduce(self._confirmed, action)
            self._state = reduce(self._state, action)
        self._notify()

    def _fail(self, entity: str, entity_id: int, seq: int, exc: KanbanError) -> None:
        note = Notification(message=exc.message, entity=entity, entity_id=entity_id)
        self.notifications.append(note)
        if self._is_current(entity, entity_id, seq):
            logger.warning("{} {} mutation failed, rolling back: {}", entity, entity_id, exc.message)
            self._state = self._confirmed.clone()
            self._notify()
            self._settle(entity, entity_id, seq)
        else:
            logger.debug("Ignoring failure of superseded {} {} request {}", entity, entity_id, seq)
        for listener in list(self._error_listeners):
            listener(note)

    async def _run(
        self,
        entity: str,
        entity_id: int,
        optimistic: list[Action],
        request: Callable[[], Awaitable[Any]],
    ) -> tuple[int, Any]:
        staged = self._state
        for action in optimistic:
            staged = reduce(staged, action)
        seq = self._issue(entity, entity_id)
        if optimistic:
            self._state = staged
            self._notify()
        try:
            result = await request()
        except KanbanError as exc:
            self._fail(entity, entity_id, seq, exc)
            raise
        return seq, result

    async def _refresh_columns(self, column_ids: set[int]) -> list[Action]:
        actions = []
        for column_id in sorted(column_ids):
            tasks = await self._api.list_tasks(column_id)
            actions.append(Action("column/tasks_loaded", {"column_id": column_id, "tasks": tasks}))
        return actions

    # ------------------------------------------------------------------
    # Board
    # ------------------------------------------------------------------

    async def load_board(self, board_id: int) -> BoardState:
        self.dispatch(Action("board/loading"))
        try:
            payload = await self._api.get_board_full(board_id)
        except KanbanError as exc:
            self.dispatch(Action("board/failed", {"error": exc.message}))
            note = Notification(message=exc.message, entity="board", entity_id=board_id)
            self.notifications.append(note)
            for listener in list(self._error_listeners):
                listener(note)
            raise
        self._confirm(Action("board/loaded", payload))
        return self._state

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    async def create_task(self, title: str, column_id: int, **fields: Any) -> Task:
        temp_id = next(self._temp_ids)
        draft = Task(id=temp_id, title=title, column_id=column_id, **{k: v for k, v in fields.items() if k != "order"})
        seq, task = await self._run(
            "task",
            temp_id,
            [Action("task/added", {"task": draft})],
            lambda: self._api.create_task(title, column_id, **fields),
        )
        self._confirm(Action("task/replaced", {"task": task, "temp_id": temp_id}))
        self._settle("task", temp_id, seq)
        return task

    async def update_task(self, task_id: int, **changes: Any) -> Task:
        """Patch a task; a ``column_id``/``order`` change is applied as a move."""
        current = self._state.find_task(task_id)
        plain = {k: v for k, v in changes.items() if k not in _POSITIONAL}
        optimistic = [Action("task/updated", {"task_id": task_id, "changes": plain})] if plain else []
        touched: set[int] = set()
        if current is not None:
            # Same rule as the server: an unchanged column or order is not a move.
            destination = changes.get("column_id")
            index = changes.get("order")
            moved = False
            if destination is not None and destination != current.column_id:
                if index is None:
                    index = len(self._state.tasks_in(destination))
                moved = True
            elif index is not None and index != current.order:
                destination = current.column_id
                moved = True
            if moved:
                optimistic.append(Action("task/moved", {"task_id": task_id, "column_id": destination, "index": index}))
                touched = {current.column_id, destination}
        seq, task = await self._run("task", task_id, optimistic, lambda: self._api.update_task(task_id, **changes))
        return await self._reconcile_task(task, seq, touched)

    async def move_task(self, task_id: int, column_id: int, index: int) -> Task:
        current = self._state.find_task(task_id)
        touched = {column_id} | ({current.column_id} if current else set())
        seq, task = await self._run(
            "task",
            task_id,
            [Action("task/moved", {"task_id": task_id, "column_id": column_id, "index": index})],
            lambda: self._api.move_task(task_id, column_id, index),
        )
        return await self._reconcile_task(task, seq, touched)

    async def _reconcile_task(self, task: Task, seq: int, touched: set[int]) -> Task:
        if not self._is_current("task", task.id, seq):
            logger.debug("Discarding stale response for task {} (request {})", task.id, seq)
            return task
        actions = [Action("task/replaced", {"task": task})]
        if touched:
            try:
                actions.extend(await self._refresh_columns(touched))
            except KanbanError as exc:
                # The mutation itself committed; keep the server's task and
                # leave sibling orders optimistic until the next load.
                logger.warning("Column refresh after task {} failed: {}", task.id, exc.message)
            if not self._is_current("task", task.id, seq):
                return task
        self._confirm(*actions)
        self._settle("task", task.id, seq)
        return task

    async def delete_task(self, task_id: int) -> None:
        seq, _ = await self._run(
            "task",
            task_id,
            [Action("task/removed", {"task_id": task_id})],
            lambda: self._api.delete_task(task_id),
        )
        if self._is_current("task", task_id, seq):
            self._confirmed = reduce(self._confirmed, Action("task/removed", {"task_id": task_id}))
        self._settle("task", task_id, seq)

    # ------------------------------------------------------------------
    # Columns
    # ------------------------------------------------------------------

    async def create_column(self, name: str) -> Column:
        board = self._state.board
        if board is None:
            raise RuntimeError("Load a board before creating columns")
        temp_id = next(self._temp_ids)
        seq, column = await self._run(
            "column",
            temp_id,
            [Action("column/added", {"column": Column(id=temp_id, name=name, board_id=board.id)})],
            lambda: self._api.create_column(name, board.id),
        )
        self._confirm(Action("column/replaced", {"column": column, "temp_id": temp_id}))
        self._settle("column", temp_id, seq)
        return column

    async def rename_column(self, column_id: int, name: str) -> Column:
        seq, column = await self._run(
            "column",
            column_id,
            [Action("column/renamed", {"column_id": column_id, "name": name})],
            lambda: self._api.update_column(column_id, name=name),
        )
        if self._is_current("column", column_id, seq):
            self._confirm(Action("column/replaced", {"column": column}))
        self._settle("column", column_id, seq)
        return column

    async def delete_column(self, column_id: int) -> None:
        seq, _ = await self._run(
            "column",
            column_id,
            [Action("column/removed", {"column_id": column_id})],
            lambda: self._api.delete_column(column_id),
        )
        if self._is_current("column", column_id, seq):
            self._confirmed = reduce(self._confirmed, Action("column/removed", {"column_id": column_id}))
        self._settle("column", column_id, seq)
