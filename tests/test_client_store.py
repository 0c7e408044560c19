"""Tests for the optimistic client store, its reducers, and the HTTP client."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Optional

import httpx
import pytest

from kanban_sync.client import Action, BoardApiClient, BoardState, ClientStateStore, reduce
from kanban_sync.domain.models import Board, Column, Task
from kanban_sync.errors import InvalidIndexError, NotFoundError, TransportError, ValidationError
from kanban_sync.server.app import create_app
from kanban_sync.services.mutations import BoardService
from kanban_sync.storage.memory import MemoryBoardStore


class ServiceBackedApi:
    """Stand-in for BoardApiClient that calls a BoardService directly.

    ``hold`` delays the response of the next move (after the server has
    applied it); ``fail`` makes the named method raise instead.
    """

    def __init__(self, service: BoardService) -> None:
        self.service = service
        self.hold: Optional[asyncio.Event] = None
        self.fail: dict[str, Exception] = {}
        self.calls: list[str] = []

    def _check(self, name: str) -> None:
        self.calls.append(name)
        if name in self.fail:
            raise self.fail[name]

    async def get_board_full(self, board_id: int) -> dict[str, Any]:
        self._check("get_board_full")
        aggregate = self.service.load_board(board_id)
        return {
            "board": aggregate.board,
            "columns": [v.column for v in aggregate.columns],
            "tasks": {v.column.id: v.tasks for v in aggregate.columns},
        }

    async def list_tasks(self, column_id: int) -> list[Task]:
        self._check("list_tasks")
        return self.service.list_tasks(column_id)

    async def create_task(self, title: str, column_id: int, **fields: Any) -> Task:
        self._check("create_task")
        return self.service.create_task(title, column_id, **fields)

    async def update_task(self, task_id: int, **changes: Any) -> Task:
        self._check("update_task")
        return self.service.update_task(task_id, **changes)

    async def move_task(self, task_id: int, column_id: int, order: int) -> Task:
        self._check("move_task")
        task = self.service.move_task(task_id, column_id, order)
        gate, self.hold = self.hold, None
        if gate is not None:
            await gate.wait()
        return task

    async def delete_task(self, task_id: int) -> None:
        self._check("delete_task")
        self.service.delete_task(task_id)

    async def create_column(self, name: str, board_id: int) -> Column:
        self._check("create_column")
        return self.service.create_column(name, board_id)

    async def update_column(self, column_id: int, *, name: Optional[str] = None, order: Optional[int] = None) -> Column:
        self._check("update_column")
        return self.service.update_column(column_id, name=name, order=order)

    async def delete_column(self, column_id: int) -> None:
        self._check("delete_column")
        self.service.delete_column(column_id)


def _seeded_service() -> tuple[BoardService, dict[str, int]]:
    service = BoardService(MemoryBoardStore())
    user = service.create_user("kim", "kim@example.com", "pw")
    workspace = service.create_workspace("Team", user.id)
    board = service.create_board("Sprint", workspace.id)
    todo = service.create_column("To Do", board.id)
    doing = service.create_column("Doing", board.id)
    t1 = service.create_task("T1", todo.id)
    t2 = service.create_task("T2", todo.id)
    t3 = service.create_task("T3", doing.id)
    return service, {"board": board.id, "todo": todo.id, "doing": doing.id, "t1": t1.id, "t2": t2.id, "t3": t3.id}


@pytest.fixture
def seeded() -> tuple[ServiceBackedApi, dict[str, int]]:
    service, ids = _seeded_service()
    return ServiceBackedApi(service), ids


def _titles(state: BoardState, column_id: int) -> list[str]:
    return [t.title for t in state.tasks_in(column_id)]


class TestReducers:
    def _state(self) -> BoardState:
        columns = [Column(id=1, name="A", board_id=1, order=0), Column(id=2, name="B", board_id=1, order=1)]
        tasks = {
            1: [Task(id=10, title="x", column_id=1, order=0), Task(id=11, title="y", column_id=1, order=1)],
            2: [Task(id=12, title="z", column_id=2, order=0)],
        }
        return BoardState(board=Board(id=1, name="b"), columns=columns, tasks=tasks)

    def test_reduce_does_not_mutate_input(self) -> None:
        state = self._state()
        before = state.clone()
        after = reduce(state, Action("task/moved", {"task_id": 10, "column_id": 2, "index": 1}))
        assert state == before
        assert after.task_ids() == {1: [11], 2: [12, 10]}
        assert [t.order for t in after.tasks_in(2)] == [0, 1]
        assert after.find_task(10).column_id == 2

    def test_invalid_move_raises_and_leaves_state(self) -> None:
        state = self._state()
        with pytest.raises(InvalidIndexError):
            reduce(state, Action("task/moved", {"task_id": 10, "column_id": 2, "index": 5}))
        assert state.task_ids() == {1: [10, 11], 2: [12]}

    def test_column_removed_compacts(self) -> None:
        after = reduce(self._state(), Action("column/removed", {"column_id": 1}))
        assert [(c.id, c.order) for c in after.columns] == [(2, 0)]
        assert 1 not in after.tasks

    def test_task_removed_compacts(self) -> None:
        after = reduce(self._state(), Action("task/removed", {"task_id": 10}))
        assert [(t.id, t.order) for t in after.tasks_in(1)] == [(11, 0)]

    def test_unknown_action(self) -> None:
        with pytest.raises(ValueError):
            reduce(BoardState(), Action("task/teleported"))


@pytest.mark.anyio
class TestClientStateStore:
    async def test_load_board(self, seeded) -> None:
        api, ids = seeded
        store = ClientStateStore(api)
        state = await store.load_board(ids["board"])
        assert state.board.name == "Sprint"
        assert _titles(state, ids["todo"]) == ["T1", "T2"]
        assert store.confirmed == state
        assert state.loading is False

    async def test_load_failure_sets_error(self, seeded) -> None:
        api, ids = seeded
        store = ClientStateStore(api)
        with pytest.raises(NotFoundError):
            await store.load_board(99)
        assert store.state.error == "Board 99 not found"
        assert store.notifications[0].entity == "board"

    async def test_move_is_optimistic_then_confirmed(self, seeded) -> None:
        api, ids = seeded
        store = ClientStateStore(api)
        await store.load_board(ids["board"])
        seen: list[dict[int, list[int]]] = []
        store.subscribe(lambda s: seen.append(s.task_ids()))

        api.hold = asyncio.Event()
        pending = asyncio.create_task(store.move_task(ids["t1"], ids["doing"], 0))
        await asyncio.sleep(0)
        assert store.state.task_ids() == {ids["todo"]: [ids["t2"]], ids["doing"]: [ids["t1"], ids["t3"]]}
        assert store.confirmed.task_ids()[ids["todo"]] == [ids["t1"], ids["t2"]]

        api.hold.set()
        task = await pending

        assert task.column_id == ids["doing"]
        assert store.confirmed.task_ids() == store.state.task_ids()
        assert [t.order for t in store.state.tasks_in(ids["doing"])] == [0, 1]
        assert seen[0] == seen[-1]

    async def test_failed_move_restores_previous_snapshot(self, seeded) -> None:
        api, ids = seeded
        store = ClientStateStore(api)
        await store.load_board(ids["board"])
        before = store.state.clone()
        errors = []
        store.on_error(errors.append)
        api.fail["move_task"] = TransportError("connection reset")

        with pytest.raises(TransportError):
            await store.move_task(ids["t1"], ids["doing"], 0)

        assert store.state == before
        assert store.notifications[-1].message == "connection reset"
        assert errors[0].entity_id == ids["t1"]

    async def test_invalid_local_move_sends_nothing(self, seeded) -> None:
        api, ids = seeded
        store = ClientStateStore(api)
        await store.load_board(ids["board"])
        with pytest.raises(InvalidIndexError):
            await store.move_task(ids["t1"], ids["doing"], 4)
        assert "move_task" not in api.calls

    async def test_stale_response_is_discarded(self, seeded) -> None:
        api, ids = seeded
        store = ClientStateStore(api)
        await store.load_board(ids["board"])

        api.hold = asyncio.Event()
        gate = api.hold
        first = asyncio.create_task(store.move_task(ids["t1"], ids["doing"], 0))
        await asyncio.sleep(0)
        await store.move_task(ids["t1"], ids["todo"], 1)
        gate.set()
        await first

        assert store.state.task_ids() == {ids["todo"]: [ids["t2"], ids["t1"]], ids["doing"]: [ids["t3"]]}
        assert store.state.task_ids() == store.confirmed.task_ids()
        assert store.in_flight == 0

    async def test_create_task_replaces_placeholder(self, seeded) -> None:
        api, ids = seeded
        store = ClientStateStore(api)
        await store.load_board(ids["board"])
        task = await store.create_task("T4", ids["doing"], priority="low")
        assert task.id > 0
        assert [(t.title, t.order) for t in store.state.tasks_in(ids["doing"])] == [("T3", 0), ("T4", 1)]
        assert all(t.id > 0 for bucket in store.state.tasks.values() for t in bucket)

    async def test_update_task_with_order_reorders(self, seeded) -> None:
        api, ids = seeded
        store = ClientStateStore(api)
        await store.load_board(ids["board"])
        await store.update_task(ids["t2"], order=0, title="T2!")
        assert _titles(store.state, ids["todo"]) == ["T2!", "T1"]

    async def test_update_task_with_current_column_is_not_a_move(self, seeded) -> None:
        api, ids = seeded
        store = ClientStateStore(api)
        await store.load_board(ids["board"])
        task = await store.update_task(ids["t1"], column_id=ids["todo"], title="renamed")
        assert (task.title, task.column_id, task.order) == ("renamed", ids["todo"], 0)
        assert _titles(store.state, ids["todo"]) == ["renamed", "T2"]
        assert "update_task" in api.calls
        assert "list_tasks" not in api.calls

    async def test_update_task_with_current_order_is_not_a_move(self, seeded) -> None:
        api, ids = seeded
        store = ClientStateStore(api)
        await store.load_board(ids["board"])
        await store.update_task(ids["t2"], order=1, column_id=ids["todo"], priority="high")
        assert _titles(store.state, ids["todo"]) == ["T1", "T2"]
        assert store.state.find_task(ids["t2"]).priority == "high"

    async def test_settled_requests_are_forgotten(self, seeded) -> None:
        api, ids = seeded
        store = ClientStateStore(api)
        await store.load_board(ids["board"])
        task = await store.create_task("T4", ids["doing"])
        await store.move_task(task.id, ids["todo"], 0)
        await store.delete_task(ids["t3"])
        column = await store.create_column("Done")
        await store.rename_column(column.id, "Shipped")
        api.fail["delete_column"] = ValidationError("nope")
        with pytest.raises(ValidationError):
            await store.delete_column(column.id)
        assert store.in_flight == 0

    async def test_delete_column_failure_rolls_back(self, seeded) -> None:
        api, ids = seeded
        store = ClientStateStore(api)
        await store.load_board(ids["board"])
        api.fail["delete_column"] = ValidationError("nope")
        with pytest.raises(ValidationError):
            await store.delete_column(ids["todo"])
        assert [c.id for c in store.state.columns] == [ids["todo"], ids["doing"]]

    async def test_column_create_rename_delete(self, seeded) -> None:
        api, ids = seeded
        store = ClientStateStore(api)
        await store.load_board(ids["board"])
        column = await store.create_column("Done")
        assert [(c.name, c.order) for c in store.state.columns][-1] == ("Done", 2)
        await store.rename_column(column.id, "Shipped")
        assert store.state.find_column(column.id).name == "Shipped"
        await store.delete_task(ids["t3"])
        await store.delete_column(ids["doing"])
        assert [(c.name, c.order) for c in store.confirmed.columns] == [("To Do", 0), ("Shipped", 1)]

    async def test_create_column_requires_board(self, seeded) -> None:
        api, _ = seeded
        with pytest.raises(RuntimeError):
            await ClientStateStore(api).create_column("Orphan")

    async def test_unsubscribe(self, seeded) -> None:
        api, ids = seeded
        store = ClientStateStore(api)
        calls = []
        unsubscribe = store.subscribe(calls.append)
        unsubscribe()
        await store.load_board(ids["board"])
        assert calls == []


@pytest.fixture
def app(tmp_path: Path):
    return create_app(project_dir=tmp_path, enable_cors=False, backend="memory")


@pytest.fixture
async def api(app):
    async with BoardApiClient("http://test", transport=httpx.ASGITransport(app=app), retry_backoff=0) as client:
        yield client


@pytest.mark.anyio
class TestBoardApiClient:
    def _seed(self, app) -> dict[str, int]:
        service: BoardService = app.state.service
        user = service.create_user("kim", "kim@example.com", "pw")
        workspace = service.create_workspace("Team", user.id)
        board = service.create_board("Sprint", workspace.id, with_default_columns=True)
        columns = service.list_columns(board.id)
        task = service.create_task("T1", columns[0].id)
        return {"board": board.id, "todo": columns[0].id, "doing": columns[1].id, "task": task.id}

    async def test_full_board_and_move(self, app, api: BoardApiClient) -> None:
        ids = self._seed(app)
        full = await api.get_board_full(ids["board"])
        assert [c.name for c in full["columns"]] == ["To Do", "In Progress", "Done"]
        assert [t.title for t in full["tasks"][ids["todo"]]] == ["T1"]

        moved = await api.move_task(ids["task"], ids["doing"], 0)
        assert isinstance(moved, Task)
        assert (moved.column_id, moved.order) == (ids["doing"], 0)

    async def test_errors_map_to_taxonomy(self, app, api: BoardApiClient) -> None:
        ids = self._seed(app)
        with pytest.raises(InvalidIndexError) as excinfo:
            await api.move_task(ids["task"], ids["doing"], 3)
        assert excinfo.value.upper_bound == 0
        with pytest.raises(NotFoundError) as not_found:
            await api.get_task(404)
        assert not_found.value.entity == "task"
        with pytest.raises(ValidationError):
            await api.create_task("   ", ids["todo"])

    async def test_store_end_to_end(self, app, api: BoardApiClient) -> None:
        ids = self._seed(app)
        store = ClientStateStore(api)
        await store.load_board(ids["board"])
        await store.create_task("T2", ids["todo"])
        await store.move_task(ids["task"], ids["doing"], 0)
        server = app.state.service.load_board(ids["board"])
        assert store.state.task_ids() == {v.column.id: [t.id for t in v.tasks] for v in server.columns}


@pytest.mark.anyio
class TestRetries:
    async def test_reads_retry_transport_errors(self) -> None:
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request.url.path)
            if len(attempts) < 3:
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200, json=[])

        client = BoardApiClient("http://test", transport=httpx.MockTransport(handler), read_retries=2, retry_backoff=0)
        assert await client.list_tasks(1) == []
        assert attempts == ["/api/columns/1/tasks"] * 3
        await client.aclose()

    async def test_mutations_are_not_retried(self) -> None:
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request.method)
            raise httpx.ConnectError("refused", request=request)

        client = BoardApiClient("http://test", transport=httpx.MockTransport(handler), read_retries=5, retry_backoff=0)
        with pytest.raises(TransportError):
            await client.move_task(1, 2, 0)
        assert attempts == ["POST"]
        await client.aclose()

    async def test_server_error_is_transport_error(self) -> None:
        client = BoardApiClient(
            "http://test",
            transport=httpx.MockTransport(lambda request: httpx.Response(503, json={"detail": "down"})),
            read_retries=0,
        )
        with pytest.raises(TransportError):
            await client.get_board(1)
        await client.aclose()
