"""Async HTTP client for the board API."""

from __future__ import annotations

import asyncio
from typing import Any, Optional, TypeVar

import httpx
from loguru import logger
from pydantic import BaseModel
from pydantic.alias_generators import to_camel

from ..api.schemas import BoardFullOut, BoardOut, ColumnOut, CommentOut, TaskOut
from ..constants import API_PREFIX, DEFAULT_HTTP_TIMEOUT_SECONDS, DEFAULT_READ_RETRIES, DEFAULT_RETRY_BACKOFF_SECONDS
from ..domain.models import Board, Column, Comment, Task
from ..errors import (
    AuthError,
    InvalidIndexError,
    KanbanError,
    NotFoundError,
    TransportError,
    ValidationError,
)

T = TypeVar("T")


def _to_domain(model: BaseModel, cls: type[T], *, exclude: Optional[set[str]] = None) -> T:
    return cls(**model.model_dump(exclude=exclude))


def _error_from_response(response: httpx.Response) -> KanbanError:
    """Map an error response onto the error taxonomy."""
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    detail = body.get("detail")
    message = detail if isinstance(detail, str) else response.reason_phrase or f"HTTP {response.status_code}"
    status = response.status_code

    if status == 400 and "upper_bound" in body:
        return InvalidIndexError(int(body.get("index", 0)), int(body["upper_bound"]))
    if status in (400, 422):
        errors = body.get("errors")
        if isinstance(detail, list):
            # FastAPI request validation: [{"loc": [...], "msg": ...}, ...]
            errors = [
                {"field": ".".join(str(p) for p in item.get("loc", [])[1:]), "message": str(item.get("msg", ""))}
                for item in detail
                if isinstance(item, dict)
            ]
            message = "Invalid request"
        return ValidationError(message, errors=errors if isinstance(errors, list) else None)
    if status == 401:
        return AuthError(message)
    if status == 404:
        return NotFoundError(str(body.get("entity") or "resource"), body.get("entity_id", "?"))
    return TransportError(f"HTTP {status}: {message}")


class BoardApiClient:
    """Thin async wrapper over the ``/api`` endpoints.

    Reads retry on :class:`TransportError` with exponential backoff.
    Mutations are sent exactly once; a failed mutation surfaces immediately
    so the caller can roll back.

    Parameters
    ----------
    base_url:
        Server root, e.g. ``http://127.0.0.1:8000``.
    transport:
        Optional httpx transport (``httpx.ASGITransport`` in tests).
    """

    def __init__(
        self,
        base_url: str = "http://127.0.0.1:8000",
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
        read_retries: int = DEFAULT_READ_RETRIES,
        retry_backoff: float = DEFAULT_RETRY_BACKOFF_SECONDS,
        token: Optional[str] = None,
    ) -> None:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/") + API_PREFIX,
            transport=transport,
            timeout=timeout,
            headers=headers,
        )
        self.read_retries = max(0, read_retries)
        self.retry_backoff = retry_backoff

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "BoardApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.TransportError as exc:
            raise TransportError(f"{method} {url} failed: {exc}") from exc
        if response.status_code >= 400:
            raise _error_from_response(response)
        return response

    async def _read(self, url: str, **kwargs: Any) -> Any:
        attempt = 0
        while True:
            try:
                response = await self._send("GET", url, **kwargs)
                return response.json()
            except TransportError as exc:
                if attempt >= self.read_retries:
                    raise
                delay = self.retry_backoff * (2 ** attempt)
                attempt += 1
                logger.warning("GET {} failed ({}); retry {}/{} in {:.2f}s", url, exc.message, attempt, self.read_retries, delay)
                await asyncio.sleep(delay)

    async def _write(self, method: str, url: str, body: Optional[dict[str, Any]] = None) -> Any:
        response = await self._send(method, url, json=body)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    async def login(self, username: str, password: str) -> str:
        """Obtain a bearer token and use it for subsequent requests."""
        data = await self._write("POST", "/auth/login", {"username": username, "password": password})
        token = str(data["access_token"])
        self._client.headers["Authorization"] = f"Bearer {token}"
        return token

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_board(self, board_id: int) -> Board:
        return _to_domain(BoardOut.model_validate(await self._read(f"/boards/{board_id}")), Board)

    async def get_board_full(self, board_id: int) -> dict[str, Any]:
        """Return ``{"board", "columns", "tasks": {column_id: [Task]}}``."""
        full = BoardFullOut.model_validate(await self._read(f"/boards/{board_id}/full"))
        columns = [_to_domain(c, Column, exclude={"tasks"}) for c in full.columns]
        tasks = {c.id: [_to_domain(t, Task) for t in c.tasks] for c in full.columns}
        return {"board": _to_domain(full.board, Board), "columns": columns, "tasks": tasks}

    async def list_columns(self, board_id: int) -> list[Column]:
        data = await self._read(f"/boards/{board_id}/columns")
        return [_to_domain(ColumnOut.model_validate(item), Column) for item in data]

    async def list_tasks(self, column_id: int) -> list[Task]:
        data = await self._read(f"/columns/{column_id}/tasks")
        return [_to_domain(TaskOut.model_validate(item), Task) for item in data]

    async def get_task(self, task_id: int) -> Task:
        return _to_domain(TaskOut.model_validate(await self._read(f"/tasks/{task_id}")), Task)

    async def list_comments(self, task_id: int) -> list[Comment]:
        data = await self._read(f"/tasks/{task_id}/comments")
        return [_to_domain(CommentOut.model_validate(item), Comment) for item in data]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def create_column(self, name: str, board_id: int) -> Column:
        data = await self._write("POST", "/columns", {"name": name, "boardId": board_id})
        return _to_domain(ColumnOut.model_validate(data), Column)

    async def update_column(self, column_id: int, *, name: Optional[str] = None, order: Optional[int] = None) -> Column:
        body: dict[str, Any] = {}
        if name is not None:
            body["name"] = name
        if order is not None:
            body["order"] = order
        data = await self._write("PATCH", f"/columns/{column_id}", body)
        return _to_domain(ColumnOut.model_validate(data), Column)

    async def delete_column(self, column_id: int) -> None:
        await self._write("DELETE", f"/columns/{column_id}")

    async def create_task(self, title: str, column_id: int, **fields: Any) -> Task:
        payload: dict[str, Any] = {to_camel(key): value for key, value in fields.items()}
        payload.update({"title": title, "columnId": column_id})
        data = await self._write("POST", "/tasks", payload)
        return _to_domain(TaskOut.model_validate(data), Task)

    async def update_task(self, task_id: int, **changes: Any) -> Task:
        payload = {to_camel(key): value for key, value in changes.items()}
        data = await self._write("PATCH", f"/tasks/{task_id}", payload)
        return _to_domain(TaskOut.model_validate(data), Task)

    async def delete_task(self, task_id: int) -> None:
        await self._write("DELETE", f"/tasks/{task_id}")

    async def move_task(self, task_id: int, column_id: int, order: int) -> Task:
        data = await self._write("POST", f"/tasks/{task_id}/move", {"columnId": column_id, "order": order})
        return _to_domain(TaskOut.model_validate(data), Task)

    async def create_comment(self, content: str, task_id: int, user_id: int) -> Comment:
        data = await self._write("POST", "/comments", {"content": content, "taskId": task_id, "userId": user_id})
        return _to_domain(CommentOut.model_validate(data), Comment)
