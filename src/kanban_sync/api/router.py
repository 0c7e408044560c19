from __future__ import annotations

from typing import Any, Callable

from fastapi import APIRouter, Depends, Query, Response

from ..constants import API_PREFIX
from ..server.auth import require_user
from ..services.mutations import BoardService
from .schemas import (
    BoardFullOut,
    BoardOut,
    ColumnOut,
    CommentOut,
    CreateBoardRequest,
    CreateColumnRequest,
    CreateCommentRequest,
    CreateTaskRequest,
    CreateTeamRequest,
    CreateUserRequest,
    CreateUserTeamRequest,
    CreateWorkspaceRequest,
    MoveTaskRequest,
    TaskOut,
    TeamOut,
    UpdateBoardRequest,
    UpdateColumnRequest,
    UpdateTaskRequest,
    UserOut,
    UserTeamOut,
    WorkspaceOut,
)

# Task fields that may be explicitly cleared with null; the rest ignore null.
_NULLABLE_TASK_FIELDS = {"description", "assignee_id", "due_date"}


def create_router(resolve_service: Callable[[], BoardService]) -> APIRouter:
    """Build the ``/api`` router over the service returned by ``resolve_service``."""
    router = APIRouter(prefix=API_PREFIX, tags=["board"], dependencies=[Depends(require_user)])

    # ------------------------------------------------------------------
    # Users, workspaces, teams
    # ------------------------------------------------------------------

    @router.get("/users")
    async def list_users() -> list[UserOut]:
        return [UserOut.model_validate(u) for u in resolve_service().list_users()]

    @router.get("/users/{user_id}")
    async def get_user(user_id: int) -> UserOut:
        return UserOut.model_validate(resolve_service().get_user(user_id))

    @router.post("/users", status_code=201)
    async def create_user(body: CreateUserRequest) -> UserOut:
        user = resolve_service().create_user(body.username, body.email, body.password, avatar_url=body.avatar_url)
        return UserOut.model_validate(user)

    @router.get("/workspaces")
    async def list_workspaces(user_id: int = Query(..., alias="userId")) -> list[WorkspaceOut]:
        return [WorkspaceOut.model_validate(w) for w in resolve_service().list_workspaces(user_id)]

    @router.get("/workspaces/{workspace_id}")
    async def get_workspace(workspace_id: int) -> WorkspaceOut:
        return WorkspaceOut.model_validate(resolve_service().get_workspace(workspace_id))

    @router.post("/workspaces", status_code=201)
    async def create_workspace(body: CreateWorkspaceRequest) -> WorkspaceOut:
        return WorkspaceOut.model_validate(resolve_service().create_workspace(body.name, body.owner_id))

    @router.get("/workspaces/{workspace_id}/teams")
    async def list_teams(workspace_id: int) -> list[TeamOut]:
        return [TeamOut.model_validate(t) for t in resolve_service().list_teams(workspace_id)]

    @router.post("/teams", status_code=201)
    async def create_team(body: CreateTeamRequest) -> TeamOut:
        return TeamOut.model_validate(resolve_service().create_team(body.name, body.workspace_id))

    @router.post("/user-teams", status_code=201)
    async def add_user_to_team(body: CreateUserTeamRequest) -> UserTeamOut:
        membership = resolve_service().add_user_to_team(body.user_id, body.team_id, body.role)
        return UserTeamOut.model_validate(membership)

    @router.get("/users/{user_id}/teams")
    async def list_user_teams(user_id: int) -> list[UserTeamOut]:
        return [
            UserTeamOut(**UserTeamOut.model_validate(m).model_dump(exclude={"team"}), team=TeamOut.model_validate(t))
            for m, t in resolve_service().list_user_teams(user_id)
        ]

    # ------------------------------------------------------------------
    # Boards
    # ------------------------------------------------------------------

    @router.get("/workspaces/{workspace_id}/boards")
    async def list_boards(workspace_id: int) -> list[BoardOut]:
        return [BoardOut.model_validate(b) for b in resolve_service().list_boards(workspace_id)]

    @router.get("/boards/{board_id}")
    async def get_board(board_id: int) -> BoardOut:
        return BoardOut.model_validate(resolve_service().get_board(board_id))

    @router.get("/boards/{board_id}/full")
    async def get_board_full(board_id: int) -> BoardFullOut:
        return BoardFullOut.from_aggregate(resolve_service().load_board(board_id))

    @router.post("/boards", status_code=201)
    async def create_board(body: CreateBoardRequest) -> BoardOut:
        board = resolve_service().create_board(
            body.name, body.workspace_id, with_default_columns=body.with_default_columns
        )
        return BoardOut.model_validate(board)

    @router.patch("/boards/{board_id}")
    async def update_board(board_id: int, body: UpdateBoardRequest) -> BoardOut:
        return BoardOut.model_validate(resolve_service().update_board(board_id, name=body.name))

    @router.delete("/boards/{board_id}", status_code=204)
    async def delete_board(board_id: int) -> Response:
        resolve_service().delete_board(board_id)
        return Response(status_code=204)

    # ------------------------------------------------------------------
    # Columns
    # ------------------------------------------------------------------

    @router.get("/boards/{board_id}/columns")
    async def list_columns(board_id: int) -> list[ColumnOut]:
        return [ColumnOut.model_validate(c) for c in resolve_service().list_columns(board_id)]

    @router.post("/columns", status_code=201)
    async def create_column(body: CreateColumnRequest) -> ColumnOut:
        return ColumnOut.model_validate(resolve_service().create_column(body.name, body.board_id))

    @router.patch("/columns/{column_id}")
    async def update_column(column_id: int, body: UpdateColumnRequest) -> ColumnOut:
        column = resolve_service().update_column(column_id, name=body.name, order=body.order)
        return ColumnOut.model_validate(column)

    @router.delete("/columns/{column_id}", status_code=204)
    async def delete_column(column_id: int) -> Response:
        resolve_service().delete_column(column_id)
        return Response(status_code=204)

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    @router.get("/columns/{column_id}/tasks")
    async def list_tasks(column_id: int) -> list[TaskOut]:
        return [TaskOut.model_validate(t) for t in resolve_service().list_tasks(column_id)]

    @router.get("/tasks/{task_id}")
    async def get_task(task_id: int) -> TaskOut:
        return TaskOut.model_validate(resolve_service().get_task(task_id))

    @router.post("/tasks", status_code=201)
    async def create_task(body: CreateTaskRequest) -> TaskOut:
        task = resolve_service().create_task(
            body.title,
            body.column_id,
            category=body.category,
            priority=body.priority,
            description=body.description,
            assignee_id=body.assignee_id,
            due_date=body.due_date,
            is_completed=body.is_completed,
            order=body.order,
        )
        return TaskOut.model_validate(task)

    @router.patch("/tasks/{task_id}")
    async def update_task(task_id: int, body: UpdateTaskRequest) -> TaskOut:
        changes: dict[str, Any] = {
            key: value
            for key, value in body.model_dump(exclude_unset=True).items()
            if value is not None or key in _NULLABLE_TASK_FIELDS
        }
        return TaskOut.model_validate(resolve_service().update_task(task_id, **changes))

    @router.delete("/tasks/{task_id}", status_code=204)
    async def delete_task(task_id: int) -> Response:
        resolve_service().delete_task(task_id)
        return Response(status_code=204)

    @router.post("/tasks/{task_id}/move")
    async def move_task(task_id: int, body: MoveTaskRequest) -> TaskOut:
        return TaskOut.model_validate(resolve_service().move_task(task_id, body.column_id, body.order))

    # ------------------------------------------------------------------
    # Comments and events
    # ------------------------------------------------------------------

    @router.get("/tasks/{task_id}/comments")
    async def list_comments(task_id: int) -> list[CommentOut]:
        return [CommentOut.model_validate(c) for c in resolve_service().list_comments(task_id)]

    @router.post("/comments", status_code=201)
    async def create_comment(body: CreateCommentRequest) -> CommentOut:
        comment = resolve_service().create_comment(body.content, body.task_id, body.user_id)
        return CommentOut.model_validate(comment)

    @router.get("/events")
    async def list_events(limit: int = Query(100, ge=1, le=1000)) -> dict[str, Any]:
        return {"events": resolve_service().recent_events(limit)}

    return router
