"""Wire models for the board API (camelCase JSON)."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, StrictInt
from pydantic.alias_generators import to_camel

from ..constants import DEFAULT_CATEGORY, DEFAULT_PRIORITY, DEFAULT_TEAM_ROLE
from ..domain.models import Priority
from ..services.loader import BoardAggregate


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class UserOut(WireModel):
    """A user; the password never leaves the server."""

    id: int
    username: str
    email: str
    avatar_url: Optional[str] = None
    created_at: str


class WorkspaceOut(WireModel):
    id: int
    name: str
    owner_id: int
    created_at: str


class TeamOut(WireModel):
    id: int
    name: str
    workspace_id: int
    created_at: str


class UserTeamOut(WireModel):
    id: int
    user_id: int
    team_id: int
    role: str
    team: Optional[TeamOut] = None


class BoardOut(WireModel):
    id: int
    name: str
    workspace_id: int
    created_at: str
    updated_at: str


class ColumnOut(WireModel):
    id: int
    name: str
    board_id: int
    order: int


class TaskOut(WireModel):
    id: int
    title: str
    description: Optional[str] = None
    column_id: int
    order: int
    assignee_id: Optional[int] = None
    priority: Priority
    category: str
    due_date: Optional[str] = None
    is_completed: bool
    created_at: str
    updated_at: str


class CommentOut(WireModel):
    id: int
    content: str
    task_id: int
    user_id: int
    created_at: str


class ColumnWithTasksOut(ColumnOut):
    tasks: list[TaskOut] = Field(default_factory=list)


class BoardFullOut(WireModel):
    board: BoardOut
    columns: list[ColumnWithTasksOut] = Field(default_factory=list)

    @classmethod
    def from_aggregate(cls, aggregate: BoardAggregate) -> "BoardFullOut":
        return cls(
            board=BoardOut.model_validate(aggregate.board),
            columns=[
                ColumnWithTasksOut(
                    **ColumnOut.model_validate(view.column).model_dump(),
                    tasks=[TaskOut.model_validate(t) for t in view.tasks],
                )
                for view in aggregate.columns
            ],
        )


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class CreateUserRequest(WireModel):
    username: str
    email: str
    password: str
    avatar_url: Optional[str] = None


class CreateWorkspaceRequest(WireModel):
    name: str
    owner_id: int


class CreateTeamRequest(WireModel):
    name: str
    workspace_id: int


class CreateUserTeamRequest(WireModel):
    user_id: int
    team_id: int
    role: str = DEFAULT_TEAM_ROLE


class CreateBoardRequest(WireModel):
    name: str
    workspace_id: int
    with_default_columns: bool = False


class UpdateBoardRequest(WireModel):
    name: Optional[str] = None


class CreateColumnRequest(WireModel):
    name: str
    board_id: int
    # Accepted for compatibility; the server appends at the end.
    order: Optional[int] = None


class UpdateColumnRequest(WireModel):
    name: Optional[str] = None
    order: Optional[StrictInt] = None


class CreateTaskRequest(WireModel):
    title: str
    column_id: int
    description: Optional[str] = None
    assignee_id: Optional[int] = None
    priority: str = DEFAULT_PRIORITY
    category: str = DEFAULT_CATEGORY
    due_date: Optional[str] = None
    is_completed: bool = False
    order: Optional[int] = None


class UpdateTaskRequest(WireModel):
    title: Optional[str] = None
    description: Optional[str] = None
    column_id: Optional[StrictInt] = None
    order: Optional[StrictInt] = None
    assignee_id: Optional[int] = None
    priority: Optional[str] = None
    category: Optional[str] = None
    due_date: Optional[str] = None
    is_completed: Optional[bool] = None


class MoveTaskRequest(WireModel):
    column_id: StrictInt
    order: StrictInt


class CreateCommentRequest(WireModel):
    content: str
    task_id: int
    user_id: int


class LoginRequest(BaseModel):
    username: str
    password: str


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    username: str


class AuthStatus(BaseModel):
    enabled: bool
    authenticated: bool
    username: Optional[str] = None
