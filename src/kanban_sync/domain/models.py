from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal, Optional


Priority = Literal["low", "medium", "high"]

# id 0 means "not yet persisted"; stores assign ids from per-table sequences.
UNSAVED_ID = 0


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _opt_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    return _int(value)


@dataclass
class User:
    id: int = UNSAVED_ID
    username: str = ""
    email: str = ""
    password: str = ""
    avatar_url: Optional[str] = None
    created_at: str = field(default_factory=now_iso)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "User":
        return cls(
            id=_int(data.get("id")),
            username=str(data.get("username") or ""),
            email=str(data.get("email") or ""),
            password=str(data.get("password") or ""),
            avatar_url=data.get("avatar_url"),
            created_at=str(data.get("created_at") or now_iso()),
        )


@dataclass
class Workspace:
    id: int = UNSAVED_ID
    name: str = ""
    owner_id: int = 0
    created_at: str = field(default_factory=now_iso)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Workspace":
        return cls(
            id=_int(data.get("id")),
            name=str(data.get("name") or ""),
            owner_id=_int(data.get("owner_id")),
            created_at=str(data.get("created_at") or now_iso()),
        )


@dataclass
class Team:
    id: int = UNSAVED_ID
    name: str = ""
    workspace_id: int = 0
    created_at: str = field(default_factory=now_iso)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Team":
        return cls(
            id=_int(data.get("id")),
            name=str(data.get("name") or ""),
            workspace_id=_int(data.get("workspace_id")),
            created_at=str(data.get("created_at") or now_iso()),
        )


@dataclass
class UserTeam:
    id: int = UNSAVED_ID
    user_id: int = 0
    team_id: int = 0
    role: str = "member"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UserTeam":
        return cls(
            id=_int(data.get("id")),
            user_id=_int(data.get("user_id")),
            team_id=_int(data.get("team_id")),
            role=str(data.get("role") or "member"),
        )


@dataclass
class Board:
    id: int = UNSAVED_ID
    name: str = ""
    workspace_id: int = 0
    created_at: str = field(default_factory=now_iso)
    updated_at: str = field(default_factory=now_iso)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Board":
        return cls(
            id=_int(data.get("id")),
            name=str(data.get("name") or ""),
            workspace_id=_int(data.get("workspace_id")),
            created_at=str(data.get("created_at") or now_iso()),
            updated_at=str(data.get("updated_at") or now_iso()),
        )


@dataclass
class Column:
    id: int = UNSAVED_ID
    name: str = ""
    board_id: int = 0
    order: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Column":
        return cls(
            id=_int(data.get("id")),
            name=str(data.get("name") or ""),
            board_id=_int(data.get("board_id")),
            order=_int(data.get("order")),
        )


@dataclass
class Task:
    id: int = UNSAVED_ID
    title: str = ""
    description: Optional[str] = None
    column_id: int = 0
    order: int = 0
    assignee_id: Optional[int] = None
    priority: Priority = "medium"
    category: str = "feature"
    due_date: Optional[str] = None
    is_completed: bool = False
    created_at: str = field(default_factory=now_iso)
    updated_at: str = field(default_factory=now_iso)

    def touch(self) -> None:
        self.updated_at = now_iso()

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Task":
        payload = {k: data.get(k) for k in cls.__dataclass_fields__}
        payload["id"] = _int(data.get("id"))
        payload["title"] = str(data.get("title") or "")
        payload["column_id"] = _int(data.get("column_id"))
        payload["order"] = _int(data.get("order"))
        payload["assignee_id"] = _opt_int(data.get("assignee_id"))
        payload["priority"] = str(data.get("priority") or "medium")
        payload["category"] = str(data.get("category") or "feature")
        payload["is_completed"] = bool(data.get("is_completed") or False)
        payload["created_at"] = str(data.get("created_at") or now_iso())
        payload["updated_at"] = str(data.get("updated_at") or now_iso())
        if payload["due_date"] is not None:
            payload["due_date"] = str(payload["due_date"])
        return cls(**payload)


@dataclass
class Comment:
    id: int = UNSAVED_ID
    content: str = ""
    task_id: int = 0
    user_id: int = 0
    created_at: str = field(default_factory=now_iso)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Comment":
        return cls(
            id=_int(data.get("id")),
            content=str(data.get("content") or ""),
            task_id=_int(data.get("task_id")),
            user_id=_int(data.get("user_id")),
            created_at=str(data.get("created_at") or now_iso()),
        )
