"""Error taxonomy shared by the ordering engine, service layer, and client."""

from __future__ import annotations

from typing import Any, Optional


class KanbanError(Exception):
    """Base class for every error the board surfaces to callers."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message}


class ValidationError(KanbanError):
    """Malformed or missing input fields.

    ``errors`` carries field-level detail as ``{"field": ..., "message": ...}``
    mappings so the UI can highlight the offending inputs.
    """

    status_code = 400

    def __init__(self, message: str, errors: Optional[list[dict[str, str]]] = None) -> None:
        super().__init__(message)
        self.errors = list(errors or [])

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls(f"{field}: {message}", errors=[{"field": field, "message": message}])

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message, "errors": self.errors}


class NotFoundError(KanbanError):
    """A referenced board, column, task, user, workspace, or team does not exist."""

    status_code = 404

    def __init__(self, entity: str, entity_id: Any) -> None:
        super().__init__(f"{entity.capitalize()} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message, "entity": self.entity, "entity_id": self.entity_id}


class InvalidIndexError(KanbanError):
    """A move or reorder targets a position outside the valid range."""

    status_code = 400

    def __init__(self, index: int, upper_bound: int) -> None:
        super().__init__(f"Index {index} out of range [0, {upper_bound}]")
        self.index = index
        self.upper_bound = upper_bound

    def clamp(self) -> int:
        """Return the nearest valid index, for a single corrected retry."""
        if self.upper_bound < 0:
            return 0
        return max(0, min(self.index, self.upper_bound))

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message, "index": self.index, "upper_bound": self.upper_bound}


class OrderInvariantViolation(KanbanError):
    """Persisted order values contain gaps or duplicates.

    Indicates an earlier partial write. Read paths repair it by re-ranking
    rather than failing the request.
    """

    status_code = 500

    def __init__(self, scope: str, problems: list[str]) -> None:
        super().__init__(f"Order invariant violated in {scope}: {'; '.join(problems)}")
        self.scope = scope
        self.problems = problems


class TransportError(KanbanError):
    """Network or storage failure; persisted state was left unchanged."""

    status_code = 503


class AuthError(KanbanError):
    """Missing, invalid, or expired credentials."""

    status_code = 401
