from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import Any

from .transaction import StoreTransaction


class BoardStore(ABC):
    """Persistence for every board table.

    ``transaction()`` is the only write path: the body sees a live snapshot
    and its changes are committed together when the block exits normally,
    or discarded entirely when it raises.
    """

    @abstractmethod
    def transaction(self) -> AbstractContextManager[StoreTransaction]:
        raise NotImplementedError

    @abstractmethod
    def read_snapshot(self) -> StoreTransaction:
        """Return a detached copy; writes to it are never persisted."""
        raise NotImplementedError


class EventRepository(ABC):
    @abstractmethod
    def append(self, *, channel: str, event_type: str, entity_id: int, payload: dict[str, Any], board_id: int | None) -> dict[str, Any]:
        raise NotImplementedError

    @abstractmethod
    def list_recent(self, limit: int = 100) -> list[dict[str, Any]]:
        raise NotImplementedError
