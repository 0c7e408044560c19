from __future__ import annotations

import copy
import threading
import uuid
from collections import deque
from contextlib import contextmanager
from typing import Any, Iterator, Optional

from ..domain.models import now_iso
from .interfaces import BoardStore, EventRepository
from .transaction import StoreTransaction


class MemoryBoardStore(BoardStore):
    """Process-local store; used by tests and the ``memory`` backend."""

    def __init__(self, state: Optional[dict[str, Any]] = None) -> None:
        self._state: dict[str, Any] = copy.deepcopy(state) if state else StoreTransaction().to_state()
        self._lock = threading.RLock()

    def _commit(self, state: dict[str, Any]) -> None:
        self._state = state

    @contextmanager
    def transaction(self) -> Iterator[StoreTransaction]:
        with self._lock:
            txn = StoreTransaction(copy.deepcopy(self._state))
            yield txn
            if txn.dirty:
                self._commit(txn.to_state())

    def read_snapshot(self) -> StoreTransaction:
        with self._lock:
            return StoreTransaction(copy.deepcopy(self._state))

    def dump_state(self) -> dict[str, Any]:
        with self._lock:
            return copy.deepcopy(self._state)


class MemoryEventRepository(EventRepository):
    def __init__(self, maxlen: int = 1000) -> None:
        self._events: deque[dict[str, Any]] = deque(maxlen=maxlen)
        self._lock = threading.Lock()

    def append(self, *, channel: str, event_type: str, entity_id: int, payload: dict[str, Any], board_id: int | None) -> dict[str, Any]:
        event = {
            "id": f"evt-{uuid.uuid4().hex[:10]}",
            "ts": now_iso(),
            "channel": channel,
            "type": event_type,
            "entity_id": entity_id,
            "payload": payload,
            "board_id": board_id,
        }
        with self._lock:
            self._events.append(event)
        return event

    def list_recent(self, limit: int = 100) -> list[dict[str, Any]]:
        if limit <= 0:
            return []
        with self._lock:
            return list(self._events)[-limit:]
