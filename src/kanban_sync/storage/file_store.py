from __future__ import annotations

import json
import os
import threading
import uuid
from collections import deque
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

from filelock import FileLock
from loguru import logger

from ..constants import LOCK_TIMEOUT
from ..domain.models import now_iso
from ..io_utils import _atomic_write_yaml, _load_yaml
from .interfaces import BoardStore, EventRepository
from .transaction import StoreTransaction


class FileBoardStore(BoardStore):
    """All tables in a single YAML document guarded by a cross-process lock.

    A transaction holds the lock from load to save, so concurrent writers
    (several server workers or a CLI next to the server) serialize and
    every commit replaces the whole file atomically.
    """

    def __init__(self, path: Path, lock_path: Path, *, lock_timeout: float = LOCK_TIMEOUT) -> None:
        self._path = path
        self._lock = FileLock(str(lock_path), timeout=lock_timeout)
        self._thread_lock = threading.RLock()

    @property
    def path(self) -> Path:
        return self._path

    @contextmanager
    def transaction(self) -> Iterator[StoreTransaction]:
        with self._thread_lock:
            with self._lock:
                txn = StoreTransaction(_load_yaml(self._path))
                yield txn
                if txn.dirty:
                    _atomic_write_yaml(self._path, txn.to_state())
                    logger.debug("Saved board store to {}", self._path)

    def read_snapshot(self) -> StoreTransaction:
        with self._thread_lock:
            with self._lock:
                return StoreTransaction(_load_yaml(self._path))


class FileEventRepository(EventRepository):
    """Append-only JSON-lines event log."""

    def __init__(self, path: Path, lock_path: Path, *, lock_timeout: float = LOCK_TIMEOUT) -> None:
        self._path = path
        self._lock = FileLock(str(lock_path), timeout=lock_timeout)
        self._thread_lock = threading.RLock()

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
        with self._thread_lock:
            with self._lock:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                with self._path.open("a", encoding="utf-8") as handle:
                    handle.write(json.dumps(event, default=str) + "\n")
                    handle.flush()
                    os.fsync(handle.fileno())
        return event

    def list_recent(self, limit: int = 100) -> list[dict[str, Any]]:
        if limit <= 0 or not self._path.exists():
            return []
        with self._thread_lock:
            with self._lock:
                with self._path.open("r", encoding="utf-8") as handle:
                    selected = list(deque(handle, maxlen=limit))
        events: list[dict[str, Any]] = []
        for line in selected:
            try:
                parsed = json.loads(line)
            except json.JSONDecodeError:
                logger.warning("Skipping malformed event line in {}", self._path)
                continue
            if isinstance(parsed, dict):
                events.append(parsed)
        return events
