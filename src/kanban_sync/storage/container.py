from __future__ import annotations

from pathlib import Path
from typing import Optional

from ..config import get_storage_config, load_board_config
from ..constants import BACKEND_MEMORY, EVENTS_LOCK_FILE, EVENTS_FILE, STORE_FILE, STORE_LOCK_FILE
from .bootstrap import ensure_state_root
from .file_store import FileBoardStore, FileEventRepository
from .interfaces import BoardStore, EventRepository
from .memory import MemoryBoardStore, MemoryEventRepository


class Container:
    """Wire the board store and event log for one project directory."""

    store: BoardStore
    events: EventRepository

    def __init__(self, project_dir: Path, backend: Optional[str] = None) -> None:
        self.project_dir = project_dir.resolve()
        self.config, self.config_error = load_board_config(self.project_dir)
        storage = get_storage_config(self.config)
        self.backend = backend or storage["backend"]

        if self.backend == BACKEND_MEMORY:
            self.state_root: Optional[Path] = None
            self.store = MemoryBoardStore()
            self.events = MemoryEventRepository()
            return

        self.state_root = ensure_state_root(self.project_dir)
        timeout = storage["lock_timeout"]
        self.store = FileBoardStore(
            self.state_root / STORE_FILE,
            self.state_root / STORE_LOCK_FILE,
            lock_timeout=timeout,
        )
        self.events = FileEventRepository(
            self.state_root / EVENTS_FILE,
            self.state_root / EVENTS_LOCK_FILE,
            lock_timeout=timeout,
        )

    @property
    def project_id(self) -> str:
        return self.project_dir.name
