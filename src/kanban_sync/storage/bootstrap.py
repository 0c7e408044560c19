from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from loguru import logger

from ..constants import EVENTS_FILE, STATE_DIR_NAME, STORE_FILE, STORE_SCHEMA_VERSION
from ..io_utils import _atomic_write_yaml, _load_yaml
from .transaction import StoreTransaction


def _utc_stamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def _schema_version(path: Path) -> int | None:
    raw = _load_yaml(path)
    try:
        return int(raw.get("version"))
    except (TypeError, ValueError):
        return None


def ensure_state_root(project_dir: Path) -> Path:
    """Create ``.kanban_sync/`` with an empty store and event log.

    A store written with a different schema version is moved aside to
    ``board.legacy_<stamp>.yaml`` rather than being read with the wrong layout.
    """
    state_root = project_dir / STATE_DIR_NAME
    state_root.mkdir(parents=True, exist_ok=True)

    store_path = state_root / STORE_FILE
    if store_path.exists() and _schema_version(store_path) != STORE_SCHEMA_VERSION:
        archive = state_root / f"board.legacy_{_utc_stamp()}.yaml"
        store_path.rename(archive)
        logger.warning("Archived store with unknown schema to {}", archive)
    if not store_path.exists():
        _atomic_write_yaml(store_path, StoreTransaction().to_state())

    events_path = state_root / EVENTS_FILE
    if not events_path.exists():
        events_path.touch()
    return state_root
