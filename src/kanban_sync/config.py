"""Load optional board configuration from `.kanban_sync/config.yaml`."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from .constants import (
    BACKEND_FILE,
    CONFIG_FILE,
    DEFAULT_HOST,
    DEFAULT_HTTP_TIMEOUT_SECONDS,
    DEFAULT_PORT,
    DEFAULT_READ_RETRIES,
    DEFAULT_RETRY_BACKOFF_SECONDS,
    LOCK_TIMEOUT,
    STATE_DIR_NAME,
    VALID_BACKENDS,
)
from .io_utils import _load_data_with_error

BACKEND_ENV_VAR = "KANBAN_SYNC_BACKEND"
LOG_LEVEL_ENV_VAR = "KANBAN_SYNC_LOG_LEVEL"


def load_board_config(project_dir: Path) -> tuple[dict[str, Any], str | None]:
    """Load the optional board config file.

    Args:
        project_dir: Directory that holds the `.kanban_sync/` state directory.

    Returns:
        A tuple of `(config, error_message)`. If the file is missing, returns `({}, None)`.
    """
    path = project_dir.resolve() / STATE_DIR_NAME / CONFIG_FILE
    if not path.exists():
        return {}, None
    data, err = _load_data_with_error(path, {})
    if err:
        return {}, err
    return data, None


def _get_nested(config: dict[str, Any], *keys: str) -> Any:
    cur: Any = config
    for key in keys:
        if not isinstance(cur, dict):
            return None
        cur = cur.get(key)
    return cur


def get_storage_config(config: dict[str, Any]) -> dict[str, Any]:
    """Extract the storage block, filling in defaults.

    The `KANBAN_SYNC_BACKEND` environment variable overrides the configured backend.
    """
    raw = _get_nested(config, "storage")
    raw = raw if isinstance(raw, dict) else {}
    backend = os.getenv(BACKEND_ENV_VAR) or raw.get("backend") or BACKEND_FILE
    if backend not in VALID_BACKENDS:
        backend = BACKEND_FILE
    try:
        lock_timeout = float(raw.get("lock_timeout", LOCK_TIMEOUT))
    except (TypeError, ValueError):
        lock_timeout = float(LOCK_TIMEOUT)
    return {"backend": backend, "lock_timeout": lock_timeout}


def get_server_config(config: dict[str, Any]) -> dict[str, Any]:
    raw = _get_nested(config, "server")
    raw = raw if isinstance(raw, dict) else {}
    cors = raw.get("cors_origins")
    return {
        "host": str(raw.get("host") or DEFAULT_HOST),
        "port": int(raw.get("port") or DEFAULT_PORT),
        "cors_origins": [str(o) for o in cors] if isinstance(cors, list) else ["*"],
    }


def get_client_config(config: dict[str, Any]) -> dict[str, Any]:
    """Extract HTTP client settings (read retries, backoff, timeout)."""
    raw = _get_nested(config, "client")
    raw = raw if isinstance(raw, dict) else {}
    return {
        "read_retries": int(raw.get("read_retries", DEFAULT_READ_RETRIES)),
        "retry_backoff": float(raw.get("retry_backoff", DEFAULT_RETRY_BACKOFF_SECONDS)),
        "timeout": float(raw.get("timeout", DEFAULT_HTTP_TIMEOUT_SECONDS)),
    }


def get_log_level(config: dict[str, Any]) -> str:
    level = os.getenv(LOG_LEVEL_ENV_VAR) or _get_nested(config, "logging", "level")
    if isinstance(level, str) and level.strip():
        return level.strip().upper()
    return "INFO"
