from __future__ import annotations

from pathlib import Path

import pytest

from kanban_sync.config import (
    get_client_config,
    get_log_level,
    get_server_config,
    get_storage_config,
    load_board_config,
)
from kanban_sync.storage.container import Container


def _write_config(tmp_path: Path, text: str) -> None:
    state = tmp_path / ".kanban_sync"
    state.mkdir(exist_ok=True)
    (state / "config.yaml").write_text(text, encoding="utf-8")


def test_missing_config_uses_defaults(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("KANBAN_SYNC_BACKEND", raising=False)
    config, err = load_board_config(tmp_path)
    assert (config, err) == ({}, None)
    assert get_storage_config(config) == {"backend": "file", "lock_timeout": 30.0}
    assert get_server_config(config)["cors_origins"] == ["*"]
    assert get_client_config(config)["read_retries"] == 2


def test_config_file_values(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("KANBAN_SYNC_BACKEND", raising=False)
    monkeypatch.delenv("KANBAN_SYNC_LOG_LEVEL", raising=False)
    _write_config(
        tmp_path,
        "storage:\n  backend: memory\n  lock_timeout: 5\n"
        "server:\n  port: 9001\n  cors_origins: [\"http://localhost:3000\"]\n"
        "logging:\n  level: debug\n",
    )
    config, err = load_board_config(tmp_path)
    assert err is None
    assert get_storage_config(config) == {"backend": "memory", "lock_timeout": 5.0}
    assert get_server_config(config)["port"] == 9001
    assert get_server_config(config)["cors_origins"] == ["http://localhost:3000"]
    assert get_log_level(config) == "DEBUG"
    assert Container(tmp_path).backend == "memory"


def test_env_overrides_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _write_config(tmp_path, "storage:\n  backend: memory\nlogging:\n  level: debug\n")
    monkeypatch.setenv("KANBAN_SYNC_BACKEND", "file")
    monkeypatch.setenv("KANBAN_SYNC_LOG_LEVEL", "warning")
    config, _ = load_board_config(tmp_path)
    assert get_storage_config(config)["backend"] == "file"
    assert get_log_level(config) == "WARNING"


def test_unknown_backend_falls_back_to_file(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("KANBAN_SYNC_BACKEND", raising=False)
    assert get_storage_config({"storage": {"backend": "postgres"}})["backend"] == "file"


def test_malformed_config_reports_error(tmp_path: Path) -> None:
    _write_config(tmp_path, "storage: [unclosed\n")
    config, err = load_board_config(tmp_path)
    assert config == {}
    assert err is not None and "YAMLError" in err
    assert Container(tmp_path, backend="memory").config_error == err
