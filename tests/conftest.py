"""Shared pytest fixtures for toolgate tests.

Each test gets an isolated workspace (and, when requested, an additional
root) under tmp_path. Settings are built explicitly so host AGENT_* env
vars cannot change limits under test.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from toolgate.config.settings import ToolSettings
from toolgate.tools.context import ToolContext


@pytest.fixture()
def workspace(tmp_path: Path) -> Path:
    ws = tmp_path / "ws"
    ws.mkdir()
    (ws / "notes.txt").write_text("hello world\n", encoding="utf-8")
    (ws / "src").mkdir()
    (ws / "src" / "app.py").write_text("def main():\n    return 'Hello'\n", encoding="utf-8")
    return ws


@pytest.fixture()
def additional(tmp_path: Path) -> Path:
    extra = tmp_path / "extra"
    extra.mkdir()
    (extra / "only_extra.md").write_text("extra root file\n", encoding="utf-8")
    return extra


@pytest.fixture()
def context(workspace: Path) -> ToolContext:
    return ToolContext(workspace_root=workspace)


@pytest.fixture()
def dual_context(workspace: Path, additional: Path) -> ToolContext:
    return ToolContext(workspace_root=workspace, additional_root=additional)


@pytest.fixture()
def tool_settings() -> ToolSettings:
    return ToolSettings(
        wait_tool_max_ms=300_000,
        grep_timeout_seconds=30,
        command_timeout_ms=30_000,
        command_max_buffer_bytes=5 * 1024 * 1024,
        text_response_limit=120_000,
        grep_stderr_limit=6_000,
        todo_max_sessions=256,
    )
