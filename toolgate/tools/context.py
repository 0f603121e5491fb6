from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path

from toolgate.config.settings import WorkspaceSettings


@dataclass(frozen=True)
class ToolContext:
    """Runtime context injected into tool execution by the orchestrator.

    Built once per agent session and passed explicitly into every
    ``execute`` call; tools never read roots from module state.
    session_id: keys the session-scoped todo list (None = default list).
    cancel_event: set by the orchestrator to abort long-running calls.
    """

    workspace_root: Path
    additional_root: Path | None = None
    allow_external: bool = False
    session_id: str | None = None
    cancel_event: asyncio.Event | None = None

    @classmethod
    def from_settings(
        cls, settings: WorkspaceSettings, *, session_id: str | None = None
    ) -> ToolContext:
        return cls(
            workspace_root=settings.root,
            additional_root=settings.additional_root,
            allow_external=settings.allow_external,
            session_id=session_id,
        )
