from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from toolgate.config.settings import ToolSettings
from toolgate.sandbox.scope_resolver import PathIntent, resolve_tool_path
from toolgate.tools.base import BaseTool, RiskLevel, ToolMode
from toolgate.tools.envelope import clamp_text, failure

if TYPE_CHECKING:
    from pathlib import Path

    from toolgate.tools.context import ToolContext

logger = structlog.get_logger()


def read_text_file(target: Path) -> str:
    """Read UTF-8 text without newline translation."""
    with target.open(encoding="utf-8", newline="") as fh:
        return fh.read()


def read_failure(e: Exception, target: Path, file_path: str) -> dict:
    if isinstance(e, FileNotFoundError):
        return failure(f"File not found: {file_path}", "FILE_NOT_FOUND", path=file_path)
    if isinstance(e, IsADirectoryError):
        return failure(f"Path is a directory: {file_path}", "INVALID_ARGS", path=file_path)
    logger.warning("read_file_failed", path=str(target), error=str(e))
    return failure(f"Failed to read file: {e}", "READ_ERROR", path=file_path)


class ReadFileTool(BaseTool):
    """Read a UTF-8 file within the permitted roots, clamped for the response."""

    def __init__(self, settings: ToolSettings | None = None) -> None:
        self._limit = (settings or ToolSettings()).text_response_limit

    @property
    def name(self) -> str:
        return "read_file"

    @property
    def description(self) -> str:
        return "Read the contents of a text file in the workspace or additional directory."

    @property
    def allowed_modes(self) -> frozenset[ToolMode]:
        return frozenset({ToolMode.chat_safe, ToolMode.coding})

    @property
    def risk_level(self) -> RiskLevel:
        return RiskLevel.low

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "file_path": {
                    "type": "string",
                    "description": (
                        "Path of the file to read, e.g. 'README.md' or "
                        "'additional:docs/notes.md'."
                    ),
                },
            },
            "required": ["file_path"],
        }

    async def execute(self, arguments: dict, context: ToolContext) -> dict:
        file_path = arguments.get("file_path")
        if not isinstance(file_path, str) or not file_path.strip():
            return failure("file_path is required.", "INVALID_ARGS")

        resolved = resolve_tool_path(context, file_path, PathIntent.read)
        if not resolved.ok:
            return failure(resolved.error, resolved.error_code, path=file_path)

        try:
            content = read_text_file(resolved.path)
        except (OSError, UnicodeDecodeError) as e:
            return read_failure(e, resolved.path, file_path)

        clamp = clamp_text(content, self._limit)
        return {
            "ok": True,
            "content": clamp.text,
            "encoding": "utf-8",
            "path": file_path,
            "truncated": clamp.clamped,
            "omitted_chars": clamp.omitted,
            "original_length": len(content),
        }
