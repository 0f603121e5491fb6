from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from toolgate.config.settings import ToolSettings
from toolgate.sandbox.scope_resolver import PathIntent, resolve_tool_path
from toolgate.tools.base import BaseTool, ToolMode
from toolgate.tools.envelope import clamp_text, failure

if TYPE_CHECKING:
    from toolgate.tools.context import ToolContext

logger = structlog.get_logger()


class CreateFileTool(BaseTool):
    """Create a new file. Never overwrites: an existing file is an error."""

    def __init__(self, settings: ToolSettings | None = None) -> None:
        self._limit = (settings or ToolSettings()).text_response_limit

    @property
    def name(self) -> str:
        return "create_file"

    @property
    def description(self) -> str:
        return (
            "Create a new file with the given content. Parent directories are "
            "created as needed. Fails if the file already exists; use create_diff "
            "to edit existing files."
        )

    @property
    def allowed_modes(self) -> frozenset[ToolMode]:
        return frozenset({ToolMode.coding})

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "file_path": {
                    "type": "string",
                    "description": (
                        "Path of the file to create. Relative paths resolve against "
                        "the workspace; prefix with 'workspace:' or 'additional:' to "
                        "pick a root explicitly."
                    ),
                },
                "content": {
                    "type": "string",
                    "description": "Full text content of the new file.",
                },
            },
            "required": ["file_path", "content"],
        }

    async def execute(self, arguments: dict, context: ToolContext) -> dict:
        file_path = arguments.get("file_path")
        content = arguments.get("content")
        if not isinstance(file_path, str) or not file_path.strip():
            return failure("file_path is required.", "INVALID_ARGS")
        if content is None:
            content = ""
        if not isinstance(content, str):
            return failure("content must be a string.", "INVALID_ARGS", path=file_path)

        resolved = resolve_tool_path(context, file_path, PathIntent.write)
        if not resolved.ok:
            return failure(resolved.error, resolved.error_code, path=file_path)

        preview = clamp_text(content, self._limit)
        base = {
            "path": file_path,
            "content": preview.text,
            "truncated": preview.clamped,
            "omitted_chars": preview.omitted,
        }
        target = resolved.path
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with target.open("x", encoding="utf-8", newline="") as fh:
                fh.write(content)
        except FileExistsError:
            return failure(f"File already exists at {target}", "ALREADY_EXISTS", **base)
        except OSError as e:
            logger.warning("create_file_failed", path=str(target), error=str(e))
            return failure(f"Failed to create file: {e}", "WRITE_ERROR", **base)

        logger.info("file_created", path=str(target), root=resolved.root, chars=len(content))
        return {"ok": True, "message": f"File created successfully at {target}", **base}
