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


class CreateDiffTool(BaseTool):
    """Edit a file by replacing every exact occurrence of ``old_text``.

    Read-modify-write without locking: concurrent edits of the same file are
    last-write-wins.
    """

    def __init__(self, settings: ToolSettings | None = None) -> None:
        self._limit = (settings or ToolSettings()).text_response_limit

    @property
    def name(self) -> str:
        return "create_diff"

    @property
    def description(self) -> str:
        return (
            "Edit an existing file by replacing all exact matches of old_text "
            "with new_text. Reports how many occurrences were replaced."
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
                    "description": "Path of the file to edit.",
                },
                "old_text": {
                    "type": "string",
                    "description": "Exact text to search for. Must not be empty.",
                },
                "new_text": {
                    "type": "string",
                    "description": "Replacement text. May be empty to delete old_text.",
                },
            },
            "required": ["file_path", "old_text", "new_text"],
        }

    def _preview(self, old_text: str, new_text: str) -> dict:
        old_clamp = clamp_text(old_text, self._limit)
        new_clamp = clamp_text(new_text, self._limit)
        return {
            "truncated": old_clamp.clamped or new_clamp.clamped,
            "preview": {
                "old_text": old_clamp.text,
                "new_text": new_clamp.text,
                "old_text_truncated": old_clamp.clamped,
                "new_text_truncated": new_clamp.clamped,
                "old_text_omitted_chars": old_clamp.omitted,
                "new_text_omitted_chars": new_clamp.omitted,
            },
        }

    async def execute(self, arguments: dict, context: ToolContext) -> dict:
        file_path = arguments.get("file_path")
        old_text = arguments.get("old_text")
        new_text = arguments.get("new_text")
        if new_text is None:
            new_text = ""

        if not isinstance(file_path, str) or not file_path.strip():
            return failure("file_path is required.", "INVALID_ARGS", made_changes=False)
        if not isinstance(old_text, str) or old_text == "":
            return failure(
                "old_text must be a non-empty string.", "INVALID_ARGS", made_changes=False
            )
        if not isinstance(new_text, str):
            return failure("new_text must be a string.", "INVALID_ARGS", made_changes=False)

        resolved = resolve_tool_path(context, file_path, PathIntent.write)
        if not resolved.ok:
            return failure(resolved.error, resolved.error_code, made_changes=False)

        target = resolved.path
        extra = {"made_changes": False, "path": file_path, **self._preview(old_text, new_text)}
        try:
            with target.open(encoding="utf-8", newline="") as fh:
                content = fh.read()
        except FileNotFoundError:
            return failure(f"File not found: {target}", "FILE_NOT_FOUND", **extra)
        except (OSError, UnicodeDecodeError) as e:
            return failure(f"Failed to create diff for {target}: {e}", "READ_ERROR", **extra)

        count = content.count(old_text)
        if count == 0:
            return failure(f"Search text not found in {target}", "NO_MATCHES", **extra)

        try:
            with target.open("w", encoding="utf-8", newline="") as fh:
                fh.write(content.replace(old_text, new_text))
        except OSError as e:
            logger.warning("create_diff_write_failed", path=str(target), error=str(e))
            return failure(f"Failed to create diff for {target}: {e}", "WRITE_ERROR", **extra)

        logger.info("file_edited", path=str(target), replacements=count)
        return {
            "ok": True,
            "message": (
                f"Successfully applied diff to {target}. "
                f"Replaced {count} occurrence(s) of old text."
            ),
            **extra,
            "made_changes": True,
            "replacements": count,
        }
