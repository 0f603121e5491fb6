from __future__ import annotations

from typing import TYPE_CHECKING

from toolgate.sandbox.scope_resolver import PathIntent, resolve_tool_path
from toolgate.tools.base import BaseTool, RiskLevel, ToolMode
from toolgate.tools.builtins.read_file import read_failure, read_text_file
from toolgate.tools.envelope import failure

if TYPE_CHECKING:
    from toolgate.tools.context import ToolContext


def count_lines(text: str) -> int:
    """Line count with CRLF treated as LF and a trailing newline not counted."""
    normalized = text.replace("\r\n", "\n")
    if not normalized:
        return 0
    segments = normalized.split("\n")
    return len(segments) - 1 if normalized.endswith("\n") else len(segments)


def count_words(text: str) -> int:
    return len(text.split())


class GetFileSizeTool(BaseTool):
    @property
    def name(self) -> str:
        return "get_file_size"

    @property
    def description(self) -> str:
        return "Count the lines and words of a text file without returning its content."

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
                    "description": "Path of the file to measure.",
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
            text = read_text_file(resolved.path)
        except (OSError, UnicodeDecodeError) as e:
            return read_failure(e, resolved.path, file_path)

        return {
            "ok": True,
            "path": file_path,
            "line_count": count_lines(text),
            "word_count": count_words(text),
            "encoding": "utf-8",
        }
