from __future__ import annotations

import math
from typing import TYPE_CHECKING

import structlog

from toolgate.config.settings import ToolSettings
from toolgate.infra.errors import ScopeViolationError
from toolgate.sandbox.runner import EXIT_NOT_FOUND
from toolgate.sandbox.scope_resolver import (
    PathScope,
    RootKind,
    looks_absolute,
    parse_scoped_path,
)
from toolgate.search.engine import MergedSearch, SearchEngine, SearchTarget
from toolgate.search.planner import MatchCase, SearchRequest
from toolgate.tools.base import BaseTool, RiskLevel, ToolGroup, ToolMode
from toolgate.tools.envelope import clamp_text, failure

if TYPE_CHECKING:
    from pathlib import Path

    from toolgate.tools.context import ToolContext

logger = structlog.get_logger()

TRUNCATED_MESSAGE = (
    "Search output exceeded the allowed size and was truncated. "
    "Narrow the scope or refine the pattern."
)
TIMED_OUT_MESSAGE = "Search timed out before completing."
NO_MATCHES_MESSAGE = "No matches found."


def _optional_bool(arguments: dict, key: str, default: bool) -> bool:
    value = arguments.get(key)
    return default if value is None else bool(value)


def _timeout_seconds(value: object) -> float | None:
    """Caller timeout in seconds; anything unusable means the configured default."""
    if value is None or isinstance(value, bool) or not isinstance(value, int | float):
        return None
    if not math.isfinite(value) or value <= 0:
        return None
    return float(value)


class GrepSearchTool(BaseTool):
    """Search file contents with ripgrep (findstr on Windows).

    Unscoped ``files`` with an additional root searches both roots in
    parallel and labels each section with the root's directory name.
    """

    def __init__(
        self,
        engine: SearchEngine | None = None,
        settings: ToolSettings | None = None,
    ) -> None:
        self._settings = settings or ToolSettings()
        self._engine = engine or SearchEngine(settings=self._settings)

    @property
    def name(self) -> str:
        return "grep_search"

    @property
    def description(self) -> str:
        return (
            "Search for a pattern in files. 'files' is a relative directory, file "
            "or glob such as 'src/**/*.py'; '**' enables recursion. Returns "
            "matching lines prefixed with the file name."
        )

    @property
    def group(self) -> ToolGroup:
        return ToolGroup.search

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
                "pattern": {
                    "type": "string",
                    "description": "Regular expression (or literal text with literal=true).",
                },
                "files": {
                    "type": "string",
                    "description": (
                        "Relative directory, file or glob. Absolute paths are rejected. "
                        "Prefix with 'workspace:' or 'additional:' to search one root."
                    ),
                },
                "case_insensitive": {
                    "type": "boolean",
                    "description": "Ignore case (default true). Overridden by match_case.",
                },
                "recursive": {
                    "type": "boolean",
                    "description": "Descend into subdirectories when 'files' is a directory.",
                },
                "line_numbers": {
                    "type": "boolean",
                    "description": "Prefix matches with line numbers.",
                },
                "timeout": {
                    "type": "number",
                    "description": "Timeout in seconds (defaults to the configured limit).",
                },
                "match_case": {
                    "type": "string",
                    "enum": [m.value for m in MatchCase],
                    "description": "'smart' ignores case unless the pattern has uppercase.",
                },
                "literal": {
                    "type": "boolean",
                    "description": "Treat pattern as a fixed string.",
                },
                "no_messages": {
                    "type": "boolean",
                    "description": "Suppress file access error messages.",
                },
            },
            "required": ["pattern", "files"],
        }

    async def execute(self, arguments: dict, context: ToolContext) -> dict:
        pattern = arguments.get("pattern")
        files = arguments.get("files")
        if not isinstance(pattern, str) or not pattern.strip():
            return failure("pattern is required.", "INVALID_ARGS")
        if not isinstance(files, str) or not files.strip():
            return failure("files is required.", "INVALID_ARGS")

        match_case = arguments.get("match_case")
        if match_case is not None:
            try:
                match_case = MatchCase(str(match_case).strip().lower())
            except ValueError:
                return failure(
                    "match_case must be one of: smart, insensitive, sensitive.", "INVALID_ARGS"
                )

        parsed = parse_scoped_path(files)
        if looks_absolute(parsed.path):
            return failure("Absolute paths are not allowed for files.", "ACCESS_DENIED")

        workspace_root = context.workspace_root
        targets: list[SearchTarget] = []
        if parsed.scope is PathScope.additional:
            if context.additional_root is None:
                return failure("No additional working directory is set.", "INVALID_ARGS")
            targets.append(SearchTarget(RootKind.additional, context.additional_root))
        else:
            targets.append(SearchTarget(RootKind.workspace, workspace_root))
            if parsed.scope is None and context.additional_root is not None:
                targets.append(SearchTarget(RootKind.additional, context.additional_root))

        request = SearchRequest(
            pattern=pattern,
            files=parsed.path,
            case_insensitive=_optional_bool(arguments, "case_insensitive", True),
            recursive=_optional_bool(arguments, "recursive", False),
            line_numbers=_optional_bool(arguments, "line_numbers", False),
            timeout_s=_timeout_seconds(arguments.get("timeout")),
            match_case=match_case,
            literal=_optional_bool(arguments, "literal", False),
            no_messages=_optional_bool(arguments, "no_messages", False),
        )

        try:
            merged = await self._engine.search_roots(
                request, targets, cancel_event=context.cancel_event
            )
        except ScopeViolationError as e:
            return failure(str(e), e.code)

        return self._envelope(merged, targets, workspace_root)

    def _envelope(
        self, merged: MergedSearch, targets: list[SearchTarget], workspace_root: Path
    ) -> dict:
        stdout = clamp_text(merged.stdout, self._settings.text_response_limit)
        stderr = clamp_text(merged.stderr, self._settings.grep_stderr_limit)
        truncated = merged.truncated or stdout.clamped or stderr.clamped

        error: str | None = None
        error_code: str | None = None
        if truncated:
            error, error_code = TRUNCATED_MESSAGE, "TRUNCATED"
        elif merged.timed_out:
            error, error_code = TIMED_OUT_MESSAGE, "TIMEOUT"
        elif merged.hard_error:
            missing = any(r.result.returncode == EXIT_NOT_FOUND for r in merged.runs)
            error, error_code = merged.hard_error, "NOT_FOUND" if missing else "EXECUTION_ERROR"
        elif not merged.any_match:
            error, error_code = NO_MATCHES_MESSAGE, "NO_MATCHES"

        if error_code not in (None, "NO_MATCHES"):
            logger.info("grep_search_degraded", error_code=error_code)

        envelope = {
            "ok": merged.any_match and error is None,
            "stdout": stdout.text,
            "stderr": stderr.text,
            "returncode": 0 if merged.any_match else 1,
            "timed_out": merged.timed_out,
            "truncated": truncated,
            "stdout_truncated": stdout.clamped,
            "stderr_truncated": stderr.clamped,
            "stdout_omitted_chars": stdout.omitted,
            "stderr_omitted_chars": stderr.omitted,
            "omitted_bytes": merged.omitted_bytes,
            "base_dir": str(workspace_root),
            "bases": [{"label": t.label.value, "cwd": str(t.cwd)} for t in targets],
        }
        if error is not None:
            envelope["error"] = error
            envelope["error_code"] = error_code
        return envelope
