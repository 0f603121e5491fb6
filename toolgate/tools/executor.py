from __future__ import annotations

import json

import structlog

from toolgate.tools.base import ToolMode
from toolgate.tools.context import ToolContext
from toolgate.tools.envelope import failure
from toolgate.tools.registry import ToolRegistry

logger = structlog.get_logger()


class ToolExecutor:
    """Dispatch model tool calls to registered tools.

    Always returns an envelope. Unknown tools, malformed arguments, tools
    disabled in the current mode and unexpected exceptions all become
    ``ok=False`` results so a bad call never takes down the session.
    """

    def __init__(self, registry: ToolRegistry, *, mode: ToolMode = ToolMode.coding) -> None:
        self._registry = registry
        self._mode = mode

    @property
    def mode(self) -> ToolMode:
        return self._mode

    async def execute(
        self,
        tool_name: str,
        arguments: str | dict | None,
        context: ToolContext,
    ) -> dict:
        tool = self._registry.get(tool_name)
        if tool is None:
            logger.warning("unknown_tool", tool_name=tool_name)
            return failure(f"Unknown tool: {tool_name}", "UNKNOWN_TOOL")

        if not self._registry.is_available(tool_name, self._mode):
            logger.warning("tool_mode_denied", tool_name=tool_name, mode=self._mode.value)
            return failure(
                f"Tool {tool_name} is not available in {self._mode.value} mode.",
                "MODE_DENIED",
            )

        if arguments is None or arguments == "":
            parsed: object = {}
        elif isinstance(arguments, str):
            try:
                parsed = json.loads(arguments)
            except json.JSONDecodeError as e:
                return failure(f"Invalid JSON arguments: {e}", "INVALID_ARGS")
        else:
            parsed = arguments
        if not isinstance(parsed, dict):
            return failure(
                f"Expected dict arguments, got {type(parsed).__name__}", "INVALID_ARGS"
            )

        try:
            result = await tool.execute(parsed, context)
        except Exception:
            logger.exception("tool_execution_failed", tool_name=tool_name)
            return failure(f"Tool {tool_name} failed", "EXECUTION_ERROR")

        logger.info(
            "tool_executed",
            tool_name=tool_name,
            ok=result.get("ok"),
            error_code=result.get("error_code"),
        )
        return result
