from __future__ import annotations

from enum import StrEnum

import structlog

from toolgate.tools.base import BaseTool, ToolGroup, ToolMode

logger = structlog.get_logger()


class SchemaStyle(StrEnum):
    """Function-calling wire shapes.

    chat: Chat Completions ``{"type": "function", "function": {...}}``.
    responses: Responses API, name/description/parameters at the top level.
    """

    chat = "chat"
    responses = "responses"


class ToolRegistry:
    """Name-keyed tool catalogue with mode-aware filtering."""

    def __init__(self) -> None:
        self._tools: dict[str, BaseTool] = {}
        self._mode_overrides: dict[str, frozenset[ToolMode]] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def register(self, tool: BaseTool) -> None:
        """Register a tool. Raises ValueError on a duplicate name."""
        if tool.name in self._tools:
            raise ValueError(f"Tool already registered: {tool.name}")
        if not tool.allowed_modes:
            logger.warning(
                "tool_registered_without_modes",
                tool_name=tool.name,
                msg="allowed_modes is empty; the tool is hidden in every mode.",
            )
        self._tools[tool.name] = tool
        logger.debug(
            "tool_registered",
            tool_name=tool.name,
            group=tool.group.value,
            risk=tool.risk_level.value,
        )

    def get(self, name: str) -> BaseTool | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def restrict_modes(self, tool_name: str, modes: frozenset[ToolMode]) -> None:
        """Narrow a tool's modes for this registry (deployment policy).

        Raises KeyError for an unknown tool and ValueError when ``modes``
        would add a mode the tool does not declare.
        """
        tool = self._tools.get(tool_name)
        if tool is None:
            raise KeyError(f"Tool not registered: {tool_name}")
        extra = modes - tool.allowed_modes
        if extra:
            raise ValueError(
                f"Cannot expand modes for '{tool_name}': "
                f"{sorted(extra)} not in {sorted(tool.allowed_modes)}"
            )
        self._mode_overrides[tool_name] = modes

    def effective_modes(self, tool_name: str) -> frozenset[ToolMode]:
        tool = self._tools.get(tool_name)
        if tool is None:
            return frozenset()
        override = self._mode_overrides.get(tool_name)
        return tool.allowed_modes if override is None else tool.allowed_modes & override

    def is_available(self, tool_name: str, mode: ToolMode) -> bool:
        """False for unknown tools and tools not enabled in ``mode``."""
        return mode in self.effective_modes(tool_name)

    def list_tools(self, mode: ToolMode, *, group: ToolGroup | None = None) -> list[BaseTool]:
        return [
            tool
            for tool in self._tools.values()
            if mode in self.effective_modes(tool.name)
            and (group is None or tool.group is group)
        ]

    def get_tools_schema(
        self, mode: ToolMode, *, style: SchemaStyle = SchemaStyle.chat
    ) -> list[dict]:
        """Function-calling definitions for the tools enabled in ``mode``."""
        schemas = []
        for tool in self.list_tools(mode):
            spec = {
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.parameters,
            }
            if style is SchemaStyle.responses:
                schemas.append({"type": "function", **spec})
            else:
                schemas.append({"type": "function", "function": spec})
        return schemas
