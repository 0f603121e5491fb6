from __future__ import annotations

from abc import ABC, abstractmethod
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from toolgate.tools.context import ToolContext


class ToolGroup(StrEnum):
    filesystem = "filesystem"
    search = "search"
    planning = "planning"
    world = "world"


class ToolMode(StrEnum):
    chat_safe = "chat_safe"
    coding = "coding"


class RiskLevel(StrEnum):
    """Tool-level risk classification.

    Undeclared tools default to 'high' (fail-closed). Tools that only read
    or keep in-memory state declare 'low'.
    """

    low = "low"
    high = "high"


class BaseTool(ABC):
    """Abstract base class for agent tools."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique tool name used in function calling."""
        ...

    @property
    @abstractmethod
    def description(self) -> str:
        """Human-readable description of what the tool does."""
        ...

    @property
    @abstractmethod
    def parameters(self) -> dict:
        """JSON Schema describing the tool's input parameters."""
        ...

    @property
    def group(self) -> ToolGroup:
        """Tool group classification. Conservative default: filesystem."""
        return ToolGroup.filesystem

    @property
    def allowed_modes(self) -> frozenset[ToolMode]:
        """Modes in which this tool is available. Fail-closed: empty by default."""
        return frozenset()

    @property
    def risk_level(self) -> RiskLevel:
        """Risk classification. Fail-closed default: high."""
        return RiskLevel.high

    @abstractmethod
    async def execute(self, arguments: dict, context: ToolContext) -> dict:
        """Execute the tool with given arguments and the session context.

        Returns an envelope dict with ``ok`` set; ``ok=False`` carries
        ``error`` and ``error_code``.
        """
        ...
