from __future__ import annotations

import asyncio
import math
import time
from typing import TYPE_CHECKING

from toolgate.config.settings import ToolSettings
from toolgate.tools.base import BaseTool, RiskLevel, ToolGroup, ToolMode
from toolgate.tools.envelope import failure

if TYPE_CHECKING:
    from toolgate.tools.context import ToolContext


class WaitTool(BaseTool):
    """Pause for a bounded duration, e.g. while a background build finishes."""

    def __init__(self, settings: ToolSettings | None = None) -> None:
        self._max_ms = (settings or ToolSettings()).wait_tool_max_ms

    @property
    def name(self) -> str:
        return "wait_tool"

    @property
    def description(self) -> str:
        return "Wait for the given number of milliseconds before continuing."

    @property
    def group(self) -> ToolGroup:
        return ToolGroup.planning

    @property
    def allowed_modes(self) -> frozenset[ToolMode]:
        return frozenset({ToolMode.chat_safe, ToolMode.coding})

    @property
    def risk_level(self) -> RiskLevel:
        return RiskLevel.low

    @property
    def parameters(self) -> dict:
        if self._max_ms > 0:
            hint = f"Milliseconds to wait (values above {self._max_ms} are clamped)."
        else:
            hint = "Milliseconds to wait (no clamp is applied)."
        return {
            "type": "object",
            "properties": {
                "duration_ms": {"type": "number", "description": hint},
            },
            "required": ["duration_ms"],
        }

    async def execute(self, arguments: dict, context: ToolContext) -> dict:
        raw = arguments.get("duration_ms")
        if isinstance(raw, bool) or not isinstance(raw, int | float) or not math.isfinite(raw):
            return failure("duration_ms must be a finite number.", "INVALID_ARGS")
        requested = math.floor(raw)
        if requested <= 0:
            return failure("duration_ms must be greater than zero.", "INVALID_ARGS")

        capped = min(requested, self._max_ms) if self._max_ms > 0 else requested
        clamped_ms = self._max_ms if capped < requested else None

        started = time.monotonic()
        canceled = await _sleep(capped / 1000, context.cancel_event)
        waited = min(capped, round((time.monotonic() - started) * 1000))

        if canceled:
            return failure(
                f"Wait canceled after {waited}ms.",
                "CANCELED",
                requested_ms=requested,
                waited_ms=waited,
                clamped_ms=clamped_ms,
            )

        message = f"Waited {capped}ms."
        if clamped_ms is not None:
            message += f" Clamped from {requested}ms."
        return {
            "ok": True,
            "message": message,
            "requested_ms": requested,
            "waited_ms": capped,
            "clamped_ms": clamped_ms,
        }


async def _sleep(seconds: float, cancel_event: asyncio.Event | None) -> bool:
    """Sleep; returns True if ``cancel_event`` fired first."""
    if cancel_event is None:
        await asyncio.sleep(seconds)
        return False
    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=seconds)
    except TimeoutError:
        return False
    return True
