from __future__ import annotations

import json
import math
from typing import TYPE_CHECKING

from toolgate.config.settings import ToolSettings
from toolgate.infra.errors import ToolgateError
from toolgate.providers.web_search import GoogleSearchClient
from toolgate.tools.base import BaseTool, RiskLevel, ToolGroup, ToolMode
from toolgate.tools.envelope import clamp_text, failure

if TYPE_CHECKING:
    from toolgate.tools.context import ToolContext


def _start_index(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int | float) or not math.isfinite(value):
        return 1
    return max(1, math.floor(value))


class GoogleSearchTool(BaseTool):
    def __init__(self, client: GoogleSearchClient, settings: ToolSettings | None = None) -> None:
        self._client = client
        self._limit = (settings or ToolSettings()).text_response_limit

    @property
    def name(self) -> str:
        return "google_search"

    @property
    def description(self) -> str:
        return (
            "Search the web with Google Custom Search. Returns up to 10 results "
            "per page; use start=11, 21, ... for later pages."
        )

    @property
    def group(self) -> ToolGroup:
        return ToolGroup.world

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
                "query": {"type": "string", "description": "Search query."},
                "start": {
                    "type": "integer",
                    "minimum": 1,
                    "description": "1-based index of the first result (default 1).",
                },
            },
            "required": ["query"],
        }

    async def execute(self, arguments: dict, context: ToolContext) -> dict:
        query = str(arguments.get("query") or "").strip()
        if not query:
            return failure("query is required.", "INVALID_ARGS")
        start = _start_index(arguments.get("start"))

        try:
            results = await self._client.search(query, start=start)
        except ToolgateError as e:
            return failure(str(e) or "Search failed.", e.code, query=query, start=start)

        summary = clamp_text(json.dumps(results, indent=2, ensure_ascii=False), self._limit)
        return {
            "ok": True,
            "query": query,
            "start": start,
            "summary": summary.text,
            "truncated": summary.clamped,
            "omitted_chars": summary.omitted,
            "results": results,
        }
