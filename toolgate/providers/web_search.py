"""Google Custom Search JSON API client."""

from __future__ import annotations

import httpx
import structlog

from toolgate.config.settings import GoogleSearchSettings
from toolgate.infra.errors import ProviderError, ProviderNotConfiguredError

logger = structlog.get_logger()


def reduce_item(item: dict) -> dict:
    """Keep the fields an agent can act on; drop pagemaps and HTML variants."""
    return {
        "title": item.get("title", ""),
        "link": item.get("link", ""),
        "snippet": item.get("snippet", ""),
        "display_link": item.get("displayLink", ""),
    }


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        err = body["error"]
        message = err.get("message") or next(
            (e.get("message") for e in err.get("errors") or [] if e.get("message")), ""
        )
        if message:
            return str(message)
    return response.text or f"Request failed with status {response.status_code}"


class GoogleSearchClient:
    """Thin async wrapper over the CSE endpoint.

    ``transport`` lets tests substitute ``httpx.MockTransport``.
    """

    def __init__(
        self,
        settings: GoogleSearchSettings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings or GoogleSearchSettings()
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self._settings.api_key.strip() and self._settings.engine_id.strip())

    async def search(self, query: str, *, start: int = 1) -> list[dict]:
        """Return reduced result items for one page (10 results from ``start``)."""
        if not self.configured:
            raise ProviderNotConfiguredError(
                "Google Custom Search is not configured. "
                "Set GOOGLE_CSE_API_KEY and GOOGLE_CSE_ID."
            )
        params = {
            "key": self._settings.api_key.strip(),
            "cx": self._settings.engine_id.strip(),
            "q": query,
            "start": str(start),
        }
        logger.info("web_search_request", query=query, start=start)
        try:
            async with httpx.AsyncClient(
                timeout=self._settings.timeout_s, transport=self._transport
            ) as client:
                response = await client.get(self._settings.endpoint, params=params)
        except httpx.TimeoutException as e:
            raise ProviderError(
                f"Search request timed out after {self._settings.timeout_s:g} seconds"
            ) from e
        except httpx.HTTPError as e:
            raise ProviderError(f"Search request failed: {e}") from e

        if response.is_error:
            message = _error_message(response)
            logger.warning("web_search_failed", status=response.status_code, error=message)
            raise ProviderError(message)

        try:
            body = response.json()
        except ValueError as e:
            raise ProviderError("Search response was not valid JSON.") from e
        items = body.get("items") if isinstance(body, dict) else None
        results = [reduce_item(i) for i in items or [] if isinstance(i, dict)]
        logger.info("web_search_done", query=query, results=len(results))
        return results
