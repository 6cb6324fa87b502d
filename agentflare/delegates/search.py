"""Search delegate: web search through DuckDuckGo or Brave."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from agentflare.delegates.base import (
    DelegateError,
    DelegateProtocolError,
    DelegateTimeoutError,
    DelegateUnavailableError,
)
from agentflare.prompt_engine import format_search_results
from agentflare.schemas import DelegateResult, SearchEngine, SearchResponse, SearchResult

logger = logging.getLogger(__name__)

DUCKDUCKGO_API_URL = "https://api.duckduckgo.com/"
DUCKDUCKGO_SUGGEST_URL = "https://duckduckgo.com/ac/"
BRAVE_SEARCH_URL = "https://api.search.brave.com/res/v1/web/search"

DEFAULT_TIMEOUT = 15.0  # seconds
DEFAULT_MAX_RESULTS = 10
SUGGEST_TIMEOUT = 5.0


class SearchClient:
    """Stateless web search client."""

    capability = "search"

    def __init__(
        self,
        engine: SearchEngine = SearchEngine.DUCKDUCKGO,
        api_key: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize the client.

        Args:
            engine: Search backend
            api_key: Brave Search subscription token (required for Brave)
            timeout: Per-request timeout in seconds
            client: Optional shared httpx client; one is opened per call otherwise
        """
        self.engine = SearchEngine(engine)
        self.api_key = api_key
        self.timeout = timeout
        self._client = client

    async def search(self, query: str, max_results: int = DEFAULT_MAX_RESULTS) -> SearchResponse:
        """Run a search and return ranked results.

        Never raises; failures are reported with ``success=False``.
        """
        logger.info(f"Search: engine={self.engine.value}, query='{query}', max_results={max_results}")
        try:
            if self.engine == SearchEngine.BRAVE:
                results = await self._search_brave(query, max_results)
            else:
                results = await self._search_duckduckgo(query, max_results)
        except DelegateError as e:
            logger.warning(f"Search failed for '{query}': {e}")
            return SearchResponse(success=False, query=query, error=str(e))

        return SearchResponse(
            success=True,
            query=query,
            results=results,
            total_results=len(results),
        )

    async def invoke(self, query: str, max_results: int = DEFAULT_MAX_RESULTS) -> DelegateResult:
        """Search and adapt the response to a ``DelegateResult``."""
        if not query or not query.strip():
            return DelegateResult.failure("Search query is required", message="Search failed")

        response = await self.search(query.strip(), max_results)
        if not response.success:
            return DelegateResult.failure(
                response.error or "Unknown error",
                message=f'Search failed for query: "{response.query}"',
                payload=response.model_dump(),
            )
        return DelegateResult.ok(
            format_search_results(response.query, response.results),
            payload=response.model_dump(),
        )

    async def suggestions(self, query: str) -> list[str]:
        """Return autocomplete suggestions, or an empty list on any failure."""
        try:
            data = await self._get_json(
                DUCKDUCKGO_SUGGEST_URL,
                params={"q": query, "type": "list"},
                timeout=SUGGEST_TIMEOUT,
            )
        except DelegateError as e:
            logger.debug(f"Suggestions unavailable for '{query}': {e}")
            return []

        if isinstance(data, list) and len(data) > 1 and isinstance(data[1], list):
            return [str(item) for item in data[1]]
        return []

    async def _search_duckduckgo(self, query: str, max_results: int) -> list[SearchResult]:
        data = await self._get_json(
            DUCKDUCKGO_API_URL,
            params={"q": query, "format": "json", "no_html": 1, "skip_disambig": 1},
        )
        if not isinstance(data, dict):
            raise DelegateProtocolError("DuckDuckGo returned unexpected JSON")

        hits: list[tuple[str, str, str]] = []

        abstract_url = data.get("AbstractURL")
        abstract_text = data.get("AbstractText")
        if abstract_url and abstract_text:
            hits.append((data.get("Heading") or abstract_text.split(" - ")[0], abstract_url, abstract_text))

        for topic in _flatten_topics(data.get("RelatedTopics") or []):
            url = topic.get("FirstURL") or ""
            text = topic.get("Text") or ""
            if not url:
                continue
            hits.append((text.split(" - ")[0] or "No title", url, text or "No snippet"))

        return _rank(hits, max_results)

    async def _search_brave(self, query: str, max_results: int) -> list[SearchResult]:
        if not self.api_key:
            raise DelegateUnavailableError("Brave Search API key required")

        data = await self._get_json(
            BRAVE_SEARCH_URL,
            params={"q": query, "count": max_results},
            headers={"X-Subscription-Token": self.api_key, "Accept": "application/json"},
        )
        if not isinstance(data, dict):
            raise DelegateProtocolError("Brave Search returned unexpected JSON")

        web_results = (data.get("web") or {}).get("results") or []
        hits = [
            (item.get("title") or "No title", item.get("url") or "", item.get("description") or "")
            for item in web_results
            if item.get("url")
        ]
        return _rank(hits, max_results)

    async def _get_json(
        self,
        url: str,
        params: dict[str, Any],
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> Any:
        timeout = timeout or self.timeout
        try:
            if self._client is not None:
                response = await self._client.get(url, params=params, headers=headers, timeout=timeout)
            else:
                async with httpx.AsyncClient(timeout=timeout) as client:
                    response = await client.get(url, params=params, headers=headers)
            response.raise_for_status()
            return response.json()

        except httpx.TimeoutException as e:
            raise DelegateTimeoutError(f"Search request timed out after {timeout:g}s") from e

        except httpx.HTTPStatusError as e:
            raise DelegateUnavailableError(
                f"{self.engine.value} search API error: {e.response.status_code}"
            ) from e

        except httpx.HTTPError as e:
            raise DelegateUnavailableError(f"Search service unavailable: {e}") from e

        except ValueError as e:
            raise DelegateProtocolError("Search service returned a non-JSON response") from e


def _flatten_topics(topics: list[Any]) -> list[dict[str, Any]]:
    """DuckDuckGo nests grouped topics under ``Topics``; flatten them in order."""
    flat: list[dict[str, Any]] = []
    for topic in topics:
        if not isinstance(topic, dict):
            continue
        if "Topics" in topic:
            flat.extend(_flatten_topics(topic.get("Topics") or []))
        else:
            flat.append(topic)
    return flat


def _rank(hits: list[tuple[str, str, str]], max_results: int) -> list[SearchResult]:
    return [
        SearchResult(title=title, url=url, snippet=snippet, position=i)
        for i, (title, url, snippet) in enumerate(hits[:max_results], 1)
    ]
