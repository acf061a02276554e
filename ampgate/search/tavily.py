"""Primary search provider: Tavily-style JSON search API."""

from __future__ import annotations

from typing import Any

import httpx

from ampgate.config.settings import settings
from ampgate.core.errors import DecodeFailureError
from ampgate.core.fetcher import fetch_json
from ampgate.core.security_guard import validate_url
from ampgate.search.base import SearchProvider, SearchResult

# API 单次最多返回 10 条
_API_MAX_RESULTS = 10


def _as_str(value: Any) -> str:
    return value if isinstance(value, str) else ""


class TavilySearchProvider(SearchProvider):
    name = "tavily"

    def __init__(self, client: httpx.AsyncClient, api_key: str, api_url: str | None = None) -> None:
        super().__init__(client)
        self._api_key = api_key
        self._api_url = api_url or settings.search_api_url

    async def search_one(self, query: str, max_results: int) -> list[SearchResult]:
        validate_url(self._api_url)
        payload = {
            "api_key": self._api_key,
            "query": query,
            "search_depth": "basic",
            "max_results": min(max_results, _API_MAX_RESULTS),
            "include_answer": False,
        }
        data = await fetch_json(self._client, self._api_url, payload)
        if not isinstance(data, dict):
            raise DecodeFailureError("search api answered with a non-object json body")

        results: list[SearchResult] = []
        raw_results = data.get("results")
        if not isinstance(raw_results, list):
            return results
        for item in raw_results:
            if not isinstance(item, dict):
                continue
            results.append(
                SearchResult(
                    title=_as_str(item.get("title")),
                    url=_as_str(item.get("url")),
                    excerpts=[_as_str(item.get("content"))],
                )
            )
        return results
