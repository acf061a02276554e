"""Search provider selection helpers."""

from __future__ import annotations

import httpx

from ampgate.search.base import SearchProvider, SearchResult
from ampgate.search.duckduckgo import DuckDuckGoHtmlProvider
from ampgate.search.tavily import TavilySearchProvider

__all__ = ["SearchProvider", "SearchResult", "build_search_providers"]


def build_search_providers(client: httpx.AsyncClient, search_api_key: str | None) -> list[SearchProvider]:
    """Providers in try order. The HTML scraper is always last and always present."""

    providers: list[SearchProvider] = []
    key = (search_api_key or "").strip()
    if key:
        providers.append(TavilySearchProvider(client, key))
    providers.append(DuckDuckGoHtmlProvider(client))
    return providers
