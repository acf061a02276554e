"""Search provider contract."""

from __future__ import annotations

from abc import ABC, abstractmethod

import httpx
from pydantic import BaseModel, Field


class SearchResult(BaseModel):
    title: str = ""
    url: str
    excerpts: list[str] = Field(default_factory=list)


class SearchProvider(ABC):
    name = "base"

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    @abstractmethod
    async def search_one(self, query: str, max_results: int) -> list[SearchResult]:
        """Run one query against the provider."""

    async def search(self, queries: list[str], max_results: int) -> list[SearchResult]:
        """Run *queries* in order, deduplicating by URL across all of them.

        Stops as soon as *max_results* unique results are collected. Any
        provider error propagates to the caller.
        """
        collected: list[SearchResult] = []
        seen_urls: set[str] = set()
        for query in queries:
            if len(collected) >= max_results:
                break
            for result in await self.search_one(query, max_results):
                if result.url in seen_urls:
                    continue
                seen_urls.add(result.url)
                collected.append(result)
                if len(collected) >= max_results:
                    break
        return collected
