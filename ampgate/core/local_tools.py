"""Tools the gateway answers itself instead of forwarding: web search and page extraction.

Request body: ``{"params": {"objective", "searchQueries", "maxResults", "url"}}``.
The answer is an OutboundRequest aimed at ``dc-local://{tool}``, telling the
caller there is nothing left to forward.
"""

from __future__ import annotations

import json
from typing import Any

import httpx

from ampgate.core.errors import AmpGateError, DecodeFailureError, UnknownLocalToolError
from ampgate.core.fetcher import fetch_text
from ampgate.core.models import LOCAL_TARGET_SCHEME, OutboundRequest
from ampgate.core.security_guard import validate_url
from ampgate.search import SearchResult, build_search_providers
from ampgate.search.duckduckgo import browser_headers
from ampgate.util.logger import logger

WEB_SEARCH_TOOL = "webSearch2"
EXTRACT_PAGE_TOOL = "extractWebPageContent"
LOCAL_TOOLS = (WEB_SEARCH_TOOL, EXTRACT_PAGE_TOOL)
DEFAULT_MAX_RESULTS = 5
_PAGE_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"


def detect_local_tool(query: str | None) -> str | None:
    """Tool name when one of the ``&``-separated query keys names a local tool.

    ``?webSearch2``, ``?a=1&webSearch2``, ``?mcp_webSearch2=`` match;
    ``?xwebSearch2`` does not.
    """
    if not query:
        return None
    for part in query.split("&"):
        key = part.split("=", 1)[0]
        if key.startswith("mcp_"):
            key = key[len("mcp_") :]
        if key in LOCAL_TOOLS:
            return key
    return None


def build_local_response(tool_name: str, payload: dict[str, Any]) -> OutboundRequest:
    return OutboundRequest(
        target_url=f"{LOCAL_TARGET_SCHEME}{tool_name}",
        headers=httpx.Headers({"content-type": "application/json"}),
        body=json.dumps(payload, ensure_ascii=False).encode("utf-8"),
    )


def _parse_params(body: bytes) -> dict[str, Any]:
    try:
        payload = json.loads(body)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise DecodeFailureError(f"tool request is not valid json: {exc}") from exc
    if not isinstance(payload, dict):
        raise DecodeFailureError("tool request must be a json object")
    params = payload.get("params")
    return params if isinstance(params, dict) else {}


def _search_queries(params: dict[str, Any]) -> list[str]:
    raw = params.get("searchQueries")
    queries = [item for item in raw if isinstance(item, str)] if isinstance(raw, list) else []
    if queries:
        return queries
    objective = params.get("objective")
    if isinstance(objective, str) and objective:
        return [objective]
    return []


def _max_results(params: dict[str, Any]) -> int:
    # 0 和负数同缺省一样按 5 条处理，而不是返回空结果
    value = params.get("maxResults")
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        return DEFAULT_MAX_RESULTS
    return value


class LocalToolExecutor:
    """Runs local tools over the injected tool client (no redirects, bounded reads)."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def run(self, tool_name: str, body: bytes, search_api_key: str | None = None) -> OutboundRequest:
        if tool_name == WEB_SEARCH_TOOL:
            return await self.web_search(body, search_api_key)
        if tool_name == EXTRACT_PAGE_TOOL:
            return await self.extract_web_page(body)
        raise UnknownLocalToolError(f"unknown local tool: {tool_name}")

    async def _search_with_fallback(
        self,
        queries: list[str],
        max_results: int,
        search_api_key: str | None,
    ) -> tuple[list[SearchResult], str]:
        providers = build_search_providers(self._client, search_api_key)
        primary, fallback = providers[:-1], providers[-1]
        for provider in primary:
            try:
                return await provider.search(queries, max_results), provider.name
            except (AmpGateError, httpx.HTTPError) as exc:
                logger.warning("search provider failed, falling back provider=%s error=%s", provider.name, exc)
        # 兜底 provider 失败直接抛给调用方
        return await fallback.search(queries, max_results), fallback.name

    async def web_search(self, body: bytes, search_api_key: str | None = None) -> OutboundRequest:
        params = _parse_params(body)
        queries = _search_queries(params)
        max_results = _max_results(params)
        logger.info("local search queries=%s max_results=%d", queries, max_results)

        results, provider = await self._search_with_fallback(queries, max_results, search_api_key)
        logger.info("local search done provider=%s results=%d", provider, len(results))
        return build_local_response(
            WEB_SEARCH_TOOL,
            {
                "ok": True,
                "result": {
                    "results": [item.model_dump() for item in results],
                    "provider": provider,
                    "showParallelAttribution": False,
                },
                "creditsConsumed": "0",
            },
        )

    async def extract_web_page(self, body: bytes) -> OutboundRequest:
        params = _parse_params(body)
        url = params.get("url")
        if not isinstance(url, str) or not url:
            raise DecodeFailureError("tool request is missing params.url")

        validate_url(url)
        logger.info("local page extract url=%s", url)
        html = await fetch_text(self._client, url, headers=browser_headers(_PAGE_ACCEPT))
        logger.info("local page extract done bytes=%d", len(html))
        return build_local_response(
            EXTRACT_PAGE_TOOL,
            {"ok": True, "result": {"fullContent": html, "excerpts": [], "provider": "local"}},
        )
