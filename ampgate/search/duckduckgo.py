"""Fallback search provider: scrapes the DuckDuckGo HTML endpoint.

Results are the ``a.result__a`` anchors; the excerpt is the
``result__snippet`` element that follows an anchor before the next one. If
the page layout changes only this module has to follow.
"""

from __future__ import annotations

from urllib.parse import quote, unquote

import httpx
from bs4 import BeautifulSoup, Tag

from ampgate.config.settings import settings
from ampgate.core.fetcher import fetch_text
from ampgate.core.security_guard import validate_url
from ampgate.search.base import SearchProvider, SearchResult

_RESULT_ANCHOR_CLASS = "result__a"
_SNIPPET_CLASS = "result__snippet"
_REDIRECT_PARAM = "uddg="


def browser_headers(accept: str) -> dict[str, str]:
    return {
        "User-Agent": settings.browser_user_agent,
        "Accept": accept,
        "Accept-Language": settings.browser_accept_language,
    }


def clean_html(text: str) -> str:
    """Visible text of an HTML fragment, entities decoded and trimmed."""

    return BeautifulSoup(text, "html.parser").get_text().strip()


def extract_ddg_target_url(href: str) -> str:
    """Real destination of a result link; "" when it cannot be determined."""

    pos = href.find(_REDIRECT_PARAM)
    if pos >= 0:
        encoded = href[pos + len(_REDIRECT_PARAM) :]
        end = encoded.find("&")
        if end >= 0:
            encoded = encoded[:end]
        return unquote(encoded)
    if href.startswith("http"):
        return href
    return ""


def _snippet_after(anchor: Tag) -> str:
    following = anchor.find_next(class_=[_RESULT_ANCHOR_CLASS, _SNIPPET_CLASS])
    if following is None or _SNIPPET_CLASS not in (following.get("class") or []):
        return ""
    return following.get_text().strip()


def parse_duckduckgo_html(html: str) -> list[SearchResult]:
    soup = BeautifulSoup(html, "html.parser")
    results: list[SearchResult] = []
    for anchor in soup.find_all("a", class_=_RESULT_ANCHOR_CLASS):
        href = anchor.get("href")
        if not isinstance(href, str):
            continue
        url = extract_ddg_target_url(href)
        if not url:
            continue

        snippet = _snippet_after(anchor)
        results.append(
            SearchResult(title=anchor.get_text().strip(), url=url, excerpts=[snippet] if snippet else [])
        )
    return results


class DuckDuckGoHtmlProvider(SearchProvider):
    name = "local-duckduckgo"

    def __init__(self, client: httpx.AsyncClient, search_url: str | None = None) -> None:
        super().__init__(client)
        self._search_url = search_url or settings.fallback_search_url

    async def search_one(self, query: str, max_results: int) -> list[SearchResult]:
        url = f"{self._search_url}?q={quote(query, safe='')}"
        validate_url(url)
        html = await fetch_text(self._client, url, headers=browser_headers("text/html"))
        return parse_duckduckgo_html(html)
