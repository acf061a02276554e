"""Shared outbound clients, built once at startup and injected where needed."""

from __future__ import annotations

import httpx

from ampgate.config.settings import settings


def _upstream_http_limits() -> httpx.Limits:
    return httpx.Limits(
        max_connections=max(10, int(settings.upstream_max_connections)),
        max_keepalive_connections=max(5, int(settings.upstream_max_keepalive_connections)),
    )


def _upstream_http_timeout() -> httpx.Timeout:
    timeout = float(settings.upstream_timeout_seconds)
    # 高并发下连接池排队时间放宽，避免短暂排队被误判为 upstream_unreachable
    pool_timeout = max(timeout + 5.0, timeout * 2.0)
    return httpx.Timeout(connect=timeout, read=timeout, write=timeout, pool=pool_timeout)


def _tool_http_timeout() -> httpx.Timeout:
    request_timeout = float(settings.tool_request_timeout_seconds)
    return httpx.Timeout(request_timeout, connect=float(settings.tool_connect_timeout_seconds))


def build_upstream_client() -> httpx.AsyncClient:
    """Client used to relay LLM traffic to the configured providers."""

    return httpx.AsyncClient(
        follow_redirects=False,
        http2=False,
        timeout=_upstream_http_timeout(),
        limits=_upstream_http_limits(),
    )


def build_tool_client() -> httpx.AsyncClient:
    """Client used by local tools; redirects stay off so the SSRF guard cannot be bypassed."""

    return httpx.AsyncClient(
        follow_redirects=False,
        http2=False,
        timeout=_tool_http_timeout(),
        limits=_upstream_http_limits(),
    )
