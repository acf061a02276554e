"""Outbound fetches for the local tool path, bounded by size and total time."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Awaitable, Callable, Mapping, TypeVar

import httpx

from ampgate.config.settings import settings
from ampgate.core.errors import DecodeFailureError, SizeLimitExceededError, UpstreamFailureError
from ampgate.util.logger import logger

T = TypeVar("T")


async def read_bytes_with_limit(response: httpx.Response, max_bytes: int) -> bytes:
    """Accumulate the body chunk by chunk, failing as soon as *max_bytes* would be exceeded.

    Content-Length is not trusted: chunked responses are counted the same way.
    """
    buffer = bytearray()
    async for chunk in response.aiter_bytes():
        if len(buffer) + len(chunk) > max_bytes:
            logger.warning(
                "response exceeded size limit limit=%d read=%d next_chunk=%d",
                max_bytes,
                len(buffer),
                len(chunk),
            )
            raise SizeLimitExceededError(f"response body exceeds {max_bytes} bytes limit")
        buffer.extend(chunk)
    return bytes(buffer)


async def read_text_with_limit(response: httpx.Response, max_bytes: int) -> str:
    data = await read_bytes_with_limit(response, max_bytes)
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DecodeFailureError(f"response is not valid utf-8: {exc}") from exc


BodyReader = Callable[[httpx.Response], Awaitable[T]]


async def _read_success_body(
    client: httpx.AsyncClient,
    request: httpx.Request,
    reader: BodyReader[T],
) -> T:
    response = await client.send(request, stream=True)
    try:
        if not response.is_success:
            # error bodies are only for the log line, never bigger than a few KB
            detail = ""
            try:
                detail = (await read_bytes_with_limit(response, 4096)).decode("utf-8", errors="replace")
            except (SizeLimitExceededError, httpx.HTTPError):
                pass
            raise UpstreamFailureError(f"HTTP {response.status_code}: {detail[:600]}")
        return await reader(response)
    finally:
        await response.aclose()


async def _send_bounded(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    reader: BodyReader[T],
    *,
    headers: Mapping[str, str],
    content: bytes | None = None,
    timeout_seconds: float | None = None,
) -> T:
    timeout_seconds = timeout_seconds or settings.tool_request_timeout_seconds
    try:
        request = client.build_request(method, url, headers=dict(headers), content=content)
    except httpx.InvalidURL as exc:
        logger.warning("outbound fetch invalid url url=%r error=%s", url, exc)
        raise UpstreamFailureError(f"invalid url: {exc}") from exc
    try:
        return await asyncio.wait_for(_read_success_body(client, request, reader), timeout=timeout_seconds)
    except asyncio.TimeoutError as exc:
        logger.warning("outbound fetch timed out url=%s timeout=%.1fs", request.url, timeout_seconds)
        raise UpstreamFailureError(f"request timed out after {timeout_seconds}s") from exc
    except httpx.HTTPError as exc:
        detail = (str(exc) or "").strip() or "connection_failed_or_timeout"
        logger.warning("outbound fetch http_error url=%s error=%s", request.url, detail)
        raise UpstreamFailureError(f"upstream_unreachable: {detail}") from exc


async def fetch_text(
    client: httpx.AsyncClient,
    url: str,
    *,
    headers: Mapping[str, str] | None = None,
    max_bytes: int | None = None,
    timeout_seconds: float | None = None,
) -> str:
    """GET *url* and return the body as UTF-8 text."""

    limit = max_bytes or settings.tool_max_response_bytes
    return await _send_bounded(
        client,
        "GET",
        url,
        lambda response: read_text_with_limit(response, limit),
        headers=headers or {},
        timeout_seconds=timeout_seconds,
    )


async def fetch_json(
    client: httpx.AsyncClient,
    url: str,
    payload: dict[str, Any],
    *,
    headers: Mapping[str, str] | None = None,
    max_bytes: int | None = None,
    timeout_seconds: float | None = None,
) -> Any:
    """POST *payload* as JSON and decode the JSON answer."""

    limit = max_bytes or settings.tool_max_response_bytes
    text = await _send_bounded(
        client,
        "POST",
        url,
        lambda response: read_text_with_limit(response, limit),
        headers={"Content-Type": "application/json", **dict(headers or {})},
        content=json.dumps(payload, ensure_ascii=False).encode("utf-8"),
        timeout_seconds=timeout_seconds,
    )
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise DecodeFailureError(f"response is not valid json: {exc}") from exc
