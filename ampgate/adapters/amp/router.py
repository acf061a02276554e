"""Catch-all HTTP entry: every path goes through the AmpProcessor."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack
from typing import AsyncGenerator, Mapping

import httpx
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse

from ampgate.config.settings import settings
from ampgate.core.errors import AmpGateError
from ampgate.core.local_tools import detect_local_tool
from ampgate.core.models import InboundRequest, OutboundRequest
from ampgate.transform.tool_names import strip_tool_name_prefix
from ampgate.util.logger import logger
from ampgate.util.masking import masked_headers

router = APIRouter()

_ALL_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS")
_HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "transfer-encoding",
    "upgrade",
}
# httpx 按实际 body 重新计算长度
_UPSTREAM_EXCLUDED_HEADERS = frozenset({"host", "content-length", "transfer-encoding"})
_DEBUG_REQUEST_BODY_MAX_CHARS = 32000


def _error_response(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"message": message, "type": "ampgate_error", "code": code}},
    )


def _tool_error_response(exc: AmpGateError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"ok": False, "error": {"code": exc.code, "message": str(exc)}},
    )


def _build_client_response_headers(headers: Mapping[str, str]) -> dict[str, str]:
    excluded = {"content-length", "content-encoding", *_HOP_BY_HOP_HEADERS}
    out: dict[str, str] = {}
    for key, value in headers.items():
        if key.lower() in excluded:
            continue
        out[key] = value
    return out


def _build_upstream_headers(headers: httpx.Headers) -> httpx.Headers:
    return httpx.Headers(
        [(key, value) for key, value in headers.multi_items() if key.lower() not in _UPSTREAM_EXCLUDED_HEADERS]
    )


async def _inbound_from_request(request: Request) -> InboundRequest:
    body = await request.body()
    return InboundRequest(
        path=request.url.path,
        query=request.url.query or None,
        headers=httpx.Headers(request.headers.raw),
        body=body,
    )


def _log_request_if_debug(request: Request, inbound: InboundRequest) -> None:
    if not logger.isEnabledFor(logging.DEBUG):
        return
    logger.debug(
        "amp request method=%s path=%s query=%s headers=%s body_size=%d",
        request.method,
        inbound.path,
        inbound.query,
        masked_headers(inbound.headers.multi_items()),
        len(inbound.body),
    )
    if settings.log_full_request_body:
        logger.debug("amp request body=%s", inbound.body.decode("utf-8", errors="replace")[:_DEBUG_REQUEST_BODY_MAX_CHARS])


def _local_tool_response(outbound: OutboundRequest) -> Response:
    return Response(
        content=outbound.body,
        status_code=200,
        media_type=outbound.headers.get("content-type", "application/json"),
    )


async def _relay(request: Request, outbound: OutboundRequest) -> Response:
    client: httpx.AsyncClient = request.app.state.upstream_client
    exit_stack = AsyncExitStack()
    try:
        upstream_response = await exit_stack.enter_async_context(
            client.stream(
                request.method,
                outbound.target_url,
                headers=_build_upstream_headers(outbound.headers),
                content=outbound.body,
            )
        )
    except httpx.HTTPError as exc:
        await exit_stack.aclose()
        detail = (str(exc) or "").strip() or "connection_failed_or_timeout"
        logger.warning("upstream unreachable target=%s error=%s", outbound.target_url, detail)
        return _error_response(502, "upstream_unreachable", f"upstream_unreachable: {detail}")

    response_headers = _build_client_response_headers(upstream_response.headers)
    content_type = upstream_response.headers.get("content-type", "").lower()
    is_sse = "text/event-stream" in content_type
    # 只还原本次请求里加过前缀的工具名
    prefixed_names = outbound.prefixed_tool_names
    strip_prefix = bool(prefixed_names)
    logger.info(
        "upstream responded target=%s url=%s status=%s sse=%s",
        outbound.target.value if outbound.target else "-",
        outbound.target_url,
        upstream_response.status_code,
        is_sse,
    )

    if strip_prefix and not is_sse:
        try:
            body = await upstream_response.aread()
        except httpx.HTTPError as exc:
            detail = (str(exc) or "").strip() or "connection_failed_or_timeout"
            logger.warning("upstream read failed target=%s error=%s", outbound.target_url, detail)
            return _error_response(502, "upstream_unreachable", f"upstream_unreachable: {detail}")
        finally:
            await exit_stack.aclose()
        return Response(
            content=strip_tool_name_prefix(body, prefixed_names),
            status_code=upstream_response.status_code,
            headers=response_headers,
        )

    async def _iter_body() -> AsyncGenerator[bytes, None]:
        try:
            if strip_prefix:
                async for line in upstream_response.aiter_lines():
                    yield strip_tool_name_prefix(f"{line}\n".encode("utf-8"), prefixed_names)
            else:
                async for chunk in upstream_response.aiter_bytes():
                    if chunk:
                        yield chunk
        except httpx.HTTPError as exc:
            detail = (str(exc) or "").strip() or "connection_failed_or_timeout"
            logger.warning("upstream stream interrupted target=%s error=%s", outbound.target_url, detail)
        finally:
            await exit_stack.aclose()

    return StreamingResponse(
        _iter_body(),
        status_code=upstream_response.status_code,
        headers=response_headers,
    )


@router.api_route("/", methods=list(_ALL_METHODS))
@router.api_route("/{proxy_path:path}", methods=list(_ALL_METHODS))
async def proxy_amp(request: Request, proxy_path: str = "") -> Response:
    del proxy_path

    inbound = await _inbound_from_request(request)
    _log_request_if_debug(request, inbound)

    try:
        outbound = await request.app.state.processor.process(inbound)
    except AmpGateError as exc:
        if detect_local_tool(inbound.query) is not None:
            logger.warning("local tool failed path=%s code=%s error=%s", inbound.path, exc.code, exc)
            return _tool_error_response(exc)
        logger.warning("amp request rejected path=%s code=%s error=%s", inbound.path, exc.code, exc)
        return _error_response(exc.status_code, exc.code, str(exc))

    if outbound.is_local:
        return _local_tool_response(outbound)
    return await _relay(request, outbound)
