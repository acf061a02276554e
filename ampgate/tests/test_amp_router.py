import json
from types import SimpleNamespace

import httpx
import pytest
from starlette.requests import Request

from ampgate.adapters.amp import router as amp_router
from ampgate.config.profiles import ProfileSelection, ProviderProfile, StaticProfileResolver
from ampgate.core.processor import AmpProcessor


def _build_request(
    *,
    app,
    path: str = "/v1/messages",
    method: str = "POST",
    query_string: str = "",
    headers: dict[str, str] | None = None,
    body: bytes = b"",
) -> Request:
    raw_headers = [(k.lower().encode("latin-1"), v.encode("latin-1")) for k, v in (headers or {}).items()]
    scope = {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": method,
        "scheme": "http",
        "path": path,
        "raw_path": path.encode("latin-1"),
        "query_string": query_string.encode("latin-1"),
        "headers": raw_headers,
        "client": ("127.0.0.1", 54321),
        "server": ("testserver", 80),
        "app": app,
    }
    sent = False

    async def receive() -> dict:
        nonlocal sent
        if sent:
            return {"type": "http.request", "body": b"", "more_body": False}
        sent = True
        return {"type": "http.request", "body": body, "more_body": False}

    return Request(scope, receive)


def _app(handler, selection: ProfileSelection | None = None):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    selection = selection or ProfileSelection(
        claude=ProviderProfile(base_url="https://claude.example.com", api_key="sk-claude"),
        codex=ProviderProfile(base_url="https://codex.example.com", api_key="sk-codex"),
    )
    state = SimpleNamespace(
        upstream_client=client,
        tool_client=client,
        processor=AmpProcessor(StaticProfileResolver(selection), client),
    )
    return SimpleNamespace(state=state), client


async def _read_streaming(response) -> bytes:
    return b"".join([chunk async for chunk in response.body_iterator])


@pytest.mark.asyncio
async def test_claude_response_tool_names_are_restored():
    captured: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={"content": [{"type": "tool_use", "name": "mcp_Bash", "input": {}}]},
        )

    app, client = _app(handler)
    body = json.dumps(
        {"model": "claude-sonnet-4", "tools": [{"name": "Bash"}], "messages": [{"role": "user", "content": "ls"}]}
    ).encode()
    request = _build_request(app=app, headers={"content-type": "application/json"}, body=body)
    try:
        response = await amp_router.proxy_amp(request)
    finally:
        await client.aclose()

    assert response.status_code == 200
    assert captured["url"] == "https://claude.example.com/v1/messages?beta=true"
    assert captured["body"]["tools"][0]["name"] == "mcp_Bash"
    assert json.loads(response.body)["content"][0]["name"] == "Bash"


@pytest.mark.asyncio
async def test_claude_sse_stream_is_relayed_line_by_line():
    sse = (
        b'event: content_block_start\n'
        b'data: {"type":"content_block_start","content_block":{"type":"tool_use","name":"mcp_Read"}}\n'
        b"\n"
    )

    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=sse, headers={"content-type": "text/event-stream"})

    app, client = _app(handler)
    request = _build_request(
        app=app, body=b'{"model":"claude-x","stream":true,"tools":[{"name":"Read"}],"messages":[]}'
    )
    try:
        response = await amp_router.proxy_amp(request)
        payload = await _read_streaming(response)
    finally:
        await client.aclose()

    assert response.status_code == 200
    assert b'"name": "Read"' in payload
    assert b"mcp_" not in payload
    assert payload.startswith(b"event: content_block_start\n")


@pytest.mark.asyncio
async def test_codex_response_is_streamed_unchanged():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["authorization"] == "Bearer sk-codex"
        return httpx.Response(201, content=b'{"name":"mcp_keep"}', headers={"x-request-id": "r1"})

    app, client = _app(handler)
    request = _build_request(app=app, path="/v1/responses", body=b'{"model":"gpt-5","input":"hi"}')
    try:
        response = await amp_router.proxy_amp(request)
        payload = await _read_streaming(response)
    finally:
        await client.aclose()

    assert response.status_code == 201
    assert payload == b'{"name":"mcp_keep"}'
    assert response.headers["x-request-id"] == "r1"


@pytest.mark.asyncio
async def test_local_tool_failure_is_reported_as_tool_error():
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(str(request.url))
        return httpx.Response(200)

    app, client = _app(handler)
    request = _build_request(
        app=app,
        path="/api/internal",
        query_string="extractWebPageContent",
        body=b'{"params":{"url":"http://10.0.0.5/"}}',
    )
    try:
        response = await amp_router.proxy_amp(request)
    finally:
        await client.aclose()

    assert response.status_code == 403
    payload = json.loads(response.body)
    assert payload["ok"] is False
    assert payload["error"]["code"] == "security_rejected"
    assert calls == []


@pytest.mark.asyncio
async def test_local_tool_success_is_answered_directly():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"<p>page</p>")

    app, client = _app(handler)
    request = _build_request(
        app=app,
        path="/api/internal",
        query_string="extractWebPageContent",
        body=b'{"params":{"url":"https://example.com/"}}',
    )
    try:
        response = await amp_router.proxy_amp(request)
    finally:
        await client.aclose()

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/json")
    assert json.loads(response.body)["result"]["fullContent"] == "<p>page</p>"


@pytest.mark.asyncio
async def test_missing_configuration_uses_error_envelope():
    app, client = _app(lambda _r: httpx.Response(200), ProfileSelection())
    request = _build_request(app=app, path="/v1beta/models/m:generateContent", body=b"{}")
    try:
        response = await amp_router.proxy_amp(request)
    finally:
        await client.aclose()

    assert response.status_code == 503
    payload = json.loads(response.body)
    assert payload["error"]["code"] == "configuration_missing"
    assert payload["error"]["type"] == "ampgate_error"


@pytest.mark.asyncio
async def test_unreachable_upstream_returns_502():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    app, client = _app(handler)
    request = _build_request(app=app, body=b'{"model":"claude-x","messages":[]}')
    try:
        response = await amp_router.proxy_amp(request)
    finally:
        await client.aclose()

    assert response.status_code == 502
    assert json.loads(response.body)["error"]["code"] == "upstream_unreachable"


@pytest.mark.asyncio
async def test_unbuildable_page_url_is_reported_as_tool_error():
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(str(request.url))
        return httpx.Response(200)

    app, client = _app(handler)
    request = _build_request(
        app=app,
        path="/api/internal",
        query_string="extractWebPageContent",
        body=b'{"params":{"url":"http://example.com/\\u0000"}}',
    )
    try:
        response = await amp_router.proxy_amp(request)
    finally:
        await client.aclose()

    assert response.status_code == 403
    payload = json.loads(response.body)
    assert payload["ok"] is False
    assert payload["error"]["code"] == "security_rejected"
    assert calls == []


@pytest.mark.asyncio
async def test_client_prefixed_tool_name_is_not_restored():
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={"content": [{"type": "tool_use", "name": "mcp_Read"}, {"type": "tool_use", "name": "mcp_Bash"}]},
        )

    app, client = _app(handler)
    body = json.dumps(
        {"model": "claude-x", "tools": [{"name": "mcp_Read"}, {"name": "Bash"}], "messages": []}
    ).encode()
    request = _build_request(app=app, body=body)
    try:
        response = await amp_router.proxy_amp(request)
    finally:
        await client.aclose()

    names = [item["name"] for item in json.loads(response.body)["content"]]
    assert names == ["mcp_Read", "Bash"]


@pytest.mark.asyncio
async def test_claude_response_without_prefixed_tools_is_streamed_unchanged():
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b'{"name":"mcp_own"}')

    app, client = _app(handler)
    request = _build_request(app=app, body=b'{"model":"claude-x","messages":[]}')
    try:
        response = await amp_router.proxy_amp(request)
        payload = await _read_streaming(response)
    finally:
        await client.aclose()

    assert payload == b'{"name":"mcp_own"}'
