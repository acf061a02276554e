"""Turns one InboundRequest into one OutboundRequest.

local tool -> answered here, target ``dc-local://{tool}``
internal   -> passthrough to the internal API with the internal token
llm        -> protocol adapter for the classified target
"""

from __future__ import annotations

from typing import Mapping

import httpx

from ampgate.adapters.providers.base import ProtocolAdapter, copy_forward_headers, join_url
from ampgate.adapters.providers.claude import ClaudeAdapter
from ampgate.adapters.providers.codex import CodexAdapter
from ampgate.adapters.providers.gemini import GeminiAdapter
from ampgate.config.profiles import ProfileResolver, ProviderProfile
from ampgate.config.settings import settings
from ampgate.core.local_tools import LocalToolExecutor, detect_local_tool
from ampgate.core.models import ApiTarget, InboundRequest, OutboundRequest
from ampgate.core.router import classify
from ampgate.observability.logging import log_event
from ampgate.util.logger import logger
from ampgate.util.masking import masked_headers


def default_adapters() -> dict[ApiTarget, ProtocolAdapter]:
    return {
        ApiTarget.CLAUDE: ClaudeAdapter(),
        ApiTarget.CODEX: CodexAdapter(),
        ApiTarget.GEMINI: GeminiAdapter(),
    }


def build_passthrough_request(inbound: InboundRequest, profile: ProviderProfile) -> OutboundRequest:
    headers = copy_forward_headers(inbound.headers)
    headers["authorization"] = f"Bearer {profile.api_key}"
    headers["x-api-key"] = profile.api_key
    base_url = profile.base_url.strip() or settings.internal_base_url
    return OutboundRequest(
        target_url=join_url(base_url, inbound.path, inbound.query),
        headers=headers,
        body=inbound.body,
        target=ApiTarget.INTERNAL,
    )


class AmpProcessor:
    def __init__(
        self,
        resolver: ProfileResolver,
        tool_client: httpx.AsyncClient,
        adapters: Mapping[ApiTarget, ProtocolAdapter] | None = None,
    ) -> None:
        self._resolver = resolver
        self._tools = LocalToolExecutor(tool_client)
        self._adapters = dict(adapters) if adapters is not None else default_adapters()

    async def process(self, inbound: InboundRequest) -> OutboundRequest:
        tool_name = detect_local_tool(inbound.query)
        if tool_name is not None:
            log_event("local_tool", tool=tool_name, path=inbound.path)
            selection = self._resolver.resolve()
            return await self._tools.run(tool_name, inbound.body, selection.search_api_key)

        target = classify(inbound.path, inbound.headers, inbound.body)
        log_event("route", path=inbound.path, target=target.value, body_size=len(inbound.body))
        profile = self._resolver.resolve().require(target)

        if target is ApiTarget.INTERNAL:
            outbound = build_passthrough_request(inbound, profile)
        else:
            outbound = self._adapters[target].assemble(inbound, profile)

        logger.debug(
            "outbound assembled target=%s url=%s headers=%s body_size=%d",
            target.value,
            outbound.target_url,
            masked_headers(outbound.headers.multi_items()),
            len(outbound.body),
        )
        if settings.log_full_request_body:
            logger.debug("outbound body=%s", outbound.body.decode("utf-8", errors="replace"))
        return outbound
