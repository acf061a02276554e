"""Codex-style (OpenAI responses / chat completions) adapter."""

from __future__ import annotations

import httpx

from ampgate.adapters.providers.base import ProtocolAdapter
from ampgate.config.profiles import ProviderProfile
from ampgate.core.models import ApiTarget, InboundRequest
from ampgate.transform.codex_body import transform_codex_body

CODEX_CLI_USER_AGENT = "codex_cli_rs/0.77.0 (Mac OS 15.7.2; arm64) Apple_Terminal/455.1"


class CodexAdapter(ProtocolAdapter):
    target = ApiTarget.CODEX

    def transform_body(self, inbound: InboundRequest, profile: ProviderProfile) -> bytes:
        return transform_codex_body(inbound.body)

    def apply_credentials(self, headers: httpx.Headers, profile: ProviderProfile) -> None:
        headers.pop("x-api-key", None)
        headers["authorization"] = f"Bearer {profile.api_key}"

    def user_agent(self, inbound: InboundRequest) -> str:
        return CODEX_CLI_USER_AGENT
