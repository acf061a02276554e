"""Gemini-style (generateContent) adapter. The body is forwarded as received."""

from __future__ import annotations

import httpx

from ampgate.adapters.providers.base import ProtocolAdapter
from ampgate.config.profiles import ProviderProfile
from ampgate.core.models import ApiTarget, InboundRequest
from ampgate.core.router import extract_model_name


def gemini_cli_user_agent(model: str) -> str:
    return f"GeminiCLI/0.22.5/{model} (darwin; arm64)"


class GeminiAdapter(ProtocolAdapter):
    target = ApiTarget.GEMINI

    def apply_credentials(self, headers: httpx.Headers, profile: ProviderProfile) -> None:
        headers.pop("authorization", None)
        headers.pop("x-api-key", None)
        headers["x-goog-api-key"] = profile.api_key

    def user_agent(self, inbound: InboundRequest) -> str:
        return gemini_cli_user_agent(extract_model_name(inbound.path, inbound.body))
