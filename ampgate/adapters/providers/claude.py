"""Claude-style (Anthropic messages API) adapter."""

from __future__ import annotations

import httpx

from ampgate.adapters.providers.base import ProtocolAdapter
from ampgate.config.profiles import ProviderProfile
from ampgate.core.models import ApiTarget, InboundRequest, OutboundRequest
from ampgate.core.router import rewrite_path
from ampgate.transform.claude_body import transform_claude_body

CLAUDE_CLI_USER_AGENT = "claude-cli/2.1.2 (external, cli)"
DEFAULT_ANTHROPIC_VERSION = "2023-06-01"
REQUIRED_BETAS = ("oauth-2025-04-20", "interleaved-thinking-2025-05-14")


def merge_betas(existing: str | None) -> str:
    betas = {item.strip() for item in (existing or "").split(",") if item.strip()}
    betas.update(REQUIRED_BETAS)
    return ",".join(sorted(betas))


def ensure_beta_flag(url: str) -> str:
    if "beta=true" in url:
        return url
    return f"{url}&beta=true" if "?" in url else f"{url}?beta=true"


class ClaudeAdapter(ProtocolAdapter):
    target = ApiTarget.CLAUDE

    def assemble(self, inbound: InboundRequest, profile: ProviderProfile) -> OutboundRequest:
        rewritten = transform_claude_body(inbound.body, profile.api_key, inbound.headers.get("user-agent"))
        outbound = self.build_base_request(inbound, profile, rewrite_path(inbound.path), rewritten.body)
        outbound.prefixed_tool_names = rewritten.prefixed_names
        return self.finalize(outbound, inbound, body_changed=rewritten.body != inbound.body)

    def apply_credentials(self, headers: httpx.Headers, profile: ProviderProfile) -> None:
        headers.pop("authorization", None)
        headers["x-api-key"] = profile.api_key
        if "anthropic-version" not in headers:
            headers["anthropic-version"] = DEFAULT_ANTHROPIC_VERSION

    def user_agent(self, inbound: InboundRequest) -> str:
        return CLAUDE_CLI_USER_AGENT

    def finalize(self, outbound: OutboundRequest, inbound: InboundRequest, body_changed: bool) -> OutboundRequest:
        outbound = super().finalize(outbound, inbound, body_changed)
        outbound.headers["x-app"] = "cli"
        # 多个 anthropic-beta 头先合并成一个
        outbound.headers["anthropic-beta"] = merge_betas(",".join(outbound.headers.get_list("anthropic-beta")))
        outbound.target_url = ensure_beta_flag(outbound.target_url)
        return outbound
