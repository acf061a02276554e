"""Protocol adapter contract.

One adapter per upstream protocol. ``assemble`` runs the same three steps for
all of them: rewrite the body, build the provider request, apply the
gateway-wide header fix-ups.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Mapping

import httpx

from ampgate.config.profiles import ProviderProfile
from ampgate.core.models import ApiTarget, InboundRequest, OutboundRequest
from ampgate.core.router import rewrite_path

# content-length / transfer-encoding 保留到 finalize，由 body 是否改写决定去留
_CONNECTION_HEADERS = frozenset(
    {
        "host",
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "proxy-connection",
        "te",
        "trailer",
        "upgrade",
    }
)
GATEWAY_HEADER_PREFIX = "x-amp-"
_BODY_LENGTH_HEADERS = ("content-length", "transfer-encoding")


def copy_forward_headers(headers: Mapping[str, str] | httpx.Headers) -> httpx.Headers:
    source = headers if isinstance(headers, httpx.Headers) else httpx.Headers(headers)
    return httpx.Headers([(key, value) for key, value in source.multi_items() if key.lower() not in _CONNECTION_HEADERS])


def join_url(base_url: str, path: str, query: str | None) -> str:
    url = f"{base_url.rstrip('/')}{path}"
    if query:
        url = f"{url}?{query}"
    return url


def drop_headers(headers: httpx.Headers, names: tuple[str, ...]) -> None:
    for name in names:
        headers.pop(name, None)


class ProtocolAdapter(ABC):
    target: ApiTarget

    def transform_body(self, inbound: InboundRequest, profile: ProviderProfile) -> bytes:
        return inbound.body

    @abstractmethod
    def apply_credentials(self, headers: httpx.Headers, profile: ProviderProfile) -> None:
        """Set the provider credential on the outbound headers."""

    @abstractmethod
    def user_agent(self, inbound: InboundRequest) -> str:
        """Synthetic user-agent presented to the provider."""

    def build_base_request(
        self,
        inbound: InboundRequest,
        profile: ProviderProfile,
        path: str,
        body: bytes,
    ) -> OutboundRequest:
        headers = copy_forward_headers(inbound.headers)
        self.apply_credentials(headers, profile)
        return OutboundRequest(
            target_url=join_url(profile.base_url, path, inbound.query),
            headers=headers,
            body=body,
            target=self.target,
        )

    def finalize(self, outbound: OutboundRequest, inbound: InboundRequest, body_changed: bool) -> OutboundRequest:
        for key in [key for key in outbound.headers.keys() if key.lower().startswith(GATEWAY_HEADER_PREFIX)]:
            del outbound.headers[key]
        if body_changed:
            drop_headers(outbound.headers, _BODY_LENGTH_HEADERS)
        outbound.headers["user-agent"] = self.user_agent(inbound)
        return outbound

    def assemble(self, inbound: InboundRequest, profile: ProviderProfile) -> OutboundRequest:
        body = self.transform_body(inbound, profile)
        outbound = self.build_base_request(inbound, profile, rewrite_path(inbound.path), body)
        return self.finalize(outbound, inbound, body_changed=body != inbound.body)
