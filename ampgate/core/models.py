"""Request models shared by the router, the adapters and the local tools."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

import httpx

LOCAL_TARGET_SCHEME = "dc-local://"


class ApiTarget(str, Enum):
    INTERNAL = "internal"
    CLAUDE = "claude"
    CODEX = "codex"
    GEMINI = "gemini"


@dataclass(frozen=True, slots=True)
class InboundRequest:
    path: str
    query: str | None = None
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    body: bytes = b""

    def __post_init__(self) -> None:
        if not isinstance(self.headers, httpx.Headers):
            object.__setattr__(self, "headers", httpx.Headers(self.headers))
        if not self.query:
            object.__setattr__(self, "query", None)

    @property
    def user_agent(self) -> str:
        return self.headers.get("user-agent", "")


@dataclass(slots=True)
class OutboundRequest:
    target_url: str
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    body: bytes = b""
    target: ApiTarget | None = None
    # 响应侧需要去掉 mcp_ 前缀的工具名（仅 Claude）
    prefixed_tool_names: frozenset[str] = frozenset()

    @property
    def is_local(self) -> bool:
        return self.target_url.startswith(LOCAL_TARGET_SCHEME)
