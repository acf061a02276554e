"""Claude-style request body rewriting.

Steps, on one parsed copy of the body:
- system text: brand names replaced, preamble placed first
- cache_control on system blocks, tools and message content set to ephemeral/5m
- tool names namespaced with ``mcp_``
- metadata.user_id injected (only when missing) with the canonical key order

Models whose name contains ``haiku`` are forwarded untouched. Any decode
problem returns the original bytes.
"""

from __future__ import annotations

import json
import re
from typing import Any, NamedTuple

from ampgate.core.identity import build_user_id, fingerprint, session_token
from ampgate.transform.tool_names import prefix_tool_names
from ampgate.util.logger import logger

CLAUDE_CODE_PREAMBLE = "You are Claude Code, Anthropic's official CLI for Claude."
CANONICAL_BRAND = "Claude Code"

# 单词边界，避免误伤 "example" 里的 "amp"
_BRAND_RE = re.compile(r"\b(?:opencode|amp(?:-?code)?)\b", re.IGNORECASE)

CANONICAL_FIELD_ORDER = (
    "model",
    "system",
    "messages",
    "tools",
    "metadata",
    "max_tokens",
    "temperature",
    "top_p",
    "top_k",
    "thinking",
    "stream",
)


def dump_compact(payload: Any) -> bytes:
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


def sanitize_brand_text(text: str) -> str:
    return _BRAND_RE.sub(CANONICAL_BRAND, text)


def normalize_cache_control(item: Any) -> None:
    if isinstance(item, dict) and "cache_control" in item:
        item["cache_control"] = {"type": "ephemeral", "ttl": "5m"}


def ensure_system_preamble(payload: dict[str, Any]) -> None:
    """Sanitize system text and put the preamble in front of it."""

    if "system" not in payload:
        payload["system"] = [{"type": "text", "text": CLAUDE_CODE_PREAMBLE}]
        return

    system = payload["system"]
    if isinstance(system, list):
        for block in system:
            normalize_cache_control(block)
            if isinstance(block, dict) and block.get("type") == "text" and isinstance(block.get("text"), str):
                block["text"] = sanitize_brand_text(block["text"])
        first = system[0] if system else None
        already_first = (
            isinstance(first, dict) and first.get("type") == "text" and first.get("text") == CLAUDE_CODE_PREAMBLE
        )
        if not already_first:
            system.insert(0, {"type": "text", "text": CLAUDE_CODE_PREAMBLE})
    elif isinstance(system, str):
        cleaned = sanitize_brand_text(system)
        payload["system"] = cleaned if cleaned.startswith(CLAUDE_CODE_PREAMBLE) else f"{CLAUDE_CODE_PREAMBLE}\n{cleaned}"


def _normalize_tool_and_message_cache_control(payload: dict[str, Any]) -> None:
    tools = payload.get("tools")
    if isinstance(tools, list):
        for tool in tools:
            normalize_cache_control(tool)
    messages = payload.get("messages")
    if isinstance(messages, list):
        for message in messages:
            content = message.get("content") if isinstance(message, dict) else None
            if isinstance(content, list):
                for item in content:
                    normalize_cache_control(item)


def has_user_id(payload: dict[str, Any]) -> bool:
    metadata = payload.get("metadata")
    if not isinstance(metadata, dict):
        return False
    user_id = metadata.get("user_id")
    return isinstance(user_id, str) and bool(user_id)


def inject_user_id(payload: dict[str, Any], user_id: str) -> dict[str, Any]:
    """Return a new dict in canonical key order with metadata.user_id set.

    Unknown keys follow the known ones in their original relative order.
    """
    ordered: dict[str, Any] = {}
    for key in CANONICAL_FIELD_ORDER:
        if key == "metadata":
            existing = payload.get("metadata")
            metadata = dict(existing) if isinstance(existing, dict) else {}
            metadata["user_id"] = user_id
            ordered["metadata"] = metadata
        elif key in payload:
            ordered[key] = payload[key]
    for key, value in payload.items():
        if key not in ordered:
            ordered[key] = value
    return ordered


def is_haiku_model(payload: dict[str, Any]) -> bool:
    model = payload.get("model")
    return isinstance(model, str) and "haiku" in model.lower()


class ClaudeBody(NamedTuple):
    body: bytes
    # 本次请求里被加上 mcp_ 的原始工具名，响应侧只还原这些
    prefixed_names: frozenset[str] = frozenset()


def transform_claude_body(body: bytes, api_key: str, user_agent: str | None) -> ClaudeBody:
    unchanged = ClaudeBody(body)
    if not body:
        return unchanged
    try:
        payload = json.loads(body)
    except (UnicodeDecodeError, json.JSONDecodeError):
        logger.debug("claude body is not json, forwarded as-is size=%d", len(body))
        return unchanged
    if not isinstance(payload, dict):
        return unchanged
    if is_haiku_model(payload):
        return unchanged

    ensure_system_preamble(payload)
    _normalize_tool_and_message_cache_control(payload)
    prefixed_names = prefix_tool_names(payload)

    if not has_user_id(payload):
        user_id = build_user_id(fingerprint(api_key, user_agent), session_token(payload.get("messages")))
        logger.debug("generated claude user_id session=%s", user_id.rsplit("_", 1)[-1])
        payload = inject_user_id(payload, user_id)

    try:
        return ClaudeBody(dump_compact(payload), prefixed_names)
    except (TypeError, ValueError):
        return unchanged
