"""mcp_ namespacing of tool names, request side and response side."""

from __future__ import annotations

import re
from collections.abc import Collection
from typing import Any

TOOL_NAME_PREFIX = "mcp_"

_PREFIXED_NAME_RE = re.compile(r'"name"\s*:\s*"mcp_([^"]+)"')


def _prefixed(name: Any, added: set[str]) -> Any:
    if isinstance(name, str) and not name.startswith(TOOL_NAME_PREFIX):
        added.add(name)
        return f"{TOOL_NAME_PREFIX}{name}"
    return name


def prefix_tool_names(payload: dict[str, Any]) -> frozenset[str]:
    """Prefix tools[].name and tool_use content names in place.

    Names that already carry the prefix are left alone. Returns the original
    names that were actually prefixed, which is exactly what the response side
    may rename back.
    """
    added: set[str] = set()
    tools = payload.get("tools")
    if isinstance(tools, list):
        for tool in tools:
            if isinstance(tool, dict) and "name" in tool:
                tool["name"] = _prefixed(tool["name"], added)

    messages = payload.get("messages")
    if isinstance(messages, list):
        for message in messages:
            content = message.get("content") if isinstance(message, dict) else None
            if not isinstance(content, list):
                continue
            for item in content:
                if isinstance(item, dict) and item.get("type") == "tool_use" and "name" in item:
                    item["name"] = _prefixed(item["name"], added)
    return frozenset(added)


def strip_tool_name_prefix(data: bytes, names: Collection[str]) -> bytes:
    """Undo the namespacing for *names* in an upstream response.

    A ``"name": "mcp_X"`` whose X was not prefixed by this gateway belongs to
    the client and stays as it is.
    """
    if not names or b"mcp_" not in data:
        return data

    def _restore(match: re.Match[str]) -> str:
        if match.group(1) in names:
            return f'"name": "{match.group(1)}"'
        return match.group(0)

    text = data.decode("utf-8", errors="replace")
    return _PREFIXED_NAME_RE.sub(_restore, text).encode("utf-8")
