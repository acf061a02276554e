"""Codex-style (responses API) request body rewriting."""

from __future__ import annotations

import json
from typing import Any

from ampgate.transform.claude_body import dump_compact
from ampgate.util.logger import logger

_DROPPED_FIELD = "max_output_tokens"


def _system_items(input_items: Any) -> list[dict[str, Any]]:
    if not isinstance(input_items, list):
        return []
    return [item for item in input_items if isinstance(item, dict) and item.get("role") == "system"]


def transform_codex_body(body: bytes) -> bytes:
    """Drop max_output_tokens and lift input[] system content into ``instructions``.

    Returns the very same bytes object when nothing had to change.
    """
    if not body:
        return body
    try:
        payload = json.loads(body)
    except (UnicodeDecodeError, json.JSONDecodeError):
        return body
    if not isinstance(payload, dict):
        return body

    modified = False
    if _DROPPED_FIELD in payload:
        del payload[_DROPPED_FIELD]
        modified = True

    system_items = _system_items(payload.get("input"))
    if system_items:
        instructions = "\n\n".join(item["content"] for item in system_items if isinstance(item.get("content"), str))
        ordered: dict[str, Any] = {}
        if "model" in payload:
            ordered["model"] = payload["model"]
        ordered["instructions"] = instructions
        for key, value in payload.items():
            if key not in ("model", "instructions"):
                ordered[key] = value
        payload = ordered
        modified = True
        logger.debug("codex instructions lifted from %d system input items", len(system_items))

    if not modified:
        return body
    return dump_compact(payload)
