"""Classify inbound traffic into one upstream protocol and rewrite its path.

Order of the cascade (first match wins, path compared lower-cased):
  1. /api/provider/{anthropic|openai|google}   -> claude / codex / gemini
  2. any other /api/*                          -> internal passthrough
  3. /messages (not /chat/completions)         -> claude
  4. /chat/completions, /responses, */completions -> codex
  5. /v1beta, :generatecontent, :streamgeneratecontent -> gemini
  6. anthropic-version header                  -> claude
  7. body.model contains gemini / claude / gpt
  8. claude
"""

from __future__ import annotations

import json
from typing import Any, Mapping

from ampgate.core.models import ApiTarget
from ampgate.util.logger import logger

_PROVIDER_PREFIXES: tuple[tuple[str, ApiTarget], ...] = (
    ("/api/provider/anthropic", ApiTarget.CLAUDE),
    ("/api/provider/openai", ApiTarget.CODEX),
    ("/api/provider/google", ApiTarget.GEMINI),
)
_MODEL_HINTS: tuple[tuple[str, ApiTarget], ...] = (
    ("gemini", ApiTarget.GEMINI),
    ("claude", ApiTarget.CLAUDE),
    ("gpt", ApiTarget.CODEX),
)
_GEMINI_PUBLISHER_SEGMENT = "/v1beta1/publishers/google/models/"
_CLAUDE_VERSION_HEADER = "anthropic-version"
DEFAULT_GEMINI_MODEL = "gemini-2.0-flash"


def _body_model(body: bytes | None) -> str | None:
    if not body:
        return None
    try:
        payload: Any = json.loads(body)
    except (UnicodeDecodeError, json.JSONDecodeError):
        return None
    if not isinstance(payload, dict):
        return None
    model = payload.get("model")
    return model if isinstance(model, str) else None


def _target_from_model(body: bytes | None) -> ApiTarget | None:
    model = _body_model(body)
    if model is None:
        return None
    lowered = model.lower()
    for hint, target in _MODEL_HINTS:
        if hint in lowered:
            return target
    return None


def _has_header(headers: Mapping[str, str], name: str) -> bool:
    return any(key.lower() == name for key in headers.keys())


def classify(path: str, headers: Mapping[str, str], body: bytes | None = None) -> ApiTarget:
    """Return exactly one target; never raises."""

    lowered = path.lower()

    for prefix, target in _PROVIDER_PREFIXES:
        if lowered.startswith(prefix):
            return target
    if lowered.startswith("/api/"):
        return ApiTarget.INTERNAL

    if "/messages" in lowered and "/chat/completions" not in lowered:
        return ApiTarget.CLAUDE
    if "/chat/completions" in lowered or "/responses" in lowered or lowered.endswith("/completions"):
        return ApiTarget.CODEX
    if "/v1beta" in lowered or ":generatecontent" in lowered or ":streamgeneratecontent" in lowered:
        return ApiTarget.GEMINI

    if _has_header(headers, _CLAUDE_VERSION_HEADER):
        return ApiTarget.CLAUDE

    by_model = _target_from_model(body)
    if by_model is not None:
        logger.debug("route by body model path=%s target=%s", path, by_model.value)
        return by_model

    return ApiTarget.CLAUDE


def rewrite_path(path: str) -> str:
    """Map a gateway path onto the provider's own path.

    /api/provider/anthropic/v1/messages                        -> /v1/messages
    /v1beta1/publishers/google/models/m:generateContent        -> /v1beta/models/m:generateContent
    """
    pos = path.find(_GEMINI_PUBLISHER_SEGMENT)
    if pos >= 0:
        return f"/v1beta/models/{path[pos + len(_GEMINI_PUBLISHER_SEGMENT):]}"

    pos = path.find("/v1beta")
    if pos >= 0:
        return path[pos:]
    pos = path.find("/v1")
    if pos >= 0:
        return path[pos:]

    lowered = path.lower()
    for prefix, _ in _PROVIDER_PREFIXES:
        if lowered.startswith(prefix):
            rest = path[len(prefix):]
            if not rest:
                return "/"
            if rest.startswith("/"):
                return rest
    return path


def extract_model_name(path: str, body: bytes | None = None) -> str:
    """Model for the Gemini user-agent: /models/{m} in the path, then body.model."""

    pos = path.find("/models/")
    if pos >= 0:
        after = path[pos + len("/models/"):]
        ends = [end for end in (after.find(":"), after.find("/")) if end >= 0]
        return after[: min(ends)] if ends else after

    model = _body_model(body)
    if model is not None:
        return model
    return DEFAULT_GEMINI_MODEL
