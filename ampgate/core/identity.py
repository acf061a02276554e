"""Deterministic user and session identifiers for Claude-style metadata.user_id."""

from __future__ import annotations

import hashlib
import uuid
from typing import Any

_SESSION_MESSAGE_WINDOW = 3


def fingerprint(api_key: str, user_agent: str | None) -> str:
    """64 hex chars: SHA-256 over the full credential and the caller's user-agent.

    The full key is hashed so callers sharing a user-agent never collide.
    """
    ua = user_agent or "unknown"
    return hashlib.sha256(f"{api_key}:{ua}".encode("utf-8")).hexdigest()


def _message_text(message: Any) -> str | None:
    if not isinstance(message, dict):
        return None
    content = message.get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            item["text"]
            for item in content
            if isinstance(item, dict) and item.get("type") == "text" and isinstance(item.get("text"), str)
        )
    return None


def session_token(messages: Any) -> str:
    """UUID-shaped token stable for the same first three messages.

    Requests without any text get a fresh uuid4 so they do not share one session.
    """
    parts: list[str] = []
    if isinstance(messages, list):
        for message in messages[:_SESSION_MESSAGE_WINDOW]:
            text = _message_text(message)
            if text is not None:
                parts.append(text)

    content = "|".join(parts)
    if not content:
        return str(uuid.uuid4())

    digest = hashlib.sha256(content.encode("utf-8")).hexdigest()
    return f"{digest[0:8]}-{digest[8:12]}-{digest[12:16]}-{digest[16:20]}-{digest[20:32]}"


def build_user_id(user_hash: str, session: str) -> str:
    return f"user_{user_hash}_account__session_{session}"
