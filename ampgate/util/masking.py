"""Credential masking for log output."""

from __future__ import annotations

from collections.abc import Iterable

_SENSITIVE_HEADER_NAMES = frozenset({"authorization", "proxy-authorization", "cookie", "set-cookie"})
_SENSITIVE_NAME_PARTS = ("key", "token", "secret")
_AUTH_SCHEMES = ("bearer ", "basic ")


def mask_for_log(value: str) -> str:
    """Keep a few edge characters so two credentials can be told apart in logs.

    ``sk-ant-0123456789`` -> ``sk-************89``; values of four chars or
    less keep only their first and last char.
    """
    normalized = " ".join(value.split())
    length = len(normalized)
    if length <= 1:
        return "*" * length
    if length <= 4:
        return f"{normalized[0]}{'*' * (length - 2)}{normalized[-1]}"
    head = 3 if length >= 10 else 2
    hidden = max(1, length - head - 2)
    return f"{normalized[:head]}{'*' * hidden}{normalized[-2:]}"


def mask_credential(value: str) -> str:
    """Mask a header value, keeping an auth scheme such as ``Bearer`` readable."""

    lowered = value.lower()
    for scheme in _AUTH_SCHEMES:
        if lowered.startswith(scheme):
            return f"{value[: len(scheme)]}{mask_for_log(value[len(scheme):])}"
    return mask_for_log(value)


def is_sensitive_header(name: str) -> bool:
    lowered = name.lower()
    return lowered in _SENSITIVE_HEADER_NAMES or any(part in lowered for part in _SENSITIVE_NAME_PARTS)


def masked_headers(items: Iterable[tuple[str, str]]) -> dict[str, str]:
    """Flatten header pairs for a log line, masking credential-bearing values."""

    return {key: mask_credential(value) if is_sensitive_header(key) else value for key, value in items}
