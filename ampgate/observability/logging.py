"""One-line ``event=... key=value`` records for routing decisions."""

from __future__ import annotations

import logging

from ampgate.util.logger import logger


def format_fields(payload: dict[str, object]) -> str:
    return " ".join(f"{key}={value}" for key, value in payload.items())


def log_event(event: str, *, level: int = logging.INFO, **payload: object) -> None:
    if not logger.isEnabledFor(level):
        return
    logger.log(level, "event=%s %s", event, format_fields(payload))
