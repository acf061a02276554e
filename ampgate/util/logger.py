"""Process-wide ``ampgate`` logger: stderr plus a rotating file when the log dir is writable."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from ampgate.config.settings import settings

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_LEVELS = {
    "critical": logging.CRITICAL,
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "warn": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}


def resolve_level(raw: str | None) -> int:
    return _LEVELS.get(str(raw or "").strip().lower(), logging.INFO)


def _file_handler() -> RotatingFileHandler | None:
    if not settings.log_dir.strip():
        return None
    log_dir = Path(settings.log_dir)
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        return RotatingFileHandler(
            log_dir / "ampgate.log",
            maxBytes=settings.log_max_bytes,
            backupCount=settings.log_backup_count,
            encoding="utf-8",
        )
    except OSError:
        # 目录不可写（只读容器等）时退回只写 stderr
        return None


def configure_logger(name: str = "ampgate") -> logging.Logger:
    target = logging.getLogger(name)
    if target.handlers:
        return target

    level = resolve_level(settings.log_level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    file_handler = _file_handler()
    if file_handler is not None:
        handlers.append(file_handler)
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        target.addHandler(handler)

    target.setLevel(level)
    target.propagate = False
    return target


logger = configure_logger()
