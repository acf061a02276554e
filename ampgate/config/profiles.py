"""Provider profile loading with an mtime-based cache.

profiles.yaml layout::

    internal:
      base_url: https://ampcode.com
      api_key: <internal access token>
    search_api_key: <search provider key>
    profiles:
      claude: {base_url: https://api.anthropic.com, api_key: ...}
      codex:  {base_url: https://api.openai.com, api_key: ...}
      gemini: {base_url: https://generativelanguage.googleapis.com, api_key: ...}

Any section may be omitted; each protocol is resolved independently.
"""

from __future__ import annotations

from pathlib import Path
from threading import Lock
from typing import Any, Protocol

import yaml
from pydantic import BaseModel, ValidationError

from ampgate.config.settings import settings
from ampgate.core.errors import ConfigurationMissingError
from ampgate.core.models import ApiTarget
from ampgate.util.logger import logger


class ProviderProfile(BaseModel):
    base_url: str = ""
    api_key: str = ""


class ProfileSelection(BaseModel):
    claude: ProviderProfile | None = None
    codex: ProviderProfile | None = None
    gemini: ProviderProfile | None = None
    internal: ProviderProfile | None = None
    search_api_key: str | None = None

    def require(self, target: ApiTarget) -> ProviderProfile:
        """Return the profile for *target* or raise before any outbound work starts."""

        profile = getattr(self, target.value, None)
        if profile is None:
            raise ConfigurationMissingError(f"{target.value} profile is not configured")
        if target is not ApiTarget.INTERNAL and not profile.base_url.strip():
            raise ConfigurationMissingError(f"{target.value} base_url is not configured")
        if not profile.api_key.strip():
            raise ConfigurationMissingError(f"{target.value} credential is not configured")
        return profile


class ProfileResolver(Protocol):
    def resolve(self) -> ProfileSelection: ...


class StaticProfileResolver:
    def __init__(self, selection: ProfileSelection) -> None:
        self._selection = selection

    def resolve(self) -> ProfileSelection:
        return self._selection


def _resolve_profiles_file(path: str) -> Path:
    candidate = Path(path)
    if candidate.is_absolute():
        return candidate
    app_root = Path(__file__).resolve().parents[2]
    candidates = [Path.cwd() / candidate, app_root / candidate]
    for item in candidates:
        if item.exists():
            return item.resolve()
    return candidates[0].resolve()


def _parse_profile(raw: Any, section: str) -> ProviderProfile | None:
    if not isinstance(raw, dict):
        return None
    try:
        return ProviderProfile.model_validate(raw)
    except ValidationError as exc:
        logger.warning("ignore invalid profile section=%s error=%s", section, exc.errors())
        return None


def parse_profile_document(raw: dict[str, Any]) -> ProfileSelection:
    profiles = raw.get("profiles") or {}
    if not isinstance(profiles, dict):
        raise ValueError("profiles section must be a mapping")

    internal = _parse_profile(raw.get("internal"), "internal")
    if settings.internal_api_key and (internal is None or not internal.api_key.strip()):
        base_url = (internal.base_url if internal is not None else "") or settings.internal_base_url
        internal = ProviderProfile(base_url=base_url, api_key=settings.internal_api_key)

    search_key = raw.get("search_api_key") or settings.search_api_key or None
    return ProfileSelection(
        claude=_parse_profile(profiles.get("claude"), "claude"),
        codex=_parse_profile(profiles.get("codex"), "codex"),
        gemini=_parse_profile(profiles.get("gemini"), "gemini"),
        internal=internal,
        search_api_key=str(search_key) if search_key else None,
    )


class YamlProfileResolver:
    """Reads profiles.yaml, reloading only when the file's mtime changes."""

    def __init__(self, path: str | None = None) -> None:
        self._path = path or settings.profiles_path
        self._lock = Lock()
        self._cache_key = ""
        self._cache_mtime_ns = -1
        self._cache: ProfileSelection | None = None

    def resolve(self) -> ProfileSelection:
        profiles_path = _resolve_profiles_file(self._path)
        path_key = str(profiles_path)
        mtime_ns = profiles_path.stat().st_mtime_ns if profiles_path.exists() else -1

        with self._lock:
            if self._cache is not None and self._cache_key == path_key and self._cache_mtime_ns == mtime_ns:
                return self._cache

            raw: Any = {}
            if profiles_path.exists():
                raw = yaml.safe_load(profiles_path.read_text(encoding="utf-8")) or {}
                if not isinstance(raw, dict):
                    raise ValueError(f"profiles file must be a mapping: {profiles_path}")
                logger.info("provider profiles loaded path=%s", profiles_path)
            else:
                logger.info("provider profiles file not found, only env fallbacks apply path=%s", profiles_path)

            selection = parse_profile_document(raw)
            self._cache_key = path_key
            self._cache_mtime_ns = mtime_ns
            self._cache = selection
            return selection
