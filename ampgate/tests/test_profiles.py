import os

import pytest

from ampgate.config import profiles as profiles_module
from ampgate.config.profiles import ProfileSelection, ProviderProfile, YamlProfileResolver, parse_profile_document
from ampgate.config.settings import settings
from ampgate.core.errors import ConfigurationMissingError
from ampgate.core.models import ApiTarget


@pytest.fixture(autouse=True)
def _no_env_fallbacks(monkeypatch):
    monkeypatch.setattr(settings, "internal_api_key", "")
    monkeypatch.setattr(settings, "search_api_key", "")


def test_yaml_profiles_are_loaded_and_cached(tmp_path, monkeypatch):
    path = tmp_path / "profiles.yaml"
    path.write_text(
        "\n".join(
            [
                "internal:",
                "  base_url: https://ampcode.com",
                "  api_key: amp-token",
                "search_api_key: tvly-1",
                "profiles:",
                "  claude:",
                "    base_url: https://api.anthropic.com",
                "    api_key: sk-ant",
            ]
        ),
        encoding="utf-8",
    )
    resolver = YamlProfileResolver(str(path))

    first = resolver.resolve()
    assert first.claude == ProviderProfile(base_url="https://api.anthropic.com", api_key="sk-ant")
    assert first.codex is None
    assert first.gemini is None
    assert first.search_api_key == "tvly-1"
    assert first.require(ApiTarget.INTERNAL).api_key == "amp-token"

    def fail_load(*_args, **_kwargs):
        raise AssertionError("unchanged file must come from cache")

    monkeypatch.setattr(profiles_module.yaml, "safe_load", fail_load)
    assert resolver.resolve() is first


def test_yaml_profiles_reload_when_file_changes(tmp_path):
    path = tmp_path / "profiles.yaml"
    path.write_text("profiles:\n  codex: {base_url: https://a.example.com, api_key: k1}\n", encoding="utf-8")
    resolver = YamlProfileResolver(str(path))
    assert resolver.resolve().codex.api_key == "k1"

    path.write_text("profiles:\n  codex: {base_url: https://a.example.com, api_key: k2}\n", encoding="utf-8")
    stat = path.stat()
    os.utime(path, ns=(stat.st_atime_ns, stat.st_mtime_ns + 1_000_000_000))

    assert resolver.resolve().codex.api_key == "k2"


def test_missing_file_means_nothing_configured(tmp_path):
    selection = YamlProfileResolver(str(tmp_path / "absent.yaml")).resolve()

    assert selection == ProfileSelection()
    with pytest.raises(ConfigurationMissingError):
        selection.require(ApiTarget.CLAUDE)


def test_non_mapping_file_is_rejected(tmp_path):
    path = tmp_path / "profiles.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ValueError):
        YamlProfileResolver(str(path)).resolve()


def test_invalid_section_is_ignored():
    selection = parse_profile_document({"profiles": {"gemini": {"base_url": ["not", "a", "string"]}, "codex": "x"}})

    assert selection.gemini is None
    assert selection.codex is None


def test_env_fallback_for_internal_token(monkeypatch):
    monkeypatch.setattr(settings, "internal_api_key", "env-token")
    monkeypatch.setattr(settings, "internal_base_url", "https://ampcode.com")

    selection = parse_profile_document({"internal": {"base_url": "", "api_key": ""}})

    assert selection.internal == ProviderProfile(base_url="https://ampcode.com", api_key="env-token")


def test_require_checks_base_url_and_credential():
    selection = ProfileSelection(
        claude=ProviderProfile(base_url="", api_key="k"),
        codex=ProviderProfile(base_url="https://c.example.com", api_key=" "),
        internal=ProviderProfile(base_url="", api_key="t"),
    )

    with pytest.raises(ConfigurationMissingError):
        selection.require(ApiTarget.CLAUDE)
    with pytest.raises(ConfigurationMissingError):
        selection.require(ApiTarget.CODEX)
    assert selection.require(ApiTarget.INTERNAL).api_key == "t"
