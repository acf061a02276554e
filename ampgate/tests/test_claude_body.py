import json
import re

from ampgate.transform import claude_body
from ampgate.transform.claude_body import (
    CLAUDE_CODE_PREAMBLE,
    ensure_system_preamble,
    sanitize_brand_text,
    transform_claude_body,
)
from ampgate.transform.tool_names import prefix_tool_names, strip_tool_name_prefix

_USER_ID_SHAPE = re.compile(
    r"^user_[0-9a-f]{64}_account__session_[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$"
)


def _encode(payload: dict) -> bytes:
    return json.dumps(payload).encode("utf-8")


def _sample_payload() -> dict:
    return {
        "model": "claude-sonnet-4-5",
        "messages": [
            {"role": "user", "content": [{"type": "text", "text": "list files", "cache_control": {"type": "ephemeral"}}]},
            {"role": "assistant", "content": [{"type": "tool_use", "id": "t1", "name": "Bash", "input": {}}]},
        ],
        "system": [{"type": "text", "text": "You are Amp, built by ampcode.", "cache_control": {"type": "x"}}],
        "tools": [{"name": "Bash", "input_schema": {}, "cache_control": {"type": "ephemeral", "ttl": "1h"}}],
        "max_tokens": 1024,
    }


def test_sanitize_brand_text_whole_word_only():
    text = "Use AMP and opencode, not example or Amp-Code or AmpCode or ampere."

    assert sanitize_brand_text(text) == (
        "Use Claude Code and Claude Code, not example or Claude Code or Claude Code or ampere."
    )


def test_sanitize_brand_text_is_idempotent():
    once = sanitize_brand_text("amp opencode amp-code")

    assert sanitize_brand_text(once) == once


def test_preamble_inserted_into_array_system_once():
    payload = {"system": [{"type": "text", "text": "amp rules"}]}

    ensure_system_preamble(payload)
    ensure_system_preamble(payload)

    assert payload["system"] == [
        {"type": "text", "text": CLAUDE_CODE_PREAMBLE},
        {"type": "text", "text": "Claude Code rules"},
    ]


def test_preamble_prefixed_to_string_system():
    payload = {"system": "You are opencode."}

    ensure_system_preamble(payload)
    assert payload["system"] == f"{CLAUDE_CODE_PREAMBLE}\nYou are Claude Code."
    ensure_system_preamble(payload)
    assert payload["system"] == f"{CLAUDE_CODE_PREAMBLE}\nYou are Claude Code."


def test_missing_system_gets_preamble_block():
    payload: dict = {"model": "claude"}

    ensure_system_preamble(payload)

    assert payload["system"] == [{"type": "text", "text": CLAUDE_CODE_PREAMBLE}]


def test_prefix_tool_names_is_idempotent():
    payload = _sample_payload()
    payload["tools"].append({"name": "mcp_Read"})

    first = prefix_tool_names(payload)
    second = prefix_tool_names(payload)

    assert [tool["name"] for tool in payload["tools"]] == ["mcp_Bash", "mcp_Read"]
    assert payload["messages"][1]["content"][0]["name"] == "mcp_Bash"
    assert first == {"Bash"}
    assert second == frozenset()


def test_strip_tool_name_prefix_only_restores_names_it_added():
    data = b'{"type":"tool_use","name":"mcp_Bash","input":{"cmd":"mcp_x"}}'

    assert strip_tool_name_prefix(data, {"Bash"}) == b'{"type":"tool_use","name": "Bash","input":{"cmd":"mcp_x"}}'
    assert strip_tool_name_prefix(data, {"Read"}) == data
    assert strip_tool_name_prefix(data, frozenset()) is data
    assert strip_tool_name_prefix(b'{"name":"Bash"}', {"Bash"}) == b'{"name":"Bash"}'


def test_client_owned_prefixed_tool_survives_round_trip():
    payload = {"model": "claude-x", "messages": [], "tools": [{"name": "mcp_Read"}, {"name": "Bash"}]}

    rewritten = transform_claude_body(_encode(payload), "k", "ua")
    sent = json.loads(rewritten.body)
    response = b'[{"name":"mcp_Read"},{"name":"mcp_Bash"}]'

    assert [tool["name"] for tool in sent["tools"]] == ["mcp_Read", "mcp_Bash"]
    assert rewritten.prefixed_names == {"Bash"}
    assert json.loads(strip_tool_name_prefix(response, rewritten.prefixed_names)) == [
        {"name": "mcp_Read"},
        {"name": "Bash"},
    ]


def test_transform_rewrites_full_claude_payload():
    out = json.loads(transform_claude_body(_encode(_sample_payload()), "sk-ant-1", "amp/1.0").body)

    assert list(out.keys()) == ["model", "system", "messages", "tools", "metadata", "max_tokens"]
    assert out["system"][0] == {"type": "text", "text": CLAUDE_CODE_PREAMBLE}
    assert out["system"][1]["text"] == "You are Claude Code, built by Claude Code."
    assert out["system"][1]["cache_control"] == {"type": "ephemeral", "ttl": "5m"}
    assert out["tools"][0]["name"] == "mcp_Bash"
    assert out["tools"][0]["cache_control"] == {"type": "ephemeral", "ttl": "5m"}
    assert out["messages"][0]["content"][0]["cache_control"] == {"type": "ephemeral", "ttl": "5m"}
    assert out["messages"][1]["content"][0]["name"] == "mcp_Bash"
    assert _USER_ID_SHAPE.match(out["metadata"]["user_id"])


def test_transform_is_compact_and_keeps_non_ascii():
    payload = {"model": "claude-x", "messages": [{"role": "user", "content": "你好"}]}

    out = transform_claude_body(_encode(payload), "k", None).body

    assert out.startswith(b'{"model":"claude-x","system":[{"type":"text","text":')
    assert "你好".encode("utf-8") in out


def test_transform_canonical_order_keeps_unknown_fields_last():
    payload = {
        "stream": True,
        "zeta": 1,
        "messages": [{"role": "user", "content": "hi"}],
        "alpha": 2,
        "model": "claude-x",
        "temperature": 0.2,
        "metadata": {"trace": "t"},
    }

    out = json.loads(transform_claude_body(_encode(payload), "k", "ua").body)

    assert list(out.keys()) == ["model", "system", "messages", "metadata", "temperature", "stream", "zeta", "alpha"]
    assert out["metadata"]["trace"] == "t"
    assert out["metadata"]["user_id"].startswith("user_")


def test_user_id_is_stable_for_same_key_agent_and_history():
    payload = {"model": "claude-x", "messages": [{"role": "user", "content": "hi"}]}

    first = json.loads(transform_claude_body(_encode(payload), "k", "ua").body)
    second = json.loads(transform_claude_body(_encode(payload), "k", "ua").body)

    assert first["metadata"]["user_id"] == second["metadata"]["user_id"]


def test_existing_user_id_is_untouched_and_not_hashed(monkeypatch):
    def fail(*_args, **_kwargs):
        raise AssertionError("identity must not be derived when user_id exists")

    monkeypatch.setattr(claude_body, "fingerprint", fail)
    monkeypatch.setattr(claude_body, "session_token", fail)
    payload = {"metadata": {"user_id": "x"}, "model": "claude-x", "messages": []}

    out = json.loads(transform_claude_body(_encode(payload), "k", "ua").body)

    assert out["metadata"] == {"user_id": "x"}


def test_whitespace_user_id_is_kept():
    payload = {"metadata": {"user_id": " "}, "model": "claude-x", "messages": []}

    out = json.loads(transform_claude_body(_encode(payload), "k", "ua").body)

    assert out["metadata"] == {"user_id": " "}
    assert list(out.keys())[0] == "metadata"


def test_empty_or_non_string_user_id_is_replaced():
    for user_id in ("", None, 42):
        payload = {"model": "claude-x", "messages": [], "metadata": {"user_id": user_id}}

        out = json.loads(transform_claude_body(_encode(payload), "k", "ua").body)

        assert _USER_ID_SHAPE.match(out["metadata"]["user_id"])


def test_haiku_model_is_forwarded_byte_for_byte():
    body = _encode({"model": "claude-3-5-HAIKU-latest", "system": "amp", "tools": [{"name": "Bash"}]})

    assert transform_claude_body(body, "k", "ua").body is body


def test_invalid_json_is_forwarded_unchanged():
    body = b'{"model": "claude-x", '

    assert transform_claude_body(body, "k", "ua").body is body
    assert transform_claude_body(b"[]", "k", "ua").body == b"[]"
    assert transform_claude_body(b"", "k", "ua").body == b""


def test_transform_twice_equals_once():
    once = transform_claude_body(_encode(_sample_payload()), "k", "ua").body

    assert transform_claude_body(once, "k", "ua").body == once
