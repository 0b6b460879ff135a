"""Tests for provider request building and response normalization."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from forgeprep.llm.providers import (
    DEFAULT_PROVIDERS,
    AnthropicProvider,
    OpenAICompatibleProvider,
    Provider,
    ProviderRequest,
)
from forgeprep.llm.tiers import MODEL_CONFIGS, SUBMIT_RESULT_TOOL, ToolChoice

# ── Normalization ────────────────────────────────────────────


def test_normalize_text_and_usage():
    msg = AIMessage(
        content="Hello",
        usage_metadata={"input_tokens": 12, "output_tokens": 3, "total_tokens": 15},
        response_metadata={"finish_reason": "stop"},
    )
    resp = OpenAICompatibleProvider().normalize(msg)
    assert resp.content == "Hello"
    assert resp.input_tokens == 12
    assert resp.output_tokens == 3
    assert resp.stop_reason == "end_turn"
    assert resp.tool_calls == []


def test_normalize_tool_calls():
    msg = AIMessage(
        content="",
        tool_calls=[
            {"name": "glob", "args": {"pattern": "**/*.py"}, "id": "call_1"},
            {"name": "submit_result", "args": {"result": {}, "confidence": 90}, "id": "call_2"},
        ],
        response_metadata={"finish_reason": "tool_calls"},
    )
    resp = OpenAICompatibleProvider().normalize(msg)
    assert [tc.name for tc in resp.tool_calls] == ["glob", "submit_result"]
    assert resp.tool_calls[0].id == "call_1"
    assert resp.tool_calls[0].args == {"pattern": "**/*.py"}
    assert resp.stop_reason == "tool_use"


def test_normalize_skips_invalid_tool_calls():
    msg = AIMessage(
        content="",
        invalid_tool_calls=[
            {"name": "read", "args": "{not json", "id": "bad", "error": "JSONDecodeError"}
        ],
    )
    resp = AnthropicProvider().normalize(msg)
    assert resp.tool_calls == []


def test_normalize_content_blocks():
    msg = AIMessage(
        content=[
            {"type": "text", "text": "part one, "},
            {"type": "tool_use", "id": "x", "name": "glob", "input": {}},
            {"type": "text", "text": "part two"},
        ]
    )
    assert AnthropicProvider().normalize(msg).content == "part one, part two"


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("end_turn", "end_turn"),
        ("tool_use", "tool_use"),
        ("max_tokens", "max_tokens"),
        ("stop_sequence", "stop_sequence"),
        ("stop", "end_turn"),
        ("length", "max_tokens"),
    ],
)
def test_anthropic_stop_reasons(raw, expected):
    msg = AIMessage(content="", response_metadata={"stop_reason": raw})
    assert AnthropicProvider().normalize(msg).stop_reason == expected


def test_unknown_stop_reason_is_none():
    msg = AIMessage(content="", response_metadata={"finish_reason": "content_filter"})
    assert OpenAICompatibleProvider().normalize(msg).stop_reason is None


def test_missing_usage_defaults_to_zero():
    resp = OpenAICompatibleProvider().normalize(AIMessage(content="hi"))
    assert resp.input_tokens == 0
    assert resp.output_tokens == 0
    assert resp.stop_reason is None


# ── Tool choice & model strings ──────────────────────────────


def test_tool_choice_payloads():
    p = OpenAICompatibleProvider()
    assert p.tool_choice_payload(ToolChoice.auto()) == "auto"
    assert p.tool_choice_payload(ToolChoice.any()) == "required"
    assert p.tool_choice_payload(ToolChoice.tool("submit_result")) == {
        "type": "function",
        "function": {"name": "submit_result"},
    }


def test_model_string_prefix():
    assert (
        AnthropicProvider().model_string(MODEL_CONFIGS["sonnet"])
        == "anthropic/claude-sonnet-4-20250514"
    )
    assert (
        OpenAICompatibleProvider().model_string(MODEL_CONFIGS["grok-worker"])
        == "openai/grok-4-1-fast-reasoning"
    )


def test_default_providers_satisfy_protocol():
    assert set(DEFAULT_PROVIDERS) == {"anthropic", "openai"}
    for cls in DEFAULT_PROVIDERS.values():
        assert isinstance(cls(), Provider)


# ── invoke ───────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_invoke_binds_tools_and_passes_credentials():
    bound = MagicMock()
    bound.ainvoke = AsyncMock(
        return_value=AIMessage(
            content="",
            tool_calls=[{"name": "submit_result", "args": {"result": {}}, "id": "c"}],
            usage_metadata={"input_tokens": 5, "output_tokens": 2, "total_tokens": 7},
        )
    )
    llm = MagicMock()
    llm.bind_tools.return_value = bound

    request = ProviderRequest(
        model=MODEL_CONFIGS["grok-worker"],
        api_key="xai-key",
        system_prompt="sys",
        user_prompt="user",
        max_tokens=256,
        tools=[SUBMIT_RESULT_TOOL],
        tool_choice=ToolChoice.tool("submit_result"),
        timeout_s=30,
    )
    with patch("forgeprep.llm.providers.get_llm", return_value=llm) as mock_get:
        resp = await OpenAICompatibleProvider().invoke(request)

    mock_get.assert_called_once_with(
        "openai/grok-4-1-fast-reasoning",
        temperature=0.0,
        max_tokens=256,
        api_key="xai-key",
        api_base="https://api.x.ai/v1",
        request_timeout=30,
    )
    tools_arg = llm.bind_tools.call_args.args[0]
    assert tools_arg[0]["name"] == "submit_result"
    assert llm.bind_tools.call_args.kwargs["tool_choice"]["function"]["name"] == "submit_result"

    messages = bound.ainvoke.call_args.args[0]
    assert isinstance(messages[0], SystemMessage)
    assert isinstance(messages[1], HumanMessage)
    assert resp.tool_calls[0].name == "submit_result"
    assert resp.input_tokens == 5


@pytest.mark.asyncio
async def test_invoke_without_tools_skips_binding():
    llm = MagicMock()
    llm.ainvoke = AsyncMock(return_value=AIMessage(content="{}"))
    request = ProviderRequest(
        model=MODEL_CONFIGS["sonnet"],
        api_key="sk",
        system_prompt="s",
        user_prompt="u",
    )
    with patch("forgeprep.llm.providers.get_llm", return_value=llm):
        resp = await AnthropicProvider().invoke(request)
    llm.bind_tools.assert_not_called()
    assert resp.content == "{}"
