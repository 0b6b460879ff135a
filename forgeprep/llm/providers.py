"""Provider abstraction — one implementation per backend protocol family.

The router depends only on the ``Provider`` protocol. Each implementation
turns a ``ProviderRequest`` into a LiteLLM-backed LangChain call and
normalizes the reply into a ``ProviderResponse``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, ClassVar, Protocol, runtime_checkable

from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from forgeprep.config import PROVIDER_DEFS
from forgeprep.llm.factory import get_llm
from forgeprep.llm.tiers import ModelConfig, StopReason, ToolCall, ToolChoice, ToolSchema

logger = logging.getLogger(__name__)


@dataclass
class ProviderRequest:
    """A single-turn request in provider-neutral form."""

    model: ModelConfig
    api_key: str
    system_prompt: str
    user_prompt: str
    max_tokens: int = 4096
    temperature: float = 0.0
    tools: list[ToolSchema] = field(default_factory=list)
    tool_choice: ToolChoice | None = None
    timeout_s: float | None = None


@dataclass
class ProviderResponse:
    """A provider reply normalized to one shape."""

    content: str
    tool_calls: list[ToolCall]
    input_tokens: int
    output_tokens: int
    stop_reason: StopReason | None


@runtime_checkable
class Provider(Protocol):
    name: str

    async def invoke(self, request: ProviderRequest) -> ProviderResponse: ...


class LangChainProvider:
    """Shared LiteLLM/LangChain plumbing for concrete providers.

    Subclasses set the provider ``name`` and the finish-reason vocabulary the
    backend speaks.
    """

    name: ClassVar[str] = ""
    stop_reasons: ClassVar[dict[str, StopReason]] = {}

    def model_string(self, model: ModelConfig) -> str:
        prefix = PROVIDER_DEFS[self.name]["litellm_prefix"]
        return model.id if model.id.startswith(prefix) else f"{prefix}{model.id}"

    def tool_choice_payload(self, choice: ToolChoice) -> str | dict[str, Any]:
        """Translate a neutral tool choice to the OpenAI-style shape LiteLLM takes."""
        if choice.mode == "auto":
            return "auto"
        if choice.mode == "any":
            return "required"
        return {"type": "function", "function": {"name": choice.name}}

    async def invoke(self, request: ProviderRequest) -> ProviderResponse:
        llm = get_llm(
            self.model_string(request.model),
            temperature=request.temperature,
            max_tokens=request.max_tokens,
            api_key=request.api_key,
            api_base=request.model.base_url,
            request_timeout=request.timeout_s,
        )

        runnable: Any = llm
        if request.tools:
            bind_kwargs: dict[str, Any] = {}
            if request.tool_choice is not None:
                bind_kwargs["tool_choice"] = self.tool_choice_payload(request.tool_choice)
            runnable = llm.bind_tools(
                [t.to_dict() for t in request.tools],
                **bind_kwargs,
            )  # type: ignore[attr-defined]

        messages = [
            SystemMessage(content=request.system_prompt),
            HumanMessage(content=request.user_prompt),
        ]
        response: AIMessage = await runnable.ainvoke(messages)
        return self.normalize(response)

    def normalize(self, response: AIMessage) -> ProviderResponse:
        usage = getattr(response, "usage_metadata", None) or {}
        metadata = getattr(response, "response_metadata", None) or {}
        raw_reason = metadata.get("finish_reason") or metadata.get("stop_reason")

        return ProviderResponse(
            content=_text_content(response.content),
            tool_calls=self.normalize_tool_calls(response),
            input_tokens=int(usage.get("input_tokens", 0) or 0),
            output_tokens=int(usage.get("output_tokens", 0) or 0),
            stop_reason=self.stop_reasons.get(str(raw_reason)) if raw_reason else None,
        )

    def normalize_tool_calls(self, response: AIMessage) -> list[ToolCall]:
        calls: list[ToolCall] = []
        for tc in getattr(response, "tool_calls", None) or []:
            args = tc.get("args", {})
            if not isinstance(args, dict):
                continue
            calls.append(
                ToolCall(id=str(tc.get("id") or ""), name=tc.get("name", ""), args=args)
            )
        # Calls whose arguments failed to parse land here; skip them
        for bad in getattr(response, "invalid_tool_calls", None) or []:
            logger.warning(
                "Skipping malformed tool call %s: %s",
                bad.get("name"),
                bad.get("error") or bad.get("args"),
            )
        return calls


class AnthropicProvider(LangChainProvider):
    """Claude models.

    LiteLLM usually maps Anthropic stop reasons to the OpenAI vocabulary, so
    both spellings are accepted.
    """

    name = "anthropic"
    stop_reasons = {
        "end_turn": "end_turn",
        "tool_use": "tool_use",
        "max_tokens": "max_tokens",
        "stop_sequence": "stop_sequence",
        "stop": "end_turn",
        "tool_calls": "tool_use",
        "length": "max_tokens",
    }


class OpenAICompatibleProvider(LangChainProvider):
    """OpenAI chat-completions protocol (OpenAI, xAI Grok, Groq, ...)."""

    name = "openai"
    stop_reasons = {
        "stop": "end_turn",
        "tool_calls": "tool_use",
        "function_call": "tool_use",
        "length": "max_tokens",
    }


DEFAULT_PROVIDERS: dict[str, type[LangChainProvider]] = {
    AnthropicProvider.name: AnthropicProvider,
    OpenAICompatibleProvider.name: OpenAICompatibleProvider,
}


def _text_content(content: Any) -> str:
    """Flatten LangChain message content (str or list of blocks) to text."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(str(block.get("text", "")))
        return "".join(parts)
    return ""
