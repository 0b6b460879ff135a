"""LLM factory: returns a LangChain BaseChatModel backed by LiteLLM."""

from __future__ import annotations

from functools import lru_cache

from langchain_core.language_models import BaseChatModel


@lru_cache(maxsize=32)
def get_llm(
    model_name: str,
    temperature: float = 0.0,
    max_tokens: int | None = None,
    api_key: str | None = None,
    api_base: str | None = None,
    request_timeout: float | None = None,
) -> BaseChatModel:
    """Return a cached LangChain chat model via LiteLLM.

    ``model_name`` is a LiteLLM model string with its provider prefix:
      - "anthropic/claude-sonnet-4-20250514"
      - "openai/grok-4-1-fast-reasoning" (with ``api_base`` for xAI)

    Retries are disabled: a failed call surfaces immediately and the caller
    decides what to do with it.
    """
    from langchain_litellm import ChatLiteLLM

    model_kwargs: dict[str, object] = {}
    if api_key:
        model_kwargs["api_key"] = api_key

    return ChatLiteLLM(  # type: ignore[return-value]
        model=model_name,
        temperature=temperature,
        max_tokens=max_tokens,
        api_base=api_base,
        request_timeout=request_timeout,
        max_retries=0,
        model_kwargs=model_kwargs,
    )
