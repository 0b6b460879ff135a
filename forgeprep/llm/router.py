"""Tier router — routes operations to models and tracks spend per tier."""

from __future__ import annotations

import asyncio
import logging
import os
import threading
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from forgeprep.config import PrepConfig
from forgeprep.errors import ConfigurationError, ProviderError
from forgeprep.llm.providers import DEFAULT_PROVIDERS, Provider, ProviderRequest
from forgeprep.llm.tiers import (
    COST_DISTRIBUTION_TARGETS,
    TIERS,
    ModelConfig,
    StopReason,
    Tier,
    TierTable,
    ToolCall,
    ToolChoice,
    ToolSchema,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CallResult:
    """Result from a tier-routed call."""

    content: str
    tier: Tier
    model: str
    input_tokens: int
    output_tokens: int
    cost_usd: float
    latency_ms: float
    tool_calls: list[ToolCall] = field(default_factory=list)
    stop_reason: StopReason | None = None


@dataclass(frozen=True)
class CostDistributionEntry:
    absolute: float
    percentage: float  # 0-1 share of total


class CostAccumulator:
    """Per-tier running spend, owned by one router.

    Updates are serialized by a lock so concurrent completions on the same
    tier never lose an addition.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._totals: dict[str, float] = {tier: 0.0 for tier in TIERS}

    def add(self, tier: str, cost_usd: float) -> None:
        with self._lock:
            self._totals[tier] = self._totals.get(tier, 0.0) + cost_usd

    def snapshot(self) -> dict[str, float]:
        with self._lock:
            return dict(self._totals)

    def total(self) -> float:
        return sum(self.snapshot().values())

    def reset(self) -> None:
        with self._lock:
            self._totals = {tier: 0.0 for tier in TIERS}


class TierRouter:
    """Multi-provider model routing.

    Routes operations to tiers and models, calls the right provider,
    normalizes responses and tracks cost distribution.

    Usage:
        router = TierRouter()
        result = await router.call(
            "file_discovery",
            system_prompt="...",
            user_prompt="...",
            tools=[SUBMIT_RESULT_TOOL],
            tool_choice=ToolChoice.tool("submit_result"),
        )
    """

    def __init__(
        self,
        config: PrepConfig | None = None,
        providers: Mapping[str, Provider] | None = None,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self.config = config or PrepConfig()
        self.table = TierTable(self.config.model_overrides, self.config.tier_overrides)
        self._env = env if env is not None else os.environ
        self._injected = dict(providers or {})
        self._clients: dict[tuple[str, str], Provider] = {}
        self._costs = CostAccumulator()
        self._call_counts: dict[str, int] = {}

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_tier_for_operation(self, operation: str) -> Tier:
        return self.table.tier_for(operation)

    def get_model_for_tier(self, tier: str) -> str:
        return self.table.model_for_tier(tier).id

    def call_count(self, operation: str) -> int:
        """Number of calls attempted for an operation kind."""
        return self._call_counts.get(operation, 0)

    def validate_api_keys(self) -> list[str]:
        """Return env var names of missing credentials for bound models."""
        missing: list[str] = []
        for model_key in sorted(set(self.table.tier_to_model.values())):
            env_var = self.table.models[model_key].api_key_env
            if not self._env.get(env_var) and env_var not in missing:
                missing.append(env_var)
        return missing

    # ------------------------------------------------------------------
    # Calls
    # ------------------------------------------------------------------

    async def call(
        self,
        operation: str,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int = 4096,
        temperature: float = 0.0,
        tools: list[ToolSchema] | None = None,
        tool_choice: ToolChoice | None = None,
    ) -> CallResult:
        """Make a tier-routed call.

        Raises ``ConfigurationError`` when the resolved model's credential is
        absent and ``ProviderError`` when the backend fails or times out.
        Nothing is retried here.
        """
        tier = self.table.tier_for(operation)
        model = self.table.model_for_tier(tier)
        self._call_counts[operation] = self._call_counts.get(operation, 0) + 1

        api_key = self._env.get(model.api_key_env)
        if not api_key:
            raise ConfigurationError(
                f"Missing credential for {model.display_name}: "
                f"set the {model.api_key_env} environment variable."
            )

        provider = self._client_for(model)
        request = ProviderRequest(
            model=model,
            api_key=api_key,
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            max_tokens=max_tokens,
            temperature=temperature,
            tools=list(tools or []),
            tool_choice=tool_choice if tools else None,
            timeout_s=self.config.call_timeout_s,
        )

        started = time.monotonic()
        try:
            response = await asyncio.wait_for(
                provider.invoke(request), timeout=self.config.call_timeout_s
            )
        except asyncio.TimeoutError as e:
            raise ProviderError(
                f"{operation} call to {model.id} timed out after "
                f"{self.config.call_timeout_s:.0f}s"
            ) from e
        except (ConfigurationError, ProviderError):
            raise
        except Exception as e:
            raise ProviderError(f"{operation} call to {model.id} failed: {e}") from e
        latency_ms = (time.monotonic() - started) * 1000

        cost = model.cost(response.input_tokens, response.output_tokens)
        self._costs.add(tier, cost)

        logger.debug(
            "%s -> %s/%s: %d in, %d out, $%.5f, %.0fms",
            operation,
            tier,
            model.id,
            response.input_tokens,
            response.output_tokens,
            cost,
            latency_ms,
        )

        return CallResult(
            content=response.content,
            tier=tier,
            model=model.id,
            input_tokens=response.input_tokens,
            output_tokens=response.output_tokens,
            cost_usd=cost,
            latency_ms=latency_ms,
            tool_calls=response.tool_calls,
            stop_reason=response.stop_reason,
        )

    def _client_for(self, model: ModelConfig) -> Provider:
        """Return the provider client bound to this model's credential key."""
        key = (model.provider, model.api_key_env)
        client = self._clients.get(key)
        if client is not None:
            return client

        if model.provider in self._injected:
            client = self._injected[model.provider]
        else:
            provider_cls = DEFAULT_PROVIDERS.get(model.provider)
            if provider_cls is None:
                raise ConfigurationError(f"No provider implementation for '{model.provider}'")
            client = provider_cls()
        self._clients[key] = client
        return client

    # ------------------------------------------------------------------
    # Cost reporting
    # ------------------------------------------------------------------

    def get_cost_distribution(self) -> dict[str, CostDistributionEntry]:
        totals = self._costs.snapshot()
        total = sum(totals.values())
        return {
            tier: CostDistributionEntry(
                absolute=cost,
                percentage=cost / total if total > 0 else 0.0,
            )
            for tier, cost in totals.items()
        }

    def get_total_cost(self) -> float:
        return self._costs.total()

    def reset_cost_accumulator(self) -> None:
        self._costs.reset()

    def check_cost_distribution(self) -> dict[str, tuple[float, float, float]]:
        """Return tiers whose spend share is outside the target band.

        Maps tier -> (share, band_min, band_max). Monitoring only.
        """
        if self.get_total_cost() <= 0:
            return {}
        drift: dict[str, tuple[float, float, float]] = {}
        for tier, entry in self.get_cost_distribution().items():
            low, high = COST_DISTRIBUTION_TARGETS[tier]  # type: ignore[index]
            if not low <= entry.percentage <= high:
                drift[tier] = (entry.percentage, low, high)
                logger.warning(
                    "Tier %s carries %.1f%% of spend (target %.0f-%.0f%%)",
                    tier,
                    entry.percentage * 100,
                    low * 100,
                    high * 100,
                )
        return drift

    def cost_summary(self) -> dict[str, Any]:
        return {
            "total_usd": self.get_total_cost(),
            "tiers": {
                tier: {"absolute": e.absolute, "percentage": e.percentage}
                for tier, e in self.get_cost_distribution().items()
            },
        }
