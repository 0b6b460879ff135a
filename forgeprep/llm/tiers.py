"""Tier system — operation kinds, cost tiers and model bindings.

Three static levels:

* every ``OperationKind`` resolves to exactly one ``Tier``
* every ``Tier`` resolves to exactly one model key
* every model key resolves to one ``ModelConfig`` (provider, model id,
  credential env var, rate card)

The tier-to-model indirection lets a tier be rebound to another backend
without touching any call site.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Literal, get_args

from forgeprep.config import ProviderName
from forgeprep.errors import UnknownOperationError

Tier = Literal["opus", "sonnet", "haiku"]

OperationKind = Literal[
    # Judgment
    "classify_task",
    "resolve_stuck_point",
    "escalation_decision",
    "quality_judgment",
    # Supervision
    "foreman_synthesis",
    "context_package_assembly",
    "execution_supervision",
    "quality_gate_decision",
    # Labor
    "file_discovery",
    "pattern_extraction",
    "dependency_mapping",
    "constraint_identification",
    "web_research",
    "documentation_reading",
]

StopReason = Literal["end_turn", "tool_use", "max_tokens", "stop_sequence"]

TIERS: tuple[Tier, ...] = get_args(Tier)
OPERATION_KINDS: tuple[OperationKind, ...] = get_args(OperationKind)


@dataclass(frozen=True)
class ModelConfig:
    """A concrete backend model and its rate card."""

    id: str
    provider: ProviderName
    display_name: str
    api_key_env: str
    input_per_1m: float
    output_per_1m: float
    base_url: str | None = None

    def cost(self, input_tokens: int, output_tokens: int) -> float:
        return (input_tokens / 1_000_000) * self.input_per_1m + (
            output_tokens / 1_000_000
        ) * self.output_per_1m


MODEL_CONFIGS: dict[str, ModelConfig] = {
    "opus": ModelConfig(
        id="claude-opus-4-5-20251101",
        provider="anthropic",
        display_name="Claude Opus 4.5",
        api_key_env="ANTHROPIC_API_KEY",
        input_per_1m=15.0,
        output_per_1m=75.0,
    ),
    "sonnet": ModelConfig(
        id="claude-sonnet-4-20250514",
        provider="anthropic",
        display_name="Claude Sonnet 4",
        api_key_env="ANTHROPIC_API_KEY",
        input_per_1m=3.0,
        output_per_1m=15.0,
    ),
    "haiku": ModelConfig(
        id="claude-3-5-haiku-20241022",
        provider="anthropic",
        display_name="Claude 3.5 Haiku",
        api_key_env="ANTHROPIC_API_KEY",
        input_per_1m=0.25,
        output_per_1m=1.25,
    ),
    "grok-worker": ModelConfig(
        id="grok-4-1-fast-reasoning",
        provider="openai",
        display_name="Grok 4.1 Fast Reasoning",
        api_key_env="XAI_API_KEY",
        input_per_1m=0.10,
        output_per_1m=0.40,
        base_url="https://api.x.ai/v1",
    ),
}

OPERATION_TO_TIER: dict[OperationKind, Tier] = {
    "classify_task": "opus",
    "resolve_stuck_point": "opus",
    "escalation_decision": "opus",
    "quality_judgment": "opus",
    "foreman_synthesis": "sonnet",
    "context_package_assembly": "sonnet",
    "execution_supervision": "sonnet",
    "quality_gate_decision": "sonnet",
    "file_discovery": "haiku",
    "pattern_extraction": "haiku",
    "dependency_mapping": "haiku",
    "constraint_identification": "haiku",
    "web_research": "haiku",
    "documentation_reading": "haiku",
}

# The labor tier runs on Grok: cheaper than Haiku and more accurate on
# worker-style extraction tasks.
TIER_TO_MODEL_KEY: dict[Tier, str] = {
    "opus": "opus",
    "sonnet": "sonnet",
    "haiku": "grok-worker",
}

# Monitoring bands for the share of total spend per tier (not enforced)
COST_DISTRIBUTION_TARGETS: dict[Tier, tuple[float, float]] = {
    "opus": (0.10, 0.15),
    "sonnet": (0.25, 0.35),
    "haiku": (0.50, 0.65),
}


@dataclass
class ToolSchema:
    """JSON-schema description of a tool for the LLM."""

    name: str
    description: str
    parameters: dict[str, Any] = field(
        default_factory=lambda: {
            "type": "object",
            "properties": {},
            "required": [],
        }
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }


@dataclass(frozen=True)
class ToolChoice:
    """Provider-neutral tool choice.

    ``auto`` lets the model decide, ``any`` forces some tool call and
    ``tool`` forces the named tool.
    """

    mode: Literal["auto", "any", "tool"] = "auto"
    name: str | None = None

    @classmethod
    def auto(cls) -> ToolChoice:
        return cls("auto")

    @classmethod
    def any(cls) -> ToolChoice:
        return cls("any")

    @classmethod
    def tool(cls, name: str) -> ToolChoice:
        return cls("tool", name)

    def __post_init__(self) -> None:
        if self.mode == "tool" and not self.name:
            raise ValueError("ToolChoice.tool requires a tool name")


@dataclass(frozen=True)
class ToolCall:
    """A tool invocation normalized across providers."""

    id: str
    name: str
    args: dict[str, Any]


SUBMIT_RESULT_TOOL = ToolSchema(
    name="submit_result",
    description=(
        "Submit your final findings. Call this when you have finished exploring "
        "and are ready to return your structured results. This must be your "
        "final action."
    ),
    parameters={
        "type": "object",
        "properties": {
            "result": {
                "type": "object",
                "description": (
                    "Your structured findings in the format specified by your "
                    "task instructions"
                ),
            },
            "confidence": {
                "type": "number",
                "description": (
                    "Your confidence level from 0-100 in the completeness and "
                    "accuracy of your findings"
                ),
            },
        },
        "required": ["result", "confidence"],
    },
)


@dataclass(frozen=True)
class SubmitResult:
    result: Any
    confidence: float


def extract_submit_result(tool_calls: list[ToolCall]) -> SubmitResult | None:
    """Return the first ``submit_result`` payload, or ``None``."""
    for tc in tool_calls:
        if tc.name == SUBMIT_RESULT_TOOL.name:
            confidence = tc.args.get("confidence", 50)
            try:
                confidence = float(confidence)
            except (TypeError, ValueError):
                confidence = 50.0
            return SubmitResult(
                result=tc.args.get("result"),
                confidence=max(0.0, min(100.0, confidence)),
            )
    return None


def has_submit_result(tool_calls: list[ToolCall]) -> bool:
    return any(tc.name == SUBMIT_RESULT_TOOL.name for tc in tool_calls)


class TierTable:
    """Resolved operation/tier/model bindings for one router.

    Built from the module defaults plus optional overrides, so a project can
    rebind a tier in its config without mutating module state.
    """

    def __init__(
        self,
        model_overrides: dict[str, dict[str, Any]] | None = None,
        tier_overrides: dict[str, str] | None = None,
    ) -> None:
        self.models: dict[str, ModelConfig] = dict(MODEL_CONFIGS)
        for key, patch in (model_overrides or {}).items():
            base = self.models.get(key)
            try:
                self.models[key] = replace(base, **patch) if base else ModelConfig(**patch)
            except TypeError as e:
                raise UnknownOperationError(f"Invalid model override '{key}': {e}") from e

        self.tier_to_model: dict[str, str] = dict(TIER_TO_MODEL_KEY)
        for tier, model_key in (tier_overrides or {}).items():
            if tier not in TIERS:
                raise UnknownOperationError(f"Unknown tier '{tier}' in tier overrides")
            self.tier_to_model[tier] = model_key

        # Every tier must resolve to a defined model
        for tier, model_key in self.tier_to_model.items():
            if model_key not in self.models:
                raise UnknownOperationError(
                    f"Tier '{tier}' is bound to undefined model '{model_key}'"
                )

    def tier_for(self, operation: str) -> Tier:
        try:
            return OPERATION_TO_TIER[operation]  # type: ignore[index]
        except KeyError:
            raise UnknownOperationError(f"Unknown operation kind: {operation}") from None

    def model_for_tier(self, tier: str) -> ModelConfig:
        try:
            return self.models[self.tier_to_model[tier]]
        except KeyError:
            raise UnknownOperationError(f"Unknown tier: {tier}") from None

    def model_for_operation(self, operation: str) -> ModelConfig:
        return self.model_for_tier(self.tier_for(operation))

    def calculate_cost(self, tier: str, input_tokens: int, output_tokens: int) -> float:
        return self.model_for_tier(tier).cost(input_tokens, output_tokens)


def get_tier_for_operation(operation: str) -> Tier:
    """Get the default tier for an operation kind."""
    return TierTable().tier_for(operation)


def get_model_config_for_tier(tier: str) -> ModelConfig:
    """Get the default model configuration bound to a tier."""
    return TierTable().model_for_tier(tier)


def calculate_cost(tier: str, input_tokens: int, output_tokens: int) -> float:
    """Cost in USD for a call on the default binding of ``tier``."""
    return get_model_config_for_tier(tier).cost(input_tokens, output_tokens)
