"""Model tiers, provider clients and the tier router."""

from __future__ import annotations

from forgeprep.llm.providers import (
    AnthropicProvider,
    OpenAICompatibleProvider,
    Provider,
    ProviderRequest,
    ProviderResponse,
)
from forgeprep.llm.router import CallResult, CostAccumulator, TierRouter
from forgeprep.llm.tiers import (
    SUBMIT_RESULT_TOOL,
    ModelConfig,
    OperationKind,
    Tier,
    ToolCall,
    ToolChoice,
    ToolSchema,
    calculate_cost,
    extract_submit_result,
    get_model_config_for_tier,
    get_tier_for_operation,
    has_submit_result,
)

__all__ = [
    "AnthropicProvider",
    "CallResult",
    "CostAccumulator",
    "ModelConfig",
    "OpenAICompatibleProvider",
    "OperationKind",
    "Provider",
    "ProviderRequest",
    "ProviderResponse",
    "SUBMIT_RESULT_TOOL",
    "Tier",
    "TierRouter",
    "ToolCall",
    "ToolChoice",
    "ToolSchema",
    "calculate_cost",
    "extract_submit_result",
    "get_model_config_for_tier",
    "get_tier_for_operation",
    "has_submit_result",
]
