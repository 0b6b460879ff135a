"""Preparation run configuration dataclasses."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Literal

ProviderName = Literal["anthropic", "openai"]

CONFIG_FILENAME = ".forgeprep.yml"

# Provider definitions: how each backend family is reached through LiteLLM
PROVIDER_DEFS: dict[str, dict[str, Any]] = {
    "anthropic": {
        "name": "Anthropic (Claude)",
        "litellm_prefix": "anthropic/",
        "env_var": "ANTHROPIC_API_KEY",
    },
    "openai": {
        "name": "OpenAI-compatible (OpenAI, xAI, Groq, ...)",
        "litellm_prefix": "openai/",
        "env_var": "OPENAI_API_KEY",
    },
}


@dataclass
class BudgetConfig:
    """Token budget split and file allocation knobs.

    The percentages are empirically chosen defaults, not derived values.
    Category shares must sum to at most 1.0.
    """

    system_prompt_share: float = 0.033
    task_description_share: float = 0.05
    must_read_files_share: float = 0.667
    related_examples_share: float = 0.133
    patterns_share: float = 0.033
    history_share: float = 0.033
    output_buffer_share: float = 0.05

    high_priority_share: float = 0.8
    medium_priority_share: float = 0.8
    low_priority_min_remaining: int = 500
    low_priority_cap: int = 1000

    truncate_chars: int = 3000
    truncate_boundary_ratio: float = 0.8

    def __post_init__(self) -> None:
        total = sum(
            (
                self.system_prompt_share,
                self.task_description_share,
                self.must_read_files_share,
                self.related_examples_share,
                self.patterns_share,
                self.history_share,
                self.output_buffer_share,
            )
        )
        if total > 1.0 + 1e-9:
            raise ValueError(f"Budget category shares sum to {total:.3f}, must be <= 1.0")
        for name in ("high_priority_share", "medium_priority_share"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be within [0, 1], got {value}")


@dataclass
class PrepConfig:
    """Configuration for a single preparation run."""

    instance_id: str = ""
    total_budget: int = 60_000
    file_budget: int = 40_000
    call_timeout_s: float = 120.0
    worker_max_tokens: int = 4096
    synthesis_max_tokens: int = 8192
    max_turns: int = 10
    budget: BudgetConfig = field(default_factory=BudgetConfig)
    # model key -> partial ModelConfig fields (id, provider, api_key_env, ...)
    model_overrides: dict[str, dict[str, Any]] = field(default_factory=dict)
    # tier -> model key
    tier_overrides: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.instance_id:
            self.instance_id = f"forgeprep-{uuid.uuid4().hex[:8]}"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PrepConfig:
        """Build a config from a parsed YAML mapping, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        kwargs: dict[str, Any] = {k: v for k, v in data.items() if k in known}

        budget_data = data.get("budget")
        if isinstance(budget_data, dict):
            budget_known = {f.name for f in fields(BudgetConfig)}
            kwargs["budget"] = BudgetConfig(
                **{k: v for k, v in budget_data.items() if k in budget_known}
            )
        elif "budget" in kwargs:
            del kwargs["budget"]

        models = data.get("models")
        if isinstance(models, dict):
            kwargs["model_overrides"] = models
        tiers = data.get("tiers")
        if isinstance(tiers, dict):
            kwargs["tier_overrides"] = {str(k): str(v) for k, v in tiers.items()}

        return cls(**kwargs)


def load_config(cwd: str) -> dict[str, Any] | None:
    """Load config from .forgeprep.yml if it exists, else return None."""
    import yaml

    config_path = Path(cwd) / CONFIG_FILENAME
    if not config_path.exists():
        return None
    with config_path.open() as f:
        data = yaml.safe_load(f)
    return data if isinstance(data, dict) else None


def resolve_config(cwd: str) -> PrepConfig:
    """Return the project's config, falling back to defaults."""
    data = load_config(cwd)
    return PrepConfig.from_dict(data) if data else PrepConfig()
