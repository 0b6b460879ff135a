"""Tests for configuration loading."""

from __future__ import annotations

import pytest

from forgeprep.config import BudgetConfig, PrepConfig, load_config, resolve_config

# ── Defaults ─────────────────────────────────────────────────


def test_prep_config_defaults():
    cfg = PrepConfig()
    assert cfg.total_budget == 60_000
    assert cfg.file_budget == 40_000
    assert cfg.call_timeout_s == 120.0
    assert cfg.worker_max_tokens == 4096
    assert cfg.synthesis_max_tokens == 8192
    assert cfg.max_turns == 10
    assert cfg.instance_id.startswith("forgeprep-")


def test_instance_id_kept_when_given():
    assert PrepConfig(instance_id="i-7").instance_id == "i-7"


def test_budget_shares_sum_within_one():
    cfg = BudgetConfig()
    total = (
        cfg.system_prompt_share
        + cfg.task_description_share
        + cfg.must_read_files_share
        + cfg.related_examples_share
        + cfg.patterns_share
        + cfg.history_share
        + cfg.output_buffer_share
    )
    assert total <= 1.0


def test_budget_shares_over_one_rejected():
    with pytest.raises(ValueError, match="sum"):
        BudgetConfig(must_read_files_share=0.95)


def test_priority_share_out_of_range_rejected():
    with pytest.raises(ValueError, match="high_priority_share"):
        BudgetConfig(high_priority_share=1.5)


# ── from_dict ────────────────────────────────────────────────


def test_from_dict_builds_nested_budget():
    cfg = PrepConfig.from_dict(
        {
            "total_budget": 30_000,
            "budget": {"low_priority_cap": 250, "not_a_field": 1},
            "unknown": "ignored",
        }
    )
    assert cfg.total_budget == 30_000
    assert cfg.budget.low_priority_cap == 250
    assert cfg.budget.high_priority_share == 0.8


def test_from_dict_model_and_tier_overrides():
    cfg = PrepConfig.from_dict(
        {
            "models": {"grok-worker": {"id": "grok-5"}},
            "tiers": {"haiku": "haiku"},
        }
    )
    assert cfg.model_overrides == {"grok-worker": {"id": "grok-5"}}
    assert cfg.tier_overrides == {"haiku": "haiku"}


def test_from_dict_ignores_non_mapping_budget():
    cfg = PrepConfig.from_dict({"budget": "lots"})
    assert isinstance(cfg.budget, BudgetConfig)


# ── YAML file ────────────────────────────────────────────────


def test_load_config_missing_file(tmp_path):
    assert load_config(str(tmp_path)) is None


def test_load_config_reads_yaml(tmp_path):
    (tmp_path / ".forgeprep.yml").write_text(
        "call_timeout_s: 30\nmax_turns: 4\ntiers:\n  haiku: haiku\n"
    )
    data = load_config(str(tmp_path))
    assert data == {"call_timeout_s": 30, "max_turns": 4, "tiers": {"haiku": "haiku"}}


def test_load_config_non_mapping_is_none(tmp_path):
    (tmp_path / ".forgeprep.yml").write_text("- just\n- a list\n")
    assert load_config(str(tmp_path)) is None


def test_resolve_config_falls_back_to_defaults(tmp_path):
    cfg = resolve_config(str(tmp_path))
    assert cfg.total_budget == 60_000


def test_resolve_config_applies_file(tmp_path):
    (tmp_path / ".forgeprep.yml").write_text("file_budget: 12000\ninstance_id: ci-run\n")
    cfg = resolve_config(str(tmp_path))
    assert cfg.file_budget == 12_000
    assert cfg.instance_id == "ci-run"
