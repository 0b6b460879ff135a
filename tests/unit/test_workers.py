"""Tests for worker output schemas and prompt building."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest
from pydantic import ValidationError

from forgeprep.workers import (
    ConstraintIdentificationOutput,
    ConstraintIdentifierWorker,
    DependencyMapperWorker,
    DependencyMappingOutput,
    DocumentationReaderWorker,
    FileDiscoveryOutput,
    FileDiscoveryWorker,
    PatternExtractionOutput,
    PatternExtractionWorker,
    WebResearchWorker,
    WorkerAdditionalContext,
    WorkerInput,
)
from forgeprep.workers.documentation_reader import MAX_DOCUMENTATION_CHARS

# ── Output schemas ───────────────────────────────────────────────────────────


def test_file_discovery_parses_camel_case() -> None:
    out = FileDiscoveryOutput.model_validate(
        {
            "relevantFiles": [
                {"path": "a.py", "reason": "r", "priority": "must_read"},
                {"path": "b.py", "reason": "r", "priority": "should_read"},
                {"path": "c.py", "reason": "r", "priority": "may_read"},
            ],
            "suggestedNewFiles": [{"path": "d.py", "purpose": "new module"}],
            "confidence": 85,
            "unexpected": "ignored",
        }
    )
    assert out.paths() == ["a.py", "b.py", "c.py"]
    assert out.paths("should_read") == ["b.py"]
    assert out.suggested_new_files[0].purpose == "new module"


def test_file_discovery_rejects_unknown_priority() -> None:
    with pytest.raises(ValidationError):
        FileDiscoveryOutput.model_validate(
            {"relevantFiles": [{"path": "a.py", "reason": "r", "priority": "urgent"}]}
        )


def test_confidence_bounds() -> None:
    with pytest.raises(ValidationError):
        FileDiscoveryOutput.model_validate({"relevantFiles": [], "confidence": 120})


def test_dependency_from_alias_round_trip() -> None:
    out = DependencyMappingOutput.model_validate(
        {
            "dependencies": [{"from": "a.py", "to": "b.py", "type": "import"}],
            "externalDependencies": [{"name": "httpx", "usedBy": ["a.py"], "isDev": False}],
        }
    )
    assert out.dependencies[0].from_ == "a.py"
    wire = out.to_wire()
    assert wire["dependencies"][0]["from"] == "a.py"
    assert "imports" not in wire["dependencies"][0]
    assert wire["externalDependencies"][0]["usedBy"] == ["a.py"]


def test_pattern_extraction_defaults() -> None:
    out = PatternExtractionOutput.model_validate(
        {"conventions": {"fileOrganization": "feature folders"}}
    )
    assert out.patterns == []
    assert out.conventions.file_organization == "feature folders"
    assert out.conventions.naming is None


def test_constraints_render() -> None:
    out = ConstraintIdentificationOutput.model_validate(
        {
            "typeConstraints": [
                {
                    "name": "strict",
                    "description": "Strict mode",
                    "source": "tsconfig.json",
                    "enforcement": "compile_time",
                    "severity": "error",
                }
            ],
            "apiConstraints": [
                {"name": "users", "description": "REST contract", "source": "openapi.yaml"}
            ],
        }
    )
    assert out.render() == (
        "- [Type] strict: Strict mode (tsconfig.json)\n"
        "- [API] users: REST contract (openapi.yaml)"
    )


def test_empty_constraints_render_empty() -> None:
    assert ConstraintIdentificationOutput().render() == ""


# ── Prompts ──────────────────────────────────────────────────────────────────


@pytest.fixture
def project(tmp_path: Path) -> Path:
    (tmp_path / "pyproject.toml").write_text("[project]\n")
    (tmp_path / "src").mkdir()
    return tmp_path


def test_worker_identity() -> None:
    router = MagicMock()
    workers = [
        FileDiscoveryWorker(router),
        ConstraintIdentifierWorker(router),
        PatternExtractionWorker(router),
        DependencyMapperWorker(router),
        WebResearchWorker(router),
        DocumentationReaderWorker(router),
    ]
    assert [w.operation for w in workers] == [
        "file_discovery",
        "constraint_identification",
        "pattern_extraction",
        "dependency_mapping",
        "web_research",
        "documentation_reading",
    ]
    assert [w.can_explore for w in workers] == [True, True, True, True, False, False]
    assert all("submit_result" in w.get_system_prompt() for w in workers)


def test_file_discovery_prompt_has_task_and_listing(project: Path) -> None:
    prompt = FileDiscoveryWorker(MagicMock()).build_user_prompt(
        WorkerInput(task="Add pagination", project_root=str(project), context="Use cursors")
    )
    assert prompt.startswith("## Task\n\nAdd pagination")
    assert "pyproject.toml" in prompt
    assert "src/" in prompt
    assert "## Context\n\nUse cursors" in prompt


def test_wave_two_prompts_include_files_and_constraints(project: Path) -> None:
    extra = WorkerAdditionalContext(
        file_list="- src/app.py\n- src/util.py",
        constraints="- [Lint] E501: Max line length 100 (ruff.toml)",
    )
    inp = WorkerInput(task="t", project_root=str(project), additional_context=extra)
    for worker in (PatternExtractionWorker(MagicMock()), DependencyMapperWorker(MagicMock())):
        prompt = worker.build_user_prompt(inp)
        assert "- src/app.py\n- src/util.py" in prompt
        assert "## Known Constraints\n\n- [Lint] E501" in prompt


def test_wave_two_prompt_without_extras(project: Path) -> None:
    prompt = PatternExtractionWorker(MagicMock()).build_user_prompt(
        WorkerInput(task="t", project_root=str(project))
    )
    assert "## Relevant Files" not in prompt
    assert "## Known Constraints" not in prompt


def test_web_research_prompt_lists_questions() -> None:
    extra = WorkerAdditionalContext(
        research_queries="- How do cursors work?", project_context="- src/app.py"
    )
    prompt = WebResearchWorker(MagicMock()).build_user_prompt(
        WorkerInput(task="Add pagination", project_root=".", additional_context=extra)
    )
    assert "## Specific Questions\n\n- How do cursors work?" in prompt
    assert "## Project Context\n\n- src/app.py" in prompt


def test_documentation_is_truncated() -> None:
    docs = "d" * (MAX_DOCUMENTATION_CHARS + 10)
    prompt = DocumentationReaderWorker(MagicMock()).build_user_prompt(
        WorkerInput(
            task="t",
            project_root=".",
            additional_context=WorkerAdditionalContext(documentation=docs),
        )
    )
    assert "[... documentation truncated ...]" in prompt
    assert "d" * (MAX_DOCUMENTATION_CHARS + 1) not in prompt


def test_documentation_missing() -> None:
    prompt = DocumentationReaderWorker(MagicMock()).build_user_prompt(
        WorkerInput(task="t", project_root=".")
    )
    assert "(none supplied)" in prompt
