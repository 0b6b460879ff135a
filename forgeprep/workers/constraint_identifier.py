"""Constraint identification — type, test, lint, build and API rules the code must obey."""

from __future__ import annotations

from typing import Literal

from pydantic import Field

from forgeprep.models import CamelModel
from forgeprep.workers.base import BaseWorker, WorkerInput
from forgeprep.workers.tools import build_minimal_context

Enforcement = Literal["compile_time", "runtime", "lint"]
Severity = Literal["error", "warning", "off"]


class _Constraint(CamelModel):
    name: str
    description: str
    source: str


class TypeConstraint(_Constraint):
    enforcement: Enforcement
    severity: Severity


class TestConstraint(_Constraint):
    framework: str | None = None


class LintConstraint(_Constraint):
    severity: Severity


class BuildConstraint(_Constraint):
    tool: str | None = None


class ApiConstraint(_Constraint):
    api_type: str | None = None


class ConstraintIdentificationOutput(CamelModel):
    type_constraints: list[TypeConstraint] = Field(default_factory=list)
    test_constraints: list[TestConstraint] = Field(default_factory=list)
    lint_constraints: list[LintConstraint] = Field(default_factory=list)
    build_constraints: list[BuildConstraint] = Field(default_factory=list)
    api_constraints: list[ApiConstraint] = Field(default_factory=list)
    confidence: float = Field(default=50, ge=0, le=100)

    def render(self) -> str:
        """One line per constraint, grouped by kind, for downstream prompts."""
        groups = (
            ("Type", self.type_constraints),
            ("Test", self.test_constraints),
            ("Lint", self.lint_constraints),
            ("Build", self.build_constraints),
            ("API", self.api_constraints),
        )
        lines = [
            f"- [{label}] {c.name}: {c.description} ({c.source})"
            for label, items in groups
            for c in items
        ]
        return "\n".join(lines)


SYSTEM_PROMPT = """\
You are a **Constraint Identification Worker** preparing an engineering task.

Find the rules any change to this project must respect, by reading its
configuration: type checker settings (tsconfig.json, mypy/pyright config),
test setup (pytest, jest, vitest), lint rules (eslint, ruff, biome), build
tooling and API schemas (OpenAPI, GraphQL). Use glob, read and grep.

When done, call submit_result with:

{
  "typeConstraints": [
    {"name": "strict", "description": "Strict type checking", "source": "tsconfig.json",
     "enforcement": "compile_time", "severity": "error"}
  ],
  "testConstraints": [
    {"name": "coverage", "description": "80% line coverage", "source": "pyproject.toml",
     "framework": "pytest"}
  ],
  "lintConstraints": [
    {"name": "E501", "description": "Max line length 100", "source": "ruff.toml",
     "severity": "error"}
  ],
  "buildConstraints": [
    {"name": "target", "description": "ES2022 output", "source": "vite.config.ts", "tool": "vite"}
  ],
  "apiConstraints": [
    {"name": "users API", "description": "REST contract for /users", "source": "openapi.yaml",
     "apiType": "REST"}
  ],
  "confidence": 80
}

enforcement is one of compile_time, runtime, lint. severity is one of
error, warning, off. Report only constraints you actually found.
"""


class ConstraintIdentifierWorker(BaseWorker[ConstraintIdentificationOutput]):
    name = "ConstraintIdentifier"
    operation = "constraint_identification"
    output_model = ConstraintIdentificationOutput
    can_explore = True
    default_max_turns = 8

    def get_system_prompt(self) -> str:
        return SYSTEM_PROMPT

    def build_user_prompt(self, input: WorkerInput) -> str:
        parts = [
            f"## Task Context\n\n{input.task}",
            f"## Project Structure\n\n{build_minimal_context(input.project_root)}",
        ]
        extra = input.additional_context
        if extra and extra.config_files:
            parts.append(f"## Known Configuration Files\n\n{extra.config_files}")
        if input.context:
            parts.append(f"## Additional Context\n\n{input.context}")
        parts.append(
            "## Instructions\n\n"
            "Identify the type, test, lint, build and API constraints of this project "
            "that matter for the task. Explore the configuration files, then call "
            "submit_result."
        )
        return "\n\n".join(parts)
