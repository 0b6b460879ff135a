"""The context package — everything an execution run needs to start a task."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import Field, field_validator

from forgeprep.models import CamelModel

ProjectType = Literal["feature", "bugfix", "greenfield", "refactor", "research"]

NO_RATIONALE = "No rationale provided"

# Serialized packages beyond this size crowd out the execution context
MAX_PACKAGE_CHARS = 50_000


class TaskScope(CamelModel):
    in_scope: list[str]
    out_of_scope: list[str]


class TaskSection(CamelModel):
    description: str = Field(min_length=1)
    acceptance_criteria: list[str]
    scope: TaskScope


class Component(CamelModel):
    name: str
    purpose: str
    location: str
    entry_points: list[str] | None = None


class Architecture(CamelModel):
    overview: str
    relevant_components: list[Component]
    data_flow: str | None = None
    dependencies: list[str]


class MustReadFile(CamelModel):
    path: str
    reason: str
    focus: str | None = None


class ProtectedFile(CamelModel):
    path: str
    reason: str


class RelatedExample(CamelModel):
    path: str
    similarity: str


class CodeContext(CamelModel):
    must_read: list[MustReadFile]
    must_not_modify: list[ProtectedFile]
    related_examples: list[RelatedExample]


class PatternsSection(CamelModel):
    naming_conventions: str
    file_organization: str
    testing_approach: str
    error_handling: str
    code_style: list[str]


class ConstraintsSection(CamelModel):
    technical: list[str]
    quality: list[str]
    timeline: str | None


class Risk(CamelModel):
    description: str
    mitigation: str


class PreviousAttempt(CamelModel):
    what: str
    result: str
    lesson: str


class Decision(CamelModel):
    decision: str
    rationale: str = NO_RATIONALE


class History(CamelModel):
    previous_attempts: list[PreviousAttempt]
    related_decisions: list[Decision]

    @field_validator("related_decisions", mode="before")
    @classmethod
    def _normalize_decisions(cls, value: Any) -> Any:
        """Accept ``{decision, ...}``, ``{title, ...}`` or a bare string."""
        if not isinstance(value, list):
            return value
        return [_normalize_decision(item) for item in value]


def _normalize_decision(item: Any) -> Any:
    if isinstance(item, str):
        return {"decision": item, "rationale": NO_RATIONALE}
    if not isinstance(item, dict):
        return item
    rationale = item.get("rationale")
    if not isinstance(rationale, str):
        rationale = NO_RATIONALE
    if "decision" in item:
        return {"decision": item["decision"], "rationale": rationale}
    if "title" in item:
        return {"decision": item["title"], "rationale": rationale}
    return item


class HumanSync(CamelModel):
    required_before: list[str]
    ambiguities: list[str]


class ContextPackage(CamelModel):
    """Validated preparation output.

    The four metadata fields are stamped by the foreman after synthesis;
    the rest comes from the supervision-tier model.
    """

    id: UUID
    project_type: ProjectType
    created: datetime
    prepared_by: str

    task: TaskSection
    architecture: Architecture
    code_context: CodeContext
    patterns: PatternsSection
    constraints: ConstraintsSection
    risks: list[Risk]
    history: History
    human_sync: HumanSync

    def to_json(self, indent: int | None = 2) -> str:
        return json.dumps(self.to_wire(), indent=indent)


def check_package(package: ContextPackage) -> list[str]:
    """Return soundness problems a schema alone cannot express.

    An empty list means the package is usable as is.
    """
    problems: list[str] = []
    if not package.task.description.strip():
        problems.append("Task description is missing")
    if not package.code_context.must_read and not package.code_context.related_examples:
        problems.append("No code context identified")
    size = len(package.to_json())
    if size > MAX_PACKAGE_CHARS:
        problems.append(f"Package too large: {size} chars (max {MAX_PACKAGE_CHARS})")
    return problems
