"""Pattern extraction — conventions, recurring patterns and anti-patterns."""

from __future__ import annotations

from pydantic import Field

from forgeprep.models import CamelModel
from forgeprep.workers.base import BaseWorker, WorkerInput
from forgeprep.workers.tools import build_minimal_context


class Pattern(CamelModel):
    name: str
    description: str
    examples: list[str] = Field(default_factory=list)
    applicability: str


class AntiPattern(CamelModel):
    name: str
    description: str
    locations: list[str] = Field(default_factory=list)
    suggestion: str


class Conventions(CamelModel):
    naming: str | None = None
    file_organization: str | None = None
    error_handling: str | None = None
    testing: str | None = None
    imports: str | None = None
    state_management: str | None = None
    data_fetching: str | None = None


class PatternExtractionOutput(CamelModel):
    patterns: list[Pattern] = Field(default_factory=list)
    conventions: Conventions = Field(default_factory=Conventions)
    anti_patterns: list[AntiPattern] = Field(default_factory=list)
    confidence: float = Field(default=50, ge=0, le=100)


SYSTEM_PROMPT = """\
You are a **Pattern Extraction Worker** preparing an engineering task.

Learn how this codebase is written so new code can match it. Use glob, read
and grep to compare several files and find:

- architectural and component patterns (service layer, repositories, hooks, ...)
- conventions for naming, file organization, error handling, testing,
  imports, state management and data fetching
- anti-patterns and inconsistencies worth avoiding

When done, call submit_result with:

{
  "patterns": [
    {"name": "Repository pattern", "description": "Data access goes through repository classes",
     "examples": ["src/repositories/users.py"], "applicability": "All database access"}
  ],
  "conventions": {
    "naming": "snake_case functions, PascalCase classes",
    "fileOrganization": "Feature folders under src/",
    "errorHandling": "Custom exception hierarchy",
    "testing": "pytest, tests/unit mirrors src/"
  },
  "antiPatterns": [
    {"name": "Mixed error handling", "description": "Some handlers swallow errors",
     "locations": ["src/api/users.py"], "suggestion": "Raise domain exceptions"}
  ],
  "confidence": 80
}

Focus on what is relevant to the task. Omit convention keys you could not determine.
"""


class PatternExtractionWorker(BaseWorker[PatternExtractionOutput]):
    name = "PatternExtraction"
    operation = "pattern_extraction"
    output_model = PatternExtractionOutput
    can_explore = True

    def get_system_prompt(self) -> str:
        return SYSTEM_PROMPT

    def build_user_prompt(self, input: WorkerInput) -> str:
        parts = [
            f"## Task Context\n\n{input.task}",
            f"## Project Structure\n\n{build_minimal_context(input.project_root)}",
        ]
        extra = input.additional_context
        if extra and extra.file_list:
            parts.append(
                "## Relevant Files\n\nThese files have been identified as relevant:\n\n"
                f"{extra.file_list}"
            )
        if extra and extra.constraints:
            parts.append(f"## Known Constraints\n\n{extra.constraints}")
        if input.context:
            parts.append(f"## Additional Context\n\n{input.context}")
        parts.append(
            "## Instructions\n\n"
            "Extract the coding patterns, conventions and anti-patterns relevant to the "
            "task. Explore with glob, read and grep, then call submit_result."
        )
        return "\n\n".join(parts)
