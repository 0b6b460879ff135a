"""Synthesis prompt and response parsing for the context package."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ValidationError
from pydantic.alias_generators import to_camel

from forgeprep.budget.pipeline import BudgetedFile
from forgeprep.preparation.collaborators import PatternScore
from forgeprep.preparation.package import ContextPackage

logger = logging.getLogger(__name__)

# Worker roles in prompt order; each role is named after its operation kind
ROLE_NAMES = (
    "file_discovery",
    "constraint_identification",
    "pattern_extraction",
    "dependency_mapping",
    "web_research",
    "documentation_reading",
)

SYSTEM_PROMPT = """\
You are the **Preparation Foreman**. Several workers have analysed a codebase
for an engineering task. Combine their findings into ONE context package that
an implementation agent can start from without further exploration.

Rules:
- Use only what the workers found and the file contents you are given.
- Prefer specific file paths and concrete conventions over generic advice.
- Anything you cannot resolve goes into humanSync.ambiguities.
- Respond with a single JSON object and nothing else.

The JSON object has exactly these keys:

{
  "task": {
    "description": "The task, restated precisely",
    "acceptanceCriteria": ["Observable outcome"],
    "scope": {"inScope": ["..."], "outOfScope": ["..."]}
  },
  "architecture": {
    "overview": "How the relevant part of the system works",
    "relevantComponents": [
      {"name": "UserService", "purpose": "User CRUD", "location": "src/services/users.py",
       "entryPoints": ["create_user"]}
    ],
    "dataFlow": "request -> router -> service -> repository",
    "dependencies": ["fastapi"]
  },
  "codeContext": {
    "mustRead": [{"path": "src/services/users.py", "reason": "Modified by the task",
                  "focus": "create_user"}],
    "mustNotModify": [{"path": "src/db/migrations/", "reason": "Applied migrations"}],
    "relatedExamples": [{"path": "src/services/teams.py", "similarity": "Same CRUD shape"}]
  },
  "patterns": {
    "namingConventions": "...",
    "fileOrganization": "...",
    "testingApproach": "...",
    "errorHandling": "...",
    "codeStyle": ["..."]
  },
  "constraints": {"technical": ["..."], "quality": ["..."], "timeline": null},
  "risks": [{"description": "...", "mitigation": "..."}],
  "history": {
    "previousAttempts": [{"what": "...", "result": "...", "lesson": "..."}],
    "relatedDecisions": [{"decision": "...", "rationale": "..."}]
  },
  "humanSync": {"requiredBefore": ["..."], "ambiguities": ["..."]}
}
"""

# Metadata the foreman stamps; never taken from model output
STAMPED_FIELDS = ("id", "projectType", "created", "preparedBy")


class SynthesisError(Exception):
    """Synthesis output could not be turned into a package."""

    def __init__(self, message: str, kind: str) -> None:
        super().__init__(message)
        self.kind = kind  # "json" | "validation"


@dataclass
class SynthesisInput:
    task: str
    worker_outputs: Mapping[str, BaseModel]
    files: list[BudgetedFile]
    patterns: list[PatternScore]
    project_root: str = ""


def build_synthesis_prompt(data: SynthesisInput) -> str:
    """Assemble the user prompt for the single synthesis call."""
    parts = [f"## Task\n\n{data.task}"]

    findings: list[str] = []
    for role in ROLE_NAMES:
        output = data.worker_outputs.get(role)
        if output is None:
            continue
        payload = output.model_dump(mode="json", by_alias=True, exclude_none=True)
        rendered = json.dumps(payload, indent=2)
        findings.append(f"### {to_camel(role)}\n\n```json\n{rendered}\n```")
    parts.append("## Worker Findings\n\n" + ("\n\n".join(findings) or "(none)"))

    included = [f for f in data.files if f.fidelity != "excluded"]
    if included:
        blocks = []
        for f in included:
            shown = _display_path(f.path, data.project_root)
            blocks.append(
                f"### {shown} ({f.fidelity}, {f.priority} priority)\n"
                f"Reason: {f.reason}\n\n```\n{f.content}\n```"
            )
        parts.append("## File Contents\n\n" + "\n\n".join(blocks))

    excluded = [f for f in data.files if f.fidelity == "excluded"]
    if excluded:
        names = "\n".join(f"- {_display_path(f.path, data.project_root)}" for f in excluded)
        parts.append(f"## Files Left Out (over budget or unreadable)\n\n{names}")

    if data.patterns:
        lines = "\n".join(
            f"- {p.name} ({p.success_rate:.0%} success)" for p in data.patterns
        )
        parts.append(f"## Patterns That Worked Before\n\n{lines}")

    parts.append(
        "## Instructions\n\n"
        "Produce the context package JSON for this task. Respond with the JSON object only."
    )
    prompt = "\n\n".join(parts)
    logger.debug(
        "Synthesis prompt: %d roles, %d files, %d chars", len(findings), len(included), len(prompt)
    )
    return prompt


def parse_package(content: str, stamp: Mapping[str, Any]) -> ContextPackage:
    """Parse model output into a validated ``ContextPackage``.

    ``stamp`` supplies the metadata fields and overrides anything the model
    wrote for them. Raises ``SynthesisError`` on malformed JSON or a schema
    mismatch.
    """
    text = _strip_fences(content)
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as e:
        raise SynthesisError(f"Synthesis response is not valid JSON: {e}", "json") from e
    if not isinstance(raw, dict):
        raise SynthesisError(
            f"Synthesis response JSON must be an object, got {type(raw).__name__}", "json"
        )

    for key in STAMPED_FIELDS:
        raw.pop(key, None)
    raw.update(stamp)

    try:
        return ContextPackage.model_validate(raw)
    except ValidationError as e:
        raise SynthesisError(
            f"Context package validation failed: {e.error_count()} error(s): {e}", "validation"
        ) from e


def _strip_fences(content: str) -> str:
    content = content.strip()
    if content.startswith("```json"):
        content = content[7:]
    elif content.startswith("```"):
        content = content[3:]
    if content.endswith("```"):
        content = content[:-3]
    return content.strip()


def _display_path(path: str, project_root: str) -> str:
    if project_root and os.path.isabs(path):
        try:
            return os.path.relpath(path, project_root)
        except ValueError:
            return path
    return path
