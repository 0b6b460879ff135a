"""File discovery — finds and prioritizes the files a task touches."""

from __future__ import annotations

from typing import Literal

from pydantic import Field

from forgeprep.models import CamelModel
from forgeprep.workers.base import BaseWorker, WorkerInput
from forgeprep.workers.tools import build_minimal_context

FilePriority = Literal["must_read", "should_read", "may_read"]


class RelevantFile(CamelModel):
    path: str
    reason: str
    priority: FilePriority


class SuggestedFile(CamelModel):
    path: str
    purpose: str


class FileDiscoveryOutput(CamelModel):
    relevant_files: list[RelevantFile]
    suggested_new_files: list[SuggestedFile] = Field(default_factory=list)
    confidence: float = Field(default=50, ge=0, le=100)

    def paths(self, priority: FilePriority | None = None) -> list[str]:
        return [f.path for f in self.relevant_files if priority is None or f.priority == priority]


SYSTEM_PROMPT = """\
You are a **File Discovery Worker** preparing an engineering task.

Explore the codebase and identify the files relevant to the task. Tools:

1. **glob(pattern)**: find files matching a pattern (e.g. "**/*.py", "src/routes/*.ts")
2. **read(path)**: read a file
3. **grep(pattern, path?)**: search for text across files

Process:
1. Use glob to understand the project layout
2. Use grep to find keywords, symbols and related code
3. Read the key files to confirm their relevance
4. Build a selective, prioritized list

When done, call submit_result with:

{
  "relevantFiles": [
    {"path": "src/routes/users.ts", "reason": "User endpoints to modify", "priority": "must_read"}
  ],
  "suggestedNewFiles": [
    {"path": "src/middleware/auth.ts", "purpose": "New authentication middleware"}
  ],
  "confidence": 85
}

Priorities:
- **must_read**: files that must change or are critical to understand
- **should_read**: important context, may change
- **may_read**: useful reference only

Be selective and explain each file's relevance. Aim for 5-15 must_read files.
"""


class FileDiscoveryWorker(BaseWorker[FileDiscoveryOutput]):
    name = "FileDiscovery"
    operation = "file_discovery"
    output_model = FileDiscoveryOutput
    can_explore = True

    def get_system_prompt(self) -> str:
        return SYSTEM_PROMPT

    def build_user_prompt(self, input: WorkerInput) -> str:
        parts = [
            f"## Task\n\n{input.task}",
            f"## Project Context\n\n{build_minimal_context(input.project_root)}",
        ]
        extra = input.additional_context
        if extra and extra.project_context:
            parts.append(f"## Additional Project Context\n\n{extra.project_context}")
        if input.context:
            parts.append(f"## Context\n\n{input.context}")
        parts.append(
            "## Instructions\n\n"
            "Explore this codebase to find the files relevant to the task above. "
            "Use glob, read and grep, then call submit_result with your findings."
        )
        return "\n\n".join(parts)
