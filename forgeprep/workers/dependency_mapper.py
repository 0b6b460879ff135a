"""Dependency mapping — internal imports, external packages and entry points."""

from __future__ import annotations

from typing import Literal

from pydantic import Field

from forgeprep.models import CamelModel
from forgeprep.workers.base import BaseWorker, WorkerInput
from forgeprep.workers.tools import build_minimal_context

DependencyType = Literal["import", "type", "runtime", "test"]


class Dependency(CamelModel):
    from_: str = Field(alias="from")
    to: str
    type: DependencyType
    imports: list[str] | None = None


class ExternalDependency(CamelModel):
    name: str
    used_by: list[str] = Field(default_factory=list)
    is_dev: bool | None = None


class EntryPoint(CamelModel):
    path: str
    type: str
    description: str


class CircularDependency(CamelModel):
    cycle: list[str]
    severity: Literal["warning", "error"]


class DependencyMappingOutput(CamelModel):
    dependencies: list[Dependency] = Field(default_factory=list)
    external_dependencies: list[ExternalDependency] = Field(default_factory=list)
    entry_points: list[EntryPoint] = Field(default_factory=list)
    circular_dependencies: list[CircularDependency] = Field(default_factory=list)
    confidence: float = Field(default=50, ge=0, le=100)


SYSTEM_PROMPT = """\
You are a **Dependency Mapping Worker** preparing an engineering task.

Map how the relevant parts of this codebase depend on each other. Use glob,
read and grep to trace imports, find third-party packages (package.json,
pyproject.toml, requirements files), locate entry points and spot import
cycles.

When done, call submit_result with:

{
  "dependencies": [
    {"from": "src/api/users.py", "to": "src/services/users.py", "type": "import",
     "imports": ["UserService"]}
  ],
  "externalDependencies": [
    {"name": "fastapi", "usedBy": ["src/api/users.py"], "isDev": false}
  ],
  "entryPoints": [
    {"path": "src/main.py", "type": "server", "description": "ASGI application"}
  ],
  "circularDependencies": [
    {"cycle": ["src/a.py", "src/b.py", "src/a.py"], "severity": "warning"}
  ],
  "confidence": 75
}

type is one of import, type, runtime, test. Keep the map focused on the task.
"""


class DependencyMapperWorker(BaseWorker[DependencyMappingOutput]):
    name = "DependencyMapper"
    operation = "dependency_mapping"
    output_model = DependencyMappingOutput
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
                "## Starting Points\n\nStart from these files identified as relevant:\n\n"
                f"{extra.file_list}"
            )
        if extra and extra.constraints:
            parts.append(f"## Known Constraints\n\n{extra.constraints}")
        if input.context:
            parts.append(f"## Additional Context\n\n{input.context}")
        parts.append(
            "## Instructions\n\n"
            "Map the dependencies around the relevant files. Explore with glob, read and "
            "grep, then call submit_result."
        )
        return "\n\n".join(parts)
