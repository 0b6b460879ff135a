"""Documentation reading — distills supplied documentation (single turn)."""

from __future__ import annotations

from pydantic import Field

from forgeprep.models import CamelModel
from forgeprep.workers.base import BaseWorker, WorkerInput

# Documentation beyond this many characters is cut before prompting
MAX_DOCUMENTATION_CHARS = 60_000


class RelevantSection(CamelModel):
    title: str
    key_points: list[str] = Field(default_factory=list)
    relevance: str


class ApiParameter(CamelModel):
    name: str
    type: str | None = None
    description: str
    required: bool | None = None


class ApiReference(CamelModel):
    name: str
    type: str
    signature: str | None = None
    description: str
    parameters: list[ApiParameter] | None = None
    returns: str | None = None


class DocExample(CamelModel):
    description: str
    code: str
    language: str | None = None


class DocWarning(CamelModel):
    type: str
    message: str
    affects: str | None = None


class DocumentationReadingOutput(CamelModel):
    summary: str
    relevant_sections: list[RelevantSection] = Field(default_factory=list)
    api_references: list[ApiReference] = Field(default_factory=list)
    examples: list[DocExample] = Field(default_factory=list)
    warnings: list[DocWarning] = Field(default_factory=list)
    confidence: float = Field(default=50, ge=0, le=100)


SYSTEM_PROMPT = """\
You are a **Documentation Reader Worker** preparing an engineering task.

Read the documentation you are given and extract what the task needs:
relevant sections, API references, usage examples and warnings (deprecations,
breaking changes, security notes). Only use the supplied text.

Call submit_result with:

{
  "summary": "What this documentation covers, in two sentences",
  "relevantSections": [
    {"title": "Authentication", "keyPoints": ["Bearer tokens", "Expire after 1h"],
     "relevance": "Task adds a login flow"}
  ],
  "apiReferences": [
    {"name": "login", "type": "function", "signature": "login(user, password) -> Token",
     "description": "Authenticate a user",
     "parameters": [{"name": "user", "type": "str", "description": "User name", "required": true}],
     "returns": "Token"}
  ],
  "examples": [
    {"description": "Basic login", "code": "token = login('a', 'b')", "language": "python"}
  ],
  "warnings": [
    {"type": "deprecation", "message": "login_v1 is deprecated", "affects": "login_v1"}
  ],
  "confidence": 85
}
"""


class DocumentationReaderWorker(BaseWorker[DocumentationReadingOutput]):
    name = "DocumentationReader"
    operation = "documentation_reading"
    output_model = DocumentationReadingOutput

    def get_system_prompt(self) -> str:
        return SYSTEM_PROMPT

    def build_user_prompt(self, input: WorkerInput) -> str:
        parts = [f"## Task Context\n\n{input.task}"]
        extra = input.additional_context
        docs = (extra.documentation if extra else None) or ""
        if len(docs) > MAX_DOCUMENTATION_CHARS:
            docs = docs[:MAX_DOCUMENTATION_CHARS] + "\n\n[... documentation truncated ...]"
        parts.append(f"## Documentation\n\n{docs or '(none supplied)'}")
        if input.context:
            parts.append(f"## Additional Context\n\n{input.context}")
        parts.append(
            "## Instructions\n\n"
            "Extract the parts of the documentation relevant to the task and call "
            "submit_result."
        )
        return "\n\n".join(parts)
