"""Web research — background knowledge on frameworks and practices (single turn).

There is no live web access: answers come from model knowledge and must flag
what may be outdated.
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field

from forgeprep.models import CamelModel
from forgeprep.workers.base import BaseWorker, WorkerInput


class Finding(CamelModel):
    topic: str
    content: str
    relevance: Literal["high", "medium", "low"]
    caveats: str | None = None


class Recommendation(CamelModel):
    recommendation: str
    rationale: str
    tradeoffs: str | None = None


class Unknown(CamelModel):
    topic: str
    reason: str
    suggested_sources: list[str] | None = None


class WebResearchOutput(CamelModel):
    findings: list[Finding] = Field(default_factory=list)
    recommendations: list[Recommendation] = Field(default_factory=list)
    unknowns: list[Unknown] = Field(default_factory=list)
    confidence: float = Field(default=50, ge=0, le=100)


SYSTEM_PROMPT = """\
You are a **Research Worker** preparing an engineering task.

Answer questions about frameworks, libraries, best practices and API design
from your own knowledge. You do NOT have web access:
- say plainly what you do not know
- flag information that may be outdated
- suggest authoritative sources for verification

Call submit_result with:

{
  "findings": [
    {"topic": "JWT storage", "content": "Prefer httpOnly cookies over localStorage...",
     "relevance": "high", "caveats": "Verify against current OWASP guidance"}
  ],
  "recommendations": [
    {"recommendation": "Short-lived access tokens with refresh rotation",
     "rationale": "Limits exposure of a leaked token", "tradeoffs": "More refresh logic"}
  ],
  "unknowns": [
    {"topic": "Latest library version", "reason": "Cannot verify from training data",
     "suggestedSources": ["pypi.org"]}
  ],
  "confidence": 70
}

relevance is high (answers the question), medium (useful context) or low.
"""


class WebResearchWorker(BaseWorker[WebResearchOutput]):
    name = "WebResearch"
    operation = "web_research"
    output_model = WebResearchOutput

    def get_system_prompt(self) -> str:
        return SYSTEM_PROMPT

    def build_user_prompt(self, input: WorkerInput) -> str:
        parts = [f"## Research Query\n\n{input.task}"]
        extra = input.additional_context
        if extra and extra.research_queries:
            parts.append(f"## Specific Questions\n\n{extra.research_queries}")
        if extra and extra.project_context:
            parts.append(f"## Project Context\n\n{extra.project_context}")
        if input.context:
            parts.append(f"## Additional Context\n\n{input.context}")
        parts.append(
            "## Instructions\n\n"
            "Research the query above and return findings, practical recommendations and "
            "open unknowns through submit_result."
        )
        return "\n\n".join(parts)
