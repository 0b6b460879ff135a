"""Interfaces of the services preparation talks to but does not own."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Protocol, runtime_checkable

ErrorCategory = Literal[
    "compilation_error",
    "type_error",
    "test_failure",
    "lint_error",
    "runtime_error",
    "timeout",
    "unknown",
]

FeedbackActionType = Literal["retry", "escalate", "fail", "human_sync"]

# Patterns below this success rate are not offered to synthesis
PATTERN_SUCCESS_THRESHOLD = 0.7


@dataclass(frozen=True)
class PatternScore:
    id: str
    name: str
    success_rate: float  # 0-1
    contexts: tuple[str, ...] = ()


@dataclass(frozen=True)
class ErrorContext:
    category: ErrorCategory
    message: str
    previous_attempts: int = 0
    file: str | None = None


@dataclass(frozen=True)
class FeedbackAction:
    action: FeedbackActionType
    reason: str
    suggested_fix: str | None = None


@dataclass(frozen=True)
class StoredContext:
    """Receipt for a record accepted by a context store."""

    id: str
    context_type: str
    tags: tuple[str, ...] = field(default_factory=tuple)


@runtime_checkable
class ContextStore(Protocol):
    """Persistent memory shared across runs."""

    async def store_context(
        self, content: str, context_type: str, tags: list[str]
    ) -> StoredContext: ...

    async def get_pattern_scores(self) -> list[PatternScore]: ...


@runtime_checkable
class FeedbackRouter(Protocol):
    """Decides what happens after a failure."""

    def route(self, context: ErrorContext) -> FeedbackAction: ...
