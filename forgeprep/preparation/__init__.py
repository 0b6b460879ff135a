"""Preparation department: wave-scheduled workers and package synthesis."""

from __future__ import annotations

from forgeprep.preparation.collaborators import (
    ContextStore,
    ErrorContext,
    FeedbackAction,
    FeedbackRouter,
    PatternScore,
)
from forgeprep.preparation.foreman import (
    PreparationForeman,
    PreparationMetrics,
    PreparationOptions,
    PreparationResult,
    WaveExecutionResult,
    WaveMetrics,
)
from forgeprep.preparation.package import ContextPackage, check_package
from forgeprep.preparation.store import LocalContextStore

__all__ = [
    "ContextPackage",
    "ContextStore",
    "ErrorContext",
    "FeedbackAction",
    "FeedbackRouter",
    "LocalContextStore",
    "PatternScore",
    "PreparationForeman",
    "PreparationMetrics",
    "PreparationOptions",
    "PreparationResult",
    "WaveExecutionResult",
    "WaveMetrics",
    "check_package",
]
