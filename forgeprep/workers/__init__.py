"""Labor-tier workers used during preparation."""

from __future__ import annotations

from forgeprep.workers.base import (
    BaseWorker,
    WorkerAdditionalContext,
    WorkerInput,
    WorkerMetrics,
    WorkerResult,
)
from forgeprep.workers.constraint_identifier import (
    ConstraintIdentificationOutput,
    ConstraintIdentifierWorker,
)
from forgeprep.workers.dependency_mapper import DependencyMapperWorker, DependencyMappingOutput
from forgeprep.workers.documentation_reader import (
    DocumentationReaderWorker,
    DocumentationReadingOutput,
)
from forgeprep.workers.file_discovery import FileDiscoveryOutput, FileDiscoveryWorker
from forgeprep.workers.pattern_extraction import PatternExtractionOutput, PatternExtractionWorker
from forgeprep.workers.web_research import WebResearchOutput, WebResearchWorker

__all__ = [
    "BaseWorker",
    "ConstraintIdentificationOutput",
    "ConstraintIdentifierWorker",
    "DependencyMapperWorker",
    "DependencyMappingOutput",
    "DocumentationReaderWorker",
    "DocumentationReadingOutput",
    "FileDiscoveryOutput",
    "FileDiscoveryWorker",
    "PatternExtractionOutput",
    "PatternExtractionWorker",
    "WebResearchOutput",
    "WebResearchWorker",
    "WorkerAdditionalContext",
    "WorkerInput",
    "WorkerMetrics",
    "WorkerResult",
]
