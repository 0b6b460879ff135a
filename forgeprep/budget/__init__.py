"""Token budgeting and content fidelity selection."""

from __future__ import annotations

from forgeprep.budget.allocator import (
    BudgetAllocation,
    ContextBudgetManager,
    FileAllocation,
    FileBudgetRequest,
    allocate_file_budget,
)
from forgeprep.budget.extractor import ExtractedContent, FileContentExtractor
from forgeprep.budget.pipeline import (
    BudgetedFile,
    BudgetResult,
    BudgetSummary,
    CandidateFile,
    process_files_with_budget,
)
from forgeprep.budget.tokens import TokenCounter

__all__ = [
    "BudgetAllocation",
    "BudgetedFile",
    "BudgetResult",
    "BudgetSummary",
    "CandidateFile",
    "ContextBudgetManager",
    "ExtractedContent",
    "FileAllocation",
    "FileBudgetRequest",
    "FileContentExtractor",
    "TokenCounter",
    "allocate_file_budget",
    "process_files_with_budget",
]
