"""Budget-aware file processing: read, allocate, then pick a fidelity per file."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from forgeprep.budget.allocator import ContextBudgetManager, FileBudgetRequest, Priority
from forgeprep.budget.extractor import FidelityLevel, FileContentExtractor
from forgeprep.config import BudgetConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CandidateFile:
    """A file proposed for inclusion in the assembled context."""

    path: str
    reason: str
    priority: Priority


@dataclass
class BudgetedFile:
    path: str
    reason: str
    priority: Priority
    original_tokens: int
    allocated_tokens: int
    content: str
    fidelity: FidelityLevel

    @property
    def was_extracted(self) -> bool:
        """True when the content is anything other than the whole file."""
        return self.fidelity != "full"


@dataclass
class BudgetSummary:
    total_files: int = 0
    included_full: int = 0
    included_signatures: int = 0
    included_truncated: int = 0
    included_summary: int = 0
    excluded: int = 0
    total_tokens_used: int = 0
    budget_remaining: int = 0


@dataclass
class BudgetResult:
    files: list[BudgetedFile] = field(default_factory=list)
    summary: BudgetSummary = field(default_factory=BudgetSummary)

    def included(self) -> list[BudgetedFile]:
        return [f for f in self.files if f.fidelity != "excluded"]


async def process_files_with_budget(
    files: list[CandidateFile],
    total_budget: int = 40_000,
    *,
    file_budget: int | None = None,
    config: BudgetConfig | None = None,
    manager: ContextBudgetManager | None = None,
) -> BudgetResult:
    """Fit ``files`` into the must-read share of ``total_budget``.

    All files are read concurrently. Each readable file gets an allocation by
    priority and is then rendered at the richest fidelity that fits it;
    unreadable or zero-allocation files come back as ``excluded``.

    Args:
        files: Candidate files with priorities.
        total_budget: Overall token ceiling split by category.
        file_budget: Explicit file-content budget; defaults to the must-read
            category of ``total_budget``.
        config: Category shares and allocation thresholds.
        manager: Budget manager for the current run. A new one is created
            when omitted.
    """
    config = config or (manager.config if manager else BudgetConfig())
    manager = manager or ContextBudgetManager(total_budget, config)
    extractor = FileContentExtractor(config.truncate_chars, config.truncate_boundary_ratio)

    # Allocations are keyed by path; the first listing of a path wins
    unique: dict[str, CandidateFile] = {}
    for f in files:
        if f.path in unique:
            logger.debug("Dropping duplicate candidate %s", f.path)
            continue
        unique[f.path] = f
    files = list(unique.values())

    extracted = await asyncio.gather(*(extractor.extract(f.path) for f in files))

    requests = [
        FileBudgetRequest(path=f.path, priority=f.priority, tokens=content.tokens_full)
        for f, content in zip(files, extracted)
        if content is not None
    ]
    if file_budget is None:
        file_budget = manager.allocation.must_read_files
    allocations = {
        a.path: a.allocated_tokens
        for a in manager.allocate_file_budget(requests, file_budget)
    }

    result = BudgetResult()
    summary = result.summary
    summary.total_files = len(files)

    for f, content in zip(files, extracted):
        allocated = allocations.get(f.path, 0)

        if content is None or allocated == 0:
            result.files.append(
                BudgetedFile(
                    path=f.path,
                    reason=f.reason,
                    priority=f.priority,
                    original_tokens=content.tokens_full if content else 0,
                    allocated_tokens=0,
                    content="",
                    fidelity="excluded",
                )
            )
            summary.excluded += 1
            continue

        selection = extractor.select_for_budget(content, allocated)
        result.files.append(
            BudgetedFile(
                path=f.path,
                reason=f.reason,
                priority=f.priority,
                original_tokens=content.tokens_full,
                allocated_tokens=selection.tokens,
                content=selection.content,
                fidelity=selection.level,
            )
        )
        summary.total_tokens_used += selection.tokens

        if selection.level == "full":
            summary.included_full += 1
        elif selection.level == "signatures":
            summary.included_signatures += 1
        elif selection.level == "truncated":
            summary.included_truncated += 1
        elif selection.level == "summary":
            summary.included_summary += 1
        else:
            summary.excluded += 1

    manager.use("must_read_files", summary.total_tokens_used)
    summary.budget_remaining = file_budget - summary.total_tokens_used

    logger.info(
        "Budgeted %d files: %d full, %d signatures, %d truncated, %d summary, "
        "%d excluded (%d/%d tokens)",
        summary.total_files,
        summary.included_full,
        summary.included_signatures,
        summary.included_truncated,
        summary.included_summary,
        summary.excluded,
        summary.total_tokens_used,
        file_budget,
    )
    return result
