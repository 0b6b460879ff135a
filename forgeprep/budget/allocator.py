"""Token budget partitioning across context categories and candidate files."""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass, fields
from typing import Literal

from forgeprep.config import BudgetConfig

logger = logging.getLogger(__name__)

Priority = Literal["high", "medium", "low"]

BudgetCategory = Literal[
    "system_prompt",
    "task_description",
    "must_read_files",
    "related_examples",
    "patterns",
    "history",
    "output_buffer",
]


@dataclass
class BudgetAllocation:
    """Tokens per context category."""

    system_prompt: int = 0
    task_description: int = 0
    must_read_files: int = 0
    related_examples: int = 0
    patterns: int = 0
    history: int = 0
    output_buffer: int = 0

    def total(self) -> int:
        return sum(getattr(self, f.name) for f in fields(self))

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass(frozen=True)
class FileBudgetRequest:
    """A candidate file with its full token size."""

    path: str
    priority: Priority
    tokens: int


@dataclass(frozen=True)
class FileAllocation:
    path: str
    priority: Priority
    allocated_tokens: int


class ContextBudgetManager:
    """Splits a token ceiling into categories and tracks usage per category.

    One manager belongs to one preparation run.
    """

    def __init__(self, total_budget: int = 60_000, config: BudgetConfig | None = None) -> None:
        if total_budget < 0:
            raise ValueError(f"total_budget must be non-negative, got {total_budget}")
        self.total_budget = total_budget
        self.config = config or BudgetConfig()
        c = self.config
        self.allocation = BudgetAllocation(
            system_prompt=math.floor(total_budget * c.system_prompt_share),
            task_description=math.floor(total_budget * c.task_description_share),
            must_read_files=math.floor(total_budget * c.must_read_files_share),
            related_examples=math.floor(total_budget * c.related_examples_share),
            patterns=math.floor(total_budget * c.patterns_share),
            history=math.floor(total_budget * c.history_share),
            output_buffer=math.floor(total_budget * c.output_buffer_share),
        )
        self.used = BudgetAllocation()

    def get_remaining(self, category: BudgetCategory) -> int:
        return getattr(self.allocation, category) - getattr(self.used, category)

    def use(self, category: BudgetCategory, tokens: int) -> bool:
        """Record ``tokens`` against ``category``.

        Returns False when the request exceeds the headroom; in that case the
        category is filled to its allocation and no further.
        """
        remaining = self.get_remaining(category)
        if tokens <= remaining:
            setattr(self.used, category, getattr(self.used, category) + tokens)
            return True
        setattr(self.used, category, getattr(self.allocation, category))
        return False

    def get_summary(self) -> dict[str, object]:
        remaining = BudgetAllocation(
            **{f.name: self.get_remaining(f.name) for f in fields(BudgetAllocation)}  # type: ignore[arg-type]
        )
        return {
            "total": self.total_budget,
            "allocated": self.allocation.to_dict(),
            "used": self.used.to_dict(),
            "remaining": remaining.to_dict(),
        }

    def allocate_file_budget(
        self,
        files: list[FileBudgetRequest],
        budget: int | None = None,
    ) -> list[FileAllocation]:
        """Allocate the file-content budget across ``files`` by priority.

        ``budget`` defaults to the must-read category. Every input file gets
        exactly one allocation, low-priority files included when they are
        shut out.
        """
        if budget is None:
            budget = self.allocation.must_read_files
        return allocate_file_budget(files, budget, self.config)


def allocate_file_budget(
    files: list[FileBudgetRequest],
    budget: int,
    config: BudgetConfig | None = None,
) -> list[FileAllocation]:
    """Priority-bucketed allocation of ``budget`` tokens over ``files``.

    1. High files share up to ``high_priority_share`` of the budget, each
       capped at an equal slice of it.
    2. Medium files share ``medium_priority_share`` of what is left the
       same way.
    3. Low files split the rest, each capped at ``low_priority_cap``, but
       only while more than ``low_priority_min_remaining`` tokens remain.
       Otherwise each one is recorded with zero tokens.

    No file is allocated more than its own size and the allocations never
    sum past ``budget``.
    """
    c = config or BudgetConfig()
    budget = max(0, budget)

    high = [f for f in files if f.priority == "high"]
    medium = [f for f in files if f.priority == "medium"]
    low = [f for f in files if f.priority == "low"]

    results: list[FileAllocation] = []
    remaining = budget

    def _bucket(bucket: list[FileBudgetRequest], pool: int) -> None:
        nonlocal remaining
        per_file = math.floor(pool / max(len(bucket), 1))
        spent = 0
        for f in bucket:
            allocated = max(0, min(f.tokens, per_file, pool - spent))
            results.append(FileAllocation(f.path, f.priority, allocated))
            spent += allocated
            remaining -= allocated

    _bucket(high, math.floor(budget * c.high_priority_share))

    if medium:
        _bucket(medium, math.floor(max(remaining, 0) * c.medium_priority_share))

    if low and remaining > c.low_priority_min_remaining:
        per_low = math.floor(remaining / len(low))
        for f in low:
            allocated = max(0, min(f.tokens, per_low, c.low_priority_cap))
            results.append(FileAllocation(f.path, f.priority, allocated))
            remaining -= allocated
    else:
        for f in low:
            results.append(FileAllocation(f.path, f.priority, 0))

    logger.debug(
        "Allocated %d/%d file tokens across %d files (%d high, %d medium, %d low)",
        budget - remaining,
        budget,
        len(files),
        len(high),
        len(medium),
        len(low),
    )
    return results
