"""Preparation foreman — runs workers in dependency waves and synthesizes a package.

Wave 1 (parallel):  file_discovery (required), constraint_identification
Wave 2 (parallel):  pattern_extraction, dependency_mapping, fed wave-1 output
Wave 3 (optional):  web_research, documentation_reading, only when asked for

Each wave starts only after the previous one has fully settled. One
supervision-tier call then turns all successful outputs plus the
budget-selected file contents into a validated ``ContextPackage``.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel

from forgeprep.budget.allocator import ContextBudgetManager, Priority
from forgeprep.budget.pipeline import (
    BudgetResult,
    BudgetSummary,
    CandidateFile,
    process_files_with_budget,
)
from forgeprep.config import PrepConfig
from forgeprep.errors import ConfigurationError, ProviderError
from forgeprep.llm.router import CallResult, CostDistributionEntry, TierRouter
from forgeprep.preparation.collaborators import (
    PATTERN_SUCCESS_THRESHOLD,
    ContextStore,
    ErrorCategory,
    ErrorContext,
    FeedbackAction,
    FeedbackRouter,
    PatternScore,
)
from forgeprep.preparation.package import ContextPackage, ProjectType, check_package
from forgeprep.preparation.synthesis import (
    SYSTEM_PROMPT,
    SynthesisError,
    SynthesisInput,
    build_synthesis_prompt,
    parse_package,
)
from forgeprep.workers import (
    BaseWorker,
    ConstraintIdentificationOutput,
    ConstraintIdentifierWorker,
    DependencyMapperWorker,
    DocumentationReaderWorker,
    FileDiscoveryOutput,
    FileDiscoveryWorker,
    PatternExtractionWorker,
    WebResearchWorker,
    WorkerAdditionalContext,
    WorkerInput,
    WorkerResult,
)

logger = logging.getLogger(__name__)

Phase = Literal["wave_1", "wave_2", "wave_3", "synthesis"]

# role -> (worker class, wave, required)
WORKER_ROLES: dict[str, tuple[type[BaseWorker[Any]], int, bool]] = {
    "file_discovery": (FileDiscoveryWorker, 1, True),
    "constraint_identification": (ConstraintIdentifierWorker, 1, False),
    "pattern_extraction": (PatternExtractionWorker, 2, False),
    "dependency_mapping": (DependencyMapperWorker, 2, False),
    "web_research": (WebResearchWorker, 3, False),
    "documentation_reading": (DocumentationReaderWorker, 3, False),
}

FILE_PRIORITIES: dict[str, Priority] = {
    "must_read": "high",
    "should_read": "medium",
    "may_read": "low",
}

MAX_PATTERNS = 5


@dataclass
class PreparationOptions:
    needs_web_research: bool = False
    research_queries: list[str] = field(default_factory=list)
    documentation: str | None = None
    project_type: ProjectType = "feature"
    context: str | None = None


@dataclass
class WaveMetrics:
    """Totals over every worker that ran, successful or not."""

    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_cost_usd: float = 0.0
    succeeded: int = 0
    failed: int = 0

    @classmethod
    def from_results(cls, results: Mapping[str, WorkerResult[Any]]) -> WaveMetrics:
        metrics = cls()
        for result in results.values():
            metrics.total_input_tokens += result.metrics.input_tokens
            metrics.total_output_tokens += result.metrics.output_tokens
            metrics.total_cost_usd += result.metrics.cost_usd
            if result.success:
                metrics.succeeded += 1
            else:
                metrics.failed += 1
        return metrics


@dataclass(frozen=True)
class WaveTiming:
    wave: int
    roles: tuple[str, ...]
    started_at: float
    finished_at: float


@dataclass
class WaveExecutionResult:
    """Per-role worker results and running totals for one run."""

    success: bool = True
    results: dict[str, WorkerResult[Any]] = field(default_factory=dict)
    metrics: WaveMetrics = field(default_factory=WaveMetrics)
    waves: list[WaveTiming] = field(default_factory=list)
    error: str | None = None
    phase: Phase | None = None
    failed_role: str | None = None

    def output(self, role: str) -> BaseModel | None:
        """Validated output of a role, or ``None`` if it failed or did not run."""
        result = self.results.get(role)
        if result is None or not result.success:
            return None
        return result.data

    def outputs(self) -> dict[str, BaseModel]:
        return {role: data for role in self.results if (data := self.output(role)) is not None}

    @property
    def file_discovery(self) -> FileDiscoveryOutput | None:
        return self.output("file_discovery")  # type: ignore[return-value]

    @property
    def constraint_identification(self) -> ConstraintIdentificationOutput | None:
        return self.output("constraint_identification")  # type: ignore[return-value]


@dataclass(frozen=True)
class SynthesisMetrics:
    input_tokens: int
    output_tokens: int
    cost_usd: float
    latency_ms: float
    tier: str
    model: str

    @classmethod
    def from_call(cls, call: CallResult) -> SynthesisMetrics:
        return cls(
            input_tokens=call.input_tokens,
            output_tokens=call.output_tokens,
            cost_usd=call.cost_usd,
            latency_ms=call.latency_ms,
            tier=call.tier,
            model=call.model,
        )


@dataclass
class PreparationMetrics:
    worker_metrics: WaveMetrics
    synthesis_metrics: SynthesisMetrics | None = None
    total_cost_usd: float = 0.0
    elapsed_s: float = 0.0
    cost_distribution: dict[str, CostDistributionEntry] = field(default_factory=dict)
    budget: BudgetSummary | None = None


@dataclass
class PreparationResult:
    success: bool
    metrics: PreparationMetrics
    package: ContextPackage | None = None
    error: str | None = None
    phase: Phase | None = None
    failed_role: str | None = None
    waves: WaveExecutionResult | None = None
    feedback: FeedbackAction | None = None


class PreparationForeman:
    """Coordinates the preparation workers for one task at a time.

    A foreman owns one ``TierRouter`` and therefore one cost accumulator.
    ``prepare`` resets it on entry, so the reported cost distribution
    always covers that run alone.

    Usage:
        foreman = PreparationForeman(config=resolve_config(cwd))
        result = await foreman.prepare("Add pagination to /users", cwd)
        if result.success:
            print(result.package.to_json())
    """

    def __init__(
        self,
        router: TierRouter | None = None,
        config: PrepConfig | None = None,
        store: ContextStore | None = None,
        feedback_router: FeedbackRouter | None = None,
    ) -> None:
        self.config = config or (router.config if router else PrepConfig())
        self.router = router or TierRouter(self.config)
        self.store = store
        self.feedback_router = feedback_router
        self.workers: dict[str, BaseWorker[Any]] = {
            role: worker_cls(
                self.router,
                max_turns=self.config.max_turns,
                max_tokens=self.config.worker_max_tokens,
            )
            for role, (worker_cls, _, _) in WORKER_ROLES.items()
        }

    # ------------------------------------------------------------------
    # Waves
    # ------------------------------------------------------------------

    async def execute_wave_based_workers(
        self,
        task: str,
        project_path: str,
        options: PreparationOptions | None = None,
    ) -> WaveExecutionResult:
        """Run the three waves. Never raises for worker failures."""
        options = options or PreparationOptions()
        outcome = WaveExecutionResult()

        # Wave 1: task and project path only
        base = WorkerInput(task=task, project_root=project_path, context=options.context)
        await self._run_wave(
            1, {"file_discovery": base, "constraint_identification": base}, outcome
        )

        for role, (_, wave, required) in WORKER_ROLES.items():
            if wave != 1 or not required:
                continue
            result = outcome.results[role]
            if not result.success:
                name = self.workers[role].name or role
                outcome.success = False
                outcome.error = f"{name} is required but failed: {result.error}"
                outcome.phase = "wave_1"
                outcome.failed_role = role
                logger.error("Preparation aborted: %s", outcome.error)
                return outcome

        # Wave 2: fed the discovered files and constraints
        discovery = outcome.file_discovery
        constraints = outcome.constraint_identification
        file_list = "\n".join(f"- {p}" for p in discovery.paths()) if discovery else None
        wave2_input = WorkerInput(
            task=task,
            project_root=project_path,
            context=options.context,
            additional_context=WorkerAdditionalContext(
                file_list=file_list or None,
                constraints=(constraints.render() or None) if constraints else None,
            ),
        )
        await self._run_wave(
            2, {"pattern_extraction": wave2_input, "dependency_mapping": wave2_input}, outcome
        )

        # Wave 3: background research, only on request
        wave3: dict[str, WorkerInput] = {}
        if options.needs_web_research:
            queries = "\n".join(f"- {q}" for q in options.research_queries)
            wave3["web_research"] = WorkerInput(
                task=task,
                project_root=project_path,
                context=options.context,
                additional_context=WorkerAdditionalContext(
                    research_queries=queries or None,
                    project_context=file_list,
                ),
            )
        if options.documentation:
            wave3["documentation_reading"] = WorkerInput(
                task=task,
                project_root=project_path,
                context=options.context,
                additional_context=WorkerAdditionalContext(documentation=options.documentation),
            )
        if wave3:
            await self._run_wave(3, wave3, outcome)

        logger.info(
            "Waves complete: %d succeeded, %d failed, $%.4f",
            outcome.metrics.succeeded,
            outcome.metrics.failed,
            outcome.metrics.total_cost_usd,
        )
        return outcome

    async def _run_wave(
        self, wave: int, jobs: dict[str, WorkerInput], outcome: WaveExecutionResult
    ) -> None:
        roles = tuple(jobs)
        logger.info("Wave %d: %s", wave, ", ".join(roles))
        started = time.monotonic()
        settled = await asyncio.gather(
            *(self.workers[role].execute(jobs[role]) for role in roles),
            return_exceptions=True,
        )
        finished = time.monotonic()

        for role, result in zip(roles, settled):
            if isinstance(result, Exception):
                logger.warning("Worker %s raised: %s", role, result)
                result = WorkerResult.failure(str(result) or type(result).__name__)
            elif isinstance(result, BaseException):
                raise result
            elif not result.success:
                logger.warning("Worker %s failed: %s", role, result.error)
            outcome.results[role] = result

        outcome.waves.append(WaveTiming(wave, roles, started, finished))
        outcome.metrics = WaveMetrics.from_results(outcome.results)

    # ------------------------------------------------------------------
    # Full preparation
    # ------------------------------------------------------------------

    async def prepare(
        self,
        task: str,
        project_path: str,
        options: PreparationOptions | None = None,
    ) -> PreparationResult:
        """Run the waves, budget the files, synthesize, stamp and store."""
        options = options or PreparationOptions()
        started = time.monotonic()
        logger.info("Preparing task: %s", task[:80])
        # Cost distribution covers this run only
        self.router.reset_cost_accumulator()

        waves = await self.execute_wave_based_workers(task, project_path, options)
        metrics = PreparationMetrics(
            worker_metrics=waves.metrics, total_cost_usd=waves.metrics.total_cost_usd
        )
        if not waves.success:
            return self._finish(
                PreparationResult(
                    success=False,
                    metrics=metrics,
                    error=waves.error,
                    phase=waves.phase,
                    failed_role=waves.failed_role,
                    waves=waves,
                ),
                started,
            )

        budget = await self._budget_files(waves.file_discovery, project_path)
        metrics.budget = budget.summary
        patterns = await self._load_patterns()

        prompt = build_synthesis_prompt(
            SynthesisInput(
                task=task,
                worker_outputs=waves.outputs(),
                files=budget.files,
                patterns=patterns,
                project_root=project_path,
            )
        )

        logger.info("Synthesizing context package")
        try:
            call = await self.router.call(
                "context_package_assembly",
                system_prompt=SYSTEM_PROMPT,
                user_prompt=prompt,
                max_tokens=self.config.synthesis_max_tokens,
                temperature=0.0,
            )
        except (ConfigurationError, ProviderError) as e:
            timed_out = isinstance(e.__cause__, asyncio.TimeoutError)
            category: ErrorCategory = "timeout" if timed_out else "runtime_error"
            return self._synthesis_failure(
                f"Synthesis call failed: {e}", category, metrics, waves, started
            )

        metrics.synthesis_metrics = SynthesisMetrics.from_call(call)
        metrics.total_cost_usd += call.cost_usd

        stamp = {
            "id": str(uuid.uuid4()),
            "projectType": options.project_type,
            "created": datetime.now(timezone.utc).isoformat(),
            "preparedBy": self.config.instance_id,
        }
        try:
            package = parse_package(call.content, stamp)
        except SynthesisError as e:
            return self._synthesis_failure(str(e), "unknown", metrics, waves, started)

        problems = check_package(package)
        if problems:
            return self._synthesis_failure(
                "Package validation failed: " + "; ".join(problems),
                "unknown",
                metrics,
                waves,
                started,
            )

        await self._store_package(task, package, options.project_type)

        logger.info(
            "Context package %s ready: %d must-read files, $%.4f total",
            package.id,
            len(package.code_context.must_read),
            metrics.total_cost_usd,
        )
        return self._finish(
            PreparationResult(
                success=True,
                metrics=metrics,
                package=package,
                waves=waves,
            ),
            started,
        )

    async def _budget_files(
        self, discovery: FileDiscoveryOutput | None, project_path: str
    ) -> BudgetResult:
        candidates: list[CandidateFile] = []
        seen: set[str] = set()
        root = Path(project_path)
        relevant = discovery.relevant_files if discovery else []
        for f in relevant:
            path = str(root / f.path)
            if path in seen:
                continue
            seen.add(path)
            candidates.append(
                CandidateFile(path=path, reason=f.reason, priority=FILE_PRIORITIES[f.priority])
            )

        manager = ContextBudgetManager(self.config.total_budget, self.config.budget)
        return await process_files_with_budget(
            candidates,
            self.config.total_budget,
            file_budget=self.config.file_budget,
            config=self.config.budget,
            manager=manager,
        )

    async def _load_patterns(self) -> list[PatternScore]:
        if self.store is None:
            return []
        try:
            scores = await self.store.get_pattern_scores()
        except Exception as e:
            logger.warning("Could not load pattern scores: %s", e)
            return []
        good = [s for s in scores if s.success_rate >= PATTERN_SUCCESS_THRESHOLD]
        good.sort(key=lambda s: s.success_rate, reverse=True)
        return good[:MAX_PATTERNS]

    async def _store_package(
        self, task: str, package: ContextPackage, project_type: ProjectType
    ) -> None:
        if self.store is None:
            return
        try:
            await self.store.store_context(
                f"ContextPackage prepared for task {task[:100]}:\n{package.to_json()}",
                "completion",
                ["context-package", project_type, self.config.instance_id],
            )
        except Exception as e:
            logger.warning("Could not store context package %s: %s", package.id, e)

    def _synthesis_failure(
        self,
        error: str,
        category: ErrorCategory,
        metrics: PreparationMetrics,
        waves: WaveExecutionResult,
        started: float,
    ) -> PreparationResult:
        logger.error("Synthesis failed: %s", error)
        feedback = None
        if self.feedback_router is not None:
            try:
                feedback = self.feedback_router.route(
                    ErrorContext(category=category, message=error, previous_attempts=0)
                )
            except Exception as e:
                logger.warning("Feedback router failed: %s", e)
            else:
                logger.info(
                    "Feedback router decided: %s (%s)", feedback.action, feedback.reason
                )
        return self._finish(
            PreparationResult(
                success=False,
                metrics=metrics,
                error=error,
                phase="synthesis",
                waves=waves,
                feedback=feedback,
            ),
            started,
        )

    def _finish(self, result: PreparationResult, started: float) -> PreparationResult:
        result.metrics.elapsed_s = time.monotonic() - started
        result.metrics.cost_distribution = self.router.get_cost_distribution()
        self.router.check_cost_distribution()
        return result

