"""Worker base class — one focused, tier-routed unit of preparation work.

Workers return structured output through the ``submit_result`` tool rather
than free text, and every payload is validated against the worker's
pydantic schema. Two execution modes:

* single-turn: one call with ``submit_result`` forced
* exploration: a tool loop (glob/read/grep) of up to ``max_turns`` calls,
  with ``submit_result`` forced on the last turn

``execute`` never raises; every outcome is a ``WorkerResult``.
"""

from __future__ import annotations

import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar, Generic, TypeVar

from pydantic import BaseModel, ValidationError

from forgeprep.llm.router import CallResult, TierRouter
from forgeprep.llm.tiers import (
    SUBMIT_RESULT_TOOL,
    OperationKind,
    Tier,
    ToolCall,
    ToolChoice,
    ToolSchema,
    extract_submit_result,
)
from forgeprep.workers.tools import ToolSet, default_toolset

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

DEFAULT_MAX_TURNS = 10


@dataclass
class WorkerAdditionalContext:
    """Pre-gathered material included in a worker's prompt."""

    file_list: str | None = None
    constraints: str | None = None
    config_files: str | None = None
    research_queries: str | None = None
    project_context: str | None = None
    documentation: str | None = None


@dataclass
class WorkerInput:
    task: str
    project_root: str
    context: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    additional_context: WorkerAdditionalContext | None = None


@dataclass(frozen=True)
class WorkerMetrics:
    """Usage for one worker invocation, summed over all of its turns.

    ``started_at``/``finished_at`` are ``time.monotonic()`` readings.
    """

    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: float = 0.0
    latency_ms: float = 0.0
    turn_count: int = 0
    tool_call_count: int = 0
    tier: Tier = "haiku"
    model: str = ""
    started_at: float = 0.0
    finished_at: float = 0.0


@dataclass(frozen=True)
class ToolCallRecord:
    name: str
    args: dict[str, Any]
    output: str
    success: bool


@dataclass(frozen=True)
class WorkerResult(Generic[T]):
    """Outcome of one worker invocation. Metrics are present either way."""

    success: bool
    metrics: WorkerMetrics
    data: T | None = None
    confidence: float | None = None
    error: str | None = None
    tool_calls: tuple[ToolCallRecord, ...] = ()

    @classmethod
    def failure(cls, error: str, metrics: WorkerMetrics | None = None) -> WorkerResult[T]:
        now = time.monotonic()
        return cls(
            success=False,
            error=error,
            metrics=metrics or WorkerMetrics(started_at=now, finished_at=now),
        )


@dataclass
class _RunStats:
    started_at: float = field(default_factory=time.monotonic)
    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: float = 0.0
    turn_count: int = 0
    tool_call_count: int = 0
    tier: Tier = "haiku"
    model: str = ""
    records: list[ToolCallRecord] = field(default_factory=list)

    def add(self, result: CallResult) -> None:
        if self.turn_count == 0:
            self.tier = result.tier
            self.model = result.model
        self.turn_count += 1
        self.input_tokens += result.input_tokens
        self.output_tokens += result.output_tokens
        self.cost_usd += result.cost_usd

    def metrics(self) -> WorkerMetrics:
        finished = time.monotonic()
        return WorkerMetrics(
            input_tokens=self.input_tokens,
            output_tokens=self.output_tokens,
            cost_usd=self.cost_usd,
            latency_ms=(finished - self.started_at) * 1000,
            turn_count=self.turn_count,
            tool_call_count=self.tool_call_count,
            tier=self.tier,
            model=self.model,
            started_at=self.started_at,
            finished_at=finished,
        )


class BaseWorker(ABC, Generic[T]):
    """Abstract base for labor-tier workers.

    Subclasses set ``name``, ``operation`` and ``output_model`` and implement
    the two prompt builders. Exploring workers also set ``can_explore``.

    Example::

        class FileDiscoveryWorker(BaseWorker[FileDiscoveryOutput]):
            name = "FileDiscovery"
            operation = "file_discovery"
            output_model = FileDiscoveryOutput
            can_explore = True

            def get_system_prompt(self) -> str: ...
            def build_user_prompt(self, input: WorkerInput) -> str: ...

        result = await FileDiscoveryWorker(router).execute(
            WorkerInput(task="Add pagination", project_root=".")
        )
    """

    name: ClassVar[str] = ""
    operation: ClassVar[OperationKind]
    output_model: ClassVar[type[BaseModel]]
    can_explore: ClassVar[bool] = False
    default_max_turns: ClassVar[int] = DEFAULT_MAX_TURNS

    def __init__(
        self,
        router: TierRouter,
        *,
        max_turns: int | None = None,
        max_tokens: int = 4096,
        toolset: ToolSet | None = None,
    ) -> None:
        self.router = router
        # A configured cap can only tighten the per-role default
        limit = self.default_max_turns
        if max_turns is not None:
            limit = min(max_turns, limit)
        self.max_turns = max(1, limit)
        self.max_tokens = max_tokens
        self.toolset = toolset or default_toolset()

    @abstractmethod
    def get_system_prompt(self) -> str:
        """System prompt, including the ``submit_result`` instructions."""

    @abstractmethod
    def build_user_prompt(self, input: WorkerInput) -> str:
        """User message for one task."""

    def get_tools(self) -> list[ToolSchema]:
        if self.can_explore:
            return [*self.toolset.schemas(), SUBMIT_RESULT_TOOL]
        return [SUBMIT_RESULT_TOOL]

    async def execute(self, input: WorkerInput) -> WorkerResult[T]:
        """Run the worker. Failures come back as ``success=False``."""
        stats = _RunStats()
        try:
            if self.can_explore:
                result = await self._run_exploration(input, stats)
            else:
                result = await self._run_single_turn(input, stats)
        except Exception as e:
            logger.warning("%s failed: %s", self.name, e)
            return WorkerResult(
                success=False,
                error=str(e) or type(e).__name__,
                metrics=stats.metrics(),
                tool_calls=tuple(stats.records),
            )

        logger.debug(
            "%s finished: success=%s turns=%d tools=%d $%.5f",
            self.name,
            result.success,
            result.metrics.turn_count,
            result.metrics.tool_call_count,
            result.metrics.cost_usd,
        )
        return result

    # ------------------------------------------------------------------
    # Execution modes
    # ------------------------------------------------------------------

    async def _run_single_turn(self, input: WorkerInput, stats: _RunStats) -> WorkerResult[T]:
        call = await self.router.call(
            self.operation,
            system_prompt=self.get_system_prompt(),
            user_prompt=self.build_user_prompt(input),
            max_tokens=self.max_tokens,
            temperature=0.0,
            tools=self.get_tools(),
            tool_choice=ToolChoice.tool(SUBMIT_RESULT_TOOL.name),
        )
        stats.add(call)

        outcome = self._accept(call.tool_calls, stats)
        if outcome is not None:
            return outcome
        return self._fail("No submit_result tool call in response", stats)

    async def _run_exploration(self, input: WorkerInput, stats: _RunStats) -> WorkerResult[T]:
        system_prompt = self.get_system_prompt()
        conversation = self.build_user_prompt(input)
        tools = self.get_tools()

        while stats.turn_count < self.max_turns:
            last_turn = stats.turn_count + 1 == self.max_turns
            choice = ToolChoice.tool(SUBMIT_RESULT_TOOL.name) if last_turn else ToolChoice.auto()

            call = await self.router.call(
                self.operation,
                system_prompt=system_prompt,
                user_prompt=conversation,
                max_tokens=self.max_tokens,
                temperature=0.0,
                tools=tools,
                tool_choice=choice,
            )
            stats.add(call)

            outcome = self._accept(call.tool_calls, stats)
            if outcome is not None:
                return outcome

            if not call.tool_calls:
                return self._fail(
                    f"Worker stopped after {stats.turn_count} turn(s) without submit_result",
                    stats,
                )

            sections = await self._run_tools(call.tool_calls, input.project_root, stats)
            if sections:
                conversation += "\n\n--- Tool Results ---\n" + "\n\n".join(sections)
                conversation += (
                    "\n\n--- Continue ---\nUse the tool results above to continue your "
                    "analysis. Call submit_result when you have gathered enough information."
                )

        return self._fail(f"Max turns ({self.max_turns}) reached without submit_result", stats)

    async def _run_tools(
        self, tool_calls: list[ToolCall], project_root: str, stats: _RunStats
    ) -> list[str]:
        sections: list[str] = []
        for tc in tool_calls:
            if tc.name == SUBMIT_RESULT_TOOL.name:
                continue
            stats.tool_call_count += 1
            output, is_error = await self.toolset.dispatch(tc.name, tc.args, project_root)
            rendered = f"Error: {output}" if is_error else output
            stats.records.append(
                ToolCallRecord(name=tc.name, args=tc.args, output=rendered, success=not is_error)
            )
            sections.append(
                f"[Tool: {tc.name}]\nInput: {json.dumps(tc.args)}\nResult: {rendered}"
            )
        return sections

    # ------------------------------------------------------------------
    # Result handling
    # ------------------------------------------------------------------

    def _accept(self, tool_calls: list[ToolCall], stats: _RunStats) -> WorkerResult[T] | None:
        """Validate a ``submit_result`` payload; ``None`` if there is none."""
        submitted = extract_submit_result(tool_calls)
        if submitted is None:
            return None

        payload = submitted.result
        if isinstance(payload, str):
            # Some models send the object JSON-encoded
            try:
                payload = json.loads(payload)
            except json.JSONDecodeError:
                return self._fail("submit_result payload is not a JSON object", stats)

        try:
            data = self.output_model.model_validate(payload)
        except ValidationError as e:
            return self._fail(f"Output validation failed: {e}", stats)

        return WorkerResult(
            success=True,
            data=data,  # type: ignore[arg-type]
            confidence=submitted.confidence,
            metrics=stats.metrics(),
            tool_calls=tuple(stats.records),
        )

    def _fail(self, error: str, stats: _RunStats) -> WorkerResult[T]:
        return WorkerResult(
            success=False,
            error=error,
            metrics=stats.metrics(),
            tool_calls=tuple(stats.records),
        )

