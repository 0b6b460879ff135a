"""Tests for the worker execution loop."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from forgeprep.llm.router import CallResult
from forgeprep.llm.tiers import ToolCall
from forgeprep.workers.base import WorkerInput, WorkerResult
from forgeprep.workers.documentation_reader import DocumentationReaderWorker
from forgeprep.workers.file_discovery import FileDiscoveryWorker

DISCOVERY_PAYLOAD = {
    "relevantFiles": [
        {"path": "src/app.py", "reason": "entry point", "priority": "must_read"},
        {"path": "src/util.py", "reason": "helpers", "priority": "may_read"},
    ],
    "confidence": 80,
}


def _call(tool_calls: list[ToolCall] | None = None, content: str = "") -> CallResult:
    return CallResult(
        content=content,
        tier="haiku",
        model="grok-4-1-fast-reasoning",
        input_tokens=100,
        output_tokens=20,
        cost_usd=0.001,
        latency_ms=5.0,
        tool_calls=tool_calls or [],
    )


def _submit(result, confidence=90) -> ToolCall:
    return ToolCall(
        id="s", name="submit_result", args={"result": result, "confidence": confidence}
    )


def _router(*results: CallResult) -> MagicMock:
    router = MagicMock()
    router.call = AsyncMock(side_effect=list(results))
    return router


@pytest.fixture
def project(tmp_path: Path) -> Path:
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "app.py").write_text("def main():\n    pass\n")
    return tmp_path


def _input(project: Path, **kwargs) -> WorkerInput:
    return WorkerInput(task="Add pagination", project_root=str(project), **kwargs)


# ── Single-turn mode ─────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_single_turn_forces_submit_result(project: Path) -> None:
    router = _router(_call([_submit({"summary": "Docs about auth"})]))
    worker = DocumentationReaderWorker(router)

    result = await worker.execute(_input(project))

    assert result.success
    assert result.data.summary == "Docs about auth"
    assert result.confidence == 90
    kwargs = router.call.call_args.kwargs
    assert router.call.call_args.args[0] == "documentation_reading"
    assert kwargs["tool_choice"].name == "submit_result"
    assert [t.name for t in kwargs["tools"]] == ["submit_result"]
    assert kwargs["temperature"] == 0.0


@pytest.mark.asyncio
async def test_single_turn_without_submit_fails(project: Path) -> None:
    router = _router(_call(content="I think the docs say..."))
    result = await DocumentationReaderWorker(router).execute(_input(project))

    assert not result.success
    assert result.error == "No submit_result tool call in response"
    assert result.metrics.turn_count == 1
    assert result.metrics.cost_usd == pytest.approx(0.001)


@pytest.mark.asyncio
async def test_string_payload_is_decoded(project: Path) -> None:
    router = _router(_call([_submit(json.dumps({"summary": "ok"}))]))
    result = await DocumentationReaderWorker(router).execute(_input(project))
    assert result.success
    assert result.data.summary == "ok"


@pytest.mark.asyncio
async def test_undecodable_string_payload_fails(project: Path) -> None:
    router = _router(_call([_submit("{not json")]))
    result = await DocumentationReaderWorker(router).execute(_input(project))
    assert not result.success
    assert result.error == "submit_result payload is not a JSON object"


@pytest.mark.asyncio
async def test_validation_failure_reported(project: Path) -> None:
    # summary is required
    router = _router(_call([_submit({"relevantSections": []})]))
    result = await DocumentationReaderWorker(router).execute(_input(project))
    assert not result.success
    assert result.error.startswith("Output validation failed:")
    assert result.data is None


# ── Exploration mode ─────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_exploration_runs_tools_then_submits(project: Path) -> None:
    router = _router(
        _call([ToolCall(id="1", name="glob", args={"pattern": "**/*.py"})]),
        _call([ToolCall(id="2", name="read", args={"path": "src/app.py"})]),
        _call([_submit(DISCOVERY_PAYLOAD)]),
    )
    worker = FileDiscoveryWorker(router)

    result = await worker.execute(_input(project))

    assert result.success
    assert result.data.paths("must_read") == ["src/app.py"]
    assert result.metrics.turn_count == 3
    assert result.metrics.tool_call_count == 2
    assert result.metrics.input_tokens == 300
    assert result.metrics.output_tokens == 60
    assert result.metrics.cost_usd == pytest.approx(0.003)
    assert result.metrics.model == "grok-4-1-fast-reasoning"
    assert [r.name for r in result.tool_calls] == ["glob", "read"]
    assert all(r.success for r in result.tool_calls)

    # Tool output is fed back into the next turn's prompt
    third_prompt = router.call.call_args_list[2].kwargs["user_prompt"]
    assert "--- Tool Results ---" in third_prompt
    assert "[Tool: read]" in third_prompt
    assert "def main():" in third_prompt


@pytest.mark.asyncio
async def test_exploration_offers_tools_and_auto_choice(project: Path) -> None:
    router = _router(_call([_submit(DISCOVERY_PAYLOAD)]))
    await FileDiscoveryWorker(router).execute(_input(project))

    kwargs = router.call.call_args.kwargs
    assert [t.name for t in kwargs["tools"]] == ["glob", "read", "grep", "submit_result"]
    assert kwargs["tool_choice"].mode == "auto"


@pytest.mark.asyncio
async def test_last_turn_forces_submit(project: Path) -> None:
    glob = _call([ToolCall(id="1", name="glob", args={"pattern": "*"})])
    router = _router(glob, glob, glob)
    worker = FileDiscoveryWorker(router, max_turns=3)

    result = await worker.execute(_input(project))

    choices = [c.kwargs["tool_choice"] for c in router.call.call_args_list]
    assert [c.mode for c in choices] == ["auto", "auto", "tool"]
    assert choices[-1].name == "submit_result"
    assert not result.success
    assert result.error == "Max turns (3) reached without submit_result"
    assert result.metrics.turn_count == 3


@pytest.mark.asyncio
async def test_exploration_stops_when_model_makes_no_calls(project: Path) -> None:
    router = _router(_call(content="Done."))
    result = await FileDiscoveryWorker(router).execute(_input(project))
    assert not result.success
    assert result.error == "Worker stopped after 1 turn(s) without submit_result"


@pytest.mark.asyncio
async def test_tool_errors_are_fed_back(project: Path) -> None:
    router = _router(
        _call([ToolCall(id="1", name="read", args={"path": "../etc/passwd"})]),
        _call([_submit(DISCOVERY_PAYLOAD)]),
    )
    result = await FileDiscoveryWorker(router).execute(_input(project))

    assert result.success
    assert not result.tool_calls[0].success
    prompt = router.call.call_args_list[1].kwargs["user_prompt"]
    assert "Error: Access denied: Path is outside project root" in prompt


def test_configured_max_turns_only_lowers_default() -> None:
    router = MagicMock()
    assert FileDiscoveryWorker(router).max_turns == 10
    assert FileDiscoveryWorker(router, max_turns=4).max_turns == 4
    assert FileDiscoveryWorker(router, max_turns=50).max_turns == 10
    assert FileDiscoveryWorker(router, max_turns=0).max_turns == 1


# ── Failure isolation ────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_router_exception_becomes_failed_result(project: Path) -> None:
    router = MagicMock()
    router.call = AsyncMock(side_effect=RuntimeError("provider exploded"))

    result = await FileDiscoveryWorker(router).execute(_input(project))

    assert isinstance(result, WorkerResult)
    assert not result.success
    assert result.error == "provider exploded"
    assert result.metrics.turn_count == 0
    assert result.metrics.finished_at >= result.metrics.started_at


def test_failure_constructor_has_metrics() -> None:
    result = WorkerResult.failure("boom")
    assert not result.success
    assert result.error == "boom"
    assert result.metrics.cost_usd == 0.0
