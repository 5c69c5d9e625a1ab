"""
Agentic Run Coordinator Tests
=============================
Attempt bounds, revert-and-retry, progress idempotence and recording.
"""
import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from changeflow.agents.agentic import (
    SUMMARY_MAX_ATTEMPTS,
    SUMMARY_NO_ACTIONS,
    AgenticRunCoordinator,
    ProgressTracker,
    validate_attempts,
)
from changeflow.backend.mock_backend import MockBackend
from changeflow.core.events import Topic
from changeflow.core.workspace import Workspace
from changeflow.models.action import Action, AgentPlan, GenerateActionsResult
from changeflow.models.agentic import (
    AgenticConstraints,
    AgenticProgress,
    AgenticRunResult,
    AttemptResult,
)
from changeflow.models.apply_result import CheckItem
from changeflow.models.project import ProjectLimits, ProjectProfile

ROOT = "/proj"


@pytest.fixture
def backend(tmp_path):
    b = MockBackend(data_dir=str(tmp_path))
    b.seed(ROOT, {"src": None, "src/app.ts": "export {}"})
    return b


@pytest.fixture
def ws(backend):
    return Workspace(backend)


def _failing_checks(root, tree):
    return [CheckItem(stage="build", ok=False, output="tsc failed")]


def test_successful_run_applies_and_verifies(ws, backend):
    async def run_test():
        result = await ws.agentic.run(ROOT, "tidy up", AgenticConstraints(max_attempts=2))
        assert result.ok is True
        assert len(result.attempts) == 1
        attempt = result.attempts[0]
        assert attempt.attempt == 1
        assert attempt.apply.ok is True
        assert attempt.verify.ok is True
        assert backend.read(ROOT, "README.md") is not None

    asyncio.run(run_test())


def test_failed_verification_reverts_and_retries_until_limit(ws, backend):
    backend.check_hook = _failing_checks
    stages = []
    ws.ctx.bus.subscribe(Topic.AGENTIC_PROGRESS, lambda p: stages.append((p.attempt, p.stage)))

    async def run_test():
        before = dict(backend.trees[ROOT])
        result = await ws.agentic.run(ROOT, "tidy up", AgenticConstraints(max_attempts=3))

        assert result.ok is False
        assert result.error_code == "MAX_ATTEMPTS_EXCEEDED"
        assert result.final_summary == SUMMARY_MAX_ATTEMPTS
        assert [a.attempt for a in result.attempts] == [1, 2, 3]
        assert all(not a.verify.ok for a in result.attempts)
        assert backend.trees[ROOT] == before

    asyncio.run(run_test())
    assert (1, "revert") in stages
    assert (3, "revert") in stages
    assert stages[-1] == (3, "failed")


def test_no_actions_finishes_without_attempts(ws, backend):
    backend.seed(ROOT, {
        "README.md": "# x", ".gitignore": "", "LICENSE": "MIT", "src": None, "tests": None,
    })

    async def run_test():
        result = await ws.agentic.run(ROOT, "tidy up", AgenticConstraints())
        assert result.ok is True
        assert result.attempts == []
        assert result.final_summary == SUMMARY_NO_ACTIONS

    asyncio.run(run_test())


def test_max_actions_truncates_plan(ws, backend):
    async def run_test():
        result = await ws.agentic.run(ROOT, "tidy up", AgenticConstraints(max_actions=2))
        assert len(result.attempts[0].actions) == 2

    asyncio.run(run_test())


def test_profile_limit_caps_max_actions(ws, backend):
    profile = ProjectProfile(path=ROOT, limits=ProjectLimits(max_actions_per_tx=1))

    async def run_test():
        with patch.object(backend, "get_project_profile", AsyncMock(return_value=profile)):
            result = await ws.agentic.run(ROOT, "tidy up", AgenticConstraints(max_actions=10))
        assert len(result.attempts[0].actions) == 1

    asyncio.run(run_test())


def test_profile_failure_is_not_fatal(ws, backend):
    async def run_test():
        with patch.object(backend, "get_project_profile", AsyncMock(side_effect=RuntimeError("no profile"))):
            result = await ws.agentic.run(ROOT, "tidy up", AgenticConstraints())
        assert result.ok is True

    asyncio.run(run_test())


def test_analyze_failure_ends_run(ws, backend):
    async def run_test():
        result = await ws.agentic.run("/missing", "tidy up", AgenticConstraints())
        assert result.ok is False
        assert result.error_code == "ANALYZE_FAILED"
        assert result.attempts == []

    asyncio.run(run_test())


def test_apply_failure_ends_run_with_its_code(ws, backend):
    async def run_test():
        backend.fail_on_paths.add("LICENSE")
        result = await ws.agentic.run(ROOT, "tidy up", AgenticConstraints(max_attempts=3))
        assert result.ok is False
        assert result.error_code == "APPLY_FAILED_ROLLED_BACK"
        assert len(result.attempts) == 1

    asyncio.run(run_test())


def test_planner_fallback_keeps_only_create_actions(ws, backend):
    plan = AgentPlan(ok=True, summary="plan", actions=[
        Action(kind="DELETE_FILE", path="src/app.ts"),
        Action(kind="CREATE_FILE", path="docs/intro.md", content="hi"),
    ])

    async def run_test():
        with patch.object(backend, "generate_actions_from_report",
                          AsyncMock(return_value=GenerateActionsResult(ok=True, actions=[]))), \
             patch.object(backend, "propose_actions", AsyncMock(return_value=plan)):
            result = await ws.agentic.run(ROOT, "add docs", AgenticConstraints())
        assert [a.path for a in result.attempts[0].actions] == ["docs/intro.md"]
        assert backend.read(ROOT, "src/app.ts") == "export {}"

    asyncio.run(run_test())


def test_goal_template_expansion():
    profile = ProjectProfile(path=ROOT, goal_template="In a node project: {goal}")
    assert AgenticRunCoordinator.expand_goal("fix", profile) == "In a node project: fix"
    assert AgenticRunCoordinator.expand_goal("fix", None) == "fix"


def test_validate_attempts_rejects_gaps_and_overflow():
    gap = AgenticRunResult(ok=False, attempts=[AttemptResult(attempt=1), AttemptResult(attempt=3)])
    with pytest.raises(ValueError):
        validate_attempts(gap, 5)
    too_many = AgenticRunResult(ok=False, attempts=[AttemptResult(attempt=1), AttemptResult(attempt=2)])
    with pytest.raises(ValueError):
        validate_attempts(too_many, 1)


# ===================================================================
# Progress tracking
# ===================================================================
def test_tracker_drops_duplicates_and_stale_attempts():
    tracker = ProgressTracker()
    assert tracker.accept(AgenticProgress(stage="analyze", attempt=1))
    assert not tracker.accept(AgenticProgress(stage="analyze", attempt=1))
    assert tracker.accept(AgenticProgress(stage="analyze", attempt=2))
    assert not tracker.accept(AgenticProgress(stage="verify", attempt=1))
    assert tracker.latest.attempt == 2


def test_tracker_stops_after_terminal_stage():
    tracker = ProgressTracker()
    assert tracker.accept(AgenticProgress(stage="done", attempt=1))
    assert not tracker.accept(AgenticProgress(stage="analyze", attempt=2))


def test_tracker_feeds_workspace_state(ws):
    async def run_test():
        await ws.agentic.run(ROOT, "tidy up", AgenticConstraints())

    asyncio.run(run_test())
    assert ws.ctx.state["agentic_progress"].stage == "done"


# ===================================================================
# Recording
# ===================================================================
def test_run_and_record_updates_workspace(ws, backend):
    async def run_test():
        result = await ws.run_agentic(ROOT, "tidy up", AgenticConstraints())
        assert ws.ctx.state["agentic_result"] == result
        assert ws.ctx.state["messages"][-1].text.startswith("Agentic run finished after 1 attempt(s)")
        assert ws.ctx.state["undo_available"] is True
        assert ws.ctx.is_busy is False
        sessions = await backend.list_sessions()
        assert sessions[0].events[-1].kind == "agentic_run"

    asyncio.run(run_test())


def test_session_log_failure_is_not_fatal(ws, backend):
    async def run_test():
        with patch.object(backend, "append_session_event", AsyncMock(side_effect=OSError("disk full"))):
            result = await ws.run_agentic(ROOT, "tidy up", AgenticConstraints())
        assert result.ok is True
        assert ws.ctx.state["agentic_result"] == result

    asyncio.run(run_test())


def test_backend_agentic_run_uses_private_workspace(backend):
    async def run_test():
        result = await backend.agentic_run(ROOT, "tidy up", AgenticConstraints())
        assert result.ok is True
        assert backend.read(ROOT, "LICENSE") is not None

    asyncio.run(run_test())
