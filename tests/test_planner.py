"""
Planner Adapter Tests
"""
import asyncio
import json
from unittest.mock import AsyncMock, patch

import pytest

from changeflow.backend.mock_backend import MockBackend
from changeflow.core.workspace import Workspace
from changeflow.models.action import AgentPlan

ROOT = "/proj"


@pytest.fixture
def backend(tmp_path):
    b = MockBackend(data_dir=str(tmp_path))
    b.seed(ROOT, {"src": None})
    return b


@pytest.fixture
def ws(backend):
    return Workspace(backend)


def test_plan_lands_in_pending_actions(ws):
    async def run_test():
        await ws.analyze(ROOT)
        plan = await ws.planner.propose("add docs")

        assert plan.ok is True
        assert ws.ctx.state["pending_actions"] == plan.actions
        assert json.loads(ws.ctx.state["last_plan"])["goal"] == "add docs"
        assert ws.ctx.state["pending_preview"] is None

        preview = await ws.preview_proposed()
        assert preview is not None
        assert ws.ctx.state["pending_preview"].actions == plan.actions

    asyncio.run(run_test())


def test_follow_up_sends_previous_plan(ws, backend):
    async def run_test():
        await ws.analyze(ROOT)
        first = await ws.planner.propose("add docs")
        mocked = AsyncMock(return_value=AgentPlan(ok=True, summary="refined"))
        with patch.object(backend, "propose_actions", mocked):
            await ws.planner.propose("also a license")
        kwargs = mocked.call_args.kwargs
        assert kwargs["last_plan"] == first.plan
        assert kwargs["last_plan_context"] == first.plan_context

    asyncio.run(run_test())


def test_plan_without_path_is_refused(ws, backend):
    async def run_test():
        with patch.object(backend, "propose_actions", AsyncMock()) as mocked:
            assert await ws.planner.propose("anything") is None
            mocked.assert_not_called()

    asyncio.run(run_test())


def test_planner_exception_is_narrated(ws, backend):
    async def run_test():
        await ws.analyze(ROOT)
        with patch.object(backend, "propose_actions", AsyncMock(side_effect=RuntimeError("llm down"))):
            assert await ws.planner.propose("add docs") is None
        assert ws.ctx.state["messages"][-1].text == "Planner failed: llm down"
        assert ws.ctx.is_busy is False

    asyncio.run(run_test())
