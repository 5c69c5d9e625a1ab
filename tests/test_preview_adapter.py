"""
Preview Adapter Tests
"""
import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from changeflow.agents.preview_adapter import MSG_BLOCKED_WARNING, PreviewAdapter
from changeflow.backend.mock_backend import MockBackend
from changeflow.models.action import Action
from changeflow.state.workspace_state import WorkspaceContext

ROOT = "/proj"


@pytest.fixture
def backend(tmp_path):
    b = MockBackend(data_dir=str(tmp_path))
    b.seed(ROOT, {"README.md": "# old"})
    return b


@pytest.fixture
def ctx():
    return WorkspaceContext()


@pytest.fixture
def previewer(backend, ctx):
    return PreviewAdapter(backend, ctx)


def test_preview_is_pure_and_repeatable(previewer, ctx):
    actions = [
        Action(kind="CREATE_FILE", path="docs/a.md", content="a"),
        Action(kind="UPDATE_FILE", path="README.md", content="# new"),
    ]

    async def run_test():
        first = await previewer.preview(ROOT, actions)
        second = await previewer.preview(ROOT, actions)
        assert first.summary == second.summary
        assert first.summary == "create: 1, update: 1, delete: 0, mkdir: 0, rmdir: 0"
        assert first.diffs[1].before == "# old"
        assert first.diffs[1].after == "# new"

    asyncio.run(run_test())
    assert ctx.state["pending_preview"] is None
    assert ctx.state["messages"] == []


def test_preview_into_pending_fills_slot(previewer, ctx):
    actions = [Action(kind="CREATE_FILE", path="LICENSE", content="MIT")]

    async def run_test():
        result = await previewer.preview_into_pending(ROOT, actions)
        pending = ctx.state["pending_preview"]
        assert pending.path == ROOT
        assert pending.actions == actions
        assert pending.diffs == result.diffs
        assert ctx.state["pending_actions"] == actions
        assert ctx.state["messages"][-1].preview == result

    asyncio.run(run_test())


def test_blocked_diffs_are_kept_and_warned(previewer, ctx):
    actions = [
        Action(kind="CREATE_FILE", path="docs/a.md", content="a"),
        Action(kind="CREATE_FILE", path="logo.png", content="binary"),
    ]

    async def run_test():
        result = await previewer.preview_into_pending(ROOT, actions)
        assert [d.kind for d in result.diffs] == ["create", "blocked"]
        assert result.summary.endswith("blocked: 1")
        assert ctx.state["pending_preview"].actions == actions
        assert ctx.state["messages"][-1].text == MSG_BLOCKED_WARNING.format(count=1)

    asyncio.run(run_test())


def test_empty_action_set_is_noop(previewer, backend, ctx):
    async def run_test():
        with patch.object(backend, "preview_actions", AsyncMock()) as mocked:
            assert await previewer.preview_into_pending(ROOT, []) is None
            mocked.assert_not_called()

    asyncio.run(run_test())
    assert ctx.state["pending_preview"] is None
    assert ctx.state["messages"] == []


def test_backend_failure_leaves_slot_untouched(previewer, backend, ctx):
    actions = [Action(kind="CREATE_FILE", path="a.md", content="a")]

    async def run_test():
        await previewer.preview_into_pending(ROOT, actions)
        previous = ctx.state["pending_preview"]
        with patch.object(backend, "preview_actions", AsyncMock(side_effect=RuntimeError("timeout"))):
            assert await previewer.preview_into_pending(ROOT, actions) is None
        assert ctx.state["pending_preview"] == previous
        assert ctx.state["messages"][-1].text == "Preview failed: timeout"
        assert ctx.is_busy is False

    asyncio.run(run_test())
