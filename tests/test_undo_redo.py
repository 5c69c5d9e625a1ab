"""
Undo/Redo Controller Tests
==========================
Path-scoped undo, global fallback and availability reconciliation.
"""
import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from changeflow.agents.undo_redo import (
    MSG_REDO_OK,
    MSG_UNDO_GLOBAL_OK,
    MSG_UNDO_PATH_OK,
    MSG_UNDO_PATH_UNAVAILABLE,
    UndoRedoController,
)
from changeflow.backend.mock_backend import MockBackend
from changeflow.core.events import Topic
from changeflow.core.workspace import Workspace
from changeflow.models.action import Action
from changeflow.models.apply_result import UndoRedoState, UndoStatus

ROOT = "/proj"
OTHER = "/other"


@pytest.fixture
def backend(tmp_path):
    b = MockBackend(data_dir=str(tmp_path))
    b.seed(ROOT, {"src": None, "src/app.ts": "export {}"})
    b.seed(OTHER, {"main.py": "print()"})
    return b


@pytest.fixture
def ws(backend):
    return Workspace(backend)


def _texts(ws):
    return [m.text for m in ws.ctx.state["messages"]]


async def _apply(ws, root, rel):
    action = Action(kind="CREATE_FILE", path=rel, content="x")
    return await ws.applier.apply(root, [action], auto_check=False, user_confirmed=True)


def test_path_scoped_undo(ws, backend):
    async def run_test():
        await _apply(ws, ROOT, "a.md")
        result = await ws.undo_redo.undo(ROOT)

        assert result.ok is True
        assert backend.read(ROOT, "a.md") is None
        assert _texts(ws)[-1] == MSG_UNDO_PATH_OK.format(path=ROOT)
        assert ws.ctx.state["undo_available"] is False
        assert ws.ctx.state["redo_available"] is True

    asyncio.run(run_test())


def test_path_undo_only_touches_that_path(ws, backend):
    async def run_test():
        await _apply(ws, ROOT, "a.md")
        await _apply(ws, OTHER, "b.md")
        await ws.undo_redo.undo(ROOT)

        assert backend.read(ROOT, "a.md") is None
        assert backend.read(OTHER, "b.md") == "x"

    asyncio.run(run_test())


def test_fallback_to_global_clears_report_and_pending(ws, backend):
    async def run_test():
        await ws.analyze(ROOT)
        await ws.preview_selection()
        await _apply(ws, OTHER, "b.md")

        result = await ws.undo_redo.undo(ROOT)

        assert result.ok is True
        assert backend.read(OTHER, "b.md") is None
        texts = _texts(ws)
        assert MSG_UNDO_PATH_UNAVAILABLE in texts
        assert texts[-1] == MSG_UNDO_GLOBAL_OK
        assert ws.ctx.state["last_report"] is None
        assert ws.ctx.state["pending_preview"] is None

    asyncio.run(run_test())


def test_path_undo_exception_falls_back(ws, backend):
    async def run_test():
        await _apply(ws, ROOT, "a.md")
        with patch.object(backend, "undo_last_tx", AsyncMock(side_effect=RuntimeError("unsupported"))):
            result = await ws.undo_redo.undo(ROOT)
        assert result.ok is True
        assert backend.read(ROOT, "a.md") is None
        assert _texts(ws)[-1] == MSG_UNDO_GLOBAL_OK

    asyncio.run(run_test())


def test_nothing_to_undo(ws):
    async def run_test():
        result = await ws.undo_redo.undo()
        assert result.ok is False
        assert result.error_code == "NOTHING_TO_UNDO"
        assert _texts(ws)[-1].startswith("Undo failed")

    asyncio.run(run_test())


def test_redo_restores_change(ws, backend):
    async def run_test():
        await _apply(ws, ROOT, "a.md")
        await ws.undo_redo.undo(ROOT)
        result = await ws.undo_redo.redo()

        assert result.ok is True
        assert backend.read(ROOT, "a.md") == "x"
        assert _texts(ws)[-1] == MSG_REDO_OK
        assert ws.ctx.state["undo_available"] is True
        assert ws.ctx.state["redo_available"] is False

    asyncio.run(run_test())


def test_redo_is_global():
    assert UndoRedoController.redo_scope == "global"


# ===================================================================
# Availability reconciliation
# ===================================================================
def test_undo_available_when_either_signal_says_so(ws, backend):
    seen = []
    ws.ctx.bus.subscribe(Topic.UNDO_REDO, seen.append)

    async def run_test():
        with patch.object(backend, "get_undo_redo_state", AsyncMock(return_value=UndoRedoState())), \
             patch.object(backend, "get_undo_status", AsyncMock(return_value=UndoStatus(available=True, tx_id="t1"))):
            state = await ws.undo_redo.refresh()
        assert state.undo_available is True
        assert ws.ctx.state["undo_available"] is True

    asyncio.run(run_test())
    assert seen[-1].undo_available is True


def test_refresh_error_keeps_flags(ws, backend):
    async def run_test():
        await _apply(ws, ROOT, "a.md")
        with patch.object(backend, "get_undo_redo_state", AsyncMock(side_effect=RuntimeError("down"))):
            state = await ws.undo_redo.refresh()
        assert state.undo_available is True
        assert ws.ctx.state["undo_available"] is True

    asyncio.run(run_test())
