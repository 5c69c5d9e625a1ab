"""
Request History Tests
"""
import asyncio

import pytest

from changeflow.agents.history import CURRENT_TITLE, DEFAULT_TITLE, derive_title
from changeflow.backend.mock_backend import MockBackend
from changeflow.core.workspace import Workspace
from changeflow.models.conversation import ChatMessage

ROOT = "/proj"


@pytest.fixture
def ws(tmp_path):
    backend = MockBackend(data_dir=str(tmp_path))
    backend.seed(ROOT, {"src": None})
    return Workspace(backend)


def test_title_uses_first_user_message():
    messages = [
        ChatMessage(role="assistant", text="Welcome"),
        ChatMessage(role="user", text="Add a readme"),
        ChatMessage(role="user", text="Also a license"),
    ]
    assert derive_title(messages) == "Add a readme"


def test_long_title_is_cut_with_ellipsis():
    text = "x" * 60
    title = derive_title([ChatMessage(role="user", text=text)])
    assert title == "x" * 45 + "…"


def test_title_at_exact_limit_gets_ellipsis():
    title = derive_title([ChatMessage(role="user", text="y" * 45)])
    assert title.endswith("…")


def test_title_defaults_without_user_message():
    assert derive_title([ChatMessage(role="system", text="hi")]) == DEFAULT_TITLE


def test_new_request_archives_and_resets(ws):
    async def run_test():
        await ws.analyze(ROOT)

    asyncio.run(run_test())
    report = ws.ctx.state["last_report"]

    item = ws.history.new_request()

    assert item.title == f"Analyze {ROOT}"
    assert item.last_path == ROOT
    assert item.last_report == report
    assert ws.ctx.state["messages"] == []
    assert ws.ctx.state["last_report"] is None
    assert ws.history.items == [item]


def test_new_request_on_empty_transcript_archives_nothing(ws):
    assert ws.history.new_request() is None
    assert ws.history.items == []


def test_switch_restores_snapshot_and_drops_pending(ws):
    async def run_test():
        await ws.analyze(ROOT)
        item = ws.history.new_request()
        await ws.analyze(ROOT)
        await ws.preview_selection()
        assert ws.ctx.state["pending_preview"] is not None

        restored = ws.history.switch_to(item.id)

        assert restored == item
        assert ws.ctx.state["pending_preview"] is None
        assert ws.ctx.state["pending_actions"] is None
        assert ws.ctx.state["messages"] == item.messages
        assert ws.ctx.state["last_report"] == item.last_report

    asyncio.run(run_test())


def test_switch_to_unknown_raises(ws):
    with pytest.raises(KeyError):
        ws.history.switch_to("nope")


def test_remove_keeps_current_request(ws):
    ws.ctx.say("user", "first")
    item = ws.history.new_request()
    ws.ctx.say("user", "second")

    assert ws.history.remove(item.id) is True
    assert ws.history.remove(item.id) is False
    assert ws.history.items == []
    assert [m.text for m in ws.ctx.state["messages"]] == ["second"]


def test_display_lists_current_first(ws):
    ws.ctx.say("user", "first")
    archived = ws.history.new_request()
    ws.ctx.say("assistant", "no user text yet")

    entries = ws.history.display_requests()
    assert entries[0] == {"id": "current", "title": CURRENT_TITLE, "is_current": True}
    assert entries[1] == {"id": archived.id, "title": "first", "is_current": False}
