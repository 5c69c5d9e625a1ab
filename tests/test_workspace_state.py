"""
Workspace State Tests
=====================
Reducer mutations, busy nesting and the typed event bus.
"""
import pytest

from changeflow.core.events import EventBus, Topic
from changeflow.models.action import Action, AnalyzeReport
from changeflow.models.conversation import ChatMessage, RequestHistoryItem
from changeflow.models.diff import PendingPreview
from changeflow.state.workspace_state import Mutation, WorkspaceContext, initial_state, reduce


def test_reducer_returns_new_state():
    state = initial_state()
    message = ChatMessage(role="user", text="hi")
    new = reduce(state, Mutation.APPEND_MESSAGE, {"message": message})
    assert new is not state
    assert state["messages"] == []
    assert new["messages"] == [message]


def test_set_report_defaults_path_from_report():
    report = AnalyzeReport(path="/proj", narrative="ok")
    new = reduce(initial_state(), Mutation.SET_REPORT, {"report": report})
    assert new["last_path"] == "/proj"
    assert new["last_report"] == report


def test_clear_pending_clears_both_slots():
    action = Action(kind="CREATE_FILE", path="a.md", content="a")
    state = reduce(initial_state(), Mutation.SET_PENDING_PREVIEW, {
        "preview": PendingPreview(path="/proj", actions=[action]),
    })
    state = reduce(state, Mutation.SET_PENDING_ACTIONS, {"actions": [action]})
    state = reduce(state, Mutation.CLEAR_PENDING, {})
    assert state["pending_preview"] is None
    assert state["pending_actions"] is None


def test_reset_request_keeps_history_and_undo_flags():
    item = RequestHistoryItem(id="h1", title="Old")
    state = reduce(initial_state(), Mutation.PUSH_HISTORY, {"item": item})
    state = reduce(state, Mutation.SET_UNDO_REDO, {"undo_available": True})
    state = reduce(state, Mutation.APPEND_MESSAGE, {"message": ChatMessage(role="user", text="x")})

    state = reduce(state, Mutation.RESET_REQUEST, {})
    assert state["messages"] == []
    assert state["request_history"] == [item]
    assert state["undo_available"] is True


def test_restore_snapshot_drops_pending():
    action = Action(kind="CREATE_FILE", path="a.md", content="a")
    report = AnalyzeReport(path="/proj")
    item = RequestHistoryItem(
        id="h1", title="Old", messages=[ChatMessage(role="user", text="x")],
        last_path="/proj", last_report=report,
    )
    state = reduce(initial_state(), Mutation.SET_PENDING_ACTIONS, {"actions": [action]})
    state = reduce(state, Mutation.RESTORE_SNAPSHOT, {"item": item})
    assert state["pending_actions"] is None
    assert state["last_report"] == report
    assert [m.text for m in state["messages"]] == ["x"]


def test_busy_nests_and_survives_exceptions():
    ctx = WorkspaceContext()
    with ctx.busy():
        with ctx.busy():
            assert ctx.state["busy_depth"] == 2
        assert ctx.is_busy
    assert not ctx.is_busy

    with pytest.raises(RuntimeError):
        with ctx.busy():
            raise RuntimeError("boom")
    assert not ctx.is_busy


def test_say_publishes_transcript():
    bus = EventBus()
    seen = []
    bus.subscribe(Topic.TRANSCRIPT, seen.append)
    ctx = WorkspaceContext(bus)
    message = ctx.say("assistant", "hello")
    assert seen == [message]


def test_snapshot_is_json_friendly():
    ctx = WorkspaceContext()
    ctx.dispatch(Mutation.SET_REPORT, report=AnalyzeReport(path="/proj", narrative="n"))
    snap = ctx.snapshot()
    assert snap["last_report"]["narrative"] == "n"
    assert snap["busy"] is False


# ===================================================================
# Event bus
# ===================================================================
def test_unsubscribe_stops_delivery():
    bus = EventBus()
    seen = []
    unsubscribe = bus.subscribe(Topic.UNDO_REDO, seen.append)
    bus.publish(Topic.UNDO_REDO, 1)
    unsubscribe()
    bus.publish(Topic.UNDO_REDO, 2)
    assert seen == [1]
    assert bus.subscriber_count(Topic.UNDO_REDO) == 0


def test_failing_subscriber_does_not_break_others():
    bus = EventBus()
    seen = []

    def broken(payload):
        raise ValueError("bad subscriber")

    bus.subscribe(Topic.ANALYZE_PROGRESS, broken)
    bus.subscribe(Topic.ANALYZE_PROGRESS, seen.append)
    bus.publish(Topic.ANALYZE_PROGRESS, "Scanning")
    assert seen == ["Scanning"]


def test_free_form_topics_are_rejected():
    with pytest.raises(ValueError):
        EventBus().subscribe("agentic_progress", lambda p: None)
