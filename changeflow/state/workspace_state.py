"""
Workspace State
===============
Explicit context object shared by every orchestration component.

WorkspaceState is a TypedDict holding the whole conversational and
apply-pipeline state for one user workspace. It is never mutated directly:
components call WorkspaceContext.dispatch() with one of the closed Mutation
kinds and the reducer returns a new state dict.

Fields:
    messages          - current transcript (List[ChatMessage])
    last_path         - target path of the last analysis
    last_report       - report currently on display
    pending_preview   - the single "about to apply" slot (PendingPreview)
    pending_actions   - actions proposed by the planner, not yet previewed/applied
    last_plan         - planner plan JSON kept for follow-up requests
    last_plan_context - planner context kept for follow-up requests
    agentic_result    - last AgenticRunResult
    agentic_progress  - latest AgenticProgress accepted by the tracker
    verify_result     - last manual VerifyResult
    undo_available / redo_available - reconciled undo/redo flags
    busy_depth        - >0 while a preview/apply/verify/agentic run is in flight
    request_history   - frozen RequestHistoryItem snapshots
"""
import logging
from contextlib import contextmanager
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, TypedDict

from changeflow.core.events import EventBus, Topic
from changeflow.models.action import Action, AnalyzeReport
from changeflow.models.agentic import AgenticProgress, AgenticRunResult
from changeflow.models.apply_result import VerifyResult
from changeflow.models.conversation import ChatMessage, RequestHistoryItem
from changeflow.models.diff import PendingPreview

logger = logging.getLogger(__name__)


class WorkspaceState(TypedDict):
    messages: List[ChatMessage]
    last_path: Optional[str]
    last_report: Optional[AnalyzeReport]
    pending_preview: Optional[PendingPreview]
    pending_actions: Optional[List[Action]]
    last_plan: Optional[str]
    last_plan_context: Optional[str]
    agentic_result: Optional[AgenticRunResult]
    agentic_progress: Optional[AgenticProgress]
    verify_result: Optional[VerifyResult]
    undo_available: bool
    redo_available: bool
    busy_depth: int
    request_history: List[RequestHistoryItem]


class Mutation(str, Enum):
    APPEND_MESSAGE = "append_message"
    SET_REPORT = "set_report"
    CLEAR_REPORT = "clear_report"
    SET_PENDING_PREVIEW = "set_pending_preview"
    SET_PENDING_ACTIONS = "set_pending_actions"
    CLEAR_PENDING = "clear_pending"
    SET_PLAN = "set_plan"
    SET_AGENTIC_RESULT = "set_agentic_result"
    SET_AGENTIC_PROGRESS = "set_agentic_progress"
    SET_VERIFY_RESULT = "set_verify_result"
    SET_UNDO_REDO = "set_undo_redo"
    ENTER_BUSY = "enter_busy"
    LEAVE_BUSY = "leave_busy"
    PUSH_HISTORY = "push_history"
    REMOVE_HISTORY = "remove_history"
    RESTORE_SNAPSHOT = "restore_snapshot"
    RESET_REQUEST = "reset_request"
    RESET_ALL = "reset_all"


def initial_state() -> WorkspaceState:
    return {
        "messages": [],
        "last_path": None,
        "last_report": None,
        "pending_preview": None,
        "pending_actions": None,
        "last_plan": None,
        "last_plan_context": None,
        "agentic_result": None,
        "agentic_progress": None,
        "verify_result": None,
        "undo_available": False,
        "redo_available": False,
        "busy_depth": 0,
        "request_history": [],
    }


def reduce(state: WorkspaceState, mutation: Mutation, payload: Dict[str, Any]) -> WorkspaceState:
    """Pure reducer: returns a new state for one mutation."""
    new: WorkspaceState = dict(state)  # type: ignore[assignment]

    if mutation is Mutation.APPEND_MESSAGE:
        new["messages"] = [*state["messages"], payload["message"]]
    elif mutation is Mutation.SET_REPORT:
        new["last_report"] = payload["report"]
        new["last_path"] = payload.get("path") or payload["report"].path
    elif mutation is Mutation.CLEAR_REPORT:
        new["last_report"] = None
    elif mutation is Mutation.SET_PENDING_PREVIEW:
        new["pending_preview"] = payload["preview"]
    elif mutation is Mutation.SET_PENDING_ACTIONS:
        new["pending_actions"] = list(payload["actions"]) if payload["actions"] is not None else None
    elif mutation is Mutation.CLEAR_PENDING:
        new["pending_preview"] = None
        new["pending_actions"] = None
    elif mutation is Mutation.SET_PLAN:
        new["last_plan"] = payload.get("plan")
        new["last_plan_context"] = payload.get("plan_context")
    elif mutation is Mutation.SET_AGENTIC_RESULT:
        new["agentic_result"] = payload["result"]
    elif mutation is Mutation.SET_AGENTIC_PROGRESS:
        new["agentic_progress"] = payload["progress"]
    elif mutation is Mutation.SET_VERIFY_RESULT:
        new["verify_result"] = payload["result"]
    elif mutation is Mutation.SET_UNDO_REDO:
        if "undo_available" in payload:
            new["undo_available"] = bool(payload["undo_available"])
        if "redo_available" in payload:
            new["redo_available"] = bool(payload["redo_available"])
    elif mutation is Mutation.ENTER_BUSY:
        new["busy_depth"] = state["busy_depth"] + 1
    elif mutation is Mutation.LEAVE_BUSY:
        new["busy_depth"] = max(0, state["busy_depth"] - 1)
    elif mutation is Mutation.PUSH_HISTORY:
        new["request_history"] = [*state["request_history"], payload["item"]]
    elif mutation is Mutation.REMOVE_HISTORY:
        new["request_history"] = [h for h in state["request_history"] if h.id != payload["id"]]
    elif mutation is Mutation.RESTORE_SNAPSHOT:
        item: RequestHistoryItem = payload["item"]
        new["messages"] = list(item.messages)
        new["last_path"] = item.last_path
        new["last_report"] = item.last_report
        new["pending_preview"] = None
        new["pending_actions"] = None
    elif mutation is Mutation.RESET_REQUEST:
        new["messages"] = []
        new["last_path"] = None
        new["last_report"] = None
        new["pending_preview"] = None
        new["pending_actions"] = None
        new["last_plan"] = None
        new["last_plan_context"] = None
        new["agentic_result"] = None
        new["agentic_progress"] = None
        new["verify_result"] = None
    elif mutation is Mutation.RESET_ALL:
        new = initial_state()
    else:  # pragma: no cover - closed enum
        raise ValueError(f"Unknown mutation: {mutation}")
    return new


class WorkspaceContext:
    """
    Owns the WorkspaceState for one workspace and the event bus it publishes on.

    Components receive the context explicitly; nothing reaches it through
    module globals.
    """

    def __init__(self, bus: Optional[EventBus] = None) -> None:
        self.bus = bus or EventBus()
        self._state: WorkspaceState = initial_state()

    @property
    def state(self) -> WorkspaceState:
        return self._state

    def dispatch(self, mutation: Mutation, **payload: Any) -> WorkspaceState:
        self._state = reduce(self._state, mutation, payload)
        if mutation is Mutation.APPEND_MESSAGE:
            self.bus.publish(Topic.TRANSCRIPT, payload["message"])
        return self._state

    # ------------------------------------------------------------------
    # Convenience helpers
    # ------------------------------------------------------------------
    def say(self, role: str, text: str, **attachments: Any) -> ChatMessage:
        """Append a transcript entry."""
        message = ChatMessage(role=role, text=text, **attachments)
        self.dispatch(Mutation.APPEND_MESSAGE, message=message)
        return message

    @property
    def is_busy(self) -> bool:
        return self._state["busy_depth"] > 0

    @contextmanager
    def busy(self) -> Iterator[None]:
        self.dispatch(Mutation.ENTER_BUSY)
        try:
            yield
        finally:
            self.dispatch(Mutation.LEAVE_BUSY)

    def snapshot(self) -> Dict[str, Any]:
        """JSON-friendly view of the current state."""
        s = self._state

        def _dump(value: Any) -> Any:
            if value is None:
                return None
            if isinstance(value, list):
                return [_dump(v) for v in value]
            if hasattr(value, "model_dump"):
                return value.model_dump()
            return value

        return {
            "messages": _dump(s["messages"]),
            "last_path": s["last_path"],
            "last_report": _dump(s["last_report"]),
            "pending_preview": _dump(s["pending_preview"]),
            "pending_actions": _dump(s["pending_actions"]),
            "agentic_result": _dump(s["agentic_result"]),
            "agentic_progress": _dump(s["agentic_progress"]),
            "verify_result": _dump(s["verify_result"]),
            "undo_available": s["undo_available"],
            "redo_available": s["redo_available"],
            "busy": self.is_busy,
            "request_history": [
                {"id": h.id, "title": h.title, "last_path": h.last_path}
                for h in s["request_history"]
            ],
        }
