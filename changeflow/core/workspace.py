"""
Workspace
=========
Wires the orchestration components around one WorkspaceContext.

    Workspace
      ├── ctx          WorkspaceContext (state + event bus)
      ├── selection    SelectionManager
      ├── previewer    PreviewAdapter
      ├── applier      ApplyOrchestrator
      ├── undo_redo    UndoRedoController
      ├── agentic      AgenticRunCoordinator
      ├── batch        BatchRunner
      ├── history      RequestHistoryManager
      └── planner      Planner

Entry points that span components (analyze, preview of the current
selection, batch consumption, reset) live here. Backend analyze_progress
lines are republished on Topic.ANALYZE_PROGRESS.
"""
import logging
from typing import AsyncIterator, List, Optional

from changeflow.agents.agentic import AgenticRunCoordinator
from changeflow.agents.apply_orchestrator import ApplyOrchestrator
from changeflow.agents.batch_runner import BatchConsumer, BatchRunner
from changeflow.agents.history import RequestHistoryManager
from changeflow.agents.planner import Planner
from changeflow.agents.preview_adapter import PreviewAdapter
from changeflow.agents.selection import SelectionManager
from changeflow.agents.undo_redo import UndoRedoController
from changeflow.backend.contract import Backend
from changeflow.backend.http_client import HttpBackend
from changeflow.backend.mock_backend import MockBackend
from changeflow.core.config import (
    AGENTIC_MAX_ACTIONS,
    AGENTIC_MAX_ATTEMPTS,
    BACKEND_URL,
    CHANGEFLOW_BACKEND,
    DATA_DIR,
    DEFAULT_AGENTIC_GOAL,
    DEFAULT_AUTO_CHECK,
)
from changeflow.core.events import EventBus, Topic
from changeflow.models.action import Action, AnalyzeReport
from changeflow.models.agentic import AgenticConstraints, AgenticRunResult
from changeflow.models.batch_event import BatchEvent
from changeflow.models.diff import PreviewResult
from changeflow.services.session_log import log_session_event
from changeflow.state.workspace_state import Mutation, WorkspaceContext

logger = logging.getLogger(__name__)

MSG_ANALYZING = "Analyze {path}"
MSG_ANALYZE_FAILED = "Analysis failed: {error}"
MSG_NO_PATH = "Analyze a project first."
MSG_NOTHING_SELECTED = "Nothing selected. Pick at least one change to preview."


class Workspace:

    def __init__(self, backend: Backend, bus: Optional[EventBus] = None) -> None:
        self.backend = backend
        self.ctx = WorkspaceContext(bus)
        self.selection = SelectionManager(on_change=self.sync_selection)
        self.previewer = PreviewAdapter(backend, self.ctx)
        self.applier = ApplyOrchestrator(backend, self.ctx, self.previewer)
        self.undo_redo = UndoRedoController(backend, self.ctx)
        self.agentic = AgenticRunCoordinator(
            backend, self.ctx, self.applier, self.previewer, undo_redo=self.undo_redo
        )
        self.batch = BatchRunner(backend, self.applier)
        self.history = RequestHistoryManager(self.ctx)
        self.planner = Planner(backend, self.ctx)
        self._unsubscribe_progress = backend.subscribe_progress(
            lambda line: self.ctx.bus.publish(Topic.ANALYZE_PROGRESS, line)
        )

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------
    async def analyze(self, path: str, attachments: Optional[List[str]] = None) -> Optional[AnalyzeReport]:
        self.ctx.say("user", MSG_ANALYZING.format(path=path))
        with self.ctx.busy():
            try:
                report = await self.backend.analyze_project(path, attachments)
            except Exception as exc:
                logger.error("Analysis failed for %s: %s", path, exc)
                self.ctx.say("system", MSG_ANALYZE_FAILED.format(error=exc))
                return None

        self.ctx.dispatch(Mutation.SET_REPORT, report=report, path=path)
        self.selection.load_report(report)
        self.ctx.say("assistant", report.narrative or f"Analysis of {path} complete.", report=report)
        await log_session_event(self.backend, path, "analyze", "assistant", report.narrative)
        await self.undo_redo.refresh()
        return report

    # ------------------------------------------------------------------
    # Selection / preview
    # ------------------------------------------------------------------
    def sync_selection(self) -> List[Action]:
        """
        Record the current selection as the pending action set.

        Called after every selection change, re-analysis included. Only done
        while a preview is pending, so apply_pending can tell whether that
        preview still covers what the user selected.
        """
        actions = self.selection.selected_actions()
        if self.ctx.state["pending_preview"] is not None:
            self.ctx.dispatch(Mutation.SET_PENDING_ACTIONS, actions=actions)
        return actions

    async def preview_selection(self) -> Optional[PreviewResult]:
        path = self.ctx.state["last_path"]
        if not path:
            self.ctx.say("system", MSG_NO_PATH)
            return None
        actions = self.selection.require_selection()
        if actions is None:
            self.ctx.say("system", MSG_NOTHING_SELECTED)
            return None
        return await self.previewer.preview_into_pending(path, actions)

    async def preview_proposed(self) -> Optional[PreviewResult]:
        """Preview the actions the planner left in the pending slot."""
        path = self.ctx.state["last_path"]
        actions = self.ctx.state["pending_actions"]
        if not path or not actions:
            self.ctx.say("system", MSG_NOTHING_SELECTED)
            return None
        return await self.previewer.preview_into_pending(path, actions)

    # ------------------------------------------------------------------
    # Agentic / batch
    # ------------------------------------------------------------------
    async def run_agentic(
        self,
        path: Optional[str] = None,
        goal: Optional[str] = None,
        constraints: Optional[AgenticConstraints] = None,
    ) -> Optional[AgenticRunResult]:
        path = path or self.ctx.state["last_path"]
        if not path:
            self.ctx.say("system", MSG_NO_PATH)
            return None
        goal = goal or DEFAULT_AGENTIC_GOAL
        constraints = constraints or AgenticConstraints(
            auto_check=DEFAULT_AUTO_CHECK,
            max_attempts=AGENTIC_MAX_ATTEMPTS,
            max_actions=AGENTIC_MAX_ACTIONS,
        )
        self.ctx.say("user", goal)
        return await self.agentic.run_and_record(path, goal, constraints)

    async def run_batch(
        self,
        paths: List[str],
        confirm_apply: bool,
        auto_check: bool,
        selected_actions: Optional[List[Action]] = None,
        user_confirmed: Optional[bool] = None,
        attachments: Optional[List[str]] = None,
    ) -> AsyncIterator[BatchEvent]:
        """Stream batch events, folding each into the workspace before yielding it."""
        consumer = BatchConsumer(self.ctx, self.selection, self.applier, selected_actions)
        with self.ctx.busy():
            async for event in self.batch.run_batch(
                paths,
                confirm_apply,
                auto_check,
                selected_actions=selected_actions,
                user_confirmed=user_confirmed,
                attachments=attachments,
            ):
                await consumer.handle(event)
                yield event

    # ------------------------------------------------------------------
    # Reset
    # ------------------------------------------------------------------
    def reset(self) -> None:
        self.ctx.dispatch(Mutation.RESET_ALL)
        self.selection.clear()
        logger.info("Workspace reset")


def build_backend(kind: str = CHANGEFLOW_BACKEND) -> Backend:
    """Backend selected by CHANGEFLOW_BACKEND."""
    if kind == "http":
        return HttpBackend(BACKEND_URL)
    return MockBackend(data_dir=DATA_DIR)
