"""
Batch Runner
============
Fans the analyze → preview → apply pipeline out over several target paths
as one ordered event stream.

Per path, in order:
    report   - always (message = report narrative)
    preview  - when there are actions (selected_actions, else the report's)
    apply    - when confirm_apply; undo_available = result.ok and the
               backend reports an undoable transaction
    error    - replaces the rest of that path's events when a step raises

An empty path list means ["."]. user_confirmed=None is forwarded as False.
One path's error never stops the following paths.

BatchConsumer folds a stream into the workspace strictly in emission order.
"""
import logging
from typing import AsyncIterator, Dict, List, Optional

from changeflow.agents.apply_orchestrator import ApplyOrchestrator
from changeflow.agents.preview_adapter import MSG_BLOCKED_WARNING, MSG_PREVIEW_READY
from changeflow.agents.selection import SelectionManager
from changeflow.backend.contract import Backend
from changeflow.models.action import Action
from changeflow.models.batch_event import BatchEvent
from changeflow.models.diff import PendingPreview
from changeflow.models.outcomes import OutcomeKind
from changeflow.state.workspace_state import Mutation, WorkspaceContext

logger = logging.getLogger(__name__)

MSG_BATCH_ERROR = "Batch step failed for {path}: {message}"


class BatchRunner:

    def __init__(self, backend: Backend, applier: ApplyOrchestrator) -> None:
        self.backend = backend
        self.applier = applier

    async def run_batch(
        self,
        paths: List[str],
        confirm_apply: bool,
        auto_check: bool,
        selected_actions: Optional[List[Action]] = None,
        user_confirmed: Optional[bool] = None,
        attachments: Optional[List[str]] = None,
    ) -> AsyncIterator[BatchEvent]:
        targets = list(paths) or ["."]
        confirmed = bool(user_confirmed)
        logger.info("Batch over %d path(s), confirm_apply=%s", len(targets), confirm_apply)

        for path in targets:
            try:
                report = await self.backend.analyze_project(path, attachments)
                yield BatchEvent(kind="report", path=path, report=report, message=report.narrative)

                actions = list(selected_actions) if selected_actions is not None else list(report.actions)
                if not actions:
                    continue

                preview = await self.backend.preview_actions(path, actions)
                yield BatchEvent(kind="preview", path=path, preview=preview)

                if not confirm_apply:
                    continue

                result = await self.applier.submit(
                    path, actions, auto_check=auto_check, user_confirmed=confirmed
                )
                undo_state = await self.backend.get_undo_redo_state()
                yield BatchEvent(
                    kind="apply",
                    path=path,
                    apply_result=result,
                    message=result.error,
                    undo_available=result.ok and undo_state.undo_available,
                )
            except Exception as exc:
                logger.error("Batch failed for %s: %s", path, exc)
                yield BatchEvent(kind="error", path=path, message=str(exc))


class BatchConsumer:
    """Applies batch events to the workspace in the order they arrive."""

    def __init__(
        self,
        ctx: WorkspaceContext,
        selection: SelectionManager,
        applier: ApplyOrchestrator,
        selected_actions: Optional[List[Action]] = None,
    ) -> None:
        self.ctx = ctx
        self.selection = selection
        self.applier = applier
        self.selected_actions = selected_actions
        self._actions_by_path: Dict[str, List[Action]] = {}
        self.consumed: List[BatchEvent] = []

    async def consume(self, events: AsyncIterator[BatchEvent]) -> List[BatchEvent]:
        async for event in events:
            await self.handle(event)
        return self.consumed

    async def handle(self, event: BatchEvent) -> None:
        self.consumed.append(event)

        if event.kind == "report" and event.report is not None:
            report = event.report
            self.ctx.dispatch(Mutation.SET_REPORT, report=report, path=event.path)
            self.selection.load_report(report)
            self._actions_by_path[event.path] = (
                list(self.selected_actions) if self.selected_actions is not None else list(report.actions)
            )
            self.ctx.say("assistant", event.message or report.narrative, report=report)

        elif event.kind == "preview" and event.preview is not None:
            preview = event.preview
            actions = self._actions_by_path.get(event.path, [])
            self.ctx.dispatch(
                Mutation.SET_PENDING_PREVIEW,
                preview=PendingPreview(path=event.path, actions=actions, diffs=preview.diffs),
            )
            self.ctx.dispatch(Mutation.SET_PENDING_ACTIONS, actions=actions)
            self.ctx.say(
                "assistant",
                MSG_PREVIEW_READY.format(summary=preview.summary or f"{len(preview.diffs)} change(s)"),
                preview=preview,
            )
            if preview.blocked_count:
                self.ctx.say("system", MSG_BLOCKED_WARNING.format(count=preview.blocked_count))

        elif event.kind == "apply" and event.apply_result is not None:
            kind = await self.applier.handle_result(event.path, event.apply_result)
            # Only a landed transaction changes what the backend can undo.
            if kind is OutcomeKind.APPLIED and event.undo_available is not None:
                self.ctx.dispatch(Mutation.SET_UNDO_REDO, undo_available=event.undo_available)

        elif event.kind == "error":
            self.ctx.say("system", MSG_BATCH_ERROR.format(path=event.path, message=event.message))

        else:
            logger.warning("Ignoring malformed batch event: %s", event.kind)
