"""
Transactional Apply Orchestrator
================================
Submits a confirmed action set for atomic application and maps the
structured outcome onto the workspace.

Outcome handling (see changeflow.models.outcomes.classify_outcome):
    APPLIED           → clear pending preview/actions, undo becomes available
    CONFIRM_REQUIRED  → message only, no state change
    POLICY_REJECTED   → distinct message, nothing written, undo flag untouched
    REVERTED          → "rolled back" narrative, undo explicitly unavailable
    FAILED            → error surfaced verbatim, no state change

Guarantees:
    - user_confirmed is a required keyword on every entry point; automatic
      flows (one-click fix, agentic runs) pass it explicitly
    - single-flight per target path: a second request while one is
      outstanding is refused with APPLY_IN_FLIGHT without calling the backend
    - backend exceptions never escape; they become an unclassified failure
    - a pending preview is applied only while it still matches the pending
      action set; otherwise STALE_PREVIEW asks for a fresh preview
"""
import logging
from typing import List, Optional, Set

from changeflow.agents.preview_adapter import PreviewAdapter
from changeflow.backend.contract import Backend
from changeflow.core.constants import GENERATE_MODE_CREATE_ONLY
from changeflow.models.action import Action
from changeflow.models.apply_result import ApplyTxResult, VerifyResult
from changeflow.models.outcomes import ErrorCode, OutcomeKind, classify_outcome, outcome_message
from changeflow.services.session_log import log_session_event
from changeflow.state.workspace_state import Mutation, WorkspaceContext
from changeflow.utils.action_keys import same_action_set

logger = logging.getLogger(__name__)

MSG_IN_FLIGHT = "An apply is already running for {path}. Wait for it to finish."
MSG_NOTHING_PENDING = "Nothing to apply. Run a preview first."
MSG_STALE_PREVIEW = "The selection changed since the last preview. Preview again before applying."
MSG_CANCELLED = "Pending changes discarded. Nothing was written."
MSG_VERIFY_OK = "Verification passed."
MSG_VERIFY_FAILED = "Verification failed: {error}"
MSG_NO_REPORT = "Analyze a project first."
MSG_NOTHING_TO_FIX = "Nothing to fix automatically."
MSG_GENERATE_FAILED = "Could not generate fixes: {error}"


class ApplyOrchestrator:

    def __init__(self, backend: Backend, ctx: WorkspaceContext, previewer: PreviewAdapter) -> None:
        self.backend = backend
        self.ctx = ctx
        self.previewer = previewer
        self._in_flight: Set[str] = set()

    def is_in_flight(self, path: str) -> bool:
        return path in self._in_flight

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------
    async def submit(
        self,
        path: str,
        actions: List[Action],
        *,
        auto_check: bool,
        user_confirmed: bool,
    ) -> ApplyTxResult:
        """Call the backend once, honouring single-flight. Touches no state."""
        if path in self._in_flight:
            logger.warning("Refusing concurrent apply for %s", path)
            return ApplyTxResult(
                ok=False,
                error=MSG_IN_FLIGHT.format(path=path),
                error_code=ErrorCode.APPLY_IN_FLIGHT.value,
            )

        self._in_flight.add(path)
        try:
            logger.info(
                "Applying %d action(s) to %s (auto_check=%s, confirmed=%s)",
                len(actions), path, auto_check, user_confirmed,
            )
            return await self.backend.apply_actions_tx(
                path, list(actions), auto_check=auto_check, user_confirmed=user_confirmed
            )
        except Exception as exc:
            logger.error("Apply failed for %s: %s", path, exc, exc_info=True)
            return ApplyTxResult(ok=False, error=str(exc))
        finally:
            self._in_flight.discard(path)

    async def apply(
        self,
        path: str,
        actions: List[Action],
        *,
        auto_check: bool,
        user_confirmed: bool,
    ) -> ApplyTxResult:
        """Submit and fold the outcome into the workspace."""
        if path in self._in_flight:
            return await self.submit(path, actions, auto_check=auto_check, user_confirmed=user_confirmed)
        with self.ctx.busy():
            result = await self.submit(path, actions, auto_check=auto_check, user_confirmed=user_confirmed)
        await self.handle_result(path, result)
        return result

    async def handle_result(self, path: str, result: ApplyTxResult) -> OutcomeKind:
        """Apply the outcome state machine for one result."""
        kind = classify_outcome(result)
        message = outcome_message(result)

        if kind is OutcomeKind.APPLIED:
            self.ctx.dispatch(Mutation.CLEAR_PENDING)
            self.ctx.dispatch(Mutation.SET_UNDO_REDO, undo_available=True)
        elif kind is OutcomeKind.REVERTED:
            self.ctx.dispatch(Mutation.SET_UNDO_REDO, undo_available=False)

        role = "assistant" if kind is OutcomeKind.APPLIED else "system"
        self.ctx.say(role, message, apply_result=result)
        logger.info("Apply outcome for %s: %s (%s)", path, kind.value, result.error_code or "-")

        await log_session_event(self.backend, path, "apply", role, message)
        return kind

    # ------------------------------------------------------------------
    # Pending preview
    # ------------------------------------------------------------------
    async def apply_pending(self, *, auto_check: bool, user_confirmed: bool) -> Optional[ApplyTxResult]:
        """
        Apply the pending preview's actions.

        Refuses with STALE_PREVIEW when the pending action set no longer
        matches the actions the preview was computed for.
        """
        pending = self.ctx.state["pending_preview"]
        if pending is None:
            self.ctx.say("system", MSG_NOTHING_PENDING)
            return None

        current = self.ctx.state["pending_actions"]
        if current is not None and not same_action_set(current, pending.actions):
            logger.info("Pending preview for %s is stale", pending.path)
            self.ctx.say("system", MSG_STALE_PREVIEW)
            return ApplyTxResult(
                ok=False,
                error=MSG_STALE_PREVIEW,
                error_code=ErrorCode.STALE_PREVIEW.value,
            )

        return await self.apply(
            pending.path,
            pending.actions,
            auto_check=auto_check,
            user_confirmed=user_confirmed,
        )

    def cancel_pending(self) -> bool:
        state = self.ctx.state
        if state["pending_preview"] is None and state["pending_actions"] is None:
            return False
        self.ctx.dispatch(Mutation.CLEAR_PENDING)
        self.ctx.say("system", MSG_CANCELLED)
        return True

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------
    async def verify(self, path: str) -> VerifyResult:
        with self.ctx.busy():
            try:
                result = await self.backend.verify_project(path)
            except Exception as exc:
                logger.error("Verify failed for %s: %s", path, exc)
                result = VerifyResult(ok=False, error=str(exc))

        self.ctx.dispatch(Mutation.SET_VERIFY_RESULT, result=result)
        if result.ok:
            self.ctx.say("assistant", MSG_VERIFY_OK)
        else:
            failed = [c.stage for c in result.checks if not c.ok]
            error = result.error or ", ".join(failed) or "unknown error"
            self.ctx.say("system", MSG_VERIFY_FAILED.format(error=error))
        return result

    # ------------------------------------------------------------------
    # One-click fix
    # ------------------------------------------------------------------
    async def one_click_fix(
        self, mode: str = GENERATE_MODE_CREATE_ONLY, auto_check: bool = True
    ) -> Optional[ApplyTxResult]:
        """Generate safe actions from the displayed report, preview and apply them."""
        state = self.ctx.state
        report = state["last_report"]
        path = state["last_path"] or (report.path if report else None)
        if report is None or path is None:
            self.ctx.say("system", MSG_NO_REPORT)
            return None

        try:
            generated = await self.backend.generate_actions_from_report(path, report, mode)
        except Exception as exc:
            logger.error("Action generation failed for %s: %s", path, exc)
            self.ctx.say("system", MSG_GENERATE_FAILED.format(error=exc))
            return None
        if not generated.ok:
            self.ctx.say("system", MSG_GENERATE_FAILED.format(error=generated.error or generated.error_code))
            return None
        if not generated.actions:
            self.ctx.say("assistant", MSG_NOTHING_TO_FIX)
            return None

        preview = await self.previewer.preview_into_pending(path, generated.actions)
        if preview is None:
            return None
        return await self.apply(path, generated.actions, auto_check=auto_check, user_confirmed=True)
