"""
Agentic Run Coordinator
=======================
Bounded multi-attempt repair loop over the backend primitives.

Per attempt (1..max_attempts):
    analyze  → fresh report for the path                 (ANALYZE_FAILED ends the run)
    plan     → generate_actions_from_report("safe_create_only"), falling back
               to the planner; truncated to max_actions; empty plan → done
    preview  → advisory diffs                              (PREVIEW_FAILED ends the run)
    apply    → through the ApplyOrchestrator, auto_check=False,
               user_confirmed=True; a failed apply ends the run with its code
    verify   → only when constraints.auto_check
    revert   → undo_last_tx(path) on failed verification, then retry

Running out of attempts ends with MAX_ATTEMPTS_EXCEEDED.

Progress:
    Every stage is published as AgenticProgress on Topic.AGENTIC_PROGRESS.
    ProgressTracker is the idempotent consumer: it keeps the latest stage of
    the newest attempt and drops duplicates and late events for superseded
    attempts.

Result invariant:
    len(attempts) <= max_attempts and attempts[i].attempt == i + 1.
"""
import logging
from typing import List, Optional, Tuple

from changeflow.agents.apply_orchestrator import ApplyOrchestrator
from changeflow.agents.preview_adapter import PreviewAdapter
from changeflow.backend.contract import Backend
from changeflow.core.constants import CREATE_DIR, CREATE_FILE, GENERATE_MODE_CREATE_ONLY, TERMINAL_STAGES
from changeflow.core.events import Topic
from changeflow.models.action import Action, AnalyzeReport
from changeflow.models.agentic import (
    AgenticConstraints,
    AgenticProgress,
    AgenticRunResult,
    AttemptResult,
)
from changeflow.models.apply_result import VerifyResult
from changeflow.models.outcomes import ErrorCode
from changeflow.models.project import ProjectProfile
from changeflow.services.session_log import log_session_event
from changeflow.state.workspace_state import Mutation, WorkspaceContext
from changeflow.utils.action_keys import dedupe_actions

logger = logging.getLogger(__name__)

SUMMARY_NO_ACTIONS = "No safe changes to apply."
SUMMARY_APPLY_FAILED = "Apply was not performed."
SUMMARY_MAX_ATTEMPTS = "Attempt limit reached. Changes were rolled back."


class ProgressTracker:
    """
    Idempotent consumer of agentic progress events.

    Accepts an event only when it belongs to the newest attempt seen so far
    and differs from the last accepted stage of that attempt. Once a
    terminal stage (done/failed) is accepted, nothing else is.
    """

    def __init__(self, ctx: Optional[WorkspaceContext] = None) -> None:
        self.ctx = ctx
        self.latest: Optional[AgenticProgress] = None
        self.finished = False

    def reset(self) -> None:
        self.latest = None
        self.finished = False

    def accept(self, progress: AgenticProgress) -> bool:
        if self.finished:
            return False
        if self.latest is not None:
            if progress.attempt < self.latest.attempt:
                return False
            if progress.attempt == self.latest.attempt and progress.stage == self.latest.stage:
                return False
        self.latest = progress
        if progress.stage in TERMINAL_STAGES:
            self.finished = True
        if self.ctx is not None:
            self.ctx.dispatch(Mutation.SET_AGENTIC_PROGRESS, progress=progress)
        return True

    def __call__(self, progress: AgenticProgress) -> None:
        self.accept(progress)


def validate_attempts(result: AgenticRunResult, max_attempts: int) -> AgenticRunResult:
    """Raise ValueError when the attempts list breaks the numbering invariant."""
    if len(result.attempts) > max_attempts:
        raise ValueError(f"{len(result.attempts)} attempts exceed the limit of {max_attempts}")
    for index, attempt in enumerate(result.attempts):
        if attempt.attempt != index + 1:
            raise ValueError(f"attempt #{index} is numbered {attempt.attempt}")
    return result


class AgenticRunCoordinator:

    def __init__(
        self,
        backend: Backend,
        ctx: WorkspaceContext,
        applier: ApplyOrchestrator,
        previewer: PreviewAdapter,
        undo_redo=None,
    ) -> None:
        self.backend = backend
        self.ctx = ctx
        self.applier = applier
        self.previewer = previewer
        self.undo_redo = undo_redo
        self.tracker = ProgressTracker(ctx)
        self.ctx.bus.subscribe(Topic.AGENTIC_PROGRESS, self.tracker)

    @classmethod
    def standalone(cls, backend: Backend) -> "AgenticRunCoordinator":
        """Coordinator with a private workspace, for backends that run the loop themselves."""
        ctx = WorkspaceContext()
        previewer = PreviewAdapter(backend, ctx)
        return cls(backend, ctx, ApplyOrchestrator(backend, ctx, previewer), previewer)

    def _emit(self, stage: str, message: str, attempt: int) -> None:
        logger.info("[agentic] attempt %d %s: %s", attempt, stage, message)
        self.ctx.bus.publish(
            Topic.AGENTIC_PROGRESS,
            AgenticProgress(stage=stage, message=message, attempt=attempt),
        )

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------
    async def _profile(self, path: str) -> Optional[ProjectProfile]:
        try:
            return await self.backend.get_project_profile(path)
        except Exception as exc:
            logger.warning("Project profile unavailable for %s: %s", path, exc)
            return None

    @staticmethod
    def _bounds(constraints: AgenticConstraints, profile: Optional[ProjectProfile]) -> Tuple[int, int]:
        max_attempts = max(1, constraints.max_attempts)
        max_actions = max(1, constraints.max_actions)
        if profile is not None:
            max_actions = max(1, min(max_actions, profile.limits.max_actions_per_tx))
        return max_attempts, max_actions

    @staticmethod
    def expand_goal(goal: str, profile: Optional[ProjectProfile]) -> str:
        if profile is None or "{goal}" not in profile.goal_template:
            return goal
        return profile.goal_template.replace("{goal}", goal)

    async def _plan(
        self, path: str, report: AnalyzeReport, goal: str, max_actions: int
    ) -> Tuple[str, List[Action]]:
        actions: List[Action] = []
        try:
            generated = await self.backend.generate_actions_from_report(
                path, report, GENERATE_MODE_CREATE_ONLY
            )
            if generated.ok:
                actions = dedupe_actions(generated.actions)
        except Exception as exc:
            logger.warning("Action generation failed for %s: %s", path, exc)

        if actions:
            actions = actions[:max_actions]
            return f"Plan from report: {len(actions)} action(s).", actions

        try:
            plan = await self.backend.propose_actions(path, report.narrative, goal)
        except Exception as exc:
            logger.warning("Planner failed for %s: %s", path, exc)
            return SUMMARY_NO_ACTIONS, []
        if not plan.ok:
            return SUMMARY_NO_ACTIONS, []
        safe = [a for a in dedupe_actions(plan.actions) if a.kind in (CREATE_FILE, CREATE_DIR)][:max_actions]
        if not safe:
            return SUMMARY_NO_ACTIONS, []
        return plan.summary or f"Plan: add {', '.join(a.path for a in safe)}", safe

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------
    async def run(self, path: str, goal: str, constraints: AgenticConstraints) -> AgenticRunResult:
        """Run the loop; publishes progress but writes nothing to the transcript."""
        self.tracker.reset()
        profile = await self._profile(path)
        max_attempts, max_actions = self._bounds(constraints, profile)
        goal = self.expand_goal(goal, profile)
        attempts: List[AttemptResult] = []

        for attempt in range(1, max_attempts + 1):
            self._emit("analyze", "Scanning project…", attempt)
            try:
                report = await self.backend.analyze_project(path)
            except Exception as exc:
                self._emit("failed", "Analysis failed.", attempt)
                return validate_attempts(AgenticRunResult(
                    ok=False,
                    attempts=attempts,
                    final_summary=f"Analysis failed: {exc}",
                    error=str(exc),
                    error_code=ErrorCode.ANALYZE_FAILED.value,
                ), max_attempts)

            self._emit("plan", "Building a fix plan…", attempt)
            plan, actions = await self._plan(path, report, goal, max_actions)
            if not actions:
                self._emit("done", "Done.", attempt)
                return validate_attempts(
                    AgenticRunResult(ok=True, attempts=attempts, final_summary=plan), max_attempts
                )

            self._emit("preview", "Showing what will change…", attempt)
            try:
                preview = await self.previewer.preview(path, actions)
            except Exception as exc:
                self._emit("failed", "Preview failed.", attempt)
                return validate_attempts(AgenticRunResult(
                    ok=False,
                    attempts=attempts,
                    final_summary=f"Preview failed: {exc}",
                    error=str(exc),
                    error_code=ErrorCode.PREVIEW_FAILED.value,
                ), max_attempts)

            self._emit("apply", "Applying changes…", attempt)
            apply_result = await self.applier.submit(
                path, actions, auto_check=False, user_confirmed=True
            )
            if not apply_result.ok:
                self._emit("failed", "Could not apply the changes safely.", attempt)
                attempts.append(AttemptResult(
                    attempt=attempt, plan=plan, actions=actions,
                    preview=preview, apply=apply_result, verify=VerifyResult(ok=False),
                ))
                return validate_attempts(AgenticRunResult(
                    ok=False,
                    attempts=attempts,
                    final_summary=SUMMARY_APPLY_FAILED,
                    error=apply_result.error,
                    error_code=apply_result.error_code,
                ), max_attempts)

            if constraints.auto_check:
                self._emit("verify", "Checking build and types…", attempt)
                try:
                    verify = await self.backend.verify_project(path)
                except Exception as exc:
                    verify = VerifyResult(ok=False, error=str(exc))
                if not verify.ok:
                    self._emit("revert", "Errors found. Rolling back the changes…", attempt)
                    try:
                        await self.backend.undo_last_tx(path)
                    except Exception as exc:
                        logger.error("Revert failed for %s: %s", path, exc)
                    attempts.append(AttemptResult(
                        attempt=attempt, plan=plan, actions=actions,
                        preview=preview, apply=apply_result, verify=verify,
                    ))
                    continue
            else:
                verify = VerifyResult(ok=True)

            attempts.append(AttemptResult(
                attempt=attempt, plan=plan, actions=actions,
                preview=preview, apply=apply_result, verify=verify,
            ))
            self._emit("done", "Done.", attempt)
            return validate_attempts(
                AgenticRunResult(ok=True, attempts=attempts, final_summary=plan), max_attempts
            )

        self._emit("failed", "Could not apply the changes safely.", max_attempts)
        return validate_attempts(AgenticRunResult(
            ok=False,
            attempts=attempts,
            final_summary=SUMMARY_MAX_ATTEMPTS,
            error="max_attempts exceeded",
            error_code=ErrorCode.MAX_ATTEMPTS_EXCEEDED.value,
        ), max_attempts)

    async def run_and_record(
        self, path: str, goal: str, constraints: AgenticConstraints
    ) -> AgenticRunResult:
        """Run the loop inside the workspace: busy flag, transcript, session log."""
        with self.ctx.busy():
            result = await self.run(path, goal, constraints)

        self.ctx.dispatch(Mutation.SET_AGENTIC_RESULT, result=result)
        n = len(result.attempts)
        if result.ok:
            text = f"Agentic run finished after {n} attempt(s): {result.final_summary}"
            self.ctx.say("assistant", text)
        else:
            text = f"Agentic run failed after {n} attempt(s): {result.final_summary}"
            if result.error_code:
                text += f" ({result.error_code})"
            self.ctx.say("system", text)

        await log_session_event(self.backend, path, "agentic_run", "assistant", text)
        if self.undo_redo is not None:
            await self.undo_redo.refresh()
        return result
