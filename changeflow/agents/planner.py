"""
Planner Adapter
===============
Asks the backend planner for actions toward a free-text goal.

The displayed report is sent as context. The previous plan and its
context are sent along so follow-up requests refine rather than restart.
Proposed actions land in the pending action slot; they still need a
preview before they can be applied.
"""
import json
import logging
from typing import Optional

from changeflow.backend.contract import Backend
from changeflow.models.action import AgentPlan, AnalyzeReport
from changeflow.state.workspace_state import Mutation, WorkspaceContext

logger = logging.getLogger(__name__)

MSG_NO_PATH = "Analyze a project first so the planner has context."
MSG_PLAN_FAILED = "Planner failed: {error}"
MSG_PLAN_READY = "{summary} ({count} proposed change(s)). Preview them before applying."


def report_context(report: Optional[AnalyzeReport]) -> str:
    if report is None:
        return ""
    return json.dumps({
        "narrative": report.narrative,
        "findings": [f.model_dump() for f in report.findings],
        "recommendations": report.recommendations,
    }, ensure_ascii=False)


class Planner:

    def __init__(self, backend: Backend, ctx: WorkspaceContext) -> None:
        self.backend = backend
        self.ctx = ctx

    async def propose(
        self,
        goal: str,
        path: Optional[str] = None,
        design_style: Optional[str] = None,
        trends_context: Optional[str] = None,
    ) -> Optional[AgentPlan]:
        state = self.ctx.state
        path = path or state["last_path"]
        if not path:
            self.ctx.say("system", MSG_NO_PATH)
            return None

        self.ctx.say("user", goal)
        with self.ctx.busy():
            try:
                plan = await self.backend.propose_actions(
                    path,
                    report_context(state["last_report"]),
                    goal,
                    design_style=design_style,
                    trends_context=trends_context,
                    last_plan=state["last_plan"],
                    last_plan_context=state["last_plan_context"],
                )
            except Exception as exc:
                logger.error("Planner call failed for %s: %s", path, exc)
                self.ctx.say("system", MSG_PLAN_FAILED.format(error=exc))
                return None

        if not plan.ok:
            self.ctx.say("system", MSG_PLAN_FAILED.format(error=plan.error or plan.error_code))
            return plan

        self.ctx.dispatch(Mutation.SET_PLAN, plan=plan.plan, plan_context=plan.plan_context)
        self.ctx.dispatch(Mutation.SET_PENDING_ACTIONS, actions=plan.actions or None)
        self.ctx.say("assistant", MSG_PLAN_READY.format(summary=plan.summary, count=len(plan.actions)))
        return plan
