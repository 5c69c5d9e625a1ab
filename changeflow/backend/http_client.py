"""
HTTP Backend
============
Backend implementation speaking JSON to a remote analysis/apply service.

Every command is a POST to ``{BACKEND_URL}/commands/{name}`` with the
arguments as a JSON object; the response body is the command's result.
Responses are validated into the pydantic models of the backend contract.

Progress lines (analyze_progress) arrive as an optional ``progress`` list
on the analyze response and are fanned out to local subscribers before the
report is returned.

Usage:
    backend = HttpBackend("http://127.0.0.1:8787")
    report = await backend.analyze_project(".")
    await backend.close()
"""
import json
import logging
from typing import Any, Callable, Dict, List, Optional

import httpx

from changeflow.backend.contract import Backend, BackendError, ProgressCallback
from changeflow.core.config import BACKEND_TIMEOUT, BACKEND_URL
from changeflow.models.action import Action, AgentPlan, AnalyzeReport, GenerateActionsResult
from changeflow.models.agentic import AgenticConstraints, AgenticRunResult
from changeflow.models.apply_result import (
    ApplyTxResult,
    UndoRedoState,
    UndoResult,
    UndoStatus,
    VerifyResult,
)
from changeflow.models.diff import PreviewResult
from changeflow.models.project import ImportResult, Project, ProjectProfile, Session

logger = logging.getLogger(__name__)


def _dump_actions(actions: List[Action]) -> List[Dict[str, Any]]:
    return [a.model_dump() for a in actions]


class HttpBackend(Backend):
    """Async HTTP client for the remote backend."""

    def __init__(self, base_url: str = BACKEND_URL, timeout: Optional[float] = BACKEND_TIMEOUT) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._http: Optional[httpx.AsyncClient] = None
        self._progress_subscribers: List[ProgressCallback] = []

    async def _get_http(self) -> httpx.AsyncClient:
        """Lazy-initialise the HTTP client."""
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(base_url=self.base_url, timeout=httpx.Timeout(self.timeout))
        return self._http

    async def close(self) -> None:
        if self._http and not self._http.is_closed:
            await self._http.aclose()
            self._http = None

    async def _command(self, name: str, payload: Dict[str, Any]) -> Any:
        http = await self._get_http()
        try:
            resp = await http.post(f"/commands/{name}", json=payload)
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error("Backend command %s failed: HTTP %d", name, status)
            raise BackendError(f"{name} failed: HTTP {status}") from e
        except httpx.HTTPError as e:
            logger.error("Backend command %s transport error: %s", name, e)
            raise BackendError(f"{name} failed: {e}") from e

    # ------------------------------------------------------------------
    # Analysis / planning
    # ------------------------------------------------------------------
    async def analyze_project(self, path: str, attachments: Optional[List[str]] = None) -> AnalyzeReport:
        data = await self._command("analyze_project", {"path": path, "attachments": attachments})
        for line in data.pop("progress", None) or []:
            self._emit_progress(str(line))
        return AnalyzeReport.model_validate(data)

    async def generate_actions_from_report(
        self, path: str, report: AnalyzeReport, mode: str
    ) -> GenerateActionsResult:
        data = await self._command(
            "generate_actions_from_report",
            {"path": path, "report": report.model_dump(), "mode": mode},
        )
        return GenerateActionsResult.model_validate(data)

    async def propose_actions(
        self,
        path: str,
        report_context: str,
        goal: str,
        design_style: Optional[str] = None,
        trends_context: Optional[str] = None,
        last_plan: Optional[str] = None,
        last_plan_context: Optional[str] = None,
    ) -> AgentPlan:
        data = await self._command(
            "propose_actions",
            {
                "path": path,
                "report_context": report_context,
                "goal": goal,
                "design_style": design_style,
                "trends_context": trends_context,
                "last_plan": last_plan,
                "last_plan_context": last_plan_context,
            },
        )
        return AgentPlan.model_validate(data)

    # ------------------------------------------------------------------
    # Preview / apply / verify
    # ------------------------------------------------------------------
    async def preview_actions(self, path: str, actions: List[Action]) -> PreviewResult:
        data = await self._command("preview_actions", {"path": path, "actions": _dump_actions(actions)})
        return PreviewResult.model_validate(data)

    async def apply_actions_tx(
        self, path: str, actions: List[Action], *, auto_check: bool, user_confirmed: bool
    ) -> ApplyTxResult:
        data = await self._command(
            "apply_actions_tx",
            {
                "path": path,
                "actions": _dump_actions(actions),
                "auto_check": auto_check,
                "user_confirmed": user_confirmed,
            },
        )
        return ApplyTxResult.model_validate(data)

    async def verify_project(self, path: str) -> VerifyResult:
        data = await self._command("verify_project", {"path": path})
        return VerifyResult.model_validate(data)

    # ------------------------------------------------------------------
    # Undo / redo
    # ------------------------------------------------------------------
    async def undo_last_tx(self, path: str) -> bool:
        data = await self._command("undo_last_tx", {"path": path})
        return bool(data)

    async def undo_last(self) -> UndoResult:
        return UndoResult.model_validate(await self._command("undo_last", {}))

    async def redo_last(self) -> UndoResult:
        return UndoResult.model_validate(await self._command("redo_last", {}))

    async def get_undo_redo_state(self) -> UndoRedoState:
        return UndoRedoState.model_validate(await self._command("get_undo_redo_state", {}))

    async def get_undo_status(self) -> UndoStatus:
        return UndoStatus.model_validate(await self._command("get_undo_status", {}))

    # ------------------------------------------------------------------
    # Agentic
    # ------------------------------------------------------------------
    async def agentic_run(
        self, path: str, goal: str, constraints: AgenticConstraints
    ) -> AgenticRunResult:
        data = await self._command(
            "agentic_run",
            {"path": path, "goal": goal, "constraints": constraints.model_dump()},
        )
        return AgenticRunResult.model_validate(data)

    async def get_project_profile(self, path: str) -> ProjectProfile:
        return ProjectProfile.model_validate(await self._command("get_project_profile", {"path": path}))

    # ------------------------------------------------------------------
    # Projects / sessions / settings
    # ------------------------------------------------------------------
    async def list_projects(self) -> List[Project]:
        data = await self._command("list_projects", {})
        return [Project.model_validate(p) for p in data]

    async def add_project(self, path: str, name: Optional[str] = None) -> Project:
        return Project.model_validate(await self._command("add_project", {"path": path, "name": name}))

    async def list_sessions(self, project_id: Optional[str] = None) -> List[Session]:
        data = await self._command("list_sessions", {"project_id": project_id})
        return [Session.model_validate(s) for s in data]

    async def append_session_event(self, project_id: str, kind: str, role: str, text: str) -> Session:
        data = await self._command(
            "append_session_event",
            {"project_id": project_id, "kind": kind, "role": role, "text": text},
        )
        return Session.model_validate(data)

    async def export_settings(self) -> str:
        data = await self._command("export_settings", {})
        # Backends may answer with the bundle object instead of its serialized text.
        return data if isinstance(data, str) else json.dumps(data)

    async def import_settings(self, payload: str, mode: str = "merge") -> ImportResult:
        data = await self._command("import_settings", {"json": payload, "mode": mode})
        return ImportResult.model_validate(data)

    # ------------------------------------------------------------------
    # Push channel
    # ------------------------------------------------------------------
    def subscribe_progress(self, callback: ProgressCallback) -> Callable[[], None]:
        self._progress_subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._progress_subscribers:
                self._progress_subscribers.remove(callback)

        return _unsubscribe

    def _emit_progress(self, line: str) -> None:
        for callback in list(self._progress_subscribers):
            try:
                callback(line)
            except Exception as exc:
                logger.error("Progress subscriber failed: %s", exc)
