"""
Backend Contract
================
The commands the orchestrator consumes from the external analysis/apply
backend. Every implementation (HTTP client, in-memory mock) subclasses
Backend and returns the pydantic models below, never raw dicts.

Request/response commands:
    analyze_project, preview_actions, apply_actions_tx, verify_project,
    undo_last_tx, undo_last, redo_last, get_undo_redo_state, get_undo_status,
    agentic_run, generate_actions_from_report, propose_actions,
    get_project_profile, list_projects, add_project, list_sessions,
    append_session_event, export_settings, import_settings

Push channel:
    subscribe_progress(callback) - analyze_progress text lines. Delivery may
    interleave with outstanding requests; subscribers must tolerate that.

Error codes returned on results use changeflow.models.outcomes.ErrorCode
where a known code applies, free-form strings otherwise.
"""
from abc import ABC, abstractmethod
from typing import Callable, List, Optional

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

ProgressCallback = Callable[[str], None]


class BackendError(Exception):
    """Raised by backend implementations for transport or protocol failures."""


class Backend(ABC):

    # --- analysis / planning ---
    @abstractmethod
    async def analyze_project(self, path: str, attachments: Optional[List[str]] = None) -> AnalyzeReport: ...

    @abstractmethod
    async def generate_actions_from_report(
        self, path: str, report: AnalyzeReport, mode: str
    ) -> GenerateActionsResult: ...

    @abstractmethod
    async def propose_actions(
        self,
        path: str,
        report_context: str,
        goal: str,
        design_style: Optional[str] = None,
        trends_context: Optional[str] = None,
        last_plan: Optional[str] = None,
        last_plan_context: Optional[str] = None,
    ) -> AgentPlan: ...

    # --- preview / apply / verify ---
    @abstractmethod
    async def preview_actions(self, path: str, actions: List[Action]) -> PreviewResult: ...

    @abstractmethod
    async def apply_actions_tx(
        self, path: str, actions: List[Action], *, auto_check: bool, user_confirmed: bool
    ) -> ApplyTxResult: ...

    @abstractmethod
    async def verify_project(self, path: str) -> VerifyResult: ...

    # --- undo / redo ---
    @abstractmethod
    async def undo_last_tx(self, path: str) -> bool: ...

    @abstractmethod
    async def undo_last(self) -> UndoResult: ...

    @abstractmethod
    async def redo_last(self) -> UndoResult: ...

    @abstractmethod
    async def get_undo_redo_state(self) -> UndoRedoState: ...

    @abstractmethod
    async def get_undo_status(self) -> UndoStatus: ...

    # --- agentic ---
    @abstractmethod
    async def agentic_run(
        self, path: str, goal: str, constraints: AgenticConstraints
    ) -> AgenticRunResult: ...

    @abstractmethod
    async def get_project_profile(self, path: str) -> ProjectProfile: ...

    # --- projects / sessions / settings ---
    @abstractmethod
    async def list_projects(self) -> List[Project]: ...

    @abstractmethod
    async def add_project(self, path: str, name: Optional[str] = None) -> Project: ...

    @abstractmethod
    async def list_sessions(self, project_id: Optional[str] = None) -> List[Session]: ...

    @abstractmethod
    async def append_session_event(self, project_id: str, kind: str, role: str, text: str) -> Session: ...

    @abstractmethod
    async def export_settings(self) -> str: ...

    @abstractmethod
    async def import_settings(self, payload: str, mode: str = "merge") -> ImportResult: ...

    # --- push channel ---
    @abstractmethod
    def subscribe_progress(self, callback: ProgressCallback) -> Callable[[], None]: ...

    # --- lifecycle ---
    async def close(self) -> None:
        """Release transport resources. Nothing to release by default."""
