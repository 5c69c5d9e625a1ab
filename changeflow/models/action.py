"""
Action Models
=============
Pydantic models for proposed file-system changes and the bundles that group them.

Action           - one atomic proposed change; frozen once proposed
ActionGroup      - named bundle of actions; selection happens per group
FixPack          - higher-level recommendation referencing groups by id
Finding          - one analysis finding shown next to the actions
AnalyzeReport    - full analysis output for one target path

Identity:
    Two actions are "the same" for selection and dedup purposes when their
    (kind, path) pair matches. Content is not part of the identity, so two
    packs proposing the same file never apply it twice.
"""
from typing import Any, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, field_validator

from changeflow.core.constants import ACTION_KINDS


class Action(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: str
    path: str
    content: Optional[str] = None

    @field_validator("kind")
    @classmethod
    def validate_kind(cls, v: str) -> str:
        normalized = v.strip().upper()
        if normalized not in ACTION_KINDS:
            raise ValueError(f"Unknown action kind: {v}")
        return normalized

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        cleaned = v.strip().replace("\\", "/")
        if not cleaned:
            raise ValueError("Action path must not be empty")
        return cleaned

    @property
    def key(self) -> Tuple[str, str]:
        return (self.kind, self.path)


class ActionGroup(BaseModel):
    id: str
    title: str
    description: str = ""
    actions: List[Action] = []


class FixPack(BaseModel):
    id: str
    title: str
    description: str = ""
    group_ids: List[str] = []


class Finding(BaseModel):
    title: str
    details: str = ""
    path: Optional[str] = None


class AnalyzeReport(BaseModel):
    path: str
    narrative: str = ""
    findings: List[Finding] = []
    recommendations: List[Any] = []
    actions: List[Action] = []
    action_groups: Optional[List[ActionGroup]] = None
    fix_packs: Optional[List[FixPack]] = None
    recommended_pack_ids: Optional[List[str]] = None


class GenerateActionsResult(BaseModel):
    ok: bool
    actions: List[Action] = []
    skipped: List[str] = []
    error: Optional[str] = None
    error_code: Optional[str] = None


class AgentPlan(BaseModel):
    """Planner output: a summary plus the actions it proposes."""
    ok: bool
    summary: str = ""
    actions: List[Action] = []
    plan: Optional[str] = None
    plan_context: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
