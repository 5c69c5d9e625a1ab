"""
Agentic Run Models
==================
Pydantic models for the bounded multi-attempt repair loop.

Invariant:
    AgenticRunResult.attempts is ordered, numbered 1..N contiguously and
    never longer than the max_attempts the run was started with.
"""
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from changeflow.core.constants import AGENTIC_STAGES
from changeflow.models.action import Action
from changeflow.models.apply_result import ApplyTxResult, VerifyResult
from changeflow.models.diff import PreviewResult


class AgenticConstraints(BaseModel):
    auto_check: bool = True
    max_attempts: int = Field(default=2, ge=1)
    max_actions: int = Field(default=12, ge=1)


class AgenticProgress(BaseModel):
    stage: str
    message: str = ""
    attempt: int = 1

    @field_validator("stage")
    @classmethod
    def validate_stage(cls, v: str) -> str:
        if v not in AGENTIC_STAGES:
            raise ValueError(f"Unknown agentic stage: {v}")
        return v


class AttemptResult(BaseModel):
    attempt: int
    plan: str = ""
    actions: List[Action] = []
    preview: PreviewResult = PreviewResult()
    apply: ApplyTxResult = ApplyTxResult(ok=False)
    verify: VerifyResult = VerifyResult(ok=False)


class AgenticRunResult(BaseModel):
    ok: bool
    attempts: List[AttemptResult] = []
    final_summary: str = ""
    error: Optional[str] = None
    error_code: Optional[str] = None
