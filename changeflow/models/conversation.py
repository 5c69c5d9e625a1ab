"""
Conversation Models
===================
Transcript messages and the frozen request-history snapshots built from them.

RequestHistoryItem captures exactly four things: title, transcript, last path
and last report. Pending preview/actions are deliberately left out so that
switching requests always discards unapplied proposals.
"""
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from changeflow.models.action import AnalyzeReport
from changeflow.models.apply_result import ApplyTxResult
from changeflow.models.diff import PreviewResult

ROLES = ("system", "user", "assistant")


class ChatMessage(BaseModel):
    role: str
    text: str
    report: Optional[AnalyzeReport] = None
    preview: Optional[PreviewResult] = None
    apply_result: Optional[ApplyTxResult] = None

    @field_validator("role")
    @classmethod
    def validate_role(cls, v: str) -> str:
        if v not in ROLES:
            raise ValueError(f"Unknown role: {v}")
        return v


class RequestHistoryItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    messages: List[ChatMessage] = []
    last_path: Optional[str] = None
    last_report: Optional[AnalyzeReport] = None
