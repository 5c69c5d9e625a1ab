"""
Diff Models
===========
Pydantic models describing what a preview says will happen.

DiffItem        - advisory description of one action's effect
PreviewResult   - the diffs for one (path, actions) pair plus a one-line summary
PendingPreview  - the single mutable "about to apply" slot

A DiffItem is advisory only. Policy blocking is enforced again by the
backend at apply time; a blocked diff is shown, never silently dropped.
"""
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from changeflow.core.constants import BLOCKED_PREFIX, DIFF_KINDS
from changeflow.models.action import Action


class DiffItem(BaseModel):
    kind: str
    path: str
    before: Optional[str] = None
    after: Optional[str] = None
    summary: Optional[str] = None

    @field_validator("kind")
    @classmethod
    def validate_kind(cls, v: str) -> str:
        if v not in DIFF_KINDS:
            raise ValueError(f"Unknown diff kind: {v}")
        return v

    @property
    def blocked(self) -> bool:
        return self.kind == "blocked" or (self.summary or "").startswith(BLOCKED_PREFIX)


class PreviewResult(BaseModel):
    diffs: List[DiffItem] = []
    summary: str = ""

    @property
    def blocked_count(self) -> int:
        return sum(1 for d in self.diffs if d.blocked)


class PendingPreview(BaseModel):
    """Snapshot of a preview; never recomputed when the selection changes."""
    model_config = ConfigDict(frozen=True)

    path: str
    actions: List[Action]
    diffs: List[DiffItem] = []
