"""
Batch Event Model
Pydantic model for one event of a multi-path batch stream.
Kinds: report, preview, apply, error - always tagged with the originating path.
"""
from typing import Optional

from pydantic import BaseModel

from changeflow.models.action import AnalyzeReport
from changeflow.models.apply_result import ApplyTxResult
from changeflow.models.diff import PreviewResult


class BatchEvent(BaseModel):
    kind: str
    path: str
    report: Optional[AnalyzeReport] = None
    preview: Optional[PreviewResult] = None
    apply_result: Optional[ApplyTxResult] = None
    message: Optional[str] = None
    undo_available: Optional[bool] = None
