"""
Apply / Verify / Undo Result Models
===================================
Structured outcomes returned by the transactional backend.

ApplyTxResult:
    ok           - applied and checks (if any) passed
    tx_id        - transaction handle; the only token targeted undo accepts
    applied      - files were written at some point during the request
    rolled_back  - the backend reverted the write (e.g. failed auto-check)
    checks       - per-stage verification output
    error / error_code - see changeflow.models.outcomes.ErrorCode
"""
from typing import List, Optional

from pydantic import BaseModel


class CheckItem(BaseModel):
    stage: str
    ok: bool
    output: str = ""


class ApplyTxResult(BaseModel):
    ok: bool
    tx_id: Optional[str] = None
    applied: bool = False
    rolled_back: bool = False
    checks: List[CheckItem] = []
    error: Optional[str] = None
    error_code: Optional[str] = None


class VerifyResult(BaseModel):
    ok: bool
    checks: List[CheckItem] = []
    error: Optional[str] = None
    error_code: Optional[str] = None


class UndoResult(BaseModel):
    ok: bool
    error: Optional[str] = None
    error_code: Optional[str] = None


class UndoRedoState(BaseModel):
    undo_available: bool = False
    redo_available: bool = False


class UndoStatus(BaseModel):
    available: bool = False
    tx_id: Optional[str] = None
