"""
Apply Outcomes
==============
Closed vocabulary shared between the orchestrator and the backend contract.

ErrorCode   - every error code the orchestrator knows by name
OutcomeKind - what an ApplyTxResult means for the workspace

Classification (driven only by ok + error_code):
    ok = True                                   → APPLIED
    CONFIRM_REQUIRED                            → CONFIRM_REQUIRED
    PROTECTED_PATH                              → POLICY_REJECTED
    AUTO_CHECK_FAILED_ROLLED_BACK /
    AUTO_CHECK_FAILED_REVERTED /
    AUTO_ROLLBACK_DONE                          → REVERTED
    anything else (including unknown strings)   → FAILED

Unknown codes are kept verbatim on the result; only the classification
collapses them into FAILED.
"""
from enum import Enum
from typing import Optional

from changeflow.models.apply_result import ApplyTxResult


class ErrorCode(str, Enum):
    CONFIRM_REQUIRED = "CONFIRM_REQUIRED"
    PROTECTED_PATH = "PROTECTED_PATH"
    AUTO_CHECK_FAILED_ROLLED_BACK = "AUTO_CHECK_FAILED_ROLLED_BACK"
    AUTO_CHECK_FAILED_REVERTED = "AUTO_CHECK_FAILED_REVERTED"
    AUTO_ROLLBACK_DONE = "AUTO_ROLLBACK_DONE"
    PATH_NOT_FOUND = "PATH_NOT_FOUND"
    TOO_MANY_ACTIONS = "TOO_MANY_ACTIONS"
    APPLY_FAILED_ROLLED_BACK = "APPLY_FAILED_ROLLED_BACK"
    APPLY_IN_FLIGHT = "APPLY_IN_FLIGHT"
    STALE_PREVIEW = "STALE_PREVIEW"
    NOTHING_SELECTED = "NOTHING_SELECTED"
    ANALYZE_FAILED = "ANALYZE_FAILED"
    PREVIEW_FAILED = "PREVIEW_FAILED"
    MAX_ATTEMPTS_EXCEEDED = "MAX_ATTEMPTS_EXCEEDED"
    NOTHING_TO_UNDO = "NOTHING_TO_UNDO"
    NOTHING_TO_REDO = "NOTHING_TO_REDO"


REVERTED_CODES = frozenset({
    ErrorCode.AUTO_CHECK_FAILED_ROLLED_BACK,
    ErrorCode.AUTO_CHECK_FAILED_REVERTED,
    ErrorCode.AUTO_ROLLBACK_DONE,
})


class OutcomeKind(str, Enum):
    APPLIED = "applied"
    CONFIRM_REQUIRED = "confirm_required"
    POLICY_REJECTED = "policy_rejected"
    REVERTED = "reverted"
    FAILED = "failed"


def parse_error_code(raw: Optional[str]) -> Optional[ErrorCode]:
    """Map a raw code onto the enum; None for empty or unknown codes."""
    if not raw:
        return None
    try:
        return ErrorCode(raw)
    except ValueError:
        return None


def classify_outcome(result: ApplyTxResult) -> OutcomeKind:
    if result.ok:
        return OutcomeKind.APPLIED
    code = parse_error_code(result.error_code)
    if code is ErrorCode.CONFIRM_REQUIRED:
        return OutcomeKind.CONFIRM_REQUIRED
    if code is ErrorCode.PROTECTED_PATH:
        return OutcomeKind.POLICY_REJECTED
    if code in REVERTED_CODES:
        return OutcomeKind.REVERTED
    return OutcomeKind.FAILED


# ---------------------------------------------------------------------------
# Transcript wording per outcome
# ---------------------------------------------------------------------------
MSG_APPLIED = "Changes applied. Checks passed."
MSG_CONFIRM_REQUIRED = "Confirmation is required before applying changes."
MSG_POLICY_REJECTED = "Changes rejected: the batch touches protected or non-text files. Nothing was written."
MSG_REVERTED = "The changes caused errors after applying. They were rolled back automatically."
MSG_FAILED_FALLBACK = "Apply failed."


def outcome_message(result: ApplyTxResult) -> str:
    """Human-readable transcript text for an apply result."""
    kind = classify_outcome(result)
    if kind is OutcomeKind.APPLIED:
        return MSG_APPLIED
    if kind is OutcomeKind.CONFIRM_REQUIRED:
        return MSG_CONFIRM_REQUIRED
    if kind is OutcomeKind.POLICY_REJECTED:
        return MSG_POLICY_REJECTED
    if kind is OutcomeKind.REVERTED:
        return MSG_REVERTED
    return result.error or result.error_code or MSG_FAILED_FALLBACK
