"""
Analyze → select → preview → apply pipeline.

Routes:
    POST /api/analyze
    GET  /api/selection
    POST /api/selection
    POST /api/preview
    POST /api/apply
    POST /api/verify
    POST /api/cancel
    POST /api/one-click-fix
    POST /api/plan
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, field_validator

from changeflow.api.deps import ensure_idle, get_workspace
from changeflow.core.config import DEFAULT_AUTO_CHECK
from changeflow.core.constants import GENERATE_MODE_CREATE_ONLY
from changeflow.core.workspace import Workspace
from changeflow.models.action import Action

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Pipeline"])

SELECTION_OPS = (
    "toggle",
    "select_group",
    "deselect_group",
    "select_pack",
    "deselect_pack",
    "select_all_groups",
    "clear",
)


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------
class AnalyzeRequest(BaseModel):
    path: str
    attachments: Optional[List[str]] = None

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("path must not be empty")
        return v.strip()


class SelectionRequest(BaseModel):
    op: str
    action: Optional[Action] = None
    id: Optional[str] = None

    @field_validator("op")
    @classmethod
    def validate_op(cls, v: str) -> str:
        if v not in SELECTION_OPS:
            raise ValueError(f"op must be one of {', '.join(SELECTION_OPS)}")
        return v


class PreviewRequest(BaseModel):
    source: str = "selection"   # selection | proposed


class ApplyRequest(BaseModel):
    user_confirmed: bool
    auto_check: bool = DEFAULT_AUTO_CHECK


class VerifyRequest(BaseModel):
    path: Optional[str] = None


class OneClickRequest(BaseModel):
    mode: str = GENERATE_MODE_CREATE_ONLY
    auto_check: bool = DEFAULT_AUTO_CHECK


class PlanRequest(BaseModel):
    goal: str
    path: Optional[str] = None
    design_style: Optional[str] = None
    trends_context: Optional[str] = None


def _selection_body(ws: Workspace) -> dict:
    return {"selected": [a.model_dump() for a in ws.selection.selected_actions()]}


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@router.post("/analyze")
async def analyze(request: AnalyzeRequest, ws: Workspace = Depends(get_workspace)):
    ensure_idle(ws)
    report = await ws.analyze(request.path, request.attachments)
    return {
        "ok": report is not None,
        "report": report.model_dump() if report else None,
        "state": ws.ctx.snapshot(),
    }


@router.get("/selection")
async def get_selection(ws: Workspace = Depends(get_workspace)):
    return _selection_body(ws)


@router.post("/selection")
async def update_selection(request: SelectionRequest, ws: Workspace = Depends(get_workspace)):
    if request.op == "toggle":
        if request.action is None:
            raise HTTPException(status_code=400, detail="toggle requires an action")
        ws.selection.toggle(request.action)
    elif request.op in ("select_group", "deselect_group", "select_pack", "deselect_pack"):
        if not request.id:
            raise HTTPException(status_code=400, detail=f"{request.op} requires an id")
        getattr(ws.selection, request.op)(request.id)
    elif request.op == "select_all_groups":
        ws.selection.select_all_groups()
    else:
        ws.selection.clear()
    return _selection_body(ws)


@router.post("/preview")
async def preview(request: PreviewRequest, ws: Workspace = Depends(get_workspace)):
    ensure_idle(ws)
    if request.source == "proposed":
        result = await ws.preview_proposed()
    else:
        result = await ws.preview_selection()
    return {
        "ok": result is not None,
        "preview": result.model_dump() if result else None,
        "state": ws.ctx.snapshot(),
    }


@router.post("/apply")
async def apply(request: ApplyRequest, ws: Workspace = Depends(get_workspace)):
    ensure_idle(ws)
    result = await ws.applier.apply_pending(
        auto_check=request.auto_check, user_confirmed=request.user_confirmed
    )
    return {
        "ok": bool(result and result.ok),
        "result": result.model_dump() if result else None,
        "state": ws.ctx.snapshot(),
    }


@router.post("/verify")
async def verify(request: VerifyRequest, ws: Workspace = Depends(get_workspace)):
    ensure_idle(ws)
    path = request.path or ws.ctx.state["last_path"]
    if not path:
        raise HTTPException(status_code=400, detail="No path to verify. Analyze a project first.")
    result = await ws.applier.verify(path)
    return {"ok": result.ok, "result": result.model_dump(), "state": ws.ctx.snapshot()}


@router.post("/cancel")
async def cancel(ws: Workspace = Depends(get_workspace)):
    cancelled = ws.applier.cancel_pending()
    return {"cancelled": cancelled, "state": ws.ctx.snapshot()}


@router.post("/one-click-fix")
async def one_click_fix(request: OneClickRequest, ws: Workspace = Depends(get_workspace)):
    ensure_idle(ws)
    result = await ws.applier.one_click_fix(mode=request.mode, auto_check=request.auto_check)
    return {
        "ok": bool(result and result.ok),
        "result": result.model_dump() if result else None,
        "state": ws.ctx.snapshot(),
    }


@router.post("/plan")
async def plan(request: PlanRequest, ws: Workspace = Depends(get_workspace)):
    ensure_idle(ws)
    result = await ws.planner.propose(
        request.goal,
        path=request.path,
        design_style=request.design_style,
        trends_context=request.trends_context,
    )
    return {
        "ok": bool(result and result.ok),
        "plan": result.model_dump() if result else None,
        "state": ws.ctx.snapshot(),
    }
