"""
Undo/redo, agentic runs and multi-path batches.

Routes:
    POST /api/undo
    POST /api/redo
    GET  /api/undo-redo
    POST /api/agentic-run
    POST /api/batch          (application/x-ndjson stream of BatchEvent)
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from changeflow.api.deps import ensure_idle, get_workspace
from changeflow.core.config import AGENTIC_MAX_ACTIONS, AGENTIC_MAX_ATTEMPTS, DEFAULT_AUTO_CHECK
from changeflow.core.workspace import Workspace
from changeflow.models.action import Action
from changeflow.models.agentic import AgenticConstraints

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Runs"])


class UndoRequest(BaseModel):
    path: Optional[str] = None


class AgenticRequest(BaseModel):
    path: Optional[str] = None
    goal: Optional[str] = None
    auto_check: bool = DEFAULT_AUTO_CHECK
    max_attempts: int = Field(default=AGENTIC_MAX_ATTEMPTS, ge=1)
    max_actions: int = Field(default=AGENTIC_MAX_ACTIONS, ge=1)


class BatchRequest(BaseModel):
    paths: List[str] = []
    confirm_apply: bool = False
    auto_check: bool = DEFAULT_AUTO_CHECK
    selected_actions: Optional[List[Action]] = None
    user_confirmed: Optional[bool] = None
    attachments: Optional[List[str]] = None


@router.post("/undo")
async def undo(request: UndoRequest, ws: Workspace = Depends(get_workspace)):
    ensure_idle(ws)
    result = await ws.undo_redo.undo(request.path)
    return {"ok": result.ok, "result": result.model_dump(), "state": ws.ctx.snapshot()}


@router.post("/redo")
async def redo(ws: Workspace = Depends(get_workspace)):
    ensure_idle(ws)
    result = await ws.undo_redo.redo()
    return {"ok": result.ok, "result": result.model_dump(), "state": ws.ctx.snapshot()}


@router.get("/undo-redo")
async def undo_redo_state(ws: Workspace = Depends(get_workspace)):
    merged = await ws.undo_redo.refresh()
    return {**merged.model_dump(), "redo_scope": ws.undo_redo.redo_scope}


@router.post("/agentic-run")
async def agentic_run(request: AgenticRequest, ws: Workspace = Depends(get_workspace)):
    ensure_idle(ws)
    constraints = AgenticConstraints(
        auto_check=request.auto_check,
        max_attempts=request.max_attempts,
        max_actions=request.max_actions,
    )
    result = await ws.run_agentic(request.path, request.goal, constraints)
    return {
        "ok": bool(result and result.ok),
        "result": result.model_dump() if result else None,
        "state": ws.ctx.snapshot(),
    }


@router.post("/batch")
async def batch(request: BatchRequest, ws: Workspace = Depends(get_workspace)):
    ensure_idle(ws)

    async def _stream():
        async for event in ws.run_batch(
            request.paths,
            request.confirm_apply,
            request.auto_check,
            selected_actions=request.selected_actions,
            user_confirmed=request.user_confirmed,
            attachments=request.attachments,
        ):
            yield event.model_dump_json() + "\n"

    return StreamingResponse(_stream(), media_type="application/x-ndjson")
