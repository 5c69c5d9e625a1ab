"""
Workspace state, request history and reset.

Routes:
    GET    /api/state
    POST   /api/reset
    GET    /api/history
    POST   /api/history/new
    POST   /api/history/{item_id}/switch
    DELETE /api/history/{item_id}
"""
import logging

from fastapi import APIRouter, Depends, HTTPException

from changeflow.api.deps import get_workspace
from changeflow.core.workspace import Workspace

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Workspace"])


@router.get("/state")
async def get_state(ws: Workspace = Depends(get_workspace)):
    return ws.ctx.snapshot()


@router.post("/reset")
async def reset(ws: Workspace = Depends(get_workspace)):
    ws.reset()
    return ws.ctx.snapshot()


@router.get("/history")
async def list_history(ws: Workspace = Depends(get_workspace)):
    return {"requests": ws.history.display_requests()}


@router.post("/history/new")
async def new_request(ws: Workspace = Depends(get_workspace)):
    item = ws.history.new_request()
    return {
        "archived": item.id if item else None,
        "requests": ws.history.display_requests(),
    }


@router.post("/history/{item_id}/switch")
async def switch_request(item_id: str, ws: Workspace = Depends(get_workspace)):
    try:
        ws.history.switch_to(item_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown request: {item_id}")
    ws.selection.clear()
    report = ws.ctx.state["last_report"]
    if report is not None:
        ws.selection.load_report(report)
    return ws.ctx.snapshot()


@router.delete("/history/{item_id}")
async def remove_request(item_id: str, ws: Workspace = Depends(get_workspace)):
    if not ws.history.remove(item_id):
        raise HTTPException(status_code=404, detail=f"Unknown request: {item_id}")
    return {"requests": ws.history.display_requests()}
