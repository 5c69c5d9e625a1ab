"""
Projects, sessions and settings export/import.

Routes:
    GET  /api/projects
    POST /api/projects
    GET  /api/sessions?project_id=...
    GET  /api/settings/export
    POST /api/settings/import
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, field_validator

from changeflow.api.deps import get_workspace
from changeflow.core.workspace import Workspace
from changeflow.services.settings_store import IMPORT_MODES, SettingsStoreError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Settings"])


class AddProjectRequest(BaseModel):
    path: str
    name: Optional[str] = None


class ImportRequest(BaseModel):
    json_payload: str
    mode: str = "merge"

    @field_validator("mode")
    @classmethod
    def validate_mode(cls, v: str) -> str:
        if v not in IMPORT_MODES:
            raise ValueError(f"mode must be one of {', '.join(IMPORT_MODES)}")
        return v


@router.get("/projects")
async def list_projects(ws: Workspace = Depends(get_workspace)):
    projects = await ws.backend.list_projects()
    return {"projects": [p.model_dump() for p in projects]}


@router.post("/projects")
async def add_project(request: AddProjectRequest, ws: Workspace = Depends(get_workspace)):
    try:
        project = await ws.backend.add_project(request.path, request.name)
    except SettingsStoreError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return project.model_dump()


@router.get("/sessions")
async def list_sessions(project_id: Optional[str] = None, ws: Workspace = Depends(get_workspace)):
    sessions = await ws.backend.list_sessions(project_id)
    return {"sessions": [s.model_dump() for s in sessions]}


@router.get("/settings/export")
async def export_settings(ws: Workspace = Depends(get_workspace)):
    return {"json": await ws.backend.export_settings()}


@router.post("/settings/import")
async def import_settings(request: ImportRequest, ws: Workspace = Depends(get_workspace)):
    try:
        result = await ws.backend.import_settings(request.json_payload, request.mode)
    except SettingsStoreError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    logger.info("Settings imported (%s): %s", request.mode, result.model_dump())
    return result.model_dump()
