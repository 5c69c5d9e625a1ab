"""
Workspace dependency shared by the API routers.

One Workspace per process, built lazily from configuration. Tests replace
it with set_workspace().
"""
from typing import Optional

from fastapi import HTTPException

from changeflow.core.workspace import Workspace, build_backend

_workspace: Optional[Workspace] = None


def get_workspace() -> Workspace:
    global _workspace
    if _workspace is None:
        _workspace = Workspace(build_backend())
    return _workspace


def set_workspace(workspace: Optional[Workspace]) -> None:
    global _workspace
    _workspace = workspace


async def close_workspace() -> None:
    """Close the process workspace's backend, if one was ever built."""
    global _workspace
    if _workspace is not None:
        await _workspace.backend.close()
        _workspace = None


def ensure_idle(workspace: Workspace) -> None:
    """409 while a preview/apply/verify/agentic run is in flight."""
    if workspace.ctx.is_busy:
        raise HTTPException(status_code=409, detail="Workspace is busy. Wait for the current operation to finish.")
