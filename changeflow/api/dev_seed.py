"""
DEV: Mock Seeding Endpoint
==========================
Development-only endpoint that seeds a virtual project tree into the
in-memory mock backend, so the pipeline can be exercised end to end
without a real analysis service.

Route: POST /dev/seed

Safety:
    - Disabled by default (requires ENABLE_DEV_ENDPOINT=true)
    - Only works when the workspace runs on the mock backend
"""
import logging
from typing import Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, field_validator

from changeflow.api.deps import get_workspace
from changeflow.backend.mock_backend import MockBackend
from changeflow.core import config
from changeflow.core.workspace import Workspace
from changeflow.models.apply_result import CheckItem

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/dev", tags=["Dev"])


class SeedRequest(BaseModel):
    root: str
    files: Dict[str, Optional[str]] = {}
    fail_checks: bool = False

    @field_validator("root")
    @classmethod
    def validate_root(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("root must not be empty")
        return v.strip()


@router.post("/seed")
async def seed(request: SeedRequest, ws: Workspace = Depends(get_workspace)):
    if not config.ENABLE_DEV_ENDPOINT:
        raise HTTPException(
            status_code=403,
            detail="Dev endpoint disabled. Set ENABLE_DEV_ENDPOINT=true to enable.",
        )
    if not isinstance(ws.backend, MockBackend):
        raise HTTPException(status_code=400, detail="Seeding requires the mock backend.")

    ws.backend.seed(request.root, request.files)
    if request.fail_checks:
        ws.backend.check_hook = _failing_checks
    logger.info("[DEV] Seeded %s with %d entries", request.root, len(request.files))
    return {"root": request.root, "entries": len(ws.backend.trees[request.root])}


def _failing_checks(root, tree):
    return [CheckItem(stage="build", ok=False, output="build failed")]
