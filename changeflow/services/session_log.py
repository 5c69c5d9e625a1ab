"""
Session Log
===========
Best-effort append of orchestration events to the per-project session log.

The project is looked up by path and registered on first use. Any failure
(backend down, store unreadable) is logged and swallowed: the session log
never changes the outcome of the operation that produced the event.
"""
import logging
from typing import Optional

from changeflow.backend.contract import Backend
from changeflow.models.project import Session

logger = logging.getLogger(__name__)


async def log_session_event(
    backend: Backend,
    path: str,
    kind: str,
    role: str,
    text: str,
) -> Optional[Session]:
    """
    Append one event for the project at ``path``.

    Returns the updated Session, or None when the append failed.
    """
    try:
        projects = await backend.list_projects()
        project = next((p for p in projects if p.path == path), None)
        if project is None:
            project = await backend.add_project(path)
        return await backend.append_session_event(project.id, kind, role, text)
    except Exception as exc:
        logger.warning("Session log append failed for %s (%s): %s", path, kind, exc)
        return None
