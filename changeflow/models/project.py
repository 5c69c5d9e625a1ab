"""
Project & Session Models
========================
Persistent records owned by the settings store.

Project          - a registered project root
ProjectSettings  - per-project agentic defaults
ProjectProfile   - detected profile used to bound agentic runs
SessionEvent     - one append-only log entry
Session          - per-project event log surviving across requests
FolderLinks      - user-linked folders
SettingsBundle   - export/import envelope
ImportResult     - counts of items written by an import
"""
from typing import Dict, List, Optional

from pydantic import BaseModel


class Project(BaseModel):
    id: str
    path: str
    name: str
    created_at: str


class ProjectSettings(BaseModel):
    project_id: str
    auto_check: bool = True
    max_attempts: int = 2
    max_actions: int = 12
    goal_template: Optional[str] = None


class ProjectLimits(BaseModel):
    max_files: int = 1000
    timeout_sec: int = 60
    max_actions_per_tx: int = 50


class ProjectProfile(BaseModel):
    path: str
    project_type: str = "unknown"
    safe_mode: bool = True
    max_attempts: int = 2
    goal_template: str = "{goal}"
    limits: ProjectLimits = ProjectLimits()


class SessionEvent(BaseModel):
    kind: str
    role: Optional[str] = None
    text: Optional[str] = None
    at: str


class Session(BaseModel):
    id: str
    project_id: str
    created_at: str
    updated_at: str
    events: List[SessionEvent] = []


class FolderLinks(BaseModel):
    paths: List[str] = []


class SettingsBundle(BaseModel):
    version: str
    exported_at: str
    projects: List[Project] = []
    profiles: Dict[str, ProjectSettings] = {}
    sessions: List[Session] = []
    folder_links: FolderLinks = FolderLinks()


class ImportResult(BaseModel):
    projects_imported: int = 0
    profiles_imported: int = 0
    sessions_imported: int = 0
    folder_links_imported: int = 0
