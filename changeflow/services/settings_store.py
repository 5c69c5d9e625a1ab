"""
Settings Store
==============
JSON-file persistence for projects, per-project settings, sessions and
folder links, plus export/import of the whole bundle.

Files (under DATA_DIR):
    projects.json      - List[Project]
    profiles.json      - {project_id: ProjectSettings}
    sessions.json      - List[Session]
    folder_links.json  - FolderLinks

Writes are atomic (temp file + os.replace). A missing or unreadable file
loads as empty.

Session caps:
    - At most MAX_EVENTS_PER_SESSION events per session (oldest dropped)
    - At most MAX_SESSIONS_PER_PROJECT sessions per project and ten times
      that overall (least recently updated dropped)

Import modes:
    replace - overwrite all four collections with the bundle
    merge   - add only items not already present (projects by path,
              profiles by key, sessions by id, folder links by path)
"""
import json
import logging
import os
import tempfile
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from changeflow.core.config import DATA_DIR, MAX_EVENTS_PER_SESSION, MAX_SESSIONS_PER_PROJECT
from changeflow.core.constants import SETTINGS_BUNDLE_VERSION
from changeflow.models.project import (
    FolderLinks,
    ImportResult,
    Project,
    ProjectSettings,
    Session,
    SessionEvent,
    SettingsBundle,
)

logger = logging.getLogger(__name__)

PROJECTS_FILE = "projects.json"
PROFILES_FILE = "profiles.json"
SESSIONS_FILE = "sessions.json"
FOLDER_LINKS_FILE = "folder_links.json"

IMPORT_MODES = ("merge", "replace")


class SettingsStoreError(Exception):
    """Raised for invalid store operations (duplicate project, bad import payload)."""


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SettingsStore:
    """
    File-backed store for the persistent records.

    Usage:
        store = SettingsStore("/tmp/changeflow")
        project = store.add_project("/work/site")
        store.add_session_event(project.id, SessionEvent(kind="note", at=utc_now()))
    """

    def __init__(self, data_dir: str = DATA_DIR) -> None:
        self.data_dir = data_dir

    # ------------------------------------------------------------------
    # Raw JSON helpers
    # ------------------------------------------------------------------
    def _path(self, name: str) -> str:
        return os.path.join(self.data_dir, name)

    def _read(self, name: str, default: Any) -> Any:
        path = self._path(name)
        if not os.path.exists(path):
            return default
        try:
            with open(path, "r", encoding="utf-8") as handle:
                data = json.load(handle)
            return default if data is None else data
        except (OSError, ValueError) as exc:
            logger.warning("Could not read %s, starting empty: %s", path, exc)
            return default

    def _write(self, name: str, data: Any) -> None:
        os.makedirs(self.data_dir, exist_ok=True)
        path = self._path(name)
        fd, tmp_path = tempfile.mkstemp(prefix=f".{name}.", dir=self.data_dir, text=True)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(data, handle, ensure_ascii=False, indent=2)
            os.replace(tmp_path, path)
        finally:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------
    def load_projects(self) -> List[Project]:
        return [Project.model_validate(p) for p in self._read(PROJECTS_FILE, [])]

    def save_projects(self, projects: List[Project]) -> None:
        self._write(PROJECTS_FILE, [p.model_dump() for p in projects])

    def load_profiles(self) -> Dict[str, ProjectSettings]:
        raw = self._read(PROFILES_FILE, {})
        return {k: ProjectSettings.model_validate(v) for k, v in raw.items()}

    def save_profiles(self, profiles: Dict[str, ProjectSettings]) -> None:
        self._write(PROFILES_FILE, {k: v.model_dump() for k, v in profiles.items()})

    def load_sessions(self) -> List[Session]:
        return [Session.model_validate(s) for s in self._read(SESSIONS_FILE, [])]

    def save_sessions(self, sessions: List[Session]) -> None:
        self._write(SESSIONS_FILE, [s.model_dump() for s in sessions])

    def load_folder_links(self) -> FolderLinks:
        return FolderLinks.model_validate(self._read(FOLDER_LINKS_FILE, {"paths": []}))

    def save_folder_links(self, links: FolderLinks) -> None:
        self._write(FOLDER_LINKS_FILE, links.model_dump())

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------
    def add_project(self, path: str, name: Optional[str] = None) -> Project:
        projects = self.load_projects()
        if any(p.path == path for p in projects):
            raise SettingsStoreError("Project with this path already exists")
        if not name:
            name = os.path.basename(os.path.normpath(path)) or "Project"
        project = Project(id=str(uuid.uuid4()), path=path, name=name, created_at=utc_now())
        projects.append(project)
        self.save_projects(projects)
        logger.info("Registered project %s at %s", project.name, path)
        return project

    def find_project(self, path: str) -> Optional[Project]:
        return next((p for p in self.load_projects() if p.path == path), None)

    def get_project_settings(self, project_id: str) -> ProjectSettings:
        return self.load_profiles().get(project_id) or ProjectSettings(project_id=project_id)

    def set_project_settings(self, settings: ProjectSettings) -> None:
        profiles = self.load_profiles()
        profiles[settings.project_id] = settings
        self.save_profiles(profiles)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------
    def list_sessions(self, project_id: Optional[str] = None) -> List[Session]:
        sessions = sorted(self.load_sessions(), key=lambda s: s.updated_at, reverse=True)
        if project_id is not None:
            sessions = [s for s in sessions if s.project_id == project_id]
        return sessions

    def add_session_event(self, project_id: str, event: SessionEvent) -> Session:
        """
        Append an event to the project's most recent session, opening a new
        session when the project has none. Caps are applied before saving.
        """
        sessions = self.load_sessions()
        own = [s for s in sessions if s.project_id == project_id]
        if own:
            session = max(own, key=lambda s: s.updated_at)
        else:
            session = Session(
                id=str(uuid.uuid4()),
                project_id=project_id,
                created_at=event.at,
                updated_at=event.at,
            )
            sessions.append(session)

        session.events.append(event)
        if len(session.events) > MAX_EVENTS_PER_SESSION:
            session.events = session.events[-MAX_EVENTS_PER_SESSION:]
        session.updated_at = event.at

        self.save_sessions(self._cap_sessions(sessions))
        return session

    @staticmethod
    def _cap_sessions(sessions: List[Session]) -> List[Session]:
        newest_first = sorted(sessions, key=lambda s: s.updated_at, reverse=True)
        per_project: Dict[str, int] = {}
        kept: List[Session] = []
        for session in newest_first:
            count = per_project.get(session.project_id, 0)
            if count >= MAX_SESSIONS_PER_PROJECT:
                continue
            per_project[session.project_id] = count + 1
            kept.append(session)
        return kept[: MAX_SESSIONS_PER_PROJECT * 10]

    # ------------------------------------------------------------------
    # Export / import
    # ------------------------------------------------------------------
    def export_settings(self) -> str:
        bundle = SettingsBundle(
            version=SETTINGS_BUNDLE_VERSION,
            exported_at=utc_now(),
            projects=self.load_projects(),
            profiles=self.load_profiles(),
            sessions=self.load_sessions(),
            folder_links=self.load_folder_links(),
        )
        return bundle.model_dump_json(indent=2)

    def import_settings(self, payload: str, mode: str = "merge") -> ImportResult:
        try:
            bundle = SettingsBundle.model_validate_json(payload)
        except ValidationError as exc:
            raise SettingsStoreError(f"Invalid settings JSON: {exc}") from exc

        result = ImportResult()
        if mode == "replace":
            self.save_projects(bundle.projects)
            self.save_profiles(bundle.profiles)
            self.save_sessions(bundle.sessions)
            self.save_folder_links(bundle.folder_links)
            result.projects_imported = len(bundle.projects)
            result.profiles_imported = len(bundle.profiles)
            result.sessions_imported = len(bundle.sessions)
            result.folder_links_imported = len(bundle.folder_links.paths)
            logger.info("Settings replaced from bundle %s", bundle.version)
            return result

        # Anything other than "replace" merges.
        projects = self.load_projects()
        known_paths = {p.path for p in projects}
        for project in bundle.projects:
            if project.path not in known_paths:
                projects.append(project)
                known_paths.add(project.path)
                result.projects_imported += 1
        self.save_projects(projects)

        profiles = self.load_profiles()
        for key, value in bundle.profiles.items():
            if key not in profiles:
                profiles[key] = value
                result.profiles_imported += 1
        self.save_profiles(profiles)

        sessions = self.load_sessions()
        known_ids = {s.id for s in sessions}
        for session in bundle.sessions:
            if session.id not in known_ids:
                sessions.append(session)
                known_ids.add(session.id)
                result.sessions_imported += 1
        self.save_sessions(sessions)

        links = self.load_folder_links()
        known_links = set(links.paths)
        for path in bundle.folder_links.paths:
            if path not in known_links:
                links.paths.append(path)
                known_links.add(path)
                result.folder_links_imported += 1
        self.save_folder_links(links)

        logger.info("Settings merged from bundle %s: %s", bundle.version, result.model_dump())
        return result
