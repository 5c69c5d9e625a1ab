"""
Mock Backend
============
In-memory Backend used by the test suite and by the service when
CHANGEFLOW_BACKEND=mock.

Each project root is a virtual file tree: {relative_path: content}, where a
content of None marks a directory. Roots must be seeded before use; an
unknown root answers PATH_NOT_FOUND like the real backend does for a
missing directory.

Apply transaction (apply_actions_tx), checked in this order:
    1. root exists                    → PATH_NOT_FOUND
    2. user_confirmed                 → CONFIRM_REQUIRED
    3. len(actions) ≤ max per tx      → TOO_MANY_ACTIONS
    4. no protected / non-text path   → PROTECTED_PATH
    5. snapshot, apply in kind order  → APPLY_FAILED_ROLLED_BACK on error
    6. auto-check (when requested)    → AUTO_CHECK_FAILED_ROLLED_BACK,
                                        snapshot restored, applied=True

Undo/redo:
    Every successful transaction is pushed on a global undo stack together
    with its before/after trees. Undo restores "before" and moves the entry
    to the redo stack; redo restores "after". A new transaction clears redo.

Auto-check:
    A pluggable hook ``check_hook(root, tree) -> List[CheckItem]``. The
    default passes with a single "verify" stage. verify_project runs the
    same hook without touching the tree.
"""
import json
import logging
import uuid
from typing import Callable, Dict, List, Optional, Set

from changeflow.backend.contract import Backend, ProgressCallback
from changeflow.core.config import DATA_DIR, MAX_ACTIONS_PER_TX
from changeflow.core.constants import (
    BLOCKED_SUMMARY,
    CREATE_DIR,
    CREATE_FILE,
    DELETE_DIR,
    DELETE_FILE,
    DIFF_KIND_FOR_ACTION,
    GENERATE_MODE_CREATE_ONLY,
    GENERATE_MODE_SAFE,
    UPDATE_FILE,
)
from changeflow.models.action import (
    Action,
    ActionGroup,
    AgentPlan,
    AnalyzeReport,
    Finding,
    FixPack,
    GenerateActionsResult,
)
from changeflow.models.agentic import AgenticConstraints, AgenticRunResult
from changeflow.models.apply_result import (
    ApplyTxResult,
    CheckItem,
    UndoRedoState,
    UndoResult,
    UndoStatus,
    VerifyResult,
)
from changeflow.models.diff import DiffItem, PreviewResult
from changeflow.models.outcomes import ErrorCode
from changeflow.models.project import (
    ImportResult,
    Project,
    ProjectLimits,
    ProjectProfile,
    Session,
    SessionEvent,
)
from changeflow.services.settings_store import SettingsStore, utc_now
from changeflow.utils.path_policy import is_blocked

logger = logging.getLogger(__name__)

Tree = Dict[str, Optional[str]]
CheckHook = Callable[[str, Tree], List[CheckItem]]

# Apply order: directories before files, deletions of files before directories.
_APPLY_ORDER = {CREATE_DIR: 0, CREATE_FILE: 1, UPDATE_FILE: 2, DELETE_FILE: 3, DELETE_DIR: 4}

_FORBIDDEN_SEGMENTS = (".git", "node_modules", "target", "dist", "build", ".next")
MAX_GENERATED_ACTIONS = 20

README_TEMPLATE = (
    "# Project\n\n## Description\n\nDescribe the project briefly.\n\n"
    "## Running\n\n- dev: ...\n- build: ...\n\n## Layout\n\n- src/\n- tests/\n"
)
GITIGNORE_TEMPLATE = (
    "node_modules/\ndist/\nbuild/\n.next/\ncoverage/\n.env\n.env.*\n.DS_Store\n.target/\n"
)
LICENSE_TEMPLATE = "MIT License\n\nCopyright (c) <year> <copyright holders>\n"
TESTS_README_TEMPLATE = "# Tests\n\nAdd unit and integration tests here.\n"


def default_check_hook(root: str, tree: Tree) -> List[CheckItem]:
    return [CheckItem(stage="verify", ok=True, output="ok")]


def _is_forbidden(rel: str) -> bool:
    if ".." in rel or rel.startswith("/"):
        return True
    return any(part in _FORBIDDEN_SEGMENTS for part in rel.split("/"))


class _TxRecord:
    def __init__(self, tx_id: str, root: str, before: Tree, after: Tree) -> None:
        self.tx_id = tx_id
        self.root = root
        self.before = before
        self.after = after


class MockBackend(Backend):
    """
    In-memory backend conforming to the Backend contract.

    Usage:
        backend = MockBackend(data_dir=str(tmp_path))
        backend.seed("/work/site", {"src": None, "src/app.ts": "export {}"})
        report = await backend.analyze_project("/work/site")
    """

    def __init__(
        self,
        data_dir: str = DATA_DIR,
        check_hook: Optional[CheckHook] = None,
        max_actions_per_tx: int = MAX_ACTIONS_PER_TX,
    ) -> None:
        self.store = SettingsStore(data_dir)
        self.check_hook: CheckHook = check_hook or default_check_hook
        self.max_actions_per_tx = max_actions_per_tx
        self.trees: Dict[str, Tree] = {}
        self.reports: Dict[str, AnalyzeReport] = {}
        self.fail_on_paths: Set[str] = set()
        self._undo_stack: List[_TxRecord] = []
        self._redo_stack: List[_TxRecord] = []
        self._progress_subscribers: List[ProgressCallback] = []

    # ------------------------------------------------------------------
    # Seeding helpers
    # ------------------------------------------------------------------
    def seed(self, root: str, files: Optional[Tree] = None) -> None:
        """Create (or replace) the virtual tree for a root."""
        tree: Tree = {}
        for rel, content in (files or {}).items():
            self._write(tree, rel, content, is_dir=content is None)
        self.trees[root] = tree

    def set_report(self, root: str, report: AnalyzeReport) -> None:
        """Pin the report analyze_project returns for a root."""
        self.reports[root] = report

    def read(self, root: str, rel: str) -> Optional[str]:
        return self.trees.get(root, {}).get(rel)

    def exists(self, root: str, rel: str) -> bool:
        tree = self.trees.get(root, {})
        return rel in tree or any(p.startswith(rel.rstrip("/") + "/") for p in tree)

    @staticmethod
    def _write(tree: Tree, rel: str, content: Optional[str], is_dir: bool) -> None:
        parts = rel.strip("/").split("/")
        for i in range(1, len(parts)):
            tree.setdefault("/".join(parts[:i]), None)
        tree[rel.strip("/")] = None if is_dir else (content or "")

    def _emit_progress(self, line: str) -> None:
        for callback in list(self._progress_subscribers):
            try:
                callback(line)
            except Exception as exc:
                logger.error("Progress subscriber failed: %s", exc)

    # ------------------------------------------------------------------
    # Analysis / planning
    # ------------------------------------------------------------------
    def _generate(self, root: str) -> GenerateActionsResult:
        tree = self.trees.get(root)
        if tree is None:
            return GenerateActionsResult(
                ok=False, error="path not found", error_code=ErrorCode.PATH_NOT_FOUND.value
            )

        actions: List[Action] = []
        skipped: List[str] = []

        def _propose(kind: str, rel: str, content: Optional[str] = None) -> None:
            if _is_forbidden(rel):
                skipped.append(f"{rel} (forbidden path)")
                return
            actions.append(Action(kind=kind, path=rel, content=content))

        if not any(name in tree for name in ("README.md", "README.MD", "README.txt", "README")):
            _propose(CREATE_FILE, "README.md", README_TEMPLATE)
        if ".gitignore" not in tree:
            _propose(CREATE_FILE, ".gitignore", GITIGNORE_TEMPLATE)
        if not any(name in tree for name in ("LICENSE", "LICENSE.md", "LICENSE.txt")):
            _propose(CREATE_FILE, "LICENSE", LICENSE_TEMPLATE)
        if self.exists(root, "src") and not self.exists(root, "tests"):
            _propose(CREATE_DIR, "tests")
            _propose(CREATE_FILE, "tests/README.md", TESTS_README_TEMPLATE)

        if len(actions) > MAX_GENERATED_ACTIONS:
            return GenerateActionsResult(
                ok=False,
                skipped=[f"more than {MAX_GENERATED_ACTIONS} actions"],
                error=f"max {MAX_GENERATED_ACTIONS} actions per run",
                error_code=ErrorCode.TOO_MANY_ACTIONS.value,
            )
        return GenerateActionsResult(ok=True, actions=actions, skipped=skipped)

    async def analyze_project(self, path: str, attachments: Optional[List[str]] = None) -> AnalyzeReport:
        self._emit_progress("Scanning project…")
        if path in self.reports:
            self._emit_progress("Analysis complete")
            return self.reports[path]
        if path not in self.trees:
            raise FileNotFoundError(f"path not found: {path}")

        generated = self._generate(path)
        findings = [
            Finding(title=f"Missing {a.path}", details="Recommended for every project", path=a.path)
            for a in generated.actions
            if a.kind == CREATE_FILE
        ]
        groups: List[ActionGroup] = []
        docs = [a for a in generated.actions if a.path in ("README.md", "LICENSE")]
        hygiene = [a for a in generated.actions if a.path == ".gitignore"]
        tests = [a for a in generated.actions if a.path.startswith("tests")]
        if docs:
            groups.append(ActionGroup(id="docs", title="Documentation", actions=docs))
        if hygiene:
            groups.append(ActionGroup(id="hygiene", title="Repository hygiene", actions=hygiene))
        if tests:
            groups.append(ActionGroup(id="tests", title="Test scaffold", actions=tests))
        packs = (
            [FixPack(id="essentials", title="Project essentials", group_ids=[g.id for g in groups])]
            if groups
            else []
        )

        narrative = (
            f"Found {len(findings)} issue(s) in {path}."
            if findings
            else f"No issues found in {path}."
        )
        if attachments:
            narrative += f" Attachments considered: {len(attachments)}."
        self._emit_progress("Analysis complete")
        return AnalyzeReport(
            path=path,
            narrative=narrative,
            findings=findings,
            recommendations=[f.title for f in findings],
            actions=generated.actions,
            action_groups=groups,
            fix_packs=packs,
            recommended_pack_ids=[p.id for p in packs],
        )

    async def generate_actions_from_report(
        self, path: str, report: AnalyzeReport, mode: str
    ) -> GenerateActionsResult:
        result = self._generate(path)
        if result.ok and mode in (GENERATE_MODE_CREATE_ONLY, GENERATE_MODE_SAFE, ""):
            result.actions = [a for a in result.actions if a.kind in (CREATE_FILE, CREATE_DIR)]
        return result

    async def propose_actions(
        self,
        path: str,
        report_context: str,
        goal: str,
        design_style: Optional[str] = None,
        trends_context: Optional[str] = None,
        last_plan: Optional[str] = None,
        last_plan_context: Optional[str] = None,
    ) -> AgentPlan:
        generated = self._generate(path)
        if not generated.ok:
            return AgentPlan(ok=False, error=generated.error, error_code=generated.error_code)
        steps = [f"{a.kind} {a.path}" for a in generated.actions]
        summary = f"{len(steps)} step(s) toward: {goal}" if steps else f"Nothing to do for: {goal}"
        return AgentPlan(
            ok=True,
            summary=summary,
            actions=generated.actions,
            plan=json.dumps({"goal": goal, "steps": steps}),
            plan_context=report_context,
        )

    # ------------------------------------------------------------------
    # Preview / apply / verify
    # ------------------------------------------------------------------
    async def preview_actions(self, path: str, actions: List[Action]) -> PreviewResult:
        tree = self.trees.get(path, {})
        diffs: List[DiffItem] = []
        for action in actions:
            if is_blocked(action.path):
                diffs.append(DiffItem(
                    kind="blocked",
                    path=action.path,
                    before="(blocked)",
                    after="(blocked)",
                    summary=BLOCKED_SUMMARY,
                ))
                continue
            kind = DIFF_KIND_FOR_ACTION[action.kind]
            before = tree.get(action.path) if action.kind in (UPDATE_FILE, DELETE_FILE) else None
            after = action.content if action.kind in (CREATE_FILE, UPDATE_FILE) else None
            diffs.append(DiffItem(kind=kind, path=action.path, before=before, after=after))
        return PreviewResult(diffs=diffs, summary=summarize_diffs(diffs))

    async def apply_actions_tx(
        self, path: str, actions: List[Action], *, auto_check: bool, user_confirmed: bool
    ) -> ApplyTxResult:
        if path not in self.trees:
            return ApplyTxResult(ok=False, error="path not found", error_code=ErrorCode.PATH_NOT_FOUND.value)
        if not user_confirmed:
            return ApplyTxResult(
                ok=False, error="confirmation required", error_code=ErrorCode.CONFIRM_REQUIRED.value
            )
        if len(actions) > self.max_actions_per_tx:
            return ApplyTxResult(
                ok=False,
                error=f"too many actions: {len(actions)} > {self.max_actions_per_tx}",
                error_code=ErrorCode.TOO_MANY_ACTIONS.value,
            )
        for action in actions:
            if is_blocked(action.path):
                return ApplyTxResult(
                    ok=False,
                    error=f"protected or non-text file: {action.path}",
                    error_code=ErrorCode.PROTECTED_PATH.value,
                )

        tx_id = str(uuid.uuid4())
        self._emit_progress("Saving rollback point…")
        before = dict(self.trees[path])
        working = dict(before)

        self._emit_progress("Applying changes…")
        for action in sorted(actions, key=lambda a: _APPLY_ORDER[a.kind]):
            try:
                self._apply_one(working, action)
            except (OSError, ValueError) as exc:
                logger.warning("Apply rolled back tx=%s path=%s reason=%s", tx_id, path, exc)
                return ApplyTxResult(
                    ok=False,
                    tx_id=tx_id,
                    applied=False,
                    rolled_back=True,
                    error=str(exc),
                    error_code=ErrorCode.APPLY_FAILED_ROLLED_BACK.value,
                )
        self.trees[path] = working

        checks: List[CheckItem] = []
        if auto_check:
            self._emit_progress("Running checks…")
            checks = self.check_hook(path, working)
            if any(not c.ok for c in checks):
                self._emit_progress("Errors detected. Rolling back…")
                self.trees[path] = before
                logger.warning("Apply rolled back tx=%s path=%s reason=auto_check_failed", tx_id, path)
                return ApplyTxResult(
                    ok=False,
                    tx_id=tx_id,
                    applied=True,
                    rolled_back=True,
                    checks=checks,
                    error="auto-check failed, rolled back",
                    error_code=ErrorCode.AUTO_CHECK_FAILED_ROLLED_BACK.value,
                )

        self._undo_stack.append(_TxRecord(tx_id, path, before, dict(working)))
        self._redo_stack.clear()
        logger.info("Apply succeeded tx=%s path=%s actions=%d", tx_id, path, len(actions))
        return ApplyTxResult(ok=True, tx_id=tx_id, applied=True, checks=checks)

    def _apply_one(self, tree: Tree, action: Action) -> None:
        if action.path in self.fail_on_paths:
            raise OSError(f"write failed: {action.path}")
        rel = action.path.strip("/")
        if action.kind in (CREATE_FILE, UPDATE_FILE):
            if tree.get(rel, "") is None:
                raise ValueError(f"is a directory: {rel}")
            self._write(tree, rel, action.content, is_dir=False)
        elif action.kind == CREATE_DIR:
            self._write(tree, rel, None, is_dir=True)
        elif action.kind == DELETE_FILE:
            tree.pop(rel, None)
        elif action.kind == DELETE_DIR:
            for key in [k for k in tree if k == rel or k.startswith(rel + "/")]:
                del tree[key]

    async def verify_project(self, path: str) -> VerifyResult:
        if path not in self.trees:
            return VerifyResult(ok=False, error="path not found", error_code=ErrorCode.PATH_NOT_FOUND.value)
        checks = self.check_hook(path, self.trees[path])
        ok = all(c.ok for c in checks)
        return VerifyResult(ok=ok, checks=checks, error=None if ok else "checks failed")

    # ------------------------------------------------------------------
    # Undo / redo
    # ------------------------------------------------------------------
    async def undo_last_tx(self, path: str) -> bool:
        for index in range(len(self._undo_stack) - 1, -1, -1):
            record = self._undo_stack[index]
            if record.root == path:
                del self._undo_stack[index]
                self.trees[record.root] = dict(record.before)
                self._redo_stack.append(record)
                logger.info("Undid tx=%s for %s", record.tx_id, path)
                return True
        return False

    async def undo_last(self) -> UndoResult:
        if not self._undo_stack:
            return UndoResult(ok=False, error="nothing to undo", error_code=ErrorCode.NOTHING_TO_UNDO.value)
        record = self._undo_stack.pop()
        self.trees[record.root] = dict(record.before)
        self._redo_stack.append(record)
        return UndoResult(ok=True)

    async def redo_last(self) -> UndoResult:
        if not self._redo_stack:
            return UndoResult(ok=False, error="nothing to redo", error_code=ErrorCode.NOTHING_TO_REDO.value)
        record = self._redo_stack.pop()
        self.trees[record.root] = dict(record.after)
        self._undo_stack.append(record)
        return UndoResult(ok=True)

    async def get_undo_redo_state(self) -> UndoRedoState:
        return UndoRedoState(
            undo_available=bool(self._undo_stack),
            redo_available=bool(self._redo_stack),
        )

    async def get_undo_status(self) -> UndoStatus:
        if not self._undo_stack:
            return UndoStatus(available=False)
        return UndoStatus(available=True, tx_id=self._undo_stack[-1].tx_id)

    # ------------------------------------------------------------------
    # Agentic
    # ------------------------------------------------------------------
    async def agentic_run(
        self, path: str, goal: str, constraints: AgenticConstraints
    ) -> AgenticRunResult:
        # Deferred: the coordinator itself depends on the backend contract.
        from changeflow.agents.agentic import AgenticRunCoordinator

        coordinator = AgenticRunCoordinator.standalone(self)
        return await coordinator.run(path, goal, constraints)

    async def get_project_profile(self, path: str) -> ProjectProfile:
        tree = self.trees.get(path, {})
        if "package.json" in tree:
            project_type = "node"
        elif "Cargo.toml" in tree:
            project_type = "rust"
        elif "pyproject.toml" in tree or "requirements.txt" in tree:
            project_type = "python"
        else:
            project_type = "unknown"

        profile = ProjectProfile(
            path=path,
            project_type=project_type,
            limits=ProjectLimits(max_actions_per_tx=self.max_actions_per_tx),
        )
        project = self.store.find_project(path)
        if project is not None:
            settings = self.store.get_project_settings(project.id)
            profile.max_attempts = settings.max_attempts
            if settings.goal_template:
                profile.goal_template = settings.goal_template
        return profile

    # ------------------------------------------------------------------
    # Projects / sessions / settings
    # ------------------------------------------------------------------
    async def list_projects(self) -> List[Project]:
        return self.store.load_projects()

    async def add_project(self, path: str, name: Optional[str] = None) -> Project:
        return self.store.add_project(path, name)

    async def list_sessions(self, project_id: Optional[str] = None) -> List[Session]:
        return self.store.list_sessions(project_id)

    async def append_session_event(self, project_id: str, kind: str, role: str, text: str) -> Session:
        event = SessionEvent(kind=kind, role=role, text=text, at=utc_now())
        return self.store.add_session_event(project_id, event)

    async def export_settings(self) -> str:
        return self.store.export_settings()

    async def import_settings(self, payload: str, mode: str = "merge") -> ImportResult:
        return self.store.import_settings(payload, mode)

    # ------------------------------------------------------------------
    # Push channel
    # ------------------------------------------------------------------
    def subscribe_progress(self, callback: ProgressCallback) -> Callable[[], None]:
        self._progress_subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._progress_subscribers:
                self._progress_subscribers.remove(callback)

        return _unsubscribe


def summarize_diffs(diffs: List[DiffItem]) -> str:
    """One-line count of diff kinds, e.g. 'create: 2, update: 0, ...'."""
    counts = {kind: 0 for kind in ("create", "update", "delete", "mkdir", "rmdir")}
    blocked = 0
    for diff in diffs:
        if diff.blocked:
            blocked += 1
        elif diff.kind in counts:
            counts[diff.kind] += 1
    line = ", ".join(f"{kind}: {count}" for kind, count in counts.items())
    if blocked:
        line += f", blocked: {blocked}"
    return line
