"""
Mock Backend Tests
==================
The in-memory backend must honour the same contract as the real one:
confirmation gate, policy, atomic rollback and the undo/redo stacks.
"""
import asyncio

import pytest

from changeflow.backend.mock_backend import MockBackend, summarize_diffs
from changeflow.models.action import Action
from changeflow.models.diff import DiffItem

ROOT = "/proj"


@pytest.fixture
def backend(tmp_path):
    b = MockBackend(data_dir=str(tmp_path), max_actions_per_tx=3)
    b.seed(ROOT, {"src": None, "src/app.ts": "export {}"})
    return b


def test_analyze_report_shape(backend):
    async def run_test():
        report = await backend.analyze_project(ROOT)
        assert [a.path for a in report.actions] == [
            "README.md", ".gitignore", "LICENSE", "tests", "tests/README.md",
        ]
        assert [g.id for g in report.action_groups] == ["docs", "hygiene", "tests"]
        assert report.recommended_pack_ids == ["essentials"]
        assert len(report.findings) == 4

    asyncio.run(run_test())


def test_analyze_emits_progress(backend):
    lines = []
    unsubscribe = backend.subscribe_progress(lines.append)

    async def run_test():
        await backend.analyze_project(ROOT)

    asyncio.run(run_test())
    unsubscribe()
    assert lines == ["Scanning project…", "Analysis complete"]


def test_analyze_unknown_root_raises(backend):
    async def run_test():
        with pytest.raises(FileNotFoundError):
            await backend.analyze_project("/nope")

    asyncio.run(run_test())


def test_apply_checks_in_order(backend):
    too_many = [Action(kind="CREATE_FILE", path=f"{i}.md", content="") for i in range(4)]
    protected = [Action(kind="CREATE_FILE", path="id_rsa", content="")]

    async def run_test():
        missing = await backend.apply_actions_tx("/nope", too_many, auto_check=False, user_confirmed=False)
        assert missing.error_code == "PATH_NOT_FOUND"
        unconfirmed = await backend.apply_actions_tx(ROOT, too_many, auto_check=False, user_confirmed=False)
        assert unconfirmed.error_code == "CONFIRM_REQUIRED"
        over = await backend.apply_actions_tx(ROOT, too_many, auto_check=False, user_confirmed=True)
        assert over.error_code == "TOO_MANY_ACTIONS"
        blocked = await backend.apply_actions_tx(ROOT, protected, auto_check=False, user_confirmed=True)
        assert blocked.error_code == "PROTECTED_PATH"

    asyncio.run(run_test())


def test_apply_orders_directories_before_files(backend):
    actions = [
        Action(kind="CREATE_FILE", path="docs/a.md", content="a"),
        Action(kind="CREATE_DIR", path="docs"),
    ]

    async def run_test():
        result = await backend.apply_actions_tx(ROOT, actions, auto_check=True, user_confirmed=True)
        assert result.ok is True
        assert result.checks[0].stage == "verify"
        assert backend.read(ROOT, "docs/a.md") == "a"

    asyncio.run(run_test())


def test_writing_over_directory_rolls_back(backend):
    actions = [
        Action(kind="CREATE_FILE", path="ok.md", content="ok"),
        Action(kind="CREATE_FILE", path="src", content="oops"),
    ]

    async def run_test():
        result = await backend.apply_actions_tx(ROOT, actions, auto_check=False, user_confirmed=True)
        assert result.error_code == "APPLY_FAILED_ROLLED_BACK"
        assert result.rolled_back is True
        assert backend.read(ROOT, "ok.md") is None

    asyncio.run(run_test())


def test_delete_dir_removes_children(backend):
    async def run_test():
        await backend.apply_actions_tx(
            ROOT, [Action(kind="DELETE_DIR", path="src")], auto_check=False, user_confirmed=True
        )
        assert not backend.exists(ROOT, "src")
        assert not backend.exists(ROOT, "src/app.ts")

    asyncio.run(run_test())


def test_new_transaction_clears_redo(backend):
    async def run_test():
        await backend.apply_actions_tx(
            ROOT, [Action(kind="CREATE_FILE", path="a.md", content="a")], auto_check=False, user_confirmed=True
        )
        await backend.undo_last()
        assert (await backend.get_undo_redo_state()).redo_available is True

        await backend.apply_actions_tx(
            ROOT, [Action(kind="CREATE_FILE", path="b.md", content="b")], auto_check=False, user_confirmed=True
        )
        state = await backend.get_undo_redo_state()
        assert state.redo_available is False
        assert (await backend.redo_last()).error_code == "NOTHING_TO_REDO"

    asyncio.run(run_test())


def test_undo_status_reports_top_transaction(backend):
    async def run_test():
        assert (await backend.get_undo_status()).available is False
        result = await backend.apply_actions_tx(
            ROOT, [Action(kind="CREATE_FILE", path="a.md", content="a")], auto_check=False, user_confirmed=True
        )
        status = await backend.get_undo_status()
        assert status.available is True
        assert status.tx_id == result.tx_id

    asyncio.run(run_test())


def test_generate_create_only_filters_deletes(backend):
    async def run_test():
        report = await backend.analyze_project(ROOT)
        generated = await backend.generate_actions_from_report(ROOT, report, "safe_create_only")
        assert generated.ok is True
        assert {a.kind for a in generated.actions} <= {"CREATE_FILE", "CREATE_DIR"}

    asyncio.run(run_test())


def test_profile_detects_type_and_applies_settings(backend):
    backend.seed("/node", {"package.json": "{}"})

    async def run_test():
        project = await backend.add_project("/node")
        settings = backend.store.get_project_settings(project.id)
        settings.max_attempts = 5
        settings.goal_template = "Node: {goal}"
        backend.store.set_project_settings(settings)

        profile = await backend.get_project_profile("/node")
        assert profile.project_type == "node"
        assert profile.max_attempts == 5
        assert profile.goal_template == "Node: {goal}"
        assert profile.limits.max_actions_per_tx == 3

    asyncio.run(run_test())


def test_summarize_diffs_counts_blocked_separately():
    diffs = [
        DiffItem(kind="create", path="a"),
        DiffItem(kind="mkdir", path="d"),
        DiffItem(kind="blocked", path=".env", summary="BLOCKED: protected or non-text file"),
    ]
    assert summarize_diffs(diffs) == "create: 1, update: 0, delete: 0, mkdir: 1, rmdir: 0, blocked: 1"
