"""Tests for the trackdown CLI and command modules.

Runs main() against a real project directory in tmp_path.
"""

import pytest

from trackdown.cli import build_parser, main
from trackdown.models import ItemKind
from trackdown.project import open_project
from trackdown.store.frontmatter import DocumentStore

from conftest import write_doc


@pytest.fixture
def project_dir(tmp_path, monkeypatch):
    """Initialized project with one epic, issue, task and PR."""
    for var in ("AITRACKDOWN_TASKS_DIR", "AITRACKDOWN_ROOT_DIR"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    assert main(["init", "--name", "demo"]) == 0

    tasks = tmp_path / "tasks"
    write_doc(tasks / "epics" / "EP-0001.md", {"epic_id": "EP-0001", "title": "Auth"})
    write_doc(tasks / "issues" / "ISS-0001.md", {
        "issue_id": "ISS-0001", "epic_id": "EP-0001", "title": "Login", "status": "active",
    })
    write_doc(tasks / "tasks" / "TSK-0001.md", {
        "task_id": "TSK-0001", "issue_id": "ISS-0001", "title": "Form", "status": "completed",
    })
    write_doc(tasks / "prs" / "active" / "review" / "PR-0001.md", {
        "pr_id": "PR-0001", "issue_id": "ISS-0001", "title": "Login form", "pr_status": "review",
        "reviewers": ["r1", "r2"], "approvals": ["r1"],
    })
    return tmp_path


class TestInit:
    def test_creates_layout(self, project_dir):
        """init should write config.yaml and every task directory."""
        assert (project_dir / ".ai-trackdown" / "config.yaml").exists()
        for name in ("epics", "issues", "tasks", "prs", "templates"):
            assert (project_dir / "tasks" / name).is_dir()

    def test_refuses_reinit(self, project_dir, capsys):
        """A second init without --force should fail."""
        assert main(["init"]) == 1
        assert "already exists" in capsys.readouterr().out

    def test_store_uses_configured_prefixes(self, project_dir):
        """open_project should hand naming_conventions to the store."""
        config = project_dir / ".ai-trackdown" / "config.yaml"
        config.write_text(config.read_text().replace("issue_prefix: ISS", "issue_prefix: BUG"))
        project = open_project(project_dir)
        assert project.store.expected_prefix(ItemKind.ISSUE) == "BUG"


class TestReadCommands:
    def test_validate_clean(self, project_dir, capsys):
        """validate should pass on a consistent project."""
        assert main(["validate"]) == 0
        assert "0 errors" in capsys.readouterr().out

    def test_validate_orphan(self, project_dir, capsys):
        """A task pointing at a missing issue should fail validation."""
        write_doc(project_dir / "tasks" / "tasks" / "TSK-0002.md", {
            "task_id": "TSK-0002", "issue_id": "ISS-0404", "title": "Lost",
        })
        assert main(["validate"]) == 1
        assert "ISS-0404" in capsys.readouterr().out

    def test_validate_survives_non_string_scalars(self, project_dir, capsys):
        """Hand-edited numeric or boolean status fields should not crash validate."""
        write_doc(project_dir / "tasks" / "issues" / "ISS-0002.md", {
            "issue_id": "ISS-0002", "epic_id": "EP-0001", "title": "Odd", "status": True,
        })
        write_doc(project_dir / "tasks" / "prs" / "draft" / "PR-0002.md", {
            "pr_id": "PR-0002", "issue_id": "ISS-0001", "title": "Odd PR", "pr_status": 1,
        })
        assert main(["validate"]) == 0
        assert main(["search", "--state", "active"]) == 0
        assert "ISS-0002" in capsys.readouterr().out

    def test_show_epic(self, project_dir, capsys):
        """show on an epic should list its issues."""
        assert main(["show", "EP-0001"]) == 0
        assert "ISS-0001" in capsys.readouterr().out

    def test_show_issue(self, project_dir, capsys):
        """show on an issue should include its epic, tasks and PRs."""
        assert main(["show", "ISS-0001"]) == 0
        out = capsys.readouterr().out
        assert "Epic: EP-0001" in out
        assert "TSK-0001" in out
        assert "PR-0001" in out

    def test_show_missing(self, project_dir, capsys):
        """show on an unknown ID should exit 1."""
        assert main(["show", "EP-0404"]) == 1

    def test_search_state(self, project_dir, capsys):
        """search --state should match on effective state."""
        assert main(["search", "--state", "done"]) == 0
        out = capsys.readouterr().out
        assert "TSK-0001" in out
        assert "1 matches" in out

    def test_overview(self, project_dir, capsys):
        """overview should print the project name."""
        assert main(["overview"]) == 0
        assert "Project: demo" in capsys.readouterr().out

    def test_tasks_dir_override(self, project_dir, capsys):
        """--tasks-dir should point the commands at another root."""
        assert main(["--tasks-dir", "elsewhere", "search"]) == 0
        assert "0 matches" in capsys.readouterr().out


class TestStateCommands:
    def test_set_state_persists(self, project_dir):
        """state set should write state, metadata and the synced legacy status."""
        assert main(["state", "set", "ISS-0001", "ready_for_engineering", "--actor", "alice"]) == 0

        item = DocumentStore().parse_file(project_dir / "tasks" / "issues" / "ISS-0001.md", ItemKind.ISSUE)
        assert item.state == "ready_for_engineering"
        assert item.state_metadata.transitioned_by == "alice"
        assert item.status == "active"

    def test_invalid_transition(self, project_dir, capsys):
        """An invalid transition should exit 1 and list allowed targets."""
        assert main(["state", "set", "ISS-0001", "done", "--actor", "alice"]) == 1
        assert "Allowed:" in capsys.readouterr().out

    def test_show(self, project_dir, capsys):
        """state show should explain a state derived from legacy status."""
        assert main(["state", "show", "TSK-0001"]) == 0
        assert "done (derived from status 'completed')" in capsys.readouterr().out


class TestMigrateCommands:
    def test_dry_run_writes_nothing(self, project_dir, capsys):
        """migrate --dry-run should only preview."""
        assert main(["migrate", "--dry-run"]) == 0
        assert "4 of 4 items need migration" in capsys.readouterr().out
        assert not (project_dir / ".ai-trackdown" / "migration-log.json").exists()

    def test_migrate_then_rollback(self, project_dir):
        """Rollback should restore the pre-migration document and delete the log."""
        issue_path = project_dir / "tasks" / "issues" / "ISS-0001.md"

        assert main(["migrate", "--actor", "system"]) == 0
        migrated = DocumentStore().parse_file(issue_path, ItemKind.ISSUE)
        assert migrated.state == "active"
        assert migrated.state_metadata.previous_state == "active"
        assert (project_dir / ".ai-trackdown" / "migration-log.json").exists()

        assert main(["migrate", "validate"]) == 0

        assert main(["migrate", "rollback"]) == 0
        restored = DocumentStore().parse_file(issue_path, ItemKind.ISSUE)
        assert restored.state is None
        assert restored.state_metadata is None
        assert restored.status == "active"
        assert not (project_dir / ".ai-trackdown" / "migration-log.json").exists()

    def test_second_run_keeps_first_batch_reversible(self, project_dir):
        """A later migrate run should extend the log, not replace it."""
        issue_path = project_dir / "tasks" / "issues" / "ISS-0001.md"
        assert main(["migrate", "--actor", "system"]) == 0

        new_path = project_dir / "tasks" / "issues" / "ISS-0002.md"
        write_doc(new_path, {
            "issue_id": "ISS-0002", "epic_id": "EP-0001", "title": "Later", "status": "completed",
        })
        assert main(["migrate", "--actor", "system"]) == 0

        assert main(["migrate", "rollback"]) == 0
        for path in (issue_path, new_path):
            restored = DocumentStore().parse_file(path, ItemKind.ISSUE)
            assert restored.state is None
            assert restored.state_metadata is None

    def test_rollback_without_log(self, project_dir, capsys):
        """rollback with no log should exit 1."""
        assert main(["migrate", "rollback"]) == 1
        assert "No migration log" in capsys.readouterr().out


class TestPrCommands:
    def test_partial_approval_warns_and_moves(self, project_dir, capsys):
        """Approving with partial approvals warns, then moves the file."""
        assert main(["pr", "status", "PR-0001", "approved"]) == 0
        out = capsys.readouterr().out
        assert "PR needs 1 more approvals" in out

        target = project_dir / "tasks" / "prs" / "active" / "approved" / "PR-0001.md"
        assert target.exists()
        assert not (project_dir / "tasks" / "prs" / "active" / "review" / "PR-0001.md").exists()
        assert DocumentStore().parse_file(target, ItemKind.PR).pr_status == "approved"
        assert main(["validate"]) == 0

    def test_rejected_write_leaves_file_in_place(self, project_dir, capsys):
        """A PR whose frontmatter fails the schema is neither rewritten nor moved."""
        source = project_dir / "tasks" / "prs" / "draft" / "PR-0002.md"
        write_doc(source, {
            "pr_id": "PR-0002", "issue_id": "ISS-0001", "title": "Tagged",
            "pr_status": "draft", "tags": "backend",
        })

        assert main(["pr", "status", "PR-0002", "open"]) == 1
        assert "ERROR" in capsys.readouterr().out
        assert source.exists()
        assert not (project_dir / "tasks" / "prs" / "active" / "open" / "PR-0002.md").exists()
        assert DocumentStore().parse_file(source, ItemKind.PR).pr_status == "draft"
        assert main(["validate"]) == 0

    def test_failed_move_restores_status(self, project_dir, capsys):
        """If the target path is taken, the old pr_status is written back."""
        source = project_dir / "tasks" / "prs" / "active" / "review" / "PR-0001.md"
        blocker = project_dir / "tasks" / "prs" / "active" / "approved" / "PR-0001.md"
        blocker.parent.mkdir(parents=True)
        blocker.write_text("not a document\n")

        assert main(["pr", "status", "PR-0001", "approved"]) == 1
        assert "already exists" in capsys.readouterr().out
        assert DocumentStore().parse_file(source, ItemKind.PR).pr_status == "review"

    def test_review_to_merged_rejected(self, project_dir, capsys):
        """review -> merged is not in the transition table."""
        assert main(["pr", "status", "PR-0001", "merged"]) == 1
        assert "review -> merged" in capsys.readouterr().out

    def test_pr_show(self, project_dir, capsys):
        """pr show keeps suggesting review while approvals are missing."""
        assert main(["pr", "show", "PR-0001"]) == 0
        assert "Next:      review" in capsys.readouterr().out


class TestParser:
    def test_verbosity_counts(self):
        """-vv should count to 2."""
        args = build_parser().parse_args(["-vv", "validate"])
        assert args.verbose == 2

    def test_unknown_pr_status_is_usage_error(self):
        """An unknown PR status should be rejected by argparse."""
        with pytest.raises(SystemExit) as exc_info:
            build_parser().parse_args(["pr", "status", "PR-0001", "shipped"])
        assert exc_info.value.code == 2
