"""Shared fixtures: a project on disk with helpers to write work item documents."""

import pytest
import yaml

from trackdown.graph.cache import HierarchyCache
from trackdown.graph.relationships import RelationshipResolver
from trackdown.lib.config import load_project_config, resolve_paths
from trackdown.store.frontmatter import DocumentStore


def write_doc(path, frontmatter: dict, body: str = "") -> None:
    """Write a raw document without going through the store."""
    path.parent.mkdir(parents=True, exist_ok=True)
    header = yaml.safe_dump(frontmatter, sort_keys=False)
    path.write_text(f"---\n{header}---\n\n{body}")


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def paths(tmp_path, monkeypatch):
    for var in ("AITRACKDOWN_TASKS_DIR", "AITRACKDOWN_ROOT_DIR"):
        monkeypatch.delenv(var, raising=False)
    root = tmp_path / "project"
    root.mkdir()
    return resolve_paths(load_project_config(root), root)


@pytest.fixture
def docs(paths):
    """Helpers writing epic/issue/task/pr documents into the project."""

    class Docs:
        def epic(self, epic_id, **fields):
            data = {"epic_id": epic_id, "title": fields.pop("title", epic_id), **fields}
            path = paths.epics_dir / f"{epic_id}.md"
            write_doc(path, data)
            return path

        def issue(self, issue_id, **fields):
            data = {"issue_id": issue_id, "title": fields.pop("title", issue_id), **fields}
            path = paths.issues_dir / f"{issue_id}.md"
            write_doc(path, data)
            return path

        def task(self, task_id, issue_id, **fields):
            data = {"task_id": task_id, "issue_id": issue_id, "title": fields.pop("title", task_id), **fields}
            path = paths.tasks_dir / f"{task_id}.md"
            write_doc(path, data)
            return path

        def pr(self, pr_id, issue_id, subdir="draft", **fields):
            data = {"pr_id": pr_id, "issue_id": issue_id, "title": fields.pop("title", pr_id), **fields}
            path = paths.prs_dir / subdir / f"{pr_id}.md"
            write_doc(path, data)
            return path

    return Docs()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(paths, clock):
    return HierarchyCache(DocumentStore(), paths, clock=clock)


@pytest.fixture
def resolver(cache):
    return RelationshipResolver(cache)
