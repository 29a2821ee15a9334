"""
Hierarchical relationship resolver.

Answers Epic -> Issue -> Task (and PR) hierarchy queries, dependency lookups
and cross-kind searches against a HierarchyCache, and validates referential
integrity. Every query calls cache.ensure_fresh() first.

Unknown IDs are an expected case: lookups return None or empty lists rather
than raising.
"""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

from trackdown.graph.cache import HierarchyCache
from trackdown.graph.cycles import find_cycles
from trackdown.lib.types import ValidationResult
from trackdown.models import ItemKind, WorkItem
from trackdown.workflow.pr_states import PRStatus, check_location, current_pr_status, get_status_directory
from trackdown.workflow.states import (
    UnifiedState,
    effective_state,
    validate_state_metadata,
)

logger = logging.getLogger(__name__)


def _by_created(items: Iterable[WorkItem]) -> list[WorkItem]:
    return sorted(items, key=lambda i: (i.created_date, i.id))


@dataclass
class EpicHierarchy:
    epic: WorkItem
    issues: list[WorkItem]
    tasks: list[WorkItem]
    prs: list[WorkItem]


@dataclass
class IssueHierarchy:
    issue: WorkItem
    tasks: list[WorkItem]
    prs: list[WorkItem]
    epic: Optional[WorkItem] = None


@dataclass
class TaskHierarchy:
    task: WorkItem
    issue: WorkItem
    epic: Optional[WorkItem] = None


@dataclass
class PRHierarchy:
    pr: WorkItem
    issue: WorkItem
    epic: Optional[WorkItem] = None


@dataclass
class RelatedItems:
    siblings: list[WorkItem] = field(default_factory=list)
    dependencies: list[WorkItem] = field(default_factory=list)
    dependents: list[WorkItem] = field(default_factory=list)
    blocked_by: list[WorkItem] = field(default_factory=list)
    blocks: list[WorkItem] = field(default_factory=list)


@dataclass
class SearchFilters:
    """Predicate filters; list values match any-of, None means no filter."""
    status: Optional[list[str]] = None          # Legacy status
    state: Optional[list[str]] = None           # Effective unified state
    priority: Optional[list[str]] = None
    assignee: Optional[list[str]] = None
    tags: Optional[list[str]] = None
    kinds: Optional[list[ItemKind]] = None
    created_after: Optional[str] = None
    created_before: Optional[str] = None
    updated_after: Optional[str] = None
    updated_before: Optional[str] = None
    text: Optional[str] = None                  # Case-insensitive over title/description/body


@dataclass
class SearchResult:
    items: list[WorkItem]
    total_count: int
    filters: SearchFilters
    execution_time: float  # Seconds


@dataclass
class ProjectOverview:
    totals: dict[str, int]
    state_breakdown: dict[str, int]
    priority_breakdown: dict[str, int]
    completed: int
    completion_percentage: float


class RelationshipResolver:
    """Hierarchy, dependency and integrity queries over one HierarchyCache."""

    def __init__(self, cache: HierarchyCache):
        self.cache = cache

    # ─────────────────────────────────────────────────────────────────────
    # Hierarchy
    # ─────────────────────────────────────────────────────────────────────

    def get_epic_hierarchy(self, epic_id: str) -> Optional[EpicHierarchy]:
        """Epic plus every issue, task and PR whose epic_id points at it."""
        self.cache.ensure_fresh()
        epic = self.cache.get(ItemKind.EPIC, epic_id)
        if epic is None:
            return None

        def under_epic(kind: ItemKind) -> list[WorkItem]:
            return _by_created(i for i in self.cache.all(kind) if i.epic_id == epic_id)

        return EpicHierarchy(
            epic=epic,
            issues=under_epic(ItemKind.ISSUE),
            tasks=under_epic(ItemKind.TASK),
            prs=under_epic(ItemKind.PR),
        )

    def get_issue_hierarchy(self, issue_id: str) -> Optional[IssueHierarchy]:
        """Issue plus its tasks and PRs, and its epic if it has one."""
        self.cache.ensure_fresh()
        issue = self.cache.get(ItemKind.ISSUE, issue_id)
        if issue is None:
            return None

        return IssueHierarchy(
            issue=issue,
            tasks=_by_created(t for t in self.cache.all(ItemKind.TASK) if t.issue_id == issue_id),
            prs=_by_created(p for p in self.cache.all(ItemKind.PR) if p.issue_id == issue_id),
            epic=self._epic_of(issue),
        )

    def get_task_hierarchy(self, task_id: str) -> Optional[TaskHierarchy]:
        """Task plus parent issue and epic. None if task or parent issue is missing."""
        self.cache.ensure_fresh()
        task = self.cache.get(ItemKind.TASK, task_id)
        if task is None:
            return None
        issue = self.cache.get(ItemKind.ISSUE, task.issue_id) if task.issue_id else None
        if issue is None:
            return None
        return TaskHierarchy(task=task, issue=issue, epic=self._epic_of(task, issue))

    def get_pr_hierarchy(self, pr_id: str) -> Optional[PRHierarchy]:
        """PR plus parent issue and epic. None if PR or parent issue is missing."""
        self.cache.ensure_fresh()
        pr = self.cache.get(ItemKind.PR, pr_id)
        if pr is None:
            return None
        issue = self.cache.get(ItemKind.ISSUE, pr.issue_id) if pr.issue_id else None
        if issue is None:
            return None
        return PRHierarchy(pr=pr, issue=issue, epic=self._epic_of(pr, issue))

    def _epic_of(self, item: WorkItem, parent_issue: Optional[WorkItem] = None) -> Optional[WorkItem]:
        """Epic for an item, falling back to its parent issue's epic."""
        epic_id = item.epic_id or (parent_issue.epic_id if parent_issue else None)
        if not epic_id:
            return None
        return self.cache.get(ItemKind.EPIC, epic_id)

    def get_children(self, parent_id: str, parent_kind: ItemKind) -> list[WorkItem]:
        """Direct children: epic -> issues, issue -> tasks then PRs."""
        self.cache.ensure_fresh()
        if parent_kind == ItemKind.EPIC:
            return _by_created(i for i in self.cache.all(ItemKind.ISSUE) if i.epic_id == parent_id)
        if parent_kind == ItemKind.ISSUE:
            tasks = _by_created(t for t in self.cache.all(ItemKind.TASK) if t.issue_id == parent_id)
            prs = _by_created(p for p in self.cache.all(ItemKind.PR) if p.issue_id == parent_id)
            return tasks + prs
        return []

    def get_parent(self, child_id: str, child_kind: ItemKind) -> Optional[WorkItem]:
        """Immediate parent: issue -> epic, task/pr -> issue."""
        self.cache.ensure_fresh()
        child = self.cache.get(child_kind, child_id)
        if child is None or not child.parent_id:
            return None
        if child_kind == ItemKind.ISSUE:
            return self.cache.get(ItemKind.EPIC, child.parent_id)
        return self.cache.get(ItemKind.ISSUE, child.parent_id)

    # ─────────────────────────────────────────────────────────────────────
    # Dependencies
    # ─────────────────────────────────────────────────────────────────────

    def get_related_items(self, item_id: str) -> RelatedItems:
        """Siblings, resolved dependency edges, and reverse dependents."""
        self.cache.ensure_fresh()
        item = self.cache.find(item_id)
        if item is None:
            return RelatedItems()

        siblings: list[WorkItem] = []
        if item.kind != ItemKind.EPIC and item.parent_id:
            siblings = _by_created(
                other for other in self.cache.all(item.kind)
                if other.parent_id == item.parent_id and other.id != item.id
            )

        return RelatedItems(
            siblings=siblings,
            dependencies=self._resolve(item.dependencies),
            dependents=self.find_dependents(item_id),
            blocked_by=self._resolve(item.blocked_by),
            blocks=self._resolve(item.blocks),
        )

    def find_dependents(self, item_id: str) -> list[WorkItem]:
        """Every item whose dependencies contain `item_id`."""
        self.cache.ensure_fresh()
        return [i for i in self.cache.all_items() if item_id in i.dependencies]

    def _resolve(self, ids: Iterable[str]) -> list[WorkItem]:
        """Resolve IDs to items, dropping unknown ones."""
        resolved = []
        for item_id in ids:
            item = self.cache.find(item_id)
            if item is not None:
                resolved.append(item)
        return resolved

    def dependency_graph(self) -> dict[str, list[str]]:
        self.cache.ensure_fresh()
        return {item.id: list(item.dependencies) for item in self.cache.all_items()}

    def find_circular_dependencies(self) -> list[list[str]]:
        return find_cycles(self.dependency_graph())

    # ─────────────────────────────────────────────────────────────────────
    # Search
    # ─────────────────────────────────────────────────────────────────────

    def search(self, filters: SearchFilters) -> SearchResult:
        """Filter the union of all kinds."""
        started = time.perf_counter()
        self.cache.ensure_fresh()

        items = list(self.cache.all_items())
        if filters.kinds:
            items = [i for i in items if i.kind in filters.kinds]
        if filters.status:
            items = [i for i in items if i.status in filters.status]
        if filters.state:
            wanted = set(filters.state)
            items = [i for i in items if effective_state(i).value in wanted]
        if filters.priority:
            items = [i for i in items if i.priority in filters.priority]
        if filters.assignee:
            items = [i for i in items if i.assignee in filters.assignee]
        if filters.tags:
            wanted = set(filters.tags)
            items = [i for i in items if wanted & set(i.tags)]
        if filters.created_after:
            items = [i for i in items if i.created_date >= filters.created_after]
        if filters.created_before:
            items = [i for i in items if i.created_date <= filters.created_before]
        if filters.updated_after:
            items = [i for i in items if i.updated_date >= filters.updated_after]
        if filters.updated_before:
            items = [i for i in items if i.updated_date <= filters.updated_before]
        if filters.text:
            term = filters.text.lower()
            items = [
                i for i in items
                if term in i.title.lower() or term in i.description.lower() or term in i.content.lower()
            ]

        return SearchResult(
            items=items,
            total_count=len(items),
            filters=filters,
            execution_time=time.perf_counter() - started,
        )

    # ─────────────────────────────────────────────────────────────────────
    # Integrity
    # ─────────────────────────────────────────────────────────────────────

    def validate_relationships(self) -> ValidationResult:
        """Scan every item for integrity problems. Never raises.

        Errors: orphaned epic_id/issue_id references, dependency cycles, PR
        files outside their status directory. Warnings: task/PR epic_id that
        disagrees with the parent issue's, incomplete state metadata.
        """
        self.cache.ensure_fresh()
        result = ValidationResult()
        epics = {e.id for e in self.cache.all(ItemKind.EPIC)}

        for issue in self.cache.all(ItemKind.ISSUE):
            if issue.epic_id and issue.epic_id not in epics:
                result.error("epic_id", f"Issue {issue.id} references non-existent epic {issue.epic_id}", issue.id)

        for kind, label in ((ItemKind.TASK, "Task"), (ItemKind.PR, "PR")):
            for child in self.cache.all(kind):
                self._check_child(child, label, epics, result)

        for cycle in self.find_circular_dependencies():
            result.error("dependencies", f"Circular dependency detected: {' -> '.join(cycle)}", cycle[0])

        self._check_pr_locations(result)
        self._check_state_metadata(result)

        if result.errors:
            logger.info(f"[GRAPH] Validation found {len(result.errors)} errors, {len(result.warnings)} warnings")
        return result

    def _check_child(self, child: WorkItem, label: str, epics: set[str], result: ValidationResult) -> None:
        issue = self.cache.get(ItemKind.ISSUE, child.issue_id) if child.issue_id else None
        if not child.issue_id:
            result.error("issue_id", f"{label} {child.id} has no issue_id", child.id)
        elif issue is None:
            result.error("issue_id", f"{label} {child.id} references non-existent issue {child.issue_id}", child.id)

        if child.epic_id and child.epic_id not in epics:
            result.error("epic_id", f"{label} {child.id} references non-existent epic {child.epic_id}", child.id)

        if issue is not None and child.epic_id and child.epic_id != issue.epic_id:
            result.warning(
                "epic_id",
                f"{label} {child.id} epic_id ({child.epic_id}) doesn't match issue's epic_id ({issue.epic_id})",
                child.id,
            )

    def _check_pr_locations(self, result: ValidationResult) -> None:
        base_dir = self.cache.paths.prs_dir
        for pr in self.cache.all(ItemKind.PR):
            if pr.file_path is None or check_location(pr, base_dir):
                continue
            expected = get_status_directory(current_pr_status(pr), base_dir)
            result.error(
                "pr_status",
                f"PR {pr.id} with status {current_pr_status(pr).value} is in {Path(pr.file_path).parent}, "
                f"expected {expected}",
                pr.id,
            )

    def _check_state_metadata(self, result: ValidationResult) -> None:
        for item in self.cache.all_items():
            if not item.state:
                continue
            check = validate_state_metadata(item.state_metadata)
            for issue in check.errors:
                result.warning("state_metadata", f"{item.id}: {issue.message}", item.id)

    # ─────────────────────────────────────────────────────────────────────
    # Overview
    # ─────────────────────────────────────────────────────────────────────

    def get_project_overview(self) -> ProjectOverview:
        """Counts per kind, effective state and priority, plus completion rate."""
        self.cache.ensure_fresh()
        items = list(self.cache.all_items())

        states: dict[str, int] = {}
        priorities: dict[str, int] = {}
        completed = 0
        for item in items:
            state = effective_state(item)
            states[state.value] = states.get(state.value, 0) + 1
            priorities[item.priority] = priorities.get(item.priority, 0) + 1
            if state == UnifiedState.DONE or (
                item.kind == ItemKind.PR and current_pr_status(item) == PRStatus.MERGED
            ):
                completed += 1

        pct = round(completed / len(items) * 100, 2) if items else 0.0
        return ProjectOverview(
            totals={kind.value: len(self.cache.all(kind)) for kind in ItemKind},
            state_breakdown=states,
            priority_breakdown=priorities,
            completed=completed,
            completion_percentage=pct,
        )
