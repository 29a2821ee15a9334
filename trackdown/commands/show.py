"""
trackdown show - Show an item with its hierarchy and related items.
trackdown overview - Project-wide counts and completion.
"""

from trackdown.models import ItemKind, WorkItem
from trackdown.project import Project
from trackdown.workflow.pr_states import current_pr_status, get_next_recommended_status
from trackdown.workflow.states import effective_state


def _line(item: WorkItem) -> str:
    return f"{item.id:<10} [{effective_state(item).value}] {item.title}"


def _section(title: str, items: list[WorkItem]) -> None:
    if not items:
        return
    print(f"{title} ({len(items)})")
    print("-" * 40)
    for item in items:
        print(f"  {_line(item)}")
    print()


def cmd_show(args, project: Project) -> int:
    """Show one item: header, hierarchy, dependencies."""
    resolver = project.resolver
    project.cache.ensure_fresh()
    item = project.cache.find(args.id)
    if item is None:
        print(f"ERROR: Item '{args.id}' not found")
        return 1

    print(f"{item.kind.value.upper()}: {item.id}")
    print("=" * 60)
    print(f"Title:      {item.title}")
    print(f"State:      {effective_state(item).value}" + ("" if item.state else " (from legacy status)"))
    if item.status:
        print(f"Status:     {item.status}")
    print(f"Priority:   {item.priority}")
    if item.assignee:
        print(f"Assignee:   {item.assignee}")
    if item.kind == ItemKind.PR:
        status = current_pr_status(item)
        next_status = get_next_recommended_status(item)
        print(f"PR status:  {status.value}" + (f" (next: {next_status.value})" if next_status else ""))
        print(f"Approvals:  {len(set(item.approvals))}/{len(set(item.reviewers))}")
    if item.file_path:
        print(f"File:       {item.file_path}")
    print()

    if item.kind == ItemKind.EPIC:
        hierarchy = resolver.get_epic_hierarchy(item.id)
        _section("Issues", hierarchy.issues)
        _section("Tasks", hierarchy.tasks)
        _section("Pull requests", hierarchy.prs)
    elif item.kind == ItemKind.ISSUE:
        hierarchy = resolver.get_issue_hierarchy(item.id)
        if hierarchy.epic:
            print(f"Epic: {_line(hierarchy.epic)}\n")
        _section("Tasks", hierarchy.tasks)
        _section("Pull requests", hierarchy.prs)
    else:
        parent = resolver.get_parent(item.id, item.kind)
        if parent is None:
            print(f"WARNING: parent issue '{item.issue_id}' not found\n")
        else:
            print(f"Issue: {_line(parent)}\n")

    related = resolver.get_related_items(item.id)
    _section("Depends on", related.dependencies)
    _section("Dependents", related.dependents)
    _section("Blocked by", related.blocked_by)
    _section("Blocks", related.blocks)
    return 0


def cmd_overview(args, project: Project) -> int:
    """Print totals per kind, state and priority."""
    overview = project.resolver.get_project_overview()

    print(f"Project: {project.config.name}")
    print("=" * 60)
    for kind, count in overview.totals.items():
        print(f"  {kind + 's':<12} {count}")
    print()

    print("By state")
    print("-" * 40)
    for state, count in sorted(overview.state_breakdown.items()):
        print(f"  {state:<24} {count}")
    print()

    print("By priority")
    print("-" * 40)
    for priority, count in sorted(overview.priority_breakdown.items()):
        print(f"  {priority:<24} {count}")
    print()

    print(f"Completed: {overview.completed} ({overview.completion_percentage:.1f}%)")
    return 0
