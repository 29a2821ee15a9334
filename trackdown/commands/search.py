"""
trackdown search - Filter work items across all kinds.
"""

from trackdown.graph.relationships import SearchFilters
from trackdown.models import parse_kind
from trackdown.project import Project
from trackdown.workflow.states import effective_state


def build_filters(args) -> SearchFilters:
    """Map parsed CLI arguments onto SearchFilters."""
    return SearchFilters(
        status=args.status or None,
        state=args.state or None,
        priority=args.priority or None,
        assignee=args.assignee or None,
        tags=args.tag or None,
        kinds=[parse_kind(k) for k in args.kind] if args.kind else None,
        created_after=args.created_after,
        created_before=args.created_before,
        updated_after=args.updated_after,
        updated_before=args.updated_before,
        text=args.text,
    )


def cmd_search(args, project: Project) -> int:
    try:
        filters = build_filters(args)
    except ValueError as e:
        print(f"ERROR: {e}")
        return 2

    result = project.resolver.search(filters)
    for item in result.items:
        print(f"{item.id:<10} {item.kind.value:<6} [{effective_state(item).value}] {item.title}")

    print(f"\n{result.total_count} matches ({result.execution_time * 1000:.1f} ms)")
    return 0
