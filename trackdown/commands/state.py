"""
trackdown state - Show or change an item's unified lifecycle state.
"""

import getpass

from trackdown.lib.validate import SchemaValidationError
from trackdown.project import Project
from trackdown.store.frontmatter import DocumentParseError
from trackdown.workflow.states import (
    InvalidTransition,
    can_automate,
    effective_state,
    get_allowed_transitions,
    transition_item,
    validate_state_metadata,
)


def default_actor(project: Project) -> str:
    return project.config.default_assignee or getpass.getuser()


def cmd_state_show(args, project: Project) -> int:
    project.cache.ensure_fresh()
    item = project.cache.find(args.id)
    if item is None:
        print(f"ERROR: Item '{args.id}' not found")
        return 1

    state = effective_state(item)
    print(f"{item.id}: {state.value}" + ("" if item.state else f" (derived from status '{item.status}')"))
    allowed = get_allowed_transitions(state)
    print(f"Allowed:  {', '.join(s.value for s in allowed) if allowed else '(terminal)'}")

    meta = item.state_metadata
    if meta is not None:
        print(f"Changed:  {meta.transitioned_at} by {meta.transitioned_by}")
        if meta.previous_state:
            print(f"Previous: {meta.previous_state}")
        if meta.transition_reason:
            print(f"Reason:   {meta.transition_reason}")
        for issue in validate_state_metadata(meta).errors:
            print(f"WARNING:  {issue.message}")
    return 0


def cmd_state_set(args, project: Project) -> int:
    """Validate a transition, persist it, and rebuild the cache."""
    project.cache.ensure_fresh()
    item = project.cache.find(args.id)
    if item is None:
        print(f"ERROR: Item '{args.id}' not found")
        return 1

    if args.automation_source and not can_automate(item, args.state):
        print(f"ERROR: {item.id} may not be moved to {args.state} by automation")
        return 1

    try:
        updated = transition_item(
            item,
            args.state,
            actor=args.actor or default_actor(project),
            reason=args.reason,
            reviewer=args.reviewer,
            automation_source=args.automation_source,
        )
    except InvalidTransition as e:
        print(f"ERROR: {e}")
        allowed = get_allowed_transitions(effective_state(item))
        if allowed:
            print(f"Allowed: {', '.join(s.value for s in allowed)}")
        return 1

    if updated is item:
        print(f"{item.id} is already {effective_state(item).value}")
        return 0

    fields = {
        "state": updated.state,
        "state_metadata": updated.state_metadata.to_dict(),
    }
    if updated.status is not None:
        fields["status"] = updated.status

    try:
        project.store.update_file(item.file_path, fields)
    except (DocumentParseError, SchemaValidationError) as e:
        print(f"ERROR: {e}")
        return 1
    project.cache.rebuild()

    print(f"{item.id}: {effective_state(item).value} -> {updated.state}")
    return 0
