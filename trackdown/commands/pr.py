"""
trackdown pr - Inspect and move pull requests through review.
"""

import logging

from trackdown.lib.validate import SchemaValidationError
from trackdown.models import ItemKind
from trackdown.project import Project
from trackdown.store.frontmatter import DocumentParseError
from trackdown.workflow.pr_states import (
    apply_status_transition,
    check_location,
    current_pr_status,
    get_allowed_status_transitions,
    get_auto_status_transition,
    get_next_recommended_status,
    get_status_directory,
)
from trackdown.workflow.states import InvalidTransition

logger = logging.getLogger(__name__)


def _load_pr(project: Project, pr_id: str):
    project.cache.ensure_fresh()
    return project.cache.get(ItemKind.PR, pr_id)


def cmd_pr_show(args, project: Project) -> int:
    pr = _load_pr(project, args.id)
    if pr is None:
        print(f"ERROR: PR '{args.id}' not found")
        return 1

    status = current_pr_status(pr)
    allowed = get_allowed_status_transitions(status)
    print(f"{pr.id}: {status.value}")
    print(f"Reviewers: {', '.join(pr.reviewers) or '(none)'}")
    print(f"Approvals: {', '.join(pr.approvals) or '(none)'}")
    print(f"Allowed:   {', '.join(s.value for s in allowed) or '(terminal)'}")

    suggestion = get_auto_status_transition(pr) or get_next_recommended_status(pr)
    if suggestion:
        print(f"Next:      {suggestion.value}")
    if not check_location(pr, project.paths.prs_dir):
        print(f"WARNING: file is not in {get_status_directory(status, project.paths.prs_dir)}")
    return 0


def cmd_pr_status(args, project: Project) -> int:
    """Change a PR's status, moving its document to the matching directory."""
    pr = _load_pr(project, args.id)
    if pr is None:
        print(f"ERROR: PR '{args.id}' not found")
        return 1

    try:
        change = apply_status_transition(
            pr,
            args.status,
            project.paths.prs_dir,
            bypass_checks=args.force,
            required_approvals=args.required_approvals,
        )
    except InvalidTransition as e:
        print(f"ERROR: {e}")
        return 1

    for warning in change.warnings:
        print(f"WARNING: {warning}")

    # Status is written before the move; a failed move restores it
    path = change.source_path
    try:
        project.store.update_file(path, {"pr_status": change.to_status.value})
        if change.needs_move:
            try:
                path = project.store.move_file(change.source_path, change.target_path)
            except OSError:
                project.store.update_file(path, {"pr_status": change.from_status.value})
                raise
    except (OSError, DocumentParseError, SchemaValidationError) as e:
        print(f"ERROR: {e}")
        return 1
    finally:
        project.cache.rebuild()

    print(f"{pr.id}: {change.from_status.value} -> {change.to_status.value}")
    if change.needs_move:
        print(f"Moved to {path}")
    return 0
