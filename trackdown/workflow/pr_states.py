"""Pull request review/merge state machine.

PR status is separate from the unified lifecycle state. Each status also
determines where the PR document lives on disk:

    draft     -> <prs>/draft
    open      -> <prs>/active/open
    review    -> <prs>/active/review
    approved  -> <prs>/active/approved
    merged    -> <prs>/merged
    closed    -> <prs>/closed

This module only computes the target location. The caller moves the file
through the document store so location and pr_status never diverge.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from transitions import Machine, MachineError

from trackdown.lib.types import TransitionValidation
from trackdown.models import ItemKind, WorkItem, utc_now_iso
from trackdown.workflow.states import InvalidTransition

logger = logging.getLogger(__name__)


class PRStatus(Enum):
    DRAFT = "draft"
    OPEN = "open"
    REVIEW = "review"
    APPROVED = "approved"
    MERGED = "merged"
    CLOSED = "closed"


PR_STATES = [s.value for s in PRStatus]

PR_TRANSITIONS = [
    {"trigger": "publish", "source": "draft", "dest": "open"},
    {"trigger": "request_review", "source": "open", "dest": "review"},
    {"trigger": "approve", "source": "review", "dest": "approved"},
    {"trigger": "request_changes", "source": "review", "dest": "open"},
    {"trigger": "merge", "source": "approved", "dest": "merged"},
    {"trigger": "reopen_review", "source": "approved", "dest": "review"},
    {"trigger": "reopen", "source": "closed", "dest": "open"},

    # Close (abandon path)
    {"trigger": "close", "source": "draft", "dest": "closed"},
    {"trigger": "close", "source": "open", "dest": "closed"},
    {"trigger": "close", "source": "review", "dest": "closed"},
    {"trigger": "close", "source": "approved", "dest": "closed"},
]

PR_TRIGGER_FOR = {(t["source"], t["dest"]): t["trigger"] for t in PR_TRANSITIONS}

# Storage subpath for each status, relative to the PRs directory
STATUS_DIRECTORIES = {
    PRStatus.DRAFT: Path("draft"),
    PRStatus.OPEN: Path("active") / "open",
    PRStatus.REVIEW: Path("active") / "review",
    PRStatus.APPROVED: Path("active") / "approved",
    PRStatus.MERGED: Path("merged"),
    PRStatus.CLOSED: Path("closed"),
}

HAPPY_PATH = {
    PRStatus.DRAFT: PRStatus.OPEN,
    PRStatus.OPEN: PRStatus.REVIEW,
    PRStatus.REVIEW: PRStatus.APPROVED,
    PRStatus.APPROVED: PRStatus.MERGED,
}


def parse_pr_status(value: "str | PRStatus | None") -> Optional[PRStatus]:
    """Parse a PR status string. Returns None if empty or unknown."""
    if value is None:
        return None
    if isinstance(value, PRStatus):
        return value
    if not isinstance(value, str):
        return None
    try:
        return PRStatus(value.strip().lower())
    except ValueError:
        return None


def current_pr_status(pr: WorkItem) -> PRStatus:
    """A PR's status; documents without pr_status are drafts."""
    return parse_pr_status(pr.pr_status) or PRStatus.DRAFT


def get_allowed_status_transitions(status: "str | PRStatus") -> list[PRStatus]:
    parsed = parse_pr_status(status)
    if parsed is None:
        return []
    targets = {t["dest"] for t in PR_TRANSITIONS if t["source"] == parsed.value}
    return [s for s in PRStatus if s.value in targets]


def is_valid_status_transition(from_status: "str | PRStatus", to_status: "str | PRStatus") -> bool:
    source = parse_pr_status(from_status)
    dest = parse_pr_status(to_status)
    if source is None or dest is None:
        return False
    return (source.value, dest.value) in PR_TRIGGER_FOR


def _approval_count(pr: WorkItem) -> int:
    return len(set(pr.approvals))


def validate_status_transition(
    pr: WorkItem,
    to_status: "str | PRStatus",
    bypass_checks: bool = False,
    required_approvals: Optional[int] = None,
) -> TransitionValidation:
    """Check a PR status change against the table and review rules.

    Args:
        pr: The pull request
        to_status: Target status
        bypass_checks: Skip business rules (table check still applies)
        required_approvals: Approvals needed for `approved` (default: one per reviewer)
    """
    current = current_pr_status(pr)
    target = parse_pr_status(to_status)
    allowed = [s.value for s in get_allowed_status_transitions(current)]
    errors: list[str] = []
    warnings: list[str] = []

    if target is None:
        return TransitionValidation(False, [f"Unknown PR status: {to_status}"], [], allowed)

    if not is_valid_status_transition(current, target):
        errors.append(f"Invalid status transition: {current.value} -> {target.value}")

    if not bypass_checks:
        if target == PRStatus.APPROVED:
            needed = len(set(pr.reviewers)) if required_approvals is None else required_approvals
            have = _approval_count(pr)
            if have < needed:
                if have == 0:
                    errors.append(f"PR has no approvals ({needed} required)")
                else:
                    warnings.append(f"PR needs {needed - have} more approvals")

        elif target == PRStatus.MERGED:
            if current != PRStatus.APPROVED:
                errors.append("PR must be approved before merging")
            if pr.blocked_by:
                errors.append(f"PR is blocked by: {', '.join(pr.blocked_by)}")

        elif target == PRStatus.CLOSED and current == PRStatus.APPROVED:
            warnings.append("Closing an approved PR - consider merging instead")

    return TransitionValidation(not errors, errors, warnings, allowed)


def get_status_directory(status: "str | PRStatus", base_dir: Path) -> Path:
    """Directory a PR with `status` must live in.

    Raises:
        ValueError: If the status is unknown
    """
    parsed = parse_pr_status(status)
    if parsed is None:
        raise ValueError(f"Unknown PR status: {status}")
    return Path(base_dir) / STATUS_DIRECTORIES[parsed]


def expected_location(pr: WorkItem, base_dir: Path) -> Optional[Path]:
    """Path the PR document should have for its current status (None if it has no file)."""
    if pr.file_path is None:
        return None
    return get_status_directory(current_pr_status(pr), base_dir) / pr.file_path.name


def check_location(pr: WorkItem, base_dir: Path) -> bool:
    """True if the PR's file sits in the directory its status requires."""
    expected = expected_location(pr, base_dir)
    if expected is None:
        return True
    return Path(pr.file_path).parent.resolve() == expected.parent.resolve()


def get_next_recommended_status(pr: WorkItem) -> Optional[PRStatus]:
    """Next step along draft -> open -> review -> approved -> merged.

    A PR under review stays in `review` until approvals cover every reviewer.
    """
    status = current_pr_status(pr)
    if status == PRStatus.REVIEW and _approval_count(pr) < len(set(pr.reviewers)):
        return PRStatus.REVIEW
    return HAPPY_PATH.get(status)


def get_auto_status_transition(pr: WorkItem) -> Optional[PRStatus]:
    """Suggest `approved` once every reviewer on a PR under review has approved."""
    if current_pr_status(pr) != PRStatus.REVIEW:
        return None
    reviewers = set(pr.reviewers)
    if reviewers and reviewers <= set(pr.approvals):
        return PRStatus.APPROVED
    return None


@dataclass
class PRStatusChange:
    """A computed status change plus the file move it requires."""
    pr: WorkItem
    from_status: PRStatus
    to_status: PRStatus
    source_path: Optional[Path]
    target_path: Optional[Path]
    warnings: list[str] = field(default_factory=list)

    @property
    def needs_move(self) -> bool:
        if self.source_path is None or self.target_path is None:
            return False
        return Path(self.source_path).resolve() != Path(self.target_path).resolve()


class PRLifecycle:
    """State machine for one PR's status (transitions library model)."""

    def __init__(self, pr: WorkItem, base_dir: Path):
        self.pr = pr
        self.base_dir = Path(base_dir)
        self.machine = Machine(
            model=self,
            states=PR_STATES,
            transitions=PR_TRANSITIONS,
            initial=current_pr_status(pr).value,
            auto_transitions=False,
            send_event=True,
            after_state_change="on_state_change",
        )

    def on_state_change(self, event) -> None:
        new_status = PRStatus(event.transition.dest)
        target = None
        if self.pr.file_path is not None:
            target = get_status_directory(new_status, self.base_dir) / self.pr.file_path.name
        now = utc_now_iso()
        self.pr = self.pr.copy(pr_status=new_status.value, updated_date=now, file_path=target)
        logger.info(f"[PR] {self.pr.id}: {event.transition.source} -> {new_status.value} ({event.event.name})")


def apply_status_transition(
    pr: WorkItem,
    to_status: "str | PRStatus",
    base_dir: Path,
    bypass_checks: bool = False,
    required_approvals: Optional[int] = None,
) -> PRStatusChange:
    """Compute a PR status change and the location the file must move to.

    The returned PR already carries the new status and target file_path; the
    caller writes it and moves the document.

    Raises:
        InvalidTransition: If the table or a blocking rule rejects the change
    """
    if pr.kind != ItemKind.PR:
        raise ValueError(f"{pr.id} is not a pull request")

    current = current_pr_status(pr)
    validation = validate_status_transition(pr, to_status, bypass_checks, required_approvals)
    if not validation.valid:
        raise InvalidTransition(current.value, str(getattr(to_status, "value", to_status)), pr.id, validation.errors)

    target = parse_pr_status(to_status)
    lifecycle = PRLifecycle(pr, base_dir)
    try:
        getattr(lifecycle, PR_TRIGGER_FOR[(current.value, target.value)])()
    except MachineError as e:
        raise InvalidTransition(current.value, target.value, pr.id) from e

    for warning in validation.warnings:
        logger.warning(f"[PR] {pr.id}: {warning}")

    return PRStatusChange(
        pr=lifecycle.pr,
        from_status=current,
        to_status=target,
        source_path=pr.file_path,
        target_path=lifecycle.pr.file_path,
        warnings=validation.warnings,
    )
