"""Tests for trackdown.workflow.pr_states module."""

from pathlib import Path

import pytest

from trackdown.models import ItemKind, WorkItem
from trackdown.workflow.pr_states import (
    PRStatus,
    apply_status_transition,
    check_location,
    get_allowed_status_transitions,
    get_auto_status_transition,
    get_next_recommended_status,
    get_status_directory,
    is_valid_status_transition,
    parse_pr_status,
    validate_status_transition,
)
from trackdown.workflow.states import InvalidTransition


def _pr(**fields) -> WorkItem:
    return WorkItem(kind=ItemKind.PR, id="PR-0001", issue_id="ISS-0001", **fields)


class TestTransitionTable:
    @pytest.mark.parametrize("source,dest", [
        ("draft", "open"), ("draft", "closed"),
        ("open", "review"), ("open", "closed"),
        ("review", "approved"), ("review", "open"), ("review", "closed"),
        ("approved", "merged"), ("approved", "review"), ("approved", "closed"),
        ("closed", "open"),
    ])
    def test_valid_edges(self, source, dest):
        """Every edge in the PR table is valid."""
        assert is_valid_status_transition(source, dest)

    def test_merged_is_terminal(self):
        """Nothing leaves merged."""
        assert get_allowed_status_transitions("merged") == []

    def test_invalid_edges(self):
        """Edges outside the table are invalid."""
        assert not is_valid_status_transition("review", "merged")
        assert not is_valid_status_transition("draft", "approved")
        assert not is_valid_status_transition("draft", "bogus")

    def test_parse_non_string_status(self):
        """Non-string statuses parse to None and strings are normalized."""
        assert parse_pr_status(1) is None
        assert parse_pr_status(" Review ") == PRStatus.REVIEW


class TestValidateStatusTransition:
    """Approval gating and merge rules."""

    def test_needs_more_approvals_warning(self):
        """Partial approvals warn with the number still needed."""
        pr = _pr(pr_status="review", reviewers=["r1", "r2"], approvals=["r1"])
        result = validate_status_transition(pr, "approved")
        assert result.valid
        assert result.warnings == ["PR needs 1 more approvals"]

    def test_review_to_merged_rejected_by_table(self):
        """bypass_checks never allows an edge outside the table."""
        pr = _pr(pr_status="review", reviewers=["r1", "r2"], approvals=["r1"])
        result = validate_status_transition(pr, "merged", bypass_checks=True)
        assert not result.valid
        assert "Invalid status transition: review -> merged" in result.errors

    def test_no_approvals_is_error(self):
        """Approving with no approvals is an error."""
        pr = _pr(pr_status="review", reviewers=["r1"])
        result = validate_status_transition(pr, "approved")
        assert not result.valid
        assert "PR has no approvals (1 required)" in result.errors

    @pytest.mark.parametrize("approvals", [[], ["r1"], ["r1", "r2"]])
    def test_gating_property(self, approvals):
        """Only full approvals approve without an error or warning."""
        pr = _pr(pr_status="review", reviewers=["r1", "r2"], approvals=approvals)
        result = validate_status_transition(pr, "approved")
        if len(approvals) < 2:
            assert not result.valid or result.warnings
        else:
            assert result.valid and result.warnings == []

    def test_required_approvals_override(self):
        """An explicit required count replaces the reviewer count."""
        pr = _pr(pr_status="review", reviewers=["r1", "r2", "r3"], approvals=["r1"])
        assert validate_status_transition(pr, "approved", required_approvals=1).warnings == []

    def test_bypass_skips_approvals(self):
        """bypass_checks skips approval gating."""
        pr = _pr(pr_status="review", reviewers=["r1"])
        assert validate_status_transition(pr, "approved", bypass_checks=True).valid

    def test_blocked_merge(self):
        """A blocked PR cannot merge."""
        pr = _pr(pr_status="approved", blocked_by=["TSK-0001"])
        result = validate_status_transition(pr, "merged")
        assert not result.valid
        assert any("blocked" in e for e in result.errors)

    def test_close_approved_warns(self):
        """Closing an approved PR warns."""
        result = validate_status_transition(_pr(pr_status="approved"), "closed")
        assert result.valid
        assert result.warnings

    def test_missing_status_is_draft(self):
        """A PR without pr_status is treated as draft."""
        result = validate_status_transition(_pr(), "open")
        assert result.valid
        assert result.allowed_transitions == ["open", "closed"]


class TestLocations:
    @pytest.mark.parametrize("status,subpath", [
        ("draft", "draft"),
        ("open", "active/open"),
        ("review", "active/review"),
        ("approved", "active/approved"),
        ("merged", "merged"),
        ("closed", "closed"),
    ])
    def test_status_directory(self, status, subpath):
        """Each status maps to its directory."""
        assert get_status_directory(status, Path("/p")) == Path("/p") / subpath

    def test_unknown_status_raises(self):
        """Unknown statuses have no directory."""
        with pytest.raises(ValueError):
            get_status_directory("bogus", Path("/p"))

    def test_check_location(self, tmp_path):
        """check_location compares the file's directory with the status directory."""
        pr = _pr(pr_status="review", file_path=tmp_path / "active" / "review" / "PR-0001.md")
        assert check_location(pr, tmp_path)
        assert not check_location(pr.copy(pr_status="merged"), tmp_path)
        assert check_location(_pr(), tmp_path)


class TestRecommendations:
    def test_next_recommended(self):
        """The next status follows the happy path."""
        assert get_next_recommended_status(_pr(pr_status="open")) == PRStatus.REVIEW
        assert get_next_recommended_status(_pr(pr_status="merged")) is None

    def test_review_stays_until_all_reviewers_approve(self):
        """Review is suggested again until every reviewer approves."""
        partial = _pr(pr_status="review", reviewers=["r1", "r2"], approvals=["r1"])
        assert get_next_recommended_status(partial) == PRStatus.REVIEW
        full = partial.copy(approvals=["r1", "r2"])
        assert get_next_recommended_status(full) == PRStatus.APPROVED
        assert get_next_recommended_status(_pr(pr_status="review")) == PRStatus.APPROVED

    def test_auto_transition_when_all_approved(self):
        """A fully approved PR under review auto-suggests approved."""
        pr = _pr(pr_status="review", reviewers=["r1", "r2"], approvals=["r2", "r1"])
        assert get_auto_status_transition(pr) == PRStatus.APPROVED

    def test_no_auto_transition(self):
        """No automatic suggestion without full approvals under review."""
        assert get_auto_status_transition(_pr(pr_status="review", reviewers=["r1"])) is None
        assert get_auto_status_transition(_pr(pr_status="review")) is None
        assert get_auto_status_transition(_pr(pr_status="open", reviewers=["r1"], approvals=["r1"])) is None


class TestApplyStatusTransition:
    """Tests for apply_status_transition()."""

    def test_computes_move(self, tmp_path):
        """A status change computes the target path without touching the input."""
        pr = _pr(pr_status="draft", file_path=tmp_path / "draft" / "PR-0001.md")
        change = apply_status_transition(pr, "open", tmp_path)

        assert change.from_status == PRStatus.DRAFT
        assert change.to_status == PRStatus.OPEN
        assert change.pr.pr_status == "open"
        assert change.target_path == tmp_path / "active" / "open" / "PR-0001.md"
        assert change.needs_move
        assert pr.pr_status == "draft"

    def test_location_follows_status(self, tmp_path):
        """The changed PR's target matches its new status."""
        pr = _pr(pr_status="review", reviewers=["r1"], approvals=["r1"],
                 file_path=tmp_path / "active" / "review" / "PR-0001.md")
        change = apply_status_transition(pr, PRStatus.APPROVED, tmp_path)
        assert check_location(change.pr, tmp_path)

    def test_invalid_raises(self, tmp_path):
        """Invalid status changes raise InvalidTransition."""
        with pytest.raises(InvalidTransition):
            apply_status_transition(_pr(pr_status="review"), "merged", tmp_path)

    def test_warnings_are_returned(self, tmp_path, caplog):
        """Validation warnings are returned and logged."""
        pr = _pr(pr_status="review", reviewers=["r1", "r2"], approvals=["r1"])
        change = apply_status_transition(pr, "approved", tmp_path)
        assert change.warnings == ["PR needs 1 more approvals"]
        assert not change.needs_move  # no file
        assert "[PR] PR-0001: PR needs 1 more approvals" in caplog.text

    def test_rejects_non_pr(self, tmp_path):
        """Only PRs have a review status."""
        with pytest.raises(ValueError):
            apply_status_transition(WorkItem(kind=ItemKind.TASK, id="TSK-0001"), "open", tmp_path)
