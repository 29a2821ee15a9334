"""Legacy status -> unified state migration.

Migration is best-effort: every item is attempted, a failure is recorded in
the log for that item, and the batch carries on. Callers look at
failed_count to decide whether the overall run counts as a failure.

Everything here is pure. The command layer persists migrated items through
the document store, saves the log with save_migration_log(), and can later
undo the run with create_rollback_plan() + rollback_item().
"""

import json
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Optional

from trackdown.lib.types import ValidationIssue
from trackdown.lib.validate import validate, validate_file
from trackdown.models import WorkItem, utc_now_iso
from trackdown.workflow.states import (
    create_state_metadata,
    effective_state,
    is_backward_compatible,
    migrate_status_to_state,
    validate_state_metadata,
)

logger = logging.getLogger(__name__)

MIGRATION_REASON = "migrated from legacy status"
STATE_FIELDS = ("state", "state_metadata")

ACTION_REMOVE_STATE_FIELDS = "remove_state_fields"
ACTION_NO_ACTION = "no_action"


class MigrationItemError(Exception):
    """A single item could not be migrated."""

    def __init__(self, item_id: str, message: str):
        self.item_id = item_id
        super().__init__(f"{item_id}: {message}")


@dataclass
class MigrationLogEntry:
    """Audit record for one item in a migration run."""
    item_id: str
    kind: str
    old_status: Optional[str]
    new_state: Optional[str]
    success: bool
    skipped: bool = False      # Item already had a state; nothing was changed
    timestamp: str = ""
    error: Optional[str] = None
    file_path: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ItemMigration:
    """Result of migrating one item."""
    item: WorkItem
    log_entry: MigrationLogEntry


@dataclass
class MigrationReport:
    """Aggregate result of a batch migration."""
    migrated_count: int = 0
    failed_count: int = 0
    skipped_count: int = 0
    items: list[WorkItem] = field(default_factory=list)
    migration_log: list[MigrationLogEntry] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.failed_count == 0


@dataclass
class PreviewEntry:
    item_id: str
    kind: str
    current_status: Optional[str]
    target_state: str
    needs_migration: bool


@dataclass
class MigrationPreview:
    total_items: int
    needs_migration: int
    already_migrated: int
    entries: list[PreviewEntry]


@dataclass
class RollbackOperation:
    item_id: str
    action: str
    original_status: Optional[str]


@dataclass
class RollbackPlan:
    operations: list[RollbackOperation]

    @property
    def summary(self) -> dict[str, int]:
        counts = {
            "total_operations": len(self.operations),
            ACTION_REMOVE_STATE_FIELDS: 0,
            ACTION_NO_ACTION: 0,
        }
        for op in self.operations:
            counts[op.action] += 1
        return counts


@dataclass
class ItemValidationDetail:
    item_id: str
    has_state: bool
    has_metadata: bool
    metadata_valid: bool
    backward_compatible: bool


@dataclass
class MigrationValidation:
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)
    details: list[ItemValidationDetail] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors


def needs_migration(item: WorkItem) -> bool:
    """True if the item still relies solely on legacy status."""
    return not item.state


def migrate_item(item: WorkItem, actor: str = "system") -> ItemMigration:
    """Convert one item's legacy status into unified state.

    Items that already have a state pass through unchanged with a skipped
    log entry.

    Raises:
        MigrationItemError: If the item can't be migrated (no ID, no actor)
    """
    if not item.id:
        raise MigrationItemError("<unknown>", "item has no ID")
    if not actor:
        raise MigrationItemError(item.id, "migration actor is required")

    entry = MigrationLogEntry(
        item_id=item.id,
        kind=item.kind.value,
        old_status=item.status,
        new_state=None,
        success=True,
        timestamp=utc_now_iso(),
        file_path=str(item.file_path) if item.file_path else None,
    )

    if not needs_migration(item):
        entry.new_state = effective_state(item).value
        entry.skipped = True
        return ItemMigration(item, entry)

    new_state = migrate_status_to_state(item.status)
    metadata = create_state_metadata(
        transitioned_by=actor,
        previous_state=item.status,
        automation_eligible=False,
        transition_reason=MIGRATION_REASON,
    )
    migrated = item.copy(
        state=new_state.value,
        state_metadata=metadata,
        updated_date=metadata.transitioned_at,
    )
    entry.new_state = new_state.value
    return ItemMigration(migrated, entry)


def migrate_items(items: list[WorkItem], actor: str = "system") -> MigrationReport:
    """Migrate every item, recording per-item failures instead of aborting."""
    report = MigrationReport()
    if not actor:
        report.errors.append("migration actor is required")

    for item in items:
        try:
            result = migrate_item(item, actor)
        except Exception as e:  # One bad item must never stop the batch
            logger.warning(f"[MIGRATE] {item.id or '<unknown>'}: {e}")
            report.failed_count += 1
            report.items.append(item)
            report.migration_log.append(MigrationLogEntry(
                item_id=item.id or "<unknown>",
                kind=item.kind.value,
                old_status=item.status,
                new_state=None,
                success=False,
                timestamp=utc_now_iso(),
                error=str(e),
                file_path=str(item.file_path) if item.file_path else None,
            ))
            report.errors.append(str(e) if isinstance(e, MigrationItemError) else f"{item.id}: {e}")
            continue

        report.items.append(result.item)
        report.migration_log.append(result.log_entry)
        if result.log_entry.skipped:
            report.skipped_count += 1
        else:
            report.migrated_count += 1
            logger.debug(f"[MIGRATE] {item.id}: {item.status} -> {result.log_entry.new_state}")

    logger.info(
        f"[MIGRATE] {report.migrated_count} migrated, {report.skipped_count} skipped, "
        f"{report.failed_count} failed"
    )
    return report


def preview_migration(items: list[WorkItem]) -> MigrationPreview:
    """Dry run: what migrate_items() would do, without touching anything."""
    entries = [
        PreviewEntry(
            item_id=item.id,
            kind=item.kind.value,
            current_status=item.status,
            target_state=effective_state(item).value,
            needs_migration=needs_migration(item),
        )
        for item in items
    ]
    pending = sum(1 for e in entries if e.needs_migration)
    return MigrationPreview(
        total_items=len(entries),
        needs_migration=pending,
        already_migrated=len(entries) - pending,
        entries=entries,
    )


def create_rollback_plan(migration_log: list[MigrationLogEntry]) -> RollbackPlan:
    """Reverse operations for a migration run.

    Successfully migrated entries get remove_state_fields; failed or skipped
    entries get no_action (nothing was changed for them).
    """
    operations = []
    for entry in migration_log:
        if entry.success and not entry.skipped:
            action = ACTION_REMOVE_STATE_FIELDS
        else:
            action = ACTION_NO_ACTION
        operations.append(RollbackOperation(entry.item_id, action, entry.old_status))
    return RollbackPlan(operations)


def rollback_item(item: WorkItem, operation: RollbackOperation) -> WorkItem:
    """Apply one rollback operation to an item (pure)."""
    if operation.action != ACTION_REMOVE_STATE_FIELDS:
        return item
    return item.copy(
        state=None,
        state_metadata=None,
        status=operation.original_status,
        updated_date=utc_now_iso(),
    )


def validate_migration(items: list[WorkItem]) -> MigrationValidation:
    """Cross-check migrated items for self-consistent state and metadata."""
    result = MigrationValidation()

    for item in items:
        has_state = bool(item.state)
        has_metadata = item.state_metadata is not None
        metadata_valid = True
        compatible = bool(item.status) and has_state and is_backward_compatible(item.status, item.state)

        if not has_state:
            result.errors.append(ValidationIssue("state", "Missing state field", "error", item.id))
        if not has_metadata:
            result.errors.append(ValidationIssue("state_metadata", "Missing state metadata", "error", item.id))
        else:
            check = validate_state_metadata(item.state_metadata)
            metadata_valid = check.valid
            for issue in check.errors + check.warnings:
                issue.item_id = item.id
            result.errors.extend(check.errors)
            result.warnings.extend(check.warnings)

        if not item.status:
            result.warnings.append(ValidationIssue(
                "status", "Legacy status field missing (backward compatibility affected)", "warning", item.id,
            ))
        elif has_state and not compatible:
            result.warnings.append(ValidationIssue(
                "status",
                f"Legacy status '{item.status}' contradicts state '{item.state}'",
                "warning",
                item.id,
            ))

        result.details.append(ItemValidationDetail(
            item_id=item.id,
            has_state=has_state,
            has_metadata=has_metadata,
            metadata_valid=metadata_valid,
            backward_compatible=compatible,
        ))

    return result


def save_migration_log(path: Path, migration_log: list[MigrationLogEntry], migrated_by: str) -> None:
    """Write a migration log as JSON (input for a later rollback)."""
    data = {
        "migrated_by": migrated_by,
        "created_at": utc_now_iso(),
        "entries": [entry.to_dict() for entry in migration_log],
    }
    validate(data, "migration_log")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2))


def merge_migration_logs(
    previous: list[MigrationLogEntry],
    current: list[MigrationLogEntry],
) -> list[MigrationLogEntry]:
    """Append a run's entries to an earlier log so both batches stay reversible.

    Items the earlier log already migrated show up as skipped in later runs;
    those skips are dropped so the rollback plan keeps one entry per item.
    """
    migrated = {e.item_id for e in previous if e.success and not e.skipped}
    return list(previous) + [e for e in current if not (e.skipped and e.item_id in migrated)]


def load_migration_log(path: Path) -> list[MigrationLogEntry]:
    """Load and validate a migration log written by save_migration_log().

    Raises:
        SchemaValidationError: If the file is missing, not JSON, or malformed
    """
    data = validate_file(path, "migration_log")
    return [MigrationLogEntry(**entry) for entry in data["entries"]]
