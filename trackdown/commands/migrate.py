"""
trackdown migrate - Convert legacy status fields to unified state.

Subcommands:
    migrate            Migrate every item (--dry-run previews)
    migrate status     Count items still on legacy status
    migrate validate   Check migrated items for consistency
    migrate rollback   Undo every logged migration run using the saved log
"""

import logging

from trackdown.commands.state import default_actor
from trackdown.lib.validate import SchemaValidationError
from trackdown.project import Project
from trackdown.store.frontmatter import DocumentParseError
from trackdown.workflow.migration import (
    ACTION_NO_ACTION,
    ACTION_REMOVE_STATE_FIELDS,
    create_rollback_plan,
    load_migration_log,
    merge_migration_logs,
    migrate_items,
    preview_migration,
    rollback_item,
    save_migration_log,
    validate_migration,
)

logger = logging.getLogger(__name__)


def cmd_migrate(args, project: Project) -> int:
    """Migrate all items and persist them. Exit 1 if any item failed."""
    project.cache.ensure_fresh()
    items = list(project.cache.all_items())

    if args.dry_run:
        preview = preview_migration(items)
        for entry in preview.entries:
            if entry.needs_migration:
                print(f"  {entry.item_id:<10} {entry.current_status or '(none)':<12} -> {entry.target_state}")
        print(f"\n{preview.needs_migration} of {preview.total_items} items need migration "
              f"({preview.already_migrated} already migrated)")
        return 0

    previous_log = []
    if project.migration_log_path.exists():
        try:
            previous_log = load_migration_log(project.migration_log_path)
        except SchemaValidationError as e:
            print(f"ERROR: {e}")
            return 1

    actor = args.actor or default_actor(project)
    report = migrate_items(items, actor)
    by_id = {item.id: item for item in report.items}

    # Persist; a write failure turns that entry into a failure
    for entry in report.migration_log:
        if not entry.success or entry.skipped:
            continue
        item = by_id[entry.item_id]
        try:
            project.store.update_file(item.file_path, {
                "state": item.state,
                "state_metadata": item.state_metadata.to_dict(),
            })
        except (DocumentParseError, SchemaValidationError, OSError) as e:
            logger.warning(f"[MIGRATE] Failed to write {entry.item_id}: {e}")
            entry.success = False
            entry.error = str(e)
            report.migrated_count -= 1
            report.failed_count += 1
            report.errors.append(f"{entry.item_id}: {e}")

    if report.migrated_count or report.failed_count:
        save_migration_log(
            project.migration_log_path,
            merge_migration_logs(previous_log, report.migration_log),
            actor,
        )
    project.cache.rebuild()

    print(f"Migrated: {report.migrated_count}")
    print(f"Skipped:  {report.skipped_count}")
    print(f"Failed:   {report.failed_count}")
    for error in report.errors:
        print(f"  ERROR: {error}")
    if report.migrated_count:
        print(f"\nLog written to {project.migration_log_path}")
    return 0 if report.success else 1


def cmd_migrate_status(args, project: Project) -> int:
    project.cache.ensure_fresh()
    preview = preview_migration(list(project.cache.all_items()))
    print(f"Total items:       {preview.total_items}")
    print(f"Needs migration:   {preview.needs_migration}")
    print(f"Already migrated:  {preview.already_migrated}")
    print(f"Migration log:     {'present' if project.migration_log_path.exists() else 'none'}")
    return 0


def cmd_migrate_validate(args, project: Project) -> int:
    project.cache.ensure_fresh()
    items = [item for item in project.cache.all_items() if item.state]
    result = validate_migration(items)

    for issue in result.errors:
        print(f"ERROR   {issue.item_id:<10} {issue.message}")
    for issue in result.warnings:
        print(f"WARNING {issue.item_id:<10} {issue.message}")
    print(f"\n{len(items)} migrated items: {len(result.errors)} errors, {len(result.warnings)} warnings")
    return 0 if result.valid else 1


def cmd_migrate_rollback(args, project: Project) -> int:
    """Remove state fields written by every logged migration run."""
    log_path = project.migration_log_path
    if not log_path.exists():
        print(f"ERROR: No migration log at {log_path}")
        return 1

    try:
        entries = load_migration_log(log_path)
    except SchemaValidationError as e:
        print(f"ERROR: {e}")
        return 1

    plan = create_rollback_plan(entries)
    summary = plan.summary
    print(f"Rollback plan: {summary[ACTION_REMOVE_STATE_FIELDS]} to revert, "
          f"{summary[ACTION_NO_ACTION]} unchanged")
    if args.dry_run:
        for op in plan.operations:
            if op.action == ACTION_REMOVE_STATE_FIELDS:
                print(f"  {op.item_id:<10} -> status {op.original_status}")
        return 0

    project.cache.ensure_fresh()
    failed = 0
    for op in plan.operations:
        if op.action != ACTION_REMOVE_STATE_FIELDS:
            continue
        item = project.cache.find(op.item_id)
        if item is None:
            print(f"  WARNING: {op.item_id} no longer exists")
            failed += 1
            continue
        try:
            project.store.write_item(rollback_item(item, op))
        except (SchemaValidationError, OSError) as e:
            print(f"  ERROR: {op.item_id}: {e}")
            failed += 1

    project.cache.rebuild()
    if failed == 0:
        log_path.unlink()
    print(f"Rolled back {summary[ACTION_REMOVE_STATE_FIELDS] - failed} items")
    return 0 if failed == 0 else 1
