"""
trackdown validate - Check referential integrity, cycles and PR locations.
"""

from trackdown.project import Project


def cmd_validate(args, project: Project) -> int:
    """Run relationship validation. Exit 1 if any error was found."""
    result = project.resolver.validate_relationships()

    for issue in result.errors:
        print(f"ERROR   {issue.item_id or '-':<10} {issue.message}")
    if not args.quiet:
        for issue in result.warnings:
            print(f"WARNING {issue.item_id or '-':<10} {issue.message}")

    stats = project.cache.stats()
    total = stats.epics + stats.issues + stats.tasks + stats.prs
    print()
    print(f"Checked {total} items: {len(result.errors)} errors, {len(result.warnings)} warnings")
    return 0 if result.valid else 1
