#!/usr/bin/env python3
"""trackdown CLI entrypoint."""

import sys
import logging
import argparse
from pathlib import Path

from trackdown import __version__
from trackdown.lib.config import ConfigError, write_default_config
from trackdown.lib.constants import CONFIG_DIR_NAME
from trackdown.project import Project, open_project
from trackdown.commands import migrate as cmd_migrate_module
from trackdown.commands import pr as cmd_pr_module
from trackdown.commands import search as cmd_search_module
from trackdown.commands import show as cmd_show_module
from trackdown.commands import state as cmd_state_module
from trackdown.commands import validate as cmd_validate_module
from trackdown.workflow.pr_states import PR_STATES
from trackdown.workflow.states import STATES


def setup_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def get_project(args) -> Project:
    """Open the project enclosing the working directory, or exit 2."""
    try:
        return open_project(Path.cwd(), args.tasks_dir)
    except ConfigError as e:
        print(f"ERROR: {e}")
        sys.exit(2)


def cmd_init(args):
    root = Path.cwd().resolve()
    if (root / CONFIG_DIR_NAME).is_dir() and not args.force:
        print(f"ERROR: {root / CONFIG_DIR_NAME} already exists (use --force to overwrite config)")
        return 1

    config_path = write_default_config(root, args.name)
    project = get_project(args)
    for directory in (project.paths.epics_dir, project.paths.issues_dir, project.paths.tasks_dir,
                      project.paths.prs_dir, project.paths.templates_dir):
        directory.mkdir(parents=True, exist_ok=True)
    print(f"Initialized trackdown project at {root}")
    print(f"Config: {config_path}")
    return 0


def cmd_validate(args):
    return cmd_validate_module.cmd_validate(args, get_project(args))


def cmd_show(args):
    return cmd_show_module.cmd_show(args, get_project(args))


def cmd_overview(args):
    return cmd_show_module.cmd_overview(args, get_project(args))


def cmd_search(args):
    return cmd_search_module.cmd_search(args, get_project(args))


def cmd_state_show(args):
    return cmd_state_module.cmd_state_show(args, get_project(args))


def cmd_state_set(args):
    return cmd_state_module.cmd_state_set(args, get_project(args))


def cmd_migrate(args):
    return cmd_migrate_module.cmd_migrate(args, get_project(args))


def cmd_migrate_status(args):
    return cmd_migrate_module.cmd_migrate_status(args, get_project(args))


def cmd_migrate_validate(args):
    return cmd_migrate_module.cmd_migrate_validate(args, get_project(args))


def cmd_migrate_rollback(args):
    return cmd_migrate_module.cmd_migrate_rollback(args, get_project(args))


def cmd_pr_show(args):
    return cmd_pr_module.cmd_pr_show(args, get_project(args))


def cmd_pr_status(args):
    return cmd_pr_module.cmd_pr_status(args, get_project(args))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='trackdown', description='Hierarchical work tracking in markdown')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument('--tasks-dir', help='Tasks root (overrides config and environment)')
    parser.add_argument('--verbose', '-v', action='count', default=0, help='-v for info, -vv for debug logging')
    subparsers = parser.add_subparsers(dest='command', required=True)

    # trackdown init
    p_init = subparsers.add_parser('init', help='Create .ai-trackdown/config.yaml and task directories')
    p_init.add_argument('--name', help='Project name (defaults to directory name)')
    p_init.add_argument('--force', action='store_true', help='Overwrite an existing config')
    p_init.set_defaults(func=cmd_init)

    # trackdown validate
    p_validate = subparsers.add_parser('validate', help='Check relationships, cycles and PR locations')
    p_validate.add_argument('--quiet', '-q', action='store_true', help='Only print errors')
    p_validate.set_defaults(func=cmd_validate)

    # trackdown show
    p_show = subparsers.add_parser('show', help='Show an item with its hierarchy')
    p_show.add_argument('id', help='Item ID (e.g., ISS-0001)')
    p_show.set_defaults(func=cmd_show)

    # trackdown overview
    p_overview = subparsers.add_parser('overview', help='Project totals and completion')
    p_overview.set_defaults(func=cmd_overview)

    # trackdown search
    p_search = subparsers.add_parser('search', help='Filter items across all kinds')
    p_search.add_argument('text', nargs='?', help='Free text over title, description and body')
    p_search.add_argument('--kind', '-k', action='append', choices=['epic', 'issue', 'task', 'pr'])
    p_search.add_argument('--status', action='append', help='Legacy status (repeatable)')
    p_search.add_argument('--state', '-s', action='append', choices=STATES, help='Effective state (repeatable)')
    p_search.add_argument('--priority', '-p', action='append')
    p_search.add_argument('--assignee', '-a', action='append')
    p_search.add_argument('--tag', '-t', action='append', help='Match any of the given tags')
    p_search.add_argument('--created-after')
    p_search.add_argument('--created-before')
    p_search.add_argument('--updated-after')
    p_search.add_argument('--updated-before')
    p_search.set_defaults(func=cmd_search)

    # trackdown state
    p_state = subparsers.add_parser('state', help='Show or change unified state')
    state_sub = p_state.add_subparsers(dest='state_cmd', required=True)

    # trackdown state show
    p_state_show = state_sub.add_parser('show', help='Show state and allowed transitions')
    p_state_show.add_argument('id', help='Item ID')
    p_state_show.set_defaults(func=cmd_state_show)

    # trackdown state set
    p_state_set = state_sub.add_parser('set', help='Transition an item to a new state')
    p_state_set.add_argument('id', help='Item ID')
    p_state_set.add_argument('state', help='Target state')
    p_state_set.add_argument('--actor', help='Who is making the change (defaults to current user)')
    p_state_set.add_argument('--reason', '-r', help='Reason for the transition')
    p_state_set.add_argument('--reviewer', help='Reviewer who signed off')
    p_state_set.add_argument('--automation-source', help='Automation performing the change')
    p_state_set.set_defaults(func=cmd_state_set)

    # trackdown migrate
    p_migrate = subparsers.add_parser('migrate', help='Migrate legacy status to unified state')
    p_migrate.add_argument('--dry-run', action='store_true', help='Preview without writing')
    p_migrate.add_argument('--actor', help='Recorded as transitioned_by')
    p_migrate.set_defaults(func=cmd_migrate)
    migrate_sub = p_migrate.add_subparsers(dest='migrate_cmd')

    # trackdown migrate status
    p_migrate_status = migrate_sub.add_parser('status', help='Count items still on legacy status')
    p_migrate_status.set_defaults(func=cmd_migrate_status)

    # trackdown migrate validate
    p_migrate_validate = migrate_sub.add_parser('validate', help='Check migrated items')
    p_migrate_validate.set_defaults(func=cmd_migrate_validate)

    # trackdown migrate rollback
    p_migrate_rollback = migrate_sub.add_parser('rollback', help='Undo every logged migration run')
    p_migrate_rollback.add_argument('--dry-run', action='store_true', help='Show the plan only')
    p_migrate_rollback.set_defaults(func=cmd_migrate_rollback)

    # trackdown pr
    p_pr = subparsers.add_parser('pr', help='Pull request review status')
    pr_sub = p_pr.add_subparsers(dest='pr_cmd', required=True)

    # trackdown pr show
    p_pr_show = pr_sub.add_parser('show', help='Show PR status and next step')
    p_pr_show.add_argument('id', help='PR ID')
    p_pr_show.set_defaults(func=cmd_pr_show)

    # trackdown pr status
    p_pr_status = pr_sub.add_parser('status', help='Change PR status and move its file')
    p_pr_status.add_argument('id', help='PR ID')
    p_pr_status.add_argument('status', choices=PR_STATES, help='Target status')
    p_pr_status.add_argument('--required-approvals', type=int, help='Approvals needed (default: one per reviewer)')
    p_pr_status.add_argument('--force', action='store_true', help='Skip approval and blocking checks')
    p_pr_status.set_defaults(func=cmd_pr_status)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)
    return args.func(args)


if __name__ == '__main__':
    sys.exit(main())
