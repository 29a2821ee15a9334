"""Shared constants for trackdown."""

import re

# Default ID prefixes per item kind (overridable in config.yaml)
DEFAULT_PREFIXES = {
    "epic": "EP",
    "issue": "ISS",
    "task": "TSK",
    "pr": "PR",
}

ID_PATTERN = re.compile(r'^[A-Z][A-Z0-9]*-\d+$')

# Default directory names under the tasks root
DEFAULT_TASKS_DIRECTORY = "tasks"
DEFAULT_STRUCTURE = {
    "epics_dir": "epics",
    "issues_dir": "issues",
    "tasks_dir": "tasks",
    "prs_dir": "prs",
    "templates_dir": "templates",
}

CONFIG_DIR_NAME = ".ai-trackdown"
CONFIG_FILE_NAME = "config.yaml"

# Hierarchy cache time-to-live, seconds
CACHE_TTL_SECONDS = 300.0

DOCUMENT_SUFFIX = ".md"
