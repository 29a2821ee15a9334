"""
Configuration loader for trackdown.

Loads project configuration from .ai-trackdown/config.yaml. If no config file
exists, returns defaults matching the standard layout:

    <project>/
      .ai-trackdown/config.yaml
      tasks/
        epics/  issues/  tasks/  prs/  templates/

The tasks root can be overridden, in increasing priority, by `tasks_directory`
in config.yaml, the AITRACKDOWN_TASKS_DIR / AITRACKDOWN_ROOT_DIR environment
variables, and an explicit override from the CLI (--tasks-dir).
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from trackdown.lib.constants import (
    CACHE_TTL_SECONDS,
    CONFIG_DIR_NAME,
    CONFIG_FILE_NAME,
    DEFAULT_PREFIXES,
    DEFAULT_STRUCTURE,
    DEFAULT_TASKS_DIRECTORY,
)

logger = logging.getLogger(__name__)

TASKS_DIR_ENV_VARS = ("AITRACKDOWN_TASKS_DIR", "AITRACKDOWN_ROOT_DIR")


class ConfigError(Exception):
    """Configuration file could not be read or is malformed."""


@dataclass
class ProjectConfig:
    """Project configuration from .ai-trackdown/config.yaml"""
    name: str
    tasks_directory: str = DEFAULT_TASKS_DIRECTORY
    structure: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_STRUCTURE))
    prefixes: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_PREFIXES))
    cache_ttl: float = CACHE_TTL_SECONDS
    default_assignee: str = ""


@dataclass(frozen=True)
class TrackdownPaths:
    """Absolute directories for one project."""
    project_root: Path
    config_dir: Path
    tasks_root: Path
    epics_dir: Path
    issues_dir: Path
    tasks_dir: Path
    prs_dir: Path
    templates_dir: Path

    def dir_for(self, kind: str) -> Path:
        """Directory holding documents of `kind` ('epic', 'issue', 'task', 'pr')."""
        dirs = {
            "epic": self.epics_dir,
            "issue": self.issues_dir,
            "task": self.tasks_dir,
            "pr": self.prs_dir,
        }
        if kind not in dirs:
            raise ValueError(f"Unknown item kind: {kind}")
        return dirs[kind]


def find_project_root(start: Optional[Path] = None) -> Path:
    """Walk up from `start` looking for a .ai-trackdown directory.

    Returns `start` itself if no marker directory is found.
    """
    start = (start or Path.cwd()).resolve()
    for candidate in (start, *start.parents):
        if (candidate / CONFIG_DIR_NAME).is_dir():
            return candidate
    return start


def _clean_dir(value: str) -> str:
    return str(value).strip().strip("/")


def load_project_config(project_root: Path) -> ProjectConfig:
    """Load config.yaml and return ProjectConfig.

    Missing file yields defaults. Unknown keys are ignored.

    Raises:
        ConfigError: If the file exists but is not valid YAML or not a mapping
    """
    config_path = project_root / CONFIG_DIR_NAME / CONFIG_FILE_NAME
    if not config_path.exists():
        logger.debug(f"No config at {config_path}, using defaults")
        return ProjectConfig(name=project_root.name)

    try:
        data = yaml.safe_load(config_path.read_text()) or {}
    except (yaml.YAMLError, OSError) as e:
        raise ConfigError(f"Failed to read {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"{config_path}: expected a mapping at top level")

    structure = dict(DEFAULT_STRUCTURE)
    for key, value in (data.get("structure") or {}).items():
        if key in structure and value:
            structure[key] = _clean_dir(value)

    prefixes = dict(DEFAULT_PREFIXES)
    for key, value in (data.get("naming_conventions") or {}).items():
        kind = key.removesuffix("_prefix")
        if key.endswith("_prefix") and kind in prefixes and value:
            prefixes[kind] = str(value)

    cache_ttl = CACHE_TTL_SECONDS
    if "cache_ttl" in data:
        try:
            cache_ttl = float(data["cache_ttl"])
        except (TypeError, ValueError):
            logger.warning(f"Invalid cache_ttl '{data['cache_ttl']}', using {CACHE_TTL_SECONDS}")

    return ProjectConfig(
        name=str(data.get("name") or project_root.name),
        tasks_directory=_clean_dir(data.get("tasks_directory") or DEFAULT_TASKS_DIRECTORY),
        structure=structure,
        prefixes=prefixes,
        cache_ttl=cache_ttl,
        default_assignee=str(data.get("default_assignee") or ""),
    )


def resolve_tasks_root(config: ProjectConfig, cli_tasks_dir: Optional[str] = None) -> str:
    """Pick the tasks root: CLI override > environment > config > default."""
    if cli_tasks_dir:
        return cli_tasks_dir
    for var in TASKS_DIR_ENV_VARS:
        value = os.environ.get(var)
        if value:
            return value
    return config.tasks_directory or DEFAULT_TASKS_DIRECTORY


def resolve_paths(
    config: ProjectConfig,
    project_root: Path,
    cli_tasks_dir: Optional[str] = None,
) -> TrackdownPaths:
    """Compute absolute directories for a project."""
    tasks_root = project_root / resolve_tasks_root(config, cli_tasks_dir)
    s = config.structure
    return TrackdownPaths(
        project_root=project_root,
        config_dir=project_root / CONFIG_DIR_NAME,
        tasks_root=tasks_root,
        epics_dir=tasks_root / s["epics_dir"],
        issues_dir=tasks_root / s["issues_dir"],
        tasks_dir=tasks_root / s["tasks_dir"],
        prs_dir=tasks_root / s["prs_dir"],
        templates_dir=tasks_root / s["templates_dir"],
    )


def write_default_config(project_root: Path, name: Optional[str] = None) -> Path:
    """Write a default config.yaml (used by `trackdown init`). Returns its path."""
    config_dir = project_root / CONFIG_DIR_NAME
    config_dir.mkdir(parents=True, exist_ok=True)
    config_path = config_dir / CONFIG_FILE_NAME
    data = {
        "name": name or project_root.name,
        "tasks_directory": DEFAULT_TASKS_DIRECTORY,
        "structure": dict(DEFAULT_STRUCTURE),
        "naming_conventions": {f"{k}_prefix": v for k, v in DEFAULT_PREFIXES.items()},
    }
    config_path.write_text(yaml.safe_dump(data, sort_keys=False))
    return config_path
