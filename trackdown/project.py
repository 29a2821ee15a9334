"""Wiring of config, store, cache and resolver for one project."""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from trackdown.graph.cache import HierarchyCache
from trackdown.graph.relationships import RelationshipResolver
from trackdown.lib.config import (
    ProjectConfig,
    TrackdownPaths,
    find_project_root,
    load_project_config,
    resolve_paths,
)
from trackdown.store.frontmatter import DocumentStore

MIGRATION_LOG_NAME = "migration-log.json"


@dataclass
class Project:
    config: ProjectConfig
    paths: TrackdownPaths
    store: DocumentStore
    cache: HierarchyCache
    resolver: RelationshipResolver

    @property
    def migration_log_path(self) -> Path:
        return self.paths.config_dir / MIGRATION_LOG_NAME


def open_project(start: Optional[Path] = None, tasks_dir: Optional[str] = None) -> Project:
    """Load config and build the cache/resolver stack for the enclosing project.

    Raises:
        ConfigError: If config.yaml exists but can't be read
    """
    root = find_project_root(start)
    config = load_project_config(root)
    paths = resolve_paths(config, root, tasks_dir)
    store = DocumentStore(config.prefixes)
    cache = HierarchyCache(store, paths, ttl=config.cache_ttl)
    return Project(config, paths, store, cache, RelationshipResolver(cache))
