"""In-memory hierarchy cache.

Materializes every document into four ID-keyed maps, one per kind. The cache
is always rebuilt wholesale: there is no incremental update, so a reader can
never observe a half-applied change. Freshness is time based (TTL); callers
that write documents must call rebuild() afterwards.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Iterator, Optional

from trackdown.lib.config import TrackdownPaths
from trackdown.lib.constants import CACHE_TTL_SECONDS
from trackdown.models import ItemKind, WorkItem
from trackdown.store.frontmatter import DocumentStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheStats:
    epics: int
    issues: int
    tasks: int
    prs: int
    last_rebuild: Optional[float]
    is_stale: bool


class HierarchyCache:
    """Four kind-keyed maps of work items loaded from a DocumentStore.

    Args:
        store: Document store used to load items
        paths: Project directories
        ttl: Seconds after which the cache is considered stale
        clock: Monotonic time source (injectable for tests)
    """

    def __init__(
        self,
        store: DocumentStore,
        paths: TrackdownPaths,
        ttl: float = CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.paths = paths
        self.ttl = ttl
        self.clock = clock
        self._maps: dict[ItemKind, dict[str, WorkItem]] = {kind: {} for kind in ItemKind}
        self._last_rebuild: Optional[float] = None

    def rebuild(self) -> None:
        """Clear all maps and reload every document."""
        maps: dict[ItemKind, dict[str, WorkItem]] = {kind: {} for kind in ItemKind}
        for kind in ItemKind:
            for item in self.store.parse_directory(self.paths.dir_for(kind.value), kind):
                if item.id in maps[kind]:
                    logger.warning(
                        f"[CACHE] Duplicate {kind.value} ID {item.id}: "
                        f"{maps[kind][item.id].file_path} replaced by {item.file_path}"
                    )
                maps[kind][item.id] = item

        self._maps = maps
        self._last_rebuild = self.clock()
        logger.debug(
            "[CACHE] Rebuilt: " + ", ".join(f"{len(m)} {k.value}" for k, m in maps.items())
        )

    def invalidate(self) -> None:
        """Mark the cache stale so the next ensure_fresh() reloads."""
        self._last_rebuild = None

    def is_stale(self) -> bool:
        if self._last_rebuild is None:
            return True
        return self.clock() - self._last_rebuild > self.ttl

    def ensure_fresh(self) -> None:
        """Rebuild if never built or older than the TTL."""
        if self.is_stale():
            self.rebuild()

    def get(self, kind: ItemKind, item_id: str) -> Optional[WorkItem]:
        return self._maps[kind].get(item_id)

    def all(self, kind: ItemKind) -> list[WorkItem]:
        return list(self._maps[kind].values())

    def find(self, item_id: str) -> Optional[WorkItem]:
        """Look up an ID across all kinds (epics first)."""
        for kind in ItemKind:
            item = self._maps[kind].get(item_id)
            if item is not None:
                return item
        return None

    def all_items(self) -> Iterator[WorkItem]:
        for kind in ItemKind:
            yield from self._maps[kind].values()

    def stats(self) -> CacheStats:
        return CacheStats(
            epics=len(self._maps[ItemKind.EPIC]),
            issues=len(self._maps[ItemKind.ISSUE]),
            tasks=len(self._maps[ItemKind.TASK]),
            prs=len(self._maps[ItemKind.PR]),
            last_rebuild=self._last_rebuild,
            is_stale=self.is_stale(),
        )
