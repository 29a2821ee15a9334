"""Relationship graph over work items: cache, resolver and cycle detection."""

from trackdown.graph.cache import CacheStats, HierarchyCache
from trackdown.graph.cycles import find_cycles
from trackdown.graph.relationships import (
    RelatedItems,
    RelationshipResolver,
    SearchFilters,
    SearchResult,
)

__all__ = [
    "CacheStats",
    "HierarchyCache",
    "find_cycles",
    "RelatedItems",
    "RelationshipResolver",
    "SearchFilters",
    "SearchResult",
]
