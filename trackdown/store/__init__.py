"""Document storage for trackdown work items."""

from trackdown.store.frontmatter import (
    DocumentParseError,
    DocumentStore,
    render_document,
    split_frontmatter,
)

__all__ = [
    "DocumentParseError",
    "DocumentStore",
    "render_document",
    "split_frontmatter",
]
