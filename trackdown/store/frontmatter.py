"""
Markdown + YAML frontmatter document store.

Every work item is one markdown file:

    ---
    issue_id: ISS-0001
    title: Fix login
    status: active
    ...
    ---
    Body text

The store only reads, writes and moves files. It never decides what the
content should be; the graph and workflow modules compute new items and hand
them back here for persistence.
"""

import logging
from datetime import date
from pathlib import Path
from typing import Iterable, Optional

import yaml

from trackdown.lib.constants import DOCUMENT_SUFFIX
from trackdown.lib.validate import validate_before_write
from trackdown.models import (
    ItemKind,
    WorkItem,
    is_valid_item_id,
    parse_kind,
    scalar_to_str,
    utc_now_iso,
)

logger = logging.getLogger(__name__)

FRONTMATTER_DELIMITER = "---"


class DocumentParseError(Exception):
    """A document could not be parsed into a work item."""

    def __init__(self, path: Path, message: str):
        self.path = path
        super().__init__(f"{path}: {message}")


def split_frontmatter(text: str) -> tuple[dict, str]:
    """Split a document into (frontmatter dict, body).

    Raises:
        ValueError: If frontmatter is missing, unterminated or not a mapping
    """
    lines = text.splitlines(keepends=True)
    if not lines or lines[0].strip() != FRONTMATTER_DELIMITER:
        raise ValueError("missing frontmatter delimiter")

    for i in range(1, len(lines)):
        if lines[i].strip() == FRONTMATTER_DELIMITER:
            header = "".join(lines[1:i])
            body = "".join(lines[i + 1:])
            break
    else:
        raise ValueError("unterminated frontmatter")

    try:
        data = yaml.safe_load(header) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"invalid YAML frontmatter: {e}") from None
    if not isinstance(data, dict):
        raise ValueError("frontmatter is not a mapping")
    return data, body.lstrip("\n")


def render_document(frontmatter: dict, body: str) -> str:
    """Serialize frontmatter and body back into document text."""
    header = yaml.safe_dump(frontmatter, sort_keys=False, allow_unicode=True)
    body = body or ""
    if body and not body.endswith("\n"):
        body += "\n"
    return f"{FRONTMATTER_DELIMITER}\n{header}{FRONTMATTER_DELIMITER}\n\n{body}"


def _normalize_timestamps(data: dict) -> dict:
    """Turn YAML-parsed dates back into strings so the schema sees what the file holds."""
    for key, value in data.items():
        if isinstance(value, date):
            data[key] = scalar_to_str(value)
        elif isinstance(value, dict):
            _normalize_timestamps(value)
    return data


def _guess_kind(data: dict) -> ItemKind:
    """Infer kind for files read without a known directory (most specific ID wins)."""
    for kind in (ItemKind.PR, ItemKind.TASK, ItemKind.ISSUE, ItemKind.EPIC):
        if data.get(kind.id_field):
            return kind
    raise ValueError("no item ID field in frontmatter")


class DocumentStore:
    """Reads and writes work item documents on the local filesystem.

    Args:
        prefixes: Configured ID prefix per kind value (defaults to EP/ISS/TSK/PR)
    """

    def __init__(self, prefixes: Optional[dict] = None):
        self.prefixes = dict(prefixes or {})

    def parse_file(self, path: Path, kind: "ItemKind | str | None" = None) -> WorkItem:
        """Parse one document.

        Args:
            path: Markdown file
            kind: Expected kind; inferred from ID fields when None

        Raises:
            DocumentParseError: If the file can't be read or parsed
        """
        path = Path(path)
        try:
            text = path.read_text()
        except OSError as e:
            raise DocumentParseError(path, f"unreadable: {e}") from e

        try:
            data, body = split_frontmatter(text)
            item_kind = parse_kind(kind) if kind is not None else _guess_kind(data)
            item = WorkItem.from_frontmatter(item_kind, data, content=body, file_path=path)
        except ValueError as e:
            raise DocumentParseError(path, str(e)) from None

        if not is_valid_item_id(item.id):
            logger.warning(f"[STORE] {path.name}: unusual item ID '{item.id}'")
        elif not item.id.startswith(f"{self.expected_prefix(item.kind)}-"):
            logger.warning(
                f"[STORE] {path.name}: {item.kind.value} ID '{item.id}' does not use "
                f"prefix '{self.expected_prefix(item.kind)}'"
            )
        return item

    def expected_prefix(self, kind: ItemKind) -> str:
        return self.prefixes.get(kind.value) or kind.prefix

    def parse_directory(self, path: Path, kind: "ItemKind | str") -> list[WorkItem]:
        """Parse every document of `kind` under `path` (recursively).

        Malformed documents are skipped with a warning. A missing directory
        yields an empty list.
        """
        path = Path(path)
        if not path.is_dir():
            return []

        items = []
        for file_path in sorted(path.rglob(f"*{DOCUMENT_SUFFIX}")):
            try:
                items.append(self.parse_file(file_path, kind))
            except DocumentParseError as e:
                logger.warning(f"[STORE] Skipping malformed document: {e}")
        return items

    def write_file(self, path: Path, frontmatter: dict, body: str = "") -> None:
        """Write a full document, validating frontmatter first.

        Raises:
            SchemaValidationError: If frontmatter doesn't match the work_item schema
        """
        path = Path(path)
        validate_before_write(frontmatter, "work_item", path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(render_document(frontmatter, body))
        logger.debug(f"[STORE] Wrote {path}")

    def write_item(self, item: WorkItem, path: Optional[Path] = None) -> WorkItem:
        """Write `item` to `path` (defaults to item.file_path). Returns the item as written."""
        target = Path(path or item.file_path)
        self.write_file(target, item.to_frontmatter(), item.content)
        return item.copy(file_path=target)

    def update_file(
        self,
        path: Path,
        fields: dict,
        remove: Iterable[str] = (),
    ) -> WorkItem:
        """Merge `fields` into a persisted document and refresh updated_date.

        Args:
            path: Existing document
            fields: Frontmatter keys to set
            remove: Frontmatter keys to delete

        Returns:
            The item as written

        Raises:
            DocumentParseError: If the existing document can't be parsed
            SchemaValidationError: If the merged frontmatter is invalid
        """
        path = Path(path)
        try:
            data, body = split_frontmatter(path.read_text())
        except (OSError, ValueError) as e:
            raise DocumentParseError(path, str(e)) from None

        _normalize_timestamps(data)
        for key in remove:
            data.pop(key, None)
        data.update(fields)
        data["updated_date"] = utc_now_iso()

        self.write_file(path, data, body)
        try:
            return WorkItem.from_frontmatter(_guess_kind(data), data, content=body, file_path=path)
        except ValueError as e:
            raise DocumentParseError(path, str(e)) from None

    def move_file(self, source: Path, target: Path) -> Path:
        """Move a document, creating the target directory.

        Raises:
            FileExistsError: If the target already exists
        """
        source, target = Path(source), Path(target)
        if source.resolve() == target.resolve():
            return target
        if target.exists():
            raise FileExistsError(f"Target file already exists: {target}")
        target.parent.mkdir(parents=True, exist_ok=True)
        source.rename(target)
        logger.info(f"[STORE] Moved {source} -> {target}")
        return target
