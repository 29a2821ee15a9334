"""
Data models for work items.

Every document on disk is one of four kinds. The kind is carried explicitly
on the item rather than inferred from which ID fields happen to be present,
so an Issue without an epic_id can never be mistaken for an Epic.

Frontmatter convention: an item stores its own ID under `<kind>_id`
(an Epic's own ID lives in `epic_id`), and child kinds reference parents via
`epic_id` / `issue_id`.
"""

from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from trackdown.lib.constants import DEFAULT_PREFIXES, ID_PATTERN


class ItemKind(Enum):
    """Work item kinds, ordered top-down through the hierarchy."""

    EPIC = "epic"
    ISSUE = "issue"
    TASK = "task"
    PR = "pr"

    @property
    def id_field(self) -> str:
        """Frontmatter key holding an item's own ID."""
        return f"{self.value}_id"

    @property
    def prefix(self) -> str:
        return DEFAULT_PREFIXES[self.value]


def parse_kind(value: "str | ItemKind") -> ItemKind:
    """Parse a kind string ('epic', 'issue', 'task', 'pr').

    Raises:
        ValueError: If the kind is unknown
    """
    if isinstance(value, ItemKind):
        return value
    try:
        return ItemKind(value.lower())
    except ValueError:
        raise ValueError(f"Unknown item kind: {value}") from None


def is_valid_item_id(item_id: str) -> bool:
    return bool(ID_PATTERN.match(item_id or ""))


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string with a Z suffix."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


def scalar_to_str(value: Any) -> str:
    """Normalize YAML scalars; safe_load turns unquoted timestamps into datetimes."""
    if value is None:
        return ""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
            return value.isoformat() + "Z"
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def _as_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        return [str(v) for v in value if v is not None and str(v) != ""]
    if value == "":
        return []
    return [str(value)]


def _as_str(value: Any) -> Optional[str]:
    """Scalar field as a string; hand-edited YAML may hold ints or booleans."""
    return scalar_to_str(value) or None


@dataclass
class StateMetadata:
    """Audit trail attached to the most recent unified-state transition."""
    transitioned_at: str = ""
    transitioned_by: str = ""
    previous_state: Optional[str] = None
    automation_eligible: bool = False
    transition_reason: Optional[str] = None
    automation_source: Optional[str] = None
    reviewer: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "StateMetadata":
        return cls(
            transitioned_at=scalar_to_str(data.get("transitioned_at")),
            transitioned_by=scalar_to_str(data.get("transitioned_by")),
            previous_state=_as_str(data.get("previous_state")),
            automation_eligible=bool(data.get("automation_eligible", False)),
            transition_reason=data.get("transition_reason"),
            automation_source=data.get("automation_source"),
            reviewer=data.get("reviewer"),
        )

    def to_dict(self) -> dict:
        """Serialize, dropping unset optional fields."""
        data: dict[str, Any] = {
            "transitioned_at": self.transitioned_at,
            "transitioned_by": self.transitioned_by,
            "automation_eligible": self.automation_eligible,
        }
        for name in ("previous_state", "transition_reason", "automation_source", "reviewer"):
            value = getattr(self, name)
            if value is not None:
                data[name] = value
        return data


# Frontmatter keys mapped onto WorkItem attributes (everything else goes to extra)
_LIST_FIELDS = ("dependencies", "blocked_by", "blocks", "tags", "reviewers", "approvals")
_SCALAR_FIELDS = ("title", "description", "status", "priority", "assignee")


@dataclass
class WorkItem:
    """A single Epic, Issue, Task or Pull Request."""
    kind: ItemKind
    id: str
    title: str = ""
    description: str = ""
    status: Optional[str] = None               # Legacy lifecycle field
    priority: str = "medium"
    assignee: str = ""
    created_date: str = ""
    updated_date: str = ""
    epic_id: Optional[str] = None              # Parent epic (issue, task, pr)
    issue_id: Optional[str] = None             # Parent issue (task, pr)
    state: Optional[str] = None                # Unified lifecycle state
    state_metadata: Optional[StateMetadata] = None
    dependencies: list[str] = field(default_factory=list)
    blocked_by: list[str] = field(default_factory=list)
    blocks: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    pr_status: Optional[str] = None            # PR only
    reviewers: list[str] = field(default_factory=list)
    approvals: list[str] = field(default_factory=list)
    content: str = ""
    file_path: Optional[Path] = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def parent_id(self) -> Optional[str]:
        """Immediate parent: issue for tasks/PRs, epic for issues."""
        if self.kind in (ItemKind.TASK, ItemKind.PR):
            return self.issue_id
        if self.kind == ItemKind.ISSUE:
            return self.epic_id
        return None

    def copy(self, **changes: Any) -> "WorkItem":
        """Return a copy with `changes` applied. List fields are not shared."""
        for name in _LIST_FIELDS:
            if name not in changes:
                changes[name] = list(getattr(self, name))
        if "extra" not in changes:
            changes["extra"] = dict(self.extra)
        if "state_metadata" not in changes and self.state_metadata is not None:
            changes["state_metadata"] = replace(self.state_metadata)
        return replace(self, **changes)

    @classmethod
    def from_frontmatter(
        cls,
        kind: "ItemKind | str",
        data: dict,
        content: str = "",
        file_path: Optional[Path] = None,
    ) -> "WorkItem":
        """Build an item from parsed frontmatter.

        Raises:
            ValueError: If the item's own ID field is missing
        """
        kind = parse_kind(kind)
        item_id = data.get(kind.id_field)
        if not item_id:
            raise ValueError(f"Missing {kind.id_field} in frontmatter")

        known = {kind.id_field, "created_date", "updated_date", "state", "state_metadata",
                 "pr_status", *_LIST_FIELDS, *_SCALAR_FIELDS}
        if kind != ItemKind.EPIC:
            known.add("epic_id")
        if kind in (ItemKind.TASK, ItemKind.PR):
            known.add("issue_id")

        metadata = data.get("state_metadata")
        item = cls(
            kind=kind,
            id=str(item_id),
            title=scalar_to_str(data.get("title")),
            description=scalar_to_str(data.get("description")),
            status=_as_str(data.get("status")),
            priority=scalar_to_str(data.get("priority")) or "medium",
            assignee=scalar_to_str(data.get("assignee")),
            created_date=scalar_to_str(data.get("created_date")),
            updated_date=scalar_to_str(data.get("updated_date")),
            epic_id=(data.get("epic_id") or None) if kind != ItemKind.EPIC else None,
            issue_id=(data.get("issue_id") or None) if kind in (ItemKind.TASK, ItemKind.PR) else None,
            state=_as_str(data.get("state")),
            state_metadata=StateMetadata.from_dict(metadata) if isinstance(metadata, dict) else None,
            pr_status=_as_str(data.get("pr_status")) if kind == ItemKind.PR else None,
            content=content,
            file_path=Path(file_path) if file_path else None,
            extra={k: v for k, v in data.items() if k not in known},
        )
        for name in _LIST_FIELDS:
            setattr(item, name, _as_list(data.get(name)))
        return item

    def to_frontmatter(self) -> dict:
        """Serialize to a frontmatter dict (inverse of from_frontmatter)."""
        data: dict[str, Any] = {self.kind.id_field: self.id}
        if self.kind in (ItemKind.TASK, ItemKind.PR):
            data["issue_id"] = self.issue_id or ""
        if self.kind != ItemKind.EPIC and self.epic_id:
            data["epic_id"] = self.epic_id
        data["title"] = self.title
        data["description"] = self.description
        if self.status is not None:
            data["status"] = self.status
        if self.state is not None:
            data["state"] = self.state
        if self.state_metadata is not None:
            data["state_metadata"] = self.state_metadata.to_dict()
        if self.kind == ItemKind.PR:
            data["pr_status"] = self.pr_status or "draft"
        data["priority"] = self.priority
        data["assignee"] = self.assignee
        data["created_date"] = self.created_date
        data["updated_date"] = self.updated_date
        for name in _LIST_FIELDS:
            values = getattr(self, name)
            if values or name in ("dependencies",):
                data[name] = list(values)
        data.update(self.extra)
        return data
