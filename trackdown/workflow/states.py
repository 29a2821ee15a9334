"""Unified lifecycle state machine for epics, issues and tasks.

Items carry either a modern `state` (plus `state_metadata`) or only a legacy
`status`. effective_state() reconciles the two so old and migrated items can
be filtered and displayed uniformly.

Progression:

    planning -> active -> ready_for_engineering -> ready_for_qa
             -> ready_for_deployment -> done

with won't_do reachable from every non-terminal state. done and won't_do are
resolution states and have no outgoing transitions.

Usage:
    from trackdown.workflow.states import transition_item, UnifiedState

    item = transition_item(item, UnifiedState.READY_FOR_QA, actor="alice")
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Optional

from transitions import Machine, MachineError

from trackdown.lib.types import TransitionValidation, ValidationResult
from trackdown.models import StateMetadata, WorkItem, utc_now_iso

logger = logging.getLogger(__name__)


class UnifiedState(Enum):
    """All unified lifecycle states, in progression order."""

    PLANNING = "planning"
    ACTIVE = "active"
    READY_FOR_ENGINEERING = "ready_for_engineering"
    READY_FOR_QA = "ready_for_qa"
    READY_FOR_DEPLOYMENT = "ready_for_deployment"
    DONE = "done"
    WONT_DO = "won't_do"


RESOLUTION_STATES = frozenset({UnifiedState.DONE, UnifiedState.WONT_DO})

# Legacy status values still found in older documents
LEGACY_STATUSES = ("planning", "active", "completed", "archived", "cancelled")

# Legacy status -> unified state. Anything not listed maps to active.
LEGACY_STATUS_MAP = {
    "completed": UnifiedState.DONE,
    "cancelled": UnifiedState.WONT_DO,
    "canceled": UnifiedState.WONT_DO,
}

# Unified state -> legacy status written alongside it for older readers
STATE_TO_LEGACY_STATUS = {
    UnifiedState.PLANNING: "planning",
    UnifiedState.DONE: "completed",
    UnifiedState.WONT_DO: "cancelled",
}

# Aliases accepted by parse_state (won't_do is awkward on a command line)
_STATE_ALIASES = {
    "won_t_do": UnifiedState.WONT_DO,
    "wont_do": UnifiedState.WONT_DO,
    "wontdo": UnifiedState.WONT_DO,
}

STATES = [s.value for s in UnifiedState]

# Transitions defined as (trigger, source, dest)
# Each trigger becomes a method on the lifecycle model
TRANSITIONS = [
    {"trigger": "start", "source": "planning", "dest": "active"},
    {"trigger": "hand_to_engineering", "source": "planning", "dest": "ready_for_engineering"},
    {"trigger": "hand_to_engineering", "source": "active", "dest": "ready_for_engineering"},
    {"trigger": "hand_to_qa", "source": "ready_for_engineering", "dest": "ready_for_qa"},
    {"trigger": "pass_qa", "source": "ready_for_qa", "dest": "ready_for_deployment"},
    {"trigger": "deploy", "source": "ready_for_deployment", "dest": "done"},

    # Rejection from any non-terminal state
    {"trigger": "reject", "source": "planning", "dest": "won't_do"},
    {"trigger": "reject", "source": "active", "dest": "won't_do"},
    {"trigger": "reject", "source": "ready_for_engineering", "dest": "won't_do"},
    {"trigger": "reject", "source": "ready_for_qa", "dest": "won't_do"},
    {"trigger": "reject", "source": "ready_for_deployment", "dest": "won't_do"},
]

# Edges a bot may drive (CI green -> QA, QA sign-off -> deploy, deploy success -> done)
AUTOMATABLE_TRANSITIONS = frozenset({
    (UnifiedState.READY_FOR_ENGINEERING, UnifiedState.READY_FOR_QA),
    (UnifiedState.READY_FOR_QA, UnifiedState.READY_FOR_DEPLOYMENT),
    (UnifiedState.READY_FOR_DEPLOYMENT, UnifiedState.DONE),
})


def _build_trigger_lookup() -> dict[tuple[str, str], str]:
    """Build lookup from (source, dest) -> trigger name."""
    lookup: dict[tuple[str, str], str] = {}
    for t in TRANSITIONS:
        key = (t["source"], t["dest"])
        if key not in lookup:
            lookup[key] = t["trigger"]
    return lookup


TRIGGER_FOR = _build_trigger_lookup()


class InvalidTransition(Exception):
    """Raised when attempting an invalid state or status transition."""

    def __init__(self, from_state: str, to_state: str, item_id: str = "", reasons: Optional[list[str]] = None):
        self.from_state = from_state
        self.to_state = to_state
        self.item_id = item_id
        self.reasons = list(reasons or [])
        super().__init__(
            f"Invalid transition: {from_state} -> {to_state}"
            + (f" (item: {item_id})" if item_id else "")
            + (f": {'; '.join(self.reasons)}" if self.reasons else "")
        )


def parse_state(value: "str | UnifiedState | None") -> Optional[UnifiedState]:
    """Parse a state string into UnifiedState.

    Returns None if the value is empty or unknown.
    """
    if value is None:
        return None
    if isinstance(value, UnifiedState):
        return value
    if not isinstance(value, str):
        return None
    value = value.strip().lower()
    for state in UnifiedState:
        if state.value == value:
            return state
    return _STATE_ALIASES.get(value)


def is_resolution_state(state: "str | UnifiedState | None") -> bool:
    return parse_state(state) in RESOLUTION_STATES


def migrate_status_to_state(status: Optional[str]) -> UnifiedState:
    """Derive a unified state from a legacy status value."""
    if not isinstance(status, str):
        return UnifiedState.ACTIVE
    return LEGACY_STATUS_MAP.get(status.strip().lower(), UnifiedState.ACTIVE)


def legacy_status_for_state(state: UnifiedState) -> str:
    return STATE_TO_LEGACY_STATUS.get(state, "active")


def is_backward_compatible(status: Optional[str], state: "str | UnifiedState | None") -> bool:
    """Check that a legacy status doesn't contradict the unified state.

    An in-progress legacy status (anything that derives to active) is
    compatible with every non-resolution state; otherwise the derived state
    must match exactly.
    """
    parsed = parse_state(state)
    if parsed is None or not status:
        return False
    derived = migrate_status_to_state(status)
    if derived == parsed:
        return True
    return derived == UnifiedState.ACTIVE and parsed not in RESOLUTION_STATES


def effective_state(item: WorkItem) -> UnifiedState:
    """Unified state used for display and filtering.

    Uses item.state when present, otherwise derives it from legacy status.
    """
    if item.state:
        parsed = parse_state(item.state)
        if parsed is not None:
            return parsed
        logger.warning(f"[STATE] {item.id}: unknown state '{item.state}', falling back to status")
    return migrate_status_to_state(item.status)


def get_allowed_transitions(state: "str | UnifiedState") -> list[UnifiedState]:
    """Target states reachable from `state`, in progression order."""
    parsed = parse_state(state)
    if parsed is None:
        return []
    targets = {t["dest"] for t in TRANSITIONS if t["source"] == parsed.value}
    return [s for s in UnifiedState if s.value in targets]


def validate_transition(
    from_state: "str | UnifiedState",
    to_state: "str | UnifiedState",
) -> TransitionValidation:
    """Check a proposed transition against the transition table. Never mutates."""
    source = parse_state(from_state)
    dest = parse_state(to_state)
    errors: list[str] = []
    warnings: list[str] = []

    if source is None:
        errors.append(f"Unknown current state: {from_state}")
    if dest is None:
        errors.append(f"Unknown target state: {to_state}")
    if errors:
        allowed = get_allowed_transitions(source) if source else []
        return TransitionValidation(False, errors, warnings, [s.value for s in allowed])

    allowed = get_allowed_transitions(source)
    if source == dest:
        errors.append(f"Item is already in state {source.value}")
    elif source in RESOLUTION_STATES:
        errors.append(f"Cannot transition from resolution state {source.value}")
    elif (source.value, dest.value) not in TRIGGER_FOR:
        errors.append(f"Invalid transition: {source.value} -> {dest.value}")

    if not errors and dest == UnifiedState.WONT_DO:
        warnings.append(f"Rejecting work in state {source.value}")

    return TransitionValidation(not errors, errors, warnings, [s.value for s in allowed])


def _is_iso_timestamp(value: str) -> bool:
    try:
        datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return False
    return True


def validate_state_metadata(metadata: Optional[StateMetadata]) -> ValidationResult:
    """Check transition metadata completeness.

    Missing transitioned_at/transitioned_by are errors; softer problems are
    warnings. Reports only - callers decide whether to block.
    """
    result = ValidationResult()
    if metadata is None:
        result.error("state_metadata", "State metadata is missing")
        return result

    if not metadata.transitioned_at:
        result.error("transitioned_at", "transitioned_at is required")
    elif not _is_iso_timestamp(metadata.transitioned_at):
        result.warning("transitioned_at", f"transitioned_at is not an ISO timestamp: {metadata.transitioned_at}")

    if not metadata.transitioned_by:
        result.error("transitioned_by", "transitioned_by is required")

    if metadata.previous_state and parse_state(metadata.previous_state) is None \
            and metadata.previous_state not in LEGACY_STATUSES:
        result.warning("previous_state", f"Unknown previous state: {metadata.previous_state}")

    if metadata.automation_source and not metadata.automation_eligible:
        result.warning("automation_source", "automation_source set on a state that is not automation eligible")

    return result


def can_automate(item: WorkItem, target_state: "str | UnifiedState") -> bool:
    """True if a bot may move `item` to `target_state`.

    Requires the edge to be in AUTOMATABLE_TRANSITIONS and the current state's
    metadata to be automation eligible.
    """
    current = effective_state(item)
    target = parse_state(target_state)
    if target is None or (current, target) not in AUTOMATABLE_TRANSITIONS:
        return False
    if item.state_metadata is None or not item.state_metadata.automation_eligible:
        return False
    return validate_transition(current, target).valid


def _automation_eligible_from(state: UnifiedState) -> bool:
    return any(source == state for source, _ in AUTOMATABLE_TRANSITIONS)


def create_state_metadata(
    transitioned_by: str,
    previous_state: Optional[str] = None,
    automation_eligible: bool = False,
    automation_source: Optional[str] = None,
    transition_reason: Optional[str] = None,
    reviewer: Optional[str] = None,
) -> StateMetadata:
    """Build metadata for a transition happening now."""
    return StateMetadata(
        transitioned_at=utc_now_iso(),
        transitioned_by=transitioned_by,
        previous_state=previous_state,
        automation_eligible=automation_eligible,
        transition_reason=transition_reason,
        automation_source=automation_source,
        reviewer=reviewer,
    )


class ItemLifecycle:
    """State machine for one work item's unified state.

    Wraps the transitions library: the machine starts at the item's effective
    state and, after each trigger, replaces `self.item` with an updated copy
    carrying the new state and fresh metadata. Nothing is written to disk.
    """

    def __init__(self, item: WorkItem):
        self.item = item
        self.machine = Machine(
            model=self,
            states=STATES,
            transitions=TRANSITIONS,
            initial=effective_state(item).value,
            auto_transitions=False,  # Only explicit transitions
            send_event=True,  # Pass EventData to callbacks
            after_state_change="on_state_change",
        )

    def on_state_change(self, event) -> None:
        """Callback after any transition: rebuild the item with new state."""
        from_state = event.transition.source
        to_state = UnifiedState(event.transition.dest)
        kwargs = event.kwargs

        eligible = kwargs.get("automation_eligible")
        if eligible is None:
            eligible = _automation_eligible_from(to_state)

        metadata = create_state_metadata(
            transitioned_by=kwargs["actor"],
            previous_state=from_state,
            automation_eligible=eligible,
            automation_source=kwargs.get("automation_source"),
            transition_reason=kwargs.get("reason"),
            reviewer=kwargs.get("reviewer"),
        )
        changes = {
            "state": to_state.value,
            "state_metadata": metadata,
            "updated_date": metadata.transitioned_at,
        }
        if self.item.status is not None:
            changes["status"] = legacy_status_for_state(to_state)
        self.item = self.item.copy(**changes)

        logger.info(f"[STATE] {self.item.id}: {from_state} -> {to_state.value} ({event.event.name})")

    def available_triggers(self) -> list[str]:
        return self.machine.get_triggers(self.state)


def transition_item(
    item: WorkItem,
    to_state: "str | UnifiedState",
    actor: str,
    reason: Optional[str] = None,
    reviewer: Optional[str] = None,
    automation_source: Optional[str] = None,
    automation_eligible: Optional[bool] = None,
) -> WorkItem:
    """Return a copy of `item` moved to `to_state`.

    The caller persists the result through the document store and then
    rebuilds the hierarchy cache.

    Raises:
        InvalidTransition: If the transition is not allowed
    """
    current = effective_state(item)
    target = parse_state(to_state)
    target_name = target.value if target else str(to_state)

    if target == current:
        logger.debug(f"[STATE] {item.id}: already in {current.value}, no-op")
        return item

    validation = validate_transition(current, target_name)
    if not validation.valid:
        raise InvalidTransition(current.value, target_name, item.id, validation.errors)

    lifecycle = ItemLifecycle(item)
    trigger = TRIGGER_FOR[(current.value, target.value)]
    try:
        getattr(lifecycle, trigger)(
            actor=actor,
            reason=reason,
            reviewer=reviewer,
            automation_source=automation_source,
            automation_eligible=automation_eligible,
        )
    except MachineError as e:
        raise InvalidTransition(current.value, target.value, item.id) from e
    return lifecycle.item
