"""
Shared data types for trackdown.

Validation results are data, never exceptions: a validator enumerates every
problem it finds instead of stopping at the first one.
"""

from dataclasses import dataclass, field


@dataclass
class ValidationIssue:
    """A single problem found by a validator."""
    field: str
    message: str
    severity: str = "error"  # "error" or "warning"
    item_id: str | None = None


@dataclass
class ValidationResult:
    """Outcome of a read-only diagnostic."""
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def error(self, field_name: str, message: str, item_id: str | None = None) -> None:
        self.errors.append(ValidationIssue(field_name, message, "error", item_id))

    def warning(self, field_name: str, message: str, item_id: str | None = None) -> None:
        self.warnings.append(ValidationIssue(field_name, message, "warning", item_id))


@dataclass
class TransitionValidation:
    """Result of checking a proposed state or status transition."""
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    allowed_transitions: list[str] = field(default_factory=list)
