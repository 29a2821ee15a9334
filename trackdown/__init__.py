"""trackdown - file-backed work tracking with hierarchy and state management."""

__version__ = "0.4.0"
