"""Enums for model fields."""

from enum import Enum


class ImportStatus(str, Enum):
    """Lifecycle states of an import batch."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """Check if no further mutation is allowed in this state."""
        return self in (ImportStatus.COMPLETED, ImportStatus.FAILED)

    def can_transition_to(self, target: "ImportStatus") -> bool:
        """Check if the state machine permits moving to ``target``."""
        return target in _TRANSITIONS[self]


_TRANSITIONS: dict[ImportStatus, frozenset[ImportStatus]] = {
    ImportStatus.PENDING: frozenset({ImportStatus.IN_PROGRESS, ImportStatus.FAILED}),
    ImportStatus.IN_PROGRESS: frozenset({ImportStatus.COMPLETED, ImportStatus.FAILED}),
    ImportStatus.COMPLETED: frozenset(),
    ImportStatus.FAILED: frozenset(),
}


class PayloadFormat(str, Enum):
    """File formats a repository payload can be encoded in."""

    JSON = "json"
    YAML = "yaml"
    MARKDOWN = "markdown"
    TEXT = "text"

    @property
    def is_structured(self) -> bool:
        """Check if the format decodes to a mapping rather than free text."""
        return self in (PayloadFormat.JSON, PayloadFormat.YAML)

    @classmethod
    def from_extension(cls, extension: str) -> "PayloadFormat | None":
        """Map a file extension (with or without dot) to a format."""
        return _EXTENSIONS.get(extension.lower().lstrip("."))


_EXTENSIONS: dict[str, PayloadFormat] = {
    "json": PayloadFormat.JSON,
    "yaml": PayloadFormat.YAML,
    "yml": PayloadFormat.YAML,
    "md": PayloadFormat.MARKDOWN,
    "markdown": PayloadFormat.MARKDOWN,
    "txt": PayloadFormat.TEXT,
}
