"""Mixins for SQLAlchemy models."""

import uuid
from datetime import UTC, datetime

from sqlalchemy import Column, DateTime, String, func


def utcnow() -> datetime:
    """Timezone-aware current time, used for Python-side column defaults."""
    return datetime.now(UTC)


def new_uuid() -> str:
    """Generate a string UUID primary key."""
    return str(uuid.uuid4())


class UUIDPrimaryKeyMixin:
    """Mixin for tables keyed by an opaque UUID string."""

    id = Column(String(36), primary_key=True, default=new_uuid)


class TimestampMixin:
    """Mixin to add created_at and updated_at timestamp columns.

    Python-side defaults keep sub-second resolution on databases whose
    CURRENT_TIMESTAMP only has one-second granularity.
    """

    created_at = Column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )


class SoftDeleteMixin:
    """Mixin to add soft delete functionality."""

    deleted_at = Column(DateTime(timezone=True), nullable=True)

    @property
    def is_deleted(self) -> bool:
        """Check if the record is soft-deleted."""
        return self.deleted_at is not None

    def soft_delete(self) -> None:
        """Soft delete the record."""
        self.deleted_at = utcnow()

    def restore(self) -> None:
        """Restore a soft-deleted record."""
        self.deleted_at = None
