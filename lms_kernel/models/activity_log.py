"""
Module: lms_kernel.models.activity_log
Responsibility: ORM persistence for the coarse "who did what to which entity
    when" timeline.  One row per logical operation.
Architecture position: Kernel > Models.

Invariants enforced:
    - Append-only: no UPDATE, no DELETE.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import JSON, DateTime, Index, String, event
from sqlalchemy.orm import Mapped, mapped_column

from lms_kernel.db.base import Base, UUIDString
from lms_kernel.domain.clock import as_utc
from lms_kernel.exceptions import ImmutabilityViolationError

if TYPE_CHECKING:
    from lms_kernel.domain.dtos import ActivityEntryRecord


class ActivityLogEntry(Base):
    """One logical operation on one entity."""

    __tablename__ = "activity_log_entries"

    __table_args__ = (
        Index("ix_activity_log_entity", "entity_id", "timestamp"),
        Index("ix_activity_log_performed_by", "performed_by"),
    )

    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    performed_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    # "metadata" is reserved on declarative classes
    details: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSON, nullable=False, default=dict
    )

    def __repr__(self) -> str:
        return f"<ActivityLogEntry {self.entity_type}:{self.entity_id} {self.action}>"

    def to_dto(self) -> ActivityEntryRecord:
        from lms_kernel.domain.dtos import ActivityEntryRecord

        return ActivityEntryRecord(
            id=self.id,
            entity_type=self.entity_type,
            entity_id=self.entity_id,
            action=self.action,
            performed_by=self.performed_by,
            timestamp=as_utc(self.timestamp),
            metadata=dict(self.details or {}),
        )


@event.listens_for(ActivityLogEntry, "before_update")
def prevent_activity_update(mapper, connection, target):
    """Prevent updates to activity entries."""
    raise ImmutabilityViolationError(
        entity_type="ActivityLogEntry",
        entity_id=str(target.id),
        reason="Activity entries are append-only -- cannot modify",
    )


@event.listens_for(ActivityLogEntry, "before_delete")
def prevent_activity_delete(mapper, connection, target):
    """Prevent deletion of activity entries."""
    raise ImmutabilityViolationError(
        entity_type="ActivityLogEntry",
        entity_id=str(target.id),
        reason="Activity entries are append-only -- cannot delete",
    )
