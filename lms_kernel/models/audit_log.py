"""
Module: lms_kernel.models.audit_log
Responsibility: ORM persistence for field-level audit entries.
Architecture position: Kernel > Models.

Invariants enforced:
    - One row per changed field per mutation.
    - Append-only: no UPDATE, no DELETE (ORM listeners below).
    - entity_id is NOT a foreign key: entries about a deleted entity remain
      queryable.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import DateTime, Index, String, Text, event
from sqlalchemy.orm import Mapped, mapped_column

from lms_kernel.db.base import Base, UUIDString
from lms_kernel.domain.clock import as_utc
from lms_kernel.exceptions import ImmutabilityViolationError

if TYPE_CHECKING:
    from lms_kernel.domain.dtos import AuditEntryRecord


class AuditLogEntry(Base):
    """One before/after change of one field."""

    __tablename__ = "audit_log_entries"

    __table_args__ = (
        Index("ix_audit_log_entity", "entity_type", "entity_id", "timestamp"),
        Index("ix_audit_log_changed_by", "changed_by"),
    )

    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    field_name: Mapped[str] = mapped_column("field", String(100), nullable=False)
    old_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    new_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    changed_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<AuditLogEntry {self.entity_type}:{self.entity_id} "
            f"{self.action} {self.field_name}>"
        )

    def to_dto(self) -> AuditEntryRecord:
        from lms_kernel.domain.dtos import AuditEntryRecord

        return AuditEntryRecord(
            id=self.id,
            entity_type=self.entity_type,
            entity_id=self.entity_id,
            action=self.action,
            field=self.field_name,
            old_value=self.old_value,
            new_value=self.new_value,
            changed_by=self.changed_by,
            timestamp=as_utc(self.timestamp),
        )


@event.listens_for(AuditLogEntry, "before_update")
def prevent_audit_update(mapper, connection, target):
    """Prevent updates to audit entries."""
    raise ImmutabilityViolationError(
        entity_type="AuditLogEntry",
        entity_id=str(target.id),
        reason="Audit entries are append-only -- cannot modify",
    )


@event.listens_for(AuditLogEntry, "before_delete")
def prevent_audit_delete(mapper, connection, target):
    """Prevent deletion of audit entries."""
    raise ImmutabilityViolationError(
        entity_type="AuditLogEntry",
        entity_id=str(target.id),
        reason="Audit entries are append-only -- cannot delete",
    )
