"""
Module: lms_kernel.models.workflow_entity
Responsibility: Columns and constraints shared by every record that moves
    through the approval workflow (customers and properties).
Architecture position: Kernel > Models.

Invariants enforced (database check constraints):
    - status is one of DRAFT, SUBMITTED, APPROVED, REJECTED.
    - approved_by is set iff status is APPROVED or REJECTED.
    - rejection_feedback is set iff status is REJECTED.
    - version >= 1; every mutation increments it (conditional writes).
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import BigInteger, CheckConstraint, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from lms_kernel.db.base import UUIDString
from lms_kernel.domain.clock import as_utc


def workflow_constraints(table: str) -> tuple[CheckConstraint, ...]:
    return (
        CheckConstraint(
            "status IN ('DRAFT', 'SUBMITTED', 'APPROVED', 'REJECTED')",
            name=f"ck_{table}_valid_status",
        ),
        CheckConstraint(
            "(approved_by IS NOT NULL) = (status IN ('APPROVED', 'REJECTED'))",
            name=f"ck_{table}_approved_by_iff_decided",
        ),
        CheckConstraint(
            "(rejection_feedback IS NOT NULL) = (status = 'REJECTED')",
            name=f"ck_{table}_feedback_iff_rejected",
        ),
        CheckConstraint("version >= 1", name=f"ck_{table}_version_positive"),
    )


class WorkflowEntityMixin:
    """Lifecycle columns of a customer or property."""

    reference_id: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)
    display_name: Mapped[str] = mapped_column(String(400), nullable=False, default="")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="DRAFT")
    created_by: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("users.id"), nullable=False
    )
    approved_by: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("users.id"), nullable=True
    )
    approved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    submitted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    rejection_feedback: Mapped[str | None] = mapped_column(Text, nullable=True)
    version: Mapped[int] = mapped_column(BigInteger, nullable=False, default=1)

    def snapshot_fields(self) -> dict:
        """Lifecycle fields in DTO form (timestamps normalized to UTC)."""
        from lms_kernel.domain.values import EntityStatus

        return {
            "id": self.id,
            "reference_id": self.reference_id,
            "status": EntityStatus(self.status),
            "display_name": self.display_name,
            "created_by": self.created_by,
            "created_at": as_utc(self.created_at),
            "updated_at": as_utc(self.updated_at),
            "version": self.version,
            "approved_by": self.approved_by,
            "approved_at": as_utc(self.approved_at),
            "submitted_at": as_utc(self.submitted_at),
            "rejection_feedback": self.rejection_feedback,
        }
