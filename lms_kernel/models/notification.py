"""
Module: lms_kernel.models.notification
Responsibility: ORM persistence for user-facing notifications.
Architecture position: Kernel > Models.

Invariants enforced:
    - The only permitted mutation is marking a notification read
      (is_read, read_at).  Any other changed column raises
      ImmutabilityViolationError.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Text, event, inspect
from sqlalchemy.orm import Mapped, mapped_column

from lms_kernel.db.base import Base, UUIDString
from lms_kernel.domain.clock import as_utc
from lms_kernel.exceptions import ImmutabilityViolationError

if TYPE_CHECKING:
    from lms_kernel.domain.dtos import NotificationRecord


class Notification(Base):
    """A message for one user about one entity."""

    __tablename__ = "notifications"

    __table_args__ = (
        Index("ix_notifications_user_unread", "user_id", "is_read", "created_at"),
    )

    user_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    entity_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    entity_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<Notification {self.id} user={self.user_id} read={self.is_read}>"

    def to_dto(self) -> NotificationRecord:
        from lms_kernel.domain.dtos import NotificationRecord

        return NotificationRecord(
            id=self.id,
            user_id=self.user_id,
            title=self.title,
            message=self.message,
            entity_type=self.entity_type,
            entity_id=self.entity_id,
            is_read=self.is_read,
            created_at=as_utc(self.created_at),
            read_at=as_utc(self.read_at),
        )


_MUTABLE_NOTIFICATION_FIELDS = frozenset({"is_read", "read_at"})


@event.listens_for(Notification, "before_update")
def restrict_notification_update(mapper, connection, target):
    """Only the read flag and its timestamp may change."""
    state = inspect(target)
    changed = {
        attr.key
        for attr in state.attrs
        if attr.key not in _MUTABLE_NOTIFICATION_FIELDS and attr.history.has_changes()
    }
    if changed:
        raise ImmutabilityViolationError(
            entity_type="Notification",
            entity_id=str(target.id),
            reason=f"Only the read flag may change (attempted: {', '.join(sorted(changed))})",
        )
