"""
NotificationDispatcher -- fan-out of user-facing notifications.

Responsibility:
    ``dispatch()`` inserts one Notification row per distinct recipient.
    Reviewer recipients are resolved at dispatch time as "all active users
    with role APPROVER or ADMINISTRATOR"; there is no static subscription
    list and no backfill when that set later changes.

    ``mark_read()`` / ``mark_all_read()`` are the only mutations of an
    existing notification, and a user may only touch their own.

Architecture position:
    Kernel > Services.  Fan-out runs through SecondaryEffects after the
    primary write commits.  The mark-read operations own their transaction
    when ``auto_commit`` is set.
"""

from __future__ import annotations

from typing import Iterable
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from lms_kernel.domain.clock import Clock, SystemClock
from lms_kernel.domain.dtos import NotificationRecord
from lms_kernel.domain.values import REVIEWER_ROLES, Actor
from lms_kernel.exceptions import NotificationNotFoundError
from lms_kernel.logging_config import get_logger
from lms_kernel.models.notification import Notification
from lms_kernel.models.user import User
from lms_kernel.services.base import BaseService

logger = get_logger("services.notifications")


class NotificationDispatcher(BaseService):
    """Creates notifications and toggles their read flag."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        *,
        auto_commit: bool = False,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._auto_commit = auto_commit

    def reviewer_ids(self) -> list[UUID]:
        """Active approvers and administrators, as of now."""
        return list(
            self.session.execute(
                select(User.id)
                .where(
                    User.is_active.is_(True),
                    User.role.in_([r.value for r in REVIEWER_ROLES]),
                )
                .order_by(User.created_at, User.id)
            ).scalars()
        )

    def dispatch(
        self,
        user_ids: Iterable[UUID],
        title: str,
        message: str,
        *,
        entity_type: str | None = None,
        entity_id: UUID | None = None,
    ) -> list[NotificationRecord]:
        """One notification per distinct recipient, in the order given."""
        recipients = list(dict.fromkeys(user_ids))
        now = self._clock.now()
        rows = [
            Notification(
                user_id=user_id,
                title=title,
                message=message,
                entity_type=entity_type,
                entity_id=entity_id,
                is_read=False,
                created_at=now,
            )
            for user_id in recipients
        ]
        self.session.add_all(rows)
        self.session.flush()

        logger.info(
            "notifications_dispatched",
            extra={
                "title": title,
                "recipient_count": len(rows),
                "entity_type": entity_type,
                "entity_id": str(entity_id) if entity_id else None,
            },
        )
        return [row.to_dto() for row in rows]

    def notify_reviewers(
        self,
        title: str,
        message: str,
        *,
        entity_type: str | None = None,
        entity_id: UUID | None = None,
        exclude: UUID | None = None,
    ) -> list[NotificationRecord]:
        """Notify every active reviewer except ``exclude`` (the submitter)."""
        return self.dispatch(
            [user_id for user_id in self.reviewer_ids() if user_id != exclude],
            title,
            message,
            entity_type=entity_type,
            entity_id=entity_id,
        )

    def mark_read(self, actor: Actor, notification_id: UUID) -> NotificationRecord:
        """
        Mark one of the actor's notifications read.  Idempotent.

        Raises:
            NotificationNotFoundError: no such notification for this user.
        """
        row = self.session.execute(
            select(Notification).where(
                Notification.id == notification_id,
                Notification.user_id == actor.id,
            )
        ).scalar_one_or_none()
        if row is None:
            raise NotificationNotFoundError(str(notification_id))

        if not row.is_read:
            row.is_read = True
            row.read_at = self._clock.now()
            self.session.flush()
            if self._auto_commit:
                self.session.commit()
            logger.info(
                "notification_marked_read",
                extra={"notification_id": str(notification_id), "user_id": str(actor.id)},
            )
        return row.to_dto()

    def mark_all_read(self, actor: Actor) -> int:
        """Mark every unread notification of the actor read.  Returns the count."""
        result = self.session.execute(
            update(Notification)
            .where(Notification.user_id == actor.id, Notification.is_read.is_(False))
            .values(is_read=True, read_at=self._clock.now())
            .execution_options(synchronize_session=False)
        )
        if self._auto_commit:
            self.session.commit()
        logger.info(
            "notifications_marked_read",
            extra={"user_id": str(actor.id), "count": result.rowcount},
        )
        return result.rowcount
