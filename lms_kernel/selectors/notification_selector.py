"""
Module: lms_kernel.selectors.notification_selector
Responsibility: A user's notifications, newest first, with an unread filter.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select

from lms_kernel.domain.dtos import NotificationRecord, Page
from lms_kernel.models.notification import Notification
from lms_kernel.selectors.base import BaseSelector


class NotificationSelector(BaseSelector):

    def for_user(
        self,
        user_id: UUID,
        *,
        unread_only: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> Page[NotificationRecord]:
        self._check_page(limit, offset)
        conditions = [Notification.user_id == user_id]
        if unread_only:
            conditions.append(Notification.is_read.is_(False))

        total = self.session.execute(
            select(func.count()).select_from(Notification).where(*conditions)
        ).scalar_one()
        rows = self.session.execute(
            select(Notification)
            .where(*conditions)
            .order_by(Notification.created_at.desc(), Notification.id)
            .limit(limit)
            .offset(offset)
        ).scalars()
        return Page(
            items=tuple(row.to_dto() for row in rows),
            total=total,
            limit=limit,
            offset=offset,
        )

    def unread_count(self, user_id: UUID) -> int:
        return self.session.execute(
            select(func.count())
            .select_from(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
        ).scalar_one()
