"""
Module: lms_kernel.selectors.user_selector
Responsibility: User lookups for actor resolution.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select

from lms_kernel.domain.dtos import UserRecord
from lms_kernel.models.user import User
from lms_kernel.selectors.base import BaseSelector


class UserSelector(BaseSelector):

    def get(self, user_id: UUID) -> UserRecord | None:
        row = self.session.execute(
            select(User).where(User.id == user_id)
        ).scalar_one_or_none()
        return row.to_dto() if row else None

    def get_active(self, user_id: UUID) -> UserRecord | None:
        user = self.get(user_id)
        if user is None or not user.is_active:
            return None
        return user
