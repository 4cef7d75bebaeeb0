"""
UserService -- registration and activation of platform users.

Authentication is external; this only maintains the user table consulted
for actor resolution and reviewer fan-out.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from lms_kernel.domain.dtos import UserRecord
from lms_kernel.domain.values import Role
from lms_kernel.exceptions import EntityNotFoundError, ValidationError
from lms_kernel.logging_config import get_logger
from lms_kernel.models.user import User
from lms_kernel.services.base import BaseService

logger = get_logger("services.users")


class UserService(BaseService):

    def __init__(self, session: Session, *, auto_commit: bool = True):
        super().__init__(session)
        self._auto_commit = auto_commit

    def create_user(self, full_name: str, email: str, role: Role | str) -> UserRecord:
        """
        Raises:
            ValidationError: blank name, unknown role, or email in use.
        """
        name = (full_name or "").strip()
        if not name:
            raise ValidationError("full_name is required", field="full_name")
        address = (email or "").strip().lower()
        if "@" not in address:
            raise ValidationError(f"Invalid email address: {email!r}", field="email")
        try:
            role_value = Role(role).value
        except ValueError:
            raise ValidationError(f"Unknown role: {role}", field="role") from None

        user = User(full_name=name, email=address, role=role_value, is_active=True)
        savepoint = self.session.begin_nested()
        try:
            self.session.add(user)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            raise ValidationError(
                f"Email already registered: {address}", field="email"
            ) from None
        if self._auto_commit:
            self.session.commit()

        logger.info("user_created", extra={"user_id": str(user.id), "role": role_value})
        return user.to_dto()

    def set_active(self, user_id: UUID, active: bool) -> UserRecord:
        """Activate or deactivate a user.  Inactive users get no notifications."""
        user = self.session.execute(
            select(User).where(User.id == user_id)
        ).scalar_one_or_none()
        if user is None:
            raise EntityNotFoundError("user", str(user_id))
        user.is_active = active
        self.session.flush()
        if self._auto_commit:
            self.session.commit()
        logger.info(
            "user_activation_changed",
            extra={"user_id": str(user_id), "is_active": active},
        )
        return user.to_dto()
