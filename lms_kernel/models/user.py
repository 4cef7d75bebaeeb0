"""
Module: lms_kernel.models.user
Responsibility: ORM persistence for platform users and their role.
Architecture position: Kernel > Models.  May import from db/base.py only.

Authentication is external; this table only answers "who is this actor,
what role do they hold, and are they active" for notification fan-out and
reference integrity.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import Boolean, CheckConstraint, String
from sqlalchemy.orm import Mapped, mapped_column

from lms_kernel.db.base import TrackedBase

if TYPE_CHECKING:
    from lms_kernel.domain.dtos import UserRecord


class User(TrackedBase):
    """A platform user."""

    __tablename__ = "users"

    __table_args__ = (
        CheckConstraint(
            "role IN ('INPUTTER', 'APPROVER', 'ADMINISTRATOR', 'VIEWER')",
            name="ck_users_valid_role",
        ),
    )

    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<User {self.email} role={self.role} active={self.is_active}>"

    def to_dto(self) -> UserRecord:
        from lms_kernel.domain.dtos import UserRecord

        return UserRecord(
            id=self.id,
            full_name=self.full_name,
            email=self.email,
            role=self.role,
            is_active=self.is_active,
        )
