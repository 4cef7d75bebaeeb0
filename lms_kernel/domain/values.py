"""
Value types shared across the kernel.

Pure enums and the Actor value object.  ZERO I/O; no imports from
``db/``, ``models/``, ``services/`` or ``selectors/``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from uuid import UUID


class Role(str, Enum):
    """User roles.  VIEWER may read but never mutate."""

    INPUTTER = "INPUTTER"
    APPROVER = "APPROVER"
    ADMINISTRATOR = "ADMINISTRATOR"
    VIEWER = "VIEWER"


REVIEWER_ROLES: frozenset[Role] = frozenset({Role.APPROVER, Role.ADMINISTRATOR})


class EntityKind(str, Enum):
    """The two record kinds that move through the approval workflow."""

    CUSTOMER = "customer"
    PROPERTY = "property"

    @property
    def plural(self) -> str:
        return "properties" if self is EntityKind.PROPERTY else "customers"


# entity_type used in audit/activity/notification rows for assessments
TAX_ASSESSMENT_ENTITY = "tax_assessment"


class EntityStatus(str, Enum):
    """Approval lifecycle states of a customer or property."""

    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class TaxStatus(str, Enum):
    """Derived status of a tax assessment.  Never stored."""

    NOT_ASSESSED = "NOT_ASSESSED"
    ASSESSED = "ASSESSED"
    PARTIAL = "PARTIAL"
    PAID = "PAID"
    OVERDUE = "OVERDUE"


class PaymentMethod(str, Enum):
    CASH = "CASH"
    BANK_TRANSFER = "BANK_TRANSFER"
    CHECK = "CHECK"
    MOBILE_MONEY = "MOBILE_MONEY"
    CREDIT_CARD = "CREDIT_CARD"


class CustomerType(str, Enum):
    PERSON = "PERSON"
    BUSINESS = "BUSINESS"
    GOVERNMENT = "GOVERNMENT"
    MOSQUE_HOSPITAL = "MOSQUE_HOSPITAL"
    NON_PROFIT = "NON_PROFIT"
    CONTRACTOR = "CONTRACTOR"


class Gender(str, Enum):
    MALE = "MALE"
    FEMALE = "FEMALE"


class Operation(str, Enum):
    """Mutating operations subject to the authorization policy."""

    CREATE_RECORD = "create_record"
    UPDATE_RECORD = "update_record"
    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    DELETE = "delete"
    CREATE_ASSESSMENT = "create_assessment"
    APPLY_PAYMENT = "apply_payment"
    ARCHIVE_ASSESSMENT = "archive_assessment"
    UNARCHIVE_ASSESSMENT = "unarchive_assessment"


class LogAction(str, Enum):
    """Action recorded on audit and activity entries."""

    CREATED = "CREATED"
    UPDATED = "UPDATED"
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    DELETED = "DELETED"
    ASSESSMENT_CREATED = "ASSESSMENT_CREATED"
    PAYMENT_ADDED = "PAYMENT_ADDED"
    ARCHIVED = "ARCHIVED"
    UNARCHIVED = "UNARCHIVED"


class PendingLevel(str, Enum):
    """Presentation-only age bucket for records waiting in the review queue."""

    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass(frozen=True)
class Actor:
    """The caller of an operation: who they are and the role they act under."""

    id: UUID
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMINISTRATOR
