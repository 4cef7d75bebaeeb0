"""
Frozen DTOs returned by services and selectors.

Callers never receive ORM instances; every read and every mutation result
crosses the service boundary as one of these immutable snapshots.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Generic, TypeVar
from uuid import UUID

from lms_kernel.domain.values import (
    EntityKind,
    EntityStatus,
    PaymentMethod,
    PendingLevel,
    TaxStatus,
)

T = TypeVar("T")


@dataclass(frozen=True)
class FieldChange:
    """One changed field of one mutation."""

    field: str
    old_value: Any
    new_value: Any


@dataclass(frozen=True)
class EntitySnapshot:
    """A customer or property as seen after a read or a transition."""

    kind: EntityKind
    id: UUID
    reference_id: str
    status: EntityStatus
    display_name: str
    created_by: UUID
    created_at: datetime
    updated_at: datetime
    version: int
    approved_by: UUID | None = None
    approved_at: datetime | None = None
    submitted_at: datetime | None = None
    rejection_feedback: str | None = None
    attributes: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AssessmentSnapshot:
    """A tax assessment with its derived status as of ``today``."""

    id: UUID
    reference_id: str
    property_id: UUID
    tax_year: int
    base_assessment: Decimal
    exemption_amount: Decimal
    assessed_amount: Decimal
    paid_amount: Decimal
    outstanding_amount: Decimal
    due_date: date
    assessment_date: date
    status: TaxStatus
    is_archived: bool
    created_by: UUID
    created_at: datetime
    updated_at: datetime
    version: int
    notes: str | None = None


@dataclass(frozen=True)
class PaymentRecord:
    """One applied payment.  Immutable once created."""

    id: UUID
    assessment_id: UUID
    amount_paid: Decimal
    payment_date: date
    payment_method: PaymentMethod
    receipt_number: str
    collected_by: UUID
    created_at: datetime
    notes: str | None = None


@dataclass(frozen=True)
class PaymentResult:
    """Outcome of ApplyPayment."""

    payment: PaymentRecord
    assessment: AssessmentSnapshot
    is_fully_paid: bool


@dataclass(frozen=True)
class AssessmentDetail:
    """An assessment with its payments, newest first."""

    assessment: AssessmentSnapshot
    payments: tuple[PaymentRecord, ...]


@dataclass(frozen=True)
class AuditEntryRecord:
    id: UUID
    entity_type: str
    entity_id: UUID
    action: str
    field: str
    old_value: str | None
    new_value: str | None
    changed_by: UUID
    timestamp: datetime


@dataclass(frozen=True)
class ActivityEntryRecord:
    id: UUID
    entity_type: str
    entity_id: UUID
    action: str
    performed_by: UUID
    timestamp: datetime
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class NotificationRecord:
    id: UUID
    user_id: UUID
    title: str
    message: str
    entity_type: str | None
    entity_id: UUID | None
    is_read: bool
    created_at: datetime
    read_at: datetime | None = None


@dataclass(frozen=True)
class UserRecord:
    id: UUID
    full_name: str
    email: str
    role: str
    is_active: bool


@dataclass(frozen=True)
class ReviewQueueItem:
    """A SUBMITTED record waiting for review."""

    kind: EntityKind
    entity_id: UUID
    reference_id: str
    display_name: str
    created_by: UUID
    submitted_at: datetime
    days_pending: int
    pending_level: PendingLevel


@dataclass(frozen=True)
class TaxStats:
    """Collection figures for one tax year (or all years when tax_year is None)."""

    tax_year: int | None
    assessment_count: int
    total_assessed: Decimal
    total_paid: Decimal
    total_outstanding: Decimal
    collection_rate: Decimal
    status_counts: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class Page(Generic[T]):
    """One page of a paginated listing plus the unpaginated total."""

    items: tuple[T, ...]
    total: int
    limit: int
    offset: int

    @property
    def has_more(self) -> bool:
        return self.offset + len(self.items) < self.total
