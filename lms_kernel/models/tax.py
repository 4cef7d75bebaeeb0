"""
Module: lms_kernel.models.tax
Responsibility: ORM persistence for tax assessments and tax payments.
Architecture position: Kernel > Models.

Invariants enforced:
    - One assessment per (property_id, tax_year) (unique constraint).
    - base_assessment >= exemption_amount >= 0.
    - assessed_amount = base_assessment - exemption_amount.
    - outstanding_amount = assessed_amount - paid_amount >= 0.
    - Derived-amount checks compare within half a cent so they hold on
      backends that store Numeric as binary floating point (SQLite).
    - Status is NOT a column.  It is derived from the amounts, the due date
      and today's date on every read (``lms_kernel.domain.ledger``).
    - Payments are append-only: amount_paid > 0, receipt_number unique,
      no UPDATE, no DELETE.

Failure modes:
    - IntegrityError on duplicate (property_id, tax_year) or receipt_number.
    - ImmutabilityViolationError on payment UPDATE/DELETE.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column

from lms_kernel.db.base import Base, TrackedBase, UUIDString
from lms_kernel.domain.clock import as_utc
from lms_kernel.exceptions import ImmutabilityViolationError

if TYPE_CHECKING:
    from lms_kernel.domain.dtos import AssessmentSnapshot, PaymentRecord


class TaxAssessment(TrackedBase):
    """One yearly tax obligation of one property."""

    __tablename__ = "tax_assessments"

    __table_args__ = (
        UniqueConstraint("property_id", "tax_year", name="uq_tax_assessments_property_year"),
        CheckConstraint("base_assessment >= 0", name="ck_tax_assessments_base_non_negative"),
        CheckConstraint(
            "exemption_amount >= 0 AND exemption_amount <= base_assessment",
            name="ck_tax_assessments_exemption_range",
        ),
        CheckConstraint(
            "ABS(assessed_amount - (base_assessment - exemption_amount)) < 0.005",
            name="ck_tax_assessments_assessed_derived",
        ),
        CheckConstraint("paid_amount >= 0", name="ck_tax_assessments_paid_non_negative"),
        CheckConstraint(
            "outstanding_amount >= 0 AND "
            "ABS(outstanding_amount - (assessed_amount - paid_amount)) < 0.005",
            name="ck_tax_assessments_outstanding_derived",
        ),
        CheckConstraint("version >= 1", name="ck_tax_assessments_version_positive"),
        Index("ix_tax_assessments_year_archived", "tax_year", "is_archived"),
    )

    reference_id: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)
    property_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("properties.id"), nullable=False
    )
    tax_year: Mapped[int] = mapped_column(Integer, nullable=False)
    base_assessment: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    exemption_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    assessed_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    paid_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    outstanding_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    assessment_date: Mapped[date] = mapped_column(Date, nullable=False)
    is_archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("users.id"), nullable=False
    )
    version: Mapped[int] = mapped_column(BigInteger, nullable=False, default=1)

    def __repr__(self) -> str:
        return (
            f"<TaxAssessment {self.reference_id} year={self.tax_year} "
            f"outstanding={self.outstanding_amount}>"
        )

    def to_dto(self, today: date) -> AssessmentSnapshot:
        """Snapshot with status derived as of ``today``."""
        from lms_kernel.domain.dtos import AssessmentSnapshot
        from lms_kernel.domain.ledger import derive_status

        return AssessmentSnapshot(
            id=self.id,
            reference_id=self.reference_id,
            property_id=self.property_id,
            tax_year=self.tax_year,
            base_assessment=self.base_assessment,
            exemption_amount=self.exemption_amount,
            assessed_amount=self.assessed_amount,
            paid_amount=self.paid_amount,
            outstanding_amount=self.outstanding_amount,
            due_date=self.due_date,
            assessment_date=self.assessment_date,
            status=derive_status(
                self.assessed_amount, self.paid_amount, self.due_date, today
            ),
            is_archived=self.is_archived,
            created_by=self.created_by,
            created_at=as_utc(self.created_at),
            updated_at=as_utc(self.updated_at),
            version=self.version,
            notes=self.notes,
        )


class TaxPayment(Base):
    """A payment applied to an assessment.  Append-only."""

    __tablename__ = "tax_payments"

    __table_args__ = (
        CheckConstraint("amount_paid > 0", name="ck_tax_payments_amount_positive"),
        CheckConstraint(
            "payment_method IN ('CASH', 'BANK_TRANSFER', 'CHECK', "
            "'MOBILE_MONEY', 'CREDIT_CARD')",
            name="ck_tax_payments_valid_method",
        ),
        Index("ix_tax_payments_assessment", "assessment_id", "created_at"),
    )

    assessment_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("tax_assessments.id"), nullable=False
    )
    amount_paid: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    payment_method: Mapped[str] = mapped_column(String(20), nullable=False)
    receipt_number: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)
    collected_by: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("users.id"), nullable=False
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<TaxPayment {self.receipt_number} amount={self.amount_paid}>"

    def to_dto(self) -> PaymentRecord:
        from lms_kernel.domain.dtos import PaymentRecord
        from lms_kernel.domain.values import PaymentMethod

        return PaymentRecord(
            id=self.id,
            assessment_id=self.assessment_id,
            amount_paid=self.amount_paid,
            payment_date=self.payment_date,
            payment_method=PaymentMethod(self.payment_method),
            receipt_number=self.receipt_number,
            collected_by=self.collected_by,
            created_at=as_utc(self.created_at),
            notes=self.notes,
        )


# =============================================================================
# ORM-Level Immutability for Payments (Append-Only)
# =============================================================================


@event.listens_for(TaxPayment, "before_update")
def prevent_payment_update(mapper, connection, target):
    """Prevent updates to tax payment records."""
    raise ImmutabilityViolationError(
        entity_type="TaxPayment",
        entity_id=str(target.id),
        reason="Tax payments are immutable -- cannot modify",
    )


@event.listens_for(TaxPayment, "before_delete")
def prevent_payment_delete(mapper, connection, target):
    """Prevent deletion of tax payment records."""
    raise ImmutabilityViolationError(
        entity_type="TaxPayment",
        entity_id=str(target.id),
        reason="Tax payments are immutable -- cannot delete",
    )
