"""
Module: lms_kernel.selectors.tax_selector
Responsibility: Read side of the tax ledger: assessment snapshots with
    derived status, assessment detail with payments, filtered listings and
    per-year collection statistics.

Status is derived on every read from (assessed, paid, due_date, today).
The SQL status filter below expresses the same rule as
``lms_kernel.domain.ledger.derive_status``.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import and_, func, select
from sqlalchemy.sql.elements import ColumnElement

from lms_kernel.db.types import ZERO, round_money
from lms_kernel.domain.dtos import (
    AssessmentDetail,
    AssessmentSnapshot,
    Page,
    TaxStats,
)
from lms_kernel.domain.ledger import collection_rate, derive_status
from lms_kernel.domain.values import TaxStatus
from lms_kernel.exceptions import AssessmentNotFoundError
from lms_kernel.models.tax import TaxAssessment, TaxPayment
from lms_kernel.selectors.base import BaseSelector


def status_condition(status: TaxStatus, today: date) -> ColumnElement[bool]:
    """SQL predicate selecting assessments whose derived status is ``status``."""
    a = TaxAssessment
    owing = and_(a.assessed_amount > 0, a.outstanding_amount > 0)
    if status is TaxStatus.NOT_ASSESSED:
        return a.assessed_amount == 0
    if status is TaxStatus.PAID:
        return and_(a.assessed_amount > 0, a.outstanding_amount <= 0)
    if status is TaxStatus.OVERDUE:
        return and_(owing, a.due_date < today)
    if status is TaxStatus.PARTIAL:
        return and_(owing, a.due_date >= today, a.paid_amount > 0)
    return and_(owing, a.due_date >= today, a.paid_amount <= 0)


def _money(value) -> Decimal:
    return round_money(Decimal(str(value))) if value is not None else Decimal("0.00")


class TaxSelector(BaseSelector):

    def _load(self, assessment_id: UUID) -> TaxAssessment:
        row = self.session.execute(
            select(TaxAssessment).where(TaxAssessment.id == assessment_id)
        ).scalar_one_or_none()
        if row is None:
            raise AssessmentNotFoundError(str(assessment_id))
        return row

    def get_assessment(self, assessment_id: UUID, today: date) -> AssessmentSnapshot:
        """
        Raises:
            AssessmentNotFoundError: no such assessment.
        """
        return self._load(assessment_id).to_dto(today)

    def get_detail(self, assessment_id: UUID, today: date) -> AssessmentDetail:
        """Assessment plus its payments, newest first."""
        assessment = self._load(assessment_id)
        payments = self.session.execute(
            select(TaxPayment)
            .where(TaxPayment.assessment_id == assessment_id)
            .order_by(TaxPayment.created_at.desc(), TaxPayment.payment_date.desc())
        ).scalars()
        return AssessmentDetail(
            assessment=assessment.to_dto(today),
            payments=tuple(p.to_dto() for p in payments),
        )

    def for_property_year(self, property_id: UUID, tax_year: int) -> UUID | None:
        return self.session.execute(
            select(TaxAssessment.id).where(
                TaxAssessment.property_id == property_id,
                TaxAssessment.tax_year == tax_year,
            )
        ).scalar_one_or_none()

    def list_assessments(
        self,
        today: date,
        *,
        status: TaxStatus | None = None,
        property_id: UUID | None = None,
        tax_year: int | None = None,
        include_archived: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> Page[AssessmentSnapshot]:
        self._check_page(limit, offset)

        conditions = []
        if not include_archived:
            conditions.append(TaxAssessment.is_archived.is_(False))
        if status is not None:
            conditions.append(status_condition(status, today))
        if property_id is not None:
            conditions.append(TaxAssessment.property_id == property_id)
        if tax_year is not None:
            conditions.append(TaxAssessment.tax_year == tax_year)

        total = self.session.execute(
            select(func.count()).select_from(TaxAssessment).where(*conditions)
        ).scalar_one()
        rows = self.session.execute(
            select(TaxAssessment)
            .where(*conditions)
            .order_by(TaxAssessment.tax_year.desc(), TaxAssessment.reference_id)
            .limit(limit)
            .offset(offset)
        ).scalars()

        return Page(
            items=tuple(row.to_dto(today) for row in rows),
            total=total,
            limit=limit,
            offset=offset,
        )

    def stats(
        self,
        today: date,
        *,
        tax_year: int | None = None,
        include_archived: bool = False,
    ) -> TaxStats:
        """Counts, totals, collection rate and status breakdown."""
        conditions = []
        if not include_archived:
            conditions.append(TaxAssessment.is_archived.is_(False))
        if tax_year is not None:
            conditions.append(TaxAssessment.tax_year == tax_year)

        rows = self.session.execute(
            select(
                TaxAssessment.assessed_amount,
                TaxAssessment.paid_amount,
                TaxAssessment.outstanding_amount,
                TaxAssessment.due_date,
            ).where(*conditions)
        ).all()

        total_assessed = total_paid = total_outstanding = ZERO
        status_counts = {status.value: 0 for status in TaxStatus}
        for assessed, paid, outstanding, due_date in rows:
            assessed, paid, outstanding = _money(assessed), _money(paid), _money(outstanding)
            total_assessed += assessed
            total_paid += paid
            total_outstanding += outstanding
            status_counts[derive_status(assessed, paid, due_date, today).value] += 1

        return TaxStats(
            tax_year=tax_year,
            assessment_count=len(rows),
            total_assessed=round_money(total_assessed),
            total_paid=round_money(total_paid),
            total_outstanding=round_money(total_outstanding),
            collection_rate=collection_rate(total_assessed, total_paid),
            status_counts=status_counts,
        )
