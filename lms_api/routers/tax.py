"""Tax assessments, payments, archiving and collection statistics."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from lms_api.dependencies import (
    get_actor,
    get_clock,
    get_db,
    get_payment_ledger,
    get_settings,
    page_params,
)
from lms_api.schemas import (
    ApplyPaymentRequest,
    AssessmentDetailOut,
    AssessmentOut,
    CreateAssessmentRequest,
    PageOut,
    PaymentResultOut,
    TaxStatsOut,
    page_out,
)
from lms_config import LmsSettings
from lms_kernel.domain.clock import Clock
from lms_kernel.domain.values import Actor, TaxStatus
from lms_kernel.selectors.tax_selector import TaxSelector
from lms_kernel.services.payment_ledger import PaymentLedger

router = APIRouter(prefix="/tax", tags=["Tax"])


@router.post(
    "/assessments", response_model=AssessmentOut, status_code=status.HTTP_201_CREATED
)
def create_assessment(
    body: CreateAssessmentRequest,
    actor: Actor = Depends(get_actor),
    ledger: PaymentLedger = Depends(get_payment_ledger),
):
    return AssessmentOut.model_validate(
        ledger.create_assessment(
            actor,
            body.property_id,
            body.tax_year,
            body.base_assessment,
            body.exemption_amount,
            body.due_date,
            body.assessment_date,
            notes=body.notes,
        )
    )


@router.get("/assessments", response_model=PageOut[AssessmentOut])
def list_assessments(
    tax_status: Optional[TaxStatus] = Query(default=None, alias="status"),
    property_id: Optional[UUID] = Query(default=None, alias="propertyId"),
    tax_year: Optional[int] = Query(default=None, alias="taxYear"),
    include_archived: bool = Query(default=False, alias="includeArchived"),
    limit: Optional[int] = Query(default=None),
    offset: int = Query(default=0),
    actor: Actor = Depends(get_actor),
    session: Session = Depends(get_db),
    settings: LmsSettings = Depends(get_settings),
    clock: Clock = Depends(get_clock),
):
    limit, offset = page_params(settings, limit, offset)
    page = TaxSelector(session).list_assessments(
        clock.today(),
        status=tax_status,
        property_id=property_id,
        tax_year=tax_year,
        include_archived=include_archived,
        limit=limit,
        offset=offset,
    )
    return page_out(page, AssessmentOut)


@router.get("/assessments/{assessment_id}", response_model=AssessmentDetailOut)
def get_assessment(
    assessment_id: UUID,
    actor: Actor = Depends(get_actor),
    session: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    return AssessmentDetailOut.model_validate(
        TaxSelector(session).get_detail(assessment_id, clock.today())
    )


@router.post(
    "/assessments/{assessment_id}/payments",
    response_model=PaymentResultOut,
    status_code=status.HTTP_201_CREATED,
)
def apply_payment(
    assessment_id: UUID,
    body: ApplyPaymentRequest,
    actor: Actor = Depends(get_actor),
    ledger: PaymentLedger = Depends(get_payment_ledger),
):
    return PaymentResultOut.model_validate(
        ledger.apply_payment(
            actor,
            assessment_id,
            body.amount_paid,
            body.payment_date,
            body.payment_method,
            receipt_number=body.receipt_number,
            notes=body.notes,
        )
    )


@router.post("/assessments/{assessment_id}/archive", response_model=AssessmentOut)
def archive_assessment(
    assessment_id: UUID,
    actor: Actor = Depends(get_actor),
    ledger: PaymentLedger = Depends(get_payment_ledger),
):
    return AssessmentOut.model_validate(ledger.archive_assessment(actor, assessment_id))


@router.post("/assessments/{assessment_id}/unarchive", response_model=AssessmentOut)
def unarchive_assessment(
    assessment_id: UUID,
    actor: Actor = Depends(get_actor),
    ledger: PaymentLedger = Depends(get_payment_ledger),
):
    return AssessmentOut.model_validate(ledger.unarchive_assessment(actor, assessment_id))


@router.get("/stats", response_model=TaxStatsOut)
def tax_stats(
    year: Optional[int] = Query(default=None),
    include_archived: bool = Query(default=False, alias="includeArchived"),
    actor: Actor = Depends(get_actor),
    session: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    return TaxStatsOut.model_validate(
        TaxSelector(session).stats(
            clock.today(), tax_year=year, include_archived=include_archived
        )
    )
