"""
PaymentLedger -- tax assessments and the payments applied to them.

Responsibility:
    Creates assessments for approved properties and applies payments.
    Derived amounts (assessed, outstanding) are recomputed explicitly in the
    application layer, inside the same transaction as the payment insert,
    using ``domain.ledger``.  Status is never stored; it is derived from
    (assessed, paid, due_date, today) on every read.

Architecture position:
    Kernel > Services.  Same transaction discipline as WorkflowEngine:
    validate -> load -> authorize -> precondition -> conditional write ->
    commit -> best-effort audit/activity.

Invariants enforced:
    - outstanding_amount = assessed_amount - paid_amount >= 0 after every
      payment.  An overpayment is rejected (OverpaymentError carrying the
      current outstanding amount); it is never clamped.
    - One assessment per (property, tax year).
    - Receipt numbers are globally unique.  Generated numbers are retried on
      collision; a caller-supplied duplicate is rejected.
    - Archived assessments accept no payments.

Failure modes:
    - InvalidAmountError / ValidationError: malformed input.
    - EntityNotFoundError / AssessmentNotFoundError.
    - ForbiddenError.
    - DuplicateAssessmentError, DuplicateReceiptError.
    - InvalidTransitionError: payment on an archived assessment, or
      archiving an already-archived one.
    - ConflictError: a concurrent payment changed the assessment first.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from lms_kernel.db.types import MONEY_DECIMAL_PLACES, ZERO
from lms_kernel.domain.clock import Clock, SystemClock
from lms_kernel.domain.dtos import AssessmentSnapshot, FieldChange, PaymentResult
from lms_kernel.domain.ledger import (
    apply_payment_amounts,
    compute_assessed_amount,
    derive_status,
    parse_money,
)
from lms_kernel.domain.values import (
    TAX_ASSESSMENT_ENTITY,
    Actor,
    EntityKind,
    EntityStatus,
    LogAction,
    Operation,
    PaymentMethod,
)
from lms_kernel.domain.workflow import require_authorized
from lms_kernel.exceptions import (
    AssessmentNotFoundError,
    DuplicateAssessmentError,
    DuplicateReceiptError,
    EntityNotFoundError,
    InvalidTransitionError,
    ValidationError,
)
from lms_kernel.logging_config import get_logger
from lms_kernel.models.property import Property
from lms_kernel.models.tax import TaxAssessment, TaxPayment
from lms_kernel.services.activity_log_service import ActivityLog
from lms_kernel.services.audit_trail import AuditTrail
from lms_kernel.services.base import BaseService, operation_scope
from lms_kernel.services.conditional_write import conditional_update
from lms_kernel.services.secondary_effects import DEFAULT_ATTEMPTS, SecondaryEffects
from lms_kernel.services.sequence_service import SequenceService

logger = get_logger("services.ledger")

MIN_TAX_YEAR = 1900
MAX_TAX_YEAR = 2200


def _as_date(field: str, value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise ValidationError(f"{field} must be an ISO date (YYYY-MM-DD)", field=field) from None


def _payment_method(value: Any) -> PaymentMethod:
    if isinstance(value, PaymentMethod):
        return value
    try:
        return PaymentMethod(str(value).strip().upper())
    except ValueError:
        allowed = ", ".join(m.value for m in PaymentMethod)
        raise ValidationError(
            f"Invalid payment method {value!r}; expected one of {allowed}",
            field="payment_method",
        ) from None


class PaymentLedger(BaseService):
    """Assessment creation, payment application and archiving."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        *,
        auto_commit: bool = True,
        money_decimal_places: int = MONEY_DECIMAL_PLACES,
        assessment_prefix: str = "TAX",
        assessment_number_width: int = 6,
        receipt_prefix: str = "RCP",
        receipt_number_width: int = 5,
        receipt_generation_attempts: int = 5,
        secondary_effect_attempts: int = DEFAULT_ATTEMPTS,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._auto_commit = auto_commit
        self._decimal_places = money_decimal_places
        self._assessment_prefix = assessment_prefix
        self._assessment_width = assessment_number_width
        self._receipt_prefix = receipt_prefix
        self._receipt_width = receipt_number_width
        self._receipt_attempts = max(1, receipt_generation_attempts)
        self._effect_attempts = secondary_effect_attempts
        self._sequences = SequenceService(session)

    # =========================================================================
    # Assessments
    # =========================================================================

    def create_assessment(
        self,
        actor: Actor,
        property_id: UUID,
        tax_year: int,
        base_assessment: Any,
        exemption_amount: Any,
        due_date: Any,
        assessment_date: Any,
        notes: str | None = None,
    ) -> AssessmentSnapshot:
        """
        Assess one property for one tax year.

        assessed = base - exemption; paid = 0; outstanding = assessed.

        Raises:
            ValidationError: bad amounts, dates or year, or the property is
                not APPROVED.
            DuplicateAssessmentError: the property already has an
                assessment for ``tax_year``.
        """
        with operation_scope(
            self.session,
            logger,
            Operation.CREATE_ASSESSMENT.value,
            actor,
            property_id,
            auto_commit=self._auto_commit,
            extra={"tax_year": tax_year},
        ):
            base = parse_money(
                "base_assessment", base_assessment, decimal_places=self._decimal_places
            )
            exemption = parse_money(
                "exemption_amount", exemption_amount, decimal_places=self._decimal_places
            )
            assessed = compute_assessed_amount(base, exemption)
            if isinstance(tax_year, bool) or not isinstance(tax_year, int) or not (
                MIN_TAX_YEAR <= tax_year <= MAX_TAX_YEAR
            ):
                raise ValidationError(
                    f"tax_year must be a year between {MIN_TAX_YEAR} and {MAX_TAX_YEAR}",
                    field="tax_year",
                )
            due = _as_date("due_date", due_date)
            assessed_on = _as_date("assessment_date", assessment_date)
            if due < assessed_on:
                raise ValidationError(
                    "due_date must not be before assessment_date", field="due_date"
                )

            prop = self.session.execute(
                select(Property).where(Property.id == property_id)
            ).scalar_one_or_none()
            if prop is None:
                raise EntityNotFoundError(EntityKind.PROPERTY.value, str(property_id))

            require_authorized(
                actor, Operation.CREATE_ASSESSMENT, subject="tax assessments"
            )

            if prop.status != EntityStatus.APPROVED.value:
                raise ValidationError(
                    "Tax assessments can only be created for APPROVED properties",
                    field="property_id",
                )
            if self._assessment_exists(property_id, tax_year):
                raise DuplicateAssessmentError(str(property_id), tax_year)

            now = self._clock.now()
            reference_id = self._sequences.next_reference(
                self._assessment_prefix, now.year, self._assessment_width
            )
            assessment = TaxAssessment(
                reference_id=reference_id,
                property_id=property_id,
                tax_year=tax_year,
                base_assessment=base,
                exemption_amount=exemption,
                assessed_amount=assessed,
                paid_amount=ZERO,
                outstanding_amount=assessed,
                due_date=due,
                assessment_date=assessed_on,
                is_archived=False,
                notes=(notes or "").strip() or None,
                created_by=actor.id,
                version=1,
                created_at=now,
                updated_at=now,
            )
            savepoint = self.session.begin_nested()
            try:
                self.session.add(assessment)
                self.session.flush()
                savepoint.commit()
            except IntegrityError:
                savepoint.rollback()
                if self._assessment_exists(property_id, tax_year):
                    raise DuplicateAssessmentError(str(property_id), tax_year) from None
                raise

            if self._auto_commit:
                self.session.commit()

            today = self._clock.today()
            snapshot = assessment.to_dto(today)
            logger.info(
                "assessment_created",
                extra={
                    "assessment_id": str(assessment.id),
                    "reference_id": reference_id,
                    "tax_year": tax_year,
                    "assessed_amount": str(assessed),
                    "status": snapshot.status.value,
                },
            )

            changes = [
                FieldChange("base_assessment", None, base),
                FieldChange("exemption_amount", None, exemption),
                FieldChange("assessed_amount", None, assessed),
                FieldChange("paid_amount", None, ZERO),
                FieldChange("outstanding_amount", None, assessed),
                FieldChange("status", None, snapshot.status),
            ]
            metadata = {
                "reference_id": reference_id,
                "property_id": property_id,
                "property_reference_id": prop.reference_id,
                "tax_year": tax_year,
                "assessed_amount": assessed,
            }
            self._after_write(
                actor,
                assessment.id,
                LogAction.ASSESSMENT_CREATED,
                changes,
                metadata,
                now,
            )
            return snapshot

    def _assessment_exists(self, property_id: UUID, tax_year: int) -> bool:
        return (
            self.session.execute(
                select(TaxAssessment.id).where(
                    TaxAssessment.property_id == property_id,
                    TaxAssessment.tax_year == tax_year,
                )
            ).first()
            is not None
        )

    # =========================================================================
    # Payments
    # =========================================================================

    def apply_payment(
        self,
        actor: Actor,
        assessment_id: UUID,
        amount_paid: Any,
        payment_date: Any,
        payment_method: Any,
        receipt_number: str | None = None,
        notes: str | None = None,
    ) -> PaymentResult:
        """
        Apply a payment and recompute paid/outstanding atomically.

        The payment row and the amount update commit together or not at
        all.  The amount update is conditional on the observed version.

        Raises:
            OverpaymentError: amount exceeds the current outstanding amount;
                nothing is written.
        """
        with operation_scope(
            self.session,
            logger,
            Operation.APPLY_PAYMENT.value,
            actor,
            assessment_id,
            auto_commit=self._auto_commit,
        ):
            amount = parse_money(
                "amount_paid", amount_paid, positive=True, decimal_places=self._decimal_places
            )
            today = self._clock.today()
            paid_on = _as_date("payment_date", payment_date)
            if paid_on > today:
                raise ValidationError(
                    "payment_date must not be in the future", field="payment_date"
                )
            method = _payment_method(payment_method)
            supplied_receipt = (receipt_number or "").strip() or None

            assessment = self._load(assessment_id)
            require_authorized(actor, Operation.APPLY_PAYMENT, subject="payments")

            if assessment.is_archived:
                raise InvalidTransitionError(
                    TAX_ASSESSMENT_ENTITY,
                    str(assessment_id),
                    "ARCHIVED",
                    Operation.APPLY_PAYMENT.value,
                    message="Payments cannot be applied to an archived assessment",
                )

            before_status = derive_status(
                assessment.assessed_amount,
                assessment.paid_amount,
                assessment.due_date,
                today,
            )
            before_paid = assessment.paid_amount
            before_outstanding = assessment.outstanding_amount
            figures = apply_payment_amounts(
                str(assessment_id),
                assessment.assessed_amount,
                assessment.paid_amount,
                amount,
                assessment.due_date,
                today,
            )

            now = self._clock.now()
            assessment = conditional_update(
                self.session,
                TaxAssessment,
                assessment_id,
                assessment.version,
                {
                    "paid_amount": figures.paid_amount,
                    "outstanding_amount": figures.outstanding_amount,
                    "updated_at": now,
                },
                entity_type=TAX_ASSESSMENT_ENTITY,
            )

            payment = self._insert_payment(
                assessment_id=assessment_id,
                amount=amount,
                payment_date=paid_on,
                method=method,
                receipt_number=supplied_receipt,
                collected_by=actor.id,
                notes=(notes or "").strip() or None,
                now=now,
            )

            if self._auto_commit:
                self.session.commit()

            logger.info(
                "payment_applied",
                extra={
                    "assessment_id": str(assessment_id),
                    "receipt_number": payment.receipt_number,
                    "amount_paid": str(amount),
                    "outstanding_amount": str(figures.outstanding_amount),
                    "status": figures.status.value,
                },
            )

            changes = [
                FieldChange("paid_amount", before_paid, figures.paid_amount),
                FieldChange("outstanding_amount", before_outstanding, figures.outstanding_amount),
                FieldChange("status", before_status, figures.status),
            ]
            metadata = {
                "reference_id": assessment.reference_id,
                "amount_paid": amount,
                "payment_method": method,
                "receipt_number": payment.receipt_number,
                "payment_date": paid_on,
                "outstanding_amount": figures.outstanding_amount,
            }
            self._after_write(
                actor, assessment_id, LogAction.PAYMENT_ADDED, changes, metadata, now
            )

            return PaymentResult(
                payment=payment.to_dto(),
                assessment=assessment.to_dto(today),
                is_fully_paid=figures.is_fully_paid,
            )

    def _insert_payment(
        self,
        *,
        assessment_id: UUID,
        amount: Decimal,
        payment_date: date,
        method: PaymentMethod,
        receipt_number: str | None,
        collected_by: UUID,
        notes: str | None,
        now: datetime,
    ) -> TaxPayment:
        """Insert the payment row, generating a unique receipt number if needed."""

        def attempt(number: str) -> TaxPayment | None:
            payment = TaxPayment(
                assessment_id=assessment_id,
                amount_paid=amount,
                payment_date=payment_date,
                payment_method=method.value,
                receipt_number=number,
                collected_by=collected_by,
                notes=notes,
                created_at=now,
            )
            savepoint = self.session.begin_nested()
            try:
                self.session.add(payment)
                self.session.flush()
                savepoint.commit()
                return payment
            except IntegrityError:
                savepoint.rollback()
                return None

        if receipt_number is not None:
            if self._receipt_exists(receipt_number):
                raise DuplicateReceiptError(receipt_number)
            payment = attempt(receipt_number)
            if payment is None:
                raise DuplicateReceiptError(receipt_number)
            return payment

        candidate = ""
        for attempt_no in range(1, self._receipt_attempts + 1):
            candidate = self._sequences.next_reference(
                self._receipt_prefix, now.year, self._receipt_width
            )
            if self._receipt_exists(candidate):
                logger.warning(
                    "receipt_number_collision",
                    extra={"receipt_number": candidate, "attempt": attempt_no},
                )
                continue
            payment = attempt(candidate)
            if payment is not None:
                return payment
            logger.warning(
                "receipt_number_collision",
                extra={"receipt_number": candidate, "attempt": attempt_no},
            )
        raise DuplicateReceiptError(candidate)

    def _receipt_exists(self, receipt_number: str) -> bool:
        return (
            self.session.execute(
                select(TaxPayment.id).where(TaxPayment.receipt_number == receipt_number)
            ).first()
            is not None
        )

    # =========================================================================
    # Archiving
    # =========================================================================

    def archive_assessment(self, actor: Actor, assessment_id: UUID) -> AssessmentSnapshot:
        """Hide an assessment from default listings and block payments.  Admin only."""
        return self._set_archived(actor, assessment_id, archived=True)

    def unarchive_assessment(self, actor: Actor, assessment_id: UUID) -> AssessmentSnapshot:
        return self._set_archived(actor, assessment_id, archived=False)

    def _set_archived(
        self, actor: Actor, assessment_id: UUID, *, archived: bool
    ) -> AssessmentSnapshot:
        operation = (
            Operation.ARCHIVE_ASSESSMENT if archived else Operation.UNARCHIVE_ASSESSMENT
        )
        with operation_scope(
            self.session,
            logger,
            operation.value,
            actor,
            assessment_id,
            auto_commit=self._auto_commit,
        ):
            assessment = self._load(assessment_id)
            require_authorized(actor, operation, subject="tax assessments")

            if assessment.is_archived == archived:
                state = "archived" if archived else "not archived"
                raise InvalidTransitionError(
                    TAX_ASSESSMENT_ENTITY,
                    str(assessment_id),
                    "ARCHIVED" if assessment.is_archived else "ACTIVE",
                    operation.value,
                    message=f"Tax assessment is already {state}",
                )

            now = self._clock.now()
            assessment = conditional_update(
                self.session,
                TaxAssessment,
                assessment_id,
                assessment.version,
                {"is_archived": archived, "updated_at": now},
                entity_type=TAX_ASSESSMENT_ENTITY,
            )
            if self._auto_commit:
                self.session.commit()

            action = LogAction.ARCHIVED if archived else LogAction.UNARCHIVED
            self._after_write(
                actor,
                assessment_id,
                action,
                [FieldChange("is_archived", not archived, archived)],
                {"reference_id": assessment.reference_id, "tax_year": assessment.tax_year},
                now,
            )
            return assessment.to_dto(self._clock.today())

    # =========================================================================
    # Helpers
    # =========================================================================

    def _load(self, assessment_id: UUID) -> TaxAssessment:
        row = self.session.execute(
            select(TaxAssessment)
            .where(TaxAssessment.id == assessment_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if row is None:
            raise AssessmentNotFoundError(str(assessment_id))
        return row

    def _after_write(
        self,
        actor: Actor,
        assessment_id: UUID,
        action: LogAction,
        changes: list[FieldChange],
        metadata: dict[str, Any],
        now: datetime,
    ) -> None:
        effects = SecondaryEffects(
            self.session,
            entity_type=TAX_ASSESSMENT_ENTITY,
            entity_id=assessment_id,
            attempts=self._effect_attempts,
        )
        audit = AuditTrail(self.session, self._clock)
        activity = ActivityLog(self.session, self._clock)
        effects.run(
            "audit",
            lambda: audit.record(
                TAX_ASSESSMENT_ENTITY, assessment_id, action, changes, actor.id, timestamp=now
            ),
        )
        effects.run(
            "activity",
            lambda: activity.record(
                TAX_ASSESSMENT_ENTITY, assessment_id, action, actor.id, metadata, timestamp=now
            ),
        )
        effects.commit(self._auto_commit)
