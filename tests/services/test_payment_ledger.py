"""
Tests for PaymentLedger.

Coverage:
- Assessment creation: derived amounts, validation, approved-property rule,
  one assessment per property and year, reference numbers
- Payment application: partial/full payment, overdue status, overpayment
  rejected with nothing written, receipts (generated and supplied)
- Archiving: admin only, hides from listings, blocks payments
- Audit and activity entries for ledger operations
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from lms_kernel.domain.values import EntityKind, PaymentMethod, TaxStatus
from lms_kernel.exceptions import (
    AssessmentNotFoundError,
    DuplicateAssessmentError,
    DuplicateReceiptError,
    EntityNotFoundError,
    ForbiddenError,
    InvalidAmountError,
    InvalidTransitionError,
    OverpaymentError,
    ValidationError,
)
from lms_kernel.models.tax import TaxPayment
from lms_kernel.selectors.activity_selector import ActivitySelector
from lms_kernel.selectors.audit_selector import AuditFilters, AuditSelector
from lms_kernel.selectors.tax_selector import TaxSelector
from lms_kernel.services.payment_ledger import PaymentLedger

PAY_DATE = date(2026, 2, 20)


def _payment_count(session, assessment_id) -> int:
    return session.execute(
        select(func.count()).select_from(TaxPayment)
        .where(TaxPayment.assessment_id == assessment_id)
    ).scalar_one()


# =============================================================================
# Assessments
# =============================================================================


class TestCreateAssessment:

    def test_amounts_are_derived(self, make_assessment):
        assessment = make_assessment(base=Decimal("5000"), exemption=Decimal("500"))

        assert assessment.assessed_amount == Decimal("4500.00")
        assert assessment.paid_amount == Decimal("0")
        assert assessment.outstanding_amount == Decimal("4500.00")
        assert assessment.status is TaxStatus.ASSESSED
        assert assessment.is_archived is False
        assert assessment.version == 1

    def test_reference_numbers_are_sequential(self, make_assessment):
        first = make_assessment(tax_year=2025)
        second = make_assessment(tax_year=2026)

        assert first.reference_id == "TAX-2026-000001"
        assert second.reference_id == "TAX-2026-000002"

    def test_full_exemption_is_not_assessed(self, make_assessment):
        assessment = make_assessment(base=Decimal("1000"), exemption=Decimal("1000"))
        assert assessment.status is TaxStatus.NOT_ASSESSED

    def test_past_due_date_is_overdue_immediately(self, make_assessment):
        assessment = make_assessment(
            due_date=date(2026, 2, 1), assessment_date=date(2026, 1, 1)
        )
        assert assessment.status is TaxStatus.OVERDUE

    def test_exemption_above_base_rejected(self, make_assessment):
        with pytest.raises(InvalidAmountError) as exc_info:
            make_assessment(base=Decimal("100"), exemption=Decimal("150"))
        assert exc_info.value.field == "exemption_amount"

    def test_due_date_before_assessment_date_rejected(self, make_assessment):
        with pytest.raises(ValidationError) as exc_info:
            make_assessment(due_date=date(2026, 1, 1), assessment_date=date(2026, 1, 15))
        assert exc_info.value.field == "due_date"

    @pytest.mark.parametrize("year", [1800, 2500])
    def test_tax_year_out_of_range(self, make_assessment, year):
        with pytest.raises(ValidationError) as exc_info:
            make_assessment(tax_year=year)
        assert exc_info.value.field == "tax_year"

    def test_one_assessment_per_property_and_year(self, make_assessment, approved_property):
        make_assessment(tax_year=2026)

        with pytest.raises(DuplicateAssessmentError) as exc_info:
            make_assessment(tax_year=2026)
        assert exc_info.value.tax_year == 2026
        assert exc_info.value.kind == "DuplicateAssessment"

    def test_property_must_be_approved(self, make_property, payment_ledger, inputter):
        draft = make_property()
        with pytest.raises(ValidationError) as exc_info:
            payment_ledger.create_assessment(
                inputter, draft.id, 2026, "1000", "0", date(2026, 6, 30), date(2026, 1, 1)
            )
        assert exc_info.value.field == "property_id"

    def test_unknown_property(self, payment_ledger, inputter):
        with pytest.raises(EntityNotFoundError):
            payment_ledger.create_assessment(
                inputter, uuid4(), 2026, "1000", "0", date(2026, 6, 30), date(2026, 1, 1)
            )

    def test_viewer_cannot_assess(self, make_assessment, viewer):
        with pytest.raises(ForbiddenError):
            make_assessment(actor=viewer)

    def test_creation_is_audited_and_logged(self, session, make_assessment, inputter):
        assessment = make_assessment()

        audit = AuditSelector(session).query(
            entity_id=assessment.id, filters=AuditFilters(action="ASSESSMENT_CREATED")
        ).items
        fields = {entry.field: entry.new_value for entry in audit}
        assert fields["assessed_amount"] == "4500.00"
        assert fields["status"] == "ASSESSED"

        activity = ActivitySelector(session).query(entity_id=assessment.id).items
        assert [a.action for a in activity] == ["ASSESSMENT_CREATED"]
        assert activity[0].metadata["tax_year"] == 2026
        assert activity[0].performed_by == inputter.id


# =============================================================================
# Payments
# =============================================================================


class TestApplyPayment:

    def test_partial_then_full_payment(self, make_assessment, payment_ledger, inputter):
        assessment = make_assessment()

        first = payment_ledger.apply_payment(
            inputter, assessment.id, "2000", PAY_DATE, "CASH"
        )
        assert first.assessment.paid_amount == Decimal("2000.00")
        assert first.assessment.outstanding_amount == Decimal("2500.00")
        assert first.assessment.status is TaxStatus.PARTIAL
        assert first.is_fully_paid is False

        second = payment_ledger.apply_payment(
            inputter, assessment.id, "2500", PAY_DATE, PaymentMethod.BANK_TRANSFER
        )
        assert second.assessment.outstanding_amount == Decimal("0")
        assert second.assessment.status is TaxStatus.PAID
        assert second.is_fully_paid is True
        assert second.assessment.version == assessment.version + 2

    def test_overdue_regardless_of_payments(
        self, make_assessment, payment_ledger, inputter, deterministic_clock
    ):
        assessment = make_assessment(
            base=Decimal("1000"), exemption=Decimal("0"),
            due_date=date(2026, 2, 1), assessment_date=date(2026, 1, 1),
        )
        assert assessment.status is TaxStatus.OVERDUE

        result = payment_ledger.apply_payment(
            inputter, assessment.id, "400", PAY_DATE, "CASH"
        )
        assert result.assessment.status is TaxStatus.OVERDUE

    def test_overpayment_rejected_and_nothing_written(
        self, session, make_assessment, payment_ledger, inputter
    ):
        assessment = make_assessment(base=Decimal("1000"), exemption=Decimal("0"))

        with pytest.raises(OverpaymentError) as exc_info:
            payment_ledger.apply_payment(inputter, assessment.id, "1001", PAY_DATE, "CASH")

        assert exc_info.value.outstanding == Decimal("1000.00")
        assert exc_info.value.details["outstanding"] == Decimal("1000.00")
        assert _payment_count(session, assessment.id) == 0
        current = TaxSelector(session).get_assessment(assessment.id, date(2026, 3, 1))
        assert current.paid_amount == Decimal("0")
        assert current.version == assessment.version

    @pytest.mark.parametrize("amount", ["0", "-5", "12.345", "abc"])
    def test_invalid_amounts(self, make_assessment, payment_ledger, inputter, amount):
        assessment = make_assessment()
        with pytest.raises(InvalidAmountError):
            payment_ledger.apply_payment(inputter, assessment.id, amount, PAY_DATE, "CASH")

    def test_future_payment_date_rejected(self, make_assessment, payment_ledger, inputter):
        assessment = make_assessment()
        with pytest.raises(ValidationError) as exc_info:
            payment_ledger.apply_payment(
                inputter, assessment.id, "10", date(2026, 3, 2), "CASH"
            )
        assert exc_info.value.field == "payment_date"

    @pytest.mark.parametrize(
        "method, expected",
        [
            (PaymentMethod.CASH, PaymentMethod.CASH),
            (PaymentMethod.MOBILE_MONEY, PaymentMethod.MOBILE_MONEY),
            ("CASH", PaymentMethod.CASH),
            (" bank_transfer ", PaymentMethod.BANK_TRANSFER),
        ],
    )
    def test_payment_method_accepts_enum_and_text(
        self, make_assessment, payment_ledger, inputter, method, expected
    ):
        assessment = make_assessment()

        result = payment_ledger.apply_payment(
            inputter, assessment.id, "4500", PAY_DATE, method
        )

        assert result.payment.payment_method is expected
        assert result.assessment.status is TaxStatus.PAID
        assert result.is_fully_paid is True

    def test_unknown_payment_method(self, make_assessment, payment_ledger, inputter):
        assessment = make_assessment()
        with pytest.raises(ValidationError) as exc_info:
            payment_ledger.apply_payment(inputter, assessment.id, "10", PAY_DATE, "BARTER")
        assert exc_info.value.field == "payment_method"

    def test_unknown_assessment(self, payment_ledger, inputter):
        with pytest.raises(AssessmentNotFoundError):
            payment_ledger.apply_payment(inputter, uuid4(), "10", PAY_DATE, "CASH")

    def test_viewer_cannot_collect(self, make_assessment, payment_ledger, viewer):
        assessment = make_assessment()
        with pytest.raises(ForbiddenError):
            payment_ledger.apply_payment(viewer, assessment.id, "10", PAY_DATE, "CASH")

    def test_payment_is_audited_and_logged(
        self, session, make_assessment, payment_ledger, inputter, deterministic_clock
    ):
        assessment = make_assessment()
        deterministic_clock.advance(5)
        result = payment_ledger.apply_payment(
            inputter, assessment.id, "1500", PAY_DATE, "MOBILE_MONEY"
        )

        audit = AuditSelector(session).query(
            entity_id=assessment.id, filters=AuditFilters(action="PAYMENT_ADDED")
        ).items
        changes = {e.field: (e.old_value, e.new_value) for e in audit}
        assert changes["paid_amount"] == ("0.00", "1500.00")
        assert changes["outstanding_amount"] == ("4500.00", "3000.00")
        assert changes["status"] == ("ASSESSED", "PARTIAL")

        latest = ActivitySelector(session).query(entity_id=assessment.id).items[0]
        assert latest.action == "PAYMENT_ADDED"
        assert latest.metadata["receipt_number"] == result.payment.receipt_number
        assert latest.metadata["amount_paid"] == "1500.00"
        assert latest.metadata["payment_method"] == "MOBILE_MONEY"


class TestReceipts:

    def test_generated_receipts_are_unique_and_sequential(
        self, make_assessment, payment_ledger, inputter
    ):
        assessment = make_assessment()
        receipts = [
            payment_ledger.apply_payment(
                inputter, assessment.id, "10", PAY_DATE, "CASH"
            ).payment.receipt_number
            for _ in range(3)
        ]
        assert receipts == ["RCP-2026-00001", "RCP-2026-00002", "RCP-2026-00003"]

    def test_supplied_receipt_is_kept(self, make_assessment, payment_ledger, inputter):
        assessment = make_assessment()
        result = payment_ledger.apply_payment(
            inputter, assessment.id, "10", PAY_DATE, "CHECK", receipt_number=" BANK-77 "
        )
        assert result.payment.receipt_number == "BANK-77"
        assert result.payment.payment_method is PaymentMethod.CHECK

    def test_duplicate_supplied_receipt_rejected(
        self, session, make_assessment, payment_ledger, inputter
    ):
        assessment = make_assessment()
        payment_ledger.apply_payment(
            inputter, assessment.id, "10", PAY_DATE, "CASH", receipt_number="R-1"
        )

        with pytest.raises(DuplicateReceiptError) as exc_info:
            payment_ledger.apply_payment(
                inputter, assessment.id, "10", PAY_DATE, "CASH", receipt_number="R-1"
            )
        assert exc_info.value.field == "receipt_number"
        assert _payment_count(session, assessment.id) == 1
        current = TaxSelector(session).get_assessment(assessment.id, date(2026, 3, 1))
        assert current.paid_amount == Decimal("10.00")

    def test_generated_receipt_skips_taken_number(
        self, captured_logs, make_assessment, payment_ledger, inputter
    ):
        assessment = make_assessment()
        payment_ledger.apply_payment(
            inputter, assessment.id, "10", PAY_DATE, "CASH", receipt_number="RCP-2026-00001"
        )

        result = payment_ledger.apply_payment(inputter, assessment.id, "10", PAY_DATE, "CASH")

        assert result.payment.receipt_number == "RCP-2026-00002"
        assert any(r["message"] == "receipt_number_collision" for r in captured_logs())


# =============================================================================
# Archiving
# =============================================================================


class TestArchive:

    def test_admin_archives_and_unarchives(self, make_assessment, payment_ledger, admin):
        assessment = make_assessment()

        archived = payment_ledger.archive_assessment(admin, assessment.id)
        assert archived.is_archived is True

        restored = payment_ledger.unarchive_assessment(admin, assessment.id)
        assert restored.is_archived is False
        assert restored.version == assessment.version + 2

    def test_non_admin_cannot_archive(self, make_assessment, payment_ledger, approver):
        assessment = make_assessment()
        with pytest.raises(ForbiddenError):
            payment_ledger.archive_assessment(approver, assessment.id)

    def test_archiving_twice_is_invalid(self, make_assessment, payment_ledger, admin):
        assessment = make_assessment()
        payment_ledger.archive_assessment(admin, assessment.id)

        with pytest.raises(InvalidTransitionError) as exc_info:
            payment_ledger.archive_assessment(admin, assessment.id)
        assert str(exc_info.value) == "Tax assessment is already archived"

    def test_unarchiving_active_assessment_is_invalid(
        self, make_assessment, payment_ledger, admin
    ):
        assessment = make_assessment()
        with pytest.raises(InvalidTransitionError):
            payment_ledger.unarchive_assessment(admin, assessment.id)

    def test_archived_assessment_accepts_no_payments(
        self, make_assessment, payment_ledger, admin, inputter
    ):
        assessment = make_assessment()
        payment_ledger.archive_assessment(admin, assessment.id)

        with pytest.raises(InvalidTransitionError) as exc_info:
            payment_ledger.apply_payment(inputter, assessment.id, "10", PAY_DATE, "CASH")
        assert "archived" in str(exc_info.value)

    def test_archive_is_logged(self, session, make_assessment, payment_ledger, admin,
                               deterministic_clock):
        assessment = make_assessment()
        deterministic_clock.advance(1)
        payment_ledger.archive_assessment(admin, assessment.id)

        latest = ActivitySelector(session).query(entity_id=assessment.id).items[0]
        assert latest.action == "ARCHIVED"
        audit = AuditSelector(session).query(
            entity_id=assessment.id, filters=AuditFilters(action="ARCHIVED")
        ).items
        assert [(e.field, e.old_value, e.new_value) for e in audit] == [
            ("is_archived", "false", "true")
        ]


class TestLedgerConfiguration:

    def test_custom_reference_formats(
        self, session, deterministic_clock, approved_property, inputter
    ):
        ledger = PaymentLedger(
            session,
            deterministic_clock,
            assessment_prefix="ASM",
            assessment_number_width=3,
            receipt_prefix="RC",
            receipt_number_width=4,
        )
        assessment = ledger.create_assessment(
            inputter, approved_property.id, 2026, "100", "0",
            date(2026, 6, 30), date(2026, 1, 1),
        )
        payment = ledger.apply_payment(inputter, assessment.id, "50", PAY_DATE, "CASH")

        assert assessment.reference_id == "ASM-2026-001"
        assert payment.payment.receipt_number == "RC-2026-0001"

    def test_deleting_assessed_property_is_blocked(
        self, make_assessment, approved_property, workflow_engine, admin
    ):
        make_assessment()
        with pytest.raises(InvalidTransitionError):
            workflow_engine.delete(admin, EntityKind.PROPERTY, approved_property.id)
