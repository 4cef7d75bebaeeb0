"""
Tests for WorkflowEngine.

Coverage:
- Submit / approve / reject transitions and their lifecycle fields
- Rejection feedback validation and resubmission clearing the decision
- Order of failure checks (validation, not found, forbidden, transition)
- Audit, activity and notification side effects of each transition
- Delete: authorization, children, history retained, assessment guard
- Structured log output of an operation
"""

from uuid import uuid4

import pytest
from sqlalchemy import func, select

from lms_kernel.domain.values import EntityKind, EntityStatus, Role
from lms_kernel.exceptions import (
    EntityNotFoundError,
    FeedbackTooShortError,
    ForbiddenError,
    InvalidTransitionError,
)
from lms_kernel.models.customer import CustomerPerson
from lms_kernel.models.property import PropertyOwner
from lms_kernel.selectors.activity_selector import ActivitySelector
from lms_kernel.selectors.audit_selector import AuditFilters, AuditSelector
from lms_kernel.selectors.entity_selector import EntitySelector
from lms_kernel.selectors.notification_selector import NotificationSelector
from lms_kernel.services.workflow_engine import WorkflowEngine

FEEDBACK = "Missing signature page, please resubmit"


# =============================================================================
# Helpers
# =============================================================================


def _activity_actions(session, entity_id) -> list[str]:
    page = ActivitySelector(session).query(entity_id=entity_id, limit=100)
    return [entry.action for entry in page.items]


def _notifications(session, user_id):
    return NotificationSelector(session).for_user(user_id, limit=100).items


# =============================================================================
# Submit
# =============================================================================


class TestSubmit:

    def test_draft_customer_becomes_submitted(
        self, session, make_customer, workflow_engine, inputter, deterministic_clock
    ):
        customer = make_customer()
        deterministic_clock.advance(60)

        result = workflow_engine.submit(inputter, EntityKind.CUSTOMER, customer.id)

        assert result.status is EntityStatus.SUBMITTED
        assert result.submitted_at == deterministic_clock.now()
        assert result.rejection_feedback is None
        assert result.approved_by is None
        assert result.version == customer.version + 1
        assert _activity_actions(session, customer.id).count("SUBMITTED") == 1

    def test_submit_notifies_every_active_reviewer(
        self, session, make_customer, workflow_engine, inputter, approver, admin, make_user
    ):
        inactive = make_user(Role.APPROVER, active=False)
        customer = make_customer()

        workflow_engine.submit(inputter, EntityKind.CUSTOMER, customer.id)

        for reviewer in (approver, admin):
            notes = _notifications(session, reviewer.id)
            assert len(notes) == 1
            assert notes[0].title == "Customer Submitted for Review"
            assert notes[0].message == (
                f"Customer {customer.reference_id} has been submitted for approval"
            )
            assert notes[0].entity_id == customer.id
        assert _notifications(session, inactive.id) == ()
        assert _notifications(session, inputter.id) == ()

    def test_submitting_admin_is_not_notified(
        self, session, make_customer, workflow_engine, approver, admin
    ):
        customer = make_customer(actor=admin)

        workflow_engine.submit(admin, EntityKind.CUSTOMER, customer.id)

        assert len(_notifications(session, approver.id)) == 1
        assert _notifications(session, admin.id) == ()

    def test_only_creator_or_admin_may_submit(
        self, make_customer, workflow_engine, other_inputter, admin
    ):
        customer = make_customer()
        with pytest.raises(ForbiddenError):
            workflow_engine.submit(other_inputter, EntityKind.CUSTOMER, customer.id)

        result = workflow_engine.submit(admin, EntityKind.CUSTOMER, customer.id)
        assert result.status is EntityStatus.SUBMITTED

    def test_submitting_twice_is_invalid_transition(
        self, submitted_customer, workflow_engine, inputter
    ):
        with pytest.raises(InvalidTransitionError) as exc_info:
            workflow_engine.submit(inputter, EntityKind.CUSTOMER, submitted_customer.id)
        assert exc_info.value.current_status == "SUBMITTED"
        assert str(exc_info.value) == "Only DRAFT or REJECTED customers can be submitted"

    def test_unknown_record_is_not_found(self, workflow_engine, inputter):
        with pytest.raises(EntityNotFoundError):
            workflow_engine.submit(inputter, EntityKind.PROPERTY, uuid4())

    def test_viewer_cannot_submit(self, make_customer, workflow_engine, viewer):
        customer = make_customer()
        with pytest.raises(ForbiddenError):
            workflow_engine.submit(viewer, EntityKind.CUSTOMER, customer.id)


# =============================================================================
# Approve
# =============================================================================


class TestApprove:

    def test_submitted_customer_is_approved(
        self, session, submitted_customer, workflow_engine, approver, inputter,
        deterministic_clock,
    ):
        result = workflow_engine.approve(approver, EntityKind.CUSTOMER, submitted_customer.id)

        assert result.status is EntityStatus.APPROVED
        assert result.approved_by == approver.id
        assert result.approved_at == deterministic_clock.now()
        assert result.rejection_feedback is None

        notes = _notifications(session, inputter.id)
        assert [n.title for n in notes] == ["Customer Approved"]
        assert notes[0].message == (
            f"Your customer {submitted_customer.reference_id} has been approved"
        )

    def test_draft_cannot_be_approved(self, make_customer, workflow_engine, approver):
        customer = make_customer()
        with pytest.raises(InvalidTransitionError) as exc_info:
            workflow_engine.approve(approver, EntityKind.CUSTOMER, customer.id)
        assert str(exc_info.value) == "Only SUBMITTED customers can be approved"

    def test_approved_record_is_terminal(
        self, approved_property, workflow_engine, approver, inputter
    ):
        with pytest.raises(InvalidTransitionError):
            workflow_engine.approve(approver, EntityKind.PROPERTY, approved_property.id)
        with pytest.raises(InvalidTransitionError):
            workflow_engine.submit(inputter, EntityKind.PROPERTY, approved_property.id)

    def test_inputter_cannot_approve(self, submitted_customer, workflow_engine, inputter):
        with pytest.raises(ForbiddenError):
            workflow_engine.approve(inputter, EntityKind.CUSTOMER, submitted_customer.id)

    def test_forbidden_is_checked_before_status(
        self, make_customer, workflow_engine, viewer
    ):
        customer = make_customer()
        with pytest.raises(ForbiddenError):
            workflow_engine.approve(viewer, EntityKind.CUSTOMER, customer.id)

    def test_failed_approve_leaves_record_unchanged(
        self, session, submitted_customer, workflow_engine, inputter
    ):
        with pytest.raises(ForbiddenError):
            workflow_engine.approve(inputter, EntityKind.CUSTOMER, submitted_customer.id)

        current = EntitySelector(session).get(EntityKind.CUSTOMER, submitted_customer.id)
        assert current.status is EntityStatus.SUBMITTED
        assert current.version == submitted_customer.version


# =============================================================================
# Reject and resubmit
# =============================================================================


class TestReject:

    def test_short_feedback_rejected_and_status_unchanged(
        self, session, submitted_customer, workflow_engine, approver
    ):
        with pytest.raises(FeedbackTooShortError):
            workflow_engine.reject(
                approver, EntityKind.CUSTOMER, submitted_customer.id, "too short"
            )

        current = EntitySelector(session).get(EntityKind.CUSTOMER, submitted_customer.id)
        assert current.status is EntityStatus.SUBMITTED
        assert current.rejection_feedback is None

    def test_feedback_checked_before_lookup(self, workflow_engine, approver):
        with pytest.raises(FeedbackTooShortError):
            workflow_engine.reject(approver, EntityKind.CUSTOMER, uuid4(), "")

    def test_reject_sets_feedback_and_decider(
        self, session, submitted_customer, workflow_engine, approver, inputter
    ):
        result = workflow_engine.reject(
            approver, EntityKind.CUSTOMER, submitted_customer.id, f"  {FEEDBACK}  "
        )

        assert result.status is EntityStatus.REJECTED
        assert result.rejection_feedback == FEEDBACK
        assert result.approved_by == approver.id

        notes = _notifications(session, inputter.id)
        assert [n.title for n in notes] == ["Customer Rejected"]
        assert notes[0].message.startswith(
            f"Your customer {submitted_customer.reference_id} has been rejected: "
        )

    def test_long_feedback_is_previewed_in_notification(
        self, session, submitted_customer, workflow_engine, approver, inputter
    ):
        feedback = "The parcel survey does not match the registry extract. " * 3
        workflow_engine.reject(approver, EntityKind.CUSTOMER, submitted_customer.id, feedback)

        message = _notifications(session, inputter.id)[0].message
        preview = message.split("has been rejected: ", 1)[1]
        assert len(preview) <= 50
        assert preview.endswith("...")

    def test_resubmit_clears_previous_decision(
        self, submitted_customer, workflow_engine, approver, inputter
    ):
        workflow_engine.reject(approver, EntityKind.CUSTOMER, submitted_customer.id, FEEDBACK)

        result = workflow_engine.submit(inputter, EntityKind.CUSTOMER, submitted_customer.id)

        assert result.status is EntityStatus.SUBMITTED
        assert result.rejection_feedback is None
        assert result.approved_by is None
        assert result.approved_at is None

    def test_reject_activity_carries_feedback(
        self, session, submitted_customer, workflow_engine, approver
    ):
        workflow_engine.reject(approver, EntityKind.CUSTOMER, submitted_customer.id, FEEDBACK)

        entries = ActivitySelector(session).query(entity_id=submitted_customer.id).items
        entry = next(e for e in entries if e.action == "REJECTED")
        assert entry.action == "REJECTED"
        assert entry.metadata["rejection_feedback"] == FEEDBACK
        assert entry.metadata["from_status"] == "SUBMITTED"
        assert entry.metadata["to_status"] == "REJECTED"
        assert entry.metadata["reference_id"] == submitted_customer.reference_id

    def test_configured_minimum_feedback_length(
        self, session, submitted_customer, deterministic_clock, approver
    ):
        engine = WorkflowEngine(session, deterministic_clock, min_feedback_length=3)
        result = engine.reject(approver, EntityKind.CUSTOMER, submitted_customer.id, "abc")
        assert result.rejection_feedback == "abc"


# =============================================================================
# Audit of transitions
# =============================================================================


class TestTransitionAudit:

    def test_approve_audits_each_changed_field(
        self, session, submitted_customer, workflow_engine, approver
    ):
        workflow_engine.approve(approver, EntityKind.CUSTOMER, submitted_customer.id)

        page = AuditSelector(session).query(
            entity_id=submitted_customer.id, filters=AuditFilters(action="APPROVED")
        )
        by_field = {entry.field: entry for entry in page.items}
        assert set(by_field) == {"status", "approved_by", "approved_at"}
        assert by_field["status"].old_value == "SUBMITTED"
        assert by_field["status"].new_value == "APPROVED"
        assert by_field["approved_by"].new_value == str(approver.id)
        assert len({entry.timestamp for entry in page.items}) == 1

    def test_full_history_of_a_record(
        self, session, make_customer, workflow_engine, inputter, approver,
        deterministic_clock,
    ):
        customer = make_customer()
        deterministic_clock.advance(1)
        workflow_engine.submit(inputter, EntityKind.CUSTOMER, customer.id)
        deterministic_clock.advance(1)
        workflow_engine.reject(approver, EntityKind.CUSTOMER, customer.id, FEEDBACK)
        deterministic_clock.advance(1)
        workflow_engine.submit(inputter, EntityKind.CUSTOMER, customer.id)
        deterministic_clock.advance(1)
        workflow_engine.approve(approver, EntityKind.CUSTOMER, customer.id)

        assert _activity_actions(session, customer.id) == [
            "APPROVED", "SUBMITTED", "REJECTED", "SUBMITTED", "CREATED",
        ]


# =============================================================================
# Delete
# =============================================================================


class TestDelete:

    def test_admin_deletes_customer_and_details(
        self, session, make_customer, workflow_engine, admin, inputter
    ):
        customer = make_customer()

        snapshot = workflow_engine.delete(admin, EntityKind.CUSTOMER, customer.id)

        assert snapshot.id == customer.id
        assert snapshot.status is EntityStatus.DRAFT
        with pytest.raises(EntityNotFoundError):
            EntitySelector(session).get(EntityKind.CUSTOMER, customer.id)
        remaining = session.execute(
            select(func.count()).select_from(CustomerPerson)
            .where(CustomerPerson.customer_id == customer.id)
        ).scalar_one()
        assert remaining == 0

    def test_history_survives_delete(
        self, session, make_customer, workflow_engine, admin
    ):
        customer = make_customer()
        workflow_engine.delete(admin, EntityKind.CUSTOMER, customer.id)

        assert sorted(_activity_actions(session, customer.id)) == ["CREATED", "DELETED"]
        audit = AuditSelector(session).query(
            entity_id=customer.id, filters=AuditFilters(action="DELETED")
        ).items
        assert [(e.field, e.old_value, e.new_value) for e in audit] == [
            ("status", "DRAFT", None)
        ]

    def test_creator_is_notified_when_someone_else_deletes(
        self, session, make_customer, workflow_engine, admin, inputter
    ):
        customer = make_customer()
        workflow_engine.delete(admin, EntityKind.CUSTOMER, customer.id)

        notes = _notifications(session, inputter.id)
        assert [n.title for n in notes] == ["Customer Deleted"]

    def test_inputter_cannot_delete_by_default(
        self, make_customer, workflow_engine, inputter
    ):
        customer = make_customer()
        with pytest.raises(ForbiddenError):
            workflow_engine.delete(inputter, EntityKind.CUSTOMER, customer.id)

    def test_creator_may_delete_own_draft_when_enabled(
        self, session, make_customer, deterministic_clock, inputter
    ):
        engine = WorkflowEngine(
            session, deterministic_clock, allow_creator_delete_draft=True
        )
        customer = make_customer()

        engine.delete(inputter, EntityKind.CUSTOMER, customer.id)

        assert _notifications(session, inputter.id) == ()

    def test_deleting_customer_unlinks_owned_properties(
        self, session, make_customer, make_property, workflow_engine, admin
    ):
        owner = make_customer()
        prop = make_property(owner_ids=[owner.id])

        workflow_engine.delete(admin, EntityKind.CUSTOMER, owner.id)

        links = session.execute(
            select(func.count()).select_from(PropertyOwner)
            .where(PropertyOwner.property_id == prop.id)
        ).scalar_one()
        assert links == 0
        assert EntitySelector(session).get(EntityKind.PROPERTY, prop.id).id == prop.id

    def test_property_with_assessments_cannot_be_deleted(
        self, session, make_assessment, approved_property, workflow_engine, admin
    ):
        make_assessment()

        with pytest.raises(InvalidTransitionError) as exc_info:
            workflow_engine.delete(admin, EntityKind.PROPERTY, approved_property.id)
        assert "archive the assessments" in str(exc_info.value)
        assert EntitySelector(session).get(EntityKind.PROPERTY, approved_property.id)

    def test_delete_unknown_record(self, workflow_engine, admin):
        with pytest.raises(EntityNotFoundError):
            workflow_engine.delete(admin, EntityKind.CUSTOMER, uuid4())


# =============================================================================
# Logging
# =============================================================================


class TestWorkflowLogging:

    def test_transition_logs_lifecycle(
        self, captured_logs, submitted_customer, workflow_engine, approver
    ):
        workflow_engine.approve(approver, EntityKind.CUSTOMER, submitted_customer.id)

        messages = [r["message"] for r in captured_logs()]
        assert "approve_started" in messages
        assert "entity_transitioned" in messages
        assert "approve_completed" in messages

        transitioned = next(
            r for r in captured_logs()
            if r["message"] == "entity_transitioned" and r["to_status"] == "APPROVED"
        )
        assert transitioned["from_status"] == "SUBMITTED"
        assert transitioned["to_status"] == "APPROVED"
        assert transitioned["operation"] == "approve"
        assert transitioned["actor_id"] == str(approver.id)

    def test_rejection_logs_failure_kind(
        self, captured_logs, make_customer, workflow_engine, approver
    ):
        customer = make_customer()
        with pytest.raises(InvalidTransitionError):
            workflow_engine.approve(approver, EntityKind.CUSTOMER, customer.id)

        failed = [r for r in captured_logs() if r["message"] == "approve_failed"]
        assert failed[0]["level"] == "WARNING"
        assert failed[0]["error_kind"] == "InvalidTransition"
