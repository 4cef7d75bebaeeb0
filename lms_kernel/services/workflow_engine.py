"""
WorkflowEngine -- the approval state machine for customers and properties.

Responsibility:
    Orchestrates submit / approve / reject / delete.  For each operation it
    loads the record, checks the authorization policy and the status
    precondition, applies the transition as ONE conditional write (on
    ``version`` and the observed ``status``), commits, and only then writes
    the audit entries, the activity entry and the notifications as
    best-effort secondary effects.

Architecture position:
    Kernel > Services.  Uses the pure rules in ``domain.workflow``, the
    conditional-write helper, and the AuditTrail / ActivityLog /
    NotificationDispatcher building blocks.

Invariants enforced:
    - Single-step transitions only (DRAFT cannot become APPROVED).
    - approved_by is set iff status is APPROVED or REJECTED.
    - rejection_feedback is set iff status is REJECTED (trimmed, >= the
      configured minimum length).
    - A status change never overwrites a concurrent change: the loser gets
      ConflictError (changed version) or InvalidTransitionError (changed
      status seen on read).
    - Delete always records the DELETED activity entry before removal.

Failure modes:
    - FeedbackTooShortError (reject only), checked before anything is read.
    - EntityNotFoundError, ForbiddenError, InvalidTransitionError,
      ConflictError -- in that order.  State is left unchanged.

Audit relevance:
    Every successful transition produces one AuditLogEntry per changed
    field (sharing one timestamp) and one ActivityLogEntry.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import delete, exists, select
from sqlalchemy.orm import Session

from lms_kernel.domain.clock import Clock, SystemClock
from lms_kernel.domain.dtos import EntitySnapshot, FieldChange
from lms_kernel.domain.values import (
    Actor,
    EntityKind,
    EntityStatus,
    LogAction,
    Operation,
)
from lms_kernel.domain.workflow import (
    DEFAULT_FEEDBACK_PREVIEW_LENGTH,
    DEFAULT_MIN_FEEDBACK_LENGTH,
    feedback_preview,
    next_status,
    require_authorized,
    transition_error_message,
    validate_feedback,
)
from lms_kernel.exceptions import (
    ConflictError,
    EntityNotFoundError,
    InvalidTransitionError,
)
from lms_kernel.logging_config import get_logger
from lms_kernel.models.customer import DETAIL_MODELS, Customer
from lms_kernel.models.property import Property, PropertyOwner, PropertyPhoto
from lms_kernel.models.tax import TaxAssessment
from lms_kernel.selectors.entity_selector import ENTITY_MODELS, EntitySelector
from lms_kernel.services.activity_log_service import ActivityLog
from lms_kernel.services.audit_trail import AuditTrail, diff_fields
from lms_kernel.services.base import BaseService, operation_scope
from lms_kernel.services.conditional_write import conditional_update
from lms_kernel.services.notification_dispatcher import NotificationDispatcher
from lms_kernel.services.secondary_effects import DEFAULT_ATTEMPTS, SecondaryEffects

logger = get_logger("services.workflow")

# Lifecycle fields written by transitions (and therefore audited).
_LIFECYCLE_FIELDS = (
    "status",
    "submitted_at",
    "approved_by",
    "approved_at",
    "rejection_feedback",
)

_TRANSITION_ACTIONS = {
    Operation.SUBMIT: LogAction.SUBMITTED,
    Operation.APPROVE: LogAction.APPROVED,
    Operation.REJECT: LogAction.REJECTED,
}


def _lifecycle_values(row: Customer | Property) -> dict[str, Any]:
    return {name: getattr(row, name) for name in _LIFECYCLE_FIELDS}


def _identity_metadata(row: Customer | Property) -> dict[str, Any]:
    metadata: dict[str, Any] = {"reference_id": row.reference_id}
    if isinstance(row, Customer):
        metadata["customer_type"] = row.customer_type
    else:
        metadata["parcel_number"] = row.parcel_number
    return metadata


class WorkflowEngine(BaseService):
    """
    Submit / approve / reject / delete of customers and properties.

    With ``auto_commit=True`` (the default) every operation commits its
    primary write, then its secondary effects; on a primary failure the
    session is rolled back and the error re-raised.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        *,
        auto_commit: bool = True,
        min_feedback_length: int = DEFAULT_MIN_FEEDBACK_LENGTH,
        feedback_preview_length: int = DEFAULT_FEEDBACK_PREVIEW_LENGTH,
        allow_creator_delete_draft: bool = False,
        secondary_effect_attempts: int = DEFAULT_ATTEMPTS,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._auto_commit = auto_commit
        self._min_feedback_length = min_feedback_length
        self._feedback_preview_length = feedback_preview_length
        self._allow_creator_delete_draft = allow_creator_delete_draft
        self._effect_attempts = secondary_effect_attempts
        self._selector = EntitySelector(session)

    # =========================================================================
    # Transitions
    # =========================================================================

    def submit(self, actor: Actor, kind: EntityKind, entity_id: UUID) -> EntitySnapshot:
        """
        DRAFT or REJECTED -> SUBMITTED.  Creator or administrator.

        Clears any earlier decision (approved_by, approved_at,
        rejection_feedback) and notifies every active reviewer.
        """
        return self._transition(actor, kind, entity_id, Operation.SUBMIT)

    def approve(self, actor: Actor, kind: EntityKind, entity_id: UUID) -> EntitySnapshot:
        """SUBMITTED -> APPROVED.  Approvers and administrators."""
        return self._transition(actor, kind, entity_id, Operation.APPROVE)

    def reject(
        self,
        actor: Actor,
        kind: EntityKind,
        entity_id: UUID,
        feedback: str | None,
    ) -> EntitySnapshot:
        """
        SUBMITTED -> REJECTED with feedback.  Approvers and administrators.

        Raises:
            FeedbackTooShortError: trimmed feedback shorter than the minimum.
        """
        return self._transition(
            actor, kind, entity_id, Operation.REJECT, feedback=feedback
        )

    def _transition(
        self,
        actor: Actor,
        kind: EntityKind,
        entity_id: UUID,
        operation: Operation,
        *,
        feedback: str | None = None,
    ) -> EntitySnapshot:
        with operation_scope(
            self.session,
            logger,
            operation.value,
            actor,
            entity_id,
            auto_commit=self._auto_commit,
            extra={"entity_kind": kind.value},
        ):
            if operation is Operation.REJECT:
                feedback = validate_feedback(feedback, self._min_feedback_length)

            row = self._load(kind, entity_id)
            current = EntityStatus(row.status)

            require_authorized(
                actor,
                operation,
                current,
                created_by=row.created_by,
                subject=kind.plural,
            )

            target = next_status(operation, current)
            if target is None:
                raise InvalidTransitionError(
                    kind.value,
                    str(entity_id),
                    current.value,
                    operation.value,
                    message=transition_error_message(kind, operation),
                )

            now = self._clock.now()
            values = self._transition_values(operation, target, actor, now, feedback)
            before = _lifecycle_values(row)

            row = conditional_update(
                self.session,
                ENTITY_MODELS[kind],
                entity_id,
                row.version,
                {**values, "updated_at": now},
                entity_type=kind.value,
                expected_status=current.value,
            )
            if self._auto_commit:
                self.session.commit()

            logger.info(
                "entity_transitioned",
                extra={
                    "entity_kind": kind.value,
                    "reference_id": row.reference_id,
                    "from_status": current.value,
                    "to_status": target.value,
                    "version": row.version,
                },
            )

            changes = diff_fields(before, _lifecycle_values(row))
            metadata = {
                **_identity_metadata(row),
                "from_status": current.value,
                "to_status": target.value,
            }
            if feedback is not None:
                metadata["rejection_feedback"] = feedback
            self._after_transition(actor, kind, row, operation, changes, metadata, now)

            return self._selector.snapshot(row)

    @staticmethod
    def _transition_values(
        operation: Operation,
        target: EntityStatus,
        actor: Actor,
        now: datetime,
        feedback: str | None,
    ) -> dict[str, Any]:
        if operation is Operation.SUBMIT:
            return {
                "status": target.value,
                "submitted_at": now,
                "approved_by": None,
                "approved_at": None,
                "rejection_feedback": None,
            }
        return {
            "status": target.value,
            "approved_by": actor.id,
            "approved_at": now,
            "rejection_feedback": feedback if operation is Operation.REJECT else None,
        }

    def _after_transition(
        self,
        actor: Actor,
        kind: EntityKind,
        row: Customer | Property,
        operation: Operation,
        changes: list[FieldChange],
        metadata: dict[str, Any],
        now: datetime,
    ) -> None:
        action = _TRANSITION_ACTIONS[operation]
        effects = SecondaryEffects(
            self.session,
            entity_type=kind.value,
            entity_id=row.id,
            attempts=self._effect_attempts,
        )
        audit = AuditTrail(self.session, self._clock)
        activity = ActivityLog(self.session, self._clock)
        notifications = NotificationDispatcher(self.session, self._clock)

        effects.run(
            "audit",
            lambda: audit.record(
                kind.value, row.id, action, changes, actor.id, timestamp=now
            ),
        )
        effects.run(
            "activity",
            lambda: activity.record(
                kind.value, row.id, action, actor.id, metadata, timestamp=now
            ),
        )

        label = kind.value.capitalize()
        if operation is Operation.SUBMIT:
            effects.run(
                "notification",
                lambda: notifications.notify_reviewers(
                    f"{label} Submitted for Review",
                    f"{label} {row.reference_id} has been submitted for approval",
                    entity_type=kind.value,
                    entity_id=row.id,
                    exclude=actor.id,
                ),
            )
        elif operation is Operation.APPROVE:
            effects.run(
                "notification",
                lambda: notifications.dispatch(
                    [row.created_by],
                    f"{label} Approved",
                    f"Your {kind.value} {row.reference_id} has been approved",
                    entity_type=kind.value,
                    entity_id=row.id,
                ),
            )
        else:
            preview = feedback_preview(
                row.rejection_feedback or "", self._feedback_preview_length
            )
            effects.run(
                "notification",
                lambda: notifications.dispatch(
                    [row.created_by],
                    f"{label} Rejected",
                    f"Your {kind.value} {row.reference_id} has been rejected: {preview}",
                    entity_type=kind.value,
                    entity_id=row.id,
                ),
            )

        effects.commit(self._auto_commit)

    # =========================================================================
    # Delete
    # =========================================================================

    def delete(self, actor: Actor, kind: EntityKind, entity_id: UUID) -> EntitySnapshot:
        """
        Permanently remove a record and its child rows.

        The DELETED activity entry and the status audit entry are written in
        the same transaction, before the row is removed, so the history of
        a deleted record stays queryable.

        Returns:
            Snapshot of the record as it was just before removal.

        Raises:
            InvalidTransitionError: the property still has tax assessments.
        """
        with operation_scope(
            self.session,
            logger,
            Operation.DELETE.value,
            actor,
            entity_id,
            auto_commit=self._auto_commit,
            extra={"entity_kind": kind.value},
        ):
            row = self._load(kind, entity_id)
            current = EntityStatus(row.status)

            require_authorized(
                actor,
                Operation.DELETE,
                current,
                created_by=row.created_by,
                allow_creator_delete_draft=self._allow_creator_delete_draft,
                subject=kind.plural,
            )

            if kind is EntityKind.PROPERTY and self._has_assessments(entity_id):
                raise InvalidTransitionError(
                    kind.value,
                    str(entity_id),
                    current.value,
                    Operation.DELETE.value,
                    message=(
                        "Properties with tax assessments cannot be deleted; "
                        "archive the assessments instead"
                    ),
                )

            snapshot = self._selector.snapshot(row)
            now = self._clock.now()

            AuditTrail(self.session, self._clock).record(
                kind.value,
                entity_id,
                LogAction.DELETED,
                [FieldChange("status", current.value, None)],
                actor.id,
                timestamp=now,
            )
            ActivityLog(self.session, self._clock).record(
                kind.value,
                entity_id,
                LogAction.DELETED,
                actor.id,
                {**_identity_metadata(row), "status": current.value},
                timestamp=now,
            )

            self._delete_children(kind, row)
            model = ENTITY_MODELS[kind]
            result = self.session.execute(
                delete(model)
                .where(model.id == entity_id, model.version == row.version)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise ConflictError(kind.value, str(entity_id), row.version)
            self.session.expunge(row)

            if self._auto_commit:
                self.session.commit()

            logger.info(
                "entity_deleted",
                extra={
                    "entity_kind": kind.value,
                    "reference_id": snapshot.reference_id,
                    "status": current.value,
                },
            )

            if snapshot.created_by != actor.id:
                label = kind.value.capitalize()
                effects = SecondaryEffects(
                    self.session,
                    entity_type=kind.value,
                    entity_id=entity_id,
                    attempts=self._effect_attempts,
                )
                effects.run(
                    "notification",
                    lambda: NotificationDispatcher(self.session, self._clock).dispatch(
                        [snapshot.created_by],
                        f"{label} Deleted",
                        f"Your {kind.value} {snapshot.reference_id} has been deleted",
                        entity_type=kind.value,
                        entity_id=entity_id,
                    ),
                )
                effects.commit(self._auto_commit)

            return snapshot

    def _delete_children(self, kind: EntityKind, row: Customer | Property) -> None:
        if kind is EntityKind.CUSTOMER:
            for detail_model in DETAIL_MODELS.values():
                self.session.execute(
                    delete(detail_model)
                    .where(detail_model.customer_id == row.id)
                    .execution_options(synchronize_session=False)
                )
            self.session.execute(
                delete(PropertyOwner)
                .where(PropertyOwner.customer_id == row.id)
                .execution_options(synchronize_session=False)
            )
            return

        for child in (PropertyOwner, PropertyPhoto):
            self.session.execute(
                delete(child)
                .where(child.property_id == row.id)
                .execution_options(synchronize_session=False)
            )

    def _has_assessments(self, property_id: UUID) -> bool:
        return self.session.execute(
            select(exists().where(TaxAssessment.property_id == property_id))
        ).scalar_one()

    # =========================================================================
    # Helpers
    # =========================================================================

    def _load(self, kind: EntityKind, entity_id: UUID) -> Customer | Property:
        model = ENTITY_MODELS[kind]
        row = self.session.execute(
            select(model)
            .where(model.id == entity_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if row is None:
            raise EntityNotFoundError(kind.value, str(entity_id))
        return row
