"""
Approval workflow rules (``lms_kernel.domain.workflow``).

Responsibility
--------------
The customer/property approval state machine and the single authorization
policy consulted before every mutation.  Pure functions only.

Architecture position
---------------------
**Kernel domain layer**.  ZERO I/O.  Imports only from ``domain/values``
and ``exceptions``.

State machine
-------------
::

    DRAFT ----submit----> SUBMITTED ----approve----> APPROVED
                            ^    |
                 resubmit   |    reject
                            |    v
                          REJECTED

All transitions are single-step.  DRAFT cannot go directly to APPROVED.
Only an explicit delete removes an entity from the graph.
"""

from __future__ import annotations

from uuid import UUID

from lms_kernel.domain.values import (
    REVIEWER_ROLES,
    Actor,
    EntityKind,
    EntityStatus,
    Operation,
    Role,
)
from lms_kernel.exceptions import FeedbackTooShortError, ForbiddenError

DEFAULT_MIN_FEEDBACK_LENGTH = 10
DEFAULT_FEEDBACK_PREVIEW_LENGTH = 50


ENTITY_TRANSITIONS: dict[EntityStatus, frozenset[EntityStatus]] = {
    EntityStatus.DRAFT: frozenset({EntityStatus.SUBMITTED}),
    EntityStatus.SUBMITTED: frozenset({
        EntityStatus.APPROVED,
        EntityStatus.REJECTED,
    }),
    EntityStatus.REJECTED: frozenset({EntityStatus.SUBMITTED}),
    EntityStatus.APPROVED: frozenset(),
}

# operation -> (allowed source statuses, target status)
OPERATION_TRANSITIONS: dict[Operation, tuple[frozenset[EntityStatus], EntityStatus]] = {
    Operation.SUBMIT: (
        frozenset({EntityStatus.DRAFT, EntityStatus.REJECTED}),
        EntityStatus.SUBMITTED,
    ),
    Operation.APPROVE: (frozenset({EntityStatus.SUBMITTED}), EntityStatus.APPROVED),
    Operation.REJECT: (frozenset({EntityStatus.SUBMITTED}), EntityStatus.REJECTED),
}

EDITABLE_STATUSES: frozenset[EntityStatus] = frozenset({
    EntityStatus.DRAFT,
    EntityStatus.REJECTED,
})

_PAST_TENSE = {
    Operation.SUBMIT: "submitted",
    Operation.APPROVE: "approved",
    Operation.REJECT: "rejected",
    Operation.UPDATE_RECORD: "edited",
}


def can_transition(current: EntityStatus, target: EntityStatus) -> bool:
    """True if ``current -> target`` is an edge of the state machine."""
    return target in ENTITY_TRANSITIONS.get(current, frozenset())


def next_status(operation: Operation, current: EntityStatus) -> EntityStatus | None:
    """Target status of ``operation`` from ``current``, or None if not allowed."""
    sources, target = OPERATION_TRANSITIONS[operation]
    if current not in sources:
        return None
    return target


def transition_error_message(kind: EntityKind, operation: Operation) -> str:
    """Actionable message for a failed status precondition."""
    if operation is Operation.UPDATE_RECORD:
        allowed = EDITABLE_STATUSES
    else:
        allowed, _ = OPERATION_TRANSITIONS[operation]
    names = " or ".join(sorted(s.value for s in allowed))
    return f"Only {names} {kind.plural} can be {_PAST_TENSE[operation]}"


def entity_invariant_holds(
    status: EntityStatus,
    approved_by: UUID | None,
    rejection_feedback: str | None,
) -> bool:
    """approved_by is set iff APPROVED/REJECTED; feedback is set iff REJECTED."""
    decided = status in (EntityStatus.APPROVED, EntityStatus.REJECTED)
    if (approved_by is not None) != decided:
        return False
    return (rejection_feedback is not None) == (status is EntityStatus.REJECTED)


# =========================================================================
# Authorization
# =========================================================================

_RECORD_CREATORS = frozenset({Role.INPUTTER, Role.ADMINISTRATOR})
_LEDGER_CLERKS = frozenset({Role.INPUTTER, Role.APPROVER, Role.ADMINISTRATOR})


def check_authorization(
    actor_role: Role,
    operation: Operation,
    entity_status: EntityStatus | None = None,
    *,
    is_creator: bool = False,
    allow_creator_delete_draft: bool = False,
    subject: str = "records",
) -> tuple[bool, str]:
    """Decide whether a role may perform an operation.

    Returns:
        (allowed, reason).  reason is empty when allowed, otherwise a short
        message suitable for the caller.
    """
    if actor_role is Role.VIEWER:
        return (False, f"Viewers cannot {operation.value.replace('_', ' ')} {subject}")

    if operation is Operation.CREATE_RECORD:
        if actor_role in _RECORD_CREATORS:
            return (True, "")
        return (False, f"Only Inputters and Administrators can create {subject}")

    if operation in (Operation.SUBMIT, Operation.UPDATE_RECORD):
        if actor_role is Role.ADMINISTRATOR or is_creator:
            return (True, "")
        verb = "submit" if operation is Operation.SUBMIT else "edit"
        return (False, f"Only the creator or an Administrator can {verb} these {subject}")

    if operation in (Operation.APPROVE, Operation.REJECT):
        if actor_role in REVIEWER_ROLES:
            return (True, "")
        return (
            False,
            f"Only Approvers and Administrators can {operation.value} {subject}",
        )

    if operation is Operation.DELETE:
        if actor_role is Role.ADMINISTRATOR:
            return (True, "")
        if (
            allow_creator_delete_draft
            and is_creator
            and entity_status is EntityStatus.DRAFT
        ):
            return (True, "")
        return (False, f"Only Administrators can delete {subject}")

    if operation in (Operation.CREATE_ASSESSMENT, Operation.APPLY_PAYMENT):
        if actor_role in _LEDGER_CLERKS:
            return (True, "")
        return (False, f"Role {actor_role.value} cannot {operation.value.replace('_', ' ')}")

    if operation in (Operation.ARCHIVE_ASSESSMENT, Operation.UNARCHIVE_ASSESSMENT):
        if actor_role is Role.ADMINISTRATOR:
            return (True, "")
        return (False, "Only Administrators can archive or unarchive tax assessments")

    return (False, f"Unknown operation: {operation.value}")


def authorize(
    actor_role: Role,
    operation: Operation,
    entity_status: EntityStatus | None = None,
    *,
    is_creator: bool = False,
    allow_creator_delete_draft: bool = False,
) -> bool:
    """Boolean form of :func:`check_authorization`."""
    allowed, _ = check_authorization(
        actor_role,
        operation,
        entity_status,
        is_creator=is_creator,
        allow_creator_delete_draft=allow_creator_delete_draft,
    )
    return allowed


def require_authorized(
    actor: Actor,
    operation: Operation,
    entity_status: EntityStatus | None = None,
    *,
    created_by: UUID | None = None,
    allow_creator_delete_draft: bool = False,
    subject: str = "records",
) -> None:
    """Raise ForbiddenError unless ``actor`` may perform ``operation``."""
    allowed, reason = check_authorization(
        actor.role,
        operation,
        entity_status,
        is_creator=created_by is not None and created_by == actor.id,
        allow_creator_delete_draft=allow_creator_delete_draft,
        subject=subject,
    )
    if not allowed:
        raise ForbiddenError(operation.value, actor.role.value, reason)


# =========================================================================
# Rejection feedback
# =========================================================================


def validate_feedback(
    feedback: str | None, min_length: int = DEFAULT_MIN_FEEDBACK_LENGTH
) -> str:
    """Return trimmed feedback, or raise FeedbackTooShortError."""
    trimmed = (feedback or "").strip()
    if len(trimmed) < min_length:
        raise FeedbackTooShortError(len(trimmed), min_length)
    return trimmed


def feedback_preview(
    feedback: str, max_length: int = DEFAULT_FEEDBACK_PREVIEW_LENGTH
) -> str:
    """Feedback shortened to at most ``max_length`` characters, ellipsized."""
    if len(feedback) <= max_length:
        return feedback
    return feedback[: max_length - 3].rstrip() + "..."
