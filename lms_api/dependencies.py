"""
FastAPI dependencies: settings, clock, per-request session, the acting
user, and the kernel services wired from settings.

Authentication is external.  The caller presents ``X-Actor-Id`` and
``X-Actor-Role``; the user must exist, be active and hold that role.
"""

from __future__ import annotations

from typing import Iterator
from uuid import UUID

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from lms_config import LmsSettings
from lms_kernel.domain.clock import Clock
from lms_kernel.domain.values import Actor, Role
from lms_kernel.exceptions import ForbiddenError, ValidationError
from lms_kernel.selectors.user_selector import UserSelector
from lms_kernel.services.notification_dispatcher import NotificationDispatcher
from lms_kernel.services.payment_ledger import PaymentLedger
from lms_kernel.services.record_service import RecordService
from lms_kernel.services.workflow_engine import WorkflowEngine


def get_settings(request: Request) -> LmsSettings:
    return request.app.state.settings


def get_clock(request: Request) -> Clock:
    return request.app.state.clock


def get_db(request: Request) -> Iterator[Session]:
    session = request.app.state.session_factory()
    try:
        yield session
    finally:
        session.close()


def get_actor(
    session: Session = Depends(get_db),
    x_actor_id: str | None = Header(default=None),
    x_actor_role: str | None = Header(default=None),
) -> Actor:
    if not x_actor_id or not x_actor_role:
        raise ForbiddenError(
            "authenticate",
            "ANONYMOUS",
            "X-Actor-Id and X-Actor-Role headers are required",
        )
    try:
        actor_id = UUID(x_actor_id)
    except ValueError:
        raise ValidationError("X-Actor-Id must be a UUID", field="X-Actor-Id") from None
    try:
        role = Role(x_actor_role.strip().upper())
    except ValueError:
        raise ValidationError(
            f"Unknown role: {x_actor_role}", field="X-Actor-Role"
        ) from None

    user = UserSelector(session).get_active(actor_id)
    if user is None:
        raise ForbiddenError("authenticate", role.value, "Unknown or inactive user")
    if user.role != role.value:
        raise ForbiddenError(
            "authenticate", role.value, f"User does not hold the {role.value} role"
        )
    return Actor(id=actor_id, role=role)


def get_workflow_engine(
    session: Session = Depends(get_db),
    settings: LmsSettings = Depends(get_settings),
    clock: Clock = Depends(get_clock),
) -> WorkflowEngine:
    wf = settings.workflow
    return WorkflowEngine(
        session,
        clock,
        min_feedback_length=wf.min_feedback_length,
        feedback_preview_length=wf.feedback_preview_length,
        allow_creator_delete_draft=wf.allow_creator_delete_draft,
        secondary_effect_attempts=wf.secondary_effect_attempts,
    )


def get_payment_ledger(
    session: Session = Depends(get_db),
    settings: LmsSettings = Depends(get_settings),
    clock: Clock = Depends(get_clock),
) -> PaymentLedger:
    ledger = settings.ledger
    return PaymentLedger(
        session,
        clock,
        money_decimal_places=ledger.money_decimal_places,
        assessment_prefix=ledger.assessment_prefix,
        assessment_number_width=ledger.assessment_number_width,
        receipt_prefix=ledger.receipt_prefix,
        receipt_number_width=ledger.receipt_number_width,
        receipt_generation_attempts=ledger.receipt_generation_attempts,
        secondary_effect_attempts=settings.workflow.secondary_effect_attempts,
    )


def get_record_service(
    session: Session = Depends(get_db),
    settings: LmsSettings = Depends(get_settings),
    clock: Clock = Depends(get_clock),
) -> RecordService:
    refs = settings.references
    return RecordService(
        session,
        clock,
        customer_prefix=refs.customer_prefix,
        customer_number_width=refs.customer_number_width,
        property_number_width=refs.property_number_width,
        secondary_effect_attempts=settings.workflow.secondary_effect_attempts,
    )


def get_notification_dispatcher(
    session: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> NotificationDispatcher:
    return NotificationDispatcher(session, clock, auto_commit=True)


def page_params(
    settings: LmsSettings,
    limit: int | None,
    offset: int,
) -> tuple[int, int]:
    """Apply the configured default and maximum page size."""
    size = settings.api.default_page_size if limit is None else limit
    if size < 1 or size > settings.api.max_page_size:
        raise ValidationError(
            f"limit must be between 1 and {settings.api.max_page_size}", field="limit"
        )
    if offset < 0:
        raise ValidationError("offset must not be negative", field="offset")
    return size, offset
