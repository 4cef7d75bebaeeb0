"""Approval workflow routes: submit, approve, reject, delete, review queue."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from lms_api.dependencies import (
    get_actor,
    get_clock,
    get_db,
    get_settings,
    get_workflow_engine,
    page_params,
)
from lms_api.schemas import EntityOut, PageOut, RejectRequest, ReviewQueueItemOut, page_out
from lms_config import LmsSettings
from lms_kernel.domain.clock import Clock
from lms_kernel.domain.values import Actor, EntityKind
from lms_kernel.selectors.review_queue_selector import ReviewQueueSelector
from lms_kernel.services.workflow_engine import WorkflowEngine

router = APIRouter(prefix="/workflow", tags=["Workflow"])


@router.get("/review-queue", response_model=PageOut[ReviewQueueItemOut])
def review_queue(
    kind: Optional[EntityKind] = Query(default=None, alias="entityType"),
    limit: Optional[int] = Query(default=None),
    offset: int = Query(default=0),
    actor: Actor = Depends(get_actor),
    session: Session = Depends(get_db),
    settings: LmsSettings = Depends(get_settings),
    clock: Clock = Depends(get_clock),
):
    limit, offset = page_params(settings, limit, offset)
    page = ReviewQueueSelector(session).pending(
        clock.now(),
        kind=kind,
        limit=limit,
        offset=offset,
        warning_days=settings.workflow.pending_warning_days,
        critical_days=settings.workflow.pending_critical_days,
    )
    return page_out(page, ReviewQueueItemOut)


@router.post("/{entity_type}/{entity_id}/submit", response_model=EntityOut)
def submit(
    entity_type: EntityKind,
    entity_id: UUID,
    actor: Actor = Depends(get_actor),
    engine: WorkflowEngine = Depends(get_workflow_engine),
):
    return EntityOut.model_validate(engine.submit(actor, entity_type, entity_id))


@router.post("/{entity_type}/{entity_id}/approve", response_model=EntityOut)
def approve(
    entity_type: EntityKind,
    entity_id: UUID,
    actor: Actor = Depends(get_actor),
    engine: WorkflowEngine = Depends(get_workflow_engine),
):
    return EntityOut.model_validate(engine.approve(actor, entity_type, entity_id))


@router.post("/{entity_type}/{entity_id}/reject", response_model=EntityOut)
def reject(
    entity_type: EntityKind,
    entity_id: UUID,
    body: RejectRequest,
    actor: Actor = Depends(get_actor),
    engine: WorkflowEngine = Depends(get_workflow_engine),
):
    return EntityOut.model_validate(
        engine.reject(actor, entity_type, entity_id, body.feedback)
    )


@router.delete("/{entity_type}/{entity_id}", response_model=EntityOut)
def delete(
    entity_type: EntityKind,
    entity_id: UUID,
    actor: Actor = Depends(get_actor),
    engine: WorkflowEngine = Depends(get_workflow_engine),
):
    """Returns the record as it was just before removal."""
    return EntityOut.model_validate(engine.delete(actor, entity_type, entity_id))
