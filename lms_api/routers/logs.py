"""Audit and activity log queries."""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from lms_api.dependencies import get_actor, get_db, get_settings, page_params
from lms_api.schemas import ActivityEntryOut, AuditEntryOut, PageOut, page_out
from lms_config import LmsSettings
from lms_kernel.domain.values import Actor
from lms_kernel.selectors.activity_selector import ActivitySelector
from lms_kernel.selectors.audit_selector import AuditFilters, AuditSelector

router = APIRouter(tags=["Logs"])


@router.get("/audit-logs", response_model=PageOut[AuditEntryOut])
def audit_logs(
    entity_type: Optional[str] = Query(default=None, alias="entityType"),
    entity_id: Optional[UUID] = Query(default=None, alias="entityId"),
    actor_id: Optional[UUID] = Query(default=None, alias="actorId"),
    action: Optional[str] = Query(default=None),
    date_from: Optional[datetime] = Query(default=None, alias="dateFrom"),
    date_to: Optional[datetime] = Query(default=None, alias="dateTo"),
    limit: Optional[int] = Query(default=None),
    offset: int = Query(default=0),
    actor: Actor = Depends(get_actor),
    session: Session = Depends(get_db),
    settings: LmsSettings = Depends(get_settings),
):
    """Entries newest first, with the unpaginated total."""
    limit, offset = page_params(settings, limit, offset)
    page = AuditSelector(session).query(
        entity_type=entity_type,
        entity_id=entity_id,
        filters=AuditFilters(
            actor_id=actor_id,
            action=action.upper() if action else None,
            date_from=date_from,
            date_to=date_to,
        ),
        limit=limit,
        offset=offset,
    )
    return page_out(page, AuditEntryOut)


@router.get("/activity-logs", response_model=PageOut[ActivityEntryOut])
def activity_logs(
    entity_id: Optional[UUID] = Query(default=None, alias="entityId"),
    entity_type: Optional[str] = Query(default=None, alias="entityType"),
    performed_by: Optional[UUID] = Query(default=None, alias="performedBy"),
    page: int = Query(default=1),
    limit: Optional[int] = Query(default=None),
    actor: Actor = Depends(get_actor),
    session: Session = Depends(get_db),
    settings: LmsSettings = Depends(get_settings),
):
    limit, _ = page_params(settings, limit, 0)
    result = ActivitySelector(session).query(
        entity_id=entity_id,
        entity_type=entity_type,
        performed_by=performed_by,
        page=page,
        limit=limit,
    )
    return page_out(result, ActivityEntryOut)
