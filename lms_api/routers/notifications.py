"""The acting user's notifications."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from lms_api.dependencies import (
    get_actor,
    get_db,
    get_notification_dispatcher,
    get_settings,
    page_params,
)
from lms_api.schemas import MarkAllReadOut, NotificationOut, PageOut, page_out
from lms_config import LmsSettings
from lms_kernel.domain.values import Actor
from lms_kernel.selectors.notification_selector import NotificationSelector
from lms_kernel.services.notification_dispatcher import NotificationDispatcher

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("", response_model=PageOut[NotificationOut])
def list_notifications(
    unread_only: bool = Query(default=False, alias="unreadOnly"),
    limit: Optional[int] = Query(default=None),
    offset: int = Query(default=0),
    actor: Actor = Depends(get_actor),
    session: Session = Depends(get_db),
    settings: LmsSettings = Depends(get_settings),
):
    limit, offset = page_params(settings, limit, offset)
    page = NotificationSelector(session).for_user(
        actor.id, unread_only=unread_only, limit=limit, offset=offset
    )
    return page_out(page, NotificationOut)


@router.post("/read-all", response_model=MarkAllReadOut)
def mark_all_read(
    actor: Actor = Depends(get_actor),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    return MarkAllReadOut(updated=dispatcher.mark_all_read(actor))


@router.post("/{notification_id}/read", response_model=NotificationOut)
def mark_read(
    notification_id: UUID,
    actor: Actor = Depends(get_actor),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    return NotificationOut.model_validate(dispatcher.mark_read(actor, notification_id))
