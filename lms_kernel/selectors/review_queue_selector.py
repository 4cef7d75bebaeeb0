"""
Module: lms_kernel.selectors.review_queue_selector
Responsibility: SUBMITTED customers and properties waiting for review,
    oldest submission first, with their age in days.

The pending level (normal / warning / critical) is presentation only.
Nothing in the kernel enforces or escalates on it.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import select

from lms_kernel.domain.clock import as_utc
from lms_kernel.domain.dtos import Page, ReviewQueueItem
from lms_kernel.domain.values import EntityKind, EntityStatus, PendingLevel
from lms_kernel.models.customer import Customer
from lms_kernel.models.property import Property
from lms_kernel.selectors.base import BaseSelector

DEFAULT_WARNING_DAYS = 2
DEFAULT_CRITICAL_DAYS = 4


def pending_level(
    days_pending: int,
    warning_days: int = DEFAULT_WARNING_DAYS,
    critical_days: int = DEFAULT_CRITICAL_DAYS,
) -> PendingLevel:
    if days_pending >= critical_days:
        return PendingLevel.CRITICAL
    if days_pending >= warning_days:
        return PendingLevel.WARNING
    return PendingLevel.NORMAL


class ReviewQueueSelector(BaseSelector):

    def pending(
        self,
        now: datetime,
        *,
        kind: EntityKind | None = None,
        limit: int = 50,
        offset: int = 0,
        warning_days: int = DEFAULT_WARNING_DAYS,
        critical_days: int = DEFAULT_CRITICAL_DAYS,
    ) -> Page[ReviewQueueItem]:
        self._check_page(limit, offset)

        kinds = [kind] if kind else [EntityKind.CUSTOMER, EntityKind.PROPERTY]
        items: list[ReviewQueueItem] = []
        for entity_kind in kinds:
            model = Customer if entity_kind is EntityKind.CUSTOMER else Property
            rows = self.session.execute(
                select(
                    model.id,
                    model.reference_id,
                    model.display_name,
                    model.created_by,
                    model.submitted_at,
                ).where(model.status == EntityStatus.SUBMITTED.value)
            ).all()
            for row in rows:
                submitted_at = as_utc(row.submitted_at)
                days = max(0, (now - submitted_at).days)
                items.append(
                    ReviewQueueItem(
                        kind=entity_kind,
                        entity_id=row.id,
                        reference_id=row.reference_id,
                        display_name=row.display_name,
                        created_by=row.created_by,
                        submitted_at=submitted_at,
                        days_pending=days,
                        pending_level=pending_level(days, warning_days, critical_days),
                    )
                )

        items.sort(key=lambda item: (item.submitted_at, item.reference_id))
        return Page(
            items=tuple(items[offset: offset + limit]),
            total=len(items),
            limit=limit,
            offset=offset,
        )
