"""
Module: lms_kernel.selectors.activity_selector
Responsibility: Page-numbered, newest-first listing of activity entries
    for UI timelines.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select

from lms_kernel.domain.dtos import ActivityEntryRecord, Page
from lms_kernel.exceptions import ValidationError
from lms_kernel.models.activity_log import ActivityLogEntry
from lms_kernel.selectors.base import BaseSelector


class ActivitySelector(BaseSelector):

    def query(
        self,
        *,
        entity_id: UUID | None = None,
        entity_type: str | None = None,
        performed_by: UUID | None = None,
        page: int = 1,
        limit: int = 50,
    ) -> Page[ActivityEntryRecord]:
        """``page`` is 1-based."""
        if page < 1:
            raise ValidationError("page must be at least 1", field="page")
        offset = (page - 1) * limit
        self._check_page(limit, offset)

        conditions = []
        if entity_id is not None:
            conditions.append(ActivityLogEntry.entity_id == entity_id)
        if entity_type is not None:
            conditions.append(ActivityLogEntry.entity_type == entity_type)
        if performed_by is not None:
            conditions.append(ActivityLogEntry.performed_by == performed_by)

        total = self.session.execute(
            select(func.count()).select_from(ActivityLogEntry).where(*conditions)
        ).scalar_one()

        rows = self.session.execute(
            select(ActivityLogEntry)
            .where(*conditions)
            .order_by(ActivityLogEntry.timestamp.desc())
            .limit(limit)
            .offset(offset)
        ).scalars()

        return Page(
            items=tuple(row.to_dto() for row in rows),
            total=total,
            limit=limit,
            offset=offset,
        )
