"""
Module: lms_kernel.selectors.audit_selector
Responsibility: Read path of the audit trail: filtered, paginated,
    newest-first listing of field-level entries.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select

from lms_kernel.domain.dtos import AuditEntryRecord, Page
from lms_kernel.models.audit_log import AuditLogEntry
from lms_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class AuditFilters:
    """Optional filters; date bounds are inclusive."""

    actor_id: UUID | None = None
    action: str | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None


class AuditSelector(BaseSelector):

    def query(
        self,
        *,
        entity_type: str | None = None,
        entity_id: UUID | None = None,
        filters: AuditFilters | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Page[AuditEntryRecord]:
        self._check_page(limit, offset)
        filters = filters or AuditFilters()

        conditions = []
        if entity_type is not None:
            conditions.append(AuditLogEntry.entity_type == entity_type)
        if entity_id is not None:
            conditions.append(AuditLogEntry.entity_id == entity_id)
        if filters.actor_id is not None:
            conditions.append(AuditLogEntry.changed_by == filters.actor_id)
        if filters.action is not None:
            conditions.append(AuditLogEntry.action == filters.action)
        if filters.date_from is not None:
            conditions.append(AuditLogEntry.timestamp >= filters.date_from)
        if filters.date_to is not None:
            conditions.append(AuditLogEntry.timestamp <= filters.date_to)

        total = self.session.execute(
            select(func.count()).select_from(AuditLogEntry).where(*conditions)
        ).scalar_one()

        rows = self.session.execute(
            select(AuditLogEntry)
            .where(*conditions)
            .order_by(AuditLogEntry.timestamp.desc(), AuditLogEntry.field_name)
            .limit(limit)
            .offset(offset)
        ).scalars()

        return Page(
            items=tuple(row.to_dto() for row in rows),
            total=total,
            limit=limit,
            offset=offset,
        )
