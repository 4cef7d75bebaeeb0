"""
AuditTrail -- append-only field-level change log.

Responsibility:
    ``record()`` writes one AuditLogEntry per changed field of one logical
    operation, all tagged with the same timestamp so the UI can group them.
    ``query()`` is the read path (delegates to AuditSelector).

Architecture position:
    Kernel > Services.  Called by the orchestrators through
    SecondaryEffects, after the primary write has committed.  Never
    commits; never updates or deletes existing rows.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable
from uuid import UUID

from sqlalchemy.orm import Session

from lms_kernel.domain.clock import Clock, SystemClock
from lms_kernel.domain.dtos import AuditEntryRecord, FieldChange, Page
from lms_kernel.logging_config import get_logger
from lms_kernel.models.audit_log import AuditLogEntry
from lms_kernel.selectors.audit_selector import AuditFilters, AuditSelector
from lms_kernel.services.base import BaseService

logger = get_logger("services.audit_trail")


def stringify_value(value: Any) -> str | None:
    """Canonical text form of an audited value."""
    if value is None:
        return None
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Decimal):
        return f"{value:f}"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    return str(value)


def diff_fields(before: dict[str, Any], after: dict[str, Any]) -> list[FieldChange]:
    """FieldChanges for keys whose canonical text form differs."""
    changes = []
    for name in after:
        old, new = before.get(name), after[name]
        if stringify_value(old) != stringify_value(new):
            changes.append(FieldChange(name, old, new))
    return changes


class AuditTrail(BaseService):
    """Writes and reads field-level audit entries."""

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def record(
        self,
        entity_type: str,
        entity_id: UUID,
        action: str,
        changes: Iterable[FieldChange],
        actor_id: UUID,
        *,
        timestamp: datetime | None = None,
    ) -> list[AuditEntryRecord]:
        """
        Append one entry per changed field.

        Changes whose old and new values are equal are skipped.  All
        entries share one timestamp.
        """
        ts = timestamp or self._clock.now()
        action_value = action.value if isinstance(action, Enum) else action

        entries = []
        for change in changes:
            old_text = stringify_value(change.old_value)
            new_text = stringify_value(change.new_value)
            if old_text == new_text:
                continue
            entries.append(
                AuditLogEntry(
                    entity_type=entity_type,
                    entity_id=entity_id,
                    action=action_value,
                    field_name=change.field,
                    old_value=old_text,
                    new_value=new_text,
                    changed_by=actor_id,
                    timestamp=ts,
                )
            )

        self.session.add_all(entries)
        self.session.flush()

        logger.debug(
            "audit_recorded",
            extra={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "action": action_value,
                "field_count": len(entries),
            },
        )
        return [entry.to_dto() for entry in entries]

    def query(
        self,
        entity_type: str | None = None,
        entity_id: UUID | None = None,
        filters: AuditFilters | None = None,
        *,
        limit: int = 50,
        offset: int = 0,
    ) -> Page[AuditEntryRecord]:
        """Entries newest first."""
        return AuditSelector(self.session).query(
            entity_type=entity_type,
            entity_id=entity_id,
            filters=filters,
            limit=limit,
            offset=offset,
        )
