"""
ActivityLog -- one append-only entry per logical operation.

Coarser than AuditTrail: "who did what to which entity when", with a small
JSON metadata payload (reference id, amounts, feedback, ...).  Written after
the primary write commits, through SecondaryEffects.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from lms_kernel.domain.clock import Clock, SystemClock
from lms_kernel.domain.dtos import ActivityEntryRecord, Page
from lms_kernel.logging_config import get_logger
from lms_kernel.models.activity_log import ActivityLogEntry
from lms_kernel.selectors.activity_selector import ActivitySelector
from lms_kernel.services.base import BaseService

logger = get_logger("services.activity_log")


def _jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return f"{value:f}"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    return value


class ActivityLog(BaseService):
    """Writes and reads activity entries."""

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def record(
        self,
        entity_type: str,
        entity_id: UUID,
        action: str,
        actor_id: UUID,
        metadata: dict[str, Any] | None = None,
        *,
        timestamp: datetime | None = None,
    ) -> ActivityEntryRecord:
        action_value = action.value if isinstance(action, Enum) else action
        entry = ActivityLogEntry(
            entity_type=entity_type,
            entity_id=entity_id,
            action=action_value,
            performed_by=actor_id,
            timestamp=timestamp or self._clock.now(),
            details=_jsonable(metadata or {}),
        )
        self.session.add(entry)
        self.session.flush()

        logger.debug(
            "activity_recorded",
            extra={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "action": action_value,
            },
        )
        return entry.to_dto()

    def query(
        self,
        *,
        entity_id: UUID | None = None,
        entity_type: str | None = None,
        performed_by: UUID | None = None,
        page: int = 1,
        limit: int = 50,
    ) -> Page[ActivityEntryRecord]:
        return ActivitySelector(self.session).query(
            entity_id=entity_id,
            entity_type=entity_type,
            performed_by=performed_by,
            page=page,
            limit=limit,
        )
