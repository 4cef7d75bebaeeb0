"""
BaseService -- abstract base for kernel services.

Services receive a SQLAlchemy ``Session`` from the caller.  Building-block
services (AuditTrail, ActivityLog, NotificationDispatcher, SequenceService)
only flush; the orchestrating services (WorkflowEngine, PaymentLedger,
RecordService) own the transaction when constructed with
``auto_commit=True``: they commit the primary write, run secondary effects
after it, and roll back and re-raise on any primary failure.
"""

import logging
import time
from abc import ABC
from contextlib import contextmanager
from typing import Any, Iterator
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from lms_kernel.domain.values import Actor
from lms_kernel.exceptions import LmsKernelError
from lms_kernel.logging_config import LogContext


class BaseService(ABC):
    """Holds the caller's session."""

    def __init__(self, session: Session):
        self.session = session


@contextmanager
def operation_scope(
    session: Session,
    logger: logging.Logger,
    operation: str,
    actor: Actor,
    entity_id: UUID | None = None,
    *,
    auto_commit: bool = True,
    extra: dict[str, Any] | None = None,
) -> Iterator[str]:
    """
    Log and transaction envelope of one mutating operation.

    Binds a fresh correlation id plus actor/entity/operation on LogContext,
    logs ``<operation>_started`` / ``_completed`` / ``_failed`` with
    ``duration_ms``, and on failure rolls back (when ``auto_commit``) and
    re-raises.  Expected rejections (LmsKernelError) log at WARNING.
    """
    correlation_id = str(uuid4())
    with LogContext.bind(
        correlation_id=correlation_id,
        actor_id=str(actor.id),
        entity_id=str(entity_id) if entity_id is not None else None,
        operation=operation,
    ):
        logger.info(
            f"{operation}_started",
            extra={"actor_role": actor.role.value, **(extra or {})},
        )
        t0 = time.monotonic()
        try:
            yield correlation_id
        except LmsKernelError as exc:
            duration_ms = round((time.monotonic() - t0) * 1000, 2)
            if auto_commit:
                session.rollback()
            logger.warning(
                f"{operation}_failed",
                extra={"duration_ms": duration_ms, "error_kind": exc.kind},
                exc_info=True,
            )
            raise
        except Exception:
            duration_ms = round((time.monotonic() - t0) * 1000, 2)
            if auto_commit:
                session.rollback()
            logger.error(
                f"{operation}_failed",
                extra={"duration_ms": duration_ms},
                exc_info=True,
            )
            raise
        duration_ms = round((time.monotonic() - t0) * 1000, 2)
        logger.info(f"{operation}_completed", extra={"duration_ms": duration_ms})
