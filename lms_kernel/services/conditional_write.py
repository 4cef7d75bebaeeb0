"""
Conditional (optimistic) writes.

Every status or amount mutation is a single statement of the form::

    UPDATE <table>
       SET ..., version = :observed + 1
     WHERE id = :id AND version = :observed [AND status = :observed_status]

If another request changed the row after it was read, zero rows match and
the write fails with ConflictError.  The caller retries from a fresh read;
nothing is ever blindly overwritten.
"""

from __future__ import annotations

from typing import Any, TypeVar
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from lms_kernel.exceptions import ConflictError
from lms_kernel.logging_config import get_logger

logger = get_logger("services.conditional_write")

ModelT = TypeVar("ModelT")


def conditional_update(
    session: Session,
    model: type[ModelT],
    row_id: UUID,
    expected_version: int,
    values: dict[str, Any],
    *,
    entity_type: str,
    expected_status: str | None = None,
) -> ModelT:
    """
    Apply ``values`` iff the row still has ``expected_version`` (and status).

    Returns:
        The row reloaded from the database.

    Raises:
        ConflictError: the row changed since it was read.
    """
    stmt = update(model).where(
        model.id == row_id,
        model.version == expected_version,
    )
    if expected_status is not None:
        stmt = stmt.where(model.status == expected_status)
    stmt = stmt.values(**values, version=expected_version + 1).execution_options(
        synchronize_session=False
    )

    result = session.execute(stmt)
    if result.rowcount != 1:
        logger.warning(
            "conditional_write_conflict",
            extra={
                "entity_type": entity_type,
                "entity_id": str(row_id),
                "expected_version": expected_version,
                "expected_status": expected_status,
            },
        )
        raise ConflictError(entity_type, str(row_id), expected_version)

    return session.execute(
        select(model)
        .where(model.id == row_id)
        .execution_options(populate_existing=True)
    ).scalar_one()
