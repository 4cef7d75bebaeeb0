"""
SecondaryEffects -- best-effort writes after a committed primary write.

Audit entries, activity entries and notifications are written only after
the primary conditional write has committed.  Each effect runs inside its
own SAVEPOINT: a failing effect is rolled back alone, logged at ERROR as
``secondary_effect_failed`` and retried up to ``attempts`` times.  It is
never raised to the caller and never undoes the primary write.  Duplicate
rows from a retry are tolerated by readers (at-least-once).
"""

from __future__ import annotations

from typing import Callable
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from lms_kernel.logging_config import get_logger

logger = get_logger("services.secondary_effects")

DEFAULT_ATTEMPTS = 2


class SecondaryEffects:
    """Runs and commits best-effort effects for one operation."""

    def __init__(
        self,
        session: Session,
        *,
        entity_type: str,
        entity_id: UUID,
        attempts: int = DEFAULT_ATTEMPTS,
    ):
        self._session = session
        self._entity_type = entity_type
        self._entity_id = entity_id
        self._attempts = max(1, attempts)
        self.failed: list[str] = []

    def run(self, effect: str, fn: Callable[[], object]) -> bool:
        """Run ``fn`` in a savepoint.  True on success, False after all attempts fail."""
        for attempt in range(1, self._attempts + 1):
            savepoint = self._session.begin_nested()
            try:
                fn()
                self._session.flush()
                savepoint.commit()
                return True
            except Exception:
                if savepoint.is_active:
                    savepoint.rollback()
                logger.error(
                    "secondary_effect_failed",
                    extra={
                        "effect": effect,
                        "entity_type": self._entity_type,
                        "entity_id": str(self._entity_id),
                        "attempt": attempt,
                        "max_attempts": self._attempts,
                    },
                    exc_info=True,
                )
        self.failed.append(effect)
        return False

    def commit(self, auto_commit: bool = True) -> None:
        """Commit the effects that succeeded.  A failed commit is logged, not raised."""
        if not auto_commit:
            return
        try:
            self._session.commit()
        except SQLAlchemyError:
            self._session.rollback()
            self.failed.append("commit")
            logger.error(
                "secondary_effect_failed",
                extra={
                    "effect": "commit",
                    "entity_type": self._entity_type,
                    "entity_id": str(self._entity_id),
                },
                exc_info=True,
            )
