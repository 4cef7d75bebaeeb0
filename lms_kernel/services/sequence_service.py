"""
SequenceService -- human-readable reference numbers via locked counter rows.

Responsibility:
    Allocates strictly increasing values per named sequence and formats
    them as reference numbers (``CUS-2026-00001``, ``TAX-2026-000001``,
    ``RCP-2026-00001``, ``{district}-2026-00001``).  Uses a counter table
    with row-level locking (``SELECT ... FOR UPDATE``) so concurrent
    allocations never hand out the same value.

Architecture position:
    Kernel > Services.  Called by RecordService (customer/property
    references) and PaymentLedger (assessment and receipt numbers).

Failure modes:
    - IntegrityError on concurrent counter creation is handled with a
      savepoint rollback and re-read.

Allocation is transactional: a rolled-back caller returns its value.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from lms_kernel.logging_config import get_logger
from lms_kernel.models.sequence import SequenceCounter
from lms_kernel.services.base import BaseService

logger = get_logger("services.sequence")


def format_reference(prefix: str, year: int, value: int, width: int) -> str:
    """``PREFIX-YYYY-000NN``."""
    return f"{prefix}-{year}-{value:0{width}d}"


class SequenceService(BaseService):
    """
    Allocates sequence numbers inside the caller's transaction.

    Does NOT commit.  The counter row stays locked until the caller's
    transaction ends.
    """

    def __init__(self, session: Session):
        super().__init__(session)

    def _locked_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self.session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, sequence_name: str) -> int:
        """
        Next value for a named sequence (always > 0).

        Locks the counter row (creating it on first use) and increments it.
        """
        counter = self._locked_counter(sequence_name)

        if counter is None:
            savepoint = self.session.begin_nested()
            try:
                counter = SequenceCounter(name=sequence_name, current_value=1)
                self.session.add(counter)
                self.session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": 1},
                )
                return 1
            except IntegrityError:
                # Another transaction created the counter first
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
                counter = self._locked_counter(sequence_name)
                if counter is None:
                    raise

        counter.current_value += 1
        self.session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def next_reference(self, prefix: str, year: int, width: int) -> str:
        """Allocate the next ``PREFIX-YYYY-NNN`` reference for this prefix and year."""
        value = self.next_value(f"{prefix}:{year}")
        return format_reference(prefix, year, value, width)

    def current_value(self, sequence_name: str) -> int | None:
        """Current value without incrementing, or None if never used."""
        counter = self.session.execute(
            select(SequenceCounter).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()
        return counter.current_value if counter else None
