"""
Module: lms_kernel.models.sequence
Responsibility: Named counter rows backing reference-number allocation.
Architecture position: Kernel > Models.  Used only by SequenceService.
"""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from lms_kernel.db.base import Base


class SequenceCounter(Base):
    """
    One row per named sequence (e.g. "customer:2026", "receipt:2026").

    Row-level locking on this row serializes concurrent allocations.
    """

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(60), nullable=False, unique=True)
    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
