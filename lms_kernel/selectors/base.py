"""
Module: lms_kernel.selectors.base
Responsibility: Base class for read-only query selectors.

Selectors accept a Session from the caller, never add/flush/commit, and
return frozen DTOs (never ORM instances).
"""

from abc import ABC

from sqlalchemy.orm import Session

from lms_kernel.exceptions import ValidationError

MAX_PAGE_SIZE = 500


class BaseSelector(ABC):
    """Holds the caller's session for read-only queries."""

    def __init__(self, session: Session):
        self.session = session

    @staticmethod
    def _check_page(limit: int, offset: int) -> None:
        if limit < 1 or limit > MAX_PAGE_SIZE:
            raise ValidationError(
                f"limit must be between 1 and {MAX_PAGE_SIZE}", field="limit"
            )
        if offset < 0:
            raise ValidationError("offset must not be negative", field="offset")
