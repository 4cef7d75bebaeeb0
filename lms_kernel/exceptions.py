"""
Typed Exception Hierarchy for the LMS Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (the API layer, CLI tools, the review UI) must be able to react to a
failed mutation without parsing message strings.  Every error therefore:

  1. Has a TYPED exception class (catch by type, not message)
  2. Has a CODE attribute (machine-readable, API-safe)
  3. Has a KIND attribute naming its taxonomy bucket (ValidationError,
     Forbidden, InvalidTransition, NotFound, Conflict, OverpaymentError,
     DuplicateAssessment)
  4. Carries structured DATA as attributes, exposed through ``details``

Example - RIGHT way to handle errors:
    try:
        ledger.apply_payment(actor, assessment_id, amount, ...)
    except OverpaymentError as e:
        show_banner(f"Only {e.outstanding} is outstanding")

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LmsKernelError (base)
    |
    +-- ValidationError                  kind=ValidationError
    |   +-- FeedbackTooShortError
    |   +-- InvalidAmountError
    |   +-- DuplicateReceiptError
    |
    +-- ForbiddenError                   kind=Forbidden
    |
    +-- InvalidTransitionError           kind=InvalidTransition
    |
    +-- NotFoundError                    kind=NotFound
    |   +-- EntityNotFoundError
    |   +-- AssessmentNotFoundError
    |   +-- NotificationNotFoundError
    |
    +-- ConflictError                    kind=Conflict
    |
    +-- OverpaymentError                 kind=OverpaymentError
    |
    +-- DuplicateAssessmentError         kind=DuplicateAssessment
    |
    +-- ImmutabilityViolationError       kind=Immutability

===============================================================================
HANDLING PATTERNS
===============================================================================

1. Primary-operation errors are surfaced verbatim.  Services roll back the
   session and re-raise; nothing in this hierarchy is swallowed.

2. ConflictError means "someone else changed the row after you read it".
   The caller re-reads and decides whether to retry.

3. Secondary effects (audit rows, activity rows, notifications) never raise
   into the caller; their failures are logged by SecondaryEffects.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any


class LmsKernelError(Exception):
    """
    Base exception for all LMS kernel errors.

    All subclasses define ``code`` and ``kind`` class attributes.
    """

    code: str = "LMS_KERNEL_ERROR"
    kind: str = "Internal"

    @property
    def details(self) -> dict[str, Any]:
        """Structured context carried by the exception (public attributes)."""
        return {
            key: value
            for key, value in vars(self).items()
            if not key.startswith("_")
        }


# Validation


class ValidationError(LmsKernelError):
    """Malformed or missing input."""

    code: str = "VALIDATION_ERROR"
    kind: str = "ValidationError"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class FeedbackTooShortError(ValidationError):
    """Rejection feedback shorter than the configured minimum."""

    code: str = "FEEDBACK_TOO_SHORT"

    def __init__(self, length: int, min_length: int):
        self.length = length
        self.min_length = min_length
        super().__init__(
            f"Feedback must be at least {min_length} characters (got {length})",
            field="feedback",
        )


class InvalidAmountError(ValidationError):
    """Monetary amount is negative, zero where positive is required, or malformed."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, field: str, value: Any, reason: str):
        self.value = str(value)
        self.reason = reason
        super().__init__(f"Invalid {field}: {value} ({reason})", field=field)


class DuplicateReceiptError(ValidationError):
    """A payment with this receipt number already exists."""

    code: str = "DUPLICATE_RECEIPT"

    def __init__(self, receipt_number: str):
        self.receipt_number = receipt_number
        super().__init__(
            f"Receipt number already used: {receipt_number}",
            field="receipt_number",
        )


# Authorization


class ForbiddenError(LmsKernelError):
    """Actor's role is not permitted to perform the operation."""

    code: str = "FORBIDDEN"
    kind: str = "Forbidden"

    def __init__(self, operation: str, role: str, reason: str):
        self.operation = operation
        self.role = role
        super().__init__(reason)


# Workflow


class InvalidTransitionError(LmsKernelError):
    """Status precondition for the operation is not met."""

    code: str = "INVALID_TRANSITION"
    kind: str = "InvalidTransition"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        current_status: str,
        operation: str,
        message: str | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.current_status = current_status
        self.operation = operation
        super().__init__(
            message
            or f"Cannot {operation} {entity_type} {entity_id} in status {current_status}"
        )


# Lookup


class NotFoundError(LmsKernelError):
    """Requested record does not exist."""

    code: str = "NOT_FOUND"
    kind: str = "NotFound"


class EntityNotFoundError(NotFoundError):
    """Customer or property not found."""

    code: str = "ENTITY_NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type.capitalize()} not found: {entity_id}")


class AssessmentNotFoundError(NotFoundError):
    """Tax assessment not found."""

    code: str = "ASSESSMENT_NOT_FOUND"

    def __init__(self, assessment_id: str):
        self.assessment_id = assessment_id
        super().__init__(f"Tax assessment not found: {assessment_id}")


class NotificationNotFoundError(NotFoundError):
    """Notification not found for this user."""

    code: str = "NOTIFICATION_NOT_FOUND"

    def __init__(self, notification_id: str):
        self.notification_id = notification_id
        super().__init__(f"Notification not found: {notification_id}")


# Concurrency


class ConflictError(LmsKernelError):
    """
    Optimistic write precondition failed.

    The row changed between the caller's read and its conditional write.
    Retry from a fresh read.
    """

    code: str = "CONFLICT"
    kind: str = "Conflict"

    def __init__(self, entity_type: str, entity_id: str, expected_version: int):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_version = expected_version
        super().__init__(
            f"Conflict on {entity_type} {entity_id}: "
            "record was modified by another request, reload and retry"
        )


# Ledger


class OverpaymentError(LmsKernelError):
    """Payment exceeds the outstanding amount.  Never silently clamped."""

    code: str = "OVERPAYMENT"
    kind: str = "OverpaymentError"

    def __init__(self, assessment_id: str, attempted: Decimal, outstanding: Decimal):
        self.assessment_id = assessment_id
        self.attempted = attempted
        self.outstanding = outstanding
        super().__init__(
            f"Payment of {attempted} exceeds outstanding amount {outstanding}"
        )


class DuplicateAssessmentError(LmsKernelError):
    """An assessment already exists for this property and tax year."""

    code: str = "DUPLICATE_ASSESSMENT"
    kind: str = "DuplicateAssessment"

    def __init__(self, property_id: str, tax_year: int):
        self.property_id = property_id
        self.tax_year = tax_year
        super().__init__(
            f"Tax assessment already exists for property {property_id} "
            f"and year {tax_year}"
        )


# Append-only records


class ImmutabilityViolationError(LmsKernelError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"
    kind: str = "Immutability"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
