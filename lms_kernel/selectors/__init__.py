"""Read-only selectors returning frozen DTOs."""

from lms_kernel.selectors.activity_selector import ActivitySelector
from lms_kernel.selectors.audit_selector import AuditFilters, AuditSelector
from lms_kernel.selectors.entity_selector import EntitySelector
from lms_kernel.selectors.notification_selector import NotificationSelector
from lms_kernel.selectors.review_queue_selector import ReviewQueueSelector
from lms_kernel.selectors.tax_selector import TaxSelector
from lms_kernel.selectors.user_selector import UserSelector

__all__ = [
    "ActivitySelector",
    "AuditFilters",
    "AuditSelector",
    "EntitySelector",
    "NotificationSelector",
    "ReviewQueueSelector",
    "TaxSelector",
    "UserSelector",
]
