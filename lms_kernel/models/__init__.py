"""ORM models for the LMS kernel."""

from lms_kernel.models.activity_log import ActivityLogEntry
from lms_kernel.models.audit_log import AuditLogEntry
from lms_kernel.models.customer import (
    DETAIL_MODELS,
    Customer,
    CustomerBusiness,
    CustomerContractor,
    CustomerGovernment,
    CustomerMosqueHospital,
    CustomerNonProfit,
    CustomerPerson,
)
from lms_kernel.models.notification import Notification
from lms_kernel.models.property import Property, PropertyOwner, PropertyPhoto
from lms_kernel.models.sequence import SequenceCounter
from lms_kernel.models.tax import TaxAssessment, TaxPayment
from lms_kernel.models.user import User

__all__ = [
    "ActivityLogEntry",
    "AuditLogEntry",
    "Customer",
    "CustomerBusiness",
    "CustomerContractor",
    "CustomerGovernment",
    "CustomerMosqueHospital",
    "CustomerNonProfit",
    "CustomerPerson",
    "DETAIL_MODELS",
    "Notification",
    "Property",
    "PropertyOwner",
    "PropertyPhoto",
    "SequenceCounter",
    "TaxAssessment",
    "TaxPayment",
    "User",
]
