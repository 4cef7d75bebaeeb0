"""
Kernel services.

Orchestrators (own the transaction when ``auto_commit``):
    WorkflowEngine, PaymentLedger, RecordService, UserService.

Building blocks (flush only, run as secondary effects):
    AuditTrail, ActivityLog, NotificationDispatcher, SequenceService.
"""

from lms_kernel.services.activity_log_service import ActivityLog
from lms_kernel.services.audit_trail import AuditTrail
from lms_kernel.services.conditional_write import conditional_update
from lms_kernel.services.notification_dispatcher import NotificationDispatcher
from lms_kernel.services.payment_ledger import PaymentLedger
from lms_kernel.services.record_service import RecordService
from lms_kernel.services.secondary_effects import SecondaryEffects
from lms_kernel.services.sequence_service import SequenceService
from lms_kernel.services.user_service import UserService
from lms_kernel.services.workflow_engine import WorkflowEngine

__all__ = [
    "ActivityLog",
    "AuditTrail",
    "NotificationDispatcher",
    "PaymentLedger",
    "RecordService",
    "SecondaryEffects",
    "SequenceService",
    "UserService",
    "WorkflowEngine",
    "conditional_update",
]
