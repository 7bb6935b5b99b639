"""
Database models for the audit trail and notifications.

Importing this package registers every table on Base.metadata.
"""

from adminlog.models.base import TimestampMixin, generate_uuid, utcnow, as_utc
from adminlog.models.audit_record import (
    AuditRecord,
    AuditEvent,
    AuditAction,
    Severity,
    HttpRequestDetails,
    AuthAttemptDetails,
    NoteDetails,
    details_from_dict,
    details_to_dict,
)
from adminlog.models.notification import (
    Notification,
    NotificationType,
    NotificationPriority,
    RelatedEntity,
)

__all__ = [
    "TimestampMixin",
    "generate_uuid",
    "utcnow",
    "as_utc",
    "AuditRecord",
    "AuditEvent",
    "AuditAction",
    "Severity",
    "HttpRequestDetails",
    "AuthAttemptDetails",
    "NoteDetails",
    "details_from_dict",
    "details_to_dict",
    "Notification",
    "NotificationType",
    "NotificationPriority",
    "RelatedEntity",
]
