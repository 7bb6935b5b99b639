"""
Business logic services.
"""

from adminlog.services.audit_store import AdminActionLogger, AuditRecordStore, AuditWriter
from adminlog.services.notification_service import NotificationService

__all__ = ["AdminActionLogger", "AuditRecordStore", "AuditWriter", "NotificationService"]
