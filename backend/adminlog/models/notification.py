"""
Notification model for storing user notifications.

Stores in-app notifications created by domain events (orders, quotes,
warranties, invoices, account approvals, inventory).

Lifecycle:
- created on a domain event
- mutated only by read-state transitions (mark_read)
- deleted only by the owning recipient
"""

import enum
from typing import Any, Optional

from sqlalchemy import Column, String, Text, Boolean, DateTime, Index

from adminlog.db_base import Base
from adminlog.models.base import JSONType, TimestampMixin, generate_uuid, utcnow, as_utc


class NotificationType(str, enum.Enum):
    """Domain events that can trigger a notification."""
    ORDER_CREATED = "ORDER_CREATED"
    ORDER_UPDATED = "ORDER_UPDATED"
    ORDER_SHIPPED = "ORDER_SHIPPED"
    ORDER_DELIVERED = "ORDER_DELIVERED"
    ORDER_CANCELLED = "ORDER_CANCELLED"
    PAYMENT_RECEIVED = "PAYMENT_RECEIVED"
    QUOTE_REQUESTED = "QUOTE_REQUESTED"
    QUOTE_RESPONDED = "QUOTE_RESPONDED"
    QUOTE_ACCEPTED = "QUOTE_ACCEPTED"
    QUOTE_REJECTED = "QUOTE_REJECTED"
    WARRANTY_SUBMITTED = "WARRANTY_SUBMITTED"
    WARRANTY_APPROVED = "WARRANTY_APPROVED"
    WARRANTY_REJECTED = "WARRANTY_REJECTED"
    INVOICE_GENERATED = "INVOICE_GENERATED"
    USER_REGISTERED = "USER_REGISTERED"
    USER_APPROVED = "USER_APPROVED"
    USER_REJECTED = "USER_REJECTED"
    RETAILER_SALE = "RETAILER_SALE"
    INVENTORY_LOW = "INVENTORY_LOW"
    PRODUCT_OUT_OF_STOCK = "PRODUCT_OUT_OF_STOCK"
    SYSTEM_ALERT = "SYSTEM_ALERT"
    OTHER = "OTHER"


class NotificationPriority(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class RelatedEntity(str, enum.Enum):
    ORDER = "Order"
    QUOTE = "Quote"
    WARRANTY = "Warranty"
    INVOICE = "Invoice"
    PRODUCT = "Product"
    USER = "User"
    OTHER = "Other"


class Notification(Base, TimestampMixin):
    """
    Core notification record.

    SECURITY: recipient_id is the ownership key; every read, update and
    delete is scoped by it.
    """

    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=generate_uuid)

    recipient_id = Column(String(255), nullable=False, index=True)
    sender_id = Column(String(255), nullable=True)

    type = Column(String(50), nullable=False)
    title = Column(String(500), nullable=False)
    message = Column(Text, nullable=False)
    link = Column(String(1000), nullable=True)

    related_entity = Column(String(50), nullable=True)
    related_entity_id = Column(String(255), nullable=True)

    priority = Column(String(20), nullable=False, default=NotificationPriority.MEDIUM.value)

    is_read = Column(Boolean, nullable=False, default=False)
    read_at = Column(DateTime(timezone=True), nullable=True)

    event_metadata = Column(JSONType, nullable=False, default=dict)

    __table_args__ = (
        Index("ix_notifications_recipient_read_created", "recipient_id", "is_read", "created_at"),
        Index("ix_notifications_type_created", "type", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Notification(id={self.id}, recipient_id={self.recipient_id}, "
            f"type={self.type}, is_read={self.is_read})>"
        )

    def mark_read(self) -> bool:
        """Mark as read. Returns False if it was already read."""
        if self.is_read:
            return False
        self.is_read = True
        self.read_at = utcnow()
        return True

    def to_event_payload(self) -> dict[str, Any]:
        """Payload pushed to the recipient's live connections."""
        created = as_utc(self.created_at)
        return {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "link": self.link,
            "priority": self.priority,
            "createdAt": created.isoformat() if created else None,
        }

    def to_dict(self) -> dict[str, Any]:
        created = as_utc(self.created_at)
        read_at = as_utc(self.read_at)
        return {
            "id": self.id,
            "recipientId": self.recipient_id,
            "senderId": self.sender_id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "link": self.link,
            "relatedEntity": self.related_entity,
            "relatedEntityId": self.related_entity_id,
            "priority": self.priority,
            "isRead": self.is_read,
            "readAt": read_at.isoformat() if read_at else None,
            "metadata": self.event_metadata or {},
            "createdAt": created.isoformat() if created else None,
        }

    @classmethod
    def create(
        cls,
        recipient_id: str,
        notification_type: NotificationType,
        title: str,
        message: str,
        sender_id: Optional[str] = None,
        link: Optional[str] = None,
        related_entity: Optional[RelatedEntity] = None,
        related_entity_id: Optional[str] = None,
        priority: NotificationPriority = NotificationPriority.MEDIUM,
        event_metadata: Optional[dict] = None,
    ) -> "Notification":
        """Factory method normalizing enum values to their stored strings."""
        now = utcnow()
        return cls(
            recipient_id=str(recipient_id),
            sender_id=str(sender_id) if sender_id else None,
            type=NotificationType(notification_type).value,
            title=title,
            message=message,
            link=link,
            related_entity=RelatedEntity(related_entity).value if related_entity else None,
            related_entity_id=str(related_entity_id) if related_entity_id else None,
            priority=NotificationPriority(priority).value,
            is_read=False,
            event_metadata=event_metadata or {},
            created_at=now,
            updated_at=now,
        )
