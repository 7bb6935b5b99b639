"""
Notification service.

Persists notifications for domain events and pushes them to the
recipient's live connections through the NotificationHub.

SECURITY: every read, update and delete is scoped by recipient_id, which
comes from the authenticated actor, never from client input.

Emitted events:
- notification: a new notification for the recipient
- admin-notification: copy to the admin role group (notify_admins)
- notification:read / notifications:all-read / notification:deleted
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from adminlog.models.base import utcnow
from adminlog.models.notification import (
    Notification,
    NotificationPriority,
    NotificationType,
    RelatedEntity,
)
from adminlog.realtime.hub import (
    EVENT_ADMIN_NOTIFICATION,
    EVENT_ALL_READ,
    EVENT_NOTIFICATION,
    EVENT_NOTIFICATION_DELETED,
    EVENT_NOTIFICATION_READ,
    NotificationHub,
)

logger = logging.getLogger(__name__)

ADMIN_ROLE = "admin"


class NotificationError(Exception):
    """Base exception for notification errors."""
    pass


class NotificationNotFoundError(NotificationError):
    """Notification does not exist or is not owned by the caller."""

    def __init__(self, notification_id: str):
        super().__init__(f"Notification not found: {notification_id}")
        self.notification_id = notification_id


@dataclass
class NotificationPage:
    notifications: list[Notification]
    total: int
    unread_count: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        if self.page_size <= 0:
            return 0
        return -(-self.total // self.page_size)


@dataclass(frozen=True)
class NotificationDraft:
    """Content of a notification before it is addressed to a recipient."""

    notification_type: NotificationType
    title: str
    message: str
    sender_id: Optional[str] = None
    link: Optional[str] = None
    related_entity: Optional[RelatedEntity] = None
    related_entity_id: Optional[str] = None
    priority: NotificationPriority = NotificationPriority.MEDIUM
    event_metadata: Optional[dict] = None

    def for_recipient(self, recipient_id: str) -> Notification:
        return Notification.create(
            recipient_id=recipient_id,
            notification_type=self.notification_type,
            title=self.title,
            message=self.message,
            sender_id=self.sender_id,
            link=self.link,
            related_entity=self.related_entity,
            related_entity_id=self.related_entity_id,
            priority=self.priority,
            event_metadata=self.event_metadata,
        )


class NotificationService:
    """
    Service for creating and managing notifications.

    The hub is optional: without one, notifications are only persisted.
    """

    def __init__(self, db_session: Session, hub: Optional[NotificationHub] = None):
        self.db = db_session
        self.hub = hub

    async def _emit(self, user_id: str, event: str, payload: dict) -> None:
        if self.hub is None:
            return
        await self.hub.notify_user(user_id, event, payload)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_notification(self, recipient_id: str, draft: NotificationDraft) -> Notification:
        notification = draft.for_recipient(recipient_id)
        self.db.add(notification)
        self.db.commit()
        self.db.refresh(notification)

        logger.info(
            "Notification created",
            extra={
                "notification_id": notification.id,
                "recipient_id": notification.recipient_id,
                "type": notification.type,
                "priority": notification.priority,
            },
        )
        await self._emit(notification.recipient_id, EVENT_NOTIFICATION, notification.to_event_payload())
        return notification

    async def create_bulk(self, recipient_ids: Iterable[str], draft: NotificationDraft) -> list[Notification]:
        """One notification per distinct recipient, committed together."""
        recipients = list(dict.fromkeys(str(r) for r in recipient_ids if r))
        notifications = [draft.for_recipient(recipient_id) for recipient_id in recipients]
        if not notifications:
            return []

        self.db.add_all(notifications)
        self.db.commit()
        for notification in notifications:
            self.db.refresh(notification)

        logger.info(
            "Bulk notifications created",
            extra={"count": len(notifications), "type": draft.notification_type.value},
        )
        for notification in notifications:
            await self._emit(notification.recipient_id, EVENT_NOTIFICATION, notification.to_event_payload())
        return notifications

    async def notify_admins(self, admin_ids: Iterable[str], draft: NotificationDraft) -> list[Notification]:
        """Persist for each admin and broadcast to the admin role group."""
        notifications = await self.create_bulk(admin_ids, draft)
        if self.hub is not None:
            await self.hub.notify_role_group(
                ADMIN_ROLE,
                EVENT_ADMIN_NOTIFICATION,
                {
                    "type": draft.notification_type.value,
                    "title": draft.title,
                    "message": draft.message,
                    "link": draft.link,
                    "priority": draft.priority.value,
                },
            )
        return notifications

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def unread_count(self, recipient_id: str) -> int:
        return (
            self.db.query(Notification)
            .filter(
                Notification.recipient_id == str(recipient_id),
                Notification.is_read.is_(False),
            )
            .count()
        )

    def list_for_user(
        self,
        recipient_id: str,
        page: int = 1,
        page_size: int = 20,
        unread_only: bool = False,
    ) -> NotificationPage:
        query = self.db.query(Notification).filter(Notification.recipient_id == str(recipient_id))
        if unread_only:
            query = query.filter(Notification.is_read.is_(False))

        total = query.count()
        notifications = (
            query
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return NotificationPage(
            notifications=notifications,
            total=total,
            unread_count=self.unread_count(recipient_id),
            page=page,
            page_size=page_size,
        )

    def _get_owned(self, notification_id: str, recipient_id: str) -> Notification:
        notification = (
            self.db.query(Notification)
            .filter(
                Notification.id == notification_id,
                Notification.recipient_id == str(recipient_id),
            )
            .first()
        )
        if notification is None:
            raise NotificationNotFoundError(notification_id)
        return notification

    # ------------------------------------------------------------------
    # Read-state transitions and deletion
    # ------------------------------------------------------------------

    async def mark_as_read(self, notification_id: str, recipient_id: str) -> Notification:
        notification = self._get_owned(notification_id, recipient_id)
        if notification.mark_read():
            self.db.commit()
            self.db.refresh(notification)
            await self._emit(
                notification.recipient_id,
                EVENT_NOTIFICATION_READ,
                {"notificationId": notification.id},
            )
        return notification

    async def mark_all_as_read(self, recipient_id: str) -> int:
        now = utcnow()
        updated = (
            self.db.query(Notification)
            .filter(
                Notification.recipient_id == str(recipient_id),
                Notification.is_read.is_(False),
            )
            .update(
                {"is_read": True, "read_at": now, "updated_at": now},
                synchronize_session=False,
            )
        )
        self.db.commit()

        logger.info(
            "Notifications marked read",
            extra={"recipient_id": recipient_id, "count": updated},
        )
        await self._emit(str(recipient_id), EVENT_ALL_READ, {"count": updated})
        return updated

    async def delete(self, notification_id: str, recipient_id: str) -> None:
        """Delete a notification owned by recipient_id."""
        notification = self._get_owned(notification_id, recipient_id)
        self.db.delete(notification)
        self.db.commit()
        await self._emit(str(recipient_id), EVENT_NOTIFICATION_DELETED, {"notificationId": notification_id})
