"""Pydantic schemas for the notifications API."""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from adminlog.models.notification import (
    NotificationPriority,
    NotificationType,
    RelatedEntity,
)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class NotificationResponse(_CamelModel):
    id: str
    recipient_id: str
    sender_id: Optional[str] = None
    type: str
    title: str
    message: str
    link: Optional[str] = None
    related_entity: Optional[str] = None
    related_entity_id: Optional[str] = None
    priority: str
    is_read: bool
    read_at: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[str] = None


class NotificationListResponse(_CamelModel):
    notifications: list[NotificationResponse]
    total: int
    unread_count: int
    page: int
    total_pages: int


class UnreadCountResponse(_CamelModel):
    count: int


class MarkAllReadResponse(_CamelModel):
    message: str
    count: int


class NotificationCreateRequest(_CamelModel):
    """
    Admin dispatch of a domain-event notification.

    recipient_ids is required; to_admins additionally broadcasts the event
    to the admin role group.
    """

    recipient_ids: list[str] = Field(default_factory=list, max_length=500)
    to_admins: bool = False
    type: NotificationType
    title: str = Field(..., min_length=1, max_length=500)
    message: str = Field(..., min_length=1, max_length=5000)
    link: Optional[str] = Field(None, max_length=1000)
    related_entity: Optional[RelatedEntity] = None
    related_entity_id: Optional[str] = Field(None, max_length=255)
    priority: NotificationPriority = NotificationPriority.MEDIUM
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("recipient_ids")
    @classmethod
    def strip_blank_recipients(cls, v: list[str]) -> list[str]:
        return [r.strip() for r in v if r and r.strip()]


class NotificationCreateResponse(_CamelModel):
    created: int
    notifications: list[NotificationResponse]
