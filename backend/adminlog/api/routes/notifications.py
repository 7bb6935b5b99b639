"""
Notification API routes.

Every endpoint operates on the authenticated actor's own notifications,
except POST which lets an admin dispatch a domain-event notification.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from adminlog.api.schemas.notifications import (
    MarkAllReadResponse,
    NotificationCreateRequest,
    NotificationCreateResponse,
    NotificationListResponse,
    NotificationResponse,
    UnreadCountResponse,
)
from adminlog.auth.dependencies import get_current_actor, require_admin
from adminlog.auth.tokens import Actor
from adminlog.database.session import get_db_session
from adminlog.services.audit_filters import parse_pagination
from adminlog.services.notification_service import (
    NotificationDraft,
    NotificationNotFoundError,
    NotificationService,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


def _get_service(request: Request, db_session: Session) -> NotificationService:
    return NotificationService(db_session, getattr(request.app.state, "hub", None))


def _response(notification) -> NotificationResponse:
    return NotificationResponse.model_validate(notification.to_dict())


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    request: Request,
    page: Optional[str] = Query(None),
    limit: Optional[str] = Query(None),
    unread_only: bool = Query(False, alias="unreadOnly"),
    actor: Actor = Depends(get_current_actor),
    db_session: Session = Depends(get_db_session),
):
    page_num, page_size = parse_pagination(page, limit)
    result = _get_service(request, db_session).list_for_user(
        actor.id, page=page_num, page_size=page_size, unread_only=unread_only,
    )
    return NotificationListResponse(
        notifications=[_response(n) for n in result.notifications],
        total=result.total,
        unread_count=result.unread_count,
        page=result.page,
        total_pages=result.total_pages,
    )


@router.get("/unread-count", response_model=UnreadCountResponse)
async def get_unread_count(
    request: Request,
    actor: Actor = Depends(get_current_actor),
    db_session: Session = Depends(get_db_session),
):
    return UnreadCountResponse(count=_get_service(request, db_session).unread_count(actor.id))


@router.put("/mark-all-read", response_model=MarkAllReadResponse)
async def mark_all_read(
    request: Request,
    actor: Actor = Depends(get_current_actor),
    db_session: Session = Depends(get_db_session),
):
    count = await _get_service(request, db_session).mark_all_as_read(actor.id)
    return MarkAllReadResponse(message="All notifications marked as read", count=count)


@router.put("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    request: Request,
    notification_id: str,
    actor: Actor = Depends(get_current_actor),
    db_session: Session = Depends(get_db_session),
):
    try:
        notification = await _get_service(request, db_session).mark_as_read(notification_id, actor.id)
    except NotificationNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    return _response(notification)


@router.delete("/{notification_id}")
async def delete_notification(
    request: Request,
    notification_id: str,
    actor: Actor = Depends(get_current_actor),
    db_session: Session = Depends(get_db_session),
):
    try:
        await _get_service(request, db_session).delete(notification_id, actor.id)
    except NotificationNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    return {"message": "Notification deleted"}


@router.post("", response_model=NotificationCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_notification(
    request: Request,
    body: NotificationCreateRequest,
    actor: Actor = Depends(require_admin),
    db_session: Session = Depends(get_db_session),
):
    """
    Dispatch a notification for a domain event.

    With toAdmins, every listed recipient is treated as an admin and the
    event is also broadcast to the admin role group.
    """
    if not body.recipient_ids:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="At least one recipient is required",
        )

    draft = NotificationDraft(
        notification_type=body.type,
        title=body.title,
        message=body.message,
        sender_id=actor.id,
        link=body.link,
        related_entity=body.related_entity,
        related_entity_id=body.related_entity_id,
        priority=body.priority,
        event_metadata=body.metadata,
    )

    service = _get_service(request, db_session)
    if body.to_admins:
        created = await service.notify_admins(body.recipient_ids, draft)
    else:
        created = await service.create_bulk(body.recipient_ids, draft)

    return NotificationCreateResponse(
        created=len(created),
        notifications=[_response(n) for n in created],
    )
