from fastapi import APIRouter, Depends

from taskflow.api.params import PageParams, page_params
from taskflow.core.deps import get_current_user, get_notification_service, require_roles
from taskflow.db.models import RoleName, User
from taskflow.db.schemas import BroadcastRequest, MessageResponse, NotificationOut, Page, UnreadCount
from taskflow.services.notifications import NotificationService


router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=Page[NotificationOut])
def list_notifications(
    paging: PageParams = Depends(page_params),
    notifications: NotificationService = Depends(get_notification_service),
    current_user: User = Depends(get_current_user),
):
    return notifications.list_for_user(current_user, **paging.as_kwargs())


@router.get("/unread", response_model=list[NotificationOut])
def unread_notifications(
    notifications: NotificationService = Depends(get_notification_service),
    current_user: User = Depends(get_current_user),
):
    return notifications.unread(current_user)


@router.get("/unread/count", response_model=UnreadCount)
def unread_count(
    notifications: NotificationService = Depends(get_notification_service),
    current_user: User = Depends(get_current_user),
):
    return UnreadCount(count=notifications.unread_count(current_user))


@router.patch("/mark-all-read", response_model=MessageResponse)
def mark_all_read(
    notifications: NotificationService = Depends(get_notification_service),
    current_user: User = Depends(get_current_user),
):
    count = notifications.mark_all_as_read(current_user)
    return MessageResponse(message=f"{count} notifications marked as read")


@router.patch("/{notification_id}/read", response_model=NotificationOut)
def mark_read(
    notification_id: int,
    notifications: NotificationService = Depends(get_notification_service),
    current_user: User = Depends(get_current_user),
):
    return notifications.mark_as_read(notification_id, current_user)


@router.delete("/read", response_model=MessageResponse)
def delete_read(
    notifications: NotificationService = Depends(get_notification_service),
    current_user: User = Depends(get_current_user),
):
    count = notifications.delete_all_read(current_user)
    return MessageResponse(message=f"{count} read notifications deleted")


@router.delete("/{notification_id}", response_model=MessageResponse)
def delete_notification(
    notification_id: int,
    notifications: NotificationService = Depends(get_notification_service),
    current_user: User = Depends(get_current_user),
):
    notifications.delete(notification_id, current_user)
    return MessageResponse(message="Notification deleted successfully")


@router.post("/broadcast", response_model=MessageResponse)
def broadcast(
    payload: BroadcastRequest,
    notifications: NotificationService = Depends(get_notification_service),
    _: User = Depends(require_roles(RoleName.ADMIN)),
):
    delivered = notifications.broadcast(payload.title, payload.message)
    return MessageResponse(message=f"Broadcast sent to {delivered} connections")
