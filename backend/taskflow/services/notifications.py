import logging
from typing import Any, Protocol

from sqlalchemy.orm import Session

from taskflow.core.errors import NotFoundError, PermissionDeniedError
from taskflow.db.models import Notification, NotificationType, Project, Task, User, utcnow
from taskflow.db.schemas import NotificationOut
from taskflow.services.pagination import DEFAULT_PAGE_SIZE, paginate


logger = logging.getLogger(__name__)

NOTIFICATION_SORT_FIELDS = ("id", "title", "type", "is_read", "created_at", "read_at")


class NotificationPublisher(Protocol):
    def send_to_user(self, user_id: int, payload: dict[str, Any]) -> int: ...

    def broadcast(self, payload: dict[str, Any]) -> int: ...


class NotificationService:
    """Persists notifications and pushes them to the recipient's live channel.

    The stored row is the source of truth. The push is best-effort: failures
    are logged and the row stays committed, so clients can still poll.
    """

    def __init__(self, db: Session, publisher: NotificationPublisher | None = None) -> None:
        self.db = db
        self.publisher = publisher

    def create_notification(
        self,
        user: User,
        title: str,
        message: str,
        type: NotificationType,
        task: Task | None = None,
        project: Project | None = None,
    ) -> Notification:
        logger.info("Creating notification for user %s - %s", user.username, title)
        notification = Notification(
            user_id=user.id,
            title=title[:200],
            message=message[:500],
            type=type.value,
            is_read=False,
            task_id=task.id if task is not None else None,
            project_id=project.id if project is not None else None,
        )
        self.db.add(notification)
        self.db.commit()
        self.db.refresh(notification)
        logger.info("Notification created with ID %s", notification.id)

        if self.publisher is not None:
            try:
                payload = NotificationOut.model_validate(notification).model_dump(mode="json")
                self.publisher.send_to_user(user.id, payload)
            except Exception as exc:
                logger.error("Failed to send real-time notification %s: %s", notification.id, exc)

        return notification

    def broadcast(self, title: str, message: str) -> int:
        """Push an announcement to every connected client. Nothing is stored."""
        if self.publisher is None:
            return 0
        logger.info("Broadcasting notification: %s", title)
        try:
            return self.publisher.broadcast(
                {"type": NotificationType.GENERAL.value, "title": title[:200], "message": message[:500]}
            )
        except Exception as exc:
            logger.error("Failed to broadcast notification %r: %s", title, exc)
            return 0

    def list_for_user(self, user: User, page: int = 0, size: int = DEFAULT_PAGE_SIZE, sort: str = "-created_at") -> dict:
        logger.debug("Fetching notifications for user %s", user.username)
        query = self.db.query(Notification).filter(Notification.user_id == user.id)
        return paginate(query, Notification, page, size, sort, sortable=NOTIFICATION_SORT_FIELDS)

    def unread(self, user: User) -> list[Notification]:
        return (
            self.db.query(Notification)
            .filter(Notification.user_id == user.id, Notification.is_read.is_(False))
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .all()
        )

    def unread_count(self, user: User) -> int:
        return (
            self.db.query(Notification)
            .filter(Notification.user_id == user.id, Notification.is_read.is_(False))
            .count()
        )

    def _get_owned(self, notification_id: int, user: User, action: str) -> Notification:
        notification = self.db.get(Notification, notification_id)
        if notification is None:
            logger.error("Notification not found with ID %s", notification_id)
            raise NotFoundError(f"Notification not found with ID: {notification_id}")
        if notification.user_id != user.id:
            logger.error("User %s may not %s notification %s", user.username, action, notification_id)
            raise PermissionDeniedError(f"You do not have permission to {action} this notification")
        return notification

    def mark_as_read(self, notification_id: int, user: User) -> Notification:
        notification = self._get_owned(notification_id, user, "update")
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = utcnow()
            self.db.commit()
            self.db.refresh(notification)
        logger.info("Notification %s marked as read", notification_id)
        return notification

    def mark_all_as_read(self, user: User) -> int:
        now = utcnow()
        unread = self.unread(user)
        for notification in unread:
            notification.is_read = True
            notification.read_at = now
        self.db.commit()
        logger.info("Marked %d notifications as read for user %s", len(unread), user.username)
        return len(unread)

    def delete(self, notification_id: int, user: User) -> None:
        notification = self._get_owned(notification_id, user, "delete")
        self.db.delete(notification)
        self.db.commit()
        logger.info("Notification deleted: %s", notification_id)

    def delete_all_read(self, user: User) -> int:
        deleted = (
            self.db.query(Notification)
            .filter(Notification.user_id == user.id, Notification.is_read.is_(True))
            .delete(synchronize_session="fetch")
        )
        self.db.commit()
        logger.info("Deleted %d read notifications for user %s", deleted, user.username)
        return deleted
