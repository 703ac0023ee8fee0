import logging
from datetime import date

from sqlalchemy.orm import Session

from taskflow.core.errors import NotFoundError, PermissionDeniedError
from taskflow.db.models import NotificationType, Project, Task, TaskPriority, TaskStatus, User
from taskflow.db.schemas import TaskOut
from taskflow.services.access import can_update_task_status, can_user_modify_task, is_team_member
from taskflow.services.email import EmailService
from taskflow.services.events import TopicPublisher, publish_quietly
from taskflow.services.notifications import NotificationService
from taskflow.services.pagination import DEFAULT_PAGE_SIZE, paginate


logger = logging.getLogger(__name__)

TASK_SORT_FIELDS = ("id", "title", "status", "priority", "due_date", "created_at", "updated_at")


class TaskService:
    """Task lifecycle plus its side effects.

    Side effects (notifications, emails, topic events) run after the task change
    is committed and never fail the operation that triggered them.
    """

    def __init__(
        self,
        db: Session,
        notifications: NotificationService | None = None,
        email: EmailService | None = None,
        publisher: TopicPublisher | None = None,
    ) -> None:
        self.db = db
        self.notifications = notifications
        self.email = email
        self.publisher = publisher

    def _get_user(self, user_id: int) -> User:
        user = self.db.get(User, user_id)
        if user is None:
            raise NotFoundError(f"User not found with ID: {user_id}")
        return user

    def create_task(
        self,
        project_id: int,
        title: str,
        actor: User,
        description: str | None = None,
        priority: TaskPriority = TaskPriority.MEDIUM,
        due_date: date | None = None,
        assignee_id: int | None = None,
    ) -> Task:
        logger.info("Creating task %r in project %s by %s", title, project_id, actor.username)
        project = self.db.get(Project, project_id)
        if project is None:
            raise NotFoundError(f"Project not found with ID: {project_id}")
        if not is_team_member(project, actor):
            logger.error("User %s is not a member of project %s", actor.username, project_id)
            raise PermissionDeniedError("Only project team members can create tasks")

        assignee = self._get_user(assignee_id) if assignee_id is not None else None

        task = Task(
            title=title,
            description=description,
            status=TaskStatus.TODO.value,
            priority=priority.value,
            project_id=project.id,
            created_by_id=actor.id,
            assigned_to_id=assignee.id if assignee is not None else None,
            due_date=due_date,
        )
        self.db.add(task)
        self.db.commit()
        self.db.refresh(task)
        logger.info("Task created with ID %s", task.id)

        if assignee is not None:
            self._notify_assignment(task, assignee)
        self._publish(task, "task.created")
        return task

    def get_task(self, task_id: int) -> Task:
        logger.debug("Fetching task by ID: %s", task_id)
        task = self.db.get(Task, task_id)
        if task is None:
            raise NotFoundError(f"Task not found with ID: {task_id}")
        return task

    def list_all(self, page: int = 0, size: int = DEFAULT_PAGE_SIZE, sort: str = "-created_at") -> dict:
        return paginate(self.db.query(Task), Task, page, size, sort, sortable=TASK_SORT_FIELDS)

    def list_by_project(
        self, project_id: int, page: int = 0, size: int = DEFAULT_PAGE_SIZE, sort: str = "-created_at"
    ) -> dict:
        if self.db.get(Project, project_id) is None:
            raise NotFoundError(f"Project not found with ID: {project_id}")
        query = self.db.query(Task).filter(Task.project_id == project_id)
        return paginate(query, Task, page, size, sort, sortable=TASK_SORT_FIELDS)

    def list_by_assignee(self, user: User, page: int = 0, size: int = DEFAULT_PAGE_SIZE, sort: str = "-created_at") -> dict:
        query = self.db.query(Task).filter(Task.assigned_to_id == user.id)
        return paginate(query, Task, page, size, sort, sortable=TASK_SORT_FIELDS)

    def list_by_creator(self, user: User, page: int = 0, size: int = DEFAULT_PAGE_SIZE, sort: str = "-created_at") -> dict:
        query = self.db.query(Task).filter(Task.created_by_id == user.id)
        return paginate(query, Task, page, size, sort, sortable=TASK_SORT_FIELDS)

    def list_by_status(
        self, status: TaskStatus, page: int = 0, size: int = DEFAULT_PAGE_SIZE, sort: str = "-created_at"
    ) -> dict:
        query = self.db.query(Task).filter(Task.status == status.value)
        return paginate(query, Task, page, size, sort, sortable=TASK_SORT_FIELDS)

    def can_user_modify_task(self, task_id: int, user_id: int) -> bool:
        return can_user_modify_task(self.db, task_id, user_id)

    def _get_modifiable(self, task_id: int, actor: User, action: str) -> Task:
        task = self.get_task(task_id)
        if not can_user_modify_task(self.db, task.id, actor.id):
            logger.error("User %s may not %s task %s", actor.username, action, task_id)
            raise PermissionDeniedError(f"You do not have permission to {action} this task")
        return task

    def update_task(
        self,
        task_id: int,
        actor: User,
        title: str | None = None,
        description: str | None = None,
        priority: TaskPriority | None = None,
        due_date: date | None = None,
    ) -> Task:
        logger.info("Updating task %s by %s", task_id, actor.username)
        task = self._get_modifiable(task_id, actor, "update")

        if title:
            task.title = title
        if description is not None:
            task.description = description
        if priority is not None:
            task.priority = priority.value
        if due_date is not None:
            task.due_date = due_date

        self.db.commit()
        self.db.refresh(task)
        self._publish(task, "task.updated")
        return task

    def assign_task(self, task_id: int, assignee_id: int, actor: User) -> Task:
        logger.info("Assigning task %s to user %s", task_id, assignee_id)
        task = self._get_modifiable(task_id, actor, "assign")
        assignee = self._get_user(assignee_id)

        task.assigned_to_id = assignee.id
        if task.status == TaskStatus.TODO:
            task.status = TaskStatus.IN_PROGRESS.value

        self.db.commit()
        self.db.refresh(task)
        logger.info("Task %s assigned to %s", task.id, assignee.username)

        self._notify_assignment(task, assignee)
        self._publish(task, "task.updated")
        return task

    def update_task_status(self, task_id: int, status: TaskStatus, actor: User) -> Task:
        logger.info("Updating task %s status to %s by %s", task_id, status, actor.username)
        task = self.get_task(task_id)
        if not can_update_task_status(self.db, task, actor):
            logger.error("User %s may not change status of task %s", actor.username, task_id)
            raise PermissionDeniedError("You do not have permission to update this task status")

        old_status = task.status
        task.status = status.value
        self.db.commit()
        self.db.refresh(task)

        change = f"Status changed from {old_status} to {task.status}"
        recipients: list[User] = []
        for user in (task.assigned_to, task.created_by):
            if user is None or user.id == actor.id or user in recipients:
                continue
            recipients.append(user)

        for user in recipients:
            self._notify(
                user,
                "Task status updated",
                f"Task '{task.title}': {change}",
                NotificationType.TASK_UPDATED,
                task,
            )
            if self.email is not None:
                self.email.send_task_update_email(task, user, change)

        self._publish(task, "task.updated")
        return task

    def delete_task(self, task_id: int, actor: User) -> None:
        logger.info("Deleting task %s by %s", task_id, actor.username)
        task = self._get_modifiable(task_id, actor, "delete")
        project_id = task.project_id
        self.db.delete(task)
        self.db.commit()
        if self.publisher is not None:
            publish_quietly(
                self.publisher.send_task_update, project_id, {"type": "task.deleted", "task_id": task_id}
            )

    def _notify_assignment(self, task: Task, assignee: User) -> None:
        self._notify(
            assignee,
            "New task assigned",
            f"You have been assigned to task: {task.title}",
            NotificationType.TASK_ASSIGNED,
            task,
        )
        if self.email is not None:
            self.email.send_task_assignment_email(task, assignee)

    def _notify(self, user: User, title: str, message: str, type: NotificationType, task: Task) -> None:
        if self.notifications is None:
            return
        try:
            self.notifications.create_notification(user, title, message, type, task=task, project=task.project)
        except Exception as exc:
            self.db.rollback()
            logger.error("Failed to notify %s about task %s: %s", user.username, task.id, exc)

    def _publish(self, task: Task, event: str) -> None:
        if self.publisher is None:
            return
        payload = {"type": event, "task": TaskOut.model_validate(task).model_dump(mode="json")}
        publish_quietly(self.publisher.send_task_update, task.project_id, payload)
