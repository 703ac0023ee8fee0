import logging
from datetime import date

from sqlalchemy.orm import Session

from taskflow.core.errors import InvalidRequestError, NotFoundError, PermissionDeniedError
from taskflow.db.models import NotificationType, Project, ProjectStatus, User
from taskflow.db.schemas import ProjectOut
from taskflow.services.access import is_project_owner
from taskflow.services.events import TopicPublisher, publish_quietly
from taskflow.services.notifications import NotificationService
from taskflow.services.pagination import DEFAULT_PAGE_SIZE, paginate


logger = logging.getLogger(__name__)

PROJECT_SORT_FIELDS = ("id", "name", "status", "start_date", "end_date", "created_at", "updated_at")


def _check_dates(start_date: date | None, end_date: date | None) -> None:
    if start_date is not None and end_date is not None and end_date < start_date:
        logger.error("End date %s is before start date %s", end_date, start_date)
        raise InvalidRequestError("End date cannot be before start date")


class ProjectService:
    def __init__(
        self,
        db: Session,
        notifications: NotificationService | None = None,
        publisher: TopicPublisher | None = None,
    ) -> None:
        self.db = db
        self.notifications = notifications
        self.publisher = publisher

    def create_project(
        self,
        name: str,
        description: str | None,
        owner: User,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> Project:
        logger.info("Creating project %r for owner %s", name, owner.username)
        _check_dates(start_date, end_date)

        project = Project(
            name=name,
            description=description,
            owner_id=owner.id,
            status=ProjectStatus.ACTIVE.value,
            start_date=start_date,
            end_date=end_date,
            team_members=[owner],
        )
        self.db.add(project)
        self.db.commit()
        self.db.refresh(project)
        logger.info("Project created with ID %s", project.id)
        return project

    def get_project(self, project_id: int) -> Project:
        logger.debug("Fetching project by ID: %s", project_id)
        project = self.db.get(Project, project_id)
        if project is None:
            raise NotFoundError(f"Project not found with ID: {project_id}")
        return project

    def list_all(self, page: int = 0, size: int = DEFAULT_PAGE_SIZE, sort: str = "-created_at") -> dict:
        return paginate(self.db.query(Project), Project, page, size, sort, sortable=PROJECT_SORT_FIELDS)

    def list_by_owner(self, owner: User, page: int = 0, size: int = DEFAULT_PAGE_SIZE, sort: str = "-created_at") -> dict:
        query = self.db.query(Project).filter(Project.owner_id == owner.id)
        return paginate(query, Project, page, size, sort, sortable=PROJECT_SORT_FIELDS)

    def list_by_member(self, user: User, page: int = 0, size: int = DEFAULT_PAGE_SIZE, sort: str = "-created_at") -> dict:
        query = self.db.query(Project).filter(Project.team_members.any(User.id == user.id))
        return paginate(query, Project, page, size, sort, sortable=PROJECT_SORT_FIELDS)

    def list_by_status(
        self, status: ProjectStatus, page: int = 0, size: int = DEFAULT_PAGE_SIZE, sort: str = "-created_at"
    ) -> dict:
        query = self.db.query(Project).filter(Project.status == status.value)
        return paginate(query, Project, page, size, sort, sortable=PROJECT_SORT_FIELDS)

    def is_project_owner(self, project_id: int, user_id: int) -> bool:
        return is_project_owner(self.db, project_id, user_id)

    def _get_owned(self, project_id: int, actor: User, action: str) -> Project:
        project = self.get_project(project_id)
        if project.owner_id != actor.id:
            logger.error("User %s may not %s project %s", actor.username, action, project_id)
            raise PermissionDeniedError(f"You do not have permission to {action} this project")
        return project

    def update_project(
        self,
        project_id: int,
        actor: User,
        name: str | None = None,
        description: str | None = None,
        status: ProjectStatus | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> Project:
        logger.info("Updating project %s by %s", project_id, actor.username)
        project = self._get_owned(project_id, actor, "update")

        _check_dates(start_date or project.start_date, end_date or project.end_date)

        if name:
            project.name = name
        if description is not None:
            project.description = description
        if status is not None:
            project.status = status.value
        if start_date is not None:
            project.start_date = start_date
        if end_date is not None:
            project.end_date = end_date

        self.db.commit()
        self.db.refresh(project)
        self._publish(project, "project.updated")
        return project

    def delete_project(self, project_id: int, actor: User) -> None:
        logger.info("Deleting project %s by %s", project_id, actor.username)
        project = self._get_owned(project_id, actor, "delete")
        self.db.delete(project)
        self.db.commit()
        if self.publisher is not None:
            publish_quietly(self.publisher.send_project_update, project_id, {"type": "project.deleted", "project_id": project_id})

    def add_team_member(self, project_id: int, user_id: int, actor: User) -> Project:
        project = self._get_owned(project_id, actor, "manage the team of")
        user = self.db.get(User, user_id)
        if user is None:
            raise NotFoundError(f"User not found with ID: {user_id}")

        if any(member.id == user.id for member in project.team_members):
            logger.debug("User %s already in project %s", user.username, project_id)
            return project

        project.team_members.append(user)
        self.db.commit()
        self.db.refresh(project)
        logger.info("Added %s to project %s", user.username, project_id)

        if self.notifications is not None and user.id != actor.id:
            try:
                self.notifications.create_notification(
                    user,
                    "Added to project",
                    f"You have been added to project: {project.name}",
                    NotificationType.PROJECT_UPDATED,
                    project=project,
                )
            except Exception as exc:
                self.db.rollback()
                logger.error("Team notification for %s failed: %s", user.username, exc)

        self._publish(project, "project.updated")
        return project

    def remove_team_member(self, project_id: int, user_id: int, actor: User) -> Project:
        project = self._get_owned(project_id, actor, "manage the team of")
        if user_id == project.owner_id:
            raise InvalidRequestError("The project owner cannot be removed from the team")
        user = self.db.get(User, user_id)
        if user is None:
            raise NotFoundError(f"User not found with ID: {user_id}")

        if user in project.team_members:
            project.team_members.remove(user)
            self.db.commit()
            self.db.refresh(project)
            logger.info("Removed %s from project %s", user.username, project_id)
            self._publish(project, "project.updated")
        return project

    def _publish(self, project: Project, event: str) -> None:
        if self.publisher is None:
            return
        payload = {"type": event, "project": ProjectOut.model_validate(project).model_dump(mode="json")}
        publish_quietly(self.publisher.send_project_update, project.id, payload)
