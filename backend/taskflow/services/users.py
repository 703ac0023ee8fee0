import logging

from sqlalchemy.orm import Session

from taskflow.core.errors import InvalidRequestError, NotFoundError
from taskflow.core.security import hash_password, verify_password
from taskflow.db.models import Project, Task, User, project_members
from taskflow.services.pagination import DEFAULT_PAGE_SIZE, paginate


logger = logging.getLogger(__name__)

USER_SORT_FIELDS = ("id", "username", "email", "full_name", "created_at")


class UserService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get_user(self, user_id: int) -> User:
        logger.debug("Fetching user by ID: %s", user_id)
        user = self.db.get(User, user_id)
        if user is None:
            raise NotFoundError(f"User not found with ID: {user_id}")
        return user

    def list_users(self, page: int = 0, size: int = DEFAULT_PAGE_SIZE, sort: str = "username") -> dict:
        return paginate(self.db.query(User), User, page, size, sort, sortable=USER_SORT_FIELDS)

    def update_user(self, user_id: int, full_name: str | None = None, email: str | None = None) -> User:
        logger.info("Updating user: %s", user_id)
        user = self.get_user(user_id)

        if full_name:
            user.full_name = full_name

        if email and email != user.email:
            taken = self.db.query(User.id).filter(User.email == email).first()
            if taken is not None:
                logger.error("Email already exists: %s", email)
                raise InvalidRequestError("Email is already registered")
            user.email = email

        self.db.commit()
        self.db.refresh(user)
        return user

    def change_password(self, user_id: int, old_password: str, new_password: str) -> None:
        logger.info("Changing password for user: %s", user_id)
        user = self.get_user(user_id)
        if not verify_password(old_password, user.password_hash):
            logger.error("Old password is incorrect for user: %s", user_id)
            raise InvalidRequestError("Old password is incorrect")
        user.password_hash = hash_password(new_password)
        self.db.commit()

    def delete_user(self, user_id: int) -> None:
        """Hard delete. Projects and tasks are never cascaded from a user."""
        logger.info("Deleting user: %s", user_id)
        user = self.get_user(user_id)

        owns_projects = self.db.query(Project.id).filter(Project.owner_id == user_id).first() is not None
        created_tasks = self.db.query(Task.id).filter(Task.created_by_id == user_id).first() is not None
        if owns_projects or created_tasks:
            raise InvalidRequestError("User still owns projects or created tasks; reassign them first")

        self.db.query(Task).filter(Task.assigned_to_id == user_id).update(
            {Task.assigned_to_id: None}, synchronize_session="fetch"
        )
        self.db.execute(project_members.delete().where(project_members.c.user_id == user_id))
        self.db.delete(user)
        self.db.commit()
        logger.info("User deleted: %s", user_id)
