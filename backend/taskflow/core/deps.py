from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from taskflow.core.config import get_settings
from taskflow.core.security import decode_token
from taskflow.db.models import User
from taskflow.db.session import get_db
from taskflow.services.auth import AuthService
from taskflow.services.email import EmailService
from taskflow.services.email_worker import EmailDispatcher
from taskflow.services.notifications import NotificationService
from taskflow.services.projects import ProjectService
from taskflow.services.tasks import TaskService
from taskflow.services.users import UserService
from taskflow.ws.manager import ws_manager


__all__ = [
    "email_dispatcher",
    "get_auth_service",
    "get_current_user",
    "get_db",
    "get_email_service",
    "get_notification_service",
    "get_project_service",
    "get_task_service",
    "get_user_service",
    "require_roles",
]

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")

email_dispatcher = EmailDispatcher(get_settings())


def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> User:
    credentials_error = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    payload = decode_token(token)
    if payload is None:
        raise credentials_error
    user = db.query(User).filter(User.username == payload["sub"]).first()
    if user is None:
        raise credentials_error
    return user


def require_roles(*roles: str):
    def checker(current_user: User = Depends(get_current_user)) -> User:
        if not current_user.has_role(*roles):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
        return current_user

    return checker


def get_email_service() -> EmailService:
    return EmailService(email_dispatcher)


def get_notification_service(db: Session = Depends(get_db)) -> NotificationService:
    return NotificationService(db, publisher=ws_manager)


def get_auth_service(
    db: Session = Depends(get_db),
    email: EmailService = Depends(get_email_service),
) -> AuthService:
    return AuthService(db, email=email)


def get_user_service(db: Session = Depends(get_db)) -> UserService:
    return UserService(db)


def get_project_service(
    db: Session = Depends(get_db),
    notifications: NotificationService = Depends(get_notification_service),
) -> ProjectService:
    return ProjectService(db, notifications=notifications, publisher=ws_manager)


def get_task_service(
    db: Session = Depends(get_db),
    notifications: NotificationService = Depends(get_notification_service),
    email: EmailService = Depends(get_email_service),
) -> TaskService:
    return TaskService(db, notifications=notifications, email=email, publisher=ws_manager)
