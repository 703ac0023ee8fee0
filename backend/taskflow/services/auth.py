import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from taskflow.core.errors import AuthenticationError, InvalidRequestError, NotFoundError
from taskflow.core.security import create_access_token, decode_token, hash_password, verify_password
from taskflow.db.models import Role, RoleName, User
from taskflow.services.email import EmailService


logger = logging.getLogger(__name__)


class AuthService:
    def __init__(self, db: Session, email: EmailService | None = None) -> None:
        self.db = db
        self.email = email

    def exists_by_username(self, username: str) -> bool:
        return self.db.query(User.id).filter(User.username == username).first() is not None

    def exists_by_email(self, email: str) -> bool:
        return self.db.query(User.id).filter(User.email == email).first() is not None

    def register_user(self, username: str, email: str, password: str, full_name: str | None = None) -> User:
        logger.info("Registering new user: %s", username)

        if self.exists_by_username(username):
            logger.error("Username already exists: %s", username)
            raise InvalidRequestError("Username is already taken")
        if self.exists_by_email(email):
            logger.error("Email already exists: %s", email)
            raise InvalidRequestError("Email is already registered")

        role = self.db.query(Role).filter(Role.name == RoleName.USER.value).first()
        if role is None:
            logger.error("Default role USER not found in database")
            raise NotFoundError("Default role USER not found")

        user = User(
            username=username,
            email=email,
            password_hash=hash_password(password),
            full_name=full_name,
            roles=[role],
        )
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise InvalidRequestError("Username or email already registered")
        self.db.refresh(user)
        logger.info("User registered: %s with ID %s", user.username, user.id)

        if self.email is not None:
            self.email.send_welcome_email(user)
        return user

    def authenticate_user(self, username: str, password: str) -> User:
        logger.info("Authenticating user: %s", username)
        user = self.db.query(User).filter(User.username == username).first()
        if user is None or not verify_password(password, user.password_hash):
            logger.warning("Authentication failed for user: %s", username)
            raise AuthenticationError("Invalid username or password")
        return user

    def issue_token(self, user: User) -> str:
        token = create_access_token(subject=user.username, roles=user.role_names)
        logger.debug("JWT issued for user: %s", user.username)
        return token

    def validate_token(self, token: str) -> str:
        payload = decode_token(token)
        if payload is None:
            raise AuthenticationError("Invalid or expired token")
        return payload["sub"]
