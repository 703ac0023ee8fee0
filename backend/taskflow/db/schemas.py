from datetime import date, datetime
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from taskflow.db.models import NotificationType, ProjectStatus, TaskPriority, TaskStatus


T = TypeVar("T")


class LoginRequest(BaseModel):
    username: str
    password: str


class SignupRequest(BaseModel):
    username: str = Field(pattern=r"^[a-zA-Z0-9_-]{3,20}$")
    email: EmailStr
    password: str = Field(min_length=6)
    full_name: str | None = Field(default=None, max_length=100)


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    email: str
    full_name: str | None
    roles: list[str]
    created_at: datetime

    @field_validator("roles", mode="before")
    @classmethod
    def role_names(cls, v):
        return sorted(item if isinstance(item, str) else item.name for item in v)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserOut


class TokenStatus(BaseModel):
    valid: bool
    username: str


class UserUpdate(BaseModel):
    full_name: str | None = Field(default=None, max_length=100)
    email: EmailStr | None = None


class PasswordChange(BaseModel):
    old_password: str
    new_password: str = Field(min_length=6)


class MessageResponse(BaseModel):
    message: str


class ProjectCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: str | None = None
    start_date: date | None = None
    end_date: date | None = None


class ProjectUpdate(BaseModel):
    name: str | None = Field(default=None, max_length=100)
    description: str | None = None
    status: ProjectStatus | None = None
    start_date: date | None = None
    end_date: date | None = None


class ProjectOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str | None
    status: ProjectStatus
    owner_id: int
    team_member_ids: list[int]
    start_date: date | None
    end_date: date | None
    created_at: datetime
    updated_at: datetime


class TaskCreate(BaseModel):
    project_id: int
    title: str = Field(min_length=1, max_length=200)
    description: str | None = None
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: date | None = None
    assignee_id: int | None = None


class TaskUpdate(BaseModel):
    title: str | None = Field(default=None, max_length=200)
    description: str | None = None
    priority: TaskPriority | None = None
    due_date: date | None = None


class TaskStatusUpdate(BaseModel):
    status: TaskStatus


class TaskOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    description: str | None
    status: TaskStatus
    priority: TaskPriority
    project_id: int
    created_by_id: int
    assigned_to_id: int | None
    due_date: date | None
    created_at: datetime
    updated_at: datetime


class NotificationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    message: str
    type: NotificationType
    user_id: int
    is_read: bool
    task_id: int | None
    project_id: int | None
    created_at: datetime
    read_at: datetime | None


class UnreadCount(BaseModel):
    count: int


class Page(BaseModel, Generic[T]):
    items: list[T]
    total: int
    page: int
    size: int


class BroadcastRequest(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    message: str = Field(min_length=1, max_length=500)
