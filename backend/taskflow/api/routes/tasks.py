from fastapi import APIRouter, Depends, status

from taskflow.api.params import PageParams, page_params
from taskflow.core.deps import get_current_user, get_task_service, require_roles
from taskflow.core.errors import PermissionDeniedError
from taskflow.db.models import RoleName, TaskStatus, User
from taskflow.db.schemas import MessageResponse, Page, TaskCreate, TaskOut, TaskStatusUpdate, TaskUpdate
from taskflow.services.access import can_access_project
from taskflow.services.tasks import TaskService


router = APIRouter(prefix="/tasks", tags=["tasks"])


def _check_project_access(tasks: TaskService, user: User, project_id: int) -> None:
    if not can_access_project(tasks.db, user, project_id):
        raise PermissionDeniedError("You do not have access to this project")


@router.post("", response_model=TaskOut, status_code=status.HTTP_201_CREATED)
def create_task(
    payload: TaskCreate,
    tasks: TaskService = Depends(get_task_service),
    current_user: User = Depends(get_current_user),
):
    return tasks.create_task(
        payload.project_id,
        payload.title,
        current_user,
        description=payload.description,
        priority=payload.priority,
        due_date=payload.due_date,
        assignee_id=payload.assignee_id,
    )


@router.get("", response_model=Page[TaskOut])
def list_tasks(
    paging: PageParams = Depends(page_params),
    tasks: TaskService = Depends(get_task_service),
    _: User = Depends(require_roles(RoleName.ADMIN, RoleName.MANAGER)),
):
    return tasks.list_all(**paging.as_kwargs())


@router.get("/my", response_model=Page[TaskOut])
def my_tasks(
    paging: PageParams = Depends(page_params),
    tasks: TaskService = Depends(get_task_service),
    current_user: User = Depends(get_current_user),
):
    return tasks.list_by_assignee(current_user, **paging.as_kwargs())


@router.get("/created-by-me", response_model=Page[TaskOut])
def created_by_me(
    paging: PageParams = Depends(page_params),
    tasks: TaskService = Depends(get_task_service),
    current_user: User = Depends(get_current_user),
):
    return tasks.list_by_creator(current_user, **paging.as_kwargs())


@router.get("/project/{project_id}", response_model=Page[TaskOut])
def project_tasks(
    project_id: int,
    paging: PageParams = Depends(page_params),
    tasks: TaskService = Depends(get_task_service),
    current_user: User = Depends(get_current_user),
):
    page = tasks.list_by_project(project_id, **paging.as_kwargs())
    _check_project_access(tasks, current_user, project_id)
    return page


@router.get("/status/{task_status}", response_model=Page[TaskOut])
def tasks_by_status(
    task_status: TaskStatus,
    paging: PageParams = Depends(page_params),
    tasks: TaskService = Depends(get_task_service),
    _: User = Depends(require_roles(RoleName.ADMIN, RoleName.MANAGER)),
):
    return tasks.list_by_status(task_status, **paging.as_kwargs())


@router.get("/{task_id}", response_model=TaskOut)
def get_task(
    task_id: int,
    tasks: TaskService = Depends(get_task_service),
    current_user: User = Depends(get_current_user),
):
    task = tasks.get_task(task_id)
    _check_project_access(tasks, current_user, task.project_id)
    return task


@router.put("/{task_id}", response_model=TaskOut)
def update_task(
    task_id: int,
    payload: TaskUpdate,
    tasks: TaskService = Depends(get_task_service),
    current_user: User = Depends(get_current_user),
):
    return tasks.update_task(
        task_id,
        current_user,
        title=payload.title,
        description=payload.description,
        priority=payload.priority,
        due_date=payload.due_date,
    )


@router.put("/{task_id}/assign/{user_id}", response_model=TaskOut)
def assign_task(
    task_id: int,
    user_id: int,
    tasks: TaskService = Depends(get_task_service),
    current_user: User = Depends(get_current_user),
):
    return tasks.assign_task(task_id, user_id, current_user)


@router.put("/{task_id}/status", response_model=TaskOut)
def update_task_status(
    task_id: int,
    payload: TaskStatusUpdate,
    tasks: TaskService = Depends(get_task_service),
    current_user: User = Depends(get_current_user),
):
    return tasks.update_task_status(task_id, payload.status, current_user)


@router.delete("/{task_id}", response_model=MessageResponse)
def delete_task(
    task_id: int,
    tasks: TaskService = Depends(get_task_service),
    current_user: User = Depends(get_current_user),
):
    tasks.delete_task(task_id, current_user)
    return MessageResponse(message="Task deleted successfully")
