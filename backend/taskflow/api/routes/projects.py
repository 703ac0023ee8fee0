from fastapi import APIRouter, Depends, status

from taskflow.api.params import PageParams, page_params
from taskflow.core.deps import get_current_user, get_project_service, require_roles
from taskflow.core.errors import PermissionDeniedError
from taskflow.db.models import ProjectStatus, RoleName, User
from taskflow.db.schemas import MessageResponse, Page, ProjectCreate, ProjectOut, ProjectUpdate
from taskflow.services.access import can_access_project
from taskflow.services.projects import ProjectService


router = APIRouter(prefix="/projects", tags=["projects"])


@router.post("", response_model=ProjectOut, status_code=status.HTTP_201_CREATED)
def create_project(
    payload: ProjectCreate,
    projects: ProjectService = Depends(get_project_service),
    current_user: User = Depends(get_current_user),
):
    return projects.create_project(
        payload.name,
        payload.description,
        current_user,
        start_date=payload.start_date,
        end_date=payload.end_date,
    )


@router.get("", response_model=Page[ProjectOut])
def list_projects(
    paging: PageParams = Depends(page_params),
    projects: ProjectService = Depends(get_project_service),
    _: User = Depends(require_roles(RoleName.ADMIN, RoleName.MANAGER)),
):
    return projects.list_all(**paging.as_kwargs())


@router.get("/my", response_model=Page[ProjectOut])
def my_projects(
    paging: PageParams = Depends(page_params),
    projects: ProjectService = Depends(get_project_service),
    current_user: User = Depends(get_current_user),
):
    return projects.list_by_owner(current_user, **paging.as_kwargs())


@router.get("/member", response_model=Page[ProjectOut])
def member_projects(
    paging: PageParams = Depends(page_params),
    projects: ProjectService = Depends(get_project_service),
    current_user: User = Depends(get_current_user),
):
    return projects.list_by_member(current_user, **paging.as_kwargs())


@router.get("/status/{project_status}", response_model=Page[ProjectOut])
def projects_by_status(
    project_status: ProjectStatus,
    paging: PageParams = Depends(page_params),
    projects: ProjectService = Depends(get_project_service),
    _: User = Depends(require_roles(RoleName.ADMIN, RoleName.MANAGER)),
):
    return projects.list_by_status(project_status, **paging.as_kwargs())


@router.get("/{project_id}", response_model=ProjectOut)
def get_project(
    project_id: int,
    projects: ProjectService = Depends(get_project_service),
    current_user: User = Depends(get_current_user),
):
    project = projects.get_project(project_id)
    if not can_access_project(projects.db, current_user, project.id):
        raise PermissionDeniedError("You do not have access to this project")
    return project


@router.put("/{project_id}", response_model=ProjectOut)
def update_project(
    project_id: int,
    payload: ProjectUpdate,
    projects: ProjectService = Depends(get_project_service),
    current_user: User = Depends(get_current_user),
):
    return projects.update_project(
        project_id,
        current_user,
        name=payload.name,
        description=payload.description,
        status=payload.status,
        start_date=payload.start_date,
        end_date=payload.end_date,
    )


@router.delete("/{project_id}", response_model=MessageResponse)
def delete_project(
    project_id: int,
    projects: ProjectService = Depends(get_project_service),
    current_user: User = Depends(get_current_user),
):
    projects.delete_project(project_id, current_user)
    return MessageResponse(message="Project deleted successfully")


@router.post("/{project_id}/members/{user_id}", response_model=ProjectOut)
def add_team_member(
    project_id: int,
    user_id: int,
    projects: ProjectService = Depends(get_project_service),
    current_user: User = Depends(get_current_user),
):
    return projects.add_team_member(project_id, user_id, current_user)


@router.delete("/{project_id}/members/{user_id}", response_model=ProjectOut)
def remove_team_member(
    project_id: int,
    user_id: int,
    projects: ProjectService = Depends(get_project_service),
    current_user: User = Depends(get_current_user),
):
    return projects.remove_team_member(project_id, user_id, current_user)
