from fastapi import APIRouter, Depends

from taskflow.api.params import PageParams, page_params
from taskflow.core.deps import get_current_user, get_user_service, require_roles
from taskflow.db.models import RoleName, User
from taskflow.db.schemas import MessageResponse, Page, PasswordChange, UserOut, UserUpdate
from taskflow.services.users import UserService


router = APIRouter(prefix="/users", tags=["users"])


@router.get("", response_model=Page[UserOut])
def list_users(
    paging: PageParams = Depends(page_params),
    users: UserService = Depends(get_user_service),
    _: User = Depends(require_roles(RoleName.ADMIN, RoleName.MANAGER)),
):
    return users.list_users(**paging.as_kwargs())


@router.get("/me", response_model=UserOut)
def get_me(current_user: User = Depends(get_current_user)):
    return current_user


@router.put("/me", response_model=UserOut)
def update_me(
    payload: UserUpdate,
    users: UserService = Depends(get_user_service),
    current_user: User = Depends(get_current_user),
):
    return users.update_user(current_user.id, full_name=payload.full_name, email=payload.email)


@router.put("/me/password", response_model=MessageResponse)
def change_password(
    payload: PasswordChange,
    users: UserService = Depends(get_user_service),
    current_user: User = Depends(get_current_user),
):
    users.change_password(current_user.id, payload.old_password, payload.new_password)
    return MessageResponse(message="Password changed successfully")


@router.get("/{user_id}", response_model=UserOut)
def get_user(
    user_id: int,
    users: UserService = Depends(get_user_service),
    _: User = Depends(get_current_user),
):
    return users.get_user(user_id)


@router.delete("/{user_id}", response_model=MessageResponse)
def delete_user(
    user_id: int,
    users: UserService = Depends(get_user_service),
    _: User = Depends(require_roles(RoleName.ADMIN)),
):
    users.delete_user(user_id)
    return MessageResponse(message="User deleted successfully")
