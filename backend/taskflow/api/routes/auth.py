from fastapi import APIRouter, Depends, Query, status

from taskflow.core.deps import get_auth_service, get_current_user
from taskflow.db.models import User
from taskflow.db.schemas import LoginRequest, SignupRequest, TokenResponse, TokenStatus, UserOut
from taskflow.services.auth import AuthService


router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/signup", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def signup(payload: SignupRequest, auth: AuthService = Depends(get_auth_service)):
    user = auth.register_user(payload.username, payload.email, payload.password, payload.full_name)
    return TokenResponse(access_token=auth.issue_token(user), user=UserOut.model_validate(user))


@router.post("/login", response_model=TokenResponse)
def login(payload: LoginRequest, auth: AuthService = Depends(get_auth_service)):
    user = auth.authenticate_user(payload.username, payload.password)
    return TokenResponse(access_token=auth.issue_token(user), user=UserOut.model_validate(user))


@router.get("/validate", response_model=TokenStatus)
def validate(token: str = Query(...), auth: AuthService = Depends(get_auth_service)):
    return TokenStatus(valid=True, username=auth.validate_token(token))


@router.get("/me", response_model=UserOut)
def me(current_user: User = Depends(get_current_user)):
    return current_user
