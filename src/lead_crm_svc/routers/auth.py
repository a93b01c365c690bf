from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

import lead_crm_svc.utils.security as security
from lead_crm_svc.errors import Unauthenticated
from lead_crm_svc.models import User, get_db
from lead_crm_svc.schemas.auth import AuthData, LoginRequest, ProfileUpdate, RegisterRequest
from lead_crm_svc.schemas.common import ApiResponse
from lead_crm_svc.schemas.user import UserResponse
from lead_crm_svc.services import user_service
from lead_crm_svc.services.policy import Operation, authorize

logger = logging.getLogger(__name__)

auth_router = APIRouter()

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def resolve_user(db: Session, token: Optional[str]) -> User:
    """Return the active user a bearer token identifies, or raise Unauthenticated."""
    if not token:
        raise Unauthenticated("Access denied. No token provided.")

    user_id = security.user_id_from_token(token)
    if user_id is None:
        raise Unauthenticated("Invalid or expired token")

    user = db.get(User, user_id)
    if user is None:
        raise Unauthenticated("User not found")
    if not user.is_active:
        raise Unauthenticated("Account is deactivated")
    return user


def get_current_user(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> User:
    user = resolve_user(db, token)
    # picked up by the error handlers for log context
    request.state.actor_id = user.id
    return user


def require(operation: Operation):
    """Dependency factory: the current user, after a role-only policy check."""

    def dependency(current_user: User = Depends(get_current_user)) -> User:
        authorize(current_user, operation)
        return current_user

    return dependency


def _auth_data(user: User) -> AuthData:
    token = security.create_access_token(user.id, user.email, user.role.value)
    return AuthData(user=UserResponse.model_validate(user), token=token)


@auth_router.post("/register", response_model=ApiResponse[AuthData], status_code=status.HTTP_201_CREATED)
def register(payload: RegisterRequest, db: Session = Depends(get_db)) -> ApiResponse[AuthData]:
    user = user_service.register_user(db, payload)
    return ApiResponse(message="User registered successfully", data=_auth_data(user))


@auth_router.post("/login", response_model=ApiResponse[AuthData])
def login(payload: LoginRequest, db: Session = Depends(get_db)) -> ApiResponse[AuthData]:
    user = user_service.authenticate(db, payload.email, payload.password)
    logger.info("Login user id=%s", user.id)
    return ApiResponse(message="Login successful", data=_auth_data(user))


@auth_router.get("/profile", response_model=ApiResponse[UserResponse])
def get_profile(current_user: User = Depends(get_current_user)) -> ApiResponse[UserResponse]:
    return ApiResponse(message="Profile retrieved successfully", data=UserResponse.model_validate(current_user))


@auth_router.put("/profile", response_model=ApiResponse[UserResponse])
def update_profile(
    payload: ProfileUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ApiResponse[UserResponse]:
    user = user_service.update_profile(db, current_user, payload)
    return ApiResponse(message="Profile updated successfully", data=UserResponse.model_validate(user))
