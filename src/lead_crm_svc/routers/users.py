from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from lead_crm_svc.models import User, UserRole, get_db
from lead_crm_svc.routers.auth import require
from lead_crm_svc.schemas.common import ApiResponse
from lead_crm_svc.schemas.user import UserCreate, UserList, UserResponse, UserUpdate
from lead_crm_svc.services import user_service
from lead_crm_svc.services.policy import Operation

logger = logging.getLogger(__name__)

users_router = APIRouter()


@users_router.get("/", response_model=ApiResponse[UserList])
def list_users(
    search: Optional[str] = None,
    role: Optional[UserRole] = None,
    is_active: Optional[bool] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=500),
    sort: str = "createdAt",
    order: str = Query(default="desc", pattern="^(asc|desc)$"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require(Operation.ListUsers)),
) -> ApiResponse[UserList]:
    """Admins see everyone; presales and sales see active colleagues of their role."""
    users, pagination = user_service.list_users(
        db, current_user, search=search, role=role, is_active=is_active, page=page, limit=limit, sort=sort, order=order
    )
    data = UserList(users=[UserResponse.model_validate(u) for u in users], pagination=pagination)
    return ApiResponse(message="Users retrieved successfully", data=data)


@users_router.get("/{user_id}", response_model=ApiResponse[UserResponse])
def get_user(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require(Operation.ManageUsers)),
) -> ApiResponse[UserResponse]:
    user = user_service.get_user(db, user_id)
    return ApiResponse(message="User retrieved successfully", data=UserResponse.model_validate(user))


@users_router.post("/", response_model=ApiResponse[UserResponse], status_code=status.HTTP_201_CREATED)
def create_user(
    payload: UserCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require(Operation.ManageUsers)),
) -> ApiResponse[UserResponse]:
    user = user_service.create_user(db, payload)
    return ApiResponse(message="User created successfully", data=UserResponse.model_validate(user))


@users_router.put("/{user_id}", response_model=ApiResponse[UserResponse])
def update_user(
    user_id: int,
    payload: UserUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require(Operation.ManageUsers)),
) -> ApiResponse[UserResponse]:
    user = user_service.update_user(db, current_user, user_id, payload)
    return ApiResponse(message="User updated successfully", data=UserResponse.model_validate(user))


@users_router.delete("/{user_id}", response_model=ApiResponse[None])
def delete_user(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require(Operation.ManageUsers)),
) -> ApiResponse[None]:
    user_service.delete_user(db, current_user, user_id)
    return ApiResponse(message="User deleted successfully")


@users_router.patch("/{user_id}/toggle-status", response_model=ApiResponse[UserResponse])
def toggle_user_status(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require(Operation.ManageUsers)),
) -> ApiResponse[UserResponse]:
    user = user_service.toggle_user_status(db, current_user, user_id)
    state = "activated" if user.is_active else "deactivated"
    return ApiResponse(message=f"User {state} successfully", data=UserResponse.model_validate(user))
