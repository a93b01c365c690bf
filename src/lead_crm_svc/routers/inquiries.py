from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.orm import Session

from lead_crm_svc.models import AssignmentStatus, Department, InquiryStatus, Medium, User, get_db
from lead_crm_svc.routers.auth import get_current_user, require
from lead_crm_svc.schemas.common import ApiResponse, Pagination
from lead_crm_svc.schemas.inquiry import (
    ActivityList,
    AssignRequest,
    DashboardStats,
    FollowUpCreate,
    FollowUpUpdate,
    InquiryCreate,
    InquiryList,
    InquiryResponse,
    InquiryUpdate,
    MyFollowUps,
    PhoneCheck,
    ReassignRequest,
    UnattendedCounts,
)
from lead_crm_svc.services import assignment, follow_up_service, inquiry_service, notifications
from lead_crm_svc.services.assignment import Transition
from lead_crm_svc.services.policy import Operation

logger = logging.getLogger(__name__)

inquiries_router = APIRouter()


@inquiries_router.post("/", response_model=ApiResponse[InquiryResponse], status_code=status.HTTP_201_CREATED)
def create_inquiry(
    payload: InquiryCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(require(Operation.CreateInquiry)),
) -> ApiResponse[InquiryResponse]:
    inquiry = inquiry_service.create_inquiry(db, current_user, payload)
    background_tasks.add_task(notifications.publish, notifications.created_event(inquiry), broadcast=True)
    return ApiResponse(message="Inquiry created successfully", data=inquiry_service.serialize_inquiry(db, inquiry))


@inquiries_router.get("/", response_model=ApiResponse[InquiryList])
def list_inquiries(
    search: Optional[str] = None,
    status: Optional[InquiryStatus] = None,
    course: Optional[str] = None,
    location: Optional[str] = None,
    medium: Optional[Medium] = None,
    department: Optional[Department] = None,
    assignment_status: Optional[AssignmentStatus] = None,
    assigned_to: Optional[int] = None,
    created_by: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    sort: str = "createdAt",
    order: str = Query(default="desc", pattern="^(asc|desc)$"),
    page: Optional[int] = Query(default=None, ge=1),
    limit: Optional[int] = Query(default=None, ge=1, le=500),
    db: Session = Depends(get_db),
    current_user: User = Depends(require(Operation.ListInquiries)),
) -> ApiResponse[InquiryList]:
    """List inquiries in the caller's scope.

    ``assigned_to`` switches to the attended view of that user; ``created_by=me``
    to the caller's own inquiries. Paginated only when both ``page`` and
    ``limit`` are given.
    """
    filters = inquiry_service.InquiryFilters(
        search=search,
        status=status,
        course=course,
        location=location,
        medium=medium,
        department=department,
        assignment_status=assignment_status,
        assigned_to=assigned_to,
        created_by=created_by,
        date_from=date_from,
        date_to=date_to,
        sort=sort,
        order=order,
        page=page,
        limit=limit,
    )
    inquiries, total = inquiry_service.list_inquiries(db, current_user, filters)
    pagination = Pagination.build(page, limit, total) if page is not None and limit is not None else None
    data = InquiryList(inquiries=inquiry_service.serialize_inquiries(db, inquiries), pagination=pagination)
    return ApiResponse(message="Inquiries retrieved successfully", data=data)


@inquiries_router.get("/check-phone", response_model=ApiResponse[PhoneCheck])
def check_phone(
    phone: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(require(Operation.CheckPhone)),
) -> ApiResponse[PhoneCheck]:
    result = inquiry_service.check_phone(db, current_user, phone)
    message = "Phone number already exists" if result.exists else "Phone number is available"
    return ApiResponse(message=message, data=result)


@inquiries_router.get("/dashboard", response_model=ApiResponse[DashboardStats])
def dashboard(
    db: Session = Depends(get_db),
    current_user: User = Depends(require(Operation.ViewDashboard)),
) -> ApiResponse[DashboardStats]:
    return ApiResponse(message="Dashboard stats retrieved successfully", data=inquiry_service.dashboard(db, current_user))


@inquiries_router.get("/unattended-counts", response_model=ApiResponse[UnattendedCounts])
def unattended_counts(
    db: Session = Depends(get_db),
    current_user: User = Depends(require(Operation.UnattendedCounts)),
) -> ApiResponse[UnattendedCounts]:
    data = inquiry_service.unattended_counts(db, current_user)
    return ApiResponse(message="Unattended inquiry counts retrieved successfully", data=data)


@inquiries_router.get("/my-follow-ups", response_model=ApiResponse[MyFollowUps])
def my_follow_ups(
    latest_only: bool = True,
    db: Session = Depends(get_db),
    current_user: User = Depends(require(Operation.MyFollowUps)),
) -> ApiResponse[MyFollowUps]:
    items = follow_up_service.my_follow_ups(db, current_user, latest_only=latest_only)
    return ApiResponse(message="Follow-ups retrieved successfully", data=MyFollowUps(follow_ups=items))


@inquiries_router.get("/{inquiry_id}", response_model=ApiResponse[InquiryResponse])
def get_inquiry(
    inquiry_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ApiResponse[InquiryResponse]:
    inquiry = inquiry_service.get_visible_inquiry(db, current_user, inquiry_id)
    return ApiResponse(message="Inquiry retrieved successfully", data=inquiry_service.serialize_inquiry(db, inquiry))


@inquiries_router.get("/{inquiry_id}/activities", response_model=ApiResponse[ActivityList])
def list_activities(
    inquiry_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ApiResponse[ActivityList]:
    activities = inquiry_service.list_inquiry_activities(db, current_user, inquiry_id)
    return ApiResponse(message="Activities retrieved successfully", data=ActivityList(activities=activities))


@inquiries_router.put("/{inquiry_id}", response_model=ApiResponse[InquiryResponse])
def update_inquiry(
    inquiry_id: int,
    payload: InquiryUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ApiResponse[InquiryResponse]:
    inquiry = inquiry_service.update_inquiry(db, current_user, inquiry_id, payload)
    return ApiResponse(message="Inquiry updated successfully", data=inquiry_service.serialize_inquiry(db, inquiry))


@inquiries_router.delete("/{inquiry_id}", response_model=ApiResponse[None])
def delete_inquiry(
    inquiry_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ApiResponse[None]:
    inquiry_service.delete_inquiry(db, current_user, inquiry_id)
    return ApiResponse(message="Inquiry deleted successfully")


# --- assignment engine ---------------------------------------------------


def _transition(
    db: Session,
    background_tasks: BackgroundTasks,
    transition: Transition,
    inquiry_id: int,
    actor: User,
    apply: Callable,
) -> InquiryResponse:
    previous_owner_id = inquiry_service.get_inquiry(db, inquiry_id).assigned_to_id
    inquiry = apply()
    event = notifications.transition_event(transition, inquiry, actor, previous_owner_id)
    background_tasks.add_task(notifications.publish, event)
    return inquiry_service.serialize_inquiry(db, inquiry)


@inquiries_router.post("/{inquiry_id}/claim", response_model=ApiResponse[InquiryResponse])
def claim_inquiry(
    inquiry_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(require(Operation.Claim)),
) -> ApiResponse[InquiryResponse]:
    data = _transition(
        db, background_tasks, Transition.Claim, inquiry_id, current_user,
        lambda: assignment.claim(db, inquiry_id, current_user),
    )
    return ApiResponse(message="Inquiry claimed successfully", data=data)


@inquiries_router.post("/{inquiry_id}/assign", response_model=ApiResponse[InquiryResponse])
def assign_inquiry(
    inquiry_id: int,
    payload: AssignRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(require(Operation.Assign)),
) -> ApiResponse[InquiryResponse]:
    data = _transition(
        db, background_tasks, Transition.Assign, inquiry_id, current_user,
        lambda: assignment.assign(db, inquiry_id, current_user, payload.assigned_to),
    )
    return ApiResponse(message="Inquiry assigned successfully", data=data)


@inquiries_router.post("/{inquiry_id}/reassign", response_model=ApiResponse[InquiryResponse])
def reassign_inquiry(
    inquiry_id: int,
    payload: ReassignRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(require(Operation.Reassign)),
) -> ApiResponse[InquiryResponse]:
    data = _transition(
        db, background_tasks, Transition.Reassign, inquiry_id, current_user,
        lambda: assignment.reassign(db, inquiry_id, current_user, payload.target_user_id),
    )
    return ApiResponse(message="Inquiry reassigned successfully", data=data)


@inquiries_router.post("/{inquiry_id}/forward-to-sales", response_model=ApiResponse[InquiryResponse])
def forward_to_sales(
    inquiry_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(require(Operation.ForwardToSales)),
) -> ApiResponse[InquiryResponse]:
    data = _transition(
        db, background_tasks, Transition.ForwardToSales, inquiry_id, current_user,
        lambda: assignment.forward_to_sales(db, inquiry_id, current_user),
    )
    return ApiResponse(message="Inquiry forwarded to sales successfully", data=data)


@inquiries_router.post("/{inquiry_id}/move-to-unattended", response_model=ApiResponse[InquiryResponse])
def move_to_unattended(
    inquiry_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ApiResponse[InquiryResponse]:
    # owner-or-admin is checked by the engine against the stored owner
    data = _transition(
        db, background_tasks, Transition.MoveToUnattended, inquiry_id, current_user,
        lambda: assignment.move_to_unattended(db, inquiry_id, current_user),
    )
    return ApiResponse(message="Inquiry moved to unattended successfully", data=data)


# --- follow-ups ----------------------------------------------------------


@inquiries_router.post("/{inquiry_id}/follow-up", response_model=ApiResponse[InquiryResponse])
def add_follow_up(
    inquiry_id: int,
    payload: FollowUpCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ApiResponse[InquiryResponse]:
    inquiry = follow_up_service.add_follow_up(db, current_user, inquiry_id, payload)
    return ApiResponse(message="Follow-up added successfully", data=inquiry_service.serialize_inquiry(db, inquiry))


@inquiries_router.put("/{inquiry_id}/follow-up/{follow_up_id}", response_model=ApiResponse[InquiryResponse])
def update_follow_up(
    inquiry_id: int,
    follow_up_id: int,
    payload: FollowUpUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ApiResponse[InquiryResponse]:
    inquiry = follow_up_service.update_follow_up(db, current_user, inquiry_id, follow_up_id, payload)
    return ApiResponse(message="Follow-up updated successfully", data=inquiry_service.serialize_inquiry(db, inquiry))


@inquiries_router.delete("/{inquiry_id}/follow-up/{follow_up_id}", response_model=ApiResponse[InquiryResponse])
def delete_follow_up(
    inquiry_id: int,
    follow_up_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ApiResponse[InquiryResponse]:
    inquiry = follow_up_service.delete_follow_up(db, current_user, inquiry_id, follow_up_id)
    return ApiResponse(message="Follow-up deleted successfully", data=inquiry_service.serialize_inquiry(db, inquiry))
