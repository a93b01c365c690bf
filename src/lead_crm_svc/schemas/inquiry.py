from __future__ import annotations

import re
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import ConfigDict, EmailStr, Field, field_validator

from lead_crm_svc.models.enums import (
    ActivityAction,
    AssignmentStatus,
    Department,
    FollowUpOutcome,
    FollowUpStatus,
    FollowUpType,
    InquiryStatus,
    Medium,
)
from lead_crm_svc.schemas.common import CamelModel, Pagination, UserSummary, to_naive_utc

# country code prefix followed by at least ten digits, e.g. +911234567890
PHONE_RE = re.compile(r"^\+[0-9]{10,}$")


def validate_phone(value: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValueError("Phone number is required")
    if not value.startswith("+"):
        raise ValueError("Phone number must include country code (e.g., +91)")
    if not PHONE_RE.match(value):
        raise ValueError("Please provide a valid phone number with country code (e.g., +911234567890)")
    return value


def _blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


class InquiryCreate(CamelModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=2, max_length=50)
    email: Optional[EmailStr] = None
    phone: str
    city: str = Field(..., min_length=2, max_length=30)
    education: str = Field(..., min_length=2, max_length=100)
    course: str = Field(..., min_length=1)
    preferred_location: str = Field(..., min_length=1)
    medium: Medium
    message: Optional[str] = Field(default=None, max_length=1000)
    status: Optional[InquiryStatus] = None

    @field_validator("email", "message", mode="before")
    @classmethod
    def _empty_is_absent(cls, v):
        return _blank_to_none(v)

    @field_validator("email")
    @classmethod
    def _lower_email(cls, v: Optional[str]) -> Optional[str]:
        return v.lower() if v else v

    @field_validator("phone")
    @classmethod
    def _phone(cls, v: str) -> str:
        return validate_phone(v)


class InquiryUpdate(CamelModel):
    """Partial update of contact and categorical fields.

    Assignment fields are deliberately absent: they only change through the
    assignment endpoints.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    city: Optional[str] = Field(default=None, min_length=2, max_length=30)
    education: Optional[str] = Field(default=None, min_length=2, max_length=100)
    course: Optional[str] = Field(default=None, min_length=1)
    preferred_location: Optional[str] = Field(default=None, min_length=1)
    medium: Optional[Medium] = None
    message: Optional[str] = Field(default=None, max_length=1000)
    status: Optional[InquiryStatus] = None

    @field_validator("email", mode="before")
    @classmethod
    def _empty_is_absent(cls, v):
        return _blank_to_none(v)

    @field_validator("email")
    @classmethod
    def _lower_email(cls, v: Optional[str]) -> Optional[str]:
        return v.lower() if v else v

    @field_validator("phone")
    @classmethod
    def _phone(cls, v: Optional[str]) -> Optional[str]:
        return validate_phone(v) if v is not None else v


class AssignRequest(CamelModel):
    assigned_to: int


class ReassignRequest(CamelModel):
    target_user_id: int


class FollowUpCreate(CamelModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    type: FollowUpType
    message: str = Field(..., min_length=1, max_length=1000)
    title: Optional[str] = Field(default=None, max_length=100)
    status: FollowUpStatus = FollowUpStatus.Scheduled
    outcome: Optional[FollowUpOutcome] = None
    duration: Optional[int] = Field(default=None, ge=1, le=1440)
    completed_date: Optional[datetime] = None
    next_follow_up_date: Optional[datetime] = None
    inquiry_status: Optional[InquiryStatus] = None
    lead_stage: Optional[str] = None
    sub_stage: Optional[str] = None

    @field_validator("title", "lead_stage", "sub_stage", mode="before")
    @classmethod
    def _empty_is_absent(cls, v):
        return _blank_to_none(v)

    @field_validator("completed_date", "next_follow_up_date")
    @classmethod
    def _naive(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v)


class FollowUpUpdate(CamelModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    type: Optional[FollowUpType] = None
    message: Optional[str] = Field(default=None, min_length=1, max_length=1000)
    title: Optional[str] = Field(default=None, max_length=100)
    status: Optional[FollowUpStatus] = None
    outcome: Optional[FollowUpOutcome] = None
    duration: Optional[int] = Field(default=None, ge=1, le=1440)
    completed_date: Optional[datetime] = None
    # explicit null clears the scheduled date
    next_follow_up_date: Optional[datetime] = None
    inquiry_status: Optional[InquiryStatus] = None
    lead_stage: Optional[str] = None
    sub_stage: Optional[str] = None

    @field_validator("completed_date", "next_follow_up_date")
    @classmethod
    def _naive(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v)


class FollowUpResponse(CamelModel):
    id: int
    inquiry_id: int
    type: FollowUpType
    status: FollowUpStatus
    title: Optional[str] = None
    message: Optional[str] = None
    outcome: Optional[FollowUpOutcome] = None
    duration: Optional[int] = None
    completed_date: Optional[datetime] = None
    next_follow_up_date: Optional[datetime] = None
    inquiry_status: Optional[InquiryStatus] = None
    lead_stage: Optional[str] = None
    sub_stage: Optional[str] = None
    created_by_id: int
    created_by: Optional[UserSummary] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class InquiryResponse(CamelModel):
    id: int
    name: str
    email: Optional[str] = None
    phone: str
    city: str
    education: str
    course: str
    preferred_location: str
    medium: Medium
    message: Optional[str] = None
    status: InquiryStatus
    assignment_status: AssignmentStatus
    department: Department
    assigned_to_id: Optional[int] = None
    assigned_to: Optional[UserSummary] = None
    forwarded_by_id: Optional[int] = None
    forwarded_by: Optional[UserSummary] = None
    created_by_id: int
    created_by: Optional[UserSummary] = None
    follow_ups: List[FollowUpResponse] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class InquiryList(CamelModel):
    inquiries: List[InquiryResponse]
    pagination: Optional[Pagination] = None


class InquirySummary(CamelModel):
    id: int
    name: str
    email: Optional[str] = None
    phone: str
    city: str
    course: str
    preferred_location: str
    status: InquiryStatus
    department: Department
    assigned_to: Optional[UserSummary] = None
    created_by: Optional[UserSummary] = None


class MyFollowUpItem(FollowUpResponse):
    inquiry: InquirySummary


class MyFollowUps(CamelModel):
    follow_ups: List[MyFollowUpItem]


class ActivityResponse(CamelModel):
    id: int
    inquiry_id: int
    action: ActivityAction
    actor_id: int
    actor: Optional[UserSummary] = None
    target_user_id: Optional[int] = None
    target_user: Optional[UserSummary] = None
    details: Optional[str] = None
    created_at: Optional[datetime] = None


class ActivityList(CamelModel):
    activities: List[ActivityResponse]


class DashboardStats(CamelModel):
    total_inquiries: int
    hot_inquiries: int
    warm_inquiries: int
    cold_inquiries: int
    my_inquiries: int
    assigned_inquiries: int
    presales_inquiries: int
    sales_inquiries: int
    admitted_students: int
    recent_inquiries: List[InquiryResponse]


class UnattendedCounts(CamelModel):
    total: int
    by_location: Dict[str, int]


class PhoneCheck(CamelModel):
    exists: bool
    inquiry_id: Optional[int] = None
    is_assigned: bool = False
    assignment_status: Optional[AssignmentStatus] = None
    department: Optional[Department] = None
