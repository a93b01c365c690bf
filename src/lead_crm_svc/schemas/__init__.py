from .common import ApiResponse, ErrorResponse, FieldError, Pagination, UserSummary
from .auth import AuthData, LoginRequest, ProfileUpdate, RegisterRequest
from .user import UserCreate, UserList, UserResponse, UserUpdate
from .inquiry import (
    InquiryCreate,
    InquiryUpdate,
    InquiryResponse,
    InquiryList,
    FollowUpCreate,
    FollowUpUpdate,
    FollowUpResponse,
    AssignRequest,
    ReassignRequest,
    ActivityResponse,
    DashboardStats,
    UnattendedCounts,
    PhoneCheck,
)
from .options import LeadStage, OptionsResponse, OptionsUpdate
from .student import ImportResult, StudentList, StudentResponse

__all__ = [
    "ApiResponse",
    "ErrorResponse",
    "FieldError",
    "Pagination",
    "UserSummary",
    "AuthData",
    "LoginRequest",
    "ProfileUpdate",
    "RegisterRequest",
    "UserCreate",
    "UserList",
    "UserResponse",
    "UserUpdate",
    "InquiryCreate",
    "InquiryUpdate",
    "InquiryResponse",
    "InquiryList",
    "FollowUpCreate",
    "FollowUpUpdate",
    "FollowUpResponse",
    "AssignRequest",
    "ReassignRequest",
    "ActivityResponse",
    "DashboardStats",
    "UnattendedCounts",
    "PhoneCheck",
    "LeadStage",
    "OptionsResponse",
    "OptionsUpdate",
    "ImportResult",
    "StudentList",
    "StudentResponse",
]
