from .base import Base, SessionLocal, engine, get_db, init_db
from .enums import (
    UserRole,
    Department,
    AssignmentStatus,
    InquiryStatus,
    Medium,
    FollowUpType,
    FollowUpStatus,
    FollowUpOutcome,
    ActivityAction,
)
from .user import User
from .inquiry import Inquiry, FollowUp
from .activity import Activity
from .student import Student
from .options import OptionSettings

__all__ = [
    "Base",
    "SessionLocal",
    "engine",
    "get_db",
    "init_db",
    "User",
    "Inquiry",
    "FollowUp",
    "Activity",
    "Student",
    "OptionSettings",
    "UserRole",
    "Department",
    "AssignmentStatus",
    "InquiryStatus",
    "Medium",
    "FollowUpType",
    "FollowUpStatus",
    "FollowUpOutcome",
    "ActivityAction",
]
