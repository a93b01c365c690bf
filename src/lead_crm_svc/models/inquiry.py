from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, func
from sqlalchemy.orm import relationship
from sqlalchemy import Enum as SAEnum

from .base import Base
from .enums import (
    AssignmentStatus,
    Department,
    FollowUpOutcome,
    FollowUpStatus,
    FollowUpType,
    InquiryStatus,
    Medium,
)


class Inquiry(Base):
    __tablename__ = "inquiries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(50), nullable=False)
    email = Column(String, nullable=True, index=True)
    phone = Column(String, nullable=False, index=True)
    city = Column(String(30), nullable=False)
    education = Column(String(100), nullable=False)
    course = Column(String, nullable=False, index=True)
    preferred_location = Column(String, nullable=False)
    medium = Column(SAEnum(Medium, native_enum=False), nullable=False)
    message = Column(Text, nullable=True)
    status = Column(SAEnum(InquiryStatus, native_enum=False), nullable=False, default=InquiryStatus.Warm, index=True)
    assignment_status = Column(
        SAEnum(AssignmentStatus, native_enum=False),
        nullable=False,
        default=AssignmentStatus.NotAssigned,
    )
    department = Column(SAEnum(Department, native_enum=False), nullable=False, default=Department.Presales)
    # user references are lookup-only ids, resolved explicitly at read time
    assigned_to_id = Column(Integer, nullable=True, index=True)
    forwarded_by_id = Column(Integer, nullable=True)
    created_by_id = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=func.now(), index=True)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    follow_ups = relationship(
        "FollowUp",
        back_populates="inquiry",
        cascade="all, delete-orphan",
        order_by="FollowUp.id",
    )

    def __repr__(self) -> str:
        return (
            f"<Inquiry(id={self.id}, name='{self.name}', status='{self.status}', "
            f"assignment_status='{self.assignment_status}')>"
        )


class FollowUp(Base):
    __tablename__ = "follow_ups"

    id = Column(Integer, primary_key=True, autoincrement=True)
    inquiry_id = Column(Integer, ForeignKey("inquiries.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(SAEnum(FollowUpType, native_enum=False), nullable=False)
    status = Column(SAEnum(FollowUpStatus, native_enum=False), nullable=False, default=FollowUpStatus.Scheduled)
    title = Column(String(100), nullable=True)
    message = Column(Text, nullable=True)
    outcome = Column(SAEnum(FollowUpOutcome, native_enum=False), nullable=True)
    duration = Column(Integer, nullable=True)
    completed_date = Column(DateTime, nullable=True)
    next_follow_up_date = Column(DateTime, nullable=True, index=True)
    inquiry_status = Column(SAEnum(InquiryStatus, native_enum=False), nullable=True)
    lead_stage = Column(String, nullable=True)
    sub_stage = Column(String, nullable=True)
    created_by_id = Column(Integer, nullable=False, index=True)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    inquiry = relationship("Inquiry", back_populates="follow_ups")

    def __repr__(self) -> str:
        return f"<FollowUp(id={self.id}, inquiry_id={self.inquiry_id}, type='{self.type}')>"
