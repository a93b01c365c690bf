from sqlalchemy import Column, DateTime, Integer, String, func
from sqlalchemy import Enum as SAEnum

from .base import Base
from .enums import ActivityAction


class Activity(Base):
    """Audit row appended once per assignment transition. Never updated."""

    __tablename__ = "activities"

    id = Column(Integer, primary_key=True, autoincrement=True)
    # no FK: the trail outlives deleted inquiries
    inquiry_id = Column(Integer, nullable=False, index=True)
    action = Column(SAEnum(ActivityAction, native_enum=False), nullable=False)
    actor_id = Column(Integer, nullable=False, index=True)
    target_user_id = Column(Integer, nullable=True)
    details = Column(String, nullable=True)
    created_at = Column(DateTime, default=func.now(), index=True)

    def __repr__(self) -> str:
        return f"<Activity(id={self.id}, inquiry_id={self.inquiry_id}, action='{self.action}')>"
