from sqlalchemy import JSON, Column, DateTime, Integer, String, func

from .base import Base

GLOBAL_KEY = "global"

DEFAULT_COURSES = ["CDEC", "X-DSAAI", "DevOps", "Full-Stack", "Any"]
DEFAULT_LOCATIONS = ["Nagpur", "Pune", "Nashik", "Indore"]
DEFAULT_STATUSES = ["hot", "warm", "cold"]
DEFAULT_LEAD_STAGES = [
    {
        "label": "Cold",
        "subStages": [
            "Closure Timeline is Unknown",
            "Duplicate Enquiry",
            "Switch Off",
            "School Student",
            "Already Enrolled with Other Institute",
            "Financial Issue",
            "Invalid Number",
            "Call Back",
            "Join Later",
            "Planning After 1 Month",
            "Planning After 2 Months",
            "Planning After 5 Months",
            "Planning For Next Year",
        ],
    },
    {"label": "Warm", "subStages": ["Follow-up", "In Conversation"]},
    {"label": "Hot", "subStages": ["Confirmed Admission"]},
    {
        "label": "Not Interested",
        "subStages": ["Joined Somewhere Else", "Dropped The Plan", "Financial Issue", "Time Constraint"],
    },
    {
        "label": "Walkin",
        "subStages": [
            "Walked-in to Center",
            "Attended Demo",
            "Not Interested After Demo",
            "Converted After Walk-in",
            "Follow-up Needed After Walk-in",
        ],
    },
    {
        "label": "Online-Conversion",
        "subStages": [
            "Attended Online Demo",
            "Interested Post Demo",
            "Confirmed Admission",
            "Did Not Respond After Demo",
            "Need Follow-up After Demo",
        ],
    },
]


class OptionSettings(Base):
    __tablename__ = "option_settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    key = Column(String, nullable=False, unique=True)
    courses = Column(JSON, nullable=False, default=lambda: list(DEFAULT_COURSES))
    locations = Column(JSON, nullable=False, default=lambda: list(DEFAULT_LOCATIONS))
    statuses = Column(JSON, nullable=False, default=lambda: list(DEFAULT_STATUSES))
    lead_stages = Column(JSON, nullable=False, default=lambda: [dict(s) for s in DEFAULT_LEAD_STAGES])
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    def __repr__(self) -> str:
        return f"<OptionSettings(key='{self.key}')>"
