from enum import Enum


class UserRole(str, Enum):
    User = "user"
    Presales = "presales"
    Sales = "sales"
    Admin = "admin"


class Department(str, Enum):
    Presales = "presales"
    Sales = "sales"


class AssignmentStatus(str, Enum):
    NotAssigned = "not_assigned"
    Assigned = "assigned"
    Reassigned = "reassigned"
    ForwardedToSales = "forwarded_to_sales"


class InquiryStatus(str, Enum):
    Hot = "hot"
    Warm = "warm"
    Cold = "cold"
    Walkin = "walkin"
    NotInterested = "not_interested"
    OnlineConversion = "online_conversion"


class Medium(str, Enum):
    IVR = "IVR"
    Email = "Email"
    WhatsApp = "WhatsApp"


class FollowUpType(str, Enum):
    Call = "call"
    Email = "email"
    WhatsApp = "whatsapp"


class FollowUpStatus(str, Enum):
    Scheduled = "scheduled"
    Completed = "completed"
    Cancelled = "cancelled"
    Rescheduled = "rescheduled"
    NoAnswer = "no_answer"
    Busy = "busy"


class FollowUpOutcome(str, Enum):
    Positive = "positive"
    Neutral = "neutral"
    Negative = "negative"
    Interested = "interested"
    NotInterested = "not_interested"
    NeedsTime = "needs_time"
    RequestedInfo = "requested_info"
    ScheduledMeeting = "scheduled_meeting"


class ActivityAction(str, Enum):
    Created = "created"
    Claimed = "claimed"
    Assigned = "assigned"
    Reassigned = "reassigned"
    ForwardedToSales = "forwarded_to_sales"
    MovedToUnattended = "moved_to_unattended"


# Sales follow-ups record a lead stage label; it drives the inquiry status.
LEAD_STAGE_STATUS = {
    "Hot": InquiryStatus.Hot,
    "Warm": InquiryStatus.Warm,
    "Cold": InquiryStatus.Cold,
    "Not Interested": InquiryStatus.NotInterested,
    "Walkin": InquiryStatus.Walkin,
    "Online-Conversion": InquiryStatus.OnlineConversion,
}
