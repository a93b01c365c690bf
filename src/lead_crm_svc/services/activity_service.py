from typing import List, Optional
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from lead_crm_svc.models import Activity, ActivityAction
from lead_crm_svc.schemas.inquiry import ActivityResponse
from lead_crm_svc.services.user_service import lookup_users

logger = logging.getLogger(__name__)


def record_activity(
    db: Session,
    inquiry_id: int,
    action: ActivityAction,
    actor_id: int,
    target_user_id: Optional[int] = None,
    details: Optional[str] = None,
) -> Activity:
    """Stage an activity row on the caller's session.

    The caller commits it together with the state change it describes.
    """
    activity = Activity(
        inquiry_id=inquiry_id,
        action=action,
        actor_id=actor_id,
        target_user_id=target_user_id,
        details=details,
    )
    db.add(activity)
    return activity


def list_activities(db: Session, inquiry_id: int) -> List[Activity]:
    stmt = (
        select(Activity)
        .where(Activity.inquiry_id == inquiry_id)
        .order_by(Activity.created_at.desc(), Activity.id.desc())
    )
    return list(db.execute(stmt).scalars().all())


def serialize_activities(db: Session, activities: List[Activity]) -> List[ActivityResponse]:
    users = lookup_users(db, [a.actor_id for a in activities] + [a.target_user_id for a in activities])
    result = []
    for activity in activities:
        item = ActivityResponse.model_validate(activity)
        item.actor = users.get(activity.actor_id)
        item.target_user = users.get(activity.target_user_id) if activity.target_user_id else None
        result.append(item)
    return result
