"""
Follow-up ledger.

Follow-ups are child rows of an inquiry. Adding or editing one may cascade a
status onto the parent inquiry in the same commit; deleting one never reverts
a status it set earlier.
"""
from typing import List, Optional
import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from lead_crm_svc.errors import NotFound
from lead_crm_svc.models import Department, FollowUp, Inquiry, InquiryStatus, User
from lead_crm_svc.models.enums import LEAD_STAGE_STATUS
from lead_crm_svc.schemas.inquiry import FollowUpCreate, FollowUpUpdate, MyFollowUpItem
from lead_crm_svc.services.inquiry_service import get_inquiry, serialize_follow_up, summarize_inquiry
from lead_crm_svc.services.policy import Operation, authorize
from lead_crm_svc.services.unit_of_work import transaction
from lead_crm_svc.services.user_service import lookup_users

logger = logging.getLogger(__name__)


def cascaded_status(
    inquiry: Inquiry,
    inquiry_status: Optional[InquiryStatus],
    lead_stage: Optional[str],
) -> Optional[InquiryStatus]:
    """Status a follow-up imposes on its inquiry, or None to leave it alone.

    An explicit ``inquiry_status`` wins; otherwise a sales lead stage maps
    onto the matching status.
    """
    if inquiry_status is not None:
        return inquiry_status
    if lead_stage and inquiry.department == Department.Sales:
        return LEAD_STAGE_STATUS.get(lead_stage)
    return None


def _get_follow_up(db: Session, inquiry: Inquiry, follow_up_id: int) -> FollowUp:
    follow_up = db.get(FollowUp, follow_up_id)
    if follow_up is None or follow_up.inquiry_id != inquiry.id:
        raise NotFound("Follow-up", follow_up_id)
    return follow_up


def add_follow_up(db: Session, actor: User, inquiry_id: int, payload: FollowUpCreate) -> Inquiry:
    inquiry = get_inquiry(db, inquiry_id)
    authorize(actor, Operation.AddFollowUp, inquiry)

    status = cascaded_status(inquiry, payload.inquiry_status, payload.lead_stage)
    follow_up = FollowUp(
        type=payload.type,
        status=payload.status,
        title=payload.title,
        message=payload.message,
        outcome=payload.outcome,
        duration=payload.duration,
        completed_date=payload.completed_date,
        next_follow_up_date=payload.next_follow_up_date,
        inquiry_status=status,
        lead_stage=payload.lead_stage,
        sub_stage=payload.sub_stage,
        created_by_id=actor.id,
    )
    with transaction(db, "add_follow_up"):
        inquiry.follow_ups.append(follow_up)
        if status is not None:
            inquiry.status = status

    db.refresh(inquiry)
    logger.info("Follow-up added inquiry=%s actor=%s status=%s", inquiry.id, actor.id, inquiry.status.value)
    return inquiry


def update_follow_up(
    db: Session,
    actor: User,
    inquiry_id: int,
    follow_up_id: int,
    payload: FollowUpUpdate,
) -> Inquiry:
    inquiry = get_inquiry(db, inquiry_id)
    follow_up = _get_follow_up(db, inquiry, follow_up_id)
    authorize(actor, Operation.UpdateFollowUp, follow_up)

    data = payload.model_dump(exclude_unset=True)
    # a required column cannot be nulled out
    for key in ("type", "status", "message"):
        if key in data and data[key] is None:
            data.pop(key)

    status = cascaded_status(inquiry, data.get("inquiry_status"), data.get("lead_stage"))
    with transaction(db, "update_follow_up"):
        for key, value in data.items():
            setattr(follow_up, key, value)
        if status is not None:
            follow_up.inquiry_status = status
            inquiry.status = status

    db.refresh(inquiry)
    logger.info("Follow-up %s updated inquiry=%s actor=%s", follow_up_id, inquiry.id, actor.id)
    return inquiry


def delete_follow_up(db: Session, actor: User, inquiry_id: int, follow_up_id: int) -> Inquiry:
    inquiry = get_inquiry(db, inquiry_id)
    follow_up = _get_follow_up(db, inquiry, follow_up_id)
    authorize(actor, Operation.DeleteFollowUp, follow_up)

    with transaction(db, "delete_follow_up"):
        inquiry.follow_ups.remove(follow_up)

    db.refresh(inquiry)
    logger.info("Follow-up %s deleted inquiry=%s actor=%s", follow_up_id, inquiry.id, actor.id)
    return inquiry


def my_follow_ups(db: Session, actor: User, latest_only: bool = True) -> List[MyFollowUpItem]:
    """Follow-ups written by ``actor``, newest first.

    With ``latest_only`` only the most recent one per inquiry is returned.
    """
    stmt = select(FollowUp).where(FollowUp.created_by_id == actor.id)
    if latest_only:
        latest = (
            select(func.max(FollowUp.id))
            .where(FollowUp.created_by_id == actor.id)
            .group_by(FollowUp.inquiry_id)
        )
        stmt = stmt.where(FollowUp.id.in_(latest))
    follow_ups = list(db.execute(stmt.order_by(FollowUp.created_at.desc(), FollowUp.id.desc())).scalars().all())

    ids = []
    for follow_up in follow_ups:
        ids.extend([follow_up.created_by_id, follow_up.inquiry.assigned_to_id, follow_up.inquiry.created_by_id])
    users = lookup_users(db, ids)

    items = []
    for follow_up in follow_ups:
        base = serialize_follow_up(follow_up, users)
        items.append(
            MyFollowUpItem(
                **base.model_dump(),
                inquiry=summarize_inquiry(follow_up.inquiry, users),
            )
        )
    return items
