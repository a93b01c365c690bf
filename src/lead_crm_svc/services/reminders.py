import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from lead_crm_svc import config
from lead_crm_svc.models import FollowUp, SessionLocal
from lead_crm_svc.services.notifications import EVENT_FOLLOW_UP_DUE, build_event, publish

logger = logging.getLogger(__name__)


def find_due_follow_ups(db: Session, now: datetime, window_minutes: int) -> List[FollowUp]:
    """Follow-ups whose next date fell inside ``(now - window, now]``.

    Consecutive sweeps with the same window never report a follow-up twice.
    """
    start = now - timedelta(minutes=window_minutes)
    stmt = (
        select(FollowUp)
        .where(FollowUp.next_follow_up_date > start, FollowUp.next_follow_up_date <= now)
        .order_by(FollowUp.next_follow_up_date.asc(), FollowUp.id.asc())
    )
    return list(db.execute(stmt).scalars().all())


def _collect_reminders(now: datetime, window_minutes: int) -> List[dict]:
    db = SessionLocal()
    try:
        events = []
        for follow_up in find_due_follow_ups(db, now, window_minutes):
            name = follow_up.inquiry.name if follow_up.inquiry is not None else ""
            events.append(
                build_event(
                    EVENT_FOLLOW_UP_DUE,
                    follow_up.inquiry_id,
                    f"Follow-up due for {name}".strip(),
                    [follow_up.created_by_id],
                )
            )
        return events
    finally:
        db.close()


async def send_follow_up_reminders(now: Optional[datetime] = None) -> int:
    """Scheduled job: notify authors of follow-ups that have come due."""
    if now is None:
        now = datetime.now(timezone.utc).replace(tzinfo=None)
    window = config.FOLLOW_UP_REMINDER_INTERVAL

    try:
        events = await asyncio.to_thread(_collect_reminders, now, window)
    except Exception as e:
        logger.error(e, exc_info=True)
        return 0

    for event in events:
        await publish(event)
    if events:
        logger.info("Sent %s follow-up reminders", len(events))
    return len(events)
