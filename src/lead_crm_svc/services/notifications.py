import logging
from typing import Dict, Iterable, List, Optional

from lead_crm_svc.models import Inquiry, User
from lead_crm_svc.services.assignment import Transition
from lead_crm_svc.utils.websocket_manager import manager

logger = logging.getLogger(__name__)

EVENT_CREATED = "inquiry_created"
EVENT_FOLLOW_UP_DUE = "follow_up_due"

_TRANSITION_MESSAGES = {
    Transition.Claim: "Inquiry {id} claimed",
    Transition.Assign: "Inquiry {id} assigned to you",
    Transition.Reassign: "Inquiry {id} reassigned to you",
    Transition.ForwardToSales: "Inquiry {id} forwarded to Sales",
    Transition.MoveToUnattended: "Inquiry {id} moved to unattended",
}


def build_event(event: str, inquiry_id: Optional[int], message: str, user_ids: Iterable[Optional[int]]) -> Dict:
    targets: List[int] = sorted({int(u) for u in user_ids if u is not None})
    return {"event": event, "inquiry_id": inquiry_id, "message": message, "user_ids": targets}


def created_event(inquiry: Inquiry) -> Dict:
    # new leads go to everyone watching the pool
    return build_event(EVENT_CREATED, inquiry.id, f"Inquiry {inquiry.id} created", [])


def transition_event(transition: Transition, inquiry: Inquiry, actor: User, previous_owner_id: Optional[int]) -> Dict:
    """Event for an applied transition, addressed to the users it affects."""
    if transition in (Transition.Assign, Transition.Reassign):
        recipients = [inquiry.assigned_to_id]
    elif transition == Transition.ForwardToSales:
        recipients = [previous_owner_id, inquiry.created_by_id]
    elif transition == Transition.MoveToUnattended:
        recipients = [previous_owner_id]
    else:
        recipients = [inquiry.created_by_id]
    # actors are not told about their own actions
    recipients = [uid for uid in recipients if uid is not None and uid != actor.id]
    message = _TRANSITION_MESSAGES[transition].format(id=inquiry.id)
    return build_event(transition.value, inquiry.id, message, recipients)


async def publish(payload: Dict, broadcast: bool = False) -> None:
    """Deliver an event over websocket. Failures are logged, never raised.

    Targeted events with no recipients left are dropped; only ``broadcast``
    events reach every connection.
    """
    try:
        if broadcast:
            await manager.broadcast(payload)
        elif payload.get("user_ids"):
            await manager.send_to_users(payload["user_ids"], payload)
        else:
            logger.debug("No recipients for %s inquiry=%s", payload.get("event"), payload.get("inquiry_id"))
            return
        logger.info("Published %s inquiry=%s users=%s", payload.get("event"), payload.get("inquiry_id"), payload.get("user_ids"))
    except Exception as e:
        logger.error(e, exc_info=True)
