"""
Assignment engine.

Owns the legal moves of an inquiry's ``assignment_status``, ``department`` and
``assigned_to_id``. Each move is a single conditional UPDATE that only matches
the state the precondition was checked against, committed together with its
Activity row. A request that lost a race to a concurrent transition matches no
row and fails with ``InvalidState``; nothing is written.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional

from sqlalchemy import func, update as sa_update
from sqlalchemy.orm import Session

from lead_crm_svc.errors import Forbidden, InvalidState, NotFound, ValidationFailed
from lead_crm_svc.models import (
    ActivityAction,
    AssignmentStatus,
    Department,
    Inquiry,
    User,
    UserRole,
)
from lead_crm_svc.services.activity_service import record_activity
from lead_crm_svc.services.policy import Operation, authorize, is_owner
from lead_crm_svc.services.unit_of_work import transaction

logger = logging.getLogger(__name__)


class Transition(str, Enum):
    Claim = "claim"
    Assign = "assign"
    Reassign = "reassign"
    ForwardToSales = "forward_to_sales"
    MoveToUnattended = "move_to_unattended"


UNOWNED = frozenset({AssignmentStatus.NotAssigned, AssignmentStatus.ForwardedToSales})
OWNED = frozenset({AssignmentStatus.Assigned, AssignmentStatus.Reassigned})


@dataclass(frozen=True)
class TransitionRule:
    sources: FrozenSet[AssignmentStatus]
    target: AssignmentStatus
    action: ActivityAction
    departments: FrozenSet[Department] = frozenset(Department)


TRANSITIONS: Dict[Transition, TransitionRule] = {
    Transition.Claim: TransitionRule(UNOWNED, AssignmentStatus.Assigned, ActivityAction.Claimed),
    Transition.Assign: TransitionRule(UNOWNED, AssignmentStatus.Assigned, ActivityAction.Assigned),
    Transition.Reassign: TransitionRule(OWNED, AssignmentStatus.Reassigned, ActivityAction.Reassigned),
    Transition.ForwardToSales: TransitionRule(
        OWNED,
        AssignmentStatus.ForwardedToSales,
        ActivityAction.ForwardedToSales,
        frozenset({Department.Presales}),
    ),
    Transition.MoveToUnattended: TransitionRule(OWNED, AssignmentStatus.NotAssigned, ActivityAction.MovedToUnattended),
}


def check_transition(transition: Transition, status: AssignmentStatus, department: Department) -> TransitionRule:
    """Return the rule for ``transition`` or raise InvalidState if it cannot leave ``status``."""
    rule = TRANSITIONS[transition]
    if status not in rule.sources:
        raise InvalidState(
            f"Cannot {transition.value.replace('_', ' ')} an inquiry that is {status.value}",
            {"assignment_status": status.value},
        )
    if department not in rule.departments:
        raise InvalidState(
            f"Cannot {transition.value.replace('_', ' ')} an inquiry in the {department.value} department",
            {"department": department.value},
        )
    return rule


def _load(db: Session, inquiry_id: int) -> Inquiry:
    inquiry = db.get(Inquiry, inquiry_id)
    if inquiry is None:
        raise NotFound("Inquiry", inquiry_id)
    return inquiry


def _require_department(actor: User, inquiry: Inquiry) -> None:
    if actor.role == UserRole.Admin:
        return
    if actor.department != inquiry.department:
        raise InvalidState(
            f"Inquiry belongs to the {inquiry.department.value} department",
            {"department": inquiry.department.value},
        )


def _require_owner_or_admin(actor: User, inquiry: Inquiry) -> None:
    if actor.role == UserRole.Admin or is_owner(actor, inquiry):
        return
    logger.warning("Denied ownership check inquiry=%s actor=%s owner=%s", inquiry.id, actor.id, inquiry.assigned_to_id)
    raise Forbidden("Only the current owner or an admin can do this")


def _target_user(db: Session, target_user_id: int, department: Department) -> User:
    target = db.get(User, target_user_id)
    if target is None:
        raise NotFound("User", target_user_id)
    if not target.is_active:
        raise ValidationFailed("Target user is not active", field="targetUserId")
    if target.department != department:
        raise InvalidState(
            f"Target user is not in the {department.value} department",
            {"target_user_id": target_user_id},
        )
    return target


def _apply(
    db: Session,
    inquiry: Inquiry,
    transition: Transition,
    rule: TransitionRule,
    actor: User,
    values: Dict[str, Any],
    target_user_id: Optional[int] = None,
    details: Optional[str] = None,
) -> Inquiry:
    inquiry_id = inquiry.id
    expected_status = inquiry.assignment_status
    expected_department = inquiry.department
    expected_owner = inquiry.assigned_to_id

    if expected_owner is None:
        owner_matches = Inquiry.assigned_to_id.is_(None)
    else:
        owner_matches = Inquiry.assigned_to_id == expected_owner

    stmt = (
        sa_update(Inquiry)
        .where(
            Inquiry.id == inquiry_id,
            Inquiry.assignment_status == expected_status,
            Inquiry.department == expected_department,
            owner_matches,
        )
        .values(assignment_status=rule.target, updated_at=func.now(), **values)
        .execution_options(synchronize_session=False)
    )

    with transaction(db, transition.value):
        applied = db.execute(stmt).rowcount == 1
        if applied:
            record_activity(db, inquiry_id, rule.action, actor.id, target_user_id, details)

    # the commit expired the instance, so this reads the stored row
    current = _load(db, inquiry_id)
    if not applied:
        logger.warning(
            "%s lost to a concurrent change inquiry=%s actor=%s now=%s",
            transition.value,
            inquiry_id,
            actor.id,
            current.assignment_status.value,
        )
        raise InvalidState(
            f"Inquiry was changed by another user and is now {current.assignment_status.value}",
            {"assignment_status": current.assignment_status.value},
        )

    logger.info("%s inquiry=%s actor=%s target=%s", rule.action.value, inquiry_id, actor.id, target_user_id)
    return current


def claim(db: Session, inquiry_id: int, actor: User) -> Inquiry:
    """Take an unowned inquiry of the actor's department."""
    inquiry = _load(db, inquiry_id)
    _require_department(actor, inquiry)
    rule = check_transition(Transition.Claim, inquiry.assignment_status, inquiry.department)
    return _apply(db, inquiry, Transition.Claim, rule, actor, {"assigned_to_id": actor.id})


def assign(db: Session, inquiry_id: int, actor: User, target_user_id: int) -> Inquiry:
    """Give an unowned inquiry to a named active user of the same department."""
    inquiry = _load(db, inquiry_id)
    _require_department(actor, inquiry)
    rule = check_transition(Transition.Assign, inquiry.assignment_status, inquiry.department)
    target = _target_user(db, target_user_id, inquiry.department)
    return _apply(
        db,
        inquiry,
        Transition.Assign,
        rule,
        actor,
        {"assigned_to_id": target.id},
        target_user_id=target.id,
    )


def reassign(db: Session, inquiry_id: int, actor: User, target_user_id: int) -> Inquiry:
    inquiry = _load(db, inquiry_id)
    _require_department(actor, inquiry)
    rule = check_transition(Transition.Reassign, inquiry.assignment_status, inquiry.department)
    _require_owner_or_admin(actor, inquiry)
    target = _target_user(db, target_user_id, inquiry.department)
    if target.id == inquiry.assigned_to_id:
        raise InvalidState("Inquiry is already assigned to this user", {"target_user_id": target.id})

    return _apply(
        db,
        inquiry,
        Transition.Reassign,
        rule,
        actor,
        {"assigned_to_id": target.id},
        target_user_id=target.id,
        details=f"Reassigned from user {inquiry.assigned_to_id}",
    )


def forward_to_sales(db: Session, inquiry_id: int, actor: User) -> Inquiry:
    """Hand an owned presales inquiry over to the sales pool. One-way."""
    inquiry = _load(db, inquiry_id)
    _require_department(actor, inquiry)
    rule = check_transition(Transition.ForwardToSales, inquiry.assignment_status, inquiry.department)
    return _apply(
        db,
        inquiry,
        Transition.ForwardToSales,
        rule,
        actor,
        {"assigned_to_id": None, "forwarded_by_id": actor.id, "department": Department.Sales},
        details="Forwarded from presales to sales",
    )


def move_to_unattended(db: Session, inquiry_id: int, actor: User) -> Inquiry:
    """Release an owned inquiry back into its department's shared pool."""
    inquiry = _load(db, inquiry_id)
    authorize(actor, Operation.MoveToUnattended, inquiry)
    _require_department(actor, inquiry)
    rule = check_transition(Transition.MoveToUnattended, inquiry.assignment_status, inquiry.department)
    return _apply(
        db,
        inquiry,
        Transition.MoveToUnattended,
        rule,
        actor,
        {"assigned_to_id": None},
        details=f"Released by user {inquiry.assigned_to_id}",
    )
