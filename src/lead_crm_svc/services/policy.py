"""
Role policy.

One table maps every API operation to the roles allowed outright plus an
optional ownership predicate that admits other roles for a specific record.
The assignment engine applies its own, finer ownership rules on top.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, FrozenSet, Optional

from lead_crm_svc.errors import Forbidden
from lead_crm_svc.models import Department, FollowUp, Inquiry, User, UserRole

logger = logging.getLogger(__name__)

Predicate = Callable[[User, object], bool]

ALL_ROLES = frozenset(UserRole)
STAFF = frozenset({UserRole.Presales, UserRole.Sales, UserRole.Admin})


class Operation(str, Enum):
    ListInquiries = "list_inquiries"
    CreateInquiry = "create_inquiry"
    ViewInquiry = "view_inquiry"
    UpdateInquiry = "update_inquiry"
    DeleteInquiry = "delete_inquiry"
    CheckPhone = "check_phone"
    ViewDashboard = "view_dashboard"
    UnattendedCounts = "unattended_counts"
    Claim = "claim"
    Assign = "assign"
    Reassign = "reassign"
    ForwardToSales = "forward_to_sales"
    MoveToUnattended = "move_to_unattended"
    AddFollowUp = "add_follow_up"
    UpdateFollowUp = "update_follow_up"
    DeleteFollowUp = "delete_follow_up"
    MyFollowUps = "my_follow_ups"
    ListUsers = "list_users"
    ManageUsers = "manage_users"
    ReadOptions = "read_options"
    ManageOptions = "manage_options"
    ManageStudents = "manage_students"


def is_creator(user: User, inquiry: Inquiry) -> bool:
    return inquiry.created_by_id == user.id


def is_owner(user: User, inquiry: Inquiry) -> bool:
    return inquiry.assigned_to_id is not None and inquiry.assigned_to_id == user.id


def is_author(user: User, follow_up: FollowUp) -> bool:
    return follow_up.created_by_id == user.id


def _creator_or_owner(user: User, inquiry: Inquiry) -> bool:
    return is_creator(user, inquiry) or is_owner(user, inquiry)


def _can_view(user: User, inquiry: Inquiry) -> bool:
    if _creator_or_owner(user, inquiry):
        return True
    return user.role == UserRole.Sales and inquiry.department == Department.Sales


@dataclass(frozen=True)
class Rule:
    roles: FrozenSet[UserRole]
    allow_if: Optional[Predicate] = None

    def permits(self, user: User, resource: object = None) -> bool:
        if user.role in self.roles:
            return True
        if self.allow_if is not None and resource is not None:
            return self.allow_if(user, resource)
        return False


POLICY: Dict[Operation, Rule] = {
    Operation.ListInquiries: Rule(STAFF),
    Operation.CreateInquiry: Rule(ALL_ROLES),
    Operation.ViewInquiry: Rule(frozenset({UserRole.Admin, UserRole.Presales}), _can_view),
    Operation.UpdateInquiry: Rule(frozenset({UserRole.Admin, UserRole.Presales}), _creator_or_owner),
    Operation.DeleteInquiry: Rule(frozenset({UserRole.Admin, UserRole.Presales}), is_creator),
    Operation.CheckPhone: Rule(ALL_ROLES),
    Operation.ViewDashboard: Rule(ALL_ROLES),
    Operation.UnattendedCounts: Rule(ALL_ROLES),
    Operation.Claim: Rule(STAFF),
    Operation.Assign: Rule(STAFF),
    Operation.Reassign: Rule(STAFF),
    Operation.ForwardToSales: Rule(frozenset({UserRole.Presales, UserRole.Admin})),
    Operation.MoveToUnattended: Rule(frozenset({UserRole.Admin}), is_owner),
    Operation.AddFollowUp: Rule(STAFF, _creator_or_owner),
    Operation.UpdateFollowUp: Rule(STAFF, is_author),
    Operation.DeleteFollowUp: Rule(frozenset({UserRole.Admin, UserRole.Presales}), is_author),
    Operation.MyFollowUps: Rule(frozenset({UserRole.Presales, UserRole.Sales})),
    Operation.ListUsers: Rule(STAFF),
    Operation.ManageUsers: Rule(frozenset({UserRole.Admin})),
    Operation.ReadOptions: Rule(ALL_ROLES),
    Operation.ManageOptions: Rule(frozenset({UserRole.Admin})),
    Operation.ManageStudents: Rule(frozenset({UserRole.Admin})),
}


def is_allowed(user: User, operation: Operation, resource: object = None) -> bool:
    return POLICY[operation].permits(user, resource)


def authorize(user: User, operation: Operation, resource: object = None) -> None:
    """Raise Forbidden unless ``user`` may perform ``operation`` (on ``resource``)."""
    if is_allowed(user, operation, resource):
        return
    logger.warning(
        "Denied %s actor=%s role=%s resource=%s",
        operation.value,
        user.id,
        getattr(user.role, "value", user.role),
        getattr(resource, "id", None),
    )
    raise Forbidden()


def department_scope(user: User) -> Optional[Department]:
    """Department a user's listings are confined to; None means unrestricted."""
    if user.role == UserRole.Admin:
        return None
    if user.department is None:
        raise Forbidden()
    return user.department
