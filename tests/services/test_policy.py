import pytest

from lead_crm_svc.errors import Forbidden
from lead_crm_svc.models import Department, FollowUp, Inquiry, User, UserRole
from lead_crm_svc.services.policy import POLICY, Operation, authorize, department_scope, is_allowed


def _user(user_id: int, role: UserRole) -> User:
    return User(id=user_id, role=role, email=f"{user_id}@example.com", name=f"User {user_id}", hashed_password="x")


ADMIN = _user(1, UserRole.Admin)
PRESALES = _user(2, UserRole.Presales)
SALES = _user(3, UserRole.Sales)
PLAIN = _user(4, UserRole.User)


def test_every_operation_has_a_rule():
    assert set(POLICY) == set(Operation)


@pytest.mark.parametrize(
    "operation, allowed",
    [
        (Operation.ListInquiries, {UserRole.Admin, UserRole.Presales, UserRole.Sales}),
        (Operation.CreateInquiry, set(UserRole)),
        (Operation.Claim, {UserRole.Admin, UserRole.Presales, UserRole.Sales}),
        (Operation.Assign, {UserRole.Admin, UserRole.Presales, UserRole.Sales}),
        (Operation.Reassign, {UserRole.Admin, UserRole.Presales, UserRole.Sales}),
        (Operation.ForwardToSales, {UserRole.Admin, UserRole.Presales}),
        (Operation.ManageUsers, {UserRole.Admin}),
        (Operation.ReadOptions, set(UserRole)),
        (Operation.ManageOptions, {UserRole.Admin}),
        (Operation.ManageStudents, {UserRole.Admin}),
        (Operation.MyFollowUps, {UserRole.Presales, UserRole.Sales}),
    ],
)
def test_role_table(operation, allowed):
    for user in (ADMIN, PRESALES, SALES, PLAIN):
        assert is_allowed(user, operation) is (user.role in allowed)


def test_authorize_raises_forbidden():
    with pytest.raises(Forbidden):
        authorize(PLAIN, Operation.ManageUsers)
    authorize(ADMIN, Operation.ManageUsers)


def test_move_to_unattended_needs_owner_or_admin():
    owned = Inquiry(id=10, assigned_to_id=SALES.id, created_by_id=PLAIN.id, department=Department.Sales)
    assert is_allowed(SALES, Operation.MoveToUnattended, owned)
    assert is_allowed(ADMIN, Operation.MoveToUnattended, owned)
    assert not is_allowed(PRESALES, Operation.MoveToUnattended, owned)
    # without a record only the role counts
    assert not is_allowed(SALES, Operation.MoveToUnattended)


def test_view_inquiry_predicate():
    presales_lead = Inquiry(id=11, assigned_to_id=None, created_by_id=PLAIN.id, department=Department.Presales)
    sales_lead = Inquiry(id=12, assigned_to_id=None, created_by_id=PRESALES.id, department=Department.Sales)

    assert is_allowed(PLAIN, Operation.ViewInquiry, presales_lead)
    assert not is_allowed(SALES, Operation.ViewInquiry, presales_lead)
    assert is_allowed(SALES, Operation.ViewInquiry, sales_lead)
    assert not is_allowed(_user(5, UserRole.User), Operation.ViewInquiry, presales_lead)


def test_delete_follow_up_author_only_for_sales():
    own = FollowUp(id=1, created_by_id=SALES.id)
    other = FollowUp(id=2, created_by_id=PRESALES.id)
    assert is_allowed(SALES, Operation.DeleteFollowUp, own)
    assert not is_allowed(SALES, Operation.DeleteFollowUp, other)
    assert is_allowed(PRESALES, Operation.DeleteFollowUp, own)


def test_department_scope():
    assert department_scope(ADMIN) is None
    assert department_scope(PRESALES) == Department.Presales
    assert department_scope(SALES) == Department.Sales
    with pytest.raises(Forbidden):
        department_scope(PLAIN)
