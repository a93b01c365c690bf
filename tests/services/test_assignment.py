import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from lead_crm_svc.errors import Forbidden, InvalidState, NotFound, ValidationFailed
from lead_crm_svc.models import (
    Activity,
    ActivityAction,
    AssignmentStatus,
    Base,
    Department,
    Inquiry,
    Medium,
    User,
    UserRole,
)
from lead_crm_svc.services import assignment
from lead_crm_svc.services.assignment import Transition, check_transition


def _activities(db, inquiry_id):
    return list(
        db.execute(select(Activity).where(Activity.inquiry_id == inquiry_id).order_by(Activity.id)).scalars()
    )


def _assert_invariants(inquiry):
    if inquiry.assignment_status == AssignmentStatus.NotAssigned:
        assert inquiry.assigned_to_id is None
    if inquiry.assignment_status == AssignmentStatus.ForwardedToSales:
        assert inquiry.department == Department.Sales
        assert inquiry.forwarded_by_id is not None


@pytest.fixture
def presales(make_user):
    return make_user(role=UserRole.Presales)


@pytest.fixture
def inquiry(make_inquiry, presales):
    return make_inquiry(presales)


def test_created_inquiry_starts_unassigned_in_presales(db_session, inquiry, presales):
    assert inquiry.assignment_status == AssignmentStatus.NotAssigned
    assert inquiry.department == Department.Presales
    _assert_invariants(inquiry)
    acts = _activities(db_session, inquiry.id)
    assert [a.action for a in acts] == [ActivityAction.Created]
    assert acts[0].actor_id == presales.id


def test_claim_sets_owner_and_logs_one_activity(db_session, inquiry, presales):
    result = assignment.claim(db_session, inquiry.id, presales)
    assert result.assignment_status == AssignmentStatus.Assigned
    assert result.assigned_to_id == presales.id

    acts = _activities(db_session, inquiry.id)
    assert [a.action for a in acts] == [ActivityAction.Created, ActivityAction.Claimed]
    assert acts[-1].actor_id == presales.id


def test_second_claim_fails_and_changes_nothing(db_session, inquiry, presales, make_user):
    other = make_user(role=UserRole.Presales)
    assignment.claim(db_session, inquiry.id, presales)

    for actor in (presales, other):
        with pytest.raises(InvalidState):
            assignment.claim(db_session, inquiry.id, actor)

    stored = db_session.get(Inquiry, inquiry.id)
    assert stored.assigned_to_id == presales.id
    assert len(_activities(db_session, inquiry.id)) == 2


def test_sales_cannot_claim_presales_inquiry(db_session, inquiry, make_user):
    sales = make_user(role=UserRole.Sales)
    with pytest.raises(InvalidState):
        assignment.claim(db_session, inquiry.id, sales)


def test_claim_missing_inquiry_is_not_found(db_session, presales):
    with pytest.raises(NotFound):
        assignment.claim(db_session, 12345, presales)


def test_assign_to_named_colleague(db_session, inquiry, presales, make_user):
    colleague = make_user(role=UserRole.Presales)
    result = assignment.assign(db_session, inquiry.id, presales, colleague.id)

    assert result.assignment_status == AssignmentStatus.Assigned
    assert result.assigned_to_id == colleague.id
    last = _activities(db_session, inquiry.id)[-1]
    assert last.action == ActivityAction.Assigned
    assert last.target_user_id == colleague.id


def test_assign_rejects_inactive_or_other_department_target(db_session, inquiry, presales, make_user):
    inactive = make_user(role=UserRole.Presales, is_active=False)
    sales = make_user(role=UserRole.Sales)

    with pytest.raises(ValidationFailed):
        assignment.assign(db_session, inquiry.id, presales, inactive.id)
    with pytest.raises(InvalidState):
        assignment.assign(db_session, inquiry.id, presales, sales.id)
    with pytest.raises(NotFound):
        assignment.assign(db_session, inquiry.id, presales, 9999)

    assert db_session.get(Inquiry, inquiry.id).assignment_status == AssignmentStatus.NotAssigned
    assert len(_activities(db_session, inquiry.id)) == 1


def test_reassign_by_owner(db_session, inquiry, presales, make_user):
    colleague = make_user(role=UserRole.Presales)
    assignment.claim(db_session, inquiry.id, presales)

    result = assignment.reassign(db_session, inquiry.id, presales, colleague.id)
    assert result.assignment_status == AssignmentStatus.Reassigned
    assert result.assigned_to_id == colleague.id

    last = _activities(db_session, inquiry.id)[-1]
    assert last.action == ActivityAction.Reassigned
    assert last.target_user_id == colleague.id
    assert last.details == f"Reassigned from user {presales.id}"


def test_reassign_requires_owner_or_admin(db_session, inquiry, presales, make_user):
    colleague = make_user(role=UserRole.Presales)
    bystander = make_user(role=UserRole.Presales)
    admin = make_user(role=UserRole.Admin)
    assignment.claim(db_session, inquiry.id, presales)

    with pytest.raises(Forbidden):
        assignment.reassign(db_session, inquiry.id, bystander, colleague.id)

    result = assignment.reassign(db_session, inquiry.id, admin, colleague.id)
    assert result.assigned_to_id == colleague.id


def test_reassign_across_departments_is_invalid_state(db_session, inquiry, presales, make_user):
    sales = make_user(role=UserRole.Sales)
    assignment.claim(db_session, inquiry.id, presales)
    with pytest.raises(InvalidState):
        assignment.reassign(db_session, inquiry.id, presales, sales.id)


def test_reassign_to_inactive_user_is_validation_failed(db_session, inquiry, presales, make_user):
    inactive = make_user(role=UserRole.Presales, is_active=False)
    assignment.claim(db_session, inquiry.id, presales)
    with pytest.raises(ValidationFailed):
        assignment.reassign(db_session, inquiry.id, presales, inactive.id)
    assert db_session.get(Inquiry, inquiry.id).assigned_to_id == presales.id


def test_reassign_unowned_inquiry_is_invalid_state(db_session, inquiry, presales, make_user):
    colleague = make_user(role=UserRole.Presales)
    with pytest.raises(InvalidState):
        assignment.reassign(db_session, inquiry.id, presales, colleague.id)


def test_reassign_to_current_owner_is_invalid_state(db_session, inquiry, presales):
    assignment.claim(db_session, inquiry.id, presales)
    with pytest.raises(InvalidState):
        assignment.reassign(db_session, inquiry.id, presales, presales.id)


def test_forward_to_sales_then_sales_claims(db_session, inquiry, presales, make_user):
    sales = make_user(role=UserRole.Sales)
    assignment.claim(db_session, inquiry.id, presales)

    result = assignment.forward_to_sales(db_session, inquiry.id, presales)
    assert result.assignment_status == AssignmentStatus.ForwardedToSales
    assert result.department == Department.Sales
    assert result.assigned_to_id is None
    assert result.forwarded_by_id == presales.id
    _assert_invariants(result)

    # presales no longer works it
    with pytest.raises(InvalidState):
        assignment.claim(db_session, inquiry.id, presales)

    claimed = assignment.claim(db_session, inquiry.id, sales)
    assert claimed.assigned_to_id == sales.id
    assert claimed.department == Department.Sales
    assert claimed.forwarded_by_id == presales.id

    # forwarding is one-way
    with pytest.raises(InvalidState):
        assignment.forward_to_sales(db_session, inquiry.id, sales)

    actions = [a.action for a in _activities(db_session, inquiry.id)]
    assert actions == [
        ActivityAction.Created,
        ActivityAction.Claimed,
        ActivityAction.ForwardedToSales,
        ActivityAction.Claimed,
    ]


def test_forward_unowned_inquiry_is_invalid_state(db_session, inquiry, presales):
    with pytest.raises(InvalidState):
        assignment.forward_to_sales(db_session, inquiry.id, presales)


def test_move_to_unattended_by_owner(db_session, inquiry, presales):
    assignment.claim(db_session, inquiry.id, presales)
    result = assignment.move_to_unattended(db_session, inquiry.id, presales)

    assert result.assignment_status == AssignmentStatus.NotAssigned
    assert result.assigned_to_id is None
    assert result.department == Department.Presales
    _assert_invariants(result)
    assert _activities(db_session, inquiry.id)[-1].action == ActivityAction.MovedToUnattended


def test_move_to_unattended_requires_owner_or_admin(db_session, inquiry, presales, make_user):
    bystander = make_user(role=UserRole.Presales)
    admin = make_user(role=UserRole.Admin)
    assignment.claim(db_session, inquiry.id, presales)

    with pytest.raises(Forbidden):
        assignment.move_to_unattended(db_session, inquiry.id, bystander)

    result = assignment.move_to_unattended(db_session, inquiry.id, admin)
    assert result.assignment_status == AssignmentStatus.NotAssigned


def test_move_unowned_inquiry_is_invalid_state(db_session, inquiry, make_user):
    admin = make_user(role=UserRole.Admin)
    with pytest.raises(InvalidState):
        assignment.move_to_unattended(db_session, inquiry.id, admin)


def test_transition_table_is_closed():
    with pytest.raises(InvalidState):
        check_transition(Transition.Claim, AssignmentStatus.Reassigned, Department.Presales)
    with pytest.raises(InvalidState):
        check_transition(Transition.ForwardToSales, AssignmentStatus.Assigned, Department.Sales)
    rule = check_transition(Transition.Claim, AssignmentStatus.ForwardedToSales, Department.Sales)
    assert rule.target == AssignmentStatus.Assigned


def test_concurrent_claims_exactly_one_wins(tmp_path):
    # two sessions on one file database stand in for two request workers
    engine = create_engine(f"sqlite:///{tmp_path / 'race.db'}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    Session = sessionmaker(bind=engine, autoflush=False, autocommit=False)

    setup = Session()
    first = User(email="p1@example.com", name="First", hashed_password="x", role=UserRole.Presales)
    second = User(email="p2@example.com", name="Second", hashed_password="x", role=UserRole.Presales)
    setup.add_all([first, second])
    setup.flush()
    inquiry = Inquiry(
        name="Race",
        phone="+919000000000",
        city="Pune",
        education="BE",
        course="DevOps",
        preferred_location="Pune",
        medium=Medium.Email,
        created_by_id=first.id,
    )
    setup.add(inquiry)
    setup.commit()
    inquiry_id, first_id, second_id = inquiry.id, first.id, second.id
    setup.close()

    s1, s2 = Session(), Session()
    try:
        actor1 = s1.get(User, first_id)
        actor2 = s2.get(User, second_id)
        # both workers have read the unassigned state
        assert s1.get(Inquiry, inquiry_id).assignment_status == AssignmentStatus.NotAssigned
        assert s2.get(Inquiry, inquiry_id).assignment_status == AssignmentStatus.NotAssigned

        won = assignment.claim(s1, inquiry_id, actor1)
        assert won.assigned_to_id == first_id

        with pytest.raises(InvalidState) as excinfo:
            assignment.claim(s2, inquiry_id, actor2)
        assert excinfo.value.details["assignment_status"] == AssignmentStatus.Assigned.value

        fresh = s2.get(Inquiry, inquiry_id)
        assert fresh.assignment_status == AssignmentStatus.Assigned
        assert fresh.assigned_to_id == first_id
        claims = s2.execute(
            select(Activity).where(Activity.inquiry_id == inquiry_id, Activity.action == ActivityAction.Claimed)
        ).scalars().all()
        assert len(claims) == 1
    finally:
        s1.close()
        s2.close()
        engine.dispose()
