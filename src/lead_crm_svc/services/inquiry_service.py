from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple
import logging

from sqlalchemy import and_, func, or_, select, true
from sqlalchemy.orm import Session, selectinload

from lead_crm_svc.errors import NotFound, ValidationFailed
from lead_crm_svc.models import (
    ActivityAction,
    AssignmentStatus,
    Department,
    FollowUp,
    Inquiry,
    InquiryStatus,
    Medium,
    User,
    UserRole,
)
from lead_crm_svc.schemas.common import UserSummary, to_naive_utc
from lead_crm_svc.schemas.inquiry import (
    ActivityResponse,
    DashboardStats,
    FollowUpResponse,
    InquiryCreate,
    InquiryResponse,
    InquirySummary,
    InquiryUpdate,
    PhoneCheck,
    UnattendedCounts,
    validate_phone,
)
from lead_crm_svc.services import activity_service
from lead_crm_svc.services.options_service import ensure_settings
from lead_crm_svc.services.policy import Operation, authorize, department_scope
from lead_crm_svc.services.unit_of_work import transaction
from lead_crm_svc.services.user_service import lookup_users

logger = logging.getLogger(__name__)

ADMITTED_LEAD_STAGE = "Hot"
ADMITTED_SUB_STAGE = "Confirmed Admission"
RECENT_LIMIT = 5

SORT_FIELDS = {
    "createdAt": Inquiry.created_at,
    "updatedAt": Inquiry.updated_at,
    "name": Inquiry.name,
    "status": Inquiry.status,
    "city": Inquiry.city,
    "course": Inquiry.course,
    "preferredLocation": Inquiry.preferred_location,
}


@dataclass
class InquiryFilters:
    search: Optional[str] = None
    status: Optional[InquiryStatus] = None
    course: Optional[str] = None
    location: Optional[str] = None
    medium: Optional[Medium] = None
    department: Optional[Department] = None
    assignment_status: Optional[AssignmentStatus] = None
    assigned_to: Optional[int] = None
    created_by: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    sort: str = "createdAt"
    order: str = "desc"
    page: Optional[int] = None
    limit: Optional[int] = None


def get_inquiry(db: Session, inquiry_id: int) -> Inquiry:
    inquiry = db.get(Inquiry, inquiry_id)
    if inquiry is None:
        raise NotFound("Inquiry", inquiry_id)
    return inquiry


def get_visible_inquiry(db: Session, actor: User, inquiry_id: int) -> Inquiry:
    inquiry = get_inquiry(db, inquiry_id)
    authorize(actor, Operation.ViewInquiry, inquiry)
    return inquiry


# --- serialization -------------------------------------------------------


def _user_ids(inquiries: Iterable[Inquiry]) -> List[Optional[int]]:
    ids: List[Optional[int]] = []
    for inquiry in inquiries:
        ids.extend([inquiry.assigned_to_id, inquiry.forwarded_by_id, inquiry.created_by_id])
        ids.extend(f.created_by_id for f in inquiry.follow_ups)
    return ids


def serialize_follow_up(follow_up: FollowUp, users: Dict[int, UserSummary]) -> FollowUpResponse:
    item = FollowUpResponse.model_validate(follow_up)
    item.created_by = users.get(follow_up.created_by_id)
    return item


def _to_response(inquiry: Inquiry, users: Dict[int, UserSummary]) -> InquiryResponse:
    item = InquiryResponse.model_validate(inquiry)
    item.assigned_to = users.get(inquiry.assigned_to_id) if inquiry.assigned_to_id else None
    item.forwarded_by = users.get(inquiry.forwarded_by_id) if inquiry.forwarded_by_id else None
    item.created_by = users.get(inquiry.created_by_id)
    item.follow_ups = [serialize_follow_up(f, users) for f in inquiry.follow_ups]
    return item


def serialize_inquiries(db: Session, inquiries: List[Inquiry]) -> List[InquiryResponse]:
    """Serialize with every referenced user resolved in a single lookup."""
    users = lookup_users(db, _user_ids(inquiries))
    return [_to_response(inquiry, users) for inquiry in inquiries]


def serialize_inquiry(db: Session, inquiry: Inquiry) -> InquiryResponse:
    return serialize_inquiries(db, [inquiry])[0]


def summarize_inquiry(inquiry: Inquiry, users: Dict[int, UserSummary]) -> InquirySummary:
    item = InquirySummary.model_validate(inquiry)
    item.assigned_to = users.get(inquiry.assigned_to_id) if inquiry.assigned_to_id else None
    item.created_by = users.get(inquiry.created_by_id)
    return item


# --- writes --------------------------------------------------------------


def _check_options(
    db: Session,
    course: Optional[str],
    location: Optional[str],
    status: Optional[InquiryStatus],
) -> None:
    settings = ensure_settings(db)
    errors = []
    if course is not None and course not in settings.courses:
        errors.append({"field": "course", "message": "Invalid course"})
    if location is not None and location not in settings.locations:
        errors.append({"field": "preferredLocation", "message": "Invalid location"})
    if status is not None and status.value not in settings.statuses:
        errors.append({"field": "status", "message": "Invalid status"})
    if errors:
        raise ValidationFailed(errors=errors)


def create_inquiry(db: Session, actor: User, payload: InquiryCreate) -> Inquiry:
    """Persist a new inquiry in the presales pool and log its creation."""
    _check_options(db, payload.course, payload.preferred_location, payload.status)

    inquiry = Inquiry(
        name=payload.name,
        email=payload.email,
        phone=payload.phone,
        city=payload.city,
        education=payload.education,
        course=payload.course,
        preferred_location=payload.preferred_location,
        medium=payload.medium,
        message=payload.message,
        status=payload.status or InquiryStatus.Warm,
        assignment_status=AssignmentStatus.NotAssigned,
        department=Department.Presales,
        created_by_id=actor.id,
    )
    with transaction(db, "create_inquiry"):
        db.add(inquiry)
        db.flush()
        activity_service.record_activity(db, inquiry.id, ActivityAction.Created, actor.id)

    db.refresh(inquiry)
    logger.info("%s inquiry=%s actor=%s target=%s", ActivityAction.Created.value, inquiry.id, actor.id, None)
    return inquiry


def update_inquiry(db: Session, actor: User, inquiry_id: int, payload: InquiryUpdate) -> Inquiry:
    inquiry = get_inquiry(db, inquiry_id)
    authorize(actor, Operation.UpdateInquiry, inquiry)

    data = payload.model_dump(exclude_unset=True)
    # fields that cannot be emptied
    for key in ("name", "phone", "city", "education", "course", "preferred_location", "medium", "status"):
        if key in data and data[key] is None:
            data.pop(key)
    # only changed values are checked; options may have been edited since creation
    changed = {key: value for key, value in data.items() if getattr(inquiry, key) != value}
    _check_options(db, changed.get("course"), changed.get("preferred_location"), changed.get("status"))

    with transaction(db, "update_inquiry"):
        for key, value in data.items():
            setattr(inquiry, key, value)

    db.refresh(inquiry)
    logger.info("Updated inquiry=%s actor=%s fields=%s", inquiry.id, actor.id, sorted(data))
    return inquiry


def delete_inquiry(db: Session, actor: User, inquiry_id: int) -> None:
    inquiry = get_inquiry(db, inquiry_id)
    authorize(actor, Operation.DeleteInquiry, inquiry)
    with transaction(db, "delete_inquiry"):
        db.delete(inquiry)
    logger.info("Deleted inquiry=%s actor=%s", inquiry_id, actor.id)


# --- queries -------------------------------------------------------------


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _contains(column, term: str):
    return column.ilike(f"%{_escape_like(term)}%", escape="\\")


def _search_clause(search: str):
    term = search.strip()
    clauses = [
        _contains(Inquiry.name, term),
        _contains(Inquiry.email, term),
        _contains(Inquiry.city, term),
        _contains(Inquiry.phone, term),
    ]
    # phone numbers match with or without the leading "+"
    if term.startswith("+"):
        if term[1:]:
            clauses.append(_contains(Inquiry.phone, term[1:]))
    else:
        clauses.append(_contains(Inquiry.phone, "+" + term))
    return or_(*clauses)


def _role_scope(actor: User):
    department = department_scope(actor)
    if department is None:
        return true()
    if department == Department.Presales:
        # forwarded leads show up in the forwarder's attended view instead
        return and_(
            Inquiry.department == Department.Presales,
            or_(Inquiry.forwarded_by_id.is_(None), Inquiry.forwarded_by_id != actor.id),
        )
    return Inquiry.department == Department.Sales


def _attended_scope(actor: User, user_id: int):
    if actor.role == UserRole.Presales:
        return or_(
            and_(Inquiry.assigned_to_id == user_id, Inquiry.department == Department.Presales),
            and_(
                Inquiry.forwarded_by_id == user_id,
                Inquiry.assignment_status == AssignmentStatus.ForwardedToSales,
                Inquiry.department == Department.Sales,
            ),
        )
    if actor.role == UserRole.Sales:
        return and_(Inquiry.assigned_to_id == user_id, Inquiry.department == Department.Sales)
    return Inquiry.assigned_to_id == user_id


def build_list_criteria(actor: User, filters: InquiryFilters) -> list:
    if filters.assigned_to is not None:
        criteria = [_attended_scope(actor, filters.assigned_to)]
    elif filters.created_by == "me":
        criteria = [Inquiry.created_by_id == actor.id]
    else:
        criteria = [_role_scope(actor)]

    if filters.search and filters.search.strip():
        criteria.append(_search_clause(filters.search))
    if filters.status is not None:
        criteria.append(Inquiry.status == filters.status)
    if filters.course:
        criteria.append(Inquiry.course == filters.course)
    if filters.location:
        criteria.append(Inquiry.preferred_location == filters.location)
    if filters.medium is not None:
        criteria.append(Inquiry.medium == filters.medium)
    if filters.department is not None:
        criteria.append(Inquiry.department == filters.department)
    if filters.assignment_status is not None:
        criteria.append(Inquiry.assignment_status == filters.assignment_status)
    if filters.date_from is not None:
        criteria.append(Inquiry.created_at >= to_naive_utc(filters.date_from))
    if filters.date_to is not None:
        criteria.append(Inquiry.created_at <= to_naive_utc(filters.date_to))
    return criteria


def list_inquiries(db: Session, actor: User, filters: InquiryFilters) -> Tuple[List[Inquiry], int]:
    """Return the page of inquiries visible to ``actor`` and the total match count.

    The whole result set is returned unless both ``page`` and ``limit`` are set.
    """
    criteria = build_list_criteria(actor, filters)
    total = db.execute(select(func.count(Inquiry.id)).where(*criteria)).scalar_one()

    column = SORT_FIELDS.get(filters.sort, Inquiry.created_at)
    if filters.order == "asc":
        ordering = [column.asc(), Inquiry.id.asc()]
    else:
        ordering = [column.desc(), Inquiry.id.desc()]

    stmt = select(Inquiry).options(selectinload(Inquiry.follow_ups)).where(*criteria).order_by(*ordering)
    if filters.page is not None and filters.limit is not None:
        stmt = stmt.offset((filters.page - 1) * filters.limit).limit(filters.limit)
    return list(db.execute(stmt).scalars().all()), total


def check_phone(db: Session, actor: User, phone: Optional[str]) -> PhoneCheck:
    try:
        phone = validate_phone(phone or "")
    except ValueError as e:
        raise ValidationFailed(str(e), field="phone") from e

    stmt = select(Inquiry).where(Inquiry.phone == phone)
    if actor.role == UserRole.Sales:
        stmt = stmt.where(Inquiry.department == Department.Sales)
    existing = db.execute(stmt.order_by(Inquiry.id.asc()).limit(1)).scalar_one_or_none()
    if existing is None:
        return PhoneCheck(exists=False)
    return PhoneCheck(
        exists=True,
        inquiry_id=existing.id,
        is_assigned=existing.assigned_to_id is not None,
        assignment_status=existing.assignment_status,
        department=existing.department,
    )


def admitted_inquiry_ids():
    """Inquiries whose latest follow-up records a confirmed admission."""
    latest = (
        select(func.max(FollowUp.id).label("id"))
        .group_by(FollowUp.inquiry_id)
        .subquery()
    )
    return (
        select(FollowUp.inquiry_id)
        .join(latest, FollowUp.id == latest.c.id)
        .where(FollowUp.lead_stage == ADMITTED_LEAD_STAGE, FollowUp.sub_stage == ADMITTED_SUB_STAGE)
    )


def _dashboard_scope(actor: User):
    if actor.role == UserRole.Admin:
        return true()
    if actor.role == UserRole.Presales:
        return Inquiry.department == Department.Presales
    if actor.role == UserRole.Sales:
        return or_(
            Inquiry.assigned_to_id == actor.id,
            Inquiry.created_by_id == actor.id,
            Inquiry.department == Department.Sales,
        )
    return Inquiry.created_by_id == actor.id


def _count(db: Session, *criteria) -> int:
    return db.execute(select(func.count(Inquiry.id)).where(*criteria)).scalar_one()


def dashboard(db: Session, actor: User) -> DashboardStats:
    not_admitted = Inquiry.id.not_in(admitted_inquiry_ids())
    scope = _dashboard_scope(actor)

    by_status = dict(
        db.execute(
            select(Inquiry.status, func.count(Inquiry.id)).where(scope, not_admitted).group_by(Inquiry.status)
        ).all()
    )
    if actor.role == UserRole.User:
        attended = Inquiry.assigned_to_id == actor.id
    else:
        attended = or_(Inquiry.assigned_to_id == actor.id, Inquiry.forwarded_by_id == actor.id)

    recent = list(
        db.execute(
            select(Inquiry)
            .options(selectinload(Inquiry.follow_ups))
            .where(scope, not_admitted)
            .order_by(Inquiry.created_at.desc(), Inquiry.id.desc())
            .limit(RECENT_LIMIT)
        )
        .scalars()
        .all()
    )

    return DashboardStats(
        total_inquiries=sum(by_status.values()),
        hot_inquiries=by_status.get(InquiryStatus.Hot, 0),
        warm_inquiries=by_status.get(InquiryStatus.Warm, 0),
        cold_inquiries=by_status.get(InquiryStatus.Cold, 0),
        my_inquiries=_count(db, Inquiry.created_by_id == actor.id, not_admitted),
        assigned_inquiries=_count(db, attended, not_admitted),
        presales_inquiries=_count(db, Inquiry.department == Department.Presales, not_admitted),
        sales_inquiries=_count(db, Inquiry.department == Department.Sales, not_admitted),
        admitted_students=_count(db, Inquiry.id.in_(admitted_inquiry_ids())),
        recent_inquiries=serialize_inquiries(db, recent),
    )


def unattended_counts(db: Session, actor: User) -> UnattendedCounts:
    if actor.role == UserRole.Admin:
        scope = true()
    elif actor.department is not None:
        scope = Inquiry.department == actor.department
    else:
        return UnattendedCounts(total=0, by_location={})

    unattended = and_(scope, Inquiry.assigned_to_id.is_(None))
    total = _count(db, unattended)
    found = dict(
        db.execute(
            select(Inquiry.preferred_location, func.count(Inquiry.id))
            .where(unattended)
            .group_by(Inquiry.preferred_location)
        ).all()
    )
    locations = ensure_settings(db).locations
    return UnattendedCounts(total=total, by_location={loc: found.get(loc, 0) for loc in locations})


def list_inquiry_activities(db: Session, actor: User, inquiry_id: int) -> List[ActivityResponse]:
    get_visible_inquiry(db, actor, inquiry_id)
    activities = activity_service.list_activities(db, inquiry_id)
    return activity_service.serialize_activities(db, activities)
