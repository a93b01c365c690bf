from typing import Dict, Iterable, List, Optional, Tuple
import logging

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from lead_crm_svc.errors import Conflict, Forbidden, NotFound, Unauthenticated, ValidationFailed
from lead_crm_svc.models import FollowUp, Inquiry, User, UserRole
from lead_crm_svc.schemas.auth import ProfileUpdate, RegisterRequest
from lead_crm_svc.schemas.common import Pagination, UserSummary
from lead_crm_svc.schemas.user import UserCreate, UserUpdate
from lead_crm_svc.services.unit_of_work import transaction
import lead_crm_svc.utils.security as security

logger = logging.getLogger(__name__)

USER_SORT_FIELDS = {"createdAt": User.created_at, "created_at": User.created_at, "name": User.name, "email": User.email, "role": User.role}


def lookup_users(db: Session, ids: Iterable[Optional[int]]) -> Dict[int, UserSummary]:
    """Resolve user ids to summaries in one query. Unknown ids are omitted."""
    wanted = {int(i) for i in ids if i is not None}
    if not wanted:
        return {}
    rows = db.execute(select(User.id, User.name, User.email).where(User.id.in_(wanted))).all()
    return {row.id: UserSummary(id=row.id, name=row.name, email=row.email) for row in rows}


def get_user(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFound("User", user_id)
    return user


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.execute(select(User).where(User.email == email.lower())).scalar_one_or_none()


def first_admin(db: Session) -> Optional[User]:
    stmt = select(User).where(User.role == UserRole.Admin).order_by(User.created_at.asc(), User.id.asc()).limit(1)
    return db.execute(stmt).scalar_one_or_none()


def _ensure_email_free(db: Session, email: str, exclude_id: Optional[int] = None) -> None:
    existing = get_user_by_email(db, email)
    if existing is not None and existing.id != exclude_id:
        raise Conflict("User already exists with this email", field="email")


def _clean_phone(phone: Optional[str]) -> Optional[str]:
    if phone is None:
        return None
    phone = phone.strip()
    return phone or None


def _persist_new_user(db: Session, user: User, operation: str) -> User:
    try:
        with transaction(db, operation):
            db.add(user)
    except IntegrityError as e:
        # lost a race on the unique email index
        logger.error(e, exc_info=True)
        raise Conflict("User already exists with this email", field="email") from e
    db.refresh(user)
    return user


def register_user(db: Session, payload: RegisterRequest) -> User:
    """Self-registration. The admin role is only available until an admin exists."""
    if payload.role == UserRole.Admin and first_admin(db) is not None:
        raise Forbidden(
            "Admin role cannot be created through registration. An admin account already exists."
        )
    _ensure_email_free(db, payload.email)

    user = User(
        name=payload.name.strip(),
        email=payload.email,
        hashed_password=security.get_password_hash(payload.password),
        phone=_clean_phone(payload.phone),
        role=payload.role,
        is_active=True,
    )
    user = _persist_new_user(db, user, "register")
    logger.info("Registered user id=%s role=%s", user.id, user.role.value)
    return user


def authenticate(db: Session, email: str, password: str) -> User:
    user = get_user_by_email(db, email)
    if user is None:
        raise Unauthenticated("Invalid credentials")
    if not user.is_active:
        raise Unauthenticated("Account is deactivated")
    try:
        verified = security.verify_password(password, user.hashed_password)
    except ValueError as e:
        logger.error(e, exc_info=True)
        verified = False
    if not verified:
        raise Unauthenticated("Invalid credentials")
    return user


def update_profile(db: Session, user: User, payload: ProfileUpdate) -> User:
    data = payload.model_dump(exclude_unset=True)
    with transaction(db, "update_profile"):
        if data.get("name"):
            user.name = data["name"].strip()
        if "phone" in data:
            user.phone = _clean_phone(data["phone"])
    db.refresh(user)
    return user


def list_users(
    db: Session,
    actor: User,
    search: Optional[str] = None,
    role: Optional[UserRole] = None,
    is_active: Optional[bool] = None,
    page: int = 1,
    limit: int = 10,
    sort: str = "createdAt",
    order: str = "desc",
) -> Tuple[List[User], Pagination]:
    stmt = select(User)
    if search:
        pattern = f"%{search.strip()}%"
        stmt = stmt.where(or_(User.name.ilike(pattern), User.email.ilike(pattern)))
    if role is not None:
        stmt = stmt.where(User.role == role)
    if is_active is not None:
        stmt = stmt.where(User.is_active == is_active)

    # presales and sales only see active colleagues (reassignment targets)
    if actor.role in (UserRole.Presales, UserRole.Sales):
        stmt = stmt.where(User.role == actor.role, User.is_active.is_(True))

    total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()

    column = USER_SORT_FIELDS.get(sort, User.created_at)
    stmt = stmt.order_by(column.desc() if order == "desc" else column.asc(), User.id.desc())
    stmt = stmt.offset((page - 1) * limit).limit(limit)
    users = list(db.execute(stmt).scalars().all())
    return users, Pagination.build(page, limit, total)


def create_user(db: Session, payload: UserCreate) -> User:
    _ensure_email_free(db, payload.email)
    user = User(
        name=payload.name.strip(),
        email=payload.email,
        hashed_password=security.get_password_hash(payload.password),
        phone=_clean_phone(payload.phone),
        role=payload.role,
        is_active=payload.is_active,
    )
    user = _persist_new_user(db, user, "create_user")
    logger.info("Created user id=%s role=%s", user.id, user.role.value)
    return user


def update_user(db: Session, actor: User, user_id: int, payload: UserUpdate) -> User:
    user = get_user(db, user_id)
    data = payload.model_dump(exclude_unset=True)

    new_role = data.get("role")
    if new_role is not None and user.role == UserRole.Admin and new_role != UserRole.Admin:
        founder = first_admin(db)
        if founder is not None and founder.id == user.id:
            raise Forbidden("The first admin account must remain an admin.")

    if data.get("email") and data["email"] != user.email:
        _ensure_email_free(db, data["email"], exclude_id=user.id)

    try:
        with transaction(db, "update_user"):
            if data.get("name"):
                user.name = data["name"].strip()
            if data.get("email"):
                user.email = data["email"]
            if "phone" in data:
                user.phone = _clean_phone(data["phone"])
            if new_role is not None:
                user.role = new_role
            if data.get("is_active") is not None:
                user.is_active = data["is_active"]
            if data.get("password"):
                user.hashed_password = security.get_password_hash(data["password"])
    except IntegrityError as e:
        logger.error(e, exc_info=True)
        raise Conflict("Email already exists for another user", field="email") from e

    db.refresh(user)
    logger.info("Updated user id=%s by actor=%s", user.id, actor.id)
    return user


def _is_referenced(db: Session, user_id: int) -> bool:
    """True while any inquiry or follow-up still points at the user."""
    inquiry_ref = select(Inquiry.id).where(
        or_(
            Inquiry.assigned_to_id == user_id,
            Inquiry.created_by_id == user_id,
            Inquiry.forwarded_by_id == user_id,
        )
    )
    follow_up_ref = select(FollowUp.id).where(FollowUp.created_by_id == user_id)
    return bool(db.execute(select(or_(inquiry_ref.exists(), follow_up_ref.exists()))).scalar())


def delete_user(db: Session, actor: User, user_id: int) -> None:
    if user_id == actor.id:
        raise ValidationFailed("Cannot delete your own account", field="id")
    user = get_user(db, user_id)
    if user.role == UserRole.Admin:
        raise Forbidden("Cannot delete an admin account")
    if _is_referenced(db, user_id):
        raise Conflict("User is referenced by inquiries; deactivate the account instead", field="id")

    with transaction(db, "delete_user"):
        db.delete(user)
    logger.info("Deleted user id=%s by actor=%s", user_id, actor.id)


def toggle_user_status(db: Session, actor: User, user_id: int) -> User:
    if user_id == actor.id:
        raise ValidationFailed("Cannot deactivate your own account", field="id")
    user = get_user(db, user_id)
    if user.role == UserRole.Admin and user.is_active:
        raise Forbidden("Admin accounts must remain active")

    with transaction(db, "toggle_user_status"):
        user.is_active = not user.is_active
    db.refresh(user)
    logger.info("User id=%s is_active=%s by actor=%s", user.id, user.is_active, actor.id)
    return user
