"""Create the first admin account: ``lead-crm-create-admin --email ... --password ...``."""
import argparse
import logging
import sys
from typing import Optional, Sequence

from sqlalchemy.orm import Session

from lead_crm_svc.models import SessionLocal, User, UserRole, init_db
from lead_crm_svc.services.unit_of_work import transaction
from lead_crm_svc.services.user_service import first_admin, get_user_by_email
import lead_crm_svc.utils.security as security

logger = logging.getLogger(__name__)


def create_admin(db: Session, name: str, email: str, password: str, phone: Optional[str] = None) -> User:
    """Create an admin. Refuses when any admin, or a user with ``email``, exists."""
    existing = first_admin(db)
    if existing is not None:
        raise ValueError(f"Admin user already exists: {existing.email}")
    email = email.strip().lower()
    if get_user_by_email(db, email) is not None:
        raise ValueError(f"User with email {email} already exists")
    if len(password) < 6:
        raise ValueError("Password must be at least 6 characters")

    admin = User(
        name=name.strip(),
        email=email,
        hashed_password=security.get_password_hash(password),
        phone=(phone or "").strip() or None,
        role=UserRole.Admin,
        is_active=True,
    )
    with transaction(db, "create_admin"):
        db.add(admin)
    db.refresh(admin)
    return admin


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Create the first admin user")
    parser.add_argument("--name", default="Admin User")
    parser.add_argument("--email", required=True)
    parser.add_argument("--password", required=True)
    parser.add_argument("--phone", default=None)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO)
    args = _parser().parse_args(argv)

    init_db()
    db = SessionLocal()
    try:
        admin = create_admin(db, args.name, args.email, args.password, args.phone)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        db.close()

    print(f"Admin user created: id={admin.id} email={admin.email}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
