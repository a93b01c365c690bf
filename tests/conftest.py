import os

# must be set before the package reads its configuration
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret")

import pytest
from fastapi.testclient import TestClient
from passlib.context import CryptContext
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import lead_crm_svc.utils.security as security
from lead_crm_svc.app import app
from lead_crm_svc.models import Base, User, UserRole, get_db


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def use_test_pwd_context(monkeypatch):
    # Ensure deterministic hashing and JWT settings in tests
    ctx = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
    monkeypatch.setattr(security, "pwd_context", ctx)
    monkeypatch.setattr(security.config, "SECRET_KEY", "test-secret")
    monkeypatch.setattr(security.config, "ALGORITHM", "HS256")
    yield


@pytest.fixture
def make_user(db_session):
    counter = {"n": 0}

    def _make(role: UserRole = UserRole.Presales, email: str = None, password: str = "pw1234", is_active: bool = True, name: str = None):
        counter["n"] += 1
        user = User(
            email=email or f"{role.value}{counter['n']}@example.com",
            name=name or f"{role.value.title()} {counter['n']}",
            role=role,
            is_active=is_active,
            hashed_password=security.get_password_hash(password),
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make


INQUIRY_PAYLOAD = {
    "name": "Asha Patil",
    "email": "asha@example.com",
    "phone": "+919876543210",
    "city": "Pune",
    "education": "B.Tech Computer Science",
    "course": "DevOps",
    "preferredLocation": "Pune",
    "medium": "WhatsApp",
    "message": "Interested in weekend batches",
}


@pytest.fixture
def make_inquiry(db_session):
    from lead_crm_svc.schemas.inquiry import InquiryCreate
    from lead_crm_svc.services.inquiry_service import create_inquiry

    def _make(creator: User, **overrides):
        payload = InquiryCreate(**{**INQUIRY_PAYLOAD, **overrides})
        return create_inquiry(db_session, creator, payload)

    return _make


def auth_header(user: User) -> dict:
    token = security.create_access_token(user.id, user.email, user.role.value)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def headers():
    return auth_header


@pytest.fixture
def inquiry_payload():
    return dict(INQUIRY_PAYLOAD)


@pytest.fixture
def post_inquiry(client):
    def _post(user: User, **overrides) -> dict:
        resp = client.post("/api/inquiries/", json={**INQUIRY_PAYLOAD, **overrides}, headers=auth_header(user))
        assert resp.status_code == 201, resp.text
        return resp.json()["data"]

    return _post
