import pytest

from lead_crm_svc import cli
from lead_crm_svc.models import UserRole
from lead_crm_svc.utils.security import verify_password


def test_create_admin(db_session):
    admin = cli.create_admin(db_session, " Root ", "Root@Example.com", "secret1", phone=" ")
    assert admin.role == UserRole.Admin
    assert admin.email == "root@example.com"
    assert admin.name == "Root"
    assert admin.phone is None
    assert verify_password("secret1", admin.hashed_password)


def test_create_admin_refuses_second_admin(db_session, make_user):
    make_user(role=UserRole.Admin)
    with pytest.raises(ValueError):
        cli.create_admin(db_session, "Other", "other@example.com", "secret1")


def test_create_admin_refuses_taken_email_or_short_password(db_session, make_user):
    make_user(email="taken@example.com")
    with pytest.raises(ValueError):
        cli.create_admin(db_session, "Other", "taken@example.com", "secret1")
    with pytest.raises(ValueError):
        cli.create_admin(db_session, "Other", "new@example.com", "123")


def test_main_exit_codes(monkeypatch, session_factory, capsys):
    monkeypatch.setattr(cli, "SessionLocal", session_factory)
    monkeypatch.setattr(cli, "init_db", lambda: None)

    assert cli.main(["--email", "boss@example.com", "--password", "secret1"]) == 0
    assert "boss@example.com" in capsys.readouterr().out

    assert cli.main(["--email", "boss2@example.com", "--password", "secret1"]) == 1
    assert "Admin user already exists" in capsys.readouterr().err
