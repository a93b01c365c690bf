import pytest
from datetime import timedelta, datetime, timezone

import lead_crm_svc.utils.security as security


def test_get_password_hash_and_verify_password_success():
    pw = "secret-password-123"
    hashed = security.get_password_hash(pw)
    assert hashed != pw
    assert security.verify_password(pw, hashed) is True
    assert security.verify_password("wrong-password", hashed) is False


def test_verify_password_invalid_hash_returns_false():
    # malformed hash should not raise, should return False
    assert security.verify_password("pw", "not-a-real-hash") is False


def test_get_password_hash_invalid_input():
    with pytest.raises(ValueError):
        security.get_password_hash("")


def test_verify_password_invalid_input():
    with pytest.raises(ValueError):
        security.verify_password("", "hash")
    with pytest.raises(ValueError):
        security.verify_password("pw", "")


def test_token_carries_user_id_email_and_role():
    token = security.create_access_token(42, "presales@example.com", "presales", expires_delta=timedelta(minutes=5))
    payload = security.decode_access_token(token)
    assert payload is not None
    assert payload["sub"] == "42"
    assert payload["email"] == "presales@example.com"
    assert payload["role"] == "presales"
    assert "exp" in payload
    assert security.user_id_from_token(token) == 42


def test_decode_access_token_expired_returns_none():
    token = security.create_access_token(1, "u@example.com", "user", expires_delta=timedelta(seconds=-1))
    assert security.decode_access_token(token) is None
    assert security.user_id_from_token(token) is None


def test_decode_access_token_invalid_returns_none():
    assert security.decode_access_token("this-is-not-a-token") is None
    assert security.decode_access_token("") is None


def test_token_signed_with_other_key_is_rejected(monkeypatch):
    token = security.create_access_token(1, "u@example.com", "user")
    monkeypatch.setattr(security.config, "SECRET_KEY", "another-secret")
    assert security.decode_access_token(token) is None


def test_create_access_token_uses_default_expiration(monkeypatch):
    monkeypatch.setattr(security.config, "ACCESS_TOKEN_EXPIRE_MINUTES", 60)

    token = security.create_access_token(7, "user@example.com", "sales")
    payload = security.decode_access_token(token)
    assert payload is not None
    exp = int(payload["exp"])
    now = int(datetime.now(timezone.utc).timestamp())
    # allow small timing drift
    assert (now + 60 * 60 - 5) <= exp <= (now + 60 * 60 + 5)


def test_create_access_token_requires_user_id():
    with pytest.raises(ValueError):
        security.create_access_token(None, "u@example.com", "user")
