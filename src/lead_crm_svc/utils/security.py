from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from passlib.context import CryptContext
from jose import JWTError, jwt
from jose.exceptions import ExpiredSignatureError

from lead_crm_svc import config

_logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain password against a stored hash.

    Raises ValueError for invalid inputs. Returns False on mismatch or when the
    stored hash cannot be read (logged).
    """
    if not isinstance(plain_password, str) or not plain_password:
        raise ValueError("plain_password must be a non-empty string")
    if not isinstance(hashed_password, str) or not hashed_password:
        raise ValueError("hashed_password must be a non-empty string")

    try:
        return pwd_context.verify(plain_password, hashed_password)
    except Exception as e:
        _logger.error(e, exc_info=True)
        return False


def get_password_hash(password: str) -> str:
    if not isinstance(password, str) or not password:
        raise ValueError("password must be a non-empty string")

    try:
        return pwd_context.hash(password)
    except Exception as e:
        _logger.error(e, exc_info=True)
        raise


def create_access_token(user_id: int, email: str, role: str, expires_delta: Optional[timedelta] = None) -> str:
    """Issue a signed bearer token identifying the user by id.

    The role travels in the payload for clients; authorization always re-reads
    the stored user.
    """
    if user_id is None:
        raise ValueError("user_id is required")

    to_encode: Dict[str, object] = {"sub": str(user_id), "email": email, "role": role}
    try:
        now = datetime.now(timezone.utc)
        delta = expires_delta if expires_delta is not None else timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES)
        to_encode.update({"exp": now + delta, "iat": now})
        return jwt.encode(to_encode, config.SECRET_KEY, algorithm=config.ALGORITHM)
    except Exception as e:
        _logger.error(e, exc_info=True)
        raise


def decode_access_token(token: str) -> Optional[Dict[str, object]]:
    """Return the token payload, or None when the token is invalid or expired."""
    if not isinstance(token, str) or not token:
        return None

    try:
        payload = jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
        return dict(payload)
    except ExpiredSignatureError as e:
        _logger.info("Rejected expired token: %s", e)
        return None
    except JWTError as e:
        _logger.warning("Rejected invalid token: %s", e)
        return None


def user_id_from_token(token: str) -> Optional[int]:
    payload = decode_access_token(token)
    if payload is None:
        return None
    try:
        return int(payload.get("sub"))
    except (TypeError, ValueError):
        return None
