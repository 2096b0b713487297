"""Security utilities: password hashing, JWT, token and code hashing."""

import hashlib
import hmac
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import uuid4

import jwt
from argon2 import PasswordHasher
from argon2.exceptions import VerifyMismatchError

from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)

# Password hasher instance
_password_hasher = PasswordHasher()

# Used to equalize timing when an account has no password
DUMMY_PASSWORD_HASH = _password_hasher.hash("builddesk-timing-equalizer")


def hash_password(plain_password: str) -> str:
    """Hash a plain password using Argon2."""
    return _password_hasher.hash(plain_password)


def verify_password(plain_password: str, password_hash: str) -> bool:
    """Verify a plain password against a hash."""
    try:
        _password_hasher.verify(password_hash, plain_password)
        return True
    except VerifyMismatchError:
        return False
    except Exception as e:
        logger.warning(f"Password verification error: {e}")
        return False


def _encode(payload: dict[str, Any], ttl: timedelta) -> str:
    if not settings.JWT_SECRET:
        raise ValueError("JWT_SECRET must be set")

    now = datetime.now(timezone.utc)
    payload = {
        **payload,
        "iat": now,
        "exp": now + ttl,
        "jti": str(uuid4()),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALG)


def _decode(token: str, expected_type: str) -> dict[str, Any]:
    if not settings.JWT_SECRET:
        raise ValueError("JWT_SECRET must be set")

    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG])
    except jwt.ExpiredSignatureError:
        raise jwt.InvalidTokenError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise jwt.InvalidTokenError(f"Invalid token: {e}") from e
    if payload.get("type") != expected_type:
        raise jwt.InvalidTokenError(f"Token is not an {expected_type} token")
    return payload


def create_access_token(user_id: str, role: str, session_id: str, site_id: str | None = None) -> str:
    """Create a JWT access token bound to a user session."""
    payload = {
        "sub": str(user_id),
        "role": role,
        "sid": str(session_id),
        "type": "access",
    }
    if site_id:
        payload["site_id"] = str(site_id)
    return _encode(payload, timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))


def verify_access_token(token: str) -> dict[str, Any]:
    """Verify and decode a JWT access token."""
    return _decode(token, "access")


def create_mfa_token(user_id: str) -> str:
    """Create a short-lived MFA pending token, issued after the password step."""
    return _encode(
        {"sub": str(user_id), "type": "mfa_pending"},
        timedelta(minutes=settings.MFA_TOKEN_EXPIRE_MINUTES),
    )


def verify_mfa_token(token: str) -> dict[str, Any]:
    """Verify and decode an MFA pending token."""
    return _decode(token, "mfa_pending")


def create_refresh_token() -> str:
    """Create an opaque refresh token (random string)."""
    return secrets.token_urlsafe(32)


def hash_token(token: str) -> str:
    """Hash a token or one-time code using SHA256 with pepper."""
    if not settings.TOKEN_PEPPER:
        raise ValueError("TOKEN_PEPPER must be set")

    combined = f"{settings.TOKEN_PEPPER}:{token}"
    return hashlib.sha256(combined.encode()).hexdigest()


def hashes_match(candidate_hash: str, stored_hash: str) -> bool:
    """Constant-time comparison of two token hashes."""
    return hmac.compare_digest(candidate_hash, stored_hash)


def generate_numeric_code(length: int) -> str:
    """Generate a cryptographically random numeric code of fixed length."""
    return "".join(secrets.choice("0123456789") for _ in range(length))


def generate_link_token() -> str:
    """Generate an opaque single-use link token."""
    return secrets.token_urlsafe(32)
