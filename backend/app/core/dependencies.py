"""FastAPI dependencies for authentication."""

from typing import Annotated
from uuid import UUID

import jwt
from fastapi import Depends, Header, status
from sqlalchemy.orm import Session

from app.common.clock import as_utc, utcnow
from app.core.app_exceptions import raise_app_error
from app.core.security import verify_access_token, verify_mfa_token
from app.db.session import get_db
from app.models.session import UserSession
from app.models.user import User


def _bearer_token(authorization: str | None) -> str:
    if not authorization:
        raise_app_error(
            status.HTTP_401_UNAUTHORIZED, "UNAUTHORIZED", "Authorization header missing"
        )
    try:
        scheme, token = authorization.split()
        if scheme.lower() != "bearer":
            raise ValueError("Invalid authorization scheme")
    except ValueError:
        raise_app_error(
            status.HTTP_401_UNAUTHORIZED,
            "UNAUTHORIZED",
            "Invalid authorization header format. Expected: Bearer <token>",
        )
    return token


def get_current_session(
    authorization: Annotated[str | None, Header()] = None,
    db: Session = Depends(get_db),
) -> UserSession:
    """Resolve the caller's session from the access token's ``sid`` claim.

    Revoking a session invalidates its access tokens immediately.
    """
    token = _bearer_token(authorization)
    try:
        payload = verify_access_token(token)
        user_id = UUID(payload["sub"])
        session_id = UUID(payload["sid"])
    except (jwt.InvalidTokenError, KeyError, ValueError):
        raise_app_error(status.HTTP_401_UNAUTHORIZED, "UNAUTHORIZED", "Invalid or expired token")

    session = db.get(UserSession, session_id)
    if (
        session is None
        or session.user_id != user_id
        or not session.is_active
        or as_utc(session.expires_at) <= utcnow()
    ):
        raise_app_error(
            status.HTTP_401_UNAUTHORIZED, "SESSION_REVOKED", "Session is no longer active"
        )
    return session


def get_current_user(session: UserSession = Depends(get_current_session)) -> User:
    """Dependency to get the current authenticated user."""
    return session.user


def get_mfa_pending_user_id(authorization: Annotated[str | None, Header()] = None) -> UUID:
    """User id from the MFA pending token issued by the password step."""
    token = _bearer_token(authorization)
    try:
        payload = verify_mfa_token(token)
        return UUID(payload["sub"])
    except (jwt.InvalidTokenError, KeyError, ValueError):
        raise_app_error(
            status.HTTP_401_UNAUTHORIZED, "MFA_TOKEN_INVALID", "MFA session expired. Please sign in again."
        )


CurrentSession = Annotated[UserSession, Depends(get_current_session)]
CurrentUser = Annotated[User, Depends(get_current_user)]
