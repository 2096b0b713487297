"""Login sessions: creation, refresh-token rotation and soft revocation."""

from dataclasses import dataclass
from datetime import timedelta
from uuid import UUID

from fastapi import Request
from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from app.common.clock import utcnow
from app.core.config import settings
from app.core.device_identity import DeviceIdentityProvider, classify_user_agent
from app.core.logging import get_logger
from app.core.security import create_access_token, create_refresh_token, hash_token
from app.core.security_logging import get_client_ip, get_user_agent
from app.models.session import AuthMethod, UserSession
from app.models.user import User

logger = get_logger(__name__)


@dataclass(frozen=True)
class DeviceContext:
    """Where a login comes from."""

    device_id: str | None
    device_type: str | None = None
    browser: str | None = None
    os: str | None = None
    user_agent: str | None = None
    ip_address: str | None = None
    country: str | None = None
    city: str | None = None

    @classmethod
    def from_request(
        cls, request: Request, identity: DeviceIdentityProvider, device_type: str | None = None
    ) -> "DeviceContext":
        user_agent = get_user_agent(request)
        ua = classify_user_agent(user_agent)
        return cls(
            device_id=identity.get_or_create_device_id(),
            device_type=device_type or ua.device_type,
            browser=ua.browser,
            os=ua.os,
            user_agent=user_agent,
            ip_address=get_client_ip(request),
            # Set by the edge proxy when geo lookup is enabled
            country=request.headers.get("CF-IPCountry") or request.headers.get("X-Geo-Country"),
            city=request.headers.get("X-Geo-City"),
        )


class SessionRegistry:
    """
    One ``UserSession`` row per login.

    Sessions are never deleted; ``is_active=false`` revokes them and keeps the
    history queryable. The refresh token is stored only as a hash.
    """

    def __init__(self, db: Session):
        self.db = db

    def create_session(
        self,
        user: User,
        device: DeviceContext,
        auth_method: AuthMethod = AuthMethod.PASSWORD,
        mfa_verified: bool = False,
    ) -> tuple[UserSession, str]:
        """Create a session and return it with its plaintext refresh token."""
        now = utcnow()
        refresh_token = create_refresh_token()
        session = UserSession(
            user_id=user.id,
            session_token_hash=hash_token(refresh_token),
            device_id=device.device_id,
            device_type=device.device_type,
            browser=device.browser,
            os=device.os,
            user_agent=device.user_agent,
            ip_address=device.ip_address,
            country=device.country,
            city=device.city,
            auth_method=auth_method.value,
            is_active=True,
            mfa_verified=mfa_verified,
            last_activity_at=now,
            expires_at=now + timedelta(days=settings.SESSION_EXPIRE_DAYS),
        )
        user.last_sign_in_at = now
        self.db.add(session)
        self.db.commit()

        logger.info(
            "Session created",
            extra={
                "user_id": str(user.id),
                "session_id": str(session.id),
                "auth_method": auth_method.value,
                "mfa_verified": mfa_verified,
            },
        )
        return session, refresh_token

    def access_token_for(self, session: UserSession) -> str:
        """Access token bound to the session (``sid`` claim)."""
        profile = session.user.profile
        role = profile.role if profile else "member"
        site_id = str(profile.tenant_id) if profile else None
        return create_access_token(str(session.user_id), role, str(session.id), site_id)

    def touch(self, session: UserSession) -> None:
        session.last_activity_at = utcnow()
        self.db.commit()

    def rotate(self, refresh_token: str) -> tuple[UserSession, str] | None:
        """
        Swap a session's refresh token for a new one.

        The swap is a conditional UPDATE on the old hash, so a refresh token
        can be redeemed once.

        Returns:
            The session and the new refresh token, or None if the token is
            unknown, revoked or expired
        """
        now = utcnow()
        new_token = create_refresh_token()
        stmt = (
            update(UserSession)
            .where(
                UserSession.session_token_hash == hash_token(refresh_token),
                UserSession.is_active.is_(True),
                UserSession.expires_at > now,
            )
            .values(session_token_hash=hash_token(new_token), last_activity_at=now)
            .returning(UserSession.id)
            .execution_options(synchronize_session="fetch")
        )
        session_id = self.db.execute(stmt).scalar_one_or_none()
        self.db.commit()
        if session_id is None:
            return None
        return self.db.get(UserSession, session_id, populate_existing=True), new_token

    def find_active_by_refresh_token(self, refresh_token: str) -> UserSession | None:
        return (
            self.db.query(UserSession)
            .filter(
                UserSession.session_token_hash == hash_token(refresh_token),
                UserSession.is_active.is_(True),
            )
            .first()
        )

    def list_active(self, user_id: UUID) -> list[UserSession]:
        """Active, unexpired sessions, most recently used first."""
        return (
            self.db.query(UserSession)
            .filter(
                UserSession.user_id == user_id,
                UserSession.is_active.is_(True),
                UserSession.expires_at > utcnow(),
            )
            .order_by(UserSession.last_activity_at.desc())
            .all()
        )

    def revoke_session(self, user_id: UUID, session_id: UUID) -> bool:
        """Revoke one of the user's sessions. Returns False if none matched."""
        stmt = (
            update(UserSession)
            .where(
                UserSession.id == session_id,
                UserSession.user_id == user_id,
                UserSession.is_active.is_(True),
            )
            .values(is_active=False, revoked_at=utcnow())
            .returning(UserSession.id)
            .execution_options(synchronize_session="fetch")
        )
        revoked = self.db.execute(stmt).all()
        self.db.commit()
        return len(revoked) == 1

    def revoke_all_other_sessions(self, user_id: UUID, current_device_id: str) -> int:
        """
        Revoke every active session of the user on other devices.

        Sessions are kept by device id, not session id: every session on the
        current device survives. Sessions without a device id are revoked.
        """
        stmt = (
            update(UserSession)
            .where(
                UserSession.user_id == user_id,
                UserSession.is_active.is_(True),
                or_(UserSession.device_id.is_(None), UserSession.device_id != current_device_id),
            )
            .values(is_active=False, revoked_at=utcnow())
            .returning(UserSession.id)
            .execution_options(synchronize_session="fetch")
        )
        revoked = self.db.execute(stmt).all()
        self.db.commit()
        logger.info(
            "Other sessions revoked",
            extra={"user_id": str(user_id), "revoked_count": len(revoked)},
        )
        return len(revoked)

    def revoke_all(self, user_id: UUID) -> int:
        """Revoke every active session of the user (password change, MFA reset)."""
        stmt = (
            update(UserSession)
            .where(UserSession.user_id == user_id, UserSession.is_active.is_(True))
            .values(is_active=False, revoked_at=utcnow())
            .returning(UserSession.id)
            .execution_options(synchronize_session="fetch")
        )
        revoked = self.db.execute(stmt).all()
        self.db.commit()
        return len(revoked)
