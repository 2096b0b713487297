"""User session model."""

import uuid
from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, String, Uuid
from sqlalchemy.orm import relationship

from app.common.clock import utcnow
from app.db.base import Base


class AuthMethod(str, Enum):
    """How a session was established."""

    PASSWORD = "password"
    SSO = "sso"
    OAUTH = "oauth"
    MAGIC_LINK = "magic_link"
    BIOMETRIC = "biometric"


class UserSession(Base):
    """One row per login. ``is_active=false`` is the only revocation mechanism."""

    __tablename__ = "user_sessions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    session_token_hash = Column(String(64), unique=True, nullable=False)
    device_id = Column(String(128), nullable=True)
    device_type = Column(String(32), nullable=True)
    browser = Column(String(64), nullable=True)
    os = Column(String(64), nullable=True)
    user_agent = Column(String, nullable=True)
    ip_address = Column(String(64), nullable=True)
    country = Column(String(64), nullable=True)
    city = Column(String(128), nullable=True)
    auth_method = Column(String(32), nullable=False, default=AuthMethod.PASSWORD.value)
    is_active = Column(Boolean, default=True, nullable=False)
    mfa_verified = Column(Boolean, default=False, nullable=False)
    last_activity_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    revoked_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    user = relationship("User", back_populates="sessions")

    __table_args__ = (Index("ix_user_sessions_user_active", "user_id", "is_active"),)
