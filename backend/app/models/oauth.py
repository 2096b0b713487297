"""SSO connection, OAuth state and linked identity models."""

import uuid
from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from app.common.clock import utcnow
from app.db.base import Base
from app.db.types import JSONType


class OAuthProvider(str, Enum):
    """OAuth provider enum."""

    GOOGLE = "oauth_google"
    MICROSOFT = "oauth_microsoft"
    GITHUB = "oauth_github"


class SSOConnection(Base):
    """A tenant's SSO configuration for one provider."""

    __tablename__ = "sso_connections"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(
        Uuid(as_uuid=True), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    provider = Column(String(32), nullable=False)
    allowed_domains = Column(JSONType, nullable=False, default=list)  # Empty list allows any domain
    default_role = Column(String(32), nullable=False, default="member")
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    # Relationships
    tenant = relationship("Tenant", back_populates="sso_connections")

    __table_args__ = (UniqueConstraint("tenant_id", "provider", name="uq_sso_connection_tenant_provider"),)


class OAuthState(Base):
    """Pending authorization request, consumed once by the callback."""

    __tablename__ = "oauth_states"

    state = Column(String(128), primary_key=True)
    tenant_id = Column(
        Uuid(as_uuid=True), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False
    )
    connection_id = Column(
        Uuid(as_uuid=True), ForeignKey("sso_connections.id", ondelete="CASCADE"), nullable=False
    )
    provider = Column(String(32), nullable=False)
    redirect_path = Column(String(512), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    used_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class OAuthIdentity(Base):
    """OAuth identity model for linking external providers to users."""

    __tablename__ = "oauth_identities"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    provider = Column(String(32), nullable=False)
    provider_subject = Column(String(255), nullable=False)
    email_at_link_time = Column(String(320), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    # Relationships
    user = relationship("User", back_populates="oauth_identities")

    # Unique constraint: one identity per provider+subject
    __table_args__ = (
        UniqueConstraint("provider", "provider_subject", name="uq_oauth_provider_subject"),
    )
