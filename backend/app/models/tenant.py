"""Tenant (site) models."""

import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Uuid
from sqlalchemy.orm import relationship

from app.common.clock import utcnow
from app.db.base import Base


class Tenant(Base):
    """Customer organization. Called a *site* on the wire (``siteId``)."""

    __tablename__ = "tenants"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    domain = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    # Relationships
    email_settings = relationship(
        "TenantEmailSettings", back_populates="tenant", uselist=False, cascade="all, delete-orphan"
    )
    sso_connections = relationship(
        "SSOConnection", back_populates="tenant", cascade="all, delete-orphan"
    )


class TenantEmailSettings(Base):
    """Per-tenant branding for transactional email."""

    __tablename__ = "tenant_email_settings"

    tenant_id = Column(
        Uuid(as_uuid=True), ForeignKey("tenants.id", ondelete="CASCADE"), primary_key=True
    )
    from_email = Column(String(255), nullable=True)
    from_name = Column(String(255), nullable=True)
    support_email = Column(String(255), nullable=True)
    logo_url = Column(String, nullable=True)
    primary_color = Column(String(16), nullable=True)
    domain = Column(String(255), nullable=True)
    updated_at = Column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    # Relationships
    tenant = relationship("Tenant", back_populates="email_settings")
