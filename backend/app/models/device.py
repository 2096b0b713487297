"""Trusted device model."""

import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from app.common.clock import as_utc, utcnow
from app.db.base import Base


class TrustedDevice(Base):
    """A device exempted from MFA until ``trust_expires_at``.

    One row per (user, device id). Expired rows are not deleted; expiry is
    evaluated when the row is read.
    """

    __tablename__ = "trusted_devices"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    device_id = Column(String(128), nullable=False)
    device_name = Column(String(255), nullable=True)
    device_type = Column(String(32), nullable=True)
    fingerprint_hash = Column(String(64), nullable=True)
    user_agent = Column(String, nullable=True)
    is_trusted = Column(Boolean, default=True, nullable=False)
    trusted_at = Column(DateTime(timezone=True), nullable=True)
    trust_expires_at = Column(DateTime(timezone=True), nullable=True)
    last_ip = Column(String(64), nullable=True)
    last_seen_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    # Relationships
    user = relationship("User", back_populates="trusted_devices")

    __table_args__ = (UniqueConstraint("user_id", "device_id", name="uq_trusted_device_user_device"),)

    def trust_active(self, now=None) -> bool:
        if not self.is_trusted or self.trust_expires_at is None:
            return False
        return as_utc(self.trust_expires_at) > (now or utcnow())
