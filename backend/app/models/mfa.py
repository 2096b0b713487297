"""MFA models (TOTP and backup codes)."""

import uuid

from sqlalchemy import BigInteger, Boolean, Column, DateTime, ForeignKey, String, Uuid
from sqlalchemy.orm import relationship

from app.common.clock import utcnow
from app.db.base import Base


class MFATOTP(Base):
    """MFA TOTP configuration model."""

    __tablename__ = "mfa_totp"

    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    secret_encrypted = Column(String, nullable=False)  # Fernet token
    enabled = Column(Boolean, default=False, nullable=False)
    last_used_counter = Column(BigInteger, nullable=True)  # Last accepted TOTP time step
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    verified_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    user = relationship("User", back_populates="mfa_totp")


class MFABackupCode(Base):
    """MFA backup code model."""

    __tablename__ = "mfa_backup_codes"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    code_hash = Column(String(64), nullable=False)
    used_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    # Relationships
    user = relationship("User", back_populates="mfa_backup_codes")
