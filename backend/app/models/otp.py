"""One-time code tokens (signup confirmation, password reset, login, magic link)."""

import uuid
from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, String, Uuid

from app.common.clock import as_utc, utcnow
from app.db.base import Base
from app.db.types import JSONType


class OtpPurpose(str, Enum):
    """What a one-time code proves."""

    CONFIRM_SIGNUP = "confirm_signup"
    PASSWORD_RESET = "password_reset"
    # Reserved: stored, claimed and mailed like the others, but no endpoint issues it yet
    LOGIN_VERIFY = "login_verify"
    MAGIC_LINK = "magic_link"


class OtpToken(Base):
    """Short-lived single-use code keyed by (tenant, email, purpose).

    Only the peppered hash of the code is stored. Rows are retained after use
    for audit; ``is_used`` flips to true exactly once.
    """

    __tablename__ = "otp_tokens"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(
        Uuid(as_uuid=True), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False
    )
    email = Column(String(320), nullable=False)
    code_hash = Column(String(64), nullable=False)
    purpose = Column(String(32), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    is_used = Column(Boolean, default=False, nullable=False)
    used_at = Column(DateTime(timezone=True), nullable=True)
    meta = Column(JSONType, nullable=False, default=dict)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_otp_tokens_lookup", "tenant_id", "email", "purpose", "is_used"),
    )

    def is_valid(self) -> bool:
        """Check if token is valid (not used and not expired)."""
        if self.is_used:
            return False
        return utcnow() < as_utc(self.expires_at)
