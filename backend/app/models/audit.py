"""Auth audit trail model."""

import uuid

from sqlalchemy import Column, DateTime, Index, String, Uuid

from app.common.clock import utcnow
from app.db.base import Base
from app.db.types import JSONType


class AuthAuditEvent(Base):
    """Security-relevant auth event (rejections, lockouts, SSO denials).

    Rows are append-only and keep no foreign keys so they outlive the
    accounts they describe.
    """

    __tablename__ = "auth_audit_events"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    event_type = Column(String(64), nullable=False)
    outcome = Column(String(16), nullable=False)
    reason_code = Column(String(64), nullable=True)
    user_id = Column(Uuid(as_uuid=True), nullable=True)
    tenant_id = Column(Uuid(as_uuid=True), nullable=True)
    email = Column(String(320), nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String, nullable=True)
    request_id = Column(String(128), nullable=True)
    meta = Column(JSONType, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (Index("ix_auth_audit_events_type_created", "event_type", "created_at"),)
