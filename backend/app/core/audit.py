"""Auth audit trail.

Security-relevant rejections (wrong codes, SSO domain denials, lockouts) are
both logged and persisted to ``auth_audit_events``.
"""

from typing import Any
from uuid import UUID

from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.common.request_id import get_request_id
from app.core.logging import get_logger
from app.core.security_logging import get_client_ip, get_user_agent, log_security_event
from app.models.audit import AuthAuditEvent

logger = get_logger(__name__)


def write_auth_audit(
    db: Session,
    event_type: str,
    outcome: str,
    request: Request | None = None,
    reason_code: str | None = None,
    user_id: UUID | None = None,
    tenant_id: UUID | None = None,
    email: str | None = None,
    meta: dict[str, Any] | None = None,
) -> AuthAuditEvent | None:
    """
    Log a security event and persist it to the audit table.

    The row is committed on its own so it survives a rollback of the calling
    flow. A failed audit write is logged and does not fail the request.

    Args:
        db: Database session
        event_type: Event type (e.g. "mfa_verify_failed", "sso_domain_denied")
        outcome: "allow", "deny" or "degraded"
        request: Request for IP / user agent / request id
        reason_code: Stable reason code for denials
        user_id: Subject user, if known
        tenant_id: Tenant, if known
        email: Email involved, if known
        meta: Extra non-secret context
    """
    if request is not None:
        log_security_event(
            request,
            event_type=event_type,
            outcome=outcome,
            reason_code=reason_code,
            user_id=str(user_id) if user_id else None,
        )

    event = AuthAuditEvent(
        event_type=event_type,
        outcome=outcome,
        reason_code=reason_code,
        user_id=user_id,
        tenant_id=tenant_id,
        email=email.lower() if email else None,
        ip_address=get_client_ip(request) if request is not None else None,
        user_agent=get_user_agent(request) if request is not None else None,
        request_id=get_request_id(request) if request is not None else None,
        meta=meta or {},
    )
    try:
        db.add(event)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(
            "Failed to persist auth audit event",
            extra={"event_type": event_type, "error": str(e)},
        )
        return None
    return event
