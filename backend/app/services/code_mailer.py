"""Builds and sends branded one-time code emails."""

from uuid import UUID

from sqlalchemy.orm import Session

from app.email.templates import render_template
from app.models.otp import OtpPurpose
from app.services.branding import Branding, resolve_branding
from app.services.email.base import EmailMessage
from app.services.email.service import send_email


def build_code_email(
    branding: Branding,
    to: str,
    purpose: OtpPurpose,
    code: str,
    expires_minutes: int,
    first_name: str | None = None,
) -> EmailMessage:
    """Render the template registered for ``purpose`` with the tenant's branding."""
    vars = {
        **branding.template_vars(),
        "code": code,
        "expires_minutes": expires_minutes,
        "first_name": first_name,
    }
    return EmailMessage(
        to=to,
        subject=render_template(purpose.value, vars, "subject"),
        body_text=render_template(purpose.value, vars, "text"),
        body_html=render_template(purpose.value, vars, "html"),
        from_email=branding.from_email,
        from_name=branding.name,
        reply_to=branding.support_email,
    )


def send_code_email(
    db: Session,
    tenant_id: UUID,
    to: str,
    purpose: OtpPurpose,
    code: str,
    expires_minutes: int,
    first_name: str | None = None,
) -> str:
    """Resolve branding, render and send. Raises ``EmailDeliveryError`` on send failure."""
    branding = resolve_branding(db, tenant_id)
    message = build_code_email(branding, to, purpose, code, expires_minutes, first_name)
    return send_email(message)
