"""Email service factory and send entry point."""

import smtplib

from app.core.app_exceptions import EmailDeliveryError
from app.core.config import settings
from app.core.logging import get_logger
from app.services.email.base import EmailMessage, EmailProvider
from app.services.email.console import ConsoleEmailProvider
from app.services.email.smtp import SMTPEmailProvider

logger = get_logger(__name__)

# Global email service instance
_email_service: EmailProvider | None = None


def get_email_service() -> EmailProvider:
    """Get the configured email provider (``EMAIL_BACKEND``: smtp or console)."""
    global _email_service

    if _email_service is not None:
        return _email_service

    backend = settings.EMAIL_BACKEND.lower()
    if backend == "smtp":
        _email_service = SMTPEmailProvider(
            host=settings.EMAIL_HOST,
            port=settings.EMAIL_PORT,
            default_from_email=settings.DEFAULT_BRAND_FROM_EMAIL,
            username=settings.EMAIL_USERNAME,
            password=settings.EMAIL_PASSWORD,
            use_tls=settings.EMAIL_USE_TLS,
            use_ssl=settings.EMAIL_USE_SSL,
            timeout=settings.EMAIL_TIMEOUT_SECONDS,
        )
        logger.info(f"Email service initialized: SMTP ({settings.EMAIL_HOST}:{settings.EMAIL_PORT})")
    elif backend == "console":
        _email_service = ConsoleEmailProvider()
        logger.info("Email service initialized: Console")
    else:
        raise ValueError(f"Unknown EMAIL_BACKEND: {settings.EMAIL_BACKEND}")

    return _email_service


def send_email(message: EmailMessage) -> str:
    """
    Send an email using the configured provider.

    There is no fallback provider: a message that cannot be delivered raises,
    so callers can compensate.

    Raises:
        EmailDeliveryError: the provider failed to deliver the message
    """
    service = get_email_service()
    try:
        return service.send(message)
    except (smtplib.SMTPException, OSError) as e:
        logger.error(
            "Email delivery failed",
            extra={"email_to": message.to, "error_type": type(e).__name__},
        )
        raise EmailDeliveryError(cause=e) from e
