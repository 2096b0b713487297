"""Console email provider (local dev)."""

import uuid

from app.core.logging import get_logger
from app.services.email.base import EmailMessage, EmailProvider

logger = get_logger(__name__)


class ConsoleEmailProvider(EmailProvider):
    """Console email provider - prints emails to stdout instead of sending them."""

    def send(self, message: EmailMessage) -> str:
        """Print email to console. Bodies are not logged since they carry codes."""
        message_id = f"console:{uuid.uuid4()}"
        logger.info(
            "EMAIL (Console Provider)",
            extra={
                "email_to": message.to,
                "email_subject": message.subject,
                "message_id": message_id,
            },
        )
        print("\n" + "=" * 80)
        print("EMAIL (Console Provider)")
        print("=" * 80)
        print(f"From: {message.from_name or ''} <{message.from_email or ''}>")
        print(f"To: {message.to}")
        print(f"Subject: {message.subject}")
        print(f"Message ID: {message_id}")
        print("-" * 80)
        print(message.body_text)
        print("=" * 80 + "\n")
        return message_id
