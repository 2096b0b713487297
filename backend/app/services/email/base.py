"""Base email provider interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class EmailMessage:
    """A rendered, addressed transactional email."""

    to: str
    subject: str
    body_text: str
    body_html: str | None = None
    from_email: str | None = None
    from_name: str | None = None
    reply_to: str | None = None


class EmailProvider(ABC):
    """Base interface for email providers."""

    @abstractmethod
    def send(self, message: EmailMessage) -> str:
        """
        Send an email.

        Args:
            message: The message to deliver

        Returns:
            Provider message ID (e.g., "console:<uuid>", SMTP message ID, etc.)
        """
        pass
