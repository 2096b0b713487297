"""SMTP email provider."""

import smtplib
from email.message import EmailMessage as MIMEEmailMessage
from email.utils import formataddr, make_msgid

from app.core.logging import get_logger
from app.services.email.base import EmailMessage, EmailProvider

logger = get_logger(__name__)


class SMTPEmailProvider(EmailProvider):
    """SMTP relay provider with STARTTLS/SSL, credentials and a per-call timeout."""

    def __init__(
        self,
        host: str,
        port: int,
        default_from_email: str,
        username: str | None = None,
        password: str | None = None,
        use_tls: bool = True,
        use_ssl: bool = False,
        timeout: float = 10.0,
    ):
        """
        Initialize SMTP provider.

        Args:
            host: SMTP server host
            port: SMTP server port
            default_from_email: Used when a message has no from address
            username: SMTP username (login skipped when unset)
            password: SMTP password
            use_tls: Upgrade with STARTTLS
            use_ssl: Connect with implicit TLS
            timeout: Socket timeout in seconds for connect and each command
        """
        self.host = host
        self.port = port
        self.default_from_email = default_from_email
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.use_ssl = use_ssl
        self.timeout = timeout

    def _build(self, message: EmailMessage) -> MIMEEmailMessage:
        from_email = message.from_email or self.default_from_email
        msg = MIMEEmailMessage()
        msg["From"] = formataddr((message.from_name, from_email)) if message.from_name else from_email
        msg["To"] = message.to
        msg["Subject"] = message.subject
        msg["Message-ID"] = make_msgid(domain=from_email.rpartition("@")[2] or None)
        if message.reply_to:
            msg["Reply-To"] = message.reply_to
        msg.set_content(message.body_text)
        if message.body_html:
            msg.add_alternative(message.body_html, subtype="html")
        return msg

    def send(self, message: EmailMessage) -> str:
        """Send email via SMTP. Raises ``smtplib.SMTPException`` / ``OSError`` on failure."""
        msg = self._build(message)

        if self.use_ssl:
            server = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout)
        else:
            server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)

        with server:
            if self.use_tls and not self.use_ssl:
                server.starttls()
            if self.username and self.password:
                server.login(self.username, self.password)
            server.send_message(msg)

        logger.info(
            "Email sent", extra={"email_to": message.to, "email_subject": message.subject}
        )
        return msg["Message-ID"]
