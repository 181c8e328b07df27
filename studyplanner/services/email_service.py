import logging
import smtplib
import ssl
from dataclasses import dataclass, field
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import List, Optional, Protocol

from studyplanner.core.config import settings
from studyplanner.reminders.errors import ConfigurationError, DeliveryError, TransientDeliveryError
from studyplanner.utils.timezone import utcnow

logger = logging.getLogger(__name__)


@dataclass
class DeliveryOutcome:
    """Result of a transport send that did not raise"""
    transport: str
    recipient: str
    accepted_at: datetime = field(default_factory=utcnow)
    detail: Optional[str] = None


class NotificationTransport(Protocol):
    name: str

    def send(self, to: str, subject: str, body: str, text_body: Optional[str] = None) -> DeliveryOutcome:
        """Deliver one message.

        Raises TransientDeliveryError when a retry may succeed (timeouts,
        connection failures, 4xx replies) and DeliveryError when it will not.
        """
        ...


def build_message(from_email: str, to: str, subject: str, body: str, text_body: Optional[str] = None) -> MIMEMultipart:
    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = from_email
    msg["To"] = to
    if text_body:
        msg.attach(MIMEText(text_body, "plain", "utf-8"))
    msg.attach(MIMEText(body, "html", "utf-8"))
    return msg


class SmtpTransport:
    name = "smtp"

    def __init__(
        self,
        server: Optional[str] = None,
        port: Optional[int] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        from_email: Optional[str] = None,
        timeout: float = 10.0,
    ):
        self.smtp_server = server or settings.SMTP_SERVER
        self.smtp_port = port or settings.SMTP_PORT
        self.smtp_username = username or settings.SMTP_USERNAME
        self.smtp_password = password or settings.SMTP_PASSWORD
        self.from_email = from_email or settings.FROM_EMAIL
        self.timeout = timeout

        # Validate required email configuration
        if not self.smtp_server:
            raise ConfigurationError("SMTP_SERVER is required but not configured")
        if not self.smtp_port:
            raise ConfigurationError("SMTP_PORT is required but not configured")
        if not self.smtp_username:
            raise ConfigurationError("SMTP_USERNAME is required but not configured")
        if not self.smtp_password:
            raise ConfigurationError("SMTP_PASSWORD is required but not configured")
        if not self.from_email:
            raise ConfigurationError("FROM_EMAIL is required but not configured")
        self.smtp_port = int(self.smtp_port)

    def send(self, to: str, subject: str, body: str, text_body: Optional[str] = None) -> DeliveryOutcome:
        msg = build_message(self.from_email, to, subject, body, text_body)

        # Zoho requires FROM_EMAIL to match SMTP_USERNAME
        if "zoho" in self.smtp_server.lower() and self.from_email != self.smtp_username:
            logger.warning(f"⚠️ [SMTP] FROM_EMAIL differs from SMTP_USERNAME; sending as {self.smtp_username}")
            msg.replace_header("From", self.smtp_username)

        try:
            context = ssl.create_default_context()
            if self.smtp_port == 465:
                with smtplib.SMTP_SSL(self.smtp_server, self.smtp_port, context=context, timeout=self.timeout) as server:
                    server.login(self.smtp_username, self.smtp_password)
                    server.send_message(msg)
            else:
                with smtplib.SMTP(self.smtp_server, self.smtp_port, timeout=self.timeout) as server:
                    server.starttls(context=context)
                    server.login(self.smtp_username, self.smtp_password)
                    server.send_message(msg)
        except smtplib.SMTPAuthenticationError as e:
            raise DeliveryError(f"SMTP authentication failed: {e}") from e
        except smtplib.SMTPRecipientsRefused as e:
            raise DeliveryError(f"Recipient refused: {to}") from e
        except smtplib.SMTPResponseException as e:
            # 4xx replies are temporary by definition
            if 400 <= e.smtp_code < 500:
                raise TransientDeliveryError(f"SMTP {e.smtp_code}: {e.smtp_error!r}") from e
            raise DeliveryError(f"SMTP {e.smtp_code}: {e.smtp_error!r}") from e
        except smtplib.SMTPServerDisconnected as e:
            raise TransientDeliveryError(f"SMTP unreachable: {e}") from e
        except smtplib.SMTPException as e:
            raise DeliveryError(f"SMTP error: {e}") from e
        except OSError as e:
            # Connection refused or timed out
            raise TransientDeliveryError(f"SMTP unreachable: {e}") from e

        logger.info(f"✅ [SMTP] Sent '{subject}' to {to}")
        return DeliveryOutcome(transport=self.name, recipient=to)


class ConsoleTransport:
    """Logs messages instead of sending them; for local development."""
    name = "console"

    def __init__(self):
        self.sent: List[dict] = []

    def send(self, to: str, subject: str, body: str, text_body: Optional[str] = None) -> DeliveryOutcome:
        logger.info(f"📧 [DEV] Would send email to {to}")
        logger.info(f"📧 [DEV] Subject: {subject}")
        self.sent.append({"to": to, "subject": subject, "body": body, "text_body": text_body})
        return DeliveryOutcome(transport=self.name, recipient=to, detail="logged")


def build_transport(kind: str, timeout: float = 10.0) -> NotificationTransport:
    if kind == "console":
        if settings.is_production:
            raise ConfigurationError("console transport is not allowed in production")
        return ConsoleTransport()
    if kind == "smtp":
        return SmtpTransport(timeout=timeout)
    raise ConfigurationError(f"Unknown transport: {kind}")
