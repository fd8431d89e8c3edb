"""Outbound email port and its SMTP / development adapters."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from email.message import EmailMessage as MIMEEmailMessage
from email.utils import make_msgid
from typing import Any, Dict, List, Optional
import uuid

import aiosmtplib
from loguru import logger

from app.core.config import Settings
from app.core.exceptions import DeliveryError


@dataclass
class Attachment:
    """In-memory file attached to an outgoing email."""

    filename: str
    content: bytes
    content_type: str = "application/octet-stream"


@dataclass
class EmailMessage:
    """Provider-neutral email."""

    to: str
    subject: str
    text: str
    html: Optional[str] = None
    attachments: List[Attachment] = field(default_factory=list)
    reply_to: Optional[str] = None


@dataclass
class DeliveryReceipt:
    """What the provider told us about an accepted message."""

    message_id: str
    recipient: str
    channel: str = "email"
    detail: Dict[str, Any] = field(default_factory=dict)


class Notifier(ABC):
    """Sends email. Failures surface as DeliveryError; callers decide
    whether the failure is fatal for their flow."""

    @abstractmethod
    async def send(self, message: EmailMessage) -> DeliveryReceipt:
        """Deliver a single message."""


class SmtpNotifier(Notifier):
    """SMTP delivery through aiosmtplib."""

    def __init__(
        self,
        hostname: str,
        port: int,
        username: str,
        password: str,
        sender: str,
        use_tls: bool = True,
        timeout: float = 30.0,
    ):
        self._hostname = hostname
        self._port = port
        self._username = username
        self._password = password
        self._sender = sender
        self._use_tls = use_tls
        self._timeout = timeout

    def __repr__(self) -> str:
        return (
            f"SmtpNotifier(hostname={self._hostname!r}, port={self._port}, "
            f"username={self._username!r}, password='***', sender={self._sender!r})"
        )

    def build_mime(self, message: EmailMessage) -> MIMEEmailMessage:
        """Render the message as a multipart MIME email."""
        mime = MIMEEmailMessage()
        mime["From"] = self._sender
        mime["To"] = message.to
        mime["Subject"] = message.subject
        mime["Message-ID"] = make_msgid()
        if message.reply_to:
            mime["Reply-To"] = message.reply_to

        mime.set_content(message.text)
        if message.html:
            mime.add_alternative(message.html, subtype="html")

        for attachment in message.attachments:
            maintype, _, subtype = attachment.content_type.partition("/")
            mime.add_attachment(
                attachment.content,
                maintype=maintype or "application",
                subtype=subtype or "octet-stream",
                filename=attachment.filename,
            )
        return mime

    async def send(self, message: EmailMessage) -> DeliveryReceipt:
        mime = self.build_mime(message)
        try:
            errors, response = await aiosmtplib.send(
                mime,
                hostname=self._hostname,
                port=self._port,
                username=self._username,
                password=self._password,
                start_tls=self._use_tls,
                timeout=self._timeout,
            )
        except (aiosmtplib.SMTPException, OSError) as e:
            logger.error(f"SMTP delivery to {message.to} failed: {e}")
            raise DeliveryError(details={"recipient": message.to}) from e

        if errors:
            logger.error(f"SMTP server refused {message.to}: {errors}")
            raise DeliveryError(details={"recipient": message.to})

        logger.info(f"Email '{message.subject}' sent to {message.to}")
        return DeliveryReceipt(
            message_id=mime["Message-ID"],
            recipient=message.to,
            detail={"response": response},
        )


class LogNotifier(Notifier):
    """Development mailbox: writes each message to the log instead of sending it."""

    async def send(self, message: EmailMessage) -> DeliveryReceipt:
        logger.warning("SMTP not configured, email written to log only")
        logger.info(
            f"------------ Email to {message.to}: {message.subject} ------------\n"
            f"{message.text}"
        )
        return DeliveryReceipt(message_id=str(uuid.uuid4()), recipient=message.to, channel="log")


def build_notifier(settings: Settings) -> Notifier:
    """SMTP when credentials are configured, otherwise the log mailbox."""
    if settings.smtp_configured:
        return SmtpNotifier(
            hostname=settings.EMAIL_HOST,
            port=settings.EMAIL_PORT,
            username=settings.EMAIL_USER,
            password=settings.EMAIL_PASS,
            sender=settings.APP_FROM_EMAIL,
            use_tls=settings.EMAIL_USE_TLS,
            timeout=settings.EMAIL_TIMEOUT_SECONDS,
        )
    return LogNotifier()
