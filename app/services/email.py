import html
from datetime import datetime
from typing import List, Optional

from loguru import logger

from app.core.exceptions import DeliveryError
from app.infrastructure.notifications import (
    Attachment,
    DeliveryReceipt,
    EmailMessage,
    Notifier,
)


class EmailService:
    """Message catalogue for every email the service sends.

    Methods raise DeliveryError when the notifier fails; the ``notify_admin_*``
    helpers log and swallow failures because the admin copy never gates the
    user-facing outcome.
    """

    def __init__(self, notifier: Notifier, otp_expire_minutes: int = 5, admin_email: Optional[str] = None):
        self.notifier = notifier
        self.otp_expire_minutes = otp_expire_minutes
        self.admin_email = admin_email

    async def send_registration_otp(self, email: str, code: str) -> DeliveryReceipt:
        minutes = self.otp_expire_minutes
        return await self.notifier.send(EmailMessage(
            to=email,
            subject="Your registration OTP",
            text=f"Your OTP is {code}. It expires in {minutes} minutes.",
            html=f"<p>Your OTP is <b>{code}</b>. It expires in {minutes} minutes.</p>",
        ))

    async def send_reset_otp(self, email: str, code: str) -> DeliveryReceipt:
        minutes = self.otp_expire_minutes
        return await self.notifier.send(EmailMessage(
            to=email,
            subject="Your password reset OTP",
            text=f"Your password reset OTP is {code}. It expires in {minutes} minutes.",
            html=f"<p>Your password reset OTP is <b>{code}</b>. It expires in {minutes} minutes.</p>",
        ))

    async def send_account_password(self, email: str, password: str) -> DeliveryReceipt:
        return await self.notifier.send(EmailMessage(
            to=email,
            subject="Your account password",
            text=f"Your account has been created. Your password is: {password}",
            html=(
                "<p>Your account has been created.</p>"
                f"<p>Your password is: <b>{html.escape(password)}</b></p>"
            ),
        ))

    async def send_reset_password(self, email: str, password: str) -> DeliveryReceipt:
        return await self.notifier.send(EmailMessage(
            to=email,
            subject="Your password has been reset",
            text=f"Your new password is: {password}",
            html=(
                "<p>Your password has been reset.</p>"
                f"<p>Your new password is: <b>{html.escape(password)}</b></p>"
            ),
        ))

    async def send_to_admin(
        self,
        subject: str,
        text: str,
        html_body: str,
        reply_to: Optional[str] = None,
        attachments: Optional[List[Attachment]] = None,
    ) -> DeliveryReceipt:
        """Deliver to the admin inbox; fails when the inbox is not configured."""
        if not self.admin_email:
            raise DeliveryError(
                message="Admin email address is not configured",
                error_code="ADMIN_EMAIL_NOT_CONFIGURED",
            )
        return await self.notifier.send(EmailMessage(
            to=self.admin_email,
            subject=subject,
            text=text,
            html=html_body,
            reply_to=reply_to,
            attachments=attachments or [],
        ))

    async def notify_admin_registration(self, name: str, email: str, mobile: str) -> None:
        n, e, m = html.escape(name), html.escape(email), html.escape(mobile)
        await self._notify_admin(
            "New user registered",
            f"A new user has registered.\nName: {name}\nEmail: {email}\nMobile: {mobile}",
            f"<p>A new user has registered.</p><p><b>Name:</b> {n}<br/><b>Email:</b> {e}<br/><b>Mobile:</b> {m}</p>",
        )

    async def notify_admin_login(self, name: str, email: str, at: Optional[datetime] = None) -> None:
        when = (at or datetime.utcnow()).isoformat()
        await self._notify_admin(
            "User login notification",
            f"User {name} ({email}) logged in at {when}",
            f"<p>User <b>{html.escape(name)}</b> (<b>{html.escape(email)}</b>) logged in at <b>{when}</b>.</p>",
        )

    async def _notify_admin(self, subject: str, text: str, html_body: str) -> None:
        if not self.admin_email:
            logger.debug(f"Admin notification '{subject}' skipped, no admin email configured")
            return
        try:
            await self.send_to_admin(subject, text, html_body)
        except Exception as e:
            # Don't block the request on admin email failure
            logger.warning(f"Admin notification '{subject}' failed: {e}")
