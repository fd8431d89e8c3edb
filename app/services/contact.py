import html
from typing import Optional

from app.core.exceptions import ValidationError
from app.infrastructure.notifications import Attachment, DeliveryReceipt
from app.services.email import EmailService


def _subject(prefix: str, service: str) -> str:
    """Header-safe subject; CR/LF would break the MIME header"""
    return f"{prefix} - {' '.join(service.splitlines())}"


class ContactService:
    """Relays website contact forms to the admin inbox"""

    def __init__(self, email_service: EmailService, max_attachment_bytes: int = 1024 * 1024):
        self.email_service = email_service
        self.max_attachment_bytes = max_attachment_bytes

    async def send_contact(self, name: str, email: str, service: str, message: str) -> DeliveryReceipt:
        n, e, s = html.escape(name), html.escape(email), html.escape(service)
        body = html.escape(message).replace("\n", "<br>")
        return await self.email_service.send_to_admin(
            subject=_subject("New Contact Request", service),
            text=f"New contact request from {name} ({email})\nService: {service}\nMessage:\n{message}",
            html_body=(
                "<h2>New Contact Request</h2>"
                f"<p><b>Name:</b> {n}</p>"
                f"<p><b>Email:</b> {e}</p>"
                f"<p><b>Service:</b> {s}</p>"
                "<p><b>Message:</b></p>"
                f"<p>{body}</p>"
            ),
            reply_to=email,
        )

    async def send_brief_contact(
        self,
        name: str,
        email: str,
        mobile: str,
        company: str,
        service: str,
        project_details: str,
        attachment: Optional[Attachment] = None,
    ) -> DeliveryReceipt:
        """Project brief with an optional single attachment"""
        if attachment is not None and len(attachment.content) > self.max_attachment_bytes:
            raise ValidationError(
                message="Attachment must be less than 1 MB",
                details={"size": len(attachment.content), "limit": self.max_attachment_bytes},
                error_code="ATTACHMENT_TOO_LARGE",
            )

        fields = {k: html.escape(v) for k, v in {
            "Name": name,
            "Email": email,
            "Mobile": mobile,
            "Company": company,
            "Service": service,
        }.items()}
        rows = "".join(f"<p><b>{label}:</b> {value}</p>" for label, value in fields.items())
        details = html.escape(project_details).replace("\n", "<br>")

        return await self.email_service.send_to_admin(
            subject=_subject("Brief Contact Request", service),
            text=(
                f"New brief contact request from {name} ({email})\n"
                f"Mobile: {mobile}\n"
                f"Company: {company}\n"
                f"Service: {service}\n"
                f"Project Details:\n{project_details}"
            ),
            html_body=(
                "<h2>New Brief Contact Request</h2>"
                f"{rows}"
                "<p><b>Project Details:</b></p>"
                f"<p>{details}</p>"
            ),
            reply_to=email,
            attachments=[attachment] if attachment is not None else None,
        )
