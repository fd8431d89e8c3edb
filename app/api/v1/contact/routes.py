from typing import Optional
from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from pydantic import EmailStr

from app.api.deps import get_contact_service
from app.api.v1.auth.schemas import MessageResponse
from app.api.v1.contact.schemas import SINGLE_LINE
from app.infrastructure.notifications import Attachment
from app.services.contact import ContactService

router = APIRouter(prefix="/api", tags=["Contact"])


@router.post("/brief-contact", response_model=MessageResponse, status_code=status.HTTP_200_OK)
async def brief_contact(
    name: str = Form(..., min_length=3),
    email: EmailStr = Form(...),
    mobile: str = Form(..., min_length=1),
    company: str = Form(..., min_length=2),
    service: str = Form(..., min_length=1, pattern=SINGLE_LINE),
    project_details: str = Form(..., min_length=3, alias="projectDetails"),
    attachment: Optional[UploadFile] = File(None),
    contact_service: ContactService = Depends(get_contact_service),
):
    """Relay a project brief, with an optional attachment, to the admin inbox"""
    file = None
    if attachment is not None and attachment.filename:
        # one byte past the limit is enough to reject it
        file = Attachment(
            filename=attachment.filename,
            content=await attachment.read(contact_service.max_attachment_bytes + 1),
            content_type=attachment.content_type or "application/octet-stream",
        )

    await contact_service.send_brief_contact(
        name=name,
        email=email,
        mobile=mobile,
        company=company,
        service=service,
        project_details=project_details,
        attachment=file,
    )
    return MessageResponse(message="Your brief contact has been sent successfully.")
