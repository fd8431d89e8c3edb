from pydantic import BaseModel, EmailStr, Field

# used in the email subject header
SINGLE_LINE = r"^[^\r\n]*$"


class ContactRequest(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    service: str = Field(..., min_length=2, max_length=100, pattern=SINGLE_LINE)
    message: str = Field(..., min_length=5, max_length=1000)
