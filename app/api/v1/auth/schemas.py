from pydantic import BaseModel, ConfigDict, EmailStr, Field
from typing import Optional, List
from datetime import datetime

from app.domain.auth.models import UserRole


class RegisterRequest(BaseModel):
    """Start registration"""
    name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    mobile: str = Field(..., min_length=5, max_length=20)


class VerifyOtpRequest(BaseModel):
    """OTP submission for registration or password reset"""
    email: EmailStr
    otp: str = Field(..., min_length=6, max_length=6)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ChangePasswordRequest(BaseModel):
    """Body uses the camelCase names clients already send"""
    model_config = ConfigDict(populate_by_name=True)

    email: EmailStr
    old_password: str = Field(..., min_length=6, alias="oldPassword")
    new_password: str = Field(..., min_length=6, alias="newPassword")


class MessageResponse(BaseModel):
    message: str


class UserProfile(BaseModel):
    """Profile returned on login"""
    model_config = ConfigDict(populate_by_name=True)

    role: UserRole
    username: str
    mobile: str
    email: str
    created_at: datetime = Field(..., alias="createdAt")


class LoginResponse(BaseModel):
    token: str
    user: UserProfile


class UserResponse(BaseModel):
    """Public view of a user; never carries the password hash"""
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: str
    name: str
    email: str
    mobile: str
    role: UserRole
    created_at: datetime = Field(..., alias="createdAt")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")


class UserListResponse(BaseModel):
    users: List[UserResponse]
