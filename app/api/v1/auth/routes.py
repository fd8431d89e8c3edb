from typing import Any, Dict
from fastapi import APIRouter, Depends, status

from app.api.deps import get_auth_service, get_contact_service, get_current_claims
from app.api.v1.auth.schemas import (
    RegisterRequest,
    VerifyOtpRequest,
    LoginRequest,
    LoginResponse,
    ForgotPasswordRequest,
    ChangePasswordRequest,
    MessageResponse,
)
from app.api.v1.contact.schemas import ContactRequest
from app.domain.auth.service import AuthenticationService
from app.services.contact import ContactService

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/register", response_model=MessageResponse, status_code=status.HTTP_200_OK)
async def register(
    body: RegisterRequest,
    auth_service: AuthenticationService = Depends(get_auth_service),
):
    """Start registration: email a one-time passcode valid for a few minutes"""
    await auth_service.register(name=body.name, email=body.email, mobile=body.mobile)
    return MessageResponse(message="OTP sent to email")


@router.post("/verify-otp", response_model=MessageResponse, status_code=status.HTTP_200_OK)
async def verify_otp(
    body: VerifyOtpRequest,
    auth_service: AuthenticationService = Depends(get_auth_service),
):
    """Verify the registration OTP, create the account and email its password"""
    await auth_service.verify_registration(email=body.email, otp=body.otp)
    return MessageResponse(message="User created. Password sent to email.")


@router.post("/login", response_model=LoginResponse, status_code=status.HTTP_200_OK)
async def login(
    body: LoginRequest,
    auth_service: AuthenticationService = Depends(get_auth_service),
):
    """Authenticate user and return a bearer token with the profile"""
    return await auth_service.login(email=body.email, password=body.password)


@router.post("/forgot-password", response_model=MessageResponse, status_code=status.HTTP_200_OK)
async def forgot_password(
    body: ForgotPasswordRequest,
    auth_service: AuthenticationService = Depends(get_auth_service),
):
    """Email a password reset OTP"""
    await auth_service.forgot_password(email=body.email)
    return MessageResponse(message="OTP sent to email")


@router.post("/reset-password", response_model=MessageResponse, status_code=status.HTTP_200_OK)
async def reset_password(
    body: VerifyOtpRequest,
    auth_service: AuthenticationService = Depends(get_auth_service),
):
    """Verify the reset OTP and email a new password"""
    await auth_service.reset_password(email=body.email, otp=body.otp)
    return MessageResponse(message="Password reset. New password sent to email.")


@router.post("/change-password", response_model=MessageResponse, status_code=status.HTTP_200_OK)
async def change_password(
    body: ChangePasswordRequest,
    claims: Dict[str, Any] = Depends(get_current_claims),
    auth_service: AuthenticationService = Depends(get_auth_service),
):
    """Change password for the logged in user"""
    await auth_service.change_password(
        claims,
        email=body.email,
        old_password=body.old_password,
        new_password=body.new_password,
    )
    return MessageResponse(message="Password changed successfully")


@router.post("/contact", response_model=MessageResponse, status_code=status.HTTP_200_OK)
async def contact(
    body: ContactRequest,
    contact_service: ContactService = Depends(get_contact_service),
):
    """Relay a contact form to the admin inbox"""
    await contact_service.send_contact(
        name=body.name,
        email=body.email,
        service=body.service,
        message=body.message,
    )
    return MessageResponse(message="Your message has been sent successfully.")
