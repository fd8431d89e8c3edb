from typing import Any, AsyncIterator, Dict, Optional
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import security
from app.core.config import Settings
from app.core.exceptions import AuthenticationError, AuthorizationError
from app.domain.auth.models import User
from app.domain.auth.service import AuthenticationService, UserService
from app.infrastructure.notifications import Notifier
from app.services.contact import ContactService
from app.services.email import EmailService

bearer_scheme = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """Dependency to get database session"""
    async with request.app.state.database.session() as session:
        yield session


def get_notifier(request: Request) -> Notifier:
    return request.app.state.notifier


def get_email_service(
    settings: Settings = Depends(get_settings),
    notifier: Notifier = Depends(get_notifier),
) -> EmailService:
    return EmailService(
        notifier,
        otp_expire_minutes=settings.OTP_EXPIRE_MINUTES,
        admin_email=settings.APP_TO_EMAIL,
    )


def get_auth_service(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    email_service: EmailService = Depends(get_email_service),
) -> AuthenticationService:
    return AuthenticationService(
        db,
        email_service,
        otp_expire_minutes=settings.OTP_EXPIRE_MINUTES,
        supersede_pending=settings.OTP_SUPERSEDE_PENDING,
    )


def get_user_service(db: AsyncSession = Depends(get_db)) -> UserService:
    return UserService(db)


def get_contact_service(
    settings: Settings = Depends(get_settings),
    email_service: EmailService = Depends(get_email_service),
) -> ContactService:
    return ContactService(email_service, max_attachment_bytes=settings.CONTACT_ATTACHMENT_MAX_BYTES)


async def get_current_claims(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Dict[str, Any]:
    """Claims of a valid ``Authorization: Bearer`` token"""
    if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
        raise AuthenticationError(
            "Missing or invalid Authorization header",
            error_code="MISSING_BEARER_TOKEN",
        )
    return security.verify_token(credentials.credentials)


async def require_admin(
    claims: Dict[str, Any] = Depends(get_current_claims),
    user_service: UserService = Depends(get_user_service),
) -> User:
    """Current user, who must hold the admin role"""
    user = await user_service.get_by_email(claims.get("email", ""))
    if not user:
        raise AuthenticationError("Unauthorized", error_code="UNKNOWN_PRINCIPAL")
    if not user.is_admin:
        raise AuthorizationError("Forbidden: admin role required", error_code="ADMIN_REQUIRED")
    return user
