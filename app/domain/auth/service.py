from typing import Optional, List, Dict, Any, Callable
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import datetime, timedelta
import secrets
from loguru import logger

from app.domain.auth.models import User, OtpRecord, UserRole, normalize_email
from app.domain.auth.repository import UserRepository, OtpRepository
from app.core.security import (
    verify_password,
    get_password_hash,
    generate_temporary_password,
    create_access_token,
)
from app.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    DuplicateAccountError,
    InvalidOtpError,
    NotFoundError,
    OtpExpiredError,
    OtpNotFoundError,
)
from app.services.email import EmailService

OTP_MIN = 100000
OTP_MAX = 999999


class OtpService:
    """Issues, validates and consumes email OTPs.

    Only the newest pending record for an email is ever considered; older
    pending rows stay in the table as history.
    """

    def __init__(
        self,
        db: AsyncSession,
        expire_minutes: int = 5,
        supersede_pending: bool = False,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.db = db
        self.otp_repo = OtpRepository(db)
        self.expire_minutes = expire_minutes
        self.supersede_pending = supersede_pending
        self.clock = clock

    @staticmethod
    def generate_code() -> str:
        """Uniform 6-digit code"""
        return str(OTP_MIN + secrets.randbelow(OTP_MAX - OTP_MIN + 1))

    async def issue(self, email: str, name: Optional[str], mobile: str) -> OtpRecord:
        """Create and commit a new pending OTP"""
        now = self.clock()

        if self.supersede_pending:
            superseded = await self.otp_repo.expire_pending_for_email(email)
            if superseded:
                logger.debug(f"Expired {superseded} superseded OTP(s) for {normalize_email(email)}")

        record = await self.otp_repo.create({
            "email": email,
            "name": name,
            "mobile": mobile,
            "code": self.generate_code(),
            "expires_at": now + timedelta(minutes=self.expire_minutes),
            "created_at": now,
        })
        await self.db.commit()

        logger.info(f"OTP issued for {record.email}, expires at {record.expires_at.isoformat()}")
        return record

    async def validate(self, email: str, submitted_code: str) -> OtpRecord:
        """Check a code against the latest pending OTP.

        Raises OtpNotFoundError, InvalidOtpError or OtpExpiredError, in that
        order. The only write is the pending -> expired transition; the caller
        consumes the record once its dependent action has succeeded.
        """
        record = await self.otp_repo.get_latest_pending(email)
        if record is None:
            raise OtpNotFoundError()

        if record.code != submitted_code:
            raise InvalidOtpError()

        if record.is_expired(self.clock()):
            await self.otp_repo.expire(record.id)
            await self.db.commit()
            logger.info(f"OTP {record.id} for {record.email} expired")
            raise OtpExpiredError()

        return record

    async def consume(self, record: OtpRecord) -> None:
        """Mark a validated OTP as used, within the caller's transaction"""
        if not await self.otp_repo.mark_used(record.id):
            # someone else consumed or expired it after we validated
            raise OtpNotFoundError()


class CredentialService:
    """Password issuance and user credential writes.

    Writes are flushed only; the caller commits.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.user_repo = UserRepository(db)

    @staticmethod
    def generate_temporary_password() -> str:
        return generate_temporary_password()

    @staticmethod
    def hash_password(password: str) -> str:
        return get_password_hash(password)

    @staticmethod
    def verify_password(password: str, password_hash: str) -> bool:
        return verify_password(password, password_hash)

    async def create_user(
        self,
        name: str,
        email: str,
        mobile: str,
        password_hash: str,
        role: UserRole = UserRole.USER,
    ) -> User:
        """Create a user unless one exists for the email"""
        if await self.user_repo.get_by_email(email):
            raise DuplicateAccountError()

        return await self.user_repo.create({
            "name": name,
            "email": email,
            "mobile": mobile,
            "password_hash": password_hash,
            "role": UserRole(role).value,
        })

    async def update_password(self, email: str, password_hash: str) -> bool:
        return await self.user_repo.update_password(email, password_hash)


class AuthenticationService:
    """Registration, login and password flows"""

    def __init__(
        self,
        db: AsyncSession,
        email_service: EmailService,
        otp_expire_minutes: int = 5,
        supersede_pending: bool = False,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.db = db
        self.email_service = email_service
        self.user_repo = UserRepository(db)
        self.otp_service = OtpService(
            db,
            expire_minutes=otp_expire_minutes,
            supersede_pending=supersede_pending,
            clock=clock,
        )
        self.credentials = CredentialService(db)

    async def register(self, name: str, email: str, mobile: str) -> OtpRecord:
        """Start registration: email an OTP if the account does not exist"""
        if await self.user_repo.get_by_email(email):
            raise DuplicateAccountError()

        record = await self.otp_service.issue(email, name, mobile)
        await self.email_service.send_registration_otp(record.email, record.code)
        return record

    async def verify_registration(self, email: str, otp: str) -> User:
        """Finish registration: create the account and email its password"""
        record = await self.otp_service.validate(email, otp)

        plain_password = self.credentials.generate_temporary_password()
        name = record.name or normalize_email(email).split("@")[0]

        try:
            user = await self.credentials.create_user(
                name=name,
                email=email,
                mobile=record.mobile,
                password_hash=self.credentials.hash_password(plain_password),
            )
            await self.otp_service.consume(record)
            await self.db.commit()
        except Exception:
            # OTP stays pending when the account could not be created
            await self.db.rollback()
            raise

        logger.info(f"User {user.id} registered with {user.email}")

        await self.email_service.send_account_password(user.email, plain_password)
        await self.email_service.notify_admin_registration(user.name, user.email, user.mobile)
        return user

    async def login(self, email: str, password: str) -> Dict[str, Any]:
        """Authenticate with email and password, return token and profile"""
        user = await self.user_repo.get_by_email(email)
        if not user or not self.credentials.verify_password(password, user.password_hash):
            raise AuthenticationError("Invalid credentials", error_code="INVALID_CREDENTIALS")

        token = create_access_token(user.id, {"email": user.email})
        logger.info(f"User {user.id} logged in")

        await self.email_service.notify_admin_login(user.name, user.email)
        return {"token": token, "user": user.to_profile()}

    async def forgot_password(self, email: str) -> OtpRecord:
        """Email a password reset OTP to an existing account"""
        user = await self.user_repo.get_by_email(email)
        if not user:
            raise NotFoundError("No Email address found. Please register.", error_code="USER_NOT_FOUND")

        record = await self.otp_service.issue(user.email, user.name, user.mobile)
        await self.email_service.send_reset_otp(user.email, record.code)
        return record

    async def reset_password(self, email: str, otp: str) -> None:
        """Verify a reset OTP, rotate the password and email the new one"""
        user = await self.user_repo.get_by_email(email)
        if not user:
            raise NotFoundError("No account found. Please register.", error_code="USER_NOT_FOUND")

        record = await self.otp_service.validate(email, otp)
        new_password = self.credentials.generate_temporary_password()

        try:
            await self.credentials.update_password(user.email, self.credentials.hash_password(new_password))
            await self.otp_service.consume(record)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(f"Password reset for user {user.id}")
        await self.email_service.send_reset_password(user.email, new_password)

    async def change_password(
        self,
        claims: Dict[str, Any],
        email: str,
        old_password: str,
        new_password: str,
    ) -> None:
        """Change password for the authenticated user"""
        if normalize_email(claims.get("email", "")) != normalize_email(email):
            raise AuthorizationError("Email does not match authenticated user", error_code="EMAIL_MISMATCH")

        user = await self.user_repo.get_by_email(email)
        if not user:
            raise NotFoundError("User not found", error_code="USER_NOT_FOUND")

        if not self.credentials.verify_password(old_password, user.password_hash):
            raise AuthenticationError("Old password is incorrect", error_code="INVALID_OLD_PASSWORD")

        await self.credentials.update_password(user.email, self.credentials.hash_password(new_password))
        await self.db.commit()
        logger.info(f"Password changed for user {user.id}")


class UserService:
    """Service layer for user management operations"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.user_repo = UserRepository(db)

    async def get_by_email(self, email: str) -> Optional[User]:
        return await self.user_repo.get_by_email(email)

    async def list_users(self) -> List[User]:
        """All users; callers serialise without password hashes"""
        return await self.user_repo.list_all()

    async def create_admin(self, name: str, email: str, mobile: str, password: str) -> User:
        """Create an admin account directly, bypassing the OTP flow"""
        user = await CredentialService(self.db).create_user(
            name=name,
            email=email,
            mobile=mobile,
            password_hash=get_password_hash(password),
            role=UserRole.ADMIN,
        )
        await self.db.commit()
        return user

    async def set_role(self, email: str, role: UserRole) -> User:
        """Promote or demote an existing account"""
        user = await self.user_repo.get_by_email(email)
        if not user:
            raise NotFoundError("User not found", error_code="USER_NOT_FOUND")
        user.role = UserRole(role).value
        await self.db.commit()
        return user
