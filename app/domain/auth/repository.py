from typing import Optional, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from datetime import datetime

from app.core.exceptions import DuplicateAccountError
from app.domain.auth.models import User, OtpRecord, OtpStatus, normalize_email


class UserRepository:
    """Repository for user data access operations

    Writes are flushed, not committed; the service owning the unit of work
    commits.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_email(self, email: str) -> Optional[User]:
        """Get user by email"""
        result = await self.db.execute(
            select(User).where(User.email == normalize_email(email))
        )
        return result.scalar_one_or_none()

    async def create(self, user_data: dict) -> User:
        """Insert a user; the unique email index rejects duplicates"""
        user_data = dict(user_data)
        user_data["email"] = normalize_email(user_data["email"])
        user = User(**user_data)
        self.db.add(user)

        try:
            await self.db.flush()
        except IntegrityError as e:
            # the whole unit of work is abandoned, not just this insert
            await self.db.rollback()
            raise DuplicateAccountError() from e

        return user

    async def update_password(self, email: str, password_hash: str) -> bool:
        """Replace a user's password hash; True if a row changed"""
        result = await self.db.execute(
            update(User)
            .where(User.email == normalize_email(email))
            .values(password_hash=password_hash, updated_at=datetime.utcnow())
        )
        return result.rowcount > 0

    async def list_all(self) -> List[User]:
        """Get all users, oldest first"""
        result = await self.db.execute(select(User).order_by(User.created_at))
        return list(result.scalars().all())


class OtpRepository:
    """Repository for OTP records"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, otp_data: dict) -> OtpRecord:
        """Append a new pending OTP record"""
        otp_data = dict(otp_data)
        otp_data["email"] = normalize_email(otp_data["email"])
        otp_data.setdefault("status", OtpStatus.PENDING.value)
        record = OtpRecord(**otp_data)
        self.db.add(record)
        await self.db.flush()
        return record

    async def get_latest_pending(self, email: str) -> Optional[OtpRecord]:
        """Most recently created pending record for the email"""
        result = await self.db.execute(
            select(OtpRecord)
            .where(
                OtpRecord.email == normalize_email(email),
                OtpRecord.status == OtpStatus.PENDING.value
            )
            .order_by(OtpRecord.created_at.desc(), OtpRecord.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_by_id(self, record_id: int) -> Optional[OtpRecord]:
        result = await self.db.execute(select(OtpRecord).where(OtpRecord.id == record_id))
        return result.scalar_one_or_none()

    async def list_for_email(self, email: str) -> List[OtpRecord]:
        """Full issuance history for an email, newest first"""
        result = await self.db.execute(
            select(OtpRecord)
            .where(OtpRecord.email == normalize_email(email))
            .order_by(OtpRecord.created_at.desc(), OtpRecord.id.desc())
        )
        return list(result.scalars().all())

    async def _transition(self, record_id: int, from_status: OtpStatus, to_status: OtpStatus) -> bool:
        result = await self.db.execute(
            update(OtpRecord)
            .where(OtpRecord.id == record_id, OtpRecord.status == from_status.value)
            .values(status=to_status.value, updated_at=datetime.utcnow())
        )
        return result.rowcount > 0

    async def mark_used(self, record_id: int) -> bool:
        """pending -> used, only if still pending"""
        return await self._transition(record_id, OtpStatus.PENDING, OtpStatus.USED)

    async def expire(self, record_id: int) -> bool:
        """pending -> expired, only if still pending"""
        return await self._transition(record_id, OtpStatus.PENDING, OtpStatus.EXPIRED)

    async def expire_pending_for_email(self, email: str) -> int:
        """Expire every pending record for the email"""
        result = await self.db.execute(
            update(OtpRecord)
            .where(
                OtpRecord.email == normalize_email(email),
                OtpRecord.status == OtpStatus.PENDING.value
            )
            .values(status=OtpStatus.EXPIRED.value, updated_at=datetime.utcnow())
        )
        return result.rowcount
