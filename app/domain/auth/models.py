from datetime import datetime
from sqlalchemy import Column, String, DateTime, Integer, Index
import uuid
import enum

from app.infrastructure.database import Base


def gen_uuid():
    return str(uuid.uuid4())


def normalize_email(email: str) -> str:
    """Lowercased form used for every storage and lookup of an email"""
    return email.strip().lower()


class UserRole(str, enum.Enum):
    """Account roles"""
    USER = "user"
    ADMIN = "admin"


class OtpStatus(str, enum.Enum):
    """OTP lifecycle states"""
    PENDING = "pending"
    USED = "used"
    EXPIRED = "expired"


class User(Base):
    """Registered account, created only after OTP verification"""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=gen_uuid)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(100), nullable=False)
    mobile = Column(String(20), nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(16), nullable=False, default=UserRole.USER.value)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

    def to_profile(self) -> dict:
        """Profile returned to the client after login"""
        return {
            "role": self.role or UserRole.USER.value,
            "username": self.name,
            "mobile": self.mobile,
            "email": self.email,
            "createdAt": self.created_at,
        }


class OtpRecord(Base):
    """One OTP issuance; rows are never deleted"""
    __tablename__ = "otp_records"
    __table_args__ = (
        Index("ix_otp_records_email_status_created", "email", "status", "created_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False, index=True)
    name = Column(String(100), nullable=True)
    mobile = Column(String(20), nullable=False)
    code = Column(String(6), nullable=False)
    status = Column(String(16), nullable=False, default=OtpStatus.PENDING.value, index=True)
    expires_at = Column(DateTime, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def is_expired(self, now: datetime) -> bool:
        """Check if the code is past its expiry"""
        return now > self.expires_at
