import re
from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import InvalidOtpError, OtpExpiredError, OtpNotFoundError
from app.domain.auth.models import OtpStatus
from app.domain.auth.repository import OtpRepository
from app.domain.auth.service import OtpService
from app.infrastructure.database import Database


async def stored_status(database: Database, record_id: int) -> str:
    """Status as stored, read through a fresh session"""
    async with database.session() as session:
        record = await OtpRepository(session).get_by_id(record_id)
        return record.status


@pytest.fixture
def otp_service(db: AsyncSession, clock) -> OtpService:
    """OTP service on a frozen clock"""
    return OtpService(db, expire_minutes=5, clock=clock)


@pytest.fixture
def fixed_codes(monkeypatch):
    """Make generate_code return the given codes in order"""
    def _set(*codes):
        it = iter(codes)
        monkeypatch.setattr(OtpService, "generate_code", staticmethod(lambda: next(it)))
    return _set


@pytest.mark.auth
@pytest.mark.unit
class TestOtpIssue:
    """Test OTP issuance"""

    def test_generate_code_is_six_digits(self) -> None:
        """Test generated codes stay within 100000-999999"""
        for _ in range(500):
            code = OtpService.generate_code()
            assert re.fullmatch(r"\d{6}", code)
            assert 100000 <= int(code) <= 999999

    async def test_issue_creates_pending_record(self, otp_service: OtpService, database: Database, clock) -> None:
        """Test issue stores a pending record expiring five minutes later"""
        record = await otp_service.issue("Ann@Example.com", "Ann", "5551234")

        assert re.fullmatch(r"\d{6}", record.code)
        assert await stored_status(database, record.id) == OtpStatus.PENDING.value
        assert record.email == "ann@example.com"
        assert record.name == "Ann"
        assert record.mobile == "5551234"
        assert record.created_at == clock.now
        assert record.expires_at - record.created_at == timedelta(minutes=5)

    async def test_issue_keeps_history(self, otp_service: OtpService, db: AsyncSession) -> None:
        """Test earlier pending records are kept when a new one is issued"""
        await otp_service.issue("ann@example.com", "Ann", "5551234")
        await otp_service.issue("ann@example.com", "Ann", "5551234")

        history = await OtpRepository(db).list_for_email("ann@example.com")
        assert len(history) == 2
        assert all(r.status == OtpStatus.PENDING.value for r in history)

    async def test_issue_supersedes_when_enabled(self, db: AsyncSession, clock) -> None:
        """Test older pending records expire on new issuance when configured"""
        service = OtpService(db, expire_minutes=5, supersede_pending=True, clock=clock)
        first = await service.issue("ann@example.com", "Ann", "5551234")
        second = await service.issue("ann@example.com", "Ann", "5551234")

        history = {r.id: r.status for r in await OtpRepository(db).list_for_email("ann@example.com")}
        assert history[first.id] == OtpStatus.EXPIRED.value
        assert history[second.id] == OtpStatus.PENDING.value


@pytest.mark.auth
@pytest.mark.unit
class TestOtpValidate:
    """Test OTP validation ordering and transitions"""

    async def test_validate_success(self, otp_service: OtpService) -> None:
        """Test the correct code returns the pending record unchanged"""
        record = await otp_service.issue("ann@example.com", "Ann", "5551234")

        validated = await otp_service.validate("ann@example.com", record.code)

        assert validated.id == record.id
        assert validated.status == OtpStatus.PENDING.value

    async def test_validate_is_case_insensitive_on_email(self, otp_service: OtpService) -> None:
        """Test lookup uses the normalized email"""
        record = await otp_service.issue("ann@example.com", "Ann", "5551234")

        validated = await otp_service.validate("ANN@EXAMPLE.COM", record.code)
        assert validated.id == record.id

    async def test_validate_without_pending_record(self, otp_service: OtpService) -> None:
        """Test validation with nothing issued"""
        with pytest.raises(OtpNotFoundError):
            await otp_service.validate("nobody@example.com", "123456")

    async def test_validate_wrong_code(self, otp_service: OtpService, database: Database, fixed_codes) -> None:
        """Test a mismatching code is rejected and the record stays pending"""
        fixed_codes("111111")
        record = await otp_service.issue("ann@example.com", "Ann", "5551234")

        with pytest.raises(InvalidOtpError):
            await otp_service.validate("ann@example.com", "222222")
        assert await stored_status(database, record.id) == OtpStatus.PENDING.value

    async def test_wrong_code_checked_before_expiry(
        self, otp_service: OtpService, database: Database, clock, fixed_codes
    ) -> None:
        """Test an expired record with a wrong code reports the code, not the expiry"""
        fixed_codes("111111")
        record = await otp_service.issue("ann@example.com", "Ann", "5551234")
        clock.advance(minutes=10)

        with pytest.raises(InvalidOtpError):
            await otp_service.validate("ann@example.com", "222222")
        assert await stored_status(database, record.id) == OtpStatus.PENDING.value

    async def test_validate_expired(self, otp_service: OtpService, clock, database: Database) -> None:
        """Test an expired code transitions the record to expired"""
        record = await otp_service.issue("ann@example.com", "Ann", "5551234")
        clock.advance(minutes=5, seconds=1)

        with pytest.raises(OtpExpiredError):
            await otp_service.validate("ann@example.com", record.code)

        assert await stored_status(database, record.id) == OtpStatus.EXPIRED.value

        # nothing pending is left afterwards
        with pytest.raises(OtpNotFoundError):
            await otp_service.validate("ann@example.com", record.code)

    async def test_validate_at_expiry_instant(self, otp_service: OtpService, clock) -> None:
        """Test a code is still accepted exactly at expires_at"""
        record = await otp_service.issue("ann@example.com", "Ann", "5551234")
        clock.advance(minutes=5)

        validated = await otp_service.validate("ann@example.com", record.code)
        assert validated.id == record.id

    async def test_only_latest_pending_is_active(self, otp_service: OtpService, fixed_codes) -> None:
        """Test an older pending code is not accepted once a newer one exists"""
        fixed_codes("111111", "222222")
        await otp_service.issue("ann@example.com", "Ann", "5551234")
        latest = await otp_service.issue("ann@example.com", "Ann", "5551234")

        with pytest.raises(InvalidOtpError):
            await otp_service.validate("ann@example.com", "111111")

        validated = await otp_service.validate("ann@example.com", "222222")
        assert validated.id == latest.id


@pytest.mark.auth
@pytest.mark.unit
class TestOtpConsume:
    """Test OTP consumption"""

    async def test_consume_marks_used(self, otp_service: OtpService, db: AsyncSession, database: Database) -> None:
        """Test consume transitions pending to used"""
        record = await otp_service.issue("ann@example.com", "Ann", "5551234")
        await otp_service.consume(await otp_service.validate("ann@example.com", record.code))
        await db.commit()

        assert await stored_status(database, record.id) == OtpStatus.USED.value

    async def test_used_code_is_not_found(self, otp_service: OtpService, db: AsyncSession) -> None:
        """Test validating an already used code reports no pending OTP"""
        record = await otp_service.issue("ann@example.com", "Ann", "5551234")
        await otp_service.consume(await otp_service.validate("ann@example.com", record.code))
        await db.commit()

        with pytest.raises(OtpNotFoundError):
            await otp_service.validate("ann@example.com", record.code)

    async def test_consume_twice_fails(self, otp_service: OtpService, db: AsyncSession) -> None:
        """Test the compare-and-swap refuses a second consumption"""
        record = await otp_service.issue("ann@example.com", "Ann", "5551234")
        validated = await otp_service.validate("ann@example.com", record.code)
        await otp_service.consume(validated)
        await db.commit()

        with pytest.raises(OtpNotFoundError):
            await otp_service.consume(validated)
