import os

os.environ.setdefault("SECRET_KEY", "test-secret-key")

import re
import uuid
from datetime import datetime, timedelta
from typing import AsyncGenerator, List, Optional, Set

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings
from app.core.exceptions import DeliveryError
from app.core.security import create_access_token
from app.domain.auth.models import User
from app.domain.auth.service import AuthenticationService, CredentialService, UserService
from app.infrastructure.database import Database
from app.infrastructure.notifications import DeliveryReceipt, EmailMessage, Notifier
from app.main import create_app
from app.services.email import EmailService

ADMIN_INBOX = "admin-inbox@example.com"
OTP_PATTERN = re.compile(r"\b(\d{6})\b")
PASSWORD_PATTERN = re.compile(r"password is: (\w+)")


class RecordingNotifier(Notifier):
    """Notifier test double that keeps every message it is asked to send."""

    def __init__(self):
        self.sent: List[EmailMessage] = []
        self.fail_subjects: Set[str] = set()
        self.fail_all = False

    async def send(self, message: EmailMessage) -> DeliveryReceipt:
        if self.fail_all or message.subject in self.fail_subjects:
            raise DeliveryError(details={"recipient": message.to})
        self.sent.append(message)
        return DeliveryReceipt(message_id=str(uuid.uuid4()), recipient=message.to, channel="test")

    def messages_to(self, recipient: str) -> List[EmailMessage]:
        return [m for m in self.sent if m.to == recipient]

    def last_to(self, recipient: str) -> Optional[EmailMessage]:
        messages = self.messages_to(recipient)
        return messages[-1] if messages else None

    def otp_for(self, recipient: str) -> str:
        return OTP_PATTERN.search(self.last_to(recipient).text).group(1)

    def password_for(self, recipient: str) -> str:
        return PASSWORD_PATTERN.search(self.last_to(recipient).text).group(1)


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: Optional[datetime] = None):
        self.now = now or datetime(2025, 1, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        SECRET_KEY=os.environ["SECRET_KEY"],
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        APP_TO_EMAIL=ADMIN_INBOX,
        EMAIL_HOST=None,
        EMAIL_USER=None,
        EMAIL_PASS=None,
    )


@pytest.fixture
async def database(test_settings: Settings) -> AsyncGenerator[Database, None]:
    """Fresh SQLite database file per test."""
    database = Database(test_settings.DATABASE_URL)
    await database.init()
    yield database
    await database.close()


@pytest.fixture
async def db(database: Database) -> AsyncGenerator[AsyncSession, None]:
    async with database.session() as session:
        yield session


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def email_service(notifier: RecordingNotifier) -> EmailService:
    return EmailService(notifier, otp_expire_minutes=5, admin_email=ADMIN_INBOX)


@pytest.fixture
def auth_service(db: AsyncSession, email_service: EmailService, clock: FrozenClock) -> AuthenticationService:
    return AuthenticationService(db, email_service, otp_expire_minutes=5, clock=clock)


@pytest.fixture
def app(test_settings: Settings, database: Database, notifier: RecordingNotifier):
    return create_app(settings=test_settings, database=database, notifier=notifier)


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client bound to the app; lifespan is not run, the database fixture is already initialised."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def test_user(db: AsyncSession) -> User:
    """Create a regular user with a known password."""
    credentials = CredentialService(db)
    user = await credentials.create_user(
        name="Test User",
        email="test@example.com",
        mobile="5551234",
        password_hash=credentials.hash_password("testpassword123"),
    )
    await db.commit()
    return user


@pytest.fixture
async def admin_user(db: AsyncSession) -> User:
    """Create an admin user with a known password."""
    return await UserService(db).create_admin(
        name="Admin User",
        email="admin@example.com",
        mobile="5550000",
        password="adminpassword123",
    )


@pytest.fixture
def test_token(test_user: User) -> str:
    return create_access_token(test_user.id, {"email": test_user.email})


@pytest.fixture
def admin_token(admin_user: User) -> str:
    return create_access_token(admin_user.id, {"email": admin_user.email})


@pytest.fixture
async def authenticated_client(client: AsyncClient, test_token: str) -> AsyncGenerator[AsyncClient, None]:
    client.headers.update({"Authorization": f"Bearer {test_token}"})
    yield client


@pytest.fixture
async def admin_client(client: AsyncClient, admin_token: str) -> AsyncGenerator[AsyncClient, None]:
    client.headers.update({"Authorization": f"Bearer {admin_token}"})
    yield client


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")
    config.addinivalue_line("markers", "auth: mark test as authentication related")
    config.addinivalue_line("markers", "contact: mark test as contact relay related")
