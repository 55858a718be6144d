import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

sys.path.append(str(Path(__file__).parents[1] / "src"))

from bankfeed.api.deps import get_http_client
from bankfeed.config import Settings, get_settings
from bankfeed.core.security import TokenCipher
from bankfeed.db.session import get_db, get_session_factory
from bankfeed.main import app
from fakes import FakeMonzo

TEST_ENCRYPTION_KEY = "00" * 32
TEST_WEBHOOK_SECRET = "whsec_test_0123456789"

test_engine = create_async_engine(
    "sqlite+aiosqlite:///:memory:",
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def fake_monzo() -> FakeMonzo:
    return FakeMonzo()


@pytest.fixture
def test_settings() -> Settings:
    """Settings with every secret configured."""
    return Settings(
        app_env="test",
        database_url="sqlite+aiosqlite:///:memory:",
        monzo_client_id="oauth2client_00009",
        monzo_client_secret="client-secret",
        monzo_redirect_uri="http://test/api/v1/bank/monzo/callback",
        monzo_webhook_secret=TEST_WEBHOOK_SECRET,
        webhook_base_url="https://bankfeed.example.com",
        bank_token_encryption_key=TEST_ENCRYPTION_KEY,
    )


@pytest.fixture
def cipher() -> TokenCipher:
    return TokenCipher(TEST_ENCRYPTION_KEY)


@pytest.fixture(scope="function")
async def setup_database():
    """Create tables for tests that need the database, and drop them after.

    This fixture is intentionally NOT autouse so pure unit tests can run
    without touching the database.
    """
    from bankfeed.models.base import BaseModel

    async with test_engine.begin() as conn:
        await conn.run_sync(BaseModel.metadata.create_all)

    yield

    async with test_engine.begin() as conn:
        await conn.run_sync(BaseModel.metadata.drop_all)


@pytest.fixture
async def db_session(setup_database):
    """Provide test database session with fresh connection per test."""
    async with TestSessionLocal() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def test_property(db_session: AsyncSession):
    from bankfeed.models.property import Property
    from bankfeed.repositories.property import PropertyRepository

    return await PropertyRepository(db_session).create(
        Property(name="12 Harbour Street", address="12 Harbour Street, Bristol")
    )


@pytest.fixture
async def bank_account(db_session: AsyncSession, cipher: TokenCipher):
    """Connected account whose tokens the fake provider accepts."""
    from bankfeed.models.bank_account import BankAccount, SyncStatus
    from bankfeed.repositories.bank_account import BankAccountRepository

    return await BankAccountRepository(db_session).create(
        BankAccount(
            account_id="acc_00009",
            account_name="Joint account",
            account_type="uk_retail_joint",
            provider="monzo",
            access_token=cipher.encrypt("access-1"),
            refresh_token=cipher.encrypt("refresh-1"),
            sync_enabled=True,
            sync_from_date=datetime.now(timezone.utc) - timedelta(days=90),
            last_sync_status=SyncStatus.NEVER_SYNCED,
        )
    )


@pytest.fixture
async def client(db_session: AsyncSession, test_settings: Settings, fake_monzo: FakeMonzo):
    """Provide test client with database, settings and provider overrides."""
    http = fake_monzo.http_client()

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_http_client] = lambda: http
    app.dependency_overrides[get_session_factory] = lambda: TestSessionLocal

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    await http.aclose()
