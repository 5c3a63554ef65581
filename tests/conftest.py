"""Shared test fixtures for the automation queue API.

Uses an in-memory SQLite async engine so tests run without PostgreSQL.
"""

import asyncio
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret")
os.environ.setdefault("AUTOMATION_SECRET", "test-automation-secret")

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.database import Base, get_db
from app.core.deps import get_provider_registry
from app.main import app
from app.services.providers import ProviderRegistry, SendResult

# Import all models to ensure they're registered with Base.metadata
from app.models.automation_job import AutomationJob  # noqa: F401
from app.models.communication_log import CommunicationLog  # noqa: F401
from app.models.profile import Profile


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
AUTOMATION_SECRET = os.environ["AUTOMATION_SECRET"]

engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=StaticPool)
TestSession = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class FakeAdapter:
    """Provider stand-in that replays a scripted list of results.

    The last result repeats once the script runs out.
    """

    def __init__(self, channel: str, results=None, delay: float = 0):
        self.channel = channel
        self.results = list(results or [SendResult(ok=True, provider_id=f"{channel}-msg-1", raw_response={"ok": True})])
        self.delay = delay
        self.calls = []

    async def send(self, action, recipient, body, subject=None, template_id=None, template_params=None):
        self.calls.append({
            "action": action,
            "recipient": recipient,
            "body": body,
            "subject": subject,
            "template_id": template_id,
            "template_params": template_params,
        })
        if self.delay:
            await asyncio.sleep(self.delay)
        if len(self.results) > 1:
            return self.results.pop(0)
        return self.results[0]


@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def override_get_db():
    async with TestSession() as session:
        yield session


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture
def email_adapter():
    return FakeAdapter("email")


@pytest.fixture
def whatsapp_adapter():
    return FakeAdapter("whatsapp")


@pytest.fixture
def registry(email_adapter, whatsapp_adapter):
    """Provider registry backed by fakes, also served to the API."""
    reg = ProviderRegistry(email=email_adapter, whatsapp=whatsapp_adapter)
    app.dependency_overrides[get_provider_registry] = lambda: reg
    yield reg
    app.dependency_overrides.pop(get_provider_registry, None)


@pytest_asyncio.fixture
async def client(registry):
    """Async HTTP test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def db():
    """Direct DB session for test setup/assertions."""
    async with TestSession() as session:
        yield session


async def _profile_with_token(db, email, role):
    from app.services.auth import create_access_token

    profile = Profile(email=email, full_name=email.split("@")[0].title(), role=role, is_active=True)
    db.add(profile)
    await db.commit()
    await db.refresh(profile)
    token = create_access_token({"sub": str(profile.id)})
    return {"profile": profile, "token": token, "headers": {"Authorization": f"Bearer {token}"}}


@pytest_asyncio.fixture
async def admin(db):
    """Admin profile plus auth headers."""
    return await _profile_with_token(db, "admin@example.com", "admin")


@pytest_asyncio.fixture
async def staff(db):
    """Non-admin profile plus auth headers."""
    return await _profile_with_token(db, "staff@example.com", "staff")


@pytest.fixture
def secret_headers():
    return {"x-automation-secret": AUTOMATION_SECRET}


@pytest.fixture
def session_factory():
    """Opens extra sessions, one per simulated worker."""
    return TestSession
