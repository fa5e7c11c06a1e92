"""Pytest configuration and fixtures for admissions CRM tests."""

from collections.abc import AsyncGenerator
from typing import Any
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from packages.automation.src.service import WorkflowAutomationService
from packages.core.src.config import CRMConfig
from packages.core.src.protocols import CurrentUser, StaticIdentityProvider
from packages.database.src.models import AutomationRule, Base, Lead
from packages.database.src.repositories import AutomationRuleRepository, LeadRepository

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class RecordingNotifier:
    """Notifier that keeps every send in memory."""

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []

    async def send(self, template_id: str, recipient_email: str, context: dict[str, Any]) -> None:
        self.sent.append(
            {"template_id": template_id, "recipient": recipient_email, "context": context}
        )


class RecordingConverter:
    """Student converter that hands out fresh student ids."""

    def __init__(self) -> None:
        self.converted: list[UUID] = []

    async def create_student_from_lead(self, lead_id: UUID) -> UUID:
        self.converted.append(lead_id)
        return uuid4()


@pytest_asyncio.fixture(scope="function")
async def async_engine():
    """Create async engine for tests."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(async_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests."""
    async_session = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session
        await session.rollback()


@pytest.fixture
def test_config() -> CRMConfig:
    """Engine configuration independent of the developer's environment."""
    return CRMConfig(
        _env_file=None,
        database_url=TEST_DATABASE_URL,
        action_timeout_seconds=2.0,
    )


@pytest.fixture
def owner() -> CurrentUser:
    """The user the engine acts for."""
    return CurrentUser(id=uuid4(), email="advisor@university.edu")


@pytest.fixture
def other_user() -> CurrentUser:
    """A second user who must not see the owner's rules."""
    return CurrentUser(id=uuid4(), email="someone.else@university.edu")


@pytest.fixture
def identity(owner: CurrentUser) -> StaticIdentityProvider:
    return StaticIdentityProvider(owner)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def converter() -> RecordingConverter:
    return RecordingConverter()


@pytest.fixture
def service(
    db_session: AsyncSession,
    identity: StaticIdentityProvider,
    notifier: RecordingNotifier,
    converter: RecordingConverter,
    test_config: CRMConfig,
) -> WorkflowAutomationService:
    """Automation service for the owner with recording collaborators."""
    return WorkflowAutomationService(
        db_session,
        identity=identity,
        notifier=notifier,
        student_converter=converter,
        config=test_config,
    )


@pytest.fixture
def make_lead(db_session: AsyncSession, owner: CurrentUser):
    """Factory for leads owned by the owner."""

    async def _make_lead(**fields: Any) -> Lead:
        fields.setdefault("email", f"applicant-{uuid4().hex[:8]}@example.com")
        fields.setdefault("first_name", "Ada")
        fields.setdefault("last_name", "Lovelace")
        fields.setdefault("user_id", owner.id)
        return await LeadRepository(db_session).create(**fields)

    return _make_lead


@pytest.fixture
def make_rule(db_session: AsyncSession, owner: CurrentUser):
    """Factory for rules written straight to the store, skipping validation."""

    async def _make_rule(**fields: Any) -> AutomationRule:
        fields.setdefault("owner_id", owner.id)
        fields.setdefault("name", "Test rule")
        fields.setdefault("trigger_type", "lead_created")
        return await AutomationRuleRepository(db_session).create(**fields)

    return _make_rule


@pytest.fixture
def auth_headers(owner: CurrentUser) -> dict[str, str]:
    """Generate auth headers with a token for the owner."""
    from services.gateway.src.auth.utils import create_access_token

    token = create_access_token(user_id=owner.id, email=owner.email)
    return {"Authorization": f"Bearer {token}"}
