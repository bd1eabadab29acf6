"""
Test Configuration — Fixtures for async DB, test client, and seeded tenants.

Each test gets its own in-memory SQLite database. Application code commits
and rolls back freely (alert race handling relies on it), so isolation is
per-engine rather than per-SAVEPOINT.
"""

import os

# Must be set before anything imports core.config / db.session.
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
os.environ["APP_ENV"] = "test"
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["ALERT_PUBLISH_ENABLED"] = "false"
os.environ["SENDGRID_API_KEY"] = ""

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import db.models  # noqa: E402,F401
from api.deps import get_db  # noqa: E402
from api.main import app  # noqa: E402
from db.session import Base  # noqa: E402

ROUTING_KEY = "greenhouse-1"


@pytest.fixture
async def test_engine():
    """Fresh in-memory database with all tables."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def test_db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(test_db):
    """Create an async test client bound to the per-test session."""

    async def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
async def seeded_db(test_db):
    """
    Default organization with its stock profiles, one system and two rows.

    Only plain identifiers are returned: tests that trigger a rollback would
    otherwise be left holding expired ORM instances.
    """
    from identity.bootstrap import create_row, create_system, ensure_default_plant_profiles

    profiles = await ensure_default_plant_profiles(test_db)
    profile_ids = {p.name: p.profile_id for p in profiles}
    organization_id = profiles[0].organization_id

    system = await create_system(
        test_db,
        organization_id=organization_id,
        name="North House",
        routing_key=ROUTING_KEY,
        location="Bay 3",
    )
    row_1 = await create_row(
        test_db, system_id=system.system_id, row_number=1, plant_profile_id=profile_ids["Lettuce"]
    )
    row_2 = await create_row(
        test_db, system_id=system.system_id, row_number=2, plant_profile_id=profile_ids["Basil"]
    )

    return {
        "organization_id": organization_id,
        "system_id": system.system_id,
        "routing_key": ROUTING_KEY,
        "row_ids": {1: row_1.row_id, 2: row_2.row_id},
        "profile_ids": profile_ids,
    }


@pytest.fixture
async def other_tenant(test_db):
    """A second organization owning one plant profile and one system."""
    from db.models import Organization, PlantProfile
    from identity.bootstrap import create_system

    organization = Organization(name="Second Farm", subscription_tier="commercial")
    test_db.add(organization)
    await test_db.commit()

    profile = PlantProfile(
        organization_id=organization.organization_id,
        name="Microgreens",
        parameters={"airTemp": 21, "humidity": 60},
    )
    test_db.add(profile)
    await test_db.commit()

    system = await create_system(
        test_db,
        organization_id=organization.organization_id,
        name="South House",
        routing_key="greenhouse-2",
    )
    return {
        "organization_id": organization.organization_id,
        "profile_id": profile.profile_id,
        "system_id": system.system_id,
        "routing_key": "greenhouse-2",
    }
