"""
Pytest Configuration and Fixtures
"""

import pytest
from typing import AsyncGenerator, Awaitable, Callable

from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import avdesign.database as database
import avdesign.models  # noqa: F401
from avdesign.database import Base, get_db
from avdesign.main import app
from avdesign.models import Template
from avdesign.schemas import TemplateCreate
from avdesign.services import (
    ApplicationEngine,
    SQLProjectService,
    SQLQuoteService,
    SQLRoomService,
    TemplateService,
)


# Single shared in-memory connection per test
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

AUTHOR_ID = "user-1"
ORG_ID = "org-1"


class FlakyRoomService(SQLRoomService):
    """Room service whose n-th create fails."""

    def __init__(self, db, fail_on: int):
        super().__init__(db)
        self.fail_on = fail_on
        self.calls = 0

    async def create(self, project_id, spec):
        self.calls += 1
        if self.calls == self.fail_on:
            raise RuntimeError("room store unavailable")
        return await super().create(project_id, spec)


@pytest.fixture
async def test_engine():
    """Create test database engine."""
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
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Get database session for tests."""
    async_session = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )

    async with async_session() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def async_client(db_session) -> AsyncGenerator[AsyncClient, None]:
    """Async test client sharing the test session with the app."""
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def committing_client(session_factory, monkeypatch) -> AsyncGenerator[AsyncClient, None]:
    """Client whose requests run through the app's own commit/rollback session handling."""
    monkeypatch.setattr(database, "async_session_factory", session_factory)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def template_service(db_session) -> TemplateService:
    return TemplateService(db_session)


@pytest.fixture
def engine(db_session, template_service) -> ApplicationEngine:
    return ApplicationEngine(
        template_service,
        rooms=SQLRoomService(db_session),
        projects=SQLProjectService(db_session),
        quotes=SQLQuoteService(db_session),
        grid_spacing=2,
        rollback=True,
    )


@pytest.fixture
def create_template(template_service) -> Callable[..., Awaitable[Template]]:
    """Factory creating a template of the content's type."""
    async def _create(content: dict, name: str = "Template", author_id: str = AUTHOR_ID, **fields) -> Template:
        data = TemplateCreate(
            type=content["type"],
            name=name,
            org_id=fields.pop("org_id", ORG_ID),
            content=content,
            **fields,
        )
        return await template_service.create(data, author_id)

    return _create


# =============================================================================
# Sample content
# =============================================================================

@pytest.fixture
def room_content() -> dict:
    """Conference room, 20 x 15, with a display and a camera."""
    return {
        "type": "room",
        "room_type": "conference",
        "width": 20,
        "length": 15,
        "ceiling_height": 9,
        "platform": "teams",
        "ecosystem": "poly",
        "tier": "standard",
        "placed_equipment": [
            {
                "equipment_id": "eq-display",
                "position": {"x": 10, "y": 1},
                "rotation": 0,
                "label": "Front display",
            },
            {
                "equipment_id": "eq-camera",
                "position": {"x": 10, "y": 2},
                "rotation": 180,
            },
        ],
        "connections": [
            {
                "from_equipment_id": "eq-camera",
                "from_port": "usb",
                "to_equipment_id": "eq-display",
                "to_port": "usb-in",
                "cable_type": "USB 3.0",
            }
        ],
    }


@pytest.fixture
def package_content() -> dict:
    return {
        "type": "equipment_package",
        "category": "audio",
        "items": [
            {"equipment_id": "eq-mic", "quantity": 3, "notes": "Ceiling array"},
            {"equipment_id": "eq-dsp", "quantity": 1},
        ],
        "total_estimated_cost": 4200,
    }


@pytest.fixture
def quote_content() -> dict:
    return {
        "type": "quote",
        "sections": [
            {"name": "Displays", "category": "video", "default_margin": 25},
            {"name": "Audio", "category": "audio", "default_margin": 30},
            {"name": "Install", "category": "labor", "default_margin": 40},
        ],
        "default_margins": {"equipment": 22, "labor": 35},
        "labor_rates": [{"category": "install", "rate_per_hour": 95}],
        "tax_settings": {"rate": 8.25, "applies_to": ["equipment"]},
        "terms_text": "Net 30",
    }
