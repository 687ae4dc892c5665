"""
Test fixtures for ImpactCal tests.

Provides:
- Async DB session fixture (SQLite in-memory, fresh per test)
- Tenant ids and JWT tokens per role
- FastAPI test client with the DB dependency overridden
- Sample data helpers (validations, weight vectors)
"""

import uuid
from typing import AsyncGenerator, Iterable

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from impactcal.auth.jwt import create_access_token
from impactcal.db.engine import Base
from impactcal.db.models import ImpactValidation, ImpactWeight  # noqa: F401 (registers all models)

# In-memory SQLite; StaticPool keeps every session on the same connection
TEST_DB_URL = "sqlite+aiosqlite:///:memory:"

DEFAULT_WEIGHTS = {
    "engagement": 0.25,
    "completion": 0.25,
    "feedback_quality": 0.25,
    "compliance_linkage": 0.25,
}


@pytest_asyncio.fixture
async def engine():
    """Create a test database engine with all tables."""
    eng = create_async_engine(
        TEST_DB_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Provide a DB session per test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


# ── Tenants & tokens ─────────────────────────────────────────────────────


@pytest.fixture
def tenant_a() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def tenant_b() -> uuid.UUID:
    return uuid.uuid4()


def make_token(tenant_id: uuid.UUID, role: str) -> str:
    return create_access_token(
        user_id=f"{role}-{uuid.uuid4().hex[:8]}",
        tenant_id=str(tenant_id),
        email=f"{role}@test.com",
        role=role,
    )


def auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def viewer_token(tenant_a) -> str:
    return make_token(tenant_a, "viewer")


@pytest.fixture
def analyst_token(tenant_a) -> str:
    return make_token(tenant_a, "analyst")


@pytest.fixture
def manager_token(tenant_a) -> str:
    return make_token(tenant_a, "manager")


@pytest.fixture
def admin_token(tenant_a) -> str:
    return make_token(tenant_a, "admin")


@pytest.fixture
def super_admin_token(tenant_a) -> str:
    return make_token(tenant_a, "super_admin")


@pytest.fixture
def tenant_b_admin_token(tenant_b) -> str:
    return make_token(tenant_b, "admin")


# ── API client ───────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Unauthenticated async test client; pass headers=auth(token) per request."""
    from impactcal.api.deps import get_db
    from impactcal.main import app

    async def _override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


# ── Sample Data Helpers ──────────────────────────────────────────────────


async def add_validations(
    session: AsyncSession,
    tenant_id: uuid.UUID,
    pairs: Iterable[tuple],
    model_version: int = 1,
    period: tuple[int, int] = (2026, 1),
) -> None:
    """Insert (predicted, actual) pairs; either score may be None."""
    year, month = period
    for predicted, actual in pairs:
        session.add(ImpactValidation(
            id=uuid.uuid4(),
            tenant_id=tenant_id,
            model_version=model_version,
            period_year=year,
            period_month=month,
            predicted_score=predicted,
            actual_score=actual,
        ))
    await session.commit()


async def add_weights(
    session: AsyncSession,
    tenant_id: uuid.UUID,
    version: int = 1,
    weights: dict | None = None,
    is_active: bool = True,
) -> ImpactWeight:
    w = weights or DEFAULT_WEIGHTS
    row = ImpactWeight(
        id=uuid.uuid4(),
        tenant_id=tenant_id,
        version=version,
        engagement_weight=w["engagement"],
        completion_weight=w["completion"],
        feedback_quality_weight=w["feedback_quality"],
        compliance_linkage_weight=w["compliance_linkage"],
        is_active=is_active,
    )
    session.add(row)
    await session.commit()
    return row
