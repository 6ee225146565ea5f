import os

# Settings are read at import time, so point them at SQLite before importing the app
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

import uuid
from datetime import datetime, timedelta
from decimal import Decimal

import jwt
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.api.deps import get_current_user
from app.core.auth import JWT_AUDIENCE, User
from app.core.config import settings
from app.core.database import Base, get_async_session
from app.main import app
from app.models import user as _models  # noqa: F401
from app.services.budget import DatabaseBudgetPreferenceProvider, DatabaseCategoryResolver
from app.services.distribution_engine import DistributionEngine


@pytest.fixture
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def session(db_engine):
    factory = async_sessionmaker(bind=db_engine, expire_on_commit=False, class_=AsyncSession)
    async with factory() as session:
        yield session


async def _make_user(session, email, needs="50", wants="30", savings="20"):
    user = User(
        id=uuid.uuid4(),
        email=email,
        hashed_password="not-a-real-hash",
        is_active=True,
        is_superuser=False,
        is_verified=True,
        full_name="Test User",
        preferred_currency="INR",
        budget_needs_percentage=Decimal(needs),
        budget_wants_percentage=Decimal(wants),
        budget_savings_percentage=Decimal(savings),
    )
    session.add(user)
    await session.commit()
    return user


@pytest.fixture
async def owner_id(session):
    """Id of a user on the default 50/30/20 split."""
    user = await _make_user(session, "asha@example.com")
    return user.id


@pytest.fixture
async def other_owner_id(session):
    user = await _make_user(session, "ravi@example.com")
    return user.id


@pytest.fixture
def make_user(session):
    async def factory(email, **percentages):
        user = await _make_user(session, email, **percentages)
        return user.id
    return factory


@pytest.fixture
def ledger(session):
    return DistributionEngine(
        session,
        preferences=DatabaseBudgetPreferenceProvider(session),
        categories=DatabaseCategoryResolver(session),
    )


@pytest.fixture
async def client(session, owner_id):
    async def override_session():
        yield session

    async def override_current_user():
        # Re-read each request: a rolled back request expires loaded rows
        return await session.get(User, owner_id)

    app.dependency_overrides[get_async_session] = override_session
    app.dependency_overrides[get_current_user] = override_current_user
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def issue_token():
    """Sign a bearer token the way the JWT login backend does."""
    def sign(user_id, minutes=5):
        payload = {
            "sub": str(user_id),
            "aud": JWT_AUDIENCE,
            "exp": datetime.utcnow() + timedelta(minutes=minutes),
        }
        return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    return sign
