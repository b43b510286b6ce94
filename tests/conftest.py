"""Pytest configuration and fixtures.

Every test gets its own in-memory SQLite database, so no PostgreSQL server
is needed.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret")

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from app.database import Base, get_db
from app.main import app
from app.core.security import create_access_token
from app.models.task import Task
from app.models.user import User, ROLE_ADMIN, ROLE_WORKER
from app.services.cache import get_cache
from app.utils.password import hash_password


VALID_TASK = {
    "description": "Screen repair",
    "totalCost": 1500,
    "customerName": "Ivan Petrov",
    "customerPhone": "+996700000000",
    "laptopBrand": "Dell",
    "laptopModel": "XPS13",
}


@pytest_asyncio.fixture
async def engine():
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
def session_factory(engine):
    return async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
def clear_cache():
    get_cache().clear()
    yield
    get_cache().clear()


@pytest_asyncio.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def make_user(db, email, role=ROLE_WORKER, name=None, password="password123", is_active=True):
    user = User(
        email=email,
        name=name or email.split("@")[0],
        role=role,
        hashed_password=hash_password(password),
        is_active=is_active,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


async def make_task(db, assigned_to=None, status="Pending", description="Keyboard replacement"):
    task = Task(
        description=description,
        customer_name="Customer",
        customer_phone="+996700000001",
        laptop_brand="Lenovo",
        laptop_model="T480",
        total_cost=100,
        status=status,
        assigned_to_id=assigned_to.id if assigned_to else None,
    )
    db.add(task)
    await db.commit()
    await db.refresh(task)
    return task


def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token({'sub': str(user.id)})}"}


@pytest_asyncio.fixture
async def admin(db):
    return await make_user(db, "admin@example.com", role=ROLE_ADMIN, name="Admin")
