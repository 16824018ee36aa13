import uuid

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

import flagquiz.models  # noqa: F401
from flagquiz.core.config import settings
from flagquiz.core.database import Base, build_engine, get_db, get_redis
from flagquiz.core.security import create_access_token
from flagquiz.main import app
from flagquiz.models import User

WEBHOOK_SECRET = "whsec_test_secret"


class FakeKV:
    """Redis 대신 쓰는 메모리 키-값 저장소"""

    def __init__(self):
        self.data = {}

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value):
        self.data[key] = value
        return True


@pytest.fixture()
async def engine(tmp_path):
    test_engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture()
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture()
def kv():
    return FakeKV()


@pytest.fixture()
def make_user(session_factory):
    async def _make_user(is_admin=False, is_active=True):
        suffix = uuid.uuid4().hex[:8]
        user = User(
            email=f"user_{suffix}@example.com",
            username=f"user_{suffix}",
            is_admin=is_admin,
            is_active=is_active,
        )
        async with session_factory() as session:
            session.add(user)
            await session.commit()
        return user

    return _make_user


@pytest.fixture()
def webhook_secret(monkeypatch):
    monkeypatch.setattr(settings, "STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)
    return WEBHOOK_SECRET


@pytest.fixture()
def auth_headers():
    def _auth_headers(user):
        token = create_access_token({"sub": str(user.id)})
        return {"Authorization": f"Bearer {token}"}

    return _auth_headers


@pytest.fixture()
async def client(session_factory, kv):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    async def override_get_redis():
        return kv

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as test_client:
        yield test_client
    app.dependency_overrides.clear()
