import os

# settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET", "test-secret-key-that-is-at-least-32-bytes")
os.environ.setdefault("SERVICE_API_KEY", "test-service-key")
os.environ.setdefault("NOTIFY_WEBHOOK_URL", "")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.db import Base, get_db
from app.core.security import create_access_token
from app.integrations.notification_client import NotificationClient, get_notification_client
from app.main import app

TENANT = "tenant-a"
OTHER_TENANT = "tenant-b"


class RecordingNotifier(NotificationClient):
    """Collects events instead of posting them."""

    def __init__(self):
        super().__init__(webhook_url="")
        self.events = []

    async def _send(self, payload):
        self.events.append(payload)
        return True


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    db_path = tmp_path / "ledger.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}")
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield maker

    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest_asyncio.fixture
async def client(session_maker, notifier):
    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_client] = lambda: notifier

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c

    app.dependency_overrides.pop(get_db, None)
    app.dependency_overrides.pop(get_notification_client, None)


def auth_headers(role: str = "admin", tenant_id: str = TENANT, user_id: str = "user-1") -> dict:
    token = create_access_token(user_id=user_id, tenant_id=tenant_id, role=role)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers():
    return auth_headers("admin")


@pytest.fixture
def staff_headers():
    return auth_headers("staff", user_id="clerk-1")
