import os
import tempfile
import warnings
from pathlib import Path
from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import NullPool

# Set environment variables BEFORE importing babyregistry modules
os.environ["ENVIRONMENT"] = "test"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["DATABASE_DSN"] = "sqlite+aiosqlite:///" + str(Path(tempfile.gettempdir()) / "babyregistry-tests.db")
os.environ["JWT_SECRET_KEY"] = "test-secret-key-32-chars-minimum!!"
os.environ["SMTP_HOST"] = ""
os.environ["NOTIFICATION_RETRY_BACKOFF_SECONDS"] = "0"

warnings.filterwarnings("ignore", category=DeprecationWarning)

from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from babyregistry.api.deps import get_dispatcher
from babyregistry.core.errors import NotificationDispatchError
from babyregistry.core.rate_limit import limiter
from babyregistry.db.session import Base, get_db
from babyregistry.main import app


class FakeDispatcher:
    """Records every notification instead of sending email."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent: list[tuple[str, dict]] = []

    def cancellation_link(self, cancellation_token: str) -> str:
        return f"http://frontend.test/cancel-reservation/{cancellation_token}"

    async def _record(self, kind: str, kwargs: dict) -> None:
        if self.fail:
            raise NotificationDispatchError(f"SMTP down while sending {kind}")
        self.sent.append((kind, kwargs))

    async def send_reservation_confirmation(self, **kwargs) -> None:
        await self._record("reservation_confirmation", kwargs)

    async def send_cancellation_confirmation(self, **kwargs) -> None:
        await self._record("cancellation_confirmation", kwargs)

    async def send_owner_notification(self, **kwargs) -> None:
        await self._record("owner_notification", kwargs)

    def kinds(self) -> list[str]:
        return [kind for kind, _ in self.sent]


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def reset_rate_limiter():
    limiter.reset()
    yield
    limiter.reset()


@pytest.fixture(autouse=True)
def session_factory(tmp_path):
    """Fresh SQLite file per test; the app's get_db is pointed at it."""
    db_path = tmp_path / "test.db"
    from babyregistry.models import models as models_module
    _ = models_module
    sync_engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(sync_engine)
    sync_engine.dispose()

    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}", poolclass=NullPool)
    factory = async_sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)

    async def override_get_db():
        async with factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    yield factory
    app.dependency_overrides.clear()
    engine.sync_engine.dispose()


@pytest.fixture(autouse=True)
def dispatcher(session_factory):
    fake = FakeDispatcher()
    app.dependency_overrides[get_dispatcher] = lambda: fake
    return fake


@pytest.fixture
def failing_dispatcher(dispatcher):
    dispatcher.fail = True
    return dispatcher


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
async def async_client():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as test_client:
        yield test_client


def register_and_login(client: TestClient, username: str | None = None) -> dict:
    username = username or f"user_{uuid4().hex[:8]}"
    password = "Secreta123"
    res = client.post(
        "/auth/register",
        json={"username": username, "email": f"{username}@example.com", "password": password},
    )
    assert res.status_code == 201, res.text
    res = client.post("/auth/login", json={"username": username, "password": password})
    assert res.status_code == 200, res.text
    return res.json()


def create_registry(client: TestClient, baby_name: str = "Lucas", **kwargs) -> dict:
    res = client.post("/registries", json={"baby_name": baby_name, **kwargs})
    assert res.status_code == 201, res.text
    return res.json()


def add_gift(client: TestClient, registry_id: int, **kwargs) -> dict:
    payload = {
        "registry_id": registry_id,
        "name": "Cuna de madera",
        "price": 149.99,
        "image_url": "https://example.com/cuna.jpg",
        "store": "Tienda Bebé",
        "category": "Dormitorio",
        **kwargs,
    }
    res = client.post("/gifts", json=payload)
    assert res.status_code == 201, res.text
    return res.json()
