from __future__ import annotations

import os

os.environ.setdefault("STAFFCLOCK_DATABASE_URL", "sqlite://")
os.environ.setdefault("STAFFCLOCK_ENV", "test")
os.environ["STAFFCLOCK_RATE_LIMIT_ENABLED"] = "false"
os.environ["STAFFCLOCK_PIN_HASH_ROUNDS"] = "4"

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from staffclock.api.deps import get_clock
from staffclock.db.session import Base, get_session
from staffclock.domains.tenants.settings import settings_cache
from staffclock.main import app
from staffclock.seed.seed_data import seed

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Wednesday 2024-03-06, 09:00 in America/New_York.
START = datetime(2024, 3, 6, 14, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now

    def set(self, value: datetime) -> None:
        self.now = value


fake_clock = FakeClock()


def override_get_session():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_session] = override_get_session
app.dependency_overrides[get_clock] = lambda: fake_clock


@pytest.fixture(autouse=True)
def reset_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    settings_cache.clear()
    fake_clock.set(START)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def clock() -> FakeClock:
    return fake_clock


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def seeded(db):
    return seed(db)


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


def login(client: TestClient, pin: str, tenant_id: str | None = None) -> dict[str, str]:
    body = {"pin": pin}
    if tenant_id:
        body["tenantId"] = tenant_id
    response = client.post("/auth/quick-login", json=body)
    assert response.status_code == 200, response.json()
    return {"Authorization": f"Bearer {response.json()['token']}"}


@pytest.fixture
def admin_headers(client, seeded):
    return login(client, "1234")


@pytest.fixture
def manager_headers(client, seeded):
    return login(client, "2345")


@pytest.fixture
def staff_headers(client, seeded):
    return login(client, "3456")


@pytest.fixture
def login_as(client):
    def _login(pin: str, tenant_id: str | None = None) -> dict[str, str]:
        return login(client, pin, tenant_id)

    return _login
