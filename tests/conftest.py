import os
from datetime import date, timedelta

# Settings are read on import, point the app at a throwaway database first
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.auth import create_user  # noqa: E402
from app.database import Base, enable_sqlite_foreign_keys, get_db  # noqa: E402
from app.main import app  # noqa: E402
from app.models import User  # noqa: E402

# In-memory SQLite database shared across connections via StaticPool.
TEST_DATABASE_URL = "sqlite://"

engine_test = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
enable_sqlite_foreign_keys(engine_test)

TestingSessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine_test,
)

PASSWORD = "correct-horse-battery"


@pytest.fixture()
def db_session():
    """Provide a fresh test database session for each test.

    The schema is dropped and recreated for every test function,
    ensuring complete isolation between tests.
    """
    Base.metadata.drop_all(bind=engine_test)
    Base.metadata.create_all(bind=engine_test)

    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def client(db_session):
    """TestClient whose requests are served from the in-memory test database."""

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture()
def user_factory(db_session):
    """Create users directly in the test database."""

    def _create_user(
        email: str = "alice@example.com",
        name: str = "Alice Example",
        password: str = PASSWORD,
        is_admin: bool = False,
    ) -> User:
        return create_user(db_session, name=name, email=email, password=password, is_admin=is_admin)

    return _create_user


@pytest.fixture()
def login(client):
    """Log a user in through the API and return its token."""

    def _login(email: str, password: str = PASSWORD) -> str:
        response = client.post("/login", json={"email": email, "password": password})
        assert response.status_code == 200, response.text
        return response.json()["token"]

    return _login


@pytest.fixture()
def auth_headers(login):
    def _headers(user: User) -> dict:
        return {"Authorization": f"Bearer {login(user.email)}"}

    return _headers


@pytest.fixture()
def renewal_payload():
    """Valid create payload; keyword overrides replace individual fields."""

    def _payload(**overrides) -> dict:
        today = date.today()
        payload = {
            "service_name": "Netflix",
            "service_type": "Streaming",
            "provider": "Netflix Inc.",
            "start_date": today.isoformat(),
            "end_date": (today + timedelta(days=90)).isoformat(),
            "cost": 15.99,
            "reminder_type": "email",
            "notes": "Family plan",
        }
        payload.update(overrides)
        return payload

    return _payload
