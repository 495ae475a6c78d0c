import os
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlmodel import SQLModel, Session, create_engine
from sqlalchemy.pool import StaticPool

# must be set before the app (and its cached settings) is imported
os.environ.setdefault("SECRET_KEY", "test_secret")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("OVERDUE_SWEEP_ENABLED", "false")

from app.main import app
from app.db import get_session
from app.deps import get_clock
from app.models import Category, Tool, User
from app.security import hash_password


class FrozenClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def clock():
    return FrozenClock(datetime(2026, 1, 12, 9, 0, 0))


@pytest.fixture
def client(engine, clock):
    def override_get_session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_clock] = lambda: clock

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()


def _login(client, email: str, password: str) -> dict:
    r = client.post("/auth/login", data={"username": email, "password": password})
    assert r.status_code == 200, r.text
    return {"Authorization": f"Bearer {r.json()['access_token']}"}


def _register(client, name: str, email: str, password: str, role: str) -> dict:
    r = client.post("/auth/register", json={"name": name, "email": email, "password": password, "role": role})
    assert r.status_code == 200, r.text
    return _login(client, email, password)


@pytest.fixture
def admin_headers(client):
    return _register(client, "Ada Admin", "admin@example.com", "admin-pass", "Admin")


@pytest.fixture
def manager_headers(client):
    return _register(client, "Max Manager", "manager@example.com", "manager-pass", "Manager")


@pytest.fixture
def employee_headers(client):
    return _register(client, "Eve Employee", "employee@example.com", "employee-pass", "Employee")


@pytest.fixture
def seed(session):
    """Direct inserts for service-level tests."""

    class Seed:
        def category(self, name: str = "Power tools") -> Category:
            category = Category(name=name)
            session.add(category)
            session.commit()
            session.refresh(category)
            return category

        def tool(self, code: str = "T-001", status: str = "Available", category: Category | None = None) -> Tool:
            category = category or self.category(f"cat-{code}")
            tool = Tool(tool_name=f"Drill {code}", tool_code=code, category_id=category.id, status=status)
            session.add(tool)
            session.commit()
            session.refresh(tool)
            return tool

        def user(self, email: str = "u1@example.com", role: str = "Employee") -> User:
            user = User(name=email.split("@")[0], email=email, password_hash=hash_password("pw"), role=role)
            session.add(user)
            session.commit()
            session.refresh(user)
            return user

    return Seed()
