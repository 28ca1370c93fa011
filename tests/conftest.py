from __future__ import annotations

from collections.abc import Callable, Generator
from dataclasses import dataclass

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from salesdesk.core.auth import get_current_user
from salesdesk.core.config import get_settings
from salesdesk.core.context import CallerContext
from salesdesk.core.database import Base, get_db
from salesdesk.core.security import hash_password
from salesdesk.identity.models import User
from salesdesk.main import app
from salesdesk.middleware.rate_limit import reset_rate_limiter


TEST_PASSWORD = "secret123"


@dataclass(frozen=True)
class Actors:
    admin: CallerContext
    agent_a: CallerContext
    agent_b: CallerContext


@pytest.fixture(autouse=True)
def setup_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("RATE_LIMIT_DISABLED", "true")
    get_settings.cache_clear()
    reset_rate_limiter()
    yield
    get_settings.cache_clear()
    reset_rate_limiter()


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


def _user(email: str, first_name: str, role: str) -> User:
    return User(
        email=email,
        password_hash=hash_password(TEST_PASSWORD, iterations=1_000),
        first_name=first_name,
        last_name="Tester",
        role=role,
    )


@pytest.fixture()
def actors(db_session: Session) -> Actors:
    admin = _user("admin@example.com", "Ada", "admin")
    agent_a = _user("agent.a@example.com", "Alex", "agent")
    agent_b = _user("agent.b@example.com", "Blair", "agent")
    db_session.add_all([admin, agent_a, agent_b])
    db_session.commit()
    return Actors(
        admin=CallerContext(user_id=admin.id, role="admin", ip_address="10.0.0.1", user_agent="pytest"),
        agent_a=CallerContext(user_id=agent_a.id, role="agent", ip_address="10.0.0.2", user_agent="pytest"),
        agent_b=CallerContext(user_id=agent_b.id, role="agent", ip_address="10.0.0.3", user_agent="pytest"),
    )


@pytest.fixture()
def client(
    db_session: Session,
    actors: Actors,
) -> Generator[tuple[TestClient, Callable[[str], None]], None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    state = {"current": "agent_a"}

    def override_get_current_user() -> CallerContext:
        return getattr(actors, state["current"])

    def set_actor(name: str) -> None:
        state["current"] = name

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    with TestClient(app) as test_client:
        yield test_client, set_actor
    app.dependency_overrides.clear()

