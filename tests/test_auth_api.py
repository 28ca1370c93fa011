from __future__ import annotations

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.orm import Session

from salesdesk.activity.models import Activity
from salesdesk.core.database import get_db
from salesdesk.core.security import create_token
from salesdesk.identity.models import User
from salesdesk.main import app


PASSWORD = "secret123"


@pytest.fixture()
def auth_client(db_session: Session, actors) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _login(test_client: TestClient, email: str, password: str = PASSWORD):
    return test_client.post("/api/auth/login", json={"email": email, "password": password})


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def test_login_returns_tokens_and_records_activity(auth_client: TestClient, actors, db_session: Session) -> None:
    response = _login(auth_client, " Agent.A@Example.com ")

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Login successful"
    assert body["data"]["user"]["id"] == str(actors.agent_a.user_id)
    assert body["data"]["user"]["lastLogin"] is not None
    assert body["data"]["accessToken"]
    assert body["data"]["refreshToken"]

    entry = db_session.scalar(select(Activity).where(Activity.action == "User Login"))
    assert entry is not None
    assert entry.user_id == actors.agent_a.user_id
    assert entry.details == {"ipAddress": "testclient"}


@pytest.mark.parametrize(
    ("email", "password"),
    [("agent.a@example.com", "wrong-password"), ("nobody@example.com", PASSWORD)],
)
def test_bad_credentials_are_rejected(auth_client: TestClient, email: str, password: str) -> None:
    response = _login(auth_client, email, password)

    assert response.status_code == 401
    assert response.json()["message"] == "Invalid credentials"


def test_inactive_user_cannot_log_in(auth_client: TestClient, actors, db_session: Session) -> None:
    user = db_session.get(User, actors.agent_b.user_id)
    assert user is not None
    user.is_active = False
    db_session.commit()

    response = _login(auth_client, "agent.b@example.com")

    assert response.status_code == 401
    assert response.json()["message"] == "Invalid credentials"


def test_access_token_authorizes_requests(auth_client: TestClient) -> None:
    token = _login(auth_client, "agent.a@example.com").json()["data"]["accessToken"]

    response = auth_client.get("/api/users/profile/me", headers=_bearer(token))

    assert response.status_code == 200
    assert response.json()["data"]["email"] == "agent.a@example.com"


def test_missing_token_is_unauthenticated(auth_client: TestClient) -> None:
    response = auth_client.get("/api/leads")

    assert response.status_code == 401
    body = response.json()
    assert body["success"] is False
    assert body["message"] == "Access denied. No token provided."
    assert body["correlationId"] == response.headers["x-correlation-id"]


def test_refresh_token_is_not_an_access_token(auth_client: TestClient) -> None:
    tokens = _login(auth_client, "agent.a@example.com").json()["data"]

    response = auth_client.get("/api/leads", headers=_bearer(tokens["refreshToken"]))

    assert response.status_code == 401


def test_refresh_issues_new_pair(auth_client: TestClient) -> None:
    tokens = _login(auth_client, "agent.a@example.com").json()["data"]

    refreshed = auth_client.post("/api/auth/refresh", json={"refreshToken": tokens["refreshToken"]})
    assert refreshed.status_code == 200
    pair = refreshed.json()["data"]
    assert pair["accessToken"] != tokens["accessToken"]
    assert auth_client.get("/api/users/profile/me", headers=_bearer(pair["accessToken"])).status_code == 200

    rejected = auth_client.post("/api/auth/refresh", json={"refreshToken": tokens["accessToken"]})
    assert rejected.status_code == 401


def test_deactivated_user_token_stops_working(auth_client: TestClient, actors, db_session: Session) -> None:
    token = create_token(str(actors.agent_b.user_id), "access")
    user = db_session.get(User, actors.agent_b.user_id)
    assert user is not None
    user.is_active = False
    db_session.commit()

    response = auth_client.get("/api/users/profile/me", headers=_bearer(token))

    assert response.status_code == 401
    assert response.json()["message"] == "Account is deactivated."


def test_logout_requires_a_token(auth_client: TestClient) -> None:
    token = _login(auth_client, "agent.a@example.com").json()["data"]["accessToken"]

    assert auth_client.post("/api/auth/logout").status_code == 401
    response = auth_client.post("/api/auth/logout", headers=_bearer(token))
    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Logout successful"}


def test_register_is_admin_only(auth_client: TestClient, db_session: Session) -> None:
    new_user = {
        "email": "new.agent@example.com",
        "password": "newpass1",
        "firstName": "New",
        "lastName": "Agent",
    }
    agent_token = _login(auth_client, "agent.a@example.com").json()["data"]["accessToken"]
    admin_token = _login(auth_client, "admin@example.com").json()["data"]["accessToken"]

    forbidden = auth_client.post("/api/auth/register", json=new_user, headers=_bearer(agent_token))
    assert forbidden.status_code == 403

    created = auth_client.post("/api/auth/register", json=new_user, headers=_bearer(admin_token))
    assert created.status_code == 201
    assert created.json()["data"]["role"] == "agent"
    assert created.json()["data"]["isActive"] is True

    duplicate = auth_client.post("/api/auth/register", json=new_user, headers=_bearer(admin_token))
    assert duplicate.status_code == 409

    login = _login(auth_client, "new.agent@example.com", "newpass1")
    assert login.status_code == 200

    entry = db_session.scalar(select(Activity).where(Activity.action == "User Created"))
    assert entry is not None
    assert entry.details == {"email": "new.agent@example.com", "role": "agent"}


def test_register_validates_payload(auth_client: TestClient) -> None:
    admin_token = _login(auth_client, "admin@example.com").json()["data"]["accessToken"]

    response = auth_client.post(
        "/api/auth/register",
        json={"email": "bad", "password": "123", "firstName": "", "lastName": "X", "role": "owner"},
        headers=_bearer(admin_token),
    )

    assert response.status_code == 400
    fields = {item["field"] for item in response.json()["errors"]}
    assert {"email", "password", "firstName", "role"} <= fields
