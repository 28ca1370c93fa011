from __future__ import annotations

import uuid
from collections.abc import Callable

import pytest
from fastapi.testclient import TestClient
from prometheus_client import REGISTRY
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from salesdesk.activity.models import Activity
from salesdesk.activity.service import ActivityLogService
from salesdesk.crm.models import Lead


ClientFixture = tuple[TestClient, Callable[[str], None]]


def _create_lead(test_client: TestClient, index: int) -> dict:
    response = test_client.post(
        "/api/leads",
        json={"name": f"Lead {index}", "email": f"lead{index}@x.com", "phone": "555-0100", "source": "Website"},
    )
    assert response.status_code == 201
    return response.json()["data"]


def test_recent_returns_ten_newest_with_actor(client: ClientFixture, actors) -> None:
    test_client, _ = client
    for index in range(12):
        _create_lead(test_client, index)

    response = test_client.get("/api/activity/recent")

    assert response.status_code == 200
    recent = response.json()["data"]
    assert len(recent) == 10
    assert recent[0]["details"]["name"] == "Lead 11"
    assert recent[0]["actor"] == {
        "id": str(actors.agent_a.user_id),
        "firstName": "Alex",
        "lastName": "Tester",
        "email": "agent.a@example.com",
    }
    assert {item["details"]["name"] for item in recent}.isdisjoint({"Lead 0", "Lead 1"})


def test_agents_only_see_their_own_entries(client: ClientFixture, actors) -> None:
    test_client, set_actor = client
    _create_lead(test_client, 1)
    set_actor("agent_b")
    _create_lead(test_client, 2)

    listed = test_client.get("/api/activity", params={"user": str(actors.agent_a.user_id)}).json()
    assert [item["user"] for item in listed["data"]] == [str(actors.agent_b.user_id)]
    assert [item["user"] for item in test_client.get("/api/activity/recent").json()["data"]] == [
        str(actors.agent_b.user_id)
    ]

    set_actor("admin")
    everything = test_client.get("/api/activity").json()
    assert everything["pagination"]["total"] == 2
    filtered = test_client.get("/api/activity", params={"user": str(actors.agent_a.user_id)}).json()
    assert [item["user"] for item in filtered["data"]] == [str(actors.agent_a.user_id)]


def test_action_filter_is_case_insensitive_substring(client: ClientFixture) -> None:
    test_client, _ = client
    lead = _create_lead(test_client, 1)
    test_client.patch(f"/api/leads/{lead['id']}", json={"notes": "warm"})

    response = test_client.get("/api/activity", params={"action": "updated"})

    assert [item["action"] for item in response.json()["data"]] == ["Lead Updated"]


def test_entity_history(client: ClientFixture) -> None:
    test_client, _ = client
    lead = _create_lead(test_client, 1)
    _create_lead(test_client, 2)
    test_client.patch(f"/api/leads/{lead['id']}", json={"status": "In Progress"})

    response = test_client.get(f"/api/activity/entity/Lead/{lead['id']}")

    assert response.status_code == 200
    body = response.json()
    assert sorted(item["action"] for item in body["data"]) == ["Lead Created", "Lead Updated"]
    assert all(item["entityId"] == lead["id"] for item in body["data"])
    assert body["pagination"]["total"] == 2


def test_entity_history_rejects_unknown_type(client: ClientFixture) -> None:
    test_client, _ = client

    response = test_client.get("/api/activity/entity/Invoice/00000000-0000-0000-0000-000000000000")

    assert response.status_code == 400


def test_user_summary(client: ClientFixture, actors) -> None:
    test_client, _ = client
    lead = _create_lead(test_client, 1)
    _create_lead(test_client, 2)
    test_client.post(
        "/api/customers",
        json={"name": "Sam", "company": "Globex", "email": "sam@globex.com", "phone": "555-0142"},
    )
    test_client.patch(f"/api/leads/{lead['id']}", json={"notes": "x"})

    response = test_client.get(f"/api/activity/user/{actors.agent_a.user_id}/summary")

    assert response.status_code == 200
    summary = response.json()["data"]
    assert summary["totalActions"] == 4
    assert summary["actionsByType"] == [{"entityType": "Lead", "count": 3}, {"entityType": "Customer", "count": 1}]
    assert len(summary["recentActions"]) == 4


def test_agent_cannot_read_another_users_summary(client: ClientFixture, actors) -> None:
    test_client, set_actor = client

    response = test_client.get(f"/api/activity/user/{actors.agent_b.user_id}/summary")
    assert response.status_code == 403

    set_actor("admin")
    assert test_client.get(f"/api/activity/user/{actors.agent_b.user_id}/summary").status_code == 200


def test_failed_activity_write_does_not_fail_the_mutation(
    client: ClientFixture,
    db_session: Session,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    test_client, _ = client

    def broken_persist(self: ActivityLogService, session: Session, entry: Activity) -> None:
        raise OperationalError("INSERT INTO activity_log", {}, Exception("disk full"))

    monkeypatch.setattr(ActivityLogService, "_persist", broken_persist)
    failures_before = (
        REGISTRY.get_sample_value("activity_log_write_failures_total", {"entity_type": "Lead"}) or 0.0
    )

    lead = _create_lead(test_client, 1)

    assert db_session.get(Lead, uuid.UUID(lead["id"])) is not None
    assert (db_session.scalar(select(func.count()).select_from(Activity)) or 0) == 0
    failures_after = REGISTRY.get_sample_value("activity_log_write_failures_total", {"entity_type": "Lead"})
    assert failures_after == failures_before + 1
