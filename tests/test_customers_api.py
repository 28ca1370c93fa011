from __future__ import annotations

import uuid
from collections.abc import Callable

from fastapi.testclient import TestClient
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from salesdesk.activity.models import Activity
from salesdesk.crm.models import CustomerNote


ClientFixture = tuple[TestClient, Callable[[str], None]]


def _customer_payload(**overrides: object) -> dict[str, object]:
    payload: dict[str, object] = {
        "name": "Sam Buyer",
        "company": "Globex",
        "email": "sam@globex.com",
        "phone": "555-0142",
    }
    payload.update(overrides)
    return payload


def _create_customer(test_client: TestClient, **overrides: object) -> dict:
    response = test_client.post("/api/customers", json=_customer_payload(**overrides))
    assert response.status_code == 201
    return response.json()["data"]


def test_create_customer_defaults_owner_to_caller(client: ClientFixture, actors, db_session: Session) -> None:
    test_client, _ = client

    customer = _create_customer(test_client, tags=["vip", " vip ", "b2b"], owner=str(actors.agent_b.user_id))

    assert customer["owner"] == str(actors.agent_a.user_id)
    assert customer["tags"] == ["vip", "b2b"]
    assert customer["notes"] == []
    assert customer["deals"] == []
    assert customer["convertedFromLead"] is None

    entry = db_session.scalar(select(Activity).where(Activity.action == "Customer Created"))
    assert entry is not None
    assert entry.details == {"name": "Sam Buyer", "company": "Globex", "email": "sam@globex.com"}


def test_duplicate_customer_email_is_a_conflict(client: ClientFixture) -> None:
    test_client, _ = client
    _create_customer(test_client)

    response = test_client.post("/api/customers", json=_customer_payload(name="Other", email="SAM@globex.com"))

    assert response.status_code == 409


def test_negative_deal_value_is_rejected(client: ClientFixture) -> None:
    test_client, _ = client

    response = test_client.post(
        "/api/customers",
        json=_customer_payload(deals=[{"title": "Bad", "value": -1, "expectedCloseDate": "2026-11-01"}]),
    )

    assert response.status_code == 400
    assert response.json()["errors"][0]["field"] == "deals.0.value"


def test_notes_keep_only_the_five_newest(client: ClientFixture, actors, db_session: Session) -> None:
    test_client, _ = client
    customer = _create_customer(test_client)

    for index in range(1, 8):
        response = test_client.post(f"/api/customers/{customer['id']}/notes", json={"content": f"note {index}"})
        assert response.status_code == 200

    notes = response.json()["data"]
    assert [note["content"] for note in notes] == ["note 3", "note 4", "note 5", "note 6", "note 7"]
    assert all(note["createdBy"] == str(actors.agent_a.user_id) for note in notes)
    stored = db_session.scalar(select(func.count()).select_from(CustomerNote)) or 0
    assert stored == 5

    detail = test_client.get(f"/api/customers/{customer['id']}").json()["data"]
    assert [note["content"] for note in detail["notes"]] == ["note 3", "note 4", "note 5", "note 6", "note 7"]


def test_note_activity_keeps_a_preview(client: ClientFixture, db_session: Session) -> None:
    test_client, _ = client
    customer = _create_customer(test_client)
    content = "x" * 150

    response = test_client.post(f"/api/customers/{customer['id']}/notes", json={"content": content})

    assert response.status_code == 200
    entry = db_session.scalar(select(Activity).where(Activity.action == "Note Added to Customer"))
    assert entry is not None
    assert entry.details == {"noteContent": "x" * 100}


def test_empty_note_is_rejected(client: ClientFixture) -> None:
    test_client, _ = client
    customer = _create_customer(test_client)

    response = test_client.post(f"/api/customers/{customer['id']}/notes", json={"content": "   "})

    assert response.status_code == 400


def test_update_replaces_tags_and_deals(client: ClientFixture, db_session: Session) -> None:
    test_client, _ = client
    customer = _create_customer(
        test_client,
        tags=["a", "b"],
        deals=[{"title": "First", "value": 100, "expectedCloseDate": "2026-11-01"}],
    )

    response = test_client.patch(
        f"/api/customers/{customer['id']}",
        json={
            "tags": ["b", "c"],
            "deals": [{"title": "Second", "value": 250, "status": "Won", "expectedCloseDate": "2026-12-15"}],
        },
    )

    assert response.status_code == 200
    updated = response.json()["data"]
    assert updated["tags"] == ["b", "c"]
    assert updated["deals"] == [
        {"title": "Second", "value": 250.0, "status": "Won", "expectedCloseDate": "2026-12-15"}
    ]
    assert updated["company"] == "Globex"

    entry = db_session.scalar(select(Activity).where(Activity.action == "Customer Updated"))
    assert entry is not None
    assert sorted(entry.details["updatedFields"]) == ["deals", "tags"]


def test_list_customers_filters_by_any_tag_and_search(client: ClientFixture) -> None:
    test_client, set_actor = client
    set_actor("admin")
    _create_customer(test_client, email="one@globex.com", tags=["vip"])
    _create_customer(test_client, email="two@globex.com", tags=["gold"], company="Initech")
    _create_customer(test_client, email="three@globex.com", tags=["cold"])

    tagged = test_client.get("/api/customers", params={"tags": "vip, gold"}).json()
    assert sorted(item["email"] for item in tagged["data"]) == ["one@globex.com", "two@globex.com"]
    assert tagged["pagination"]["total"] == 2

    searched = test_client.get("/api/customers", params={"search": "initech"}).json()
    assert [item["email"] for item in searched["data"]] == ["two@globex.com"]


def test_agents_only_see_and_touch_their_own_customers(client: ClientFixture, actors) -> None:
    test_client, set_actor = client
    own = _create_customer(test_client)
    set_actor("agent_b")
    other = _create_customer(test_client, email="other@globex.com")

    listed = test_client.get("/api/customers", params={"owner": str(actors.agent_a.user_id)}).json()
    assert [item["id"] for item in listed["data"]] == [other["id"]]

    assert test_client.get(f"/api/customers/{own['id']}").status_code == 403
    assert test_client.patch(f"/api/customers/{own['id']}", json={"company": "X"}).status_code == 403
    assert test_client.delete(f"/api/customers/{own['id']}").status_code == 403
    assert test_client.post(f"/api/customers/{own['id']}/notes", json={"content": "hi"}).status_code == 403


def test_agent_cannot_hand_customer_to_someone_else(client: ClientFixture, actors) -> None:
    test_client, _ = client
    customer = _create_customer(test_client)

    response = test_client.patch(f"/api/customers/{customer['id']}", json={"owner": str(actors.agent_b.user_id)})

    assert response.status_code == 403


def test_admin_reassigns_customer_owner(client: ClientFixture, actors) -> None:
    test_client, set_actor = client
    customer = _create_customer(test_client)
    set_actor("admin")

    response = test_client.patch(f"/api/customers/{customer['id']}", json={"owner": str(actors.agent_b.user_id)})

    assert response.status_code == 200
    assert response.json()["data"]["owner"] == str(actors.agent_b.user_id)


def test_delete_customer_removes_record_and_logs(client: ClientFixture, db_session: Session) -> None:
    test_client, _ = client
    customer = _create_customer(test_client)
    test_client.post(f"/api/customers/{customer['id']}/notes", json={"content": "first call"})

    response = test_client.delete(f"/api/customers/{customer['id']}")

    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Customer deleted successfully"}
    assert test_client.get(f"/api/customers/{customer['id']}").status_code == 404
    assert (db_session.scalar(select(func.count()).select_from(CustomerNote)) or 0) == 0

    entry = db_session.scalar(select(Activity).where(Activity.action == "Customer Deleted"))
    assert entry is not None
    assert entry.entity_id == uuid.UUID(customer["id"])
    assert entry.details == {"name": "Sam Buyer", "company": "Globex"}
