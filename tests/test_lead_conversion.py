from __future__ import annotations

import uuid
from collections.abc import Callable

import pytest
from fastapi.testclient import TestClient
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from prometheus_client import REGISTRY
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from salesdesk.activity.models import Activity
from salesdesk.crm.models import Customer, Lead
from salesdesk.otel import setup_inmemory_otel


ClientFixture = tuple[TestClient, Callable[[str], None]]

CONVERT_PAYLOAD = {
    "company": "Acme",
    "tags": ["vip", "b2b", "vip"],
    "deals": [{"title": "Pilot", "value": 1200.5, "expectedCloseDate": "2026-12-01"}],
}


def _conversions(outcome: str) -> float:
    return REGISTRY.get_sample_value("crm_lead_conversions_total", {"outcome": outcome}) or 0.0


def _customer_count(db_session: Session) -> int:
    return db_session.scalar(select(func.count()).select_from(Customer)) or 0


@pytest.fixture()
def span_exporter() -> InMemorySpanExporter:
    exporter = setup_inmemory_otel()
    exporter.clear()
    return exporter


@pytest.fixture()
def lead(client: ClientFixture) -> dict:
    test_client, set_actor = client
    set_actor("agent_a")
    response = test_client.post(
        "/api/leads",
        json={"name": "Jane Doe", "email": "jane@x.com", "phone": "555-0100", "source": "Website"},
    )
    assert response.status_code == 201
    return response.json()["data"]


def test_convert_lead_creates_customer_and_closes_lead(
    client: ClientFixture,
    actors,
    lead: dict,
    db_session: Session,
) -> None:
    test_client, _ = client
    converted_before = _conversions("converted")

    response = test_client.post(f"/api/leads/{lead['id']}/convert", json=CONVERT_PAYLOAD)

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Lead converted to customer successfully"
    customer = body["data"]["customer"]
    converted_lead = body["data"]["lead"]

    assert customer["name"] == "Jane Doe"
    assert customer["company"] == "Acme"
    assert customer["email"] == "jane@x.com"
    assert customer["phone"] == "555-0100"
    assert customer["tags"] == ["vip", "b2b"]
    assert customer["owner"] == str(actors.agent_a.user_id)
    assert customer["convertedFromLead"] == lead["id"]
    assert customer["deals"] == [
        {"title": "Pilot", "value": 1200.5, "status": "Open", "expectedCloseDate": "2026-12-01"}
    ]

    assert converted_lead["status"] == "Closed Won"
    assert converted_lead["convertedToCustomer"] == customer["id"]
    assert converted_lead["convertedAt"] is not None

    assert _conversions("converted") == converted_before + 1

    entry = db_session.scalar(select(Activity).where(Activity.action == "Lead Converted to Customer"))
    assert entry is not None
    assert entry.entity_type == "Lead"
    assert str(entry.entity_id) == lead["id"]
    assert entry.details == {"customerId": customer["id"], "company": "Acme"}


@pytest.mark.parametrize("status", ["Closed Won", "Closed Lost"])
def test_terminal_lead_cannot_be_converted(
    client: ClientFixture,
    lead: dict,
    db_session: Session,
    status: str,
) -> None:
    test_client, _ = client
    assert test_client.patch(f"/api/leads/{lead['id']}", json={"status": status}).status_code == 200
    rejected_before = _conversions("rejected")

    response = test_client.post(f"/api/leads/{lead['id']}/convert", json=CONVERT_PAYLOAD)

    assert response.status_code == 400
    assert response.json()["code"] == "invalid_state_transition"
    assert _customer_count(db_session) == 0
    assert _conversions("rejected") == rejected_before + 1


def test_lead_converts_only_once(client: ClientFixture, lead: dict, db_session: Session) -> None:
    test_client, _ = client

    first = test_client.post(f"/api/leads/{lead['id']}/convert", json=CONVERT_PAYLOAD)
    second = test_client.post(f"/api/leads/{lead['id']}/convert", json={"company": "Other"})

    assert first.status_code == 200
    assert second.status_code == 400
    assert _customer_count(db_session) == 1


def test_missing_company_leaves_lead_untouched(client: ClientFixture, lead: dict, db_session: Session) -> None:
    test_client, _ = client

    response = test_client.post(f"/api/leads/{lead['id']}/convert", json={"tags": ["vip"]})

    assert response.status_code == 400
    assert response.json()["errors"][0]["field"] == "company"
    assert _customer_count(db_session) == 0
    stored = db_session.get(Lead, uuid.UUID(lead["id"]))
    assert stored is not None
    assert stored.status == "New"
    assert stored.converted_to_customer_id is None


def test_existing_customer_email_blocks_conversion(client: ClientFixture, lead: dict, db_session: Session) -> None:
    test_client, _ = client
    existing = test_client.post(
        "/api/customers",
        json={"name": "Jane Existing", "company": "Globex", "email": "JANE@x.com", "phone": "555-0199"},
    )
    assert existing.status_code == 201
    conflicts_before = _conversions("conflict")

    response = test_client.post(f"/api/leads/{lead['id']}/convert", json=CONVERT_PAYLOAD)

    assert response.status_code == 409
    assert response.json()["code"] == "conflict"
    assert _customer_count(db_session) == 1
    stored = db_session.get(Lead, uuid.UUID(lead["id"]))
    assert stored is not None and stored.status == "New"
    assert _conversions("conflict") == conflicts_before + 1


def test_other_agent_cannot_convert_lead(client: ClientFixture, lead: dict, db_session: Session) -> None:
    test_client, set_actor = client
    set_actor("agent_b")

    response = test_client.post(f"/api/leads/{lead['id']}/convert", json=CONVERT_PAYLOAD)

    assert response.status_code == 403
    assert _customer_count(db_session) == 0


def test_conversion_span_carries_lead_and_customer_ids(
    client: ClientFixture,
    lead: dict,
    span_exporter: InMemorySpanExporter,
) -> None:
    test_client, _ = client

    response = test_client.post(
        f"/api/leads/{lead['id']}/convert",
        json=CONVERT_PAYLOAD,
        headers={"X-Correlation-Id": "convert-corr-1"},
    )
    assert response.status_code == 200
    customer_id = response.json()["data"]["customer"]["id"]

    spans = span_exporter.get_finished_spans()
    convert_spans = [span for span in spans if span.name == "crm.lead.convert"]
    assert convert_spans
    assert any(
        span.attributes.get("lead_id") == lead["id"] and span.attributes.get("customer_id") == customer_id
        for span in convert_spans
    )
    assert any(span.attributes.get("correlation_id") == "convert-corr-1" for span in spans)
