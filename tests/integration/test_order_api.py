"""End-to-end tests for the order HTTP API with fake deadline timers."""

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient

from orderflow.main import create_app
from orderflow.services.assignment_engine import AssignmentEngine
from orderflow.services.notification_service import NotificationDispatcher
from tests.unit.mocks import FakeDeadlineTimers, FlakyWorkItemStore, ListCandidateProvider


@pytest.fixture
def store() -> FlakyWorkItemStore:
    return FlakyWorkItemStore()


@pytest.fixture
def timers() -> FakeDeadlineTimers:
    return FakeDeadlineTimers()


@pytest.fixture
def client(store, timers) -> Generator[TestClient, None, None]:
    """Create a test client whose app runs the real engine over fake timers."""
    app = create_app()
    dispatcher = NotificationDispatcher()
    app.state.dispatcher = dispatcher
    app.state.engine = AssignmentEngine(
        store=store,
        candidate_provider=ListCandidateProvider(["driver-1", "driver-2", "driver-3"]),
        timers=timers,
        listener=dispatcher,
        offer_timeout_seconds=15.0,
        max_attempts=3,
    )
    with TestClient(app) as test_client:
        yield test_client


def _create_order(client: TestClient) -> str:
    response = client.post(
        "/orders",
        json={"customer_id": "customer-1", "order_details": {"items": ["pizza"], "total": 35.9}},
    )
    assert response.status_code == 201
    return response.json()["order"]["id"]


def _elapse_deadline(client: TestClient, timers: FakeDeadlineTimers, order_id: str) -> None:
    client.portal.call(timers.fire, order_id)


@pytest.mark.integration
def test_health_endpoints(client):
    assert client.get("/health").json() == {"status": "healthy"}

    response = client.get("/health/engine")
    assert response.status_code == 200
    assert response.json()["store"] == "ok"
    assert response.json()["armed_deadlines"] == 0


@pytest.mark.integration
def test_create_and_fetch_order(client):
    order_id = _create_order(client)

    response = client.get(f"/orders/{order_id}")

    assert response.status_code == 200
    order = response.json()["order"]
    assert order["status"] == "pending"
    assert order["owner_id"] == "customer-1"
    assert order["assignment_history"] == []


@pytest.mark.integration
def test_unknown_order_returns_404(client):
    response = client.get("/orders/does-not-exist/status")

    assert response.status_code == 404
    body = response.json()
    assert body["success"] is False
    assert body["code"] == "ERR_NOT_FOUND"


@pytest.mark.integration
def test_assign_and_accept(client, timers):
    order_id = _create_order(client)

    response = client.post(f"/orders/{order_id}/assign", json={"driver_id": "driver-1"})
    assert response.status_code == 200
    assert timers.armed_candidate(order_id) == "driver-1"

    response = client.post(f"/orders/{order_id}/driver-response", json={"driver_id": "driver-1", "accepted": True})

    assert response.status_code == 200
    assert response.json()["order"]["status"] == "accepted"
    assert len(timers) == 0


@pytest.mark.integration
def test_second_assign_conflicts(client):
    order_id = _create_order(client)
    client.post(f"/orders/{order_id}/assign", json={"driver_id": "driver-1"})

    response = client.post(f"/orders/{order_id}/assign", json={"driver_id": "driver-2"})

    assert response.status_code == 409
    assert response.json()["code"] == "ERR_INVALID_STATE"


@pytest.mark.integration
def test_timeout_reassigns_and_status_shows_history(client, timers):
    order_id = _create_order(client)
    client.post(f"/orders/{order_id}/assign", json={"driver_id": "driver-1"})

    _elapse_deadline(client, timers, order_id)

    response = client.get(f"/orders/{order_id}/status")
    assert response.status_code == 200
    status = response.json()["order_status"]
    assert status["status"] == "pending"
    assert status["current_candidate_id"] == "driver-2"
    assert status["reassignment_count"] == 1
    assert status["reassignment_log"][0]["reason"] == "TIMEOUT"
    assert status["reassignment_log"][0]["previous_candidate_id"] == "driver-1"


@pytest.mark.integration
def test_exhausted_order_rejects_late_response(client, timers):
    order_id = _create_order(client)
    client.post(f"/orders/{order_id}/assign", json={"driver_id": "driver-1"})

    for _ in range(3):
        _elapse_deadline(client, timers, order_id)

    status = client.get(f"/orders/{order_id}/status").json()["order_status"]
    assert status["status"] == "timeout"
    assert status["reassignment_count"] == 2

    response = client.post(f"/orders/{order_id}/driver-response", json={"driver_id": "driver-3", "accepted": True})
    assert response.status_code == 409


@pytest.mark.integration
def test_stale_response_is_acknowledged(client, timers):
    order_id = _create_order(client)
    client.post(f"/orders/{order_id}/assign", json={"driver_id": "driver-1"})
    _elapse_deadline(client, timers, order_id)

    response = client.post(f"/orders/{order_id}/driver-response", json={"driver_id": "driver-1", "accepted": True})

    assert response.status_code == 200
    order = response.json()["order"]
    assert order["status"] == "pending"
    assert order["current_candidate_id"] == "driver-2"


@pytest.mark.integration
def test_chat_answers_with_fallback_text(client):
    order_id = _create_order(client)

    response = client.post(
        "/chat",
        json={"order_id": order_id, "customer_id": "customer-1", "message": "Why is it taking so long?"},
    )

    assert response.status_code == 200
    reply = response.json()
    assert reply["success"] is True
    assert reply["query_type"] == "delay_explanation"
    assert reply["used_fallback"] is True
    assert order_id in reply["response"]


@pytest.mark.integration
def test_chat_rejects_blank_message(client):
    order_id = _create_order(client)

    response = client.post("/chat", json={"order_id": order_id, "customer_id": "customer-1", "message": "   "})

    assert response.status_code == 422


@pytest.mark.integration
def test_store_outage_returns_503(client, store):
    order_id = _create_order(client)
    store.failing = True

    response = client.get(f"/orders/{order_id}")

    assert response.status_code == 503
    assert response.json()["code"] == "ERR_STORE_UNAVAILABLE"
    assert client.get("/health/engine").status_code == 503
