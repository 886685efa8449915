# tests/test_http_app.py
"""HTTP API tests against in-memory services."""
import pytest
from fastapi.testclient import TestClient

from fieldservice.transport.http_app import create_app

TASK_PAYLOAD = {
    "title": "Fix air conditioner",
    "description": "Unit makes a rattling noise",
    "client_address": "123 Main St, Springfield",
    "priority": "HIGH",
    "estimated_duration": 60,
    "customer_id": "cust-1",
    "customer_contact": "customer@example.com",
}

DISPATCHER = {"X-User-Id": "disp-1"}
TECHNICIAN = {"X-User-Id": "tech-1"}


@pytest.fixture
def client(services):
    with TestClient(create_app(services)) as c:
        yield c


def _create_task(client, **overrides) -> dict:
    resp = client.post("/tasks", json={**TASK_PAYLOAD, **overrides})
    assert resp.status_code == 201, resp.text
    return resp.json()


# ============================================================================
# Tasks
# ============================================================================

class TestTaskRoutes:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}

    def test_create_and_get(self, client):
        task = _create_task(client)

        assert task["status"] == "UNASSIGNED"
        assert task["priority"] == "HIGH"
        assert "customer_contact" not in task

        resp = client.get(f"/tasks/{task['id']}")
        assert resp.status_code == 200
        assert resp.json()["title"] == "Fix air conditioner"

    def test_create_with_bad_address(self, client):
        resp = client.post("/tasks", json={**TASK_PAYLOAD, "client_address": "Somewhere nice"})
        assert resp.status_code == 400
        assert resp.json()["code"] == "invalid_argument"

    def test_create_with_short_title_is_400(self, client):
        resp = client.post("/tasks", json={**TASK_PAYLOAD, "title": "ab"})
        assert resp.status_code == 400
        assert resp.json()["code"] == "invalid_argument"

    def test_unknown_task_is_404(self, client):
        resp = client.get("/tasks/nope")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Task not found with id: nope", "code": "not_found"}

    def test_unassigned_listing_order(self, client):
        _create_task(client, title="Low job", priority="LOW")
        _create_task(client, title="High job", priority="HIGH")

        titles = [t["title"] for t in client.get("/tasks/unassigned").json()]
        assert titles == ["High job", "Low job"]

    def test_filter_by_status(self, client):
        task = _create_task(client)
        _create_task(client)
        client.post(f"/tasks/{task['id']}/assign", json={"technician_id": "tech-1"}, headers=DISPATCHER)

        assigned = client.get("/tasks", params={"status": "ASSIGNED"}).json()
        mine = client.get("/tasks", params={"technician_id": "tech-1"}).json()

        assert [t["id"] for t in assigned] == [task["id"]]
        assert [t["id"] for t in mine] == [task["id"]]
        assert len(client.get("/tasks").json()) == 2

    def test_update(self, client):
        task = _create_task(client)
        resp = client.put(f"/tasks/{task['id']}", json={"priority": "LOW"})
        assert resp.status_code == 200
        assert resp.json()["priority"] == "LOW"
        assert resp.json()["title"] == task["title"]


# ============================================================================
# Lifecycle
# ============================================================================

class TestLifecycleRoutes:
    def test_full_flow(self, client, sender):
        task = _create_task(client)
        task_id = task["id"]

        resp = client.post(f"/tasks/{task_id}/assign", json={"technician_id": "tech-1"}, headers=DISPATCHER)
        assert resp.status_code == 200
        assert resp.json()["assigned_technician_id"] == "tech-1"
        assert resp.json()["assigned_by_id"] == "disp-1"

        assert client.post(f"/tasks/{task_id}/start").json()["status"] == "IN_PROGRESS"
        resp = client.post(f"/tasks/{task_id}/complete", json={"work_summary": "Replaced fan"})
        assert resp.json()["status"] == "COMPLETED"

        assert client.get(f"/tasks/{task_id}/status").json() == {"task_id": task_id, "status": "COMPLETED"}

    def test_assign_requires_user_header(self, client):
        task = _create_task(client)
        resp = client.post(f"/tasks/{task['id']}/assign", json={"technician_id": "tech-1"})
        assert resp.status_code == 400

    def test_second_assignment_is_409(self, client):
        task = _create_task(client)
        client.post(f"/tasks/{task['id']}/assign", json={"technician_id": "tech-1"}, headers=DISPATCHER)

        resp = client.post(f"/tasks/{task['id']}/assign", json={"technician_id": "tech-2"}, headers=DISPATCHER)

        assert resp.status_code == 409
        body = resp.json()
        assert body["code"] == "already_assigned"
        assert body["assignee"] == "tom"
        assert body["current_status"] == "ASSIGNED"

    def test_inactive_technician_is_409(self, client):
        task = _create_task(client)
        resp = client.post(f"/tasks/{task['id']}/assign", json={"technician_id": "tech-idle"}, headers=DISPATCHER)
        assert resp.status_code == 409
        assert resp.json()["code"] == "technician_unavailable"

    def test_start_unassigned_is_409(self, client):
        task = _create_task(client)
        resp = client.post(f"/tasks/{task['id']}/start")
        assert resp.status_code == 409
        assert resp.json()["current_status"] == "UNASSIGNED"

    def test_complete_without_summary_is_400(self, client):
        task = _create_task(client)
        client.post(f"/tasks/{task['id']}/assign", json={"technician_id": "tech-1"}, headers=DISPATCHER)
        client.post(f"/tasks/{task['id']}/start")

        resp = client.post(f"/tasks/{task['id']}/complete", json={"work_summary": "  "})
        assert resp.status_code == 400

    def test_cancel(self, client):
        task = _create_task(client)
        assert client.post(f"/tasks/{task['id']}/cancel").json()["status"] == "CANCELLED"

    def test_available_technicians(self, client):
        ids = sorted(t["id"] for t in client.get("/technicians/available").json())
        assert ids == ["tech-1", "tech-2"]


# ============================================================================
# Locations
# ============================================================================

class TestLocationRoutes:
    def test_report_and_read_back(self, client):
        resp = client.post("/locations", json={"latitude": 40.0, "longitude": -73.5}, headers=TECHNICIAN)
        assert resp.status_code == 201
        assert resp.json()["user_id"] == "tech-1"

        latest = client.get("/locations/technicians/tech-1").json()
        assert latest["id"] == resp.json()["id"]
        assert [loc["user_id"] for loc in client.get("/locations/technicians").json()] == ["tech-1"]

    def test_throttled_report_is_429_with_retry_after(self, client, clock):
        client.post("/locations", json={"latitude": 40.0, "longitude": -73.5}, headers=TECHNICIAN)
        clock.advance(seconds=10)

        resp = client.post("/locations", json={"latitude": 40.0, "longitude": -73.5}, headers=TECHNICIAN)

        assert resp.status_code == 429
        assert resp.headers["Retry-After"] == "20"
        assert resp.json()["retry_after"] == 20

    def test_dispatcher_cannot_report(self, client):
        resp = client.post("/locations", json={"latitude": 40.0, "longitude": -73.5}, headers=DISPATCHER)
        assert resp.status_code == 400

    def test_no_location_is_404(self, client):
        assert client.get("/locations/technicians/tech-2").status_code == 404

    def test_since_minutes_must_be_positive(self, client):
        assert client.get("/locations/technicians", params={"since_minutes": 0}).status_code == 400

    def test_task_locations(self, client):
        task = _create_task(client)
        views = client.get("/locations/tasks").json()
        assert [v["task_id"] for v in views] == [task["id"]]

    def test_websocket_receives_reports(self, client):
        with client.websocket_connect("/ws/locations") as ws:
            client.post("/locations", json={"latitude": 40.0, "longitude": -73.5}, headers=TECHNICIAN)
            payload = ws.receive_json()

        assert payload["user_id"] == "tech-1"
        assert payload["latitude"] == 40.0


# ============================================================================
# Notifications
# ============================================================================

class TestNotificationRoutes:
    def test_send_and_list(self, client):
        resp = client.post("/notifications", json={
            "task_id": "task-9",
            "customer_id": "cust-1",
            "type": "TASK_ASSIGNED",
            "message": "Hello",
            "recipient_contact": "customer@example.com",
        })
        assert resp.status_code == 200
        assert resp.json()["delivery_status"] == "SENT"
        assert resp.json()["channel"] == "EMAIL"

        listed = client.get("/notifications/task/task-9").json()
        assert [n["id"] for n in listed] == [resp.json()["id"]]

    def test_failed_send_then_retry(self, client, sender):
        sender.fail_email = True
        resp = client.post("/notifications", json={
            "task_id": "task-9",
            "customer_id": "cust-1",
            "type": "TASK_COMPLETED",
            "message": "Done",
            "recipient_contact": "customer@example.com",
        })
        assert resp.json()["delivery_status"] == "FAILED"
        sender.fail_email = False

        summary = client.post("/notifications/retry").json()

        assert summary == {"retried": 1, "succeeded": 1, "skipped": 0, "failed_ids": []}
