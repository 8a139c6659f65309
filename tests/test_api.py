"""Tests for the REST API."""

import pytest
from fastapi.testclient import TestClient

from automation_engine.config import get_testing_config
from automation_engine.factory import build_components, create_app

from conftest import invoice_definition


@pytest.fixture
def components(session_factory, sender, record_store):
    components = build_components(
        get_testing_config(),
        session_factory=session_factory,
        notification_sender=sender,
        record_mutator=record_store,
    )
    yield components
    components.shutdown()


@pytest.fixture
def client(components):
    """Create a test client."""
    return TestClient(create_app(components=components))


@pytest.fixture
def workflow_payload():
    return invoice_definition().model_dump(mode="json")


@pytest.fixture
def workflow_id(client, workflow_payload):
    response = client.post("/api/v1/workflows", json=workflow_payload)
    assert response.status_code == 201
    return response.json()["workflow"]["id"]


def execute(client, workflow_id, **context):
    return client.post(f"/api/v1/workflows/{workflow_id}/execute", json={"context": context})


class TestWorkflowEndpoints:
    """Test cases for workflow CRUD endpoints."""

    def test_create_workflow(self, client, workflow_payload):
        response = client.post("/api/v1/workflows", json=workflow_payload)

        assert response.status_code == 201
        data = response.json()
        assert data["workflow"]["version"] == 1
        assert data["workflow"]["name"] == "High value invoices"
        assert data["validation_warnings"] == []
        assert "X-Request-ID" in response.headers

    def test_create_rejects_malformed_definition(self, client, workflow_payload):
        workflow_payload["triggers"] = []
        workflow_payload["conditions"] = {"op": "NOT", "children": []}

        response = client.post("/api/v1/workflows", json=workflow_payload)

        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["error"] == "WorkflowValidationError"
        assert detail["details"]["validation_errors"]

    def test_create_rejects_unknown_action(self, client, workflow_payload):
        workflow_payload["actions"] = [{"type": "teleport"}]

        response = client.post("/api/v1/workflows", json=workflow_payload)

        assert response.status_code == 400
        assert "teleport" in response.json()["detail"]["message"]

    def test_get_and_list(self, client, workflow_id):
        assert client.get(f"/api/v1/workflows/{workflow_id}").json()["id"] == workflow_id

        listing = client.get("/api/v1/workflows").json()
        assert listing["total"] == 1
        assert client.get("/api/v1/workflows", params={"enabled": "false"}).json()["total"] == 0

    def test_get_missing_workflow(self, client):
        response = client.get("/api/v1/workflows/missing")

        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "WorkflowNotFoundError"

    def test_update_bumps_version(self, client, workflow_id, workflow_payload):
        workflow_payload["name"] = "Renamed"

        response = client.put(f"/api/v1/workflows/{workflow_id}", json=workflow_payload)

        assert response.status_code == 200
        assert response.json()["workflow"]["version"] == 2
        assert response.json()["workflow"]["name"] == "Renamed"

    def test_update_with_stale_version(self, client, workflow_id, workflow_payload):
        client.put(f"/api/v1/workflows/{workflow_id}", json=workflow_payload, params={"expected_version": 1})

        response = client.put(f"/api/v1/workflows/{workflow_id}", json=workflow_payload,
                              params={"expected_version": 1})

        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "WorkflowVersionConflictError"

    def test_enable_disable(self, client, workflow_id):
        assert client.post(f"/api/v1/workflows/{workflow_id}/disable").json()["enabled"] is False
        assert client.post(f"/api/v1/workflows/{workflow_id}/enable").json()["enabled"] is True
        assert client.post("/api/v1/workflows/missing/enable").status_code == 404

    def test_delete(self, client, workflow_id):
        assert client.delete(f"/api/v1/workflows/{workflow_id}").status_code == 200
        assert client.delete(f"/api/v1/workflows/{workflow_id}").status_code == 404
        assert client.get(f"/api/v1/workflows/{workflow_id}").status_code == 404


class TestExecutionEndpoints:
    """Test cases for execute, test, stats and history endpoints."""

    def test_execute_high_value_invoice(self, client, workflow_id, sender):
        response = execute(client, workflow_id, entity={"type": "invoice", "id": "inv-9", "amount": 2500})

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "SUCCESS"
        assert data["execution_id"]
        assert data["actions_executed"] == 2
        assert data["actions_success"] == 2
        assert data["actions_failed"] == 0
        assert data["started_at"] and data["completed_at"]
        assert data["duration_ms"] >= 0
        assert sender.sent[0]["message"] == "Invoice inv-9 needs review"

    def test_execute_skipped(self, client, workflow_id):
        data = execute(client, workflow_id, entity={"type": "invoice", "id": "inv-1", "amount": 10}).json()

        assert data["status"] == "SKIPPED"
        assert data["execution_id"] is None
        assert data["skip_reason"] == "conditions not met"

    def test_execute_without_body_defaults_to_manual(self, client, workflow_id):
        response = client.post(f"/api/v1/workflows/{workflow_id}/execute")

        assert response.status_code == 200
        assert response.json()["status"] == "SKIPPED"

    def test_execute_missing_workflow(self, client):
        assert execute(client, "missing").status_code == 404

    def test_execute_disabled_workflow(self, client, workflow_id):
        client.post(f"/api/v1/workflows/{workflow_id}/disable")

        response = execute(client, workflow_id, entity={"amount": 5000})

        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "WorkflowDisabledError"

    def test_execute_rejects_test_context(self, client, workflow_id):
        assert execute(client, workflow_id, triggered_by="TEST").status_code == 400

    def test_dry_run(self, client, workflow_id, sender):
        response = client.post(f"/api/v1/workflows/{workflow_id}/test", json={
            "context": {"entity": {"type": "invoice", "id": "inv-1", "amount": 5000}},
            "simulate_as": "MANUAL",
        })

        assert response.status_code == 200
        data = response.json()
        assert data["would_execute"] is True
        assert data["simulated_as"] == "MANUAL"
        assert [action["type"] for action in data["per_action"]] == ["notify", "flag"]
        assert sender.sent == []
        executions = client.get(f"/api/v1/workflows/{workflow_id}/executions").json()
        assert executions["pagination"]["total"] == 0

    def test_stats(self, client, workflow_id):
        execute(client, workflow_id, entity={"type": "invoice", "id": "inv-1", "amount": 5000})
        execute(client, workflow_id, entity={"type": "invoice", "id": "inv-2", "amount": 6000})

        response = client.get(f"/api/v1/workflows/{workflow_id}/stats",
                              params={"days": 7, "timezone": "Europe/Berlin"})

        assert response.status_code == 200
        data = response.json()
        assert data["overview"]["total_executions"] == 2
        assert data["overview"]["success_rate"] == 100.0
        assert data["overview"]["successful_executions"] == 2
        assert data["overview"]["failed_executions"] == 0
        assert data["status_breakdown"] == {"SUCCESS": 2}
        assert data["timezone"] == "Europe/Berlin"
        assert len(data["trend"]) == 1

    @pytest.mark.parametrize("params", [{"days": 0}, {"days": 400}, {"timezone": "Not/AZone"}])
    def test_stats_invalid_parameters(self, client, workflow_id, params):
        response = client.get(f"/api/v1/workflows/{workflow_id}/stats", params=params)

        assert response.status_code == 400

    def test_stats_missing_workflow(self, client):
        assert client.get("/api/v1/workflows/missing/stats").status_code == 404

    def test_execution_history(self, client, workflow_id):
        for amount in (2000, 3000, 4000):
            execute(client, workflow_id, entity={"type": "invoice", "id": f"inv-{amount}", "amount": amount})

        response = client.get(f"/api/v1/workflows/{workflow_id}/executions", params={"page": 1, "limit": 2})

        assert response.status_code == 200
        data = response.json()
        assert len(data["executions"]) == 2
        assert data["pagination"] == {"page": 1, "limit": 2, "total": 3, "total_pages": 2}

        filtered = client.get(f"/api/v1/workflows/{workflow_id}/executions", params={"status": "failed"}).json()
        assert filtered["pagination"]["total"] == 0

    def test_execution_history_invalid_limit(self, client, workflow_id):
        response = client.get(f"/api/v1/workflows/{workflow_id}/executions", params={"limit": 500})

        assert response.status_code == 400


class TestActionAndHealthEndpoints:
    """Test cases for action listing and health endpoints."""

    def test_list_actions(self, client):
        data = client.get("/api/v1/actions").json()

        assert data["total"] == 6
        assert {action["type"] for action in data["actions"]} >= {"notify", "flag", "webhook"}

    def test_describe_action(self, client):
        assert client.get("/api/v1/actions/notify").json()["type"] == "notify"
        assert client.get("/api/v1/actions/teleport").status_code == 404

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_detailed_health(self, client):
        response = client.get("/health/detailed")

        assert response.status_code == 200
        data = response.json()
        assert data["overall_status"] == "healthy"
        assert set(data["checks"]) == {"database", "workflow_engine", "action_registry"}

    def test_readiness(self, client):
        response = client.get("/health/ready")

        assert response.status_code == 200
        assert response.json()["ready"] is True


class TestTemplateEndpoints:
    """Test cases for the workflow template catalogue endpoints."""

    def test_list_templates(self, client):
        data = client.get("/api/v1/templates").json()

        assert data["total"] == 14
        assert "invoice_payment" in data["categories"]

    def test_filter_by_category_and_difficulty(self, client):
        by_category = client.get("/api/v1/templates", params={"category": "task_management"}).json()
        both = client.get("/api/v1/templates",
                          params={"category": "task_management", "difficulty": "beginner"}).json()

        assert by_category["total"] == 3
        assert [template["id"] for template in both["templates"]] == ["task-assignment-notification"]

    def test_search_templates(self, client):
        data = client.get("/api/v1/templates/search", params={"q": "overdue"}).json()

        assert {template["id"] for template in data["templates"]} == {
            "project-overdue-reminder", "task-overdue-escalation", "invoice-overdue-reminder",
        }

    def test_template_stats(self, client):
        assert client.get("/api/v1/templates/stats").json()["total"] == 14

    def test_get_template(self, client):
        response = client.get("/api/v1/templates/daily-standup-reminder")

        assert response.status_code == 200
        data = response.json()
        assert data["category"] == "team_collaboration"
        assert data["definition"]["triggers"][0]["type"] == "SCHEDULE"

    def test_get_unknown_template(self, client):
        response = client.get("/api/v1/templates/no-such-template")

        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "TemplateNotFoundError"

    def test_create_workflow_from_template(self, client):
        response = client.post("/api/v1/templates/invoice-overdue-reminder/workflows",
                               json={"overrides": {"name": "Chase late invoices", "priority": 2}})

        assert response.status_code == 201
        workflow = response.json()["workflow"]
        assert workflow["name"] == "Chase late invoices"
        assert workflow["priority"] == 2
        assert client.get(f"/api/v1/workflows/{workflow['id']}").status_code == 200

    def test_create_from_template_without_body(self, client):
        response = client.post("/api/v1/templates/code-review-assignment/workflows")

        assert response.status_code == 201
        assert response.json()["validation_warnings"] == [
            "Event trigger 'code_review.assigned' matches every entity type"
        ]

    def test_create_from_unknown_template(self, client):
        response = client.post("/api/v1/templates/no-such-template/workflows")

        assert response.status_code == 404

    def test_create_from_template_with_bad_override(self, client):
        response = client.post("/api/v1/templates/daily-standup-reminder/workflows",
                               json={"overrides": {"triggers": []}})

        assert response.status_code == 400
        assert client.get("/api/v1/workflows").json()["total"] == 0
