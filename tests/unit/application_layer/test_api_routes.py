"""
Unit Tests for API Routes

Runs the FastAPI app through TestClient with a container backed by a
temporary SQLite database and a MockTransport HTTP client. Background
loops are disabled, so every dispatch pass is triggered explicitly.
"""

import httpx
import pytest
from fastapi.testclient import TestClient

from src.application.app import create_app
from src.application.container import ServiceContainer
from src.publishing.publisher import PublisherRegistry
from tests.test_fixtures.engine_factory import ScriptedPublisher, mock_http_client

BASE = "/api/v1"
FUTURE = "2030-01-01T09:00:00Z"


def receiver(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"ok": True})


@pytest.fixture
def container(test_settings):
    return ServiceContainer(
        test_settings,
        http_client=mock_http_client(receiver),
        publishers=PublisherRegistry([ScriptedPublisher("twitter"), ScriptedPublisher("linkedin")]),
    )


@pytest.fixture
def client(container):
    with TestClient(create_app(container)) as test_client:
        yield test_client


def schedule_body(**overrides):
    body = {
        "userId": "user-1",
        "postId": "post-1",
        "content": "We just shipped scheduled publishing!",
        "platforms": ["twitter", "linkedin"],
        "scheduleDate": FUTURE,
    }
    body.update(overrides)
    return body


def create_webhook(client, **overrides):
    body = {
        "integrationId": "int-1",
        "url": "https://hooks.example.com/in",
        "events": ["post_published", "post_failed"],
    }
    body.update(overrides)
    return client.post(f"{BASE}/webhooks", json=body)


@pytest.mark.unit
class TestScheduledPostRoutes:
    """Test suite for the scheduling endpoints."""

    def test_schedule_returns_camel_case_job_ids(self, client):
        response = client.post(f"{BASE}/scheduled-posts", json=schedule_body())

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["processImmediately"] is False
        assert len(data["jobIds"]) == 2
        assert data["dueJobIds"] == []

    def test_resubmission_returns_same_jobs(self, client):
        first = client.post(f"{BASE}/scheduled-posts", json=schedule_body()).json()
        second = client.post(f"{BASE}/scheduled-posts", json=schedule_body()).json()

        assert second["jobIds"] == first["jobIds"]
        assert len(client.get(f"{BASE}/scheduled-posts/jobs", params={"userId": "user-1"}).json()) == 2

    def test_due_jobs_are_dispatched_in_background(self, client):
        response = client.post(
            f"{BASE}/scheduled-posts",
            json=schedule_body(platforms=["twitter"], scheduleDate="2020-01-01T00:00:00Z"),
        )

        data = response.json()
        assert data["processImmediately"] is True
        assert data["dueJobIds"] == data["jobIds"]

        job = client.get(f"{BASE}/scheduled-posts/jobs/{data['jobIds'][0]}").json()
        assert job["attempts"] == 1
        assert job["status"] == "pending"
        assert "No connected integration" in job["lastError"]

    def test_unsupported_platform_is_400(self, client):
        response = client.post(f"{BASE}/scheduled-posts", json=schedule_body(platforms=["twitter", "myspace"]))

        assert response.status_code == 400
        data = response.json()
        assert data["error"] == "unsupported_platform"
        assert data["details"]["value"] == "myspace"
        assert "correlation_id" in data

    @pytest.mark.parametrize(
        "overrides,error",
        [
            ({"content": "   "}, "empty_content"),
            ({"scheduleDate": "next tuesday"}, "invalid_schedule_date"),
            ({"platforms": []}, "unsupported_platform"),
            ({"options": {"tone": "sarcastic"}}, "validation"),
        ],
    )
    def test_domain_validation_errors(self, client, overrides, error):
        response = client.post(f"{BASE}/scheduled-posts", json=schedule_body(**overrides))

        assert response.status_code == 400
        assert response.json()["error"] == error

    def test_malformed_body_is_422(self, client):
        response = client.post(f"{BASE}/scheduled-posts", json={"userId": "user-1"})

        assert response.status_code == 422
        assert response.json()["error"] == "request_validation"

    def test_get_and_cancel_job(self, client):
        job_id = client.post(f"{BASE}/scheduled-posts", json=schedule_body(platforms=["twitter"])).json()["jobIds"][0]

        job = client.get(f"{BASE}/scheduled-posts/jobs/{job_id}").json()
        assert job["id"] == job_id
        assert job["userId"] == "user-1"
        assert job["maxAttempts"] == 5
        assert job["status"] == "pending"

        cancelled = client.post(f"{BASE}/scheduled-posts/jobs/{job_id}/cancel").json()
        assert cancelled == {"jobId": job_id, "cancelled": True}
        assert client.post(f"{BASE}/scheduled-posts/jobs/{job_id}/cancel").json()["cancelled"] is False

        listed = client.get(f"{BASE}/scheduled-posts/jobs", params={"userId": "user-1", "status": "cancelled"}).json()
        assert [j["id"] for j in listed] == [job_id]

    def test_unknown_job_is_404(self, client):
        response = client.get(f"{BASE}/scheduled-posts/jobs/missing")

        assert response.status_code == 404
        assert response.json()["error"] == "job_not_found"

    def test_unknown_status_filter_is_400(self, client):
        response = client.get(f"{BASE}/scheduled-posts/jobs", params={"userId": "user-1", "status": "lost"})

        assert response.status_code == 400

    def test_manual_dispatch_pass(self, client):
        response = client.post(f"{BASE}/scheduled-posts/process")

        assert response.status_code == 200
        assert response.json()["selected"] == 0


@pytest.mark.unit
class TestWebhookRoutes:
    """Test suite for webhook management endpoints."""

    def test_create_returns_secret_once(self, client):
        response = create_webhook(client, retryPolicy={"maxRetries": 5, "initialDelay": 500})

        assert response.status_code == 201
        created = response.json()
        assert len(created["secret"]) == 64
        assert created["isActive"] is True
        assert created["retryPolicy"]["maxRetries"] == 5
        assert created["retryPolicy"]["initialDelay"] == 500
        assert created["timeout"] == 30000

        listed = client.get(f"{BASE}/webhooks", params={"integrationId": "int-1"}).json()
        assert [w["id"] for w in listed] == [created["id"]]
        assert listed[0]["secret"] is None

    @pytest.mark.parametrize(
        "overrides",
        [
            {"url": "ftp://hooks.example.com"},
            {"events": ["post_deleted"]},
            {"timeout": 10},
        ],
    )
    def test_invalid_webhook_is_400(self, client, overrides):
        response = create_webhook(client, **overrides)

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_webhook_config"

    def test_delete_deactivates(self, client):
        webhook_id = create_webhook(client).json()["id"]

        assert client.delete(f"{BASE}/webhooks/{webhook_id}").status_code == 204
        assert client.get(f"{BASE}/webhooks", params={"integrationId": "int-1"}).json() == []

    def test_unknown_webhook_is_404(self, client):
        response = client.delete(f"{BASE}/webhooks/missing")

        assert response.status_code == 404
        assert response.json()["error"] == "webhook_not_found"

    def test_test_delivery_and_stats(self, client):
        webhook_id = create_webhook(client).json()["id"]

        tested = client.post(f"{BASE}/webhooks/{webhook_id}/test").json()
        stats = client.get(f"{BASE}/webhooks/{webhook_id}/stats", params={"range": "1h"}).json()

        assert tested["success"] is True
        assert tested["deliveryId"]
        assert stats["totalDeliveries"] == 1
        assert stats["successfulDeliveries"] == 1
        assert stats["successRate"] == 100

    def test_stats_rejects_unknown_range(self, client):
        webhook_id = create_webhook(client).json()["id"]

        response = client.get(f"{BASE}/webhooks/{webhook_id}/stats", params={"range": "1y"})

        assert response.status_code == 400


@pytest.mark.unit
class TestHealthAndAdminRoutes:
    """Test suite for probes and admin endpoints."""

    def test_health_summary(self, client):
        client.post(f"{BASE}/scheduled-posts", json=schedule_body())

        data = client.get(f"{BASE}/health").json()

        assert data["status"] == "healthy"
        assert data["pending_jobs"] == 2
        assert data["pending_deliveries"] == 0
        assert data["unhealthy_providers"] == []

    def test_probes(self, client):
        assert client.get(f"{BASE}/health/live").json()["status"] == "alive"
        assert client.get(f"{BASE}/health/ready").json()["status"] == "ready"

    def test_detailed_health(self, client):
        data = client.get(f"{BASE}/health/detailed").json()

        assert data["components"]["database"] == {"status": "healthy"}
        assert {p["id"] for p in data["components"]["image_providers"]} == {
            "gemini_imagen", "openai_dalle", "stability_ai",
        }
        assert data["components"]["tasks"] == []

    def test_metrics_exposition(self, client):
        response = client.get(f"{BASE}/admin/metrics")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert "publishing_app_info" in response.text

    def test_provider_reset(self, client, container):
        container.health_tracker.report_outcome("openai_dalle", False, "quota")

        assert client.post(f"{BASE}/admin/providers/reset", params={"providerId": "openai_dalle"}).json() == {
            "reset": "openai_dalle",
        }
        providers = client.get(f"{BASE}/admin/providers").json()
        assert providers["unhealthy"] == []

    def test_tasks_without_workers(self, client):
        data = client.get(f"{BASE}/admin/tasks").json()

        assert data == {"started": False, "tasks": [], "active_syncs": []}

    def test_correlation_id_is_echoed(self, client):
        response = client.get(f"{BASE}/health/live", headers={"X-Correlation-ID": "req-abc"})

        assert response.headers["X-Correlation-ID"] == "req-abc"

    def test_error_body_carries_correlation_id(self, client):
        response = client.get(f"{BASE}/scheduled-posts/jobs/missing", headers={"X-Correlation-ID": "req-404"})

        assert response.json()["correlation_id"] == "req-404"
