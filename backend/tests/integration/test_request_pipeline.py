"""
End-to-end tests of the assembled application.

Routes for tasks, auth and uploads are mounted on the real app so every
request travels through CORS, the route-family pipelines and FastAPI.
"""

import pytest
from fastapi import APIRouter, Request
from fastapi.testclient import TestClient
from pydantic import BaseModel

from taskflow.core.exceptions import ForbiddenError, NotFoundError
from taskflow.main import create_app
from taskflow.middleware.security import SECURITY_HEADERS
from taskflow.services.container import build_services


class TaskIn(BaseModel):
    title: str


def build_test_router(counter):
    router = APIRouter()

    @router.get("/api/v1/tasks")
    async def list_tasks():
        counter["tasks"] += 1
        return {"tasks": [{"id": 1, "title": "Write tests"}], "served": counter["tasks"]}

    @router.get("/api/v1/tasks/export")
    async def export_tasks():
        return {"tasks": [{"id": i, "title": f"Task number {i}"} for i in range(200)]}

    @router.post("/api/v1/tasks")
    async def create_task(request: Request):
        task = TaskIn.model_validate(await request.json())
        return {"title": task.title}

    @router.get("/api/v1/tasks/{task_id}")
    async def get_task(task_id: str):
        if task_id == "private":
            raise ForbiddenError()
        raise NotFoundError("Task", task_id)

    @router.get("/api/v1/crash")
    async def crash():
        raise RuntimeError("database exploded")

    @router.post("/api/v1/auth/login")
    async def login():
        return {"token": "abc"}

    @router.post("/api/v1/uploads")
    async def upload():
        return {"uploaded": True}

    return router


@pytest.fixture
def counter():
    return {"tasks": 0}


@pytest.fixture
def app(settings, counter):
    services = build_services(settings)
    app = create_app(settings=settings, services=services)
    app.include_router(build_test_router(counter))
    return app


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


class TestSecurityHeaders:
    @pytest.mark.parametrize("path", ["/api/v1/tasks", "/api/v1/tasks/missing", "/health"])
    def test_present_on_every_response(self, client, path):
        response = client.get(path)

        for name, value in SECURITY_HEADERS.items():
            assert response.headers[name] == value


class TestResponseCaching:
    def test_second_request_is_served_from_cache(self, client, counter):
        first = client.get("/api/v1/tasks")
        second = client.get("/api/v1/tasks")

        assert first.headers["X-Cache"] == "MISS"
        assert second.headers["X-Cache"] == "HIT"
        assert second.json() == first.json()
        assert counter["tasks"] == 1

    def test_cache_is_per_user(self, client, counter):
        client.get("/api/v1/tasks", headers={"X-User-ID": "alice"})
        response = client.get("/api/v1/tasks", headers={"X-User-ID": "bob"})

        assert response.headers["X-Cache"] == "MISS"
        assert counter["tasks"] == 2

    def test_health_is_never_cached(self, client):
        client.get("/health")
        response = client.get("/health")

        assert "X-Cache" not in response.headers


class TestRateLimiting:
    def test_api_routes_carry_rate_limit_headers(self, client):
        response = client.get("/api/v1/tasks")

        assert response.headers["X-RateLimit-Limit"] == "1000"
        assert response.headers["X-RateLimit-Remaining"] == "999"
        assert int(response.headers["X-RateLimit-Reset"]) > 0

    def test_auth_route_blocks_sixth_attempt(self, client):
        for _ in range(5):
            assert client.post("/api/v1/auth/login", json={}).status_code == 200

        response = client.post("/api/v1/auth/login", json={})

        assert response.status_code == 429
        body = response.json()
        assert body["error"] == "Too Many Requests"
        assert body["message"] == "Rate limit exceeded. Please try again later."
        assert 0 < body["retryAfter"] <= 900
        assert response.headers["X-RateLimit-Remaining"] == "0"
        assert response.headers["X-Frame-Options"] == "DENY"

    def test_upload_route_counts_both_policies(self, client):
        response = client.post("/api/v1/uploads", json={})

        assert response.status_code == 200
        assert response.headers["X-RateLimit-Limit"] == "10"

    def test_health_is_not_rate_limited(self, client):
        response = client.get("/health")

        assert "X-RateLimit-Limit" not in response.headers

    def test_admin_reset_restores_quota(self, client):
        for _ in range(6):
            client.post("/api/v1/auth/login", json={})

        reset = client.delete("/api/v1/monitoring/rate-limits/auth/testclient")
        assert reset.status_code == 204

        assert client.post("/api/v1/auth/login", json={}).status_code == 200

    def test_reset_unknown_policy_is_404(self, client):
        response = client.delete("/api/v1/monitoring/rate-limits/bogus/testclient")

        assert response.status_code == 404
        assert response.json()["error"] == "Not found"


class TestValidation:
    def test_wrong_content_type_rejected(self, client):
        response = client.post(
            "/api/v1/tasks", content="title=x", headers={"Content-Type": "text/plain"}
        )

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid content type"}

    def test_declared_oversized_body_rejected(self, client):
        response = client.post(
            "/api/v1/tasks",
            content=b"{}",
            headers={
                "Content-Type": "application/json",
                "Content-Length": str(51 * 1024 * 1024),
            },
        )

        assert response.status_code == 413
        assert response.json() == {"error": "Request too large"}

    def test_valid_json_reaches_handler(self, client):
        response = client.post("/api/v1/tasks", json={"title": "Ship it"})

        assert response.status_code == 200
        assert response.json() == {"title": "Ship it"}

    def test_schema_failure_is_400(self, client):
        response = client.post("/api/v1/tasks", json={})

        assert response.status_code == 400
        assert response.json()["error"] == "Validation failed"


class TestErrorMapping:
    def test_not_found(self, client):
        response = client.get("/api/v1/tasks/missing")

        assert response.status_code == 404
        assert response.json() == {"error": "Not found", "details": "Task not found"}

    def test_forbidden(self, client):
        response = client.get("/api/v1/tasks/private")

        assert response.status_code == 403
        assert response.json() == {"error": "Forbidden"}

    def test_invalid_query_parameter_is_400(self, client):
        response = client.get("/api/v1/monitoring/performance?window_ms=0")

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Validation failed"
        assert body["context"]["errors"][0]["loc"] == ["query", "window_ms"]

        summary = client.get("/api/v1/monitoring/performance").json()
        assert summary["operations_by_type"]["api.error"]["count"] == 1

    def test_unknown_route_is_404(self, client):
        response = client.get("/api/v1/nope")

        assert response.status_code == 404
        assert response.json() == {"error": "Not found"}
        assert response.headers["X-Frame-Options"] == "DENY"

        summary = client.get("/api/v1/monitoring/performance").json()
        assert summary["operations_by_type"]["api.error"]["count"] == 1

    def test_wrong_method_is_405(self, client):
        response = client.post("/health", json={})

        assert response.status_code == 405
        assert response.json() == {"error": "Method Not Allowed"}

    def test_unexpected_error_is_500_with_details_outside_production(self, client):
        response = client.get("/api/v1/crash")

        assert response.status_code == 500
        assert response.json() == {
            "error": "Internal server error",
            "details": "database exploded",
        }


class TestCompression:
    def test_large_response_is_gzipped(self, client):
        response = client.get("/api/v1/tasks/export", headers={"Accept-Encoding": "gzip"})

        assert response.headers["Content-Encoding"] == "gzip"
        assert "Accept-Encoding" in response.headers["Vary"]
        assert len(response.json()["tasks"]) == 200

    def test_small_response_is_not_gzipped(self, client):
        response = client.get("/health", headers={"Accept-Encoding": "gzip"})

        assert "content-encoding" not in response.headers


class TestMonitoringEndpoints:
    def test_performance_summary_counts_requests(self, client):
        client.get("/api/v1/tasks")
        client.get("/api/v1/tasks")

        summary = client.get("/api/v1/monitoring/performance").json()

        assert summary["operations_by_type"]["GET /api/v1/tasks"]["count"] == 2
        assert summary["window_ms"] == 5 * 60 * 1000

    def test_errors_are_recorded(self, client):
        client.get("/api/v1/crash")

        summary = client.get("/api/v1/monitoring/performance").json()

        assert summary["operations_by_type"]["api.error"]["count"] == 1

    def test_realtime_metrics(self, client):
        client.get("/api/v1/tasks")

        realtime = client.get("/api/v1/monitoring/realtime").json()

        assert realtime["recent_operations"][0]["name"] == "GET /api/v1/tasks"
        assert realtime["memory_usage_mb"]["rss"] > 0

    def test_health_reports_cache_backend(self, client):
        body = client.get("/health").json()

        assert body["status"] == "healthy"
        assert body["cache"]["backend"] == "memory"
