"""
API tests for /, /health and /metrics, and request correlation headers
"""
import uuid

import pytest

from coursepush.middleware.logging_middleware import resolve_request_id


class TestSystemEndpoints:
    """Status and monitoring endpoints"""

    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["status"] == "running"

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["registry_backend"] == "memory"
        assert body["partners"] == ["poc1", "poc2"]

    def test_metrics_exposes_push_counters(self, client, register):
        register("poc1qa123456", "tok-a")
        client.post("/push", json={
            "partner": "poc1", "environment": "qa", "title": "t", "message": "m",
        })

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "text/plain" in response.headers["content-type"]
        text = response.text
        assert "push_dispatch_total" in text
        assert "token_registrations_total" in text
        assert "http_requests_total" in text


class TestRequestId:
    """X-Request-ID propagation"""

    def test_request_id_generated(self, client):
        response = client.get("/")

        assert response.headers.get("X-Request-ID")

    def test_request_id_echoed(self, client):
        response = client.get("/", headers={"X-Request-ID": "req-123"})

        assert response.headers["X-Request-ID"] == "req-123"

    def test_malformed_request_id_replaced(self, client):
        """Ids with spaces or control characters are not echoed back."""
        response = client.get("/", headers={"X-Request-ID": "bad id; drop"})

        assert response.headers["X-Request-ID"] != "bad id; drop"
        assert len(response.headers["X-Request-ID"]) == 36

    def test_error_responses_carry_request_id(self, client):
        response = client.post("/push", json={}, headers={"X-Request-ID": "req-err"})

        assert response.status_code == 400
        assert response.headers["X-Request-ID"] == "req-err"


class TestResolveRequestId:
    """Client request id reuse rules"""

    @pytest.mark.parametrize("value", ["req-123", "a1b2.c3:d4_e5", "x" * 128])
    def test_reused(self, value):
        assert resolve_request_id(value) == value

    @pytest.mark.parametrize("value", ["", "x" * 129, "line\nbreak", "a b"])
    def test_generated(self, value):
        generated = resolve_request_id(value)

        assert generated != value
        assert str(uuid.UUID(generated)) == generated
