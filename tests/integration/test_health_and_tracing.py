import logging
import uuid
from unittest.mock import patch

import pytest

from modules.core import views

pytestmark = pytest.mark.integration


class TestHealthCheck:
    def test_healthy(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["services"]["database"]["status"] == "up"
        assert body["services"]["cache"]["status"] == "up"
        assert "timestamp" in body

    def test_cache_down_is_unhealthy(self, client):
        def broken():
            raise ConnectionError("cache unavailable")

        with patch.dict(views.PROBES, {"cache": broken}):
            response = client.get("/health")

        assert response.status_code == 503
        body = response.json()
        assert body["status"] == "unhealthy"
        assert body["services"]["cache"] == {"status": "down"}
        assert body["services"]["database"]["status"] == "up"

    def test_no_authentication_required(self, api_client):
        assert api_client.get("/health").status_code == 200


class TestCorrelationIdMiddleware:
    def test_returns_provided_request_id(self, client):
        custom_id = "my-custom-request-id-123"
        response = client.get("/health", HTTP_X_REQUEST_ID=custom_id)
        assert response["X-Request-ID"] == custom_id

    def test_generates_uuid_when_no_request_id(self, client):
        response = client.get("/health")
        request_id = response["X-Request-ID"]
        parsed = uuid.UUID(request_id, version=4)
        assert str(parsed) == request_id

    def test_correlation_id_in_logs(self, client, caplog):
        custom_id = "log-test-correlation-456"
        with caplog.at_level(logging.INFO):
            client.get("/health", HTTP_X_REQUEST_ID=custom_id)
        found = any(custom_id in str(record.msg) for record in caplog.records)
        assert found, (
            f"correlation_id '{custom_id}' not found in log records: "
            f"{[r.msg for r in caplog.records]}"
        )
