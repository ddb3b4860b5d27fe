"""
Test suite for the FastAPI application.

Tests cover health endpoints, request id middleware, exception handlers,
CORS configuration and router registration.
"""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi import status
from fastapi.testclient import TestClient

from marketplace.main import app


# ============================================================================
# UNIT TESTS - Health Endpoints
# ============================================================================


class TestHealthEndpoints:
    """Test suite for health check and readiness endpoints."""

    def test_health_check_returns_200(self, test_client: TestClient):
        response = test_client.get("/health")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["status"] == "healthy"
        assert data["environment"] == "development"
        assert all(key in data for key in ["service", "version"])

    def test_liveness(self, test_client: TestClient):
        response = test_client.get("/live")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == "alive"

    @patch("marketplace.main.check_database_health", new_callable=AsyncMock)
    def test_readiness_when_database_up(self, mock_health, test_client: TestClient):
        mock_health.return_value = True

        response = test_client.get("/ready")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["status"] == "ready"
        assert data["dependencies_ready"] is True
        mock_health.assert_awaited_once_with(max_retries=1)

    @patch("marketplace.main.check_database_health", new_callable=AsyncMock)
    def test_readiness_when_database_down(self, mock_health, test_client: TestClient):
        """
        Test readiness endpoint reports 503 until the database answers.

        Orchestrators use this to hold traffic back from a fresh instance.
        """
        mock_health.return_value = False

        response = test_client.get("/ready")

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        data = response.json()
        assert data["status"] == "not_ready"
        assert data["database"] == "unhealthy"


# ============================================================================
# UNIT TESTS - Middleware
# ============================================================================


class TestRequestLoggingMiddleware:
    """Test suite for request logging middleware functionality."""

    def test_middleware_adds_request_id_header(self, test_client: TestClient):
        response = test_client.get("/health")

        assert len(response.headers["X-Request-ID"]) > 0

    def test_middleware_preserves_custom_request_id(self, test_client: TestClient):
        response = test_client.get("/health", headers={"X-Request-ID": "test-request-123"})

        assert response.headers["X-Request-ID"] == "test-request-123"

    def test_middleware_generates_unique_request_ids(self, test_client: TestClient):
        first = test_client.get("/health").headers["X-Request-ID"]
        second = test_client.get("/health").headers["X-Request-ID"]

        assert first != second


# ============================================================================
# UNIT TESTS - Exception Handlers
# ============================================================================


class TestExceptionHandlers:
    """Test suite for error rendering."""

    def test_unknown_route_uses_common_error_body(self, test_client: TestClient):
        response = test_client.get("/api/v1/unknown", headers={"X-Request-ID": "req-9"})

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json() == {
            "error": "NOT_FOUND",
            "message": "Not Found",
            "request_id": "req-9",
        }

    def test_method_not_allowed(self, test_client: TestClient):
        response = test_client.delete("/health")

        assert response.status_code == status.HTTP_405_METHOD_NOT_ALLOWED
        assert response.json()["error"] == "METHOD_NOT_ALLOWED"

    def test_validation_error_lists_details(self, test_client: TestClient, auth_headers, buyer_id):
        response = test_client.post(
            "/api/v1/payments",
            json={"method": "qr_gateway"},
            headers=auth_headers(buyer_id),
        )

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        body = response.json()
        assert body["error"] == "VALIDATION_ERROR"
        assert any(detail["loc"][-1] == "order_id" for detail in body["details"])


# ============================================================================
# UNIT TESTS - CORS and Routing
# ============================================================================


class TestCORSConfiguration:
    def test_cors_allows_configured_origins(self, test_client: TestClient):
        response = test_client.options(
            "/health",
            headers={
                "Origin": "http://localhost:3000",
                "Access-Control-Request-Method": "GET",
            },
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.headers["access-control-allow-origin"] == "http://localhost:3000"

    def test_cors_exposes_request_id_header(self, test_client: TestClient):
        response = test_client.get("/health", headers={"Origin": "http://localhost:3000"})

        assert "X-Request-ID" in response.headers.get("access-control-expose-headers", "")


class TestRouting:
    @pytest.mark.parametrize(
        "path",
        [
            "/api/v1/orders",
            "/api/v1/orders/{order_id}",
            "/api/v1/orders/{order_id}/confirm",
            "/api/v1/line-items/{line_item_id}/status",
            "/api/v1/payments",
            "/api/v1/payments/status/{order_id}",
            "/api/v1/payments/{order_id}/cod-delivery",
            "/api/v1/payments/callbacks/qr",
            "/api/v1/payments/callbacks/redirect",
            "/api/v1/payments/callbacks/redirect/cancel",
        ],
    )
    def test_route_registered(self, path):
        assert path in {route.path for route in app.routes}

    def test_openapi_schema(self, test_client: TestClient):
        response = test_client.get("/openapi.json")

        assert response.status_code == status.HTTP_200_OK
        assert "/api/v1/payments/callbacks/qr" in response.json()["paths"]
