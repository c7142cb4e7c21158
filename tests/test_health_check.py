from unittest.mock import patch

import pytest


class TestHealthCheck:
    def test_health_check_returns_200(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "timestamp" in data
        assert "services" in data

    def test_health_check_reports_database_status(self, client):
        data = client.get("/health").json()
        assert data["services"]["database"]["status"] == "up"
        assert "response_time_ms" in data["services"]["database"]

    def test_health_check_reports_cache_status(self, client):
        data = client.get("/health").json()
        assert data["services"]["cache"]["status"] == "up"
        assert "response_time_ms" in data["services"]["cache"]

    def test_health_check_reports_gateway_configuration(self, client):
        data = client.get("/health").json()
        assert data["services"]["payment_gateway"] == {"configured": True}

    def test_missing_gateway_keys_do_not_fail_health(self, client, settings):
        settings.ZALOPAY_KEY2 = ""

        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["services"]["payment_gateway"]["configured"] is False

    def test_cache_failure_returns_503(self, client):
        with patch(
            "modules.core.views._check_cache",
            side_effect=ConnectionError("cache down"),
        ):
            response = client.get("/health")

        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "unhealthy"
        assert data["services"]["cache"] == {"status": "down"}
