from unittest.mock import patch


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @patch("main.celery_app")
    def test_celery_without_workers(self, mock_celery, client):
        mock_celery.control.inspect.return_value.stats.return_value = None
        assert client.get("/celery-health").json()["status"] == "no_workers"

    @patch("main.celery_app")
    def test_celery_broker_down(self, mock_celery, client):
        mock_celery.control.inspect.side_effect = ConnectionError("refused")
        assert client.get("/celery-health").json()["status"] == "unhealthy"

    def test_openapi_bearer_scheme(self, client):
        schema = client.get("/openapi.json").json()
        assert "BearerAuth" in schema["components"]["securitySchemes"]
        assert "/orders/{order_id}/assign-rider" in schema["paths"]
