"""Smoke tests for API endpoints."""


def test_root_endpoint(client):
    """Test root endpoint returns service info."""
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert data["service"] == "PlanPulse API"
    assert data["version"] == "0.3.0"
    assert data["status"] == "running"


def test_health_endpoint(client):
    """Test health endpoint returns component status."""
    response = client.get("/health/")
    assert response.status_code == 200

    data = response.json()
    assert data["status"] == "healthy"
    assert data["components"]["database"]["status"] == "healthy"
    assert data["components"]["report_cache"]["namespace"] == "reports"
    assert "timestamp" in data


def test_metrics_endpoint(client):
    """Test metrics endpoint returns metrics data."""
    client.get("/api/v1/teams/")
    response = client.get("/health/metrics")
    assert response.status_code == 200

    data = response.json()
    assert "counters" in data
    assert "histograms" in data


def test_openapi_lists_planning_routes(client):
    paths = client.get("/openapi.json").json()["paths"]
    assert "/api/v1/run-work-categories/" in paths
    assert "/api/v1/reports/projects/{project_id}/cost" in paths
    assert "/api/v1/scenarios/{scenario_id}/comparison" in paths
