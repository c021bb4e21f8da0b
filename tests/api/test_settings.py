"""Tests for the planning settings API."""

from planpulse.common.storage.repository import AuditLogRepository


def test_defaults_before_first_save(client):
    response = client.get("/api/v1/settings/")
    assert response.status_code == 200
    data = response.json()
    assert data["working_hours_per_day"] == 8
    assert data["working_days_per_year"] == 260
    assert data["iteration_length"] == "fortnightly"
    assert data["financial_year"] is None


def test_update_merges_fields(client):
    response = client.put(
        "/api/v1/settings/",
        json={"currency_symbol": "£", "iteration_length": "monthly"},
        headers={"X-PlanPulse-Actor": "finance"},
    )
    assert response.status_code == 200

    data = client.get("/api/v1/settings/").json()
    assert data["currency_symbol"] == "£"
    assert data["iteration_length"] == "monthly"
    assert data["working_days_per_month"] == 22

    with client.app.state.db.session_scope() as session:
        entry = AuditLogRepository(session).recent(event_type="settings.update")[0]
        assert entry.actor == "finance"


def test_invalid_settings_rejected(client):
    response = client.put("/api/v1/settings/", json={"working_hours_per_day": 0})
    assert response.status_code == 400
    assert "working_hours_per_day" in response.json()["detail"]

    response = client.put("/api/v1/settings/", json={"iteration_length": "weekly"})
    assert response.status_code == 400
    assert client.get("/api/v1/settings/").json()["iteration_length"] == "fortnightly"
