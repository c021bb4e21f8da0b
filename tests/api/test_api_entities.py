"""CRUD endpoint tests for planning collections."""


def test_create_and_read_team(client):
    response = client.post("/api/v1/teams/", json={"name": "Platform", "capacity": 32})
    assert response.status_code == 201
    team = response.json()
    assert team["id"].startswith("team-")
    assert team["target_skills"] == []

    response = client.get(f"/api/v1/teams/{team['id']}")
    assert response.status_code == 200
    assert response.json()["capacity"] == 32

    listing = client.get("/api/v1/teams/").json()
    assert listing["count"] == 1
    assert listing["items"][0]["name"] == "Platform"


def test_list_filters_by_field(seeded):
    data = seeded.get("/api/v1/cycles/", params={"type": "iteration"}).json()
    assert [c["id"] for c in data["items"]] == ["q1-i1"]

    response = seeded.get("/api/v1/cycles/", params={"colour": "red"})
    assert response.status_code == 400


def test_partial_update(seeded):
    response = seeded.put("/api/v1/people/p-ann", json={"daily_rate": 500, "id": "ignored"})
    assert response.status_code == 200
    person = response.json()
    assert person["id"] == "p-ann"
    assert person["daily_rate"] == 500
    assert person["email"] == "ann@example.com"


def test_update_validation_error(seeded):
    response = seeded.put("/api/v1/cycles/q1", json={"end_date": "2025-01-01"})
    assert response.status_code == 400
    assert response.json()["error"] == "Validation failed"


def test_missing_entity_returns_404(client):
    response = client.get("/api/v1/projects/nope")
    assert response.status_code == 404
    assert response.json() == {"error": "Entity not found", "detail": "projects 'nope' not found"}
    assert client.delete("/api/v1/projects/nope").status_code == 404


def test_duplicate_email_returns_409(seeded):
    response = seeded.post("/api/v1/people/", json={"name": "Another Ann", "email": "ANN@example.com"})
    assert response.status_code == 409
    assert "ann@example.com" in response.json()["detail"].lower()


def test_duplicate_id_returns_409(seeded):
    response = seeded.post("/api/v1/teams/", json={"id": "t-alpha", "name": "Copy"})
    assert response.status_code == 409


def test_unknown_reference_rejected(seeded):
    response = seeded.post(
        "/api/v1/allocations/",
        json={"team_id": "ghost", "cycle_id": "q1", "epic_id": "e-api", "percentage": 10},
    )
    assert response.status_code == 400
    assert "team_id 'ghost'" in response.json()["detail"]


def test_allocation_needs_exactly_one_work_item(seeded):
    response = seeded.post(
        "/api/v1/allocations/",
        json={"team_id": "t-alpha", "cycle_id": "q1", "epic_id": "e-api",
              "run_work_category_id": "rw-support", "percentage": 10},
    )
    assert response.status_code == 422


def test_schema_errors_return_422(client):
    response = client.post("/api/v1/people/", json={"email": "no-name@example.com"})
    assert response.status_code == 422


def test_delete(seeded):
    response = seeded.delete("/api/v1/run-work-categories/rw-support")
    assert response.status_code == 200
    assert response.json() == {"success": True, "id": "rw-support"}
    assert seeded.get("/api/v1/run-work-categories/").json()["count"] == 0
