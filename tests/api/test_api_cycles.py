"""Cycle generation endpoint tests."""

from datetime import date


def test_generate_quarters_requires_financial_year(client):
    response = client.post("/api/v1/cycles/generate-quarters", json={})
    assert response.status_code == 400


def test_generate_quarters_from_settings(client):
    client.put("/api/v1/settings/", json={
        "financial_year": {"name": "FY25", "start_date": "2025-07-01", "end_date": "2026-06-30"},
    })
    response = client.post("/api/v1/cycles/generate-quarters", json={})
    assert response.status_code == 201
    created = response.json()["created"]
    assert [(q["name"], q["start_date"], q["end_date"]) for q in created] == [
        ("Q1 2025", "2025-07-01", "2025-09-30"),
        ("Q2 2025", "2025-10-01", "2025-12-31"),
        ("Q3 2025", "2026-01-01", "2026-03-31"),
        ("Q4 2025", "2026-04-01", "2026-06-30"),
    ]
    assert client.get("/api/v1/cycles/", params={"type": "quarterly"}).json()["count"] == 4


def test_regenerating_quarters(client):
    client.post("/api/v1/cycles/generate-quarters", json={"fy_start": "2025-04-01"})
    quarter_id = client.get("/api/v1/cycles/").json()["items"][0]["id"]
    client.post(f"/api/v1/cycles/{quarter_id}/generate-iterations", json={})

    response = client.post("/api/v1/cycles/generate-quarters", json={"fy_start": "2025-04-01"})
    assert response.status_code == 409

    response = client.post("/api/v1/cycles/generate-quarters", json={"fy_start": "2025-04-01", "replace_existing": True})
    assert response.status_code == 201
    assert response.json()["removed"] == 4 + 7
    assert client.get("/api/v1/cycles/").json()["count"] == 4


def test_generate_fortnightly_iterations(seeded):
    seeded.delete("/api/v1/cycles/q1-i1")
    response = seeded.post("/api/v1/cycles/q1/generate-iterations", json={})
    assert response.status_code == 201

    iterations = response.json()["created"]
    assert len(iterations) == 7
    assert iterations[0]["name"] == "Q1 2025 - Iteration 1"
    assert (iterations[0]["start_date"], iterations[0]["end_date"]) == ("2025-04-01", "2025-04-14")
    assert (iterations[-1]["start_date"], iterations[-1]["end_date"]) == ("2025-06-24", "2025-06-30")
    assert all(i["parent_cycle_id"] == "q1" for i in iterations)


def test_iterations_conflict_and_replace(seeded):
    response = seeded.post("/api/v1/cycles/q1/generate-iterations", json={"iteration_length": "monthly"})
    assert response.status_code == 409

    response = seeded.post(
        "/api/v1/cycles/q1/generate-iterations", json={"iteration_length": "monthly", "replace_existing": True}
    )
    assert response.status_code == 201
    assert response.json()["removed"] == 1
    assert [i["end_date"] for i in response.json()["created"]] == ["2025-04-30", "2025-05-31", "2025-06-30"]


def test_iterations_only_for_quarters(seeded):
    assert seeded.post("/api/v1/cycles/q1-i1/generate-iterations", json={}).status_code == 400
    assert seeded.post("/api/v1/cycles/nope/generate-iterations", json={}).status_code == 404


def test_current_cycle(client):
    assert client.get("/api/v1/cycles/current").json()["quarter"] is None

    today = date.today()
    client.post("/api/v1/cycles/generate-quarters", json={"fy_start": today.isoformat()})
    quarter = next(q for q in client.get("/api/v1/cycles/").json()["items"] if q["start_date"] == today.isoformat())
    client.post(f"/api/v1/cycles/{quarter['id']}/generate-iterations", json={})

    current = client.get("/api/v1/cycles/current").json()
    assert current["quarter"]["id"] == quarter["id"]
    assert current["iteration_number"] == 1
