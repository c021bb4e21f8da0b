"""CSV import and export endpoint tests."""

ALLOCATIONS = (
    "teamName,epicName,epicType,sprintNumber,percentage,quarter\n"
    "Alpha,API,Project,1,30,Q1 2025\n"
    "Beta,Support,Run Work,1,20,Q1 2025\n"
    "Gamma,API,Project,1,30,Q1 2025\n"
)


def test_allocation_import_stores_valid_rows(seeded):
    response = seeded.post(
        "/api/v1/imports/allocations",
        json={"content": ALLOCATIONS},
        headers={"X-PlanPulse-Actor": "planner"},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["imported"] == {"allocations": 2}
    assert data["dry_run"] is False
    assert len(data["errors"]) == 1
    assert data["errors"][0].startswith('Row 4: Team "Gamma" not found')

    allocations = seeded.get("/api/v1/allocations/", params={"team_id": "t-beta"}).json()["items"]
    assert allocations[0]["run_work_category_id"] == "rw-support"
    assert allocations[0]["notes"] == "Imported from CSV"


def test_non_finite_cells_do_not_abort_import(seeded):
    csv_text = (
        "teamName,epicName,epicType,sprintNumber,percentage,quarter\n"
        "Alpha,API,Project,1,nan,Q1 2025\n"
        "Alpha,API,Project,inf,25,Q1 2025\n"
    )
    response = seeded.post("/api/v1/imports/allocations", json={"content": csv_text})
    assert response.status_code == 200
    data = response.json()
    assert data["imported"] == {"allocations": 1}
    assert data["errors"] == ["Row 2: Invalid percentage 0. Must be between 1-100"]


def test_raw_csv_dry_run_writes_nothing(seeded):
    response = seeded.post(
        "/api/v1/imports/allocations?dry_run=true",
        content=ALLOCATIONS.encode("utf-8"),
        headers={"Content-Type": "text/csv"},
    )
    assert response.status_code == 200
    assert response.json()["dry_run"] is True
    assert response.json()["imported"] == {"allocations": 2}
    assert seeded.get("/api/v1/allocations/").json()["count"] == 1


def test_people_import_creates_teams_and_roles(client):
    csv_text = (
        "Name,Email,Role,Team Name,Employment Type,Daily Rate\n"
        "Cara,cara@example.com,Designer,Studio,Contractor,650\n"
        "Dev,dev@example.com,Designer,Studio,,\n"
    )
    response = client.post("/api/v1/imports/people", json={"content": csv_text})
    assert response.status_code == 200
    assert response.json()["imported"] == {"teams": 1, "roles": 1, "people": 2}

    people = client.get("/api/v1/people/").json()["items"]
    teams = client.get("/api/v1/teams/").json()["items"]
    assert {p["team_id"] for p in people} == {teams[0]["id"]}
    assert teams[0]["capacity"] == 40


def test_import_errors(client):
    assert client.post("/api/v1/imports/widgets", json={"content": "a,b\n1,2\n"}).status_code == 400
    assert client.post("/api/v1/imports/people", json={"content": "  "}).status_code == 400
    assert client.post("/api/v1/imports/people", json={"dry_run": True}).status_code == 400
    response = client.post("/api/v1/imports/people", content=b"{not json", headers={"Content-Type": "application/json"})
    assert response.status_code == 400


def test_export_allocations(seeded):
    response = seeded.get("/api/v1/exports/allocations", params={"cycle_id": "q1"})
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert 'filename="allocations.csv"' in response.headers["content-disposition"]
    assert response.text.splitlines() == [
        "teamName,epicName,epicType,sprintNumber,percentage,quarter",
        "Alpha,API,Web Platform,1,50,Q1 2025",
    ]


def test_export_then_import_people(seeded):
    exported = seeded.get("/api/v1/exports/people").text
    response = seeded.post("/api/v1/imports/people", json={"content": exported, "dry_run": True})
    assert response.json()["errors"] == ['Row 2: Duplicate email "ann@example.com"']
