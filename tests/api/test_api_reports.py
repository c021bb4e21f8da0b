"""Report endpoint tests, including caching and scenario-scoped reports."""

import pytest


def test_project_cost(seeded):
    response = seeded.get("/api/v1/reports/projects/pr-web/cost")
    assert response.status_code == 200
    data = response.json()
    # Ann: 400/day for the 13-day first iteration at 50%
    assert data["cost"]["total_cost"] == pytest.approx(2600)
    assert data["cost"]["breakdown"][0]["person_name"] == "Ann"
    assert data["budget_variance"]["is_over_budget"] is True
    assert data["budget_variance"]["utilization_percent"] == pytest.approx(130)


def test_reports_are_cached_until_data_changes(seeded):
    seeded.get("/api/v1/reports/projects/pr-web/cost")
    seeded.get("/api/v1/reports/projects/pr-web/cost")
    stats = seeded.get("/api/v1/cache/stats").json()
    assert stats["entries"] == 1
    assert stats["hits"] == 1

    seeded.put("/api/v1/allocations/a1", json={"percentage": 100})
    assert seeded.get("/api/v1/cache/stats").json()["entries"] == 0
    data = seeded.get("/api/v1/reports/projects/pr-web/cost").json()
    assert data["cost"]["total_cost"] == pytest.approx(5200)


def test_report_read_during_write_is_refreshed_after_commit(seeded):
    state = seeded.app.state
    session = state.db.get_session()
    try:
        state.entity_service.update(session, "people", "p-ann", {"annual_salary": 208000})
        # Another request computing the report before the commit sees the old salary
        assert state.report_service.team_cost("t-alpha")["annual_cost"] == pytest.approx(104000)
        session.commit()
    finally:
        session.close()

    assert state.report_service.team_cost("t-alpha")["annual_cost"] == pytest.approx(208000)


def test_rolled_back_write_keeps_cached_reports(seeded):
    state = seeded.app.state
    seeded.get("/api/v1/reports/teams/t-alpha/cost")
    session = state.db.get_session()
    try:
        state.entity_service.update(session, "people", "p-ann", {"annual_salary": 1})
        session.rollback()
    finally:
        session.close()
    assert state.report_cache.stats()["entries"] == 1


def test_settings_change_invalidates_reports(seeded):
    seeded.get("/api/v1/reports/teams/t-alpha/cost")
    seeded.put("/api/v1/settings/", json={"working_days_per_year": 208})
    data = seeded.get("/api/v1/reports/teams/t-alpha/cost").json()
    assert data["annual_cost"] == pytest.approx(104000)
    assert data["weekly_cost"] == pytest.approx(2500)


def test_report_errors(seeded):
    assert seeded.get("/api/v1/reports/projects/nope/cost").status_code == 404
    assert seeded.get("/api/v1/reports/allocations/conflicts").status_code == 422
    seeded.post("/api/v1/people/", json={"id": "p-x", "name": "No Role"})
    response = seeded.get("/api/v1/reports/people/p-x/cost")
    assert response.status_code == 400


def test_person_cost(seeded):
    data = seeded.get("/api/v1/reports/people/p-ann/cost").json()
    assert data["cost"]["cost_per_day"] == pytest.approx(400)
    assert data["cost"]["rate_source"] == "role-default"
    assert data["rate_validation"]["is_valid"] is True


def test_team_capacity_and_allocations(seeded):
    capacity = seeded.get("/api/v1/reports/teams/t-alpha/capacity", params={"cycle_id": "q1"}).json()
    assert len(capacity["iteration_breakdown"]) == 1
    assert capacity["average_utilization"] == pytest.approx(50)

    rows = seeded.get("/api/v1/reports/teams/t-alpha/allocations", params={"cycle_id": "q1"}).json()
    assert rows[0]["project_work"] == 50
    assert rows[0]["is_over_allocated"] is False


def test_allocation_checks(seeded):
    seeded.post("/api/v1/allocations/", json={
        "id": "a2", "team_id": "t-alpha", "cycle_id": "q1", "iteration_number": 1,
        "run_work_category_id": "rw-support", "percentage": 60,
    })
    validation = seeded.get("/api/v1/reports/allocations/validation", params={"cycle_id": "q1"}).json()
    assert validation["is_valid"] is False
    assert validation["errors"][0]["total_percentage"] == 110

    conflicts = seeded.get("/api/v1/reports/allocations/conflicts", params={"cycle_id": "q1"}).json()
    assert [c["type"] for c in conflicts["conflicts"]] == ["overallocation"]

    recommendations = seeded.get("/api/v1/reports/allocations/recommendations").json()
    assert "recommendations" in recommendations
    assert "dependencies" in recommendations


def test_projection_and_skills(seeded):
    projected = seeded.get("/api/v1/reports/projects/pr-web/projected-end-date").json()
    assert projected["projected_end_date"] == "2025-12-27"
    assert projected["slip_days"] == 180

    recommendations = seeded.get("/api/v1/reports/projects/pr-web/team-recommendations").json()
    assert recommendations[0]["team_id"] == "t-alpha"
    assert recommendations[0]["compatibility"]["recommendation"] == "excellent"

    gaps = seeded.get("/api/v1/reports/projects/pr-web/skill-gaps").json()
    assert gaps["recommendations"]["best_team"] == "t-alpha"

    coverage = seeded.get("/api/v1/reports/skills/coverage").json()
    assert coverage["recommendations"]["skills_at_risk"] == ["Python"]

    team_skills = seeded.get("/api/v1/reports/teams/t-alpha/skills").json()
    assert team_skills["missing_target_skills"] == ["Python"]


def test_scenario_scoped_report(seeded):
    scenario = seeded.post("/api/v1/scenarios/", json={"name": "Lean", "template_id": "budget-cut-10"}).json()

    live = seeded.get("/api/v1/reports/projects/pr-web/cost").json()
    what_if = seeded.get(
        "/api/v1/reports/projects/pr-web/cost", params={"scenario_id": scenario["id"]}
    ).json()
    assert live["budget_variance"]["budget"] == 2000
    assert what_if["budget_variance"]["budget"] == pytest.approx(1800)
    assert seeded.get("/api/v1/reports/projects/pr-web/cost", params={"scenario_id": "nope"}).status_code == 404


def test_cache_clear(seeded):
    seeded.get("/api/v1/reports/skills/coverage")
    seeded.get("/api/v1/reports/projects/pr-web/cost")
    assert seeded.delete("/api/v1/cache/", params={"pattern": "skill-coverage"}).json() == {"removed": 1}
    assert seeded.delete("/api/v1/cache/").json() == {"removed": 1}
    assert seeded.get("/api/v1/cache/stats").json()["entries"] == 0
