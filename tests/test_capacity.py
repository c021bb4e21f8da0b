"""Tests for team utilization, allocation consistency and recommendations."""

import pytest

from planpulse.common.dto.models import AllocationRecord
from planpulse.planning.capacity import (
    calculate_cross_team_dependencies,
    calculate_team_capacity_utilization,
    generate_allocation_recommendations,
    summarize_team_allocations,
    validate_allocation_consistency,
)


def _alloc(id, team="t-alpha", iteration=1, epic="e-api", pct=50, cycle="q1", run_work=None):
    return AllocationRecord(
        id=id, team_id=team, cycle_id=cycle, iteration_number=iteration,
        epic_id=None if run_work else epic, run_work_category_id=run_work, percentage=pct,
    )


def test_utilization_uses_quarter_iterations(snapshot):
    team = snapshot.find("teams", "t-alpha")
    quarter = snapshot.find("cycles", "q1")
    result = calculate_team_capacity_utilization(team, snapshot.allocations, quarter, snapshot.epics, cycles=snapshot.cycles)

    assert len(result.iteration_breakdown) == 2
    assert result.total_capacity_hours == pytest.approx(160)
    assert result.average_utilization == pytest.approx(50)
    assert result.under_allocated_iterations == [1]
    assert result.over_allocated_iterations == []
    assert result.utilization_trend == "stable"


def test_utilization_defaults_to_six_iterations(snapshot):
    team = snapshot.find("teams", "t-alpha")
    result = calculate_team_capacity_utilization(team, [], snapshot.find("cycles", "q1"), snapshot.epics)

    assert len(result.iteration_breakdown) == 6
    assert result.average_utilization == 0
    assert "Team appears to have no work allocated" in result.recommendations


def test_utilization_flags_over_allocation_and_skill_gaps(snapshot):
    team = snapshot.find("teams", "t-alpha")
    allocations = [_alloc("x1", pct=120), _alloc("x2", iteration=2, epic="e-ui", pct=40)]
    result = calculate_team_capacity_utilization(
        team, allocations, snapshot.find("cycles", "q1"), snapshot.epics, iteration_count=3
    )

    assert result.over_allocated_iterations == [1]
    assert result.under_allocated_iterations == [2]
    assert result.peak_utilization == 120
    assert result.skill_gaps == ["s-react"]
    assert "Redistribute work from iteration 1 to iteration 2" in result.recommendations
    assert result.utilization_trend == "declining"


def test_consistency_reports_orphans(snapshot):
    allocations = [
        _alloc("ok"),
        _alloc("no-team", team="ghost"),
        _alloc("no-epic", epic="ghost"),
        _alloc("no-cycle", cycle="ghost"),
        _alloc("no-category", run_work="ghost"),
    ]
    result = validate_allocation_consistency(
        allocations, snapshot.teams, snapshot.epics, snapshot.cycles, snapshot.run_work_categories
    )
    reasons = {o.allocation_id: o.reason for o in result.orphaned_allocations}
    assert reasons == {
        "no-team": "Team not found",
        "no-epic": "Epic not found",
        "no-cycle": "Cycle not found",
        "no-category": "Run work category not found",
    }


def test_consistency_groups_by_team_and_iteration(snapshot):
    allocations = [
        _alloc("a", pct=70),
        _alloc("b", pct=40, run_work="rw-support"),
        _alloc("c", team="t-beta", epic="e-ui", pct=50),
    ]
    result = validate_allocation_consistency(
        allocations, snapshot.teams, snapshot.epics, snapshot.cycles, snapshot.run_work_categories
    )

    assert result.is_valid is False
    assert [(e.team_id, e.total_percentage) for e in result.errors] == [("t-alpha", 110)]
    assert result.errors[0].message == "Team Alpha is over-allocated in iteration 1: 110%"
    assert [(w.team_id, w.type) for w in result.warnings] == [("t-beta", "capacity_warning")]


def test_consistency_reports_skill_mismatch_and_dependencies(snapshot):
    snapshot.epics[1].dependencies = ["e-api"]
    allocations = [_alloc("a", epic="e-ui", pct=100)]
    result = validate_allocation_consistency(allocations, snapshot.teams, snapshot.epics, snapshot.cycles)

    assert result.is_valid is True
    assert result.skill_mismatches[0].missing_skills == ["s-react"]
    assert result.dependency_violations[0].dependency_id == "e-api"


def test_recommendations(snapshot):
    allocations = [
        _alloc("a", pct=130),
        _alloc("b", team="t-beta", epic="e-ui", pct=40),
        _alloc("c", team="t-beta", run_work="rw-support", iteration=2, pct=20),
    ]
    result = generate_allocation_recommendations(allocations, snapshot.teams, snapshot.epics)

    redistribute = result["optimizations"][0]
    assert (redistribute["from_team"], redistribute["to_team"]) == ("t-alpha", "t-beta")
    assert redistribute["percentage"] == pytest.approx(30)
    assert {r["epic_id"]: r["recommended_team"] for r in result["skill_based_recommendations"]} == {
        "e-api": "t-alpha",
        "e-ui": "t-beta",
    }
    assert result["run_work_optimization"]["current_run_work_percentage"] == pytest.approx(100 / 3)


def test_cross_team_dependencies(snapshot):
    allocations = [
        _alloc("a", team="t-alpha", pct=200),
        _alloc("b", team="t-alpha", iteration=2, pct=150),
        _alloc("c", team="t-beta"),
    ]
    result = calculate_cross_team_dependencies(allocations, snapshot.epics)

    shared = result["shared_epics"][0]
    assert shared["epic_id"] == "e-api"
    assert shared["teams"] == ["t-alpha", "t-beta"]
    assert shared["coordination_risk"] == "low"
    assert shared["impact_score"] == pytest.approx(20 * 2 / 10)
    assert [b["team_id"] for b in result["bottlenecks"]] == ["t-alpha"]


def test_summarize_team_allocations(snapshot):
    allocations = snapshot.allocations + [_alloc("rw", run_work="rw-support", pct=30)]
    rows = summarize_team_allocations(
        snapshot.find("teams", "t-alpha"), allocations, snapshot.find("cycles", "q1"), snapshot.run_work_categories
    )
    assert rows == [{
        "iteration_number": 1,
        "project_work": 50,
        "run_work": 30,
        "run_work_by_category": {"Support": 30},
        "total": 80,
        "is_over_allocated": False,
    }]
