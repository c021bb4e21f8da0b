"""Tests for projected project end dates."""

from datetime import date

from planpulse.common.dto.models import MilestoneRecord, PersonRecord, RoleRecord
from planpulse.planning.projection import (
    calculate_projected_end_date,
    project_end_date_report,
    role_velocity_multiplier,
)


def test_role_velocity_multiplier():
    roles = [RoleRecord(id="r1", name="Senior Engineer"), RoleRecord(id="r2", name="Junior Engineer")]
    members = [PersonRecord(id="a", name="A", role_id="r1"), PersonRecord(id="b", name="B", role_id="r2")]
    assert role_velocity_multiplier(members, roles) == (1.3 + 0.8) / 2
    assert role_velocity_multiplier([], roles) == 1.0


def test_forecast_from_team_velocity(snapshot):
    # Alpha: 40h x 50% x 1.3 (senior) = 26, Beta: 40h x 60% x 1.0 = 24.
    # 30 points / 0.5 per hour / 50 per cycle -> 2 cycles of 90 days after Q1 ends.
    report = project_end_date_report(snapshot.find("projects", "pr-web"), snapshot)

    assert report.remaining_effort == 30
    assert report.remaining_work_completion == date(2025, 12, 27)
    assert report.projected_end_date == date(2025, 12, 27)
    assert report.slip_days == 180


def test_open_milestone_after_forecast_wins(snapshot):
    snapshot.milestones.append(
        MilestoneRecord(id="m1", project_id="pr-web", name="Launch", due_date=date(2026, 3, 1))
    )
    assert calculate_projected_end_date(snapshot.find("projects", "pr-web"), snapshot) == date(2026, 3, 1)


def test_completed_work_only(snapshot):
    for epic in snapshot.epics:
        epic.status = "completed"
        epic.end_date = date(2025, 5, 20)
    report = project_end_date_report(snapshot.find("projects", "pr-web"), snapshot)

    assert report.projected_end_date == date(2025, 5, 20)
    assert report.slip_days == -41
    assert report.remaining_work_completion is None


def test_no_epics_or_milestones_uses_planned_end(snapshot):
    snapshot.epics = []
    project = snapshot.find("projects", "pr-web")
    assert calculate_projected_end_date(project, snapshot) == project.end_date


def test_no_velocity_falls_back_to_planned_end(snapshot):
    snapshot.allocations = []
    project = snapshot.find("projects", "pr-web")
    assert calculate_projected_end_date(project, snapshot) == project.end_date
