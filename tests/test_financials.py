"""Tests for rate resolution and cost roll-ups."""

from datetime import date

import pytest

from planpulse.common.dto.models import AppSettings, FinancialYear, PersonRecord, RoleRecord
from planpulse.planning.financials import (
    calculate_budget_variance,
    calculate_person_cost,
    calculate_project_cost,
    calculate_project_cost_for_year,
    calculate_team_cost,
    validate_rate_configuration,
)


@pytest.fixture
def role():
    return RoleRecord(id="r1", name="Engineer")


def test_permanent_uses_personal_salary(role):
    person = PersonRecord(id="p1", name="Ann", annual_salary=104000)
    cost = calculate_person_cost(person, role)

    assert cost.cost_per_hour == pytest.approx(50)
    assert cost.cost_per_day == pytest.approx(400)
    assert cost.cost_per_week == pytest.approx(2000)
    assert cost.cost_per_month == pytest.approx(8800)
    assert cost.cost_per_year == pytest.approx(104000)
    assert (cost.rate_source, cost.rate_type) == ("personal", "annual")


def test_permanent_falls_back_to_role_salary():
    role = RoleRecord(id="r1", name="Engineer", default_annual_salary=52000)
    cost = calculate_person_cost(PersonRecord(id="p1", name="Ann"), role)
    assert cost.cost_per_hour == pytest.approx(25)
    assert cost.rate_source == "role-default"


def test_contractor_daily_rate(role):
    person = PersonRecord(id="p1", name="Cy", employment_type="contractor", daily_rate=800)
    cost = calculate_person_cost(person, role)
    assert cost.cost_per_hour == pytest.approx(100)
    assert (cost.rate_source, cost.rate_type, cost.effective_rate) == ("personal", "daily", 800)


def test_contractor_prefers_hourly_over_daily(role):
    person = PersonRecord(id="p1", name="Cy", employment_type="contractor", hourly_rate=90, daily_rate=800)
    assert calculate_person_cost(person, role).cost_per_hour == pytest.approx(90)


def test_legacy_rate_fallback():
    role = RoleRecord(id="r1", name="Engineer", default_rate=60)
    cost = calculate_person_cost(PersonRecord(id="p1", name="Dee", employment_type="contractor"), role)
    assert cost.cost_per_hour == pytest.approx(60)
    assert cost.rate_source == "legacy-fallback"


def test_no_rate_information_costs_zero(role):
    cost = calculate_person_cost(PersonRecord(id="p1", name="Eve"), role)
    assert cost.cost_per_year == 0
    assert cost.rate_source == "legacy-fallback"


def test_custom_working_calendar(role):
    settings = AppSettings(working_hours_per_day=7.5, working_days_per_year=240)
    cost = calculate_person_cost(PersonRecord(id="p1", name="Ann", annual_salary=90000), role, settings)
    assert cost.cost_per_hour == pytest.approx(50)
    assert cost.cost_per_day == pytest.approx(375)


def test_team_cost_counts_uncosted_members(snapshot):
    members = snapshot.people + [PersonRecord(id="p-x", name="Xan", role_id="missing")]
    cost = calculate_team_cost(members, snapshot.roles, team_id="mixed")

    assert cost.member_count == 3
    assert cost.costed_member_count == 2
    assert cost.weekly_cost == pytest.approx(2000 + 4000)
    assert cost.monthly_cost == pytest.approx(8800 + 17600)
    assert cost.quarterly_cost == pytest.approx(cost.monthly_cost * 3)


def test_project_cost_uses_iteration_cycles(snapshot):
    project = snapshot.find("projects", "pr-web")
    cost = calculate_project_cost(project, snapshot)

    # 13 iteration days: Ann 400/day at 50%, Bob 800/day at 60%
    assert cost.total_cost == pytest.approx(2600 + 6240)
    assert [t.team_id for t in cost.team_breakdown] == ["t-beta", "t-alpha"]
    assert cost.total_duration_days == 13
    assert cost.monthly_burn_rate == pytest.approx(8840 / 13 * 22)
    ann = next(b for b in cost.breakdown if b.person_id == "p-ann")
    assert ann.allocations[0].cycle_name == "Q1 2025 - Iteration 1"


def test_project_cost_falls_back_to_quarter(snapshot):
    snapshot.cycles = [c for c in snapshot.cycles if c.type == "quarterly"]
    project = snapshot.find("projects", "pr-web")
    cost = calculate_project_cost(project, snapshot)
    assert cost.total_cost == pytest.approx(400 * 90 * 0.5 + 800 * 90 * 0.6)


def test_project_cost_ignores_inactive_members(snapshot):
    snapshot.people[1].is_active = False
    cost = calculate_project_cost(snapshot.find("projects", "pr-web"), snapshot)
    assert cost.total_cost == pytest.approx(2600)


def test_project_year_cost_by_quarter(snapshot):
    settings = AppSettings(
        financial_year=FinancialYear(name="FY25", start_date=date(2025, 4, 1), end_date=date(2026, 3, 31))
    )
    result = calculate_project_cost_for_year(snapshot.find("projects", "pr-web"), snapshot, settings)
    assert result.quarterly_costs == {"Q1 2025": pytest.approx(8840)}
    assert result.total_annual_cost == pytest.approx(8840)


def test_project_year_cost_skips_allocations_without_iteration(snapshot):
    snapshot.allocations[1].iteration_number = 9
    result = calculate_project_cost_for_year(snapshot.find("projects", "pr-web"), snapshot)
    assert result.total_annual_cost == pytest.approx(2600)


def test_project_year_cost_ignores_inactive_members(snapshot):
    snapshot.people[1].is_active = False
    result = calculate_project_cost_for_year(snapshot.find("projects", "pr-web"), snapshot)
    assert result.total_annual_cost == pytest.approx(2600)


def test_budget_variance(snapshot):
    project = snapshot.find("projects", "pr-web")
    variance = calculate_budget_variance(project, calculate_project_cost(project, snapshot))
    assert variance.is_over_budget is True
    assert variance.variance == pytest.approx(2000 - 8840)
    assert variance.utilization_percent == pytest.approx(442)


def test_budget_variance_without_budget(snapshot):
    project = snapshot.find("projects", "pr-web")
    project.budget = None
    variance = calculate_budget_variance(project, calculate_project_cost(project, snapshot))
    assert variance.variance is None
    assert variance.is_over_budget is False


def test_validate_rate_configuration(role):
    result = validate_rate_configuration(PersonRecord(id="p1", name="Ann"), role)
    assert result.is_valid is False
    assert result.warnings == ["No salary information available"]

    contractor = PersonRecord(id="p2", name="Cy", employment_type="contractor", hourly_rate=10)
    assert validate_rate_configuration(contractor, role).is_valid is True
