"""Tests for scenario templates, isolated changes and comparison."""

from datetime import date, datetime, timedelta, timezone

import pytest

from planpulse.common.dto.models import ScenarioChangePayload
from planpulse.planning.scenarios import (
    BUILTIN_TEMPLATES,
    ScenarioChangeError,
    ScenarioEntityNotFound,
    TemplateFilter,
    apply_change,
    apply_template,
    compare_scenario,
    is_expired,
    matches_filter,
    resolve_parameters,
    substitute,
)


@pytest.fixture
def scenario(snapshot):
    return snapshot.model_copy(deep=True)


def test_budget_template_uses_default_reduction(snapshot, scenario):
    modifications = apply_template(scenario, BUILTIN_TEMPLATES["budget-cut-10"])

    assert len(modifications) == 1
    assert scenario.find("projects", "pr-web").budget == pytest.approx(1800)
    assert snapshot.find("projects", "pr-web").budget == 2000
    assert modifications[0].changes[0].field == "budget"


def test_budget_template_derives_multiplier(scenario):
    apply_template(scenario, BUILTIN_TEMPLATES["budget-cut-10"], {"budgetReduction": 20})
    assert scenario.find("projects", "pr-web").budget == pytest.approx(1600)


def test_template_parameter_range_is_checked():
    with pytest.raises(ScenarioChangeError, match="must be <= 50"):
        resolve_parameters(BUILTIN_TEMPLATES["budget-cut-10"], {"budgetReduction": 75})


def test_team_expansion_requires_team_and_role(scenario):
    with pytest.raises(ScenarioChangeError, match="targetTeamId"):
        apply_template(scenario, BUILTIN_TEMPLATES["team-expansion"])

    apply_template(scenario, BUILTIN_TEMPLATES["team-expansion"], {"targetTeamId": "t-alpha", "roleId": "r-dev"})
    added = scenario.people[-1]
    assert (added.name, added.team_id, added.role_id) == ("New Team Member", "t-alpha", "r-dev")


def test_project_delay_moves_dates(scenario):
    apply_template(scenario, BUILTIN_TEMPLATES["project-delay"], {"delayWeeks": 3})
    project = scenario.find("projects", "pr-web")
    assert project.start_date == date(2025, 4, 22)
    assert project.end_date == date(2025, 7, 21)


def test_substitute_keeps_parameter_type():
    assert substitute("{{ delay }}", {"delay": 2.0}) == 2.0
    assert substitute("Hello {{name}}", {"name": "Ann"}) == "Hello Ann"
    with pytest.raises(ScenarioChangeError):
        substitute("{{missing}}", {})


def test_matches_filter():
    assert matches_filter({"budget": 10}, TemplateFilter(field="budget", operator="greater-than", value=0))
    assert not matches_filter({"budget": None}, TemplateFilter(field="budget", operator="greater-than", value=0))
    assert matches_filter({"name": "Web Platform"}, TemplateFilter(field="name", operator="contains", value="web"))


def test_apply_change_update_records_diff(scenario):
    change = ScenarioChangePayload(type="update", entity_type="teams", entity_id="t-alpha", data={"capacity": 30})
    modification = apply_change(scenario, change)

    assert modification.description == "Updated teams 'Alpha'"
    assert [(c.field, c.old_value, c.new_value) for c in modification.changes] == [("capacity", 40, 30)]
    assert scenario.find("teams", "t-alpha").capacity == 30


def test_apply_change_errors(scenario):
    with pytest.raises(ScenarioEntityNotFound):
        apply_change(scenario, ScenarioChangePayload(type="delete", entity_type="teams", entity_id="ghost"))
    with pytest.raises(ScenarioChangeError, match="already exists"):
        apply_change(scenario, ScenarioChangePayload(type="create", entity_type="teams", entity_id="t-alpha",
                                                     data={"name": "Again"}))
    with pytest.raises(ScenarioChangeError):
        apply_change(scenario, ScenarioChangePayload(type="update", entity_type="projects", entity_id="pr-web",
                                                     data={"name": ""}))


def test_compare_reports_budget_dates_and_people(snapshot, scenario):
    apply_template(scenario, BUILTIN_TEMPLATES["budget-cut-10"], {"budgetReduction": 20})
    apply_template(scenario, BUILTIN_TEMPLATES["project-delay"], {"delayWeeks": 2})
    apply_change(scenario, ScenarioChangePayload(type="update", entity_type="people", entity_id="p-bob",
                                                 data={"team_id": "t-alpha"}))
    apply_change(scenario, ScenarioChangePayload(type="delete", entity_type="teams", entity_id="t-beta"))

    comparison = compare_scenario(snapshot, scenario, scenario_id="s1", scenario_name="Lean")

    cost = comparison.financial_impact.project_cost_changes[0]
    assert cost.cost_difference == pytest.approx(-400)
    assert cost.percentage_change == pytest.approx(-20)
    dates = comparison.timeline_impact.project_date_changes[0]
    assert (dates.start_shift_days, dates.end_shift_days) == (14, 14)
    assert comparison.resource_impact.people_changes.reallocated == 1
    assert comparison.summary.categorized_changes["organizational"] == 1
    assert comparison.summary.total_changes == 4
    assert comparison.summary.impact_level == "low"
    impacts = {c.id: c.impact for c in comparison.changes}
    assert impacts["project-dates-pr-web"] == "medium"
    assert impacts["team-removed-t-beta"] == "high"


def test_unchanged_scenario_has_no_changes(snapshot, scenario):
    comparison = compare_scenario(snapshot, scenario)
    assert comparison.changes == []
    assert comparison.financial_impact.total_cost_difference == 0


def test_is_expired():
    now = datetime(2025, 1, 1, tzinfo=timezone.utc)
    assert is_expired(now - timedelta(seconds=1), now)
    assert not is_expired(datetime(2025, 2, 1), now)
