"""Financial roll-ups: person rates, team run-rates, allocation and project costs.

Rates resolve in priority order. Permanent staff use their own annual
salary, then the role's default salary, then the role's legacy hourly rate.
Contractors use their own hourly rate, then their daily rate, then the role's
default hourly and daily rates, then the legacy rate. Annual salaries are
spread over ``working_days_per_year * working_hours_per_day`` hours.
"""

from __future__ import annotations

import math
from collections import defaultdict
from typing import Dict, Iterable, List, Literal, Optional

from pydantic import BaseModel, Field

from planpulse.common.dto.models import (
    AllocationRecord,
    AppSettings,
    CycleRecord,
    PersonRecord,
    PlanningSnapshot,
    ProjectRecord,
    RoleRecord,
)
from planpulse.planning.cycles import cycle_days, find_iteration, iterations_for

RateSource = Literal["personal", "role-default", "legacy-fallback"]
RateType = Literal["annual", "hourly", "daily"]


class PersonCost(BaseModel):
    person_id: Optional[str]
    cost_per_hour: float
    cost_per_day: float
    cost_per_week: float
    cost_per_month: float
    cost_per_year: float
    rate_source: RateSource
    effective_rate: float
    rate_type: RateType


class TeamCost(BaseModel):
    team_id: Optional[str] = None
    member_count: int
    costed_member_count: int
    weekly_cost: float
    monthly_cost: float
    quarterly_cost: float
    annual_cost: float


class AllocationCostLine(BaseModel):
    allocation_id: Optional[str]
    cycle_name: str
    percentage: float
    cost: float


class PersonCostBreakdown(BaseModel):
    person_id: Optional[str]
    person_name: str
    total_cost: float = 0.0
    allocations: List[AllocationCostLine] = Field(default_factory=list)
    rate_source: RateSource
    effective_rate: float
    rate_type: RateType


class TeamCostBreakdown(BaseModel):
    team_id: Optional[str]
    team_name: str
    total_cost: float


class ProjectCost(BaseModel):
    project_id: Optional[str]
    total_cost: float
    breakdown: List[PersonCostBreakdown]
    team_breakdown: List[TeamCostBreakdown]
    monthly_burn_rate: float
    total_duration_days: int


class ProjectYearCost(BaseModel):
    project_id: Optional[str]
    total_annual_cost: float
    quarterly_costs: Dict[str, float]


class RateValidation(BaseModel):
    is_valid: bool
    warnings: List[str]
    suggestions: List[str]


class BudgetVariance(BaseModel):
    project_id: Optional[str]
    budget: Optional[float]
    total_cost: float
    variance: Optional[float]
    utilization_percent: Optional[float]
    is_over_budget: bool


def _finite(value: float) -> float:
    return value if isinstance(value, (int, float)) and math.isfinite(value) else 0.0


def _positive(value: Optional[float]) -> bool:
    return value is not None and value > 0


def resolve_hourly_rate(person: PersonRecord, role: RoleRecord, settings: AppSettings):
    """Return ``(cost_per_hour, rate_source, effective_rate, rate_type)``."""
    hours_per_year = settings.working_days_per_year * settings.working_hours_per_day
    hours_per_day = settings.working_hours_per_day

    if person.employment_type == "permanent":
        if _positive(person.annual_salary):
            return person.annual_salary / hours_per_year, "personal", person.annual_salary, "annual"
        if _positive(role.default_annual_salary):
            return role.default_annual_salary / hours_per_year, "role-default", role.default_annual_salary, "annual"
    else:
        if _positive(person.hourly_rate):
            return person.hourly_rate, "personal", person.hourly_rate, "hourly"
        if _positive(person.daily_rate):
            return person.daily_rate / hours_per_day, "personal", person.daily_rate, "daily"
        if _positive(role.default_hourly_rate):
            return role.default_hourly_rate, "role-default", role.default_hourly_rate, "hourly"
        if _positive(role.default_daily_rate):
            return role.default_daily_rate / hours_per_day, "role-default", role.default_daily_rate, "daily"

    if _positive(role.default_rate):
        return role.default_rate, "legacy-fallback", role.default_rate, "hourly"
    return 0.0, "legacy-fallback", 0.0, "hourly"


def calculate_person_cost(person: PersonRecord, role: RoleRecord, settings: Optional[AppSettings] = None) -> PersonCost:
    settings = settings or AppSettings()
    per_hour, source, effective, rate_type = resolve_hourly_rate(person, role, settings)
    per_day = per_hour * settings.working_hours_per_day
    return PersonCost(
        person_id=person.id,
        cost_per_hour=_finite(per_hour),
        cost_per_day=_finite(per_day),
        cost_per_week=_finite(per_day * settings.working_days_per_week),
        cost_per_month=_finite(per_day * settings.working_days_per_month),
        cost_per_year=_finite(per_day * settings.working_days_per_year),
        rate_source=source,
        effective_rate=_finite(effective),
        rate_type=rate_type,
    )


def calculate_team_cost(
    members: Iterable[PersonRecord],
    roles: Iterable[RoleRecord],
    settings: Optional[AppSettings] = None,
    team_id: Optional[str] = None,
) -> TeamCost:
    """Weekly, monthly, quarterly (monthly x 3) and annual cost of a team.

    Members whose role cannot be found are counted but not costed.
    """
    settings = settings or AppSettings()
    roles_by_id = {role.id: role for role in roles}
    members = list(members)
    weekly = monthly = annual = 0.0
    costed = 0
    for person in members:
        role = roles_by_id.get(person.role_id)
        if role is None:
            continue
        cost = calculate_person_cost(person, role, settings)
        weekly += cost.cost_per_week
        monthly += cost.cost_per_month
        annual += cost.cost_per_year
        costed += 1
    return TeamCost(
        team_id=team_id,
        member_count=len(members),
        costed_member_count=costed,
        weekly_cost=weekly,
        monthly_cost=monthly,
        quarterly_cost=monthly * 3,
        annual_cost=annual,
    )


def calculate_allocation_cost(
    allocation: AllocationRecord,
    cycle: CycleRecord,
    members: Iterable[PersonRecord],
    roles: Iterable[RoleRecord],
    settings: Optional[AppSettings] = None,
) -> float:
    """Cost of one allocation: day rate x cycle days x percentage, summed over members."""
    settings = settings or AppSettings()
    roles_by_id = {role.id: role for role in roles}
    days = cycle_days(cycle)
    total = 0.0
    for person in members:
        role = roles_by_id.get(person.role_id)
        if role is None:
            continue
        cost = calculate_person_cost(person, role, settings)
        total += _finite(cost.cost_per_day * days * (allocation.percentage / 100))
    return total


def _costing_cycle(allocation: AllocationRecord, snapshot: PlanningSnapshot) -> Optional[CycleRecord]:
    quarter = snapshot.find("cycles", allocation.cycle_id)
    if quarter is None:
        return None
    iteration = find_iteration(snapshot.cycles, quarter.id, allocation.iteration_number)
    return iteration or quarter


def calculate_project_cost(
    project: ProjectRecord,
    snapshot: PlanningSnapshot,
    settings: Optional[AppSettings] = None,
) -> ProjectCost:
    """Cost of every allocation against the project's epics.

    Each allocation is costed over its iteration cycle when one exists,
    otherwise over the allocated cycle itself, using the team's active members.
    """
    settings = settings or AppSettings()
    epic_ids = {epic.id for epic in snapshot.epics if epic.project_id == project.id}
    roles_by_id = snapshot.index("roles")
    teams_by_id = snapshot.index("teams")

    total = 0.0
    breakdown: Dict[str, PersonCostBreakdown] = {}
    team_totals: Dict[str, float] = defaultdict(float)
    min_start = None
    max_end = None

    for allocation in snapshot.allocations:
        if not allocation.epic_id or allocation.epic_id not in epic_ids:
            continue
        cycle = _costing_cycle(allocation, snapshot)
        if cycle is None:
            continue
        min_start = cycle.start_date if min_start is None else min(min_start, cycle.start_date)
        max_end = cycle.end_date if max_end is None else max(max_end, cycle.end_date)
        days = cycle_days(cycle)

        members = [p for p in snapshot.people if p.team_id == allocation.team_id and p.is_active]
        for person in members:
            role = roles_by_id.get(person.role_id)
            if role is None:
                continue
            cost = calculate_person_cost(person, role, settings)
            line_cost = _finite(cost.cost_per_day * days * (allocation.percentage / 100))
            total += line_cost

            entry = breakdown.get(person.id)
            if entry is None:
                entry = PersonCostBreakdown(
                    person_id=person.id,
                    person_name=person.name,
                    rate_source=cost.rate_source,
                    effective_rate=cost.effective_rate,
                    rate_type=cost.rate_type,
                )
                breakdown[person.id] = entry
            entry.total_cost += line_cost
            entry.allocations.append(
                AllocationCostLine(
                    allocation_id=allocation.id,
                    cycle_name=cycle.name,
                    percentage=allocation.percentage,
                    cost=line_cost,
                )
            )
            if allocation.team_id in teams_by_id:
                team_totals[allocation.team_id] += line_cost

    duration = (max_end - min_start).days if min_start and max_end else 0
    burn_rate = total / duration * settings.working_days_per_month if duration > 0 else 0.0

    team_breakdown = sorted(
        (
            TeamCostBreakdown(team_id=team_id, team_name=teams_by_id[team_id].name, total_cost=amount)
            for team_id, amount in team_totals.items()
        ),
        key=lambda item: item.total_cost,
        reverse=True,
    )
    return ProjectCost(
        project_id=project.id,
        total_cost=_finite(total),
        breakdown=list(breakdown.values()),
        team_breakdown=team_breakdown,
        monthly_burn_rate=_finite(burn_rate),
        total_duration_days=duration,
    )


def quarters_in_financial_year(snapshot: PlanningSnapshot, settings: AppSettings) -> List[CycleRecord]:
    quarters = [c for c in snapshot.cycles if c.type == "quarterly"]
    fy = settings.financial_year
    if fy is not None:
        quarters = [q for q in quarters if fy.start_date <= q.start_date <= fy.end_date]
    return sorted(quarters, key=lambda q: q.start_date)


def calculate_project_cost_for_year(
    project: ProjectRecord,
    snapshot: PlanningSnapshot,
    settings: Optional[AppSettings] = None,
    quarters: Optional[List[CycleRecord]] = None,
) -> ProjectYearCost:
    """Project cost per quarter of the financial year.

    Only allocations whose iteration cycle exists are costed, and only active
    team members are counted.
    """
    settings = settings or AppSettings()
    if quarters is None:
        quarters = quarters_in_financial_year(snapshot, settings)
    epic_ids = {epic.id for epic in snapshot.epics if epic.project_id == project.id}

    quarterly_costs: Dict[str, float] = {}
    for quarter in quarters:
        iterations = iterations_for(snapshot.cycles, quarter.id)
        quarter_cost = 0.0
        for allocation in snapshot.allocations:
            if allocation.cycle_id != quarter.id or allocation.epic_id not in epic_ids:
                continue
            iteration = find_iteration(iterations, quarter.id, allocation.iteration_number)
            if iteration is None:
                continue
            members = [p for p in snapshot.people if p.team_id == allocation.team_id and p.is_active]
            quarter_cost += calculate_allocation_cost(allocation, iteration, members, snapshot.roles, settings)
        quarterly_costs[quarter.name] = quarter_cost

    return ProjectYearCost(
        project_id=project.id,
        total_annual_cost=sum(quarterly_costs.values()),
        quarterly_costs=quarterly_costs,
    )


def validate_rate_configuration(person: PersonRecord, role: RoleRecord) -> RateValidation:
    warnings: List[str] = []
    suggestions: List[str] = []
    if person.employment_type == "permanent":
        if not person.annual_salary and not role.default_annual_salary and not role.default_rate:
            warnings.append("No salary information available")
            suggestions.append("Set either personal annual salary or role default salary")
    else:
        has_personal = person.hourly_rate or person.daily_rate
        has_role_default = role.default_hourly_rate or role.default_daily_rate
        if not has_personal and not has_role_default and not role.default_rate:
            warnings.append("No contractor rate information available")
            suggestions.append("Set either personal hourly/daily rate or role default rates")
    return RateValidation(is_valid=not warnings, warnings=warnings, suggestions=suggestions)


def calculate_budget_variance(project: ProjectRecord, cost: ProjectCost) -> BudgetVariance:
    budget = project.budget
    if not budget:
        return BudgetVariance(
            project_id=project.id,
            budget=budget,
            total_cost=cost.total_cost,
            variance=None,
            utilization_percent=None,
            is_over_budget=False,
        )
    return BudgetVariance(
        project_id=project.id,
        budget=budget,
        total_cost=cost.total_cost,
        variance=budget - cost.total_cost,
        utilization_percent=cost.total_cost / budget * 100,
        is_over_budget=cost.total_cost > budget,
    )
