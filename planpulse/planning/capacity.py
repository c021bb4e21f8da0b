"""Team capacity, utilization and allocation consistency checks.

Percentages are per team per iteration: 100 means the whole team for that
iteration. Totals above 100 are reported, never rejected.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Dict, Iterable, List, Literal, Optional, Tuple

from pydantic import BaseModel, Field

from planpulse.common.dto.models import (
    AllocationRecord,
    CycleRecord,
    EpicRecord,
    RunWorkCategoryRecord,
    TeamRecord,
)
from planpulse.planning.cycles import iterations_for

DEFAULT_ITERATION_COUNT = 6
WEEKS_PER_ITERATION = 2
OVER_ALLOCATION_THRESHOLD = 100.0
UNDER_ALLOCATION_THRESHOLD = 80.0
TARGET_UTILIZATION = 85.0
TARGET_RUN_WORK_PERCENTAGE = 20.0
BOTTLENECK_WORKLOAD = 300.0


def is_over_allocated(percentage: float) -> bool:
    return percentage > OVER_ALLOCATION_THRESHOLD


def is_under_allocated(percentage: float) -> bool:
    return 0 < percentage < UNDER_ALLOCATION_THRESHOLD


class IterationUtilization(BaseModel):
    iteration_number: int
    capacity_hours: float
    allocated_percentage: float
    is_over_allocated: bool
    is_under_allocated: bool


class TeamCapacityUtilization(BaseModel):
    team_id: Optional[str]
    cycle_id: Optional[str]
    total_capacity_hours: float
    average_utilization: float
    peak_utilization: float
    min_utilization: float
    utilization_trend: Literal["increasing", "decreasing", "stable", "declining"]
    over_allocated_iterations: List[int]
    under_allocated_iterations: List[int]
    skill_gaps: List[str]
    recommendations: List[str]
    warnings: List[str]
    iteration_breakdown: List[IterationUtilization]


class ValidationIssue(BaseModel):
    type: str
    team_id: Optional[str] = None
    cycle_id: Optional[str] = None
    iteration_number: Optional[int] = None
    total_percentage: Optional[float] = None
    epic_id: Optional[str] = None
    message: str


class OrphanedAllocation(BaseModel):
    allocation_id: Optional[str]
    reason: str


class SkillMismatch(BaseModel):
    team_id: Optional[str]
    epic_id: Optional[str]
    missing_skills: List[str]


class DependencyViolation(BaseModel):
    epic_id: Optional[str]
    dependency_id: str
    reason: str


class AllocationConsistency(BaseModel):
    is_valid: bool
    errors: List[ValidationIssue] = Field(default_factory=list)
    warnings: List[ValidationIssue] = Field(default_factory=list)
    orphaned_allocations: List[OrphanedAllocation] = Field(default_factory=list)
    skill_mismatches: List[SkillMismatch] = Field(default_factory=list)
    dependency_violations: List[DependencyViolation] = Field(default_factory=list)


def _iteration_count(cycle: CycleRecord, cycles: Optional[Iterable[CycleRecord]]) -> int:
    if cycles is not None:
        children = iterations_for(cycles, cycle.id)
        if children:
            return len(children)
    return DEFAULT_ITERATION_COUNT


def _trend(values: List[float]) -> str:
    if len(values) < 3:
        return "stable"
    first, middle, last = values[0], values[len(values) // 2], values[-1]
    if last > first and last > middle:
        return "increasing"
    if last < first and last < middle:
        return "declining"
    if first > middle > last:
        return "decreasing"
    return "stable"


def calculate_team_capacity_utilization(
    team: TeamRecord,
    allocations: Iterable[AllocationRecord],
    cycle: CycleRecord,
    epics: Iterable[EpicRecord],
    cycles: Optional[Iterable[CycleRecord]] = None,
    iteration_count: Optional[int] = None,
) -> TeamCapacityUtilization:
    """Utilization of one team across the iterations of a quarter.

    The iteration count comes from ``iteration_count``, else from the
    quarter's iteration cycles in ``cycles``, else defaults to 6.
    """
    count = iteration_count or _iteration_count(cycle, cycles)
    team_allocations = [a for a in allocations if a.team_id == team.id and a.cycle_id == cycle.id]
    per_iteration: Dict[int, float] = defaultdict(float)
    for allocation in team_allocations:
        per_iteration[allocation.iteration_number] += allocation.percentage

    iteration_hours = team.capacity * WEEKS_PER_ITERATION
    breakdown = []
    over, under = [], []
    for number in range(1, count + 1):
        total = per_iteration.get(number, 0.0)
        breakdown.append(
            IterationUtilization(
                iteration_number=number,
                capacity_hours=iteration_hours,
                allocated_percentage=total,
                is_over_allocated=is_over_allocated(total),
                is_under_allocated=is_under_allocated(total),
            )
        )
        if is_over_allocated(total):
            over.append(number)
        elif is_under_allocated(total):
            under.append(number)

    values = [item.allocated_percentage for item in breakdown]
    active = [value for value in values if value > 0]
    average = sum(active) / len(active) if active else 0.0

    epics_by_id = {epic.id: epic for epic in epics}
    team_skills = set(team.target_skills)
    skill_gaps: List[str] = []
    for allocation in team_allocations:
        epic = epics_by_id.get(allocation.epic_id) if allocation.epic_id else None
        if epic is None:
            continue
        for skill in epic.required_skills:
            if skill not in team_skills and skill not in skill_gaps:
                skill_gaps.append(skill)

    recommendations: List[str] = []
    warnings: List[str] = []
    if average == 0:
        recommendations.append("Team appears to have no work allocated")
    if team.capacity == 0:
        warnings.append("Team has zero capacity")
    if skill_gaps:
        recommendations.append(f"Consider training team members in {', '.join(skill_gaps)} skills")
    if over and under:
        recommendations.append(f"Redistribute work from iteration {over[0]} to iteration {under[0]}")

    return TeamCapacityUtilization(
        team_id=team.id,
        cycle_id=cycle.id,
        total_capacity_hours=iteration_hours * count,
        average_utilization=average,
        peak_utilization=max(values) if values else 0.0,
        min_utilization=min(active) if active else 0.0,
        utilization_trend=_trend(values),
        over_allocated_iterations=over,
        under_allocated_iterations=under,
        skill_gaps=skill_gaps,
        recommendations=recommendations,
        warnings=warnings,
        iteration_breakdown=breakdown,
    )


def iteration_totals(allocations: Iterable[AllocationRecord]) -> Dict[Tuple[str, str, int], float]:
    """Sum of percentages keyed by (team_id, cycle_id, iteration_number)."""
    totals: Dict[Tuple[str, str, int], float] = defaultdict(float)
    for allocation in allocations:
        totals[(allocation.team_id, allocation.cycle_id, allocation.iteration_number)] += allocation.percentage
    return dict(totals)


def validate_allocation_consistency(
    allocations: Iterable[AllocationRecord],
    teams: Iterable[TeamRecord],
    epics: Iterable[EpicRecord],
    cycles: Iterable[CycleRecord],
    run_work_categories: Iterable[RunWorkCategoryRecord] = (),
) -> AllocationConsistency:
    """Check allocations against the entities they reference and against capacity."""
    allocations = list(allocations)
    teams_by_id = {team.id: team for team in teams}
    epics_by_id = {epic.id: epic for epic in epics}
    cycle_ids = {cycle.id for cycle in cycles}
    category_ids = {category.id for category in run_work_categories}
    result = AllocationConsistency(is_valid=True)
    reported_dependencies = set()

    for allocation in allocations:
        team = teams_by_id.get(allocation.team_id)
        if team is None:
            result.orphaned_allocations.append(OrphanedAllocation(allocation_id=allocation.id, reason="Team not found"))
            continue
        epic = epics_by_id.get(allocation.epic_id) if allocation.epic_id else None
        if allocation.epic_id and epic is None:
            result.orphaned_allocations.append(OrphanedAllocation(allocation_id=allocation.id, reason="Epic not found"))
            continue
        if allocation.run_work_category_id and category_ids and allocation.run_work_category_id not in category_ids:
            result.orphaned_allocations.append(
                OrphanedAllocation(allocation_id=allocation.id, reason="Run work category not found")
            )
            continue
        if allocation.cycle_id not in cycle_ids:
            result.orphaned_allocations.append(OrphanedAllocation(allocation_id=allocation.id, reason="Cycle not found"))
            continue
        if epic is None:
            continue

        missing = [skill for skill in epic.required_skills if skill not in team.target_skills]
        if missing:
            result.skill_mismatches.append(SkillMismatch(team_id=team.id, epic_id=epic.id, missing_skills=missing))

        for dependency_id in epic.dependencies:
            dependency = epics_by_id.get(dependency_id)
            if dependency is None or dependency.status == "completed":
                continue
            if (epic.id, dependency_id) in reported_dependencies:
                continue
            reported_dependencies.add((epic.id, dependency_id))
            result.dependency_violations.append(
                DependencyViolation(
                    epic_id=epic.id,
                    dependency_id=dependency_id,
                    reason=f"Allocated before dependency {dependency.name} is completed",
                )
            )

    for (team_id, cycle_id, iteration), total in sorted(iteration_totals(allocations).items()):
        team = teams_by_id.get(team_id)
        label = team.name if team else team_id
        if is_over_allocated(total):
            result.errors.append(
                ValidationIssue(
                    type="over_allocation",
                    team_id=team_id,
                    cycle_id=cycle_id,
                    iteration_number=iteration,
                    total_percentage=total,
                    message=f"Team {label} is over-allocated in iteration {iteration}: {total:g}%",
                )
            )
        elif is_under_allocated(total):
            result.warnings.append(
                ValidationIssue(
                    type="capacity_warning",
                    team_id=team_id,
                    cycle_id=cycle_id,
                    iteration_number=iteration,
                    total_percentage=total,
                    message=f"Team {label} is under-allocated in iteration {iteration}: {total:g}%",
                )
            )

    result.is_valid = not result.errors
    return result


def generate_allocation_recommendations(
    allocations: Iterable[AllocationRecord],
    teams: Iterable[TeamRecord],
    epics: Iterable[EpicRecord],
) -> dict:
    """Redistribution, skill-based team suggestions, capacity balancing and run-work share."""
    allocations = list(allocations)
    teams = list(teams)
    totals = iteration_totals(allocations)

    over = [(key, total - OVER_ALLOCATION_THRESHOLD) for key, total in sorted(totals.items()) if is_over_allocated(total)]
    under = [(key, UNDER_ALLOCATION_THRESHOLD - total) for key, total in sorted(totals.items()) if is_under_allocated(total)]
    optimizations = []
    if over and under:
        (from_team, _, from_iteration), excess = over[0]
        (to_team, _, to_iteration), deficit = under[0]
        optimizations.append({
            "type": "redistribute",
            "from_team": from_team,
            "to_team": to_team,
            "from_iteration": from_iteration,
            "to_iteration": to_iteration,
            "percentage": min(excess, deficit),
            "reason": "Redistribute work from over-allocated to under-allocated iteration",
        })

    skill_based = []
    for epic in epics:
        if not epic.required_skills:
            continue
        match = next((t for t in teams if all(s in t.target_skills for s in epic.required_skills)), None)
        if match is not None:
            skill_based.append({
                "epic_id": epic.id,
                "recommended_team": match.id,
                "reason": f"Team has required skills: {', '.join(epic.required_skills)}",
            })

    balancing = []
    for team in teams:
        team_allocations = [a for a in allocations if a.team_id == team.id]
        allocated = sum(a.percentage for a in team_allocations)
        iterations = max([a.iteration_number for a in team_allocations] + [1])
        average = allocated / iterations
        balancing.append({
            "team_id": team.id,
            "quarterly_utilization": average,
            "target_utilization": TARGET_UTILIZATION,
            "adjustment_needed": TARGET_UTILIZATION - average,
        })

    project_work = sum(1 for a in allocations if a.epic_id)
    run_work = sum(1 for a in allocations if a.run_work_category_id)
    total_work = project_work + run_work
    run_share = run_work / total_work * 100 if total_work else 0.0

    return {
        "optimizations": optimizations,
        "skill_based_recommendations": skill_based,
        "capacity_balancing": balancing,
        "run_work_optimization": {
            "current_run_work_percentage": run_share,
            "recommended_run_work_percentage": TARGET_RUN_WORK_PERCENTAGE,
            "adjustment": TARGET_RUN_WORK_PERCENTAGE - run_share,
        },
    }


def calculate_cross_team_dependencies(
    allocations: Iterable[AllocationRecord],
    epics: Iterable[EpicRecord],
) -> dict:
    """Epics shared between teams and teams whose total load makes them bottlenecks."""
    allocations = list(allocations)
    epics_by_id = {epic.id: epic for epic in epics}
    epic_teams: Dict[str, List[str]] = defaultdict(list)
    for allocation in allocations:
        if allocation.epic_id and allocation.team_id not in epic_teams[allocation.epic_id]:
            epic_teams[allocation.epic_id].append(allocation.team_id)

    shared = []
    for epic_id, team_ids in epic_teams.items():
        if len(team_ids) < 2:
            continue
        epic = epics_by_id.get(epic_id)
        size = len(team_ids)
        shared.append({
            "epic_id": epic_id,
            "teams": team_ids,
            "coordination_risk": "high" if size > 3 else "medium" if size > 2 else "low",
            "impact_score": ((epic.estimated_effort or 0) if epic else 0) * size / 10,
            "meeting_frequency": "daily" if size > 3 else "weekly",
        })

    workload: Dict[str, float] = defaultdict(float)
    for allocation in allocations:
        workload[allocation.team_id] += allocation.percentage
    bottlenecks = []
    for team_id, load in workload.items():
        if load > BOTTLENECK_WORKLOAD:
            affected = sorted({a.epic_id for a in allocations if a.team_id == team_id and a.epic_id})
            bottlenecks.append({
                "team_id": team_id,
                "reason": "Team is critical path for multiple epics",
                "affected_epics": affected,
            })
    return {"shared_epics": shared, "bottlenecks": bottlenecks}


def summarize_team_allocations(
    team: TeamRecord,
    allocations: Iterable[AllocationRecord],
    cycle: CycleRecord,
    run_work_categories: Iterable[RunWorkCategoryRecord] = (),
) -> List[dict]:
    """Per-iteration totals for one team, split into project work and run work."""
    category_names = {c.id: c.name for c in run_work_categories}
    rows: Dict[int, dict] = {}
    for allocation in allocations:
        if allocation.team_id != team.id or allocation.cycle_id != cycle.id:
            continue
        row = rows.setdefault(
            allocation.iteration_number,
            {"iteration_number": allocation.iteration_number, "project_work": 0.0, "run_work": 0.0,
             "run_work_by_category": {}, "total": 0.0},
        )
        if allocation.run_work_category_id:
            row["run_work"] += allocation.percentage
            name = category_names.get(allocation.run_work_category_id, allocation.run_work_category_id)
            row["run_work_by_category"][name] = row["run_work_by_category"].get(name, 0.0) + allocation.percentage
        else:
            row["project_work"] += allocation.percentage
        row["total"] += allocation.percentage
    for row in rows.values():
        row["is_over_allocated"] = is_over_allocated(row["total"])
    return [rows[number] for number in sorted(rows)]
