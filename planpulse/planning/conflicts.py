"""Allocation conflict detection for one planning quarter."""

from __future__ import annotations

from collections import defaultdict
from typing import Dict, Iterable, List, Literal, Set

from pydantic import BaseModel, Field

from planpulse.common.dto.models import AllocationRecord, PlanningSnapshot, TeamRecord

ConflictType = Literal[
    "overallocation",
    "skill-mismatch",
    "dependency-violation",
    "resource-contention",
    "timeline-overlap",
]
Severity = Literal["low", "medium", "high", "critical"]

SEVERITY_WEIGHTS = {"critical": 100, "high": 75, "medium": 50, "low": 25}


class ConflictImpact(BaseModel):
    delay_risk: float
    quality_risk: float
    resource_waste: float


class AllocationConflict(BaseModel):
    id: str
    type: ConflictType
    severity: Severity
    title: str
    description: str
    affected_allocations: List[str] = Field(default_factory=list)
    affected_teams: List[str] = Field(default_factory=list)
    affected_epics: List[str] = Field(default_factory=list)
    suggested_actions: List[str] = Field(default_factory=list)
    impact: ConflictImpact


class ConflictSummary(BaseModel):
    total: int
    critical: int
    high: int
    medium: int
    low: int


class ConflictReport(BaseModel):
    cycle_id: str
    conflicts: List[AllocationConflict]
    summary: ConflictSummary
    affected_teams_count: int
    affected_epics_count: int
    overall_risk_score: int


def _unique(values: Iterable) -> List:
    seen = []
    for value in values:
        if value is not None and value not in seen:
            seen.append(value)
    return seen


def overallocation_severity(total: float) -> Severity:
    if total > 150:
        return "critical"
    if total > 125:
        return "high"
    if total > 110:
        return "medium"
    return "low"


def detect_overallocation(allocations: List[AllocationRecord], teams: List[TeamRecord]) -> List[AllocationConflict]:
    conflicts = []
    for team in teams:
        by_iteration: Dict[int, List[AllocationRecord]] = defaultdict(list)
        for allocation in allocations:
            if allocation.team_id == team.id:
                by_iteration[allocation.iteration_number].append(allocation)
        for iteration in sorted(by_iteration):
            items = by_iteration[iteration]
            total = sum(a.percentage for a in items)
            if total <= 100:
                continue
            excess = total - 100
            conflicts.append(
                AllocationConflict(
                    id=f"overallocation-{team.id}-{iteration}",
                    type="overallocation",
                    severity=overallocation_severity(total),
                    title=f"Team {team.name} overallocated in iteration {iteration}",
                    description=f"Team is allocated {round(total)}% capacity ({round(excess)}% over limit)",
                    affected_allocations=[a.id for a in items],
                    affected_teams=[team.id],
                    affected_epics=_unique(a.epic_id for a in items),
                    suggested_actions=[
                        "Reduce allocation percentages",
                        "Move some work to another iteration",
                        "Split work across multiple teams",
                        "Increase team capacity if possible",
                    ],
                    impact=ConflictImpact(
                        delay_risk=min(100, excess * 2),
                        quality_risk=min(100, excess * 1.5),
                        resource_waste=min(100, excess * 1.2),
                    ),
                )
            )
    return conflicts


def team_skill_ids(team: TeamRecord, snapshot: PlanningSnapshot) -> Set[str]:
    """Skills a team covers: its target skills plus its active members' skills."""
    members = {p.id for p in snapshot.people if p.team_id == team.id and p.is_active}
    skills = set(team.target_skills)
    skills.update(ps.skill_id for ps in snapshot.person_skills if ps.person_id in members)
    return skills


def detect_skill_mismatches(allocations: List[AllocationRecord], snapshot: PlanningSnapshot) -> List[AllocationConflict]:
    teams = snapshot.index("teams")
    epics = snapshot.index("epics")
    skill_names = {s.id: s.name for s in snapshot.skills}
    pairs: Dict[tuple, List[AllocationRecord]] = defaultdict(list)
    for allocation in allocations:
        if allocation.epic_id:
            pairs[(allocation.team_id, allocation.epic_id)].append(allocation)

    conflicts = []
    coverage: Dict[str, Set[str]] = {}
    for (team_id, epic_id), items in pairs.items():
        team = teams.get(team_id)
        epic = epics.get(epic_id)
        if team is None or epic is None or not epic.required_skills:
            continue
        if team_id not in coverage:
            coverage[team_id] = team_skill_ids(team, snapshot)
        missing = [s for s in epic.required_skills if s not in coverage[team_id]]
        if not missing:
            continue
        ratio = len(missing) / len(epic.required_skills)
        labels = ", ".join(skill_names.get(s, s) for s in missing)
        conflicts.append(
            AllocationConflict(
                id=f"skill-{team_id}-{epic_id}",
                type="skill-mismatch",
                severity="high" if ratio == 1 else "medium",
                title=f"Team {team.name} lacks skills for {epic.name}",
                description=f"Missing {len(missing)} of {len(epic.required_skills)} required skills: {labels}",
                affected_allocations=[a.id for a in items],
                affected_teams=[team_id],
                affected_epics=[epic_id],
                suggested_actions=[
                    "Pair with a team that has the missing skills",
                    "Plan training before the work starts",
                    "Reassign the epic to a better matched team",
                ],
                impact=ConflictImpact(
                    delay_risk=round(50 * ratio + 20),
                    quality_risk=round(60 * ratio + 20),
                    resource_waste=30,
                ),
            )
        )
    return conflicts


def detect_dependency_risks(allocations: List[AllocationRecord], snapshot: PlanningSnapshot) -> List[AllocationConflict]:
    conflicts = []
    for project in snapshot.projects:
        epic_ids = {e.id for e in snapshot.epics if e.project_id == project.id}
        items = [a for a in allocations if a.epic_id in epic_ids]
        iterations = sorted({a.iteration_number for a in items})
        if len(iterations) < 2:
            continue
        consecutive = any(b == a + 1 for a, b in zip(iterations, iterations[1:]))
        if not consecutive:
            continue
        conflicts.append(
            AllocationConflict(
                id=f"dependency-{project.id}",
                type="dependency-violation",
                severity="medium",
                title=f"Potential dependency conflicts in {project.name}",
                description=(
                    f"Multiple epics from {project.name} are scheduled in overlapping iterations, "
                    "which may create dependency issues"
                ),
                affected_allocations=[a.id for a in items],
                affected_teams=_unique(a.team_id for a in items),
                affected_epics=_unique(a.epic_id for a in items),
                suggested_actions=[
                    "Review epic dependencies",
                    "Sequence epics based on dependencies",
                    "Consider team coordination overhead",
                    "Plan integration points",
                ],
                impact=ConflictImpact(delay_risk=60, quality_risk=40, resource_waste=30),
            )
        )
    return conflicts


def detect_resource_contention(allocations: List[AllocationRecord], snapshot: PlanningSnapshot) -> List[AllocationConflict]:
    epics = snapshot.index("epics")
    grouped: Dict[tuple, List[AllocationRecord]] = defaultdict(list)
    for allocation in allocations:
        if allocation.epic_id:
            grouped[(allocation.epic_id, allocation.iteration_number)].append(allocation)

    conflicts = []
    for (epic_id, iteration), items in grouped.items():
        epic = epics.get(epic_id)
        teams = _unique(a.team_id for a in items)
        if epic is None or len(teams) < 2:
            continue
        conflicts.append(
            AllocationConflict(
                id=f"contention-{epic_id}-{iteration}",
                type="resource-contention",
                severity="medium",
                title=f"Multiple teams on {epic.name} in iteration {iteration}",
                description=(
                    f"{len(teams)} teams are working on the same epic simultaneously, "
                    "which may cause coordination overhead"
                ),
                affected_allocations=[a.id for a in items],
                affected_teams=teams,
                affected_epics=[epic_id],
                suggested_actions=[
                    "Designate a lead team",
                    "Split epic into smaller, team-specific tasks",
                    "Plan coordination meetings",
                    "Define clear interfaces between teams",
                ],
                impact=ConflictImpact(delay_risk=40, quality_risk=50, resource_waste=35),
            )
        )
    return conflicts


def detect_timeline_compression(allocations: List[AllocationRecord], snapshot: PlanningSnapshot) -> List[AllocationConflict]:
    conflicts = []
    for project in snapshot.projects:
        project_epics = [e for e in snapshot.epics if e.project_id == project.id]
        epic_ids = {e.id for e in project_epics}
        items = [a for a in allocations if a.epic_id in epic_ids]
        if not items:
            continue
        numbers = [a.iteration_number for a in items]
        span = max(numbers) - min(numbers) + 1
        if span > 2 or len(project_epics) < 3:
            continue
        plural = "s" if span != 1 else ""
        conflicts.append(
            AllocationConflict(
                id=f"timeline-{project.id}",
                type="timeline-overlap",
                severity="high",
                title=f"Aggressive timeline for {project.name}",
                description=f"Project has {len(project_epics)} epics compressed into {span} iteration{plural}",
                affected_allocations=[a.id for a in items],
                affected_teams=_unique(a.team_id for a in items),
                affected_epics=[e.id for e in project_epics],
                suggested_actions=[
                    "Extend project timeline",
                    "Reduce scope for initial delivery",
                    "Parallelize epic development",
                    "Review epic complexity estimates",
                ],
                impact=ConflictImpact(delay_risk=80, quality_risk=70, resource_waste=20),
            )
        )
    return conflicts


def overall_risk_score(conflicts: List[AllocationConflict]) -> int:
    """Mean severity weight, 0-100."""
    if not conflicts:
        return 0
    return round(sum(SEVERITY_WEIGHTS[c.severity] for c in conflicts) / len(conflicts))


def detect_allocation_conflicts(snapshot: PlanningSnapshot, cycle_id: str) -> ConflictReport:
    """Run every detector over the allocations of one quarter."""
    allocations = [a for a in snapshot.allocations if a.cycle_id == cycle_id]
    conflicts: List[AllocationConflict] = []
    conflicts.extend(detect_overallocation(allocations, snapshot.teams))
    conflicts.extend(detect_skill_mismatches(allocations, snapshot))
    conflicts.extend(detect_dependency_risks(allocations, snapshot))
    conflicts.extend(detect_resource_contention(allocations, snapshot))
    conflicts.extend(detect_timeline_compression(allocations, snapshot))

    counts = {level: sum(1 for c in conflicts if c.severity == level) for level in SEVERITY_WEIGHTS}
    return ConflictReport(
        cycle_id=cycle_id,
        conflicts=conflicts,
        summary=ConflictSummary(total=len(conflicts), **counts),
        affected_teams_count=len({t for c in conflicts for t in c.affected_teams}),
        affected_epics_count=len({e for c in conflicts for e in c.affected_epics}),
        overall_risk_score=overall_risk_score(conflicts),
    )
