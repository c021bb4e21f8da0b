"""Projected project end dates from epic progress, milestones and team velocity."""

from __future__ import annotations

import math
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel

from planpulse.common.dto.models import (
    AllocationRecord,
    EpicRecord,
    PersonRecord,
    PlanningSnapshot,
    ProjectRecord,
    RoleRecord,
)

STORY_POINTS_PER_HOUR = 0.5
DAYS_PER_CYCLE = 90
REMAINING_STATUSES = ("in-progress", "todo", "not-started")

# Checked in order; a later keyword wins when a role name contains several.
ROLE_VELOCITY_MULTIPLIERS = (
    ("senior", 1.3),
    ("lead", 1.4),
    ("principal", 1.5),
    ("architect", 1.4),
    ("junior", 0.8),
    ("intern", 0.6),
)


class ProjectedEndDate(BaseModel):
    project_id: Optional[str]
    planned_end_date: Optional[date]
    projected_end_date: Optional[date]
    slip_days: Optional[int]
    remaining_effort: float
    remaining_work_completion: Optional[date]


def role_velocity_multiplier(members: Iterable[PersonRecord], roles: Iterable[RoleRecord]) -> float:
    """Average seniority multiplier of a team, 1.0 for an empty team."""
    members = list(members)
    if not members:
        return 1.0
    roles_by_id = {role.id: role for role in roles}
    total = 0.0
    for member in members:
        multiplier = 1.0
        role = roles_by_id.get(member.role_id)
        if role is not None:
            name = role.name.lower()
            for keyword, value in ROLE_VELOCITY_MULTIPLIERS:
                if keyword in name:
                    multiplier = value
        total += multiplier
    return total / len(members)


def remaining_work_completion(
    remaining_epics: List[EpicRecord],
    allocations: List[AllocationRecord],
    snapshot: PlanningSnapshot,
) -> Optional[date]:
    """Forecast completion of remaining epic effort from allocated team velocity.

    Velocity per team is capacity x average allocation% x role multiplier.
    Remaining effort (story points) is converted to hours at 0.5 points/hour,
    divided by the combined velocity, and the resulting number of cycles is
    added in 90-day steps after the latest allocated cycle ends.
    """
    effort = sum(epic.estimated_effort or 0 for epic in remaining_epics)
    if effort == 0:
        return None

    epic_ids = {epic.id for epic in remaining_epics}
    by_team: Dict[str, List[AllocationRecord]] = {}
    for allocation in allocations:
        if allocation.epic_id in epic_ids:
            by_team.setdefault(allocation.team_id, []).append(allocation)

    teams = snapshot.index("teams")
    velocity = 0.0
    for team_id, team_allocations in by_team.items():
        team = teams.get(team_id)
        if team is None or team.capacity == 0:
            continue
        average = sum(a.percentage for a in team_allocations) / len(team_allocations)
        members = [p for p in snapshot.people if p.team_id == team_id and p.is_active]
        velocity += team.capacity * average / 100 * role_velocity_multiplier(members, snapshot.roles)

    if velocity == 0:
        return None

    cycles_needed = math.ceil(effort / STORY_POINTS_PER_HOUR / velocity)
    cycles = snapshot.index("cycles")
    allocated_cycles = [cycles[a.cycle_id] for a in allocations if a.cycle_id in cycles]
    if not allocated_cycles:
        return None
    latest_end = max(cycle.end_date for cycle in allocated_cycles)
    return latest_end + timedelta(days=cycles_needed * DAYS_PER_CYCLE)


def calculate_projected_end_date(project: ProjectRecord, snapshot: PlanningSnapshot) -> Optional[date]:
    """Latest of completed work, forecast remaining work and open milestones.

    Falls back to the project's planned end date when nothing can be derived.
    """
    epics = [e for e in snapshot.epics if e.project_id == project.id]
    milestones = [m for m in snapshot.milestones if m.project_id == project.id]
    if not epics and not milestones:
        return project.end_date

    candidates: List[date] = []
    candidates.extend(e.end_date for e in epics if e.status == "completed" and e.end_date)
    candidates.extend(
        m.due_date for m in milestones if m.status == "completed" and m.is_completed and m.due_date
    )

    remaining = [e for e in epics if e.status in REMAINING_STATUSES]
    if remaining and snapshot.allocations:
        forecast = remaining_work_completion(remaining, snapshot.allocations, snapshot)
        if forecast is not None:
            candidates.append(forecast)

    candidates.extend(m.due_date for m in milestones if not m.is_completed and m.due_date)

    if candidates:
        return max(candidates)
    return project.end_date


def project_end_date_report(project: ProjectRecord, snapshot: PlanningSnapshot) -> ProjectedEndDate:
    projected = calculate_projected_end_date(project, snapshot)
    epics = [e for e in snapshot.epics if e.project_id == project.id and e.status in REMAINING_STATUSES]
    forecast = remaining_work_completion(epics, snapshot.allocations, snapshot) if epics else None
    slip = (projected - project.end_date).days if projected and project.end_date else None
    return ProjectedEndDate(
        project_id=project.id,
        planned_end_date=project.end_date,
        projected_end_date=projected,
        slip_days=slip,
        remaining_effort=sum(e.estimated_effort or 0 for e in epics),
        remaining_work_completion=forecast,
    )
