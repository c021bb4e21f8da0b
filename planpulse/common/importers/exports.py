"""CSV exports in the same column layout the importers read."""

from __future__ import annotations

from planpulse.common.dto.models import PlanningSnapshot
from .csv_utils import write_csv

PEOPLE_HEADERS = (
    "Name",
    "Email",
    "Role",
    "Team Name",
    "Team ID",
    "Employment Type",
    "Annual Salary",
    "Hourly Rate",
    "Daily Rate",
    "Start Date",
)
PROJECT_HEADERS = (
    "Project Name",
    "Project Description",
    "Project Status",
    "Project Start Date",
    "Project End Date",
    "Project Budget",
    "Epic Name",
    "Epic Effort",
    "Epic Status",
    "Epic Team",
    "Epic Target Date",
)
ALLOCATION_HEADERS = ("teamName", "epicName", "epicType", "sprintNumber", "percentage", "quarter")
SKILL_HEADERS = ("Skill Name", "Category", "Description")
PERSON_SKILL_HEADERS = ("Person Email", "Person Name", "Skill Name", "Proficiency", "Years")


def _name(index: dict, entity_id: str | None) -> str:
    record = index.get(entity_id) if entity_id else None
    return record.name if record is not None else ""


def export_people_csv(snapshot: PlanningSnapshot) -> str:
    teams = snapshot.index("teams")
    roles = snapshot.index("roles")
    rows = [
        (
            p.name,
            p.email,
            _name(roles, p.role_id),
            _name(teams, p.team_id),
            p.team_id,
            p.employment_type,
            p.annual_salary,
            p.hourly_rate,
            p.daily_rate,
            p.start_date,
        )
        for p in snapshot.people
    ]
    return write_csv(PEOPLE_HEADERS, rows)


def export_projects_csv(snapshot: PlanningSnapshot) -> str:
    """One row per epic; projects without epics get a single row with empty epic cells."""
    teams = snapshot.index("teams")
    rows = []
    for project in snapshot.projects:
        head = (
            project.name,
            project.description,
            project.status,
            project.start_date,
            project.end_date,
            project.budget,
        )
        epics = [e for e in snapshot.epics if e.project_id == project.id]
        if not epics:
            rows.append(head + (None,) * 5)
            continue
        for epic in epics:
            rows.append(
                head
                + (
                    epic.name,
                    epic.estimated_effort,
                    epic.status,
                    _name(teams, epic.assigned_team_id),
                    epic.target_date,
                )
            )
    return write_csv(PROJECT_HEADERS, rows)


def export_allocations_csv(snapshot: PlanningSnapshot, cycle_id: str | None = None) -> str:
    """Allocations against quarterly cycles, optionally limited to one quarter."""
    teams = snapshot.index("teams")
    epics = snapshot.index("epics")
    categories = snapshot.index("run_work_categories")
    cycles = snapshot.index("cycles")
    rows = []
    for allocation in snapshot.allocations:
        if cycle_id and allocation.cycle_id != cycle_id:
            continue
        cycle = cycles.get(allocation.cycle_id)
        if allocation.run_work_category_id:
            work, work_type = _name(categories, allocation.run_work_category_id), "Run Work"
        else:
            epic = epics.get(allocation.epic_id)
            project = snapshot.find("projects", epic.project_id) if epic else None
            work, work_type = (epic.name if epic else ""), (project.name if project else "Project")
        rows.append(
            (
                _name(teams, allocation.team_id),
                work,
                work_type,
                allocation.iteration_number,
                allocation.percentage,
                cycle.name if cycle else "",
            )
        )
    return write_csv(ALLOCATION_HEADERS, rows)


def export_skills_csv(snapshot: PlanningSnapshot) -> str:
    rows = [(s.name, s.category, s.description) for s in snapshot.skills]
    return write_csv(SKILL_HEADERS, rows)


def export_person_skills_csv(snapshot: PlanningSnapshot) -> str:
    people = snapshot.index("people")
    skills = snapshot.index("skills")
    rows = []
    for ps in snapshot.person_skills:
        person = people.get(ps.person_id)
        if person is None:
            continue
        rows.append(
            (person.email, person.name, _name(skills, ps.skill_id), ps.proficiency_level, ps.years_of_experience)
        )
    return write_csv(PERSON_SKILL_HEADERS, rows)
