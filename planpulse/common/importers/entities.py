"""People, project/epic and skill CSV imports.

Each parser reconciles CSV rows against an existing ``PlanningSnapshot`` and
returns an ``ImportResult``: the new records to create per collection plus
row-level errors and warnings. Nothing here writes to the database.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError

from planpulse.common.dto.models import (
    EpicRecord,
    PersonRecord,
    PersonSkillRecord,
    PlanningSnapshot,
    ProjectRecord,
    RoleRecord,
    SkillRecord,
    TeamRecord,
    format_validation_error,
)
from planpulse.common.storage.repository import generate_id
from .csv_utils import date_or_none, first_value, float_or_none, read_rows, str_or_none
from .matching import DEFAULT_FUZZY_CUTOFF, find_best_match, not_found

logger = logging.getLogger(__name__)

DEFAULT_TEAM_CAPACITY = 40.0
PROFICIENCY_LEVELS = ("beginner", "intermediate", "advanced", "expert")


class ImportResult(BaseModel):
    records: Dict[str, List[Any]] = Field(default_factory=dict)
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    def add(self, collection: str, record: Any) -> None:
        self.records.setdefault(collection, []).append(record)

    def counts(self) -> Dict[str, int]:
        return {collection: len(items) for collection, items in self.records.items()}

    def error(self, row_number: int, message: str) -> None:
        self.errors.append(f"Row {row_number}: {message}")

    def warn(self, row_number: int, message: str) -> None:
        self.warnings.append(f"Row {row_number}: {message}")


def _number(result: ImportResult, row_number: int, raw: str, label: str) -> Optional[float]:
    value = float_or_none(raw)
    if raw and value is None:
        result.error(row_number, f'Invalid {label} "{raw}"')
    return value


def _employment_type(raw: str) -> str:
    return "contractor" if raw.strip().lower().startswith("contract") else "permanent"


def parse_people_csv(text: str, snapshot: PlanningSnapshot, cutoff: float = DEFAULT_FUZZY_CUTOFF) -> ImportResult:
    """People rows; unknown teams (capacity 40) and roles are created on the fly."""
    result = ImportResult()
    teams: List[TeamRecord] = list(snapshot.teams)
    roles: List[RoleRecord] = list(snapshot.roles)
    emails = {p.email.lower() for p in snapshot.people if p.email}

    for index, row in enumerate(read_rows(text)):
        row_number = index + 2
        name = first_value(row, "name", "personName", "fullName")
        if not name:
            result.error(row_number, "Name is required")
            continue

        email = first_value(row, "email")
        if email and email.lower() in emails:
            result.error(row_number, f'Duplicate email "{email}"')
            continue

        errors_before = len(result.errors)
        annual_salary = _number(result, row_number, first_value(row, "annualSalary", "salary"), "annual salary")
        hourly_rate = _number(result, row_number, first_value(row, "hourlyRate"), "hourly rate")
        daily_rate = _number(result, row_number, first_value(row, "dailyRate"), "daily rate")
        if len(result.errors) > errors_before:
            continue

        new_team = None
        team_key = first_value(row, "teamId")
        team_name = first_value(row, "teamName", "team")
        team = next((t for t in teams if team_key and t.id == team_key), None)
        team_warning = None
        if team is None and team_name:
            match = find_best_match(team_name, [(t.name, t) for t in teams], cutoff)
            if match is not None:
                team = match.item
                if match.is_fuzzy:
                    team_warning = match.warning("Team")
        if team is None and (team_name or team_key):
            team = new_team = TeamRecord(
                id=team_key or generate_id("team"),
                name=team_name or team_key,
                capacity=DEFAULT_TEAM_CAPACITY,
            )

        new_role = role = None
        role_warning = None
        role_name = first_value(row, "role", "roleName")
        if role_name:
            match = find_best_match(role_name, [(r.name, r) for r in roles], cutoff)
            if match is None:
                role = new_role = RoleRecord(id=generate_id("role"), name=role_name)
            else:
                role = match.item
                if match.is_fuzzy:
                    role_warning = match.warning("Role")

        try:
            person = PersonRecord(
                id=generate_id("person"),
                name=name,
                email=str_or_none(email),
                role_id=role.id if role else None,
                team_id=team.id if team else None,
                employment_type=_employment_type(first_value(row, "employmentType", "type")),
                annual_salary=annual_salary,
                hourly_rate=hourly_rate,
                daily_rate=daily_rate,
                start_date=date_or_none(first_value(row, "startDate")),
            )
        except ValidationError as exc:
            result.error(row_number, format_validation_error(exc))
            continue

        # Nothing is claimed until the row yields a person
        for warning in (team_warning, role_warning):
            if warning:
                result.warn(row_number, warning)
        if new_team is not None:
            teams.append(new_team)
            result.add("teams", new_team)
        if new_role is not None:
            roles.append(new_role)
            result.add("roles", new_role)
        if email:
            emails.add(email.lower())
        result.add("people", person)

    logger.info("Parsed people CSV: %s, %d error(s)", result.counts(), len(result.errors))
    return result


def parse_projects_csv(text: str, snapshot: PlanningSnapshot, cutoff: float = DEFAULT_FUZZY_CUTOFF) -> ImportResult:
    """Combined project/epic rows: one project per distinct name, one epic per row with an epic name."""
    result = ImportResult()
    projects: Dict[str, ProjectRecord] = {p.name.strip().lower(): p for p in snapshot.projects}
    existing_projects = set(projects)
    epic_keys = {(e.project_id, e.name.strip().lower()) for e in snapshot.epics}
    team_pairs = [(t.name, t) for t in snapshot.teams]

    for index, row in enumerate(read_rows(text)):
        row_number = index + 2
        project_name = first_value(row, "projectName", "project", "name")
        if not project_name:
            result.error(row_number, "Project name is required")
            continue

        key = project_name.strip().lower()
        project = projects.get(key)
        if project is None:
            budget_raw = first_value(row, "projectBudget", "budget")
            budget = float_or_none(budget_raw)
            if budget_raw and budget is None:
                result.error(row_number, f'Invalid budget "{budget_raw}"')
                continue
            try:
                project = ProjectRecord(
                    id=generate_id("proj"),
                    name=project_name,
                    description=str_or_none(first_value(row, "projectDescription", "description")),
                    status=first_value(row, "projectStatus", "status") or "planning",
                    start_date=date_or_none(first_value(row, "projectStartDate", "startDate")),
                    end_date=date_or_none(first_value(row, "projectEndDate", "endDate")),
                    budget=budget,
                )
            except ValidationError as exc:
                result.error(row_number, format_validation_error(exc))
                continue
            projects[key] = project
            result.add("projects", project)
        elif key in existing_projects:
            existing_projects.discard(key)
            result.warn(row_number, f'Project "{project_name}" already exists; epics are added to it')

        epic_name = first_value(row, "epicName", "epic")
        if not epic_name:
            continue
        if (project.id, epic_name.strip().lower()) in epic_keys:
            result.warn(row_number, f'Epic "{epic_name}" already exists in "{project.name}", skipped')
            continue

        team_id = None
        team_name = first_value(row, "epicTeam", "team")
        if team_name:
            match = find_best_match(team_name, team_pairs, cutoff)
            if match is None:
                result.warn(row_number, not_found("Team", team_name, [n for n, _ in team_pairs]))
            else:
                team_id = match.item.id
                if match.is_fuzzy:
                    result.warn(row_number, match.warning("Team"))

        effort_raw = first_value(row, "epicEffort", "effort")
        effort = float_or_none(effort_raw)
        if effort_raw and effort is None:
            result.warn(row_number, f'Invalid effort "{effort_raw}" ignored')
        try:
            epic = EpicRecord(
                id=generate_id("epic"),
                project_id=project.id,
                name=epic_name,
                status=first_value(row, "epicStatus") or "not-started",
                estimated_effort=effort,
                target_date=date_or_none(first_value(row, "epicTargetDate", "targetDate")),
                assigned_team_id=team_id,
            )
        except ValidationError as exc:
            result.error(row_number, format_validation_error(exc))
            continue
        epic_keys.add((project.id, epic_name.strip().lower()))
        result.add("epics", epic)

    logger.info("Parsed projects CSV: %s, %d error(s)", result.counts(), len(result.errors))
    return result


def parse_skills_csv(text: str, snapshot: PlanningSnapshot) -> ImportResult:
    result = ImportResult()
    known = {s.name.strip().lower() for s in snapshot.skills}
    for index, row in enumerate(read_rows(text)):
        row_number = index + 2
        name = first_value(row, "skillName", "skill", "name")
        if not name:
            result.error(row_number, "Skill name is required")
            continue
        if name.strip().lower() in known:
            result.warn(row_number, f'Skill "{name}" already exists, skipped')
            continue
        known.add(name.strip().lower())
        result.add(
            "skills",
            SkillRecord(
                id=generate_id("skill"),
                name=name,
                category=first_value(row, "category") or "other",
                description=str_or_none(first_value(row, "description")),
            ),
        )
    return result


def _proficiency(raw: str) -> Optional[str]:
    value = raw.strip().lower()
    if not value:
        return "intermediate"
    return value if value in PROFICIENCY_LEVELS else None


def parse_person_skills_csv(
    text: str, snapshot: PlanningSnapshot, cutoff: float = DEFAULT_FUZZY_CUTOFF
) -> ImportResult:
    """Person/skill rows. Unknown skills are created, unknown people are errors."""
    result = ImportResult()
    people_by_email = {p.email.lower(): p for p in snapshot.people if p.email}
    people_pairs = [(p.name, p) for p in snapshot.people]
    skills: List[SkillRecord] = list(snapshot.skills)
    pairs = {(ps.person_id, ps.skill_id) for ps in snapshot.person_skills}

    for index, row in enumerate(read_rows(text)):
        row_number = index + 2
        person_key = first_value(row, "personEmail", "email", "personName", "person", "name")
        skill_name = first_value(row, "skillName", "skill")
        if not person_key or not skill_name:
            result.error(row_number, "Person and skill are required")
            continue

        person = people_by_email.get(person_key.lower())
        if person is None:
            match = find_best_match(person_key, people_pairs, cutoff)
            if match is None:
                result.error(row_number, not_found("Person", person_key, [n for n, _ in people_pairs]))
                continue
            person = match.item
            if match.is_fuzzy:
                result.warn(row_number, match.warning("Person"))

        match = find_best_match(skill_name, [(s.name, s) for s in skills], cutoff)
        if match is None:
            skill = SkillRecord(id=generate_id("skill"), name=skill_name, category="other")
            skills.append(skill)
            result.add("skills", skill)
        else:
            skill = match.item
            if match.is_fuzzy:
                result.warn(row_number, match.warning("Skill"))

        if (person.id, skill.id) in pairs:
            result.warn(row_number, f'{person.name} already has skill "{skill.name}", skipped')
            continue

        raw_level = first_value(row, "proficiency", "proficiencyLevel", "level")
        level = _proficiency(raw_level)
        if level is None:
            result.warn(row_number, f'Unknown proficiency "{raw_level}", using intermediate')
            level = "intermediate"
        years_raw = first_value(row, "years", "yearsOfExperience", "experience")
        years = float_or_none(years_raw)
        if years_raw and years is None:
            result.warn(row_number, f'Invalid years "{years_raw}" ignored')

        try:
            record = PersonSkillRecord(
                id=generate_id("ps"),
                person_id=person.id,
                skill_id=skill.id,
                proficiency_level=level,
                years_of_experience=years,
            )
        except ValidationError as exc:
            result.error(row_number, format_validation_error(exc))
            continue
        pairs.add((person.id, skill.id))
        result.add("person_skills", record)

    return result
