"""What-if scenarios: templates, isolated changes and comparison with live data.

A scenario is a deep copy of the live ``PlanningSnapshot``. Every change is
applied to that copy only and recorded as a ``ScenarioModification`` with
field-level diffs. Comparison reports how far the scenario has drifted from
live data across budgets, teams, people and dates.
"""

from __future__ import annotations

import logging
import re
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, Field, ValidationError

from planpulse.common.dto.models import (
    RECORD_TYPES,
    FieldChange,
    PlanningSnapshot,
    Record,
    ScenarioChangePayload,
    ScenarioModification,
    format_validation_error,
)

logger = logging.getLogger(__name__)

Impact = Literal["low", "medium", "high"]
ChangeCategory = Literal["financial", "resources", "timeline", "scope", "organizational"]
CATEGORIES: Tuple[str, ...] = ("financial", "resources", "timeline", "scope", "organizational")

PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}")


class ScenarioChangeError(ValueError):
    """A scenario change could not be applied."""


class ScenarioEntityNotFound(LookupError):
    """A scenario change targets an entity that is not in the scenario."""


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------


class TemplateParameter(BaseModel):
    id: str
    name: str
    description: str = ""
    type: Literal["number", "percentage", "text", "date", "select"] = "text"
    required: bool = False
    default_value: Any = None
    min: Optional[float] = None
    max: Optional[float] = None


class TemplateFilter(BaseModel):
    field: str
    operator: Literal["equals", "contains", "greater-than", "less-than"]
    value: Any = None


class TemplateFieldChange(BaseModel):
    field: str
    operation: Literal["set", "add", "subtract", "multiply"] = "set"
    value: Any = None


class TemplateModification(BaseModel):
    entity_type: str
    operation: Literal["create", "update", "delete", "bulk-update"]
    filter: Optional[TemplateFilter] = None
    changes: List[TemplateFieldChange] = Field(default_factory=list)


class ScenarioTemplate(BaseModel):
    id: str
    name: str
    description: str
    category: str
    modifications: List[TemplateModification]
    parameters: List[TemplateParameter] = Field(default_factory=list)


BUILTIN_TEMPLATES: Dict[str, ScenarioTemplate] = {
    template.id: template
    for template in (
        ScenarioTemplate(
            id="budget-cut-10",
            name="Budget Reduction",
            description="Reduce project budgets by a specified percentage",
            category="budget",
            modifications=[
                TemplateModification(
                    entity_type="projects",
                    operation="bulk-update",
                    filter=TemplateFilter(field="budget", operator="greater-than", value=0),
                    changes=[
                        TemplateFieldChange(field="budget", operation="multiply", value="{{budgetMultiplier}}")
                    ],
                )
            ],
            parameters=[
                TemplateParameter(
                    id="budgetReduction",
                    name="Budget Reduction %",
                    description="Percentage to reduce budgets by",
                    type="percentage",
                    required=True,
                    default_value=10,
                    min=0,
                    max=50,
                ),
                TemplateParameter(
                    id="budgetMultiplier",
                    name="Budget Multiplier",
                    description="Calculated from budget reduction",
                    type="number",
                    default_value=0.9,
                ),
            ],
        ),
        ScenarioTemplate(
            id="team-expansion",
            name="Team Expansion",
            description="Add new team members to specific teams",
            category="team-changes",
            modifications=[
                TemplateModification(
                    entity_type="people",
                    operation="create",
                    changes=[
                        TemplateFieldChange(field="name", value="{{newPersonName}}"),
                        TemplateFieldChange(field="team_id", value="{{targetTeamId}}"),
                        TemplateFieldChange(field="role_id", value="{{roleId}}"),
                    ],
                )
            ],
            parameters=[
                TemplateParameter(
                    id="targetTeamId",
                    name="Target Team",
                    description="Which team to add the person to",
                    type="select",
                    required=True,
                ),
                TemplateParameter(
                    id="roleId",
                    name="Role",
                    description="Role for the new team member",
                    type="select",
                    required=True,
                ),
                TemplateParameter(
                    id="newPersonName",
                    name="New Person Name",
                    description="Name for the new team member",
                    type="text",
                    required=True,
                    default_value="New Team Member",
                ),
            ],
        ),
        ScenarioTemplate(
            id="project-delay",
            name="Project Delay",
            description="Push project start and end dates out by a number of weeks",
            category="project-timeline",
            modifications=[
                TemplateModification(
                    entity_type="projects",
                    operation="bulk-update",
                    changes=[
                        TemplateFieldChange(field="start_date", operation="add", value="{{delayWeeks}}"),
                        TemplateFieldChange(field="end_date", operation="add", value="{{delayWeeks}}"),
                    ],
                )
            ],
            parameters=[
                TemplateParameter(
                    id="delayWeeks",
                    name="Delay (weeks)",
                    description="How many weeks to delay projects by",
                    type="number",
                    required=True,
                    default_value=2,
                    min=1,
                    max=26,
                ),
            ],
        ),
    )
}

# Parameters computed from other parameters unless given explicitly.
DERIVED_PARAMETERS: Dict[str, Callable[[Dict[str, Any]], Dict[str, Any]]] = {
    "budget-cut-10": lambda params: {
        "budgetMultiplier": (100 - float(params["budgetReduction"])) / 100
    },
}


def get_template(template_id: str) -> ScenarioTemplate:
    try:
        return BUILTIN_TEMPLATES[template_id]
    except KeyError:
        raise ScenarioChangeError(
            f"Unknown template '{template_id}'. Must be one of: {', '.join(BUILTIN_TEMPLATES)}"
        ) from None


def resolve_parameters(template: ScenarioTemplate, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Merge user parameters with defaults, derive computed ones and check ranges."""
    given = dict(params or {})
    resolved: Dict[str, Any] = {}
    for parameter in template.parameters:
        if parameter.id in given and given[parameter.id] not in (None, ""):
            value = given[parameter.id]
        elif parameter.default_value is not None:
            value = parameter.default_value
        elif parameter.required:
            raise ScenarioChangeError(f"Missing required template parameter '{parameter.id}'")
        else:
            continue

        if parameter.type in ("number", "percentage"):
            try:
                value = float(value)
            except (TypeError, ValueError):
                raise ScenarioChangeError(f"Template parameter '{parameter.id}' must be a number") from None
            if parameter.min is not None and value < parameter.min:
                raise ScenarioChangeError(f"Template parameter '{parameter.id}' must be >= {parameter.min:g}")
            if parameter.max is not None and value > parameter.max:
                raise ScenarioChangeError(f"Template parameter '{parameter.id}' must be <= {parameter.max:g}")
        resolved[parameter.id] = value

    derive = DERIVED_PARAMETERS.get(template.id)
    if derive is not None:
        for key, value in derive(resolved).items():
            if key not in given:
                resolved[key] = value
    return resolved


def substitute(value: Any, params: Dict[str, Any]) -> Any:
    """Replace ``{{param}}`` placeholders.

    A value that is exactly one placeholder keeps the parameter's own type.
    """
    if not isinstance(value, str):
        return value
    whole = PLACEHOLDER.fullmatch(value.strip())
    if whole:
        name = whole.group(1)
        if name not in params:
            raise ScenarioChangeError(f"Template parameter '{name}' has no value")
        return params[name]
    return PLACEHOLDER.sub(lambda m: str(params.get(m.group(1), m.group(0))), value)


def matches_filter(item: Dict[str, Any], flt: Optional[TemplateFilter]) -> bool:
    if flt is None:
        return True
    current = item.get(flt.field)
    if flt.operator == "equals":
        return current == flt.value
    if flt.operator == "contains":
        return current is not None and str(flt.value).lower() in str(current).lower()
    if current is None or flt.value is None:
        return False
    try:
        if flt.operator == "greater-than":
            return current > flt.value
        return current < flt.value
    except TypeError:
        return False


def apply_operation(current: Any, operation: str, value: Any) -> Any:
    """Apply one field operation. ``add``/``subtract`` on a date moves it by weeks."""
    if operation == "set":
        return value
    if current is None:
        return None
    if isinstance(current, date):
        weeks = timedelta(weeks=float(value))
        if operation == "add":
            return current + weeks
        if operation == "subtract":
            return current - weeks
        raise ScenarioChangeError(f"Cannot {operation} a date field")
    number = float(value)
    if operation == "add":
        return current + number
    if operation == "subtract":
        return current - number
    return current * number


# ---------------------------------------------------------------------------
# Applying changes
# ---------------------------------------------------------------------------


def _new_id(entity_type: str) -> str:
    return f"{entity_type}-{uuid.uuid4().hex[:12]}"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _validate(entity_type: str, data: Dict[str, Any]) -> Record:
    try:
        return RECORD_TYPES[entity_type].model_validate(data)
    except ValidationError as exc:
        raise ScenarioChangeError(format_validation_error(exc)) from exc


def field_changes(before: Dict[str, Any], after: Dict[str, Any]) -> List[FieldChange]:
    keys = [k for k in after if k != "id"] + [k for k in before if k not in after and k != "id"]
    return [
        FieldChange(field=key, old_value=before.get(key), new_value=after.get(key))
        for key in keys
        if before.get(key) != after.get(key)
    ]


def _label(record: Record) -> str:
    return getattr(record, "name", None) or getattr(record, "title", None) or record.id or ""


def apply_change(snapshot: PlanningSnapshot, change: ScenarioChangePayload) -> ScenarioModification:
    """Apply a create/update/delete to ``snapshot`` in place and describe it."""
    items: List[Record] = getattr(snapshot, change.entity_type)
    now = _utc_now()

    if change.type == "create":
        data = dict(change.data)
        data["id"] = change.entity_id or data.get("id") or _new_id(change.entity_type)
        if any(item.id == data["id"] for item in items):
            raise ScenarioChangeError(f"{change.entity_type} '{data['id']}' already exists in scenario")
        record = _validate(change.entity_type, data)
        items.append(record)
        return ScenarioModification(
            id=_new_id("mod"),
            timestamp=now,
            type="create",
            entity_type=change.entity_type,
            entity_id=record.id,
            description=f"Created {change.entity_type} '{_label(record)}'",
            changes=field_changes({}, record.model_dump(mode="json")),
        )

    position = next((i for i, item in enumerate(items) if item.id == change.entity_id), None)
    if position is None:
        raise ScenarioEntityNotFound(f"{change.entity_type} '{change.entity_id}' not found in scenario")
    existing = items[position]
    before = existing.model_dump(mode="json")

    if change.type == "delete":
        del items[position]
        return ScenarioModification(
            id=_new_id("mod"),
            timestamp=now,
            type="delete",
            entity_type=change.entity_type,
            entity_id=existing.id,
            description=f"Deleted {change.entity_type} '{_label(existing)}'",
            changes=field_changes(before, {}),
        )

    merged = existing.model_dump()
    merged.update({k: v for k, v in change.data.items() if k != "id"})
    updated = _validate(change.entity_type, merged)
    items[position] = updated
    return ScenarioModification(
        id=_new_id("mod"),
        timestamp=now,
        type="update",
        entity_type=change.entity_type,
        entity_id=updated.id,
        description=f"Updated {change.entity_type} '{_label(updated)}'",
        changes=field_changes(before, updated.model_dump(mode="json")),
    )


def apply_template(
    snapshot: PlanningSnapshot,
    template: ScenarioTemplate,
    params: Optional[Dict[str, Any]] = None,
) -> List[ScenarioModification]:
    """Run every template modification against ``snapshot`` in place."""
    resolved = resolve_parameters(template, params)
    modifications: List[ScenarioModification] = []
    for step in template.modifications:
        if step.entity_type not in RECORD_TYPES:
            raise ScenarioChangeError(f"Template '{template.id}' targets unknown entity type '{step.entity_type}'")

        if step.operation == "create":
            data = {c.field: substitute(c.value, resolved) for c in step.changes}
            modifications.append(
                apply_change(snapshot, ScenarioChangePayload(type="create", entity_type=step.entity_type, data=data))
            )
            continue

        targets = [
            item for item in getattr(snapshot, step.entity_type)
            if matches_filter(item.model_dump(), step.filter)
        ]
        if step.operation == "update":
            targets = targets[:1]
        for item in targets:
            if step.operation == "delete":
                payload = ScenarioChangePayload(type="delete", entity_type=step.entity_type, entity_id=item.id)
            else:
                current = item.model_dump()
                data = {
                    c.field: apply_operation(current.get(c.field), c.operation, substitute(c.value, resolved))
                    for c in step.changes
                }
                payload = ScenarioChangePayload(
                    type="update", entity_type=step.entity_type, entity_id=item.id, data=data
                )
            modifications.append(apply_change(snapshot, payload))

    logger.info(
        "Applied template %s with %d modification(s)", template.id, len(modifications)
    )
    return modifications


def is_expired(expires_at: datetime, now: Optional[datetime] = None) -> bool:
    now = now or _utc_now()
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at <= now


# ---------------------------------------------------------------------------
# Comparison
# ---------------------------------------------------------------------------


class ScenarioChange(BaseModel):
    id: str
    category: ChangeCategory
    entity_type: str
    entity_id: str
    entity_name: str
    change_type: Literal["added", "removed", "modified"]
    description: str
    impact: Impact
    details: List[FieldChange] = Field(default_factory=list)


class ProjectCostChange(BaseModel):
    project_id: str
    project_name: str
    cost_difference: float
    percentage_change: float


class TeamCapacityChange(BaseModel):
    team_id: str
    team_name: str
    capacity_difference: float
    allocation_changes: int


class PeopleChanges(BaseModel):
    added: int = 0
    removed: int = 0
    reallocated: int = 0


class ProjectDateChange(BaseModel):
    project_id: str
    project_name: str
    start_shift_days: Optional[int] = None
    end_shift_days: Optional[int] = None


class ComparisonSummary(BaseModel):
    total_changes: int
    categorized_changes: Dict[str, int]
    impact_level: Impact


class FinancialImpact(BaseModel):
    total_cost_difference: float
    budget_variance: float
    project_cost_changes: List[ProjectCostChange]


class ResourceImpact(BaseModel):
    team_capacity_changes: List[TeamCapacityChange]
    people_changes: PeopleChanges


class TimelineImpact(BaseModel):
    project_date_changes: List[ProjectDateChange]


class ScenarioComparison(BaseModel):
    scenario_id: Optional[str] = None
    scenario_name: Optional[str] = None
    compared_at: datetime
    summary: ComparisonSummary
    changes: List[ScenarioChange]
    financial_impact: FinancialImpact
    resource_impact: ResourceImpact
    timeline_impact: TimelineImpact


def _graded(value: float, high: float, medium: float) -> Impact:
    value = abs(value)
    if value > high:
        return "high"
    if value > medium:
        return "medium"
    return "low"


def _shift(old: Optional[date], new: Optional[date]) -> Optional[int]:
    if old is None or new is None:
        return None
    return (new - old).days


def impact_level(changes: List[ScenarioChange]) -> Impact:
    high = sum(1 for c in changes if c.impact == "high")
    if high > 5:
        return "high"
    if high > 2:
        return "medium"
    return "low"


def _compare_projects(live: PlanningSnapshot, scenario: PlanningSnapshot, changes: List[ScenarioChange]):
    live_projects = live.index("projects")
    scenario_ids = set(scenario.index("projects"))
    cost_changes: List[ProjectCostChange] = []
    date_changes: List[ProjectDateChange] = []

    for project in scenario.projects:
        before = live_projects.get(project.id)
        if before is None:
            changes.append(ScenarioChange(
                id=f"project-added-{project.id}",
                category="scope",
                entity_type="projects",
                entity_id=project.id,
                entity_name=project.name,
                change_type="added",
                description=f'New project "{project.name}" added',
                impact="medium",
            ))
            continue

        if (before.budget or 0) != (project.budget or 0):
            difference = (project.budget or 0) - (before.budget or 0)
            cost_changes.append(ProjectCostChange(
                project_id=project.id,
                project_name=project.name,
                cost_difference=difference,
                percentage_change=difference / before.budget * 100 if before.budget else 0,
            ))
            changes.append(ScenarioChange(
                id=f"project-budget-{project.id}",
                category="financial",
                entity_type="projects",
                entity_id=project.id,
                entity_name=project.name,
                change_type="modified",
                description=f"Budget changed from {before.budget or 0:,.0f} to {project.budget or 0:,.0f}",
                impact=_graded(difference, 100000, 50000),
                details=[FieldChange(field="budget", old_value=before.budget, new_value=project.budget)],
            ))

        start_shift = _shift(before.start_date, project.start_date)
        end_shift = _shift(before.end_date, project.end_date)
        if start_shift or end_shift:
            date_changes.append(ProjectDateChange(
                project_id=project.id,
                project_name=project.name,
                start_shift_days=start_shift,
                end_shift_days=end_shift,
            ))
            details = []
            if start_shift:
                details.append(FieldChange(
                    field="start_date",
                    old_value=before.start_date.isoformat(),
                    new_value=project.start_date.isoformat(),
                ))
            if end_shift:
                details.append(FieldChange(
                    field="end_date",
                    old_value=before.end_date.isoformat(),
                    new_value=project.end_date.isoformat(),
                ))
            largest = max(abs(start_shift or 0), abs(end_shift or 0))
            changes.append(ScenarioChange(
                id=f"project-dates-{project.id}",
                category="timeline",
                entity_type="projects",
                entity_id=project.id,
                entity_name=project.name,
                change_type="modified",
                description=f"Dates shifted by {largest} day(s)",
                impact=_graded(largest, 30, 7),
                details=details,
            ))

    for project in live.projects:
        if project.id not in scenario_ids:
            changes.append(ScenarioChange(
                id=f"project-removed-{project.id}",
                category="scope",
                entity_type="projects",
                entity_id=project.id,
                entity_name=project.name,
                change_type="removed",
                description=f'Project "{project.name}" removed',
                impact="high",
            ))
    return cost_changes, date_changes


def _allocation_counts(snapshot: PlanningSnapshot) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for allocation in snapshot.allocations:
        counts[allocation.team_id] = counts.get(allocation.team_id, 0) + 1
    return counts


def _compare_teams(live: PlanningSnapshot, scenario: PlanningSnapshot, changes: List[ScenarioChange]):
    live_teams = live.index("teams")
    scenario_ids = set(scenario.index("teams"))
    live_counts = _allocation_counts(live)
    scenario_counts = _allocation_counts(scenario)
    capacity_changes: List[TeamCapacityChange] = []

    for team in scenario.teams:
        before = live_teams.get(team.id)
        if before is None:
            changes.append(ScenarioChange(
                id=f"team-added-{team.id}",
                category="organizational",
                entity_type="teams",
                entity_id=team.id,
                entity_name=team.name,
                change_type="added",
                description=f'New team "{team.name}" added',
                impact="medium",
            ))
            continue
        if before.capacity == team.capacity:
            continue
        difference = team.capacity - before.capacity
        capacity_changes.append(TeamCapacityChange(
            team_id=team.id,
            team_name=team.name,
            capacity_difference=difference,
            allocation_changes=scenario_counts.get(team.id, 0) - live_counts.get(team.id, 0),
        ))
        changes.append(ScenarioChange(
            id=f"team-capacity-{team.id}",
            category="resources",
            entity_type="teams",
            entity_id=team.id,
            entity_name=team.name,
            change_type="modified",
            description=f"Team capacity changed from {before.capacity:g}h to {team.capacity:g}h",
            impact=_graded(difference, 20, 10),
            details=[FieldChange(field="capacity", old_value=before.capacity, new_value=team.capacity)],
        ))

    for team in live.teams:
        if team.id not in scenario_ids:
            changes.append(ScenarioChange(
                id=f"team-removed-{team.id}",
                category="organizational",
                entity_type="teams",
                entity_id=team.id,
                entity_name=team.name,
                change_type="removed",
                description=f'Team "{team.name}" removed',
                impact="high",
            ))
    return capacity_changes


def _compare_people(live: PlanningSnapshot, scenario: PlanningSnapshot, changes: List[ScenarioChange]) -> PeopleChanges:
    live_people = live.index("people")
    scenario_people = scenario.index("people")
    result = PeopleChanges()

    for person_id, person in scenario_people.items():
        before = live_people.get(person_id)
        if before is None:
            result.added += 1
            changes.append(ScenarioChange(
                id=f"person-added-{person_id}",
                category="resources",
                entity_type="people",
                entity_id=person_id,
                entity_name=person.name,
                change_type="added",
                description=f'New person "{person.name}" added',
                impact="low",
            ))
        elif before.team_id != person.team_id:
            result.reallocated += 1
            changes.append(ScenarioChange(
                id=f"person-moved-{person_id}",
                category="resources",
                entity_type="people",
                entity_id=person_id,
                entity_name=person.name,
                change_type="modified",
                description=f"{person.name} moved to another team",
                impact="low",
                details=[FieldChange(field="team_id", old_value=before.team_id, new_value=person.team_id)],
            ))

    for person_id, person in live_people.items():
        if person_id not in scenario_people:
            result.removed += 1
            changes.append(ScenarioChange(
                id=f"person-removed-{person_id}",
                category="resources",
                entity_type="people",
                entity_id=person_id,
                entity_name=person.name,
                change_type="removed",
                description=f'Person "{person.name}" removed',
                impact="medium",
            ))
    return result


def compare_scenario(
    live: PlanningSnapshot,
    scenario: PlanningSnapshot,
    scenario_id: Optional[str] = None,
    scenario_name: Optional[str] = None,
) -> ScenarioComparison:
    """Diff scenario data against live data."""
    changes: List[ScenarioChange] = []
    cost_changes, date_changes = _compare_projects(live, scenario, changes)
    capacity_changes = _compare_teams(live, scenario, changes)
    people = _compare_people(live, scenario, changes)

    total_cost = sum(c.cost_difference for c in cost_changes)
    categorized = {category: sum(1 for c in changes if c.category == category) for category in CATEGORIES}
    return ScenarioComparison(
        scenario_id=scenario_id,
        scenario_name=scenario_name,
        compared_at=_utc_now(),
        summary=ComparisonSummary(
            total_changes=len(changes),
            categorized_changes=categorized,
            impact_level=impact_level(changes),
        ),
        changes=changes,
        financial_impact=FinancialImpact(
            total_cost_difference=total_cost,
            budget_variance=total_cost,
            project_cost_changes=cost_changes,
        ),
        resource_impact=ResourceImpact(team_capacity_changes=capacity_changes, people_changes=people),
        timeline_impact=TimelineImpact(project_date_changes=date_changes),
    )
