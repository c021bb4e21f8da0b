"""Shared DTOs and validation helpers used by the API, importers and planning code.

Entity records mirror the storage schema and are what the planning
calculations consume. They are plain value objects: links between them are
string ids and nothing here talks to the database.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

EmploymentType = Literal["permanent", "contractor"]
CycleType = Literal["annual", "quarterly", "iteration"]
IterationLength = Literal["fortnightly", "monthly", "6-weekly"]
ProficiencyLevel = Literal["beginner", "intermediate", "advanced", "expert"]


class Record(BaseModel):
    """Base for all entity records."""

    model_config = ConfigDict(from_attributes=True, extra="ignore")

    id: str | None = None


class DivisionRecord(Record):
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    budget: float | None = Field(None, ge=0)


class TeamRecord(Record):
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    division_id: str | None = None
    capacity: float = Field(40.0, ge=0, description="Capacity in hours per week")
    product_owner_id: str | None = None
    target_skills: List[str] = Field(default_factory=list)


class RoleRecord(Record):
    name: str = Field(..., min_length=1, max_length=255)
    default_annual_salary: float | None = Field(None, ge=0)
    default_hourly_rate: float | None = Field(None, ge=0)
    default_daily_rate: float | None = Field(None, ge=0)
    default_rate: float | None = Field(None, ge=0, description="Legacy hourly rate")


class PersonRecord(Record):
    name: str = Field(..., min_length=1, max_length=255)
    email: str | None = None
    role_id: str | None = None
    team_id: str | None = None
    is_active: bool = True
    employment_type: EmploymentType = "permanent"
    annual_salary: float | None = Field(None, ge=0)
    hourly_rate: float | None = Field(None, ge=0)
    daily_rate: float | None = Field(None, ge=0)
    seniority_level: str | None = None
    start_date: date | None = None
    end_date: date | None = None


class ProjectRecord(Record):
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    status: str = "planning"
    start_date: date | None = None
    end_date: date | None = None
    budget: float | None = None
    priority: int | None = None


class EpicRecord(Record):
    project_id: str
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    status: str = "not-started"
    estimated_effort: float | None = Field(None, ge=0, description="Story points")
    start_date: date | None = None
    end_date: date | None = None
    target_date: date | None = None
    assigned_team_id: str | None = None
    required_skills: List[str] = Field(default_factory=list)
    dependencies: List[str] = Field(default_factory=list)


class MilestoneRecord(Record):
    project_id: str
    name: str = Field(..., min_length=1, max_length=255)
    due_date: date | None = None
    status: str = "not-started"
    is_completed: bool = False


class CycleRecord(Record):
    name: str = Field(..., min_length=1, max_length=255)
    type: CycleType
    start_date: date
    end_date: date
    parent_cycle_id: str | None = None
    status: str = "planning"

    @model_validator(mode="after")
    def _check_range(self) -> "CycleRecord":
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class RunWorkCategoryRecord(Record):
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    color: str | None = None


class AllocationRecord(Record):
    team_id: str
    cycle_id: str
    iteration_number: int = Field(1, ge=1)
    epic_id: str | None = None
    run_work_category_id: str | None = None
    percentage: float = Field(0.0, ge=0)
    notes: str | None = None

    @model_validator(mode="after")
    def _check_work_item(self) -> "AllocationRecord":
        if self.epic_id and self.run_work_category_id:
            raise ValueError("Allocation targets either an epic or a run work category, not both")
        return self


class SkillRecord(Record):
    name: str = Field(..., min_length=1, max_length=255)
    category: str | None = None
    description: str | None = None


class PersonSkillRecord(Record):
    person_id: str
    skill_id: str
    proficiency_level: ProficiencyLevel = "intermediate"
    years_of_experience: float | None = Field(None, ge=0)
    notes: str | None = None


class ProjectSkillRecord(Record):
    project_id: str
    skill_id: str
    importance: Literal["low", "medium", "high", "critical"] = "medium"


class GoalRecord(Record):
    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    status: str = "not-started"
    target_date: date | None = None
    epic_ids: List[str] = Field(default_factory=list)


class FinancialYear(BaseModel):
    name: str
    start_date: date
    end_date: date


class AppSettings(BaseModel):
    """Planning configuration stored in the settings table."""

    working_hours_per_day: float = Field(8, gt=0)
    working_days_per_week: float = Field(5, gt=0)
    working_days_per_month: float = Field(22, gt=0)
    working_days_per_year: float = Field(260, gt=0)
    currency_symbol: str = "$"
    iteration_length: IterationLength = "fortnightly"
    financial_year: FinancialYear | None = None


class PlanningSnapshot(BaseModel):
    """All planning data at one point in time (live or scenario)."""

    divisions: List[DivisionRecord] = Field(default_factory=list)
    teams: List[TeamRecord] = Field(default_factory=list)
    roles: List[RoleRecord] = Field(default_factory=list)
    people: List[PersonRecord] = Field(default_factory=list)
    projects: List[ProjectRecord] = Field(default_factory=list)
    epics: List[EpicRecord] = Field(default_factory=list)
    milestones: List[MilestoneRecord] = Field(default_factory=list)
    cycles: List[CycleRecord] = Field(default_factory=list)
    run_work_categories: List[RunWorkCategoryRecord] = Field(default_factory=list)
    allocations: List[AllocationRecord] = Field(default_factory=list)
    skills: List[SkillRecord] = Field(default_factory=list)
    person_skills: List[PersonSkillRecord] = Field(default_factory=list)
    project_skills: List[ProjectSkillRecord] = Field(default_factory=list)
    goals: List[GoalRecord] = Field(default_factory=list)

    def index(self, collection: str) -> Dict[str, Record]:
        """Return records of a collection keyed by id."""
        return {item.id: item for item in getattr(self, collection) if item.id}

    def find(self, collection: str, entity_id: str | None) -> Record | None:
        if not entity_id:
            return None
        for item in getattr(self, collection):
            if item.id == entity_id:
                return item
        return None


# Collection name -> record type. Order is the load/export order.
RECORD_TYPES: Dict[str, type[Record]] = {
    "divisions": DivisionRecord,
    "teams": TeamRecord,
    "roles": RoleRecord,
    "people": PersonRecord,
    "projects": ProjectRecord,
    "epics": EpicRecord,
    "milestones": MilestoneRecord,
    "cycles": CycleRecord,
    "run_work_categories": RunWorkCategoryRecord,
    "allocations": AllocationRecord,
    "skills": SkillRecord,
    "person_skills": PersonSkillRecord,
    "project_skills": ProjectSkillRecord,
    "goals": GoalRecord,
}


class FieldChange(BaseModel):
    field: str
    old_value: Any = None
    new_value: Any = None


class ScenarioModification(BaseModel):
    id: str
    timestamp: datetime
    type: Literal["create", "update", "delete"]
    entity_type: str
    entity_id: str
    description: str
    changes: List[FieldChange] = Field(default_factory=list)


class ScenarioRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str | None = None
    created_at: datetime
    last_modified: datetime
    expires_at: datetime
    template_id: str | None = None
    template_name: str | None = None
    data: PlanningSnapshot
    modifications: List[ScenarioModification] = Field(default_factory=list)


class ScenarioCreatePayload(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    template_id: str | None = None
    template_params: Dict[str, Any] = Field(default_factory=dict)


class ScenarioChangePayload(BaseModel):
    """A create/update/delete applied to scenario data only."""

    type: Literal["create", "update", "delete"]
    entity_type: str
    entity_id: str | None = None
    data: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_target(self) -> "ScenarioChangePayload":
        if self.entity_type not in RECORD_TYPES:
            raise ValueError(
                f"Unknown entity_type '{self.entity_type}'. Must be one of: {', '.join(RECORD_TYPES)}"
            )
        if self.type in ("update", "delete") and not self.entity_id:
            raise ValueError(f"{self.type} changes require entity_id")
        return self


def format_validation_error(error: ValidationError) -> str:
    """Return a concise validation error message."""
    parts: list[str] = []
    for err in error.errors():
        loc = ".".join(str(piece) for piece in err.get("loc", []) if piece != "__root__")
        prefix = f"{loc}: " if loc else ""
        parts.append(f"{prefix}{err.get('msg')}")
    return "; ".join(parts)
