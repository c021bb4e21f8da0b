"""Repository layer for PlanPulse (shared)."""

import json
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Type

from sqlalchemy import func
from sqlalchemy.orm import Session

from planpulse.common.dto.models import PlanningSnapshot, RECORD_TYPES, Record
from .schema import (
    Base,
    Division,
    Team,
    Role,
    Person,
    Project,
    Epic,
    Milestone,
    Cycle,
    RunWorkCategory,
    Allocation,
    Skill,
    PersonSkill,
    ProjectSkill,
    Goal,
    Scenario,
    Setting,
    AuditLog,
    utc_now,
)


def generate_id(prefix: str) -> str:
    """Generate entity ID: {prefix}-{12 hex chars}."""
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


class EntityRepository:
    """CRUD for one planning entity table.

    Subclasses set ``model``, ``record_type`` and ``id_prefix`` and add
    lookups specific to their entity.
    """

    model: Type[Base] = None
    record_type: Type[Record] = None
    id_prefix: str = "ent"
    order_by: str = "name"

    def __init__(self, session: Session):
        self.session = session

    def _columns(self) -> List[str]:
        return [column.name for column in self.model.__table__.columns]

    def create(self, data: Dict[str, Any]) -> Any:
        now = utc_now()
        values = {key: value for key, value in data.items() if key in self._columns()}
        values["id"] = values.get("id") or generate_id(self.id_prefix)
        values.setdefault("created_at", now)
        values.setdefault("updated_at", now)
        row = self.model(**values)
        self.session.add(row)
        self.session.flush()
        return row

    def get_by_id(self, entity_id: str) -> Optional[Any]:
        return self.session.get(self.model, entity_id)

    def get_all(self) -> List[Any]:
        query = self.session.query(self.model)
        column = getattr(self.model, self.order_by, None)
        if column is not None:
            query = query.order_by(column)
        return query.all()

    def update(self, entity_id: str, updates: Dict[str, Any]) -> Optional[Any]:
        row = self.get_by_id(entity_id)
        if row is None:
            return None
        columns = self._columns()
        for key, value in updates.items():
            if key in ("id", "created_at") or key not in columns:
                continue
            setattr(row, key, value)
        if "updated_at" in columns:
            row.updated_at = utc_now()
        self.session.flush()
        return row

    def delete(self, entity_id: str) -> bool:
        row = self.get_by_id(entity_id)
        if row is None:
            return False
        self.session.delete(row)
        self.session.flush()
        return True

    def count(self) -> int:
        return self.session.query(func.count(self.model.id)).scalar() or 0

    def get_by_name(self, name: str) -> Optional[Any]:
        """Case-insensitive lookup on the name column."""
        return (
            self.session.query(self.model)
            .filter(func.lower(self.model.name) == name.strip().lower())
            .first()
        )

    def to_record(self, row: Any) -> Record:
        return self.record_type.model_validate(row)


class DivisionRepository(EntityRepository):
    model = Division
    record_type = RECORD_TYPES["divisions"]
    id_prefix = "div"


class TeamRepository(EntityRepository):
    model = Team
    record_type = RECORD_TYPES["teams"]
    id_prefix = "team"


class RoleRepository(EntityRepository):
    model = Role
    record_type = RECORD_TYPES["roles"]
    id_prefix = "role"


class PersonRepository(EntityRepository):
    model = Person
    record_type = RECORD_TYPES["people"]
    id_prefix = "person"

    def get_by_email(self, email: str) -> Optional[Person]:
        return self.session.query(Person).filter(func.lower(Person.email) == email.strip().lower()).first()


class ProjectRepository(EntityRepository):
    model = Project
    record_type = RECORD_TYPES["projects"]
    id_prefix = "proj"


class EpicRepository(EntityRepository):
    model = Epic
    record_type = RECORD_TYPES["epics"]
    id_prefix = "epic"


class MilestoneRepository(EntityRepository):
    model = Milestone
    record_type = RECORD_TYPES["milestones"]
    id_prefix = "ms"


class CycleRepository(EntityRepository):
    model = Cycle
    record_type = RECORD_TYPES["cycles"]
    id_prefix = "cycle"
    order_by = "start_date"


class RunWorkCategoryRepository(EntityRepository):
    model = RunWorkCategory
    record_type = RECORD_TYPES["run_work_categories"]
    id_prefix = "rwc"


class AllocationRepository(EntityRepository):
    model = Allocation
    record_type = RECORD_TYPES["allocations"]
    id_prefix = "alloc"
    order_by = "iteration_number"


class SkillRepository(EntityRepository):
    model = Skill
    record_type = RECORD_TYPES["skills"]
    id_prefix = "skill"


class PersonSkillRepository(EntityRepository):
    model = PersonSkill
    record_type = RECORD_TYPES["person_skills"]
    id_prefix = "ps"
    order_by = "person_id"

    def get_pair(self, person_id: str, skill_id: str) -> Optional[PersonSkill]:
        return (
            self.session.query(PersonSkill)
            .filter(PersonSkill.person_id == person_id, PersonSkill.skill_id == skill_id)
            .first()
        )


class ProjectSkillRepository(EntityRepository):
    model = ProjectSkill
    record_type = RECORD_TYPES["project_skills"]
    id_prefix = "pjs"
    order_by = "project_id"


class GoalRepository(EntityRepository):
    model = Goal
    record_type = RECORD_TYPES["goals"]
    id_prefix = "goal"
    order_by = "title"


REPOSITORIES: Dict[str, Type[EntityRepository]] = {
    "divisions": DivisionRepository,
    "teams": TeamRepository,
    "roles": RoleRepository,
    "people": PersonRepository,
    "projects": ProjectRepository,
    "epics": EpicRepository,
    "milestones": MilestoneRepository,
    "cycles": CycleRepository,
    "run_work_categories": RunWorkCategoryRepository,
    "allocations": AllocationRepository,
    "skills": SkillRepository,
    "person_skills": PersonSkillRepository,
    "project_skills": ProjectSkillRepository,
    "goals": GoalRepository,
}


def load_snapshot(session: Session) -> PlanningSnapshot:
    """Read every planning table into a PlanningSnapshot."""
    payload = {}
    for collection, repo_cls in REPOSITORIES.items():
        repo = repo_cls(session)
        payload[collection] = [repo.to_record(row) for row in repo.get_all()]
    return PlanningSnapshot(**payload)


class ScenarioRepository:
    """Repository for scenario branches."""

    def __init__(self, session: Session):
        self.session = session

    def create(
        self,
        name: str,
        data: Dict[str, Any],
        ttl_days: int,
        description: Optional[str] = None,
        template_id: Optional[str] = None,
        template_name: Optional[str] = None,
        modifications: Optional[List[Dict[str, Any]]] = None,
    ) -> Scenario:
        now = utc_now()
        scenario = Scenario(
            id=generate_id("scn"),
            name=name,
            description=description,
            template_id=template_id,
            template_name=template_name,
            data=data,
            modifications=modifications or [],
            created_at=now,
            last_modified=now,
            expires_at=now + timedelta(days=ttl_days),
        )
        self.session.add(scenario)
        self.session.flush()
        return scenario

    def get_by_id(self, scenario_id: str) -> Optional[Scenario]:
        return self.session.get(Scenario, scenario_id)

    def get_all(self) -> List[Scenario]:
        return self.session.query(Scenario).order_by(Scenario.created_at.desc()).all()

    def save(self, scenario: Scenario, data: Dict[str, Any], modifications: List[Dict[str, Any]]) -> Scenario:
        # JSON columns track changes by reassignment only
        scenario.data = data
        scenario.modifications = modifications
        scenario.last_modified = utc_now()
        self.session.flush()
        return scenario

    def delete(self, scenario_id: str) -> bool:
        scenario = self.get_by_id(scenario_id)
        if scenario is None:
            return False
        self.session.delete(scenario)
        self.session.flush()
        return True

    def delete_expired(self, now: Optional[datetime] = None) -> int:
        now = now or utc_now()
        expired = [s for s in self.get_all() if _as_aware(s.expires_at) <= now]
        for scenario in expired:
            self.session.delete(scenario)
        self.session.flush()
        return len(expired)


def _as_aware(value: datetime) -> datetime:
    # SQLite drops tzinfo on read
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SettingRepository:
    """Key/value settings stored as JSON text."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, key: str) -> Optional[Any]:
        row = self.session.get(Setting, key)
        if row is None:
            return None
        return json.loads(row.value_json)

    def set(self, key: str, value: Any, notes: Optional[str] = None) -> Setting:
        now = utc_now()
        row = self.session.get(Setting, key)
        encoded = json.dumps(value, default=str)
        if row is None:
            row = Setting(key=key, value_json=encoded, notes=notes, created_at=now, updated_at=now)
            self.session.add(row)
        else:
            row.value_json = encoded
            row.updated_at = now
            if notes is not None:
                row.notes = notes
        self.session.flush()
        return row


class AuditLogRepository:
    """Repository for audit log entries."""

    def __init__(self, session: Session):
        self.session = session

    def add(self, event_type: str, entity_id: Optional[str] = None, actor: Optional[str] = None,
            context: Optional[Dict[str, Any]] = None) -> AuditLog:
        entry = AuditLog(
            event_type=event_type,
            entity_id=entity_id,
            actor=actor,
            context=json.dumps(context, ensure_ascii=False, default=str) if context else None,
            created_at=utc_now(),
        )
        self.session.add(entry)
        self.session.flush()
        return entry

    def recent(self, limit: int = 50, event_type: Optional[str] = None) -> List[AuditLog]:
        query = self.session.query(AuditLog)
        if event_type:
            query = query.filter(AuditLog.event_type == event_type)
        return query.order_by(AuditLog.id.desc()).limit(limit).all()
