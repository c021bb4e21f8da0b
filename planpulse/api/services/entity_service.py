"""CRUD for planning entities with validation and report-cache invalidation."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import event
from sqlalchemy.orm import Session

from planpulse.api.exceptions import DuplicateEntityError, EntityNotFoundError, ValidationError
from planpulse.common.dto.models import RECORD_TYPES, Record, format_validation_error
from planpulse.common.storage.repository import REPOSITORIES

logger = logging.getLogger(__name__)

REPORTS_PATTERN = r"^reports:"
PENDING_INVALIDATIONS = "planpulse.report_invalidations"

# collection -> {field: referenced collection}
REFERENCES: Dict[str, Dict[str, str]] = {
    "teams": {"division_id": "divisions"},
    "people": {"team_id": "teams", "role_id": "roles"},
    "epics": {"project_id": "projects", "assigned_team_id": "teams"},
    "milestones": {"project_id": "projects"},
    "cycles": {"parent_cycle_id": "cycles"},
    "allocations": {
        "team_id": "teams",
        "cycle_id": "cycles",
        "epic_id": "epics",
        "run_work_category_id": "run_work_categories",
    },
    "person_skills": {"person_id": "people", "skill_id": "skills"},
    "project_skills": {"project_id": "projects", "skill_id": "skills"},
}


def invalidate_on_commit(session: Session, cache, pattern: str) -> None:
    """Drop cached reports matching ``pattern`` once ``session`` commits.

    Reports computed before the commit still see the old rows, so nothing is
    dropped earlier. A rolled-back session drops nothing.
    """
    if cache is None:
        return
    pending = session.info.get(PENDING_INVALIDATIONS)
    if pending is None:
        pending = session.info[PENDING_INVALIDATIONS] = set()

        def _after_commit(committed: Session) -> None:
            patterns = committed.info.pop(PENDING_INVALIDATIONS, set())
            removed = sum(cache.invalidate_pattern(p) for p in sorted(patterns))
            if removed:
                logger.debug("Invalidated %d cached report(s) after commit", removed)

        event.listen(session, "after_commit", _after_commit, once=True)
    pending.add(pattern)


def collection_from_path(segment: str) -> str:
    """``run-work-categories`` -> ``run_work_categories``."""
    collection = segment.replace("-", "_")
    if collection not in RECORD_TYPES:
        raise EntityNotFoundError(f"Unknown collection '{segment}'")
    return collection


class EntityService:
    """Validated writes to the planning tables.

    Every write drops cached reports once its session commits.
    """

    def __init__(self, report_cache=None):
        self._report_cache = report_cache

    def _repo(self, session: Session, collection: str):
        return REPOSITORIES[collection](session)

    def _validate(self, collection: str, data: Dict[str, Any]) -> Record:
        try:
            return RECORD_TYPES[collection].model_validate(data)
        except PydanticValidationError as exc:
            raise ValidationError(format_validation_error(exc)) from exc

    def _check_references(self, session: Session, collection: str, record: Record) -> None:
        for field, target in REFERENCES.get(collection, {}).items():
            value = getattr(record, field, None)
            if value and REPOSITORIES[target](session).get_by_id(value) is None:
                raise ValidationError(f"{field} '{value}' does not match any {target.replace('_', ' ')}")

    def _check_duplicates(self, session: Session, collection: str, record: Record, entity_id: Optional[str] = None):
        repo = self._repo(session, collection)
        if collection == "people" and record.email:
            existing = repo.get_by_email(record.email)
            if existing is not None and existing.id != entity_id:
                raise DuplicateEntityError(f"A person with email '{record.email}' already exists")
        if collection == "person_skills":
            existing = repo.get_pair(record.person_id, record.skill_id)
            if existing is not None and existing.id != entity_id:
                raise DuplicateEntityError("This person already has that skill")
        if collection == "skills":
            existing = repo.get_by_name(record.name)
            if existing is not None and existing.id != entity_id:
                raise DuplicateEntityError(f"Skill '{record.name}' already exists")

    def invalidate_reports(self, session: Session) -> None:
        invalidate_on_commit(session, self._report_cache, REPORTS_PATTERN)

    # Reads

    def list(self, session: Session, collection: str, filters: Optional[Dict[str, str]] = None) -> List[Record]:
        """All records, optionally narrowed by exact (case-insensitive) field values."""
        repo = self._repo(session, collection)
        records = [repo.to_record(row) for row in repo.get_all()]
        fields = RECORD_TYPES[collection].model_fields
        for field, value in (filters or {}).items():
            if field not in fields:
                raise ValidationError(f"Cannot filter {collection} by '{field}'")
            wanted = str(value).lower()
            records = [r for r in records if str(getattr(r, field)).lower() == wanted]
        return records

    def get(self, session: Session, collection: str, entity_id: str) -> Record:
        repo = self._repo(session, collection)
        row = repo.get_by_id(entity_id)
        if row is None:
            raise EntityNotFoundError(f"{collection} '{entity_id}' not found")
        return repo.to_record(row)

    # Writes

    def create(self, session: Session, collection: str, data: Dict[str, Any]) -> Record:
        record = self._validate(collection, data)
        repo = self._repo(session, collection)
        if record.id and repo.get_by_id(record.id) is not None:
            raise DuplicateEntityError(f"{collection} '{record.id}' already exists")
        self._check_references(session, collection, record)
        self._check_duplicates(session, collection, record)
        row = repo.create(record.model_dump())
        self.invalidate_reports(session)
        logger.info("Created %s %s", collection, row.id)
        return repo.to_record(row)

    def create_many(self, session: Session, collection: str, records: List[Record]) -> int:
        """Insert already validated records (imports, cycle generation)."""
        repo = self._repo(session, collection)
        for record in records:
            repo.create(record.model_dump())
        if records:
            self.invalidate_reports(session)
        return len(records)

    def update(self, session: Session, collection: str, entity_id: str, updates: Dict[str, Any]) -> Record:
        current = self.get(session, collection, entity_id)
        merged = current.model_dump()
        merged.update({k: v for k, v in updates.items() if k != "id"})
        record = self._validate(collection, merged)
        self._check_references(session, collection, record)
        self._check_duplicates(session, collection, record, entity_id=entity_id)
        repo = self._repo(session, collection)
        row = repo.update(entity_id, record.model_dump(exclude={"id"}))
        self.invalidate_reports(session)
        logger.info("Updated %s %s", collection, entity_id)
        return repo.to_record(row)

    def delete(self, session: Session, collection: str, entity_id: str) -> None:
        if not self._repo(session, collection).delete(entity_id):
            raise EntityNotFoundError(f"{collection} '{entity_id}' not found")
        self.invalidate_reports(session)
        logger.info("Deleted %s %s", collection, entity_id)
