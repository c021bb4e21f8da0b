"""Service for importing planning data from CSV into the database."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from planpulse.api.exceptions import ValidationError
from planpulse.common.dto.models import RECORD_TYPES
from planpulse.common.importers.allocations import (
    parse_allocation_csv,
    to_allocation,
    validate_allocation_import,
)
from planpulse.common.importers.entities import (
    ImportResult,
    parse_people_csv,
    parse_person_skills_csv,
    parse_projects_csv,
    parse_skills_csv,
)
from planpulse.common.importers.matching import DEFAULT_FUZZY_CUTOFF
from planpulse.common.importers import exports
from planpulse.common.storage.repository import AuditLogRepository, load_snapshot

logger = logging.getLogger(__name__)

IMPORT_KINDS = ("people", "projects", "allocations", "skills", "person-skills")
EXPORT_KINDS = ("people", "projects", "allocations", "skills", "person-skills")


class ImportService:
    """Reconciles CSV uploads against live data and stores the valid rows.

    Rows with errors are skipped; the rest are committed with the request.
    """

    def __init__(self, entity_service, fuzzy_cutoff: float = DEFAULT_FUZZY_CUTOFF):
        self.entity_service = entity_service
        self.fuzzy_cutoff = fuzzy_cutoff

    def parse(self, session: Session, kind: str, content: str) -> ImportResult:
        """Validate ``content`` without writing anything."""
        snapshot = load_snapshot(session)
        if kind == "people":
            return parse_people_csv(content, snapshot, self.fuzzy_cutoff)
        if kind == "projects":
            return parse_projects_csv(content, snapshot, self.fuzzy_cutoff)
        if kind == "skills":
            return parse_skills_csv(content, snapshot)
        if kind == "person-skills":
            return parse_person_skills_csv(content, snapshot, self.fuzzy_cutoff)
        if kind == "allocations":
            rows = parse_allocation_csv(content)
            validation = validate_allocation_import(
                rows,
                snapshot.teams,
                snapshot.epics,
                snapshot.run_work_categories,
                snapshot.cycles,
                self.fuzzy_cutoff,
            )
            result = ImportResult(errors=validation.errors, warnings=validation.warnings)
            for row in validation.valid:
                result.add("allocations", to_allocation(row))
            return result
        raise ValidationError(f"Unsupported import type '{kind}'. Must be one of: {', '.join(IMPORT_KINDS)}")

    def import_csv(
        self,
        session: Session,
        kind: str,
        content: str,
        actor: Optional[str] = None,
        dry_run: bool = False,
    ) -> Dict[str, Any]:
        if not content or not content.strip():
            raise ValidationError("CSV content is empty")

        logger.info("Starting %s import%s", kind, " (dry run)" if dry_run else "")
        result = self.parse(session, kind, content)

        imported: Dict[str, int] = {}
        if not dry_run:
            # Parents before children so references resolve
            for collection in RECORD_TYPES:
                records = result.records.get(collection)
                if records:
                    imported[collection] = self.entity_service.create_many(session, collection, records)
            AuditLogRepository(session).add(
                event_type=f"import.{kind}",
                actor=actor,
                context={
                    "imported": imported,
                    "errors": len(result.errors),
                    "warnings": len(result.warnings),
                },
            )

        logger.info(
            "Import %s completed: %s, %d error(s), %d warning(s)",
            kind,
            imported or result.counts(),
            len(result.errors),
            len(result.warnings),
        )
        return {
            "kind": kind,
            "dry_run": dry_run,
            "imported": imported if not dry_run else result.counts(),
            "errors": result.errors,
            "warnings": result.warnings,
        }

    def export_csv(self, session: Session, kind: str, cycle_id: Optional[str] = None) -> str:
        snapshot = load_snapshot(session)
        if kind == "people":
            return exports.export_people_csv(snapshot)
        if kind == "projects":
            return exports.export_projects_csv(snapshot)
        if kind == "allocations":
            return exports.export_allocations_csv(snapshot, cycle_id)
        if kind == "skills":
            return exports.export_skills_csv(snapshot)
        if kind == "person-skills":
            return exports.export_person_skills_csv(snapshot)
        raise ValidationError(f"Unsupported export type '{kind}'. Must be one of: {', '.join(EXPORT_KINDS)}")
