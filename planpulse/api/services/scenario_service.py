"""Scenario lifecycle: create from live data, change in isolation, compare, expire."""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from planpulse.api.exceptions import EntityNotFoundError, ScenarioExpiredError, ValidationError
from planpulse.api.services.entity_service import invalidate_on_commit
from planpulse.common.dto.models import (
    PlanningSnapshot,
    ScenarioChangePayload,
    ScenarioCreatePayload,
    ScenarioModification,
    ScenarioRecord,
)
from planpulse.common.storage.repository import AuditLogRepository, ScenarioRepository, load_snapshot
from planpulse.planning import scenarios as engine

logger = logging.getLogger(__name__)

DEFAULT_TTL_DAYS = 60


class ScenarioService:
    def __init__(self, ttl_days: int = DEFAULT_TTL_DAYS, report_cache=None):
        self.ttl_days = ttl_days
        self._report_cache = report_cache

    def _invalidate(self, session: Session, scenario_id: str) -> None:
        invalidate_on_commit(session, self._report_cache, f"^reports:{re.escape(scenario_id)}:")

    def _row(self, session: Session, scenario_id: str, allow_expired: bool = False):
        row = ScenarioRepository(session).get_by_id(scenario_id)
        if row is None:
            raise EntityNotFoundError(f"Scenario '{scenario_id}' not found")
        if not allow_expired and engine.is_expired(row.expires_at):
            raise ScenarioExpiredError(f"Scenario '{scenario_id}' expired at {row.expires_at.isoformat()}")
        return row

    @staticmethod
    def summary(row) -> Dict[str, Any]:
        return {
            "id": row.id,
            "name": row.name,
            "description": row.description,
            "template_id": row.template_id,
            "template_name": row.template_name,
            "created_at": row.created_at.isoformat() if row.created_at else None,
            "last_modified": row.last_modified.isoformat() if row.last_modified else None,
            "expires_at": row.expires_at.isoformat() if row.expires_at else None,
            "is_expired": engine.is_expired(row.expires_at),
            "modification_count": len(row.modifications or []),
        }

    def templates(self) -> List[Dict[str, Any]]:
        return [template.model_dump() for template in engine.BUILTIN_TEMPLATES.values()]

    def list(self, session: Session) -> List[Dict[str, Any]]:
        return [self.summary(row) for row in ScenarioRepository(session).get_all()]

    def get(self, session: Session, scenario_id: str) -> ScenarioRecord:
        return ScenarioRecord.model_validate(self._row(session, scenario_id))

    def get_data(self, session: Session, scenario_id: str) -> PlanningSnapshot:
        return self.get(session, scenario_id).data

    def create(self, session: Session, payload: ScenarioCreatePayload, actor: Optional[str] = None) -> ScenarioRecord:
        """Branch the live data, applying a template when one is named."""
        snapshot = load_snapshot(session)
        modifications: List[ScenarioModification] = []
        template_name = None
        if payload.template_id:
            try:
                template = engine.get_template(payload.template_id)
                modifications = engine.apply_template(snapshot, template, payload.template_params)
            except engine.ScenarioChangeError as exc:
                raise ValidationError(str(exc)) from exc
            template_name = template.name

        row = ScenarioRepository(session).create(
            name=payload.name,
            description=payload.description,
            data=snapshot.model_dump(mode="json"),
            ttl_days=self.ttl_days,
            template_id=payload.template_id,
            template_name=template_name,
            modifications=[m.model_dump(mode="json") for m in modifications],
        )
        AuditLogRepository(session).add(
            event_type="scenario.create",
            entity_id=row.id,
            actor=actor,
            context={"template_id": payload.template_id, "modifications": len(modifications)},
        )
        logger.info("Created scenario %s (%s) with %d template change(s)", row.id, row.name, len(modifications))
        return ScenarioRecord.model_validate(row)

    def rename(self, session: Session, scenario_id: str, name: Optional[str], description: Optional[str]) -> Dict[str, Any]:
        row = self._row(session, scenario_id)
        if name is not None:
            if not name.strip():
                raise ValidationError("Scenario name must not be empty")
            row.name = name.strip()
        if description is not None:
            row.description = description
        session.flush()
        return self.summary(row)

    def apply_change(self, session: Session, scenario_id: str, change: ScenarioChangePayload) -> ScenarioModification:
        """Apply one change to the scenario's data; live tables are untouched."""
        row = self._row(session, scenario_id)
        record = ScenarioRecord.model_validate(row)
        try:
            modification = engine.apply_change(record.data, change)
        except engine.ScenarioEntityNotFound as exc:
            raise EntityNotFoundError(str(exc)) from exc
        except engine.ScenarioChangeError as exc:
            raise ValidationError(str(exc)) from exc

        modifications = [m.model_dump(mode="json") for m in record.modifications]
        modifications.append(modification.model_dump(mode="json"))
        ScenarioRepository(session).save(row, record.data.model_dump(mode="json"), modifications)
        self._invalidate(session, scenario_id)
        logger.info("Scenario %s: %s", scenario_id, modification.description)
        return modification

    def compare(self, session: Session, scenario_id: str) -> engine.ScenarioComparison:
        record = self.get(session, scenario_id)
        return engine.compare_scenario(load_snapshot(session), record.data, record.id, record.name)

    def delete(self, session: Session, scenario_id: str, actor: Optional[str] = None) -> None:
        if not ScenarioRepository(session).delete(scenario_id):
            raise EntityNotFoundError(f"Scenario '{scenario_id}' not found")
        AuditLogRepository(session).add(event_type="scenario.delete", entity_id=scenario_id, actor=actor)
        self._invalidate(session, scenario_id)

    def cleanup_expired(self, session: Session) -> int:
        removed = ScenarioRepository(session).delete_expired()
        if removed:
            logger.info("Removed %d expired scenario(s)", removed)
        return removed
