"""Planning settings stored as JSON in the settings table."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from planpulse.api.exceptions import ValidationError
from planpulse.api.services.entity_service import REPORTS_PATTERN, invalidate_on_commit
from planpulse.common.dto.models import AppSettings, format_validation_error
from planpulse.common.storage.repository import AuditLogRepository, SettingRepository

logger = logging.getLogger(__name__)


class SettingsService:
    """Reads and updates ``AppSettings``; defaults apply until the first save."""

    SETTINGS_KEY = "planning.settings"

    def __init__(self, report_cache=None):
        self._report_cache = report_cache

    def get_settings(self, session: Session) -> AppSettings:
        stored = SettingRepository(session).get(self.SETTINGS_KEY)
        if not stored:
            return AppSettings()
        try:
            return AppSettings.model_validate(stored)
        except PydanticValidationError as exc:
            logger.warning("Stored settings are invalid, using defaults: %s", format_validation_error(exc))
            return AppSettings()

    def update_settings(
        self,
        session: Session,
        updates: Dict[str, Any],
        actor: Optional[str] = None,
    ) -> AppSettings:
        """Merge ``updates`` into the current settings and persist them."""
        current = self.get_settings(session).model_dump(mode="json")
        current.update(updates)
        try:
            settings = AppSettings.model_validate(current)
        except PydanticValidationError as exc:
            raise ValidationError(format_validation_error(exc)) from exc

        SettingRepository(session).set(self.SETTINGS_KEY, settings.model_dump(mode="json"))
        AuditLogRepository(session).add(
            event_type="settings.update",
            actor=actor,
            context={"fields": sorted(updates)},
        )
        invalidate_on_commit(session, self._report_cache, REPORTS_PATTERN)
        logger.info("Planning settings updated: %s", ", ".join(sorted(updates)) or "(no fields)")
        return settings
