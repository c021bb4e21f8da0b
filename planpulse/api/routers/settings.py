"""Planning settings endpoints."""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header
from sqlalchemy.orm import Session

from planpulse.api.dependencies import get_db_session, get_settings_service

router = APIRouter(prefix="/api/v1/settings", tags=["settings"])


@router.get("/")
def read_settings(
    session: Session = Depends(get_db_session),
    service=Depends(get_settings_service),
):
    return service.get_settings(session).model_dump(mode="json")


@router.put("/")
def update_settings(
    updates: Dict[str, Any],
    actor: Optional[str] = Header(None, alias="X-PlanPulse-Actor"),
    session: Session = Depends(get_db_session),
    service=Depends(get_settings_service),
):
    """Merge the given fields into the stored settings; cached reports are dropped."""
    return service.update_settings(session, updates, actor=actor).model_dump(mode="json")
