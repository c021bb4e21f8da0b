"""Scenario endpoints: branch, modify, compare and clean up what-if copies."""

from typing import Optional

from fastapi import APIRouter, Depends, Header
from sqlalchemy.orm import Session

from planpulse.api.dependencies import get_db_session, get_scenario_service
from planpulse.api.models import CleanupResponse, DeleteResponse, ScenarioListResponse, ScenarioUpdateRequest
from planpulse.common.dto.models import ScenarioChangePayload, ScenarioCreatePayload

router = APIRouter(prefix="/api/v1/scenarios", tags=["scenarios"])


@router.get("/", response_model=ScenarioListResponse)
def list_scenarios(
    session: Session = Depends(get_db_session),
    service=Depends(get_scenario_service),
):
    scenarios = service.list(session)
    return ScenarioListResponse(scenarios=scenarios, count=len(scenarios))


@router.post("/", status_code=201)
def create_scenario(
    payload: ScenarioCreatePayload,
    actor: Optional[str] = Header(None, alias="X-PlanPulse-Actor"),
    session: Session = Depends(get_db_session),
    service=Depends(get_scenario_service),
):
    """Copy the live data into a new scenario, optionally through a template."""
    return service.create(session, payload, actor=actor).model_dump(mode="json")


@router.get("/templates")
def list_templates(service=Depends(get_scenario_service)):
    return service.templates()


@router.post("/cleanup", response_model=CleanupResponse)
def cleanup_expired(
    session: Session = Depends(get_db_session),
    service=Depends(get_scenario_service),
):
    return CleanupResponse(removed=service.cleanup_expired(session))


@router.get("/{scenario_id}")
def get_scenario(
    scenario_id: str,
    session: Session = Depends(get_db_session),
    service=Depends(get_scenario_service),
):
    return service.get(session, scenario_id).model_dump(mode="json")


@router.put("/{scenario_id}")
def update_scenario(
    scenario_id: str,
    request: ScenarioUpdateRequest,
    session: Session = Depends(get_db_session),
    service=Depends(get_scenario_service),
):
    return service.rename(session, scenario_id, request.name, request.description)


@router.delete("/{scenario_id}", response_model=DeleteResponse)
def delete_scenario(
    scenario_id: str,
    actor: Optional[str] = Header(None, alias="X-PlanPulse-Actor"),
    session: Session = Depends(get_db_session),
    service=Depends(get_scenario_service),
):
    service.delete(session, scenario_id, actor=actor)
    return DeleteResponse(success=True, id=scenario_id)


@router.post("/{scenario_id}/changes", status_code=201)
def apply_change(
    scenario_id: str,
    change: ScenarioChangePayload,
    session: Session = Depends(get_db_session),
    service=Depends(get_scenario_service),
):
    """Create, update or delete one entity inside the scenario."""
    return service.apply_change(session, scenario_id, change).model_dump(mode="json")


@router.get("/{scenario_id}/comparison")
def compare_scenario(
    scenario_id: str,
    session: Session = Depends(get_db_session),
    service=Depends(get_scenario_service),
):
    return service.compare(session, scenario_id).model_dump(mode="json")
