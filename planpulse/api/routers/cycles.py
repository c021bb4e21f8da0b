"""Cycle generation endpoints (quarters and iterations)."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from planpulse.api.dependencies import (
    get_db_session,
    get_entity_service,
    get_report_service,
    get_settings_service,
)
from planpulse.api.exceptions import DuplicateEntityError, ValidationError
from planpulse.api.models import GeneratedCyclesResponse, GenerateIterationsRequest, GenerateQuartersRequest
from planpulse.planning.cycles import generate_iterations, generate_quarters, iterations_for

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/cycles", tags=["cycles"])


@router.get("/current")
def current_cycle(
    session: Session = Depends(get_db_session),
    report_service=Depends(get_report_service),
):
    """Quarter and iteration containing today, if any."""
    return report_service.current_cycle(session)


@router.post("/generate-quarters", response_model=GeneratedCyclesResponse, status_code=201)
def create_quarters(
    request: GenerateQuartersRequest,
    session: Session = Depends(get_db_session),
    entity_service=Depends(get_entity_service),
    settings_service=Depends(get_settings_service),
):
    fy_start = request.fy_start
    if fy_start is None:
        financial_year = settings_service.get_settings(session).financial_year
        if financial_year is None:
            raise ValidationError("fy_start is required when no financial year is configured")
        fy_start = financial_year.start_date

    quarters = generate_quarters(fy_start)
    names = {q.name.lower() for q in quarters}
    existing = [
        c for c in entity_service.list(session, "cycles", {"type": "quarterly"}) if c.name.lower() in names
    ]
    removed = 0
    if existing:
        if not request.replace_existing:
            raise DuplicateEntityError(
                f"Quarters already exist: {', '.join(c.name for c in existing)}"
            )
        all_cycles = entity_service.list(session, "cycles")
        for quarter in existing:
            for child in iterations_for(all_cycles, quarter.id):
                entity_service.delete(session, "cycles", child.id)
                removed += 1
            entity_service.delete(session, "cycles", quarter.id)
            removed += 1

    entity_service.create_many(session, "cycles", quarters)
    logger.info("Generated %d quarters from %s", len(quarters), fy_start.isoformat())
    return GeneratedCyclesResponse(created=[q.model_dump(mode="json") for q in quarters], removed=removed)


@router.post("/{cycle_id}/generate-iterations", response_model=GeneratedCyclesResponse, status_code=201)
def create_iterations(
    cycle_id: str,
    request: GenerateIterationsRequest,
    session: Session = Depends(get_db_session),
    entity_service=Depends(get_entity_service),
    settings_service=Depends(get_settings_service),
):
    quarter = entity_service.get(session, "cycles", cycle_id)
    iteration_length = request.iteration_length or settings_service.get_settings(session).iteration_length
    try:
        iterations = generate_iterations(quarter, iteration_length)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc

    existing = iterations_for(entity_service.list(session, "cycles"), cycle_id)
    if existing and not request.replace_existing:
        raise DuplicateEntityError(f"Quarter '{quarter.name}' already has {len(existing)} iterations")
    for child in existing:
        entity_service.delete(session, "cycles", child.id)

    entity_service.create_many(session, "cycles", iterations)
    logger.info("Generated %d %s iterations for %s", len(iterations), iteration_length, quarter.name)
    return GeneratedCyclesResponse(
        created=[i.model_dump(mode="json") for i in iterations], removed=len(existing)
    )
