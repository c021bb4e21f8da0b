"""Read-only planning reports.

Every report accepts ``scenario_id`` to run against a scenario's data
instead of the live tables.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from planpulse.api.dependencies import get_report_service

router = APIRouter(prefix="/api/v1/reports", tags=["reports"])


# Financials
@router.get("/projects/{project_id}/cost")
def project_cost(project_id: str, scenario_id: Optional[str] = Query(None), service=Depends(get_report_service)):
    return service.project_cost(project_id, scenario_id=scenario_id)


@router.get("/projects/{project_id}/year-cost")
def project_year_cost(project_id: str, scenario_id: Optional[str] = Query(None), service=Depends(get_report_service)):
    """Cost per quarter of the configured financial year."""
    return service.project_year_cost(project_id, scenario_id=scenario_id)


@router.get("/teams/{team_id}/cost")
def team_cost(team_id: str, scenario_id: Optional[str] = Query(None), service=Depends(get_report_service)):
    return service.team_cost(team_id, scenario_id=scenario_id)


@router.get("/people/{person_id}/cost")
def person_cost(person_id: str, scenario_id: Optional[str] = Query(None), service=Depends(get_report_service)):
    return service.person_cost(person_id, scenario_id=scenario_id)


# Capacity and allocations
@router.get("/teams/{team_id}/capacity")
def team_capacity(
    team_id: str,
    cycle_id: str = Query(..., description="Quarter or iteration"),
    scenario_id: Optional[str] = Query(None),
    service=Depends(get_report_service),
):
    return service.team_capacity(team_id, cycle_id, scenario_id=scenario_id)


@router.get("/teams/{team_id}/allocations")
def team_allocation_summary(
    team_id: str,
    cycle_id: str = Query(...),
    scenario_id: Optional[str] = Query(None),
    service=Depends(get_report_service),
):
    return service.team_allocation_summary(team_id, cycle_id, scenario_id=scenario_id)


@router.get("/allocations/validation")
def allocation_validation(
    cycle_id: Optional[str] = None,
    scenario_id: Optional[str] = Query(None),
    service=Depends(get_report_service),
):
    return service.allocation_validation(cycle_id=cycle_id, scenario_id=scenario_id)


@router.get("/allocations/recommendations")
def allocation_recommendations(
    cycle_id: Optional[str] = None,
    scenario_id: Optional[str] = Query(None),
    service=Depends(get_report_service),
):
    return service.allocation_recommendations(cycle_id=cycle_id, scenario_id=scenario_id)


@router.get("/allocations/conflicts")
def allocation_conflicts(
    cycle_id: str = Query(...),
    scenario_id: Optional[str] = Query(None),
    service=Depends(get_report_service),
):
    return service.allocation_conflicts(cycle_id, scenario_id=scenario_id)


# Projection and skills
@router.get("/projects/{project_id}/projected-end-date")
def projected_end_date(project_id: str, scenario_id: Optional[str] = Query(None), service=Depends(get_report_service)):
    return service.projected_end_date(project_id, scenario_id=scenario_id)


@router.get("/projects/{project_id}/team-recommendations")
def team_recommendations(project_id: str, scenario_id: Optional[str] = Query(None), service=Depends(get_report_service)):
    return service.team_recommendations(project_id, scenario_id=scenario_id)


@router.get("/projects/{project_id}/skill-gaps")
def project_skill_gaps(project_id: str, scenario_id: Optional[str] = Query(None), service=Depends(get_report_service)):
    return service.project_skill_gaps(project_id, scenario_id=scenario_id)


@router.get("/skills/coverage")
def skill_coverage(scenario_id: Optional[str] = Query(None), service=Depends(get_report_service)):
    return service.skill_coverage(scenario_id=scenario_id)


@router.get("/teams/{team_id}/skills")
def team_skills(team_id: str, scenario_id: Optional[str] = Query(None), service=Depends(get_report_service)):
    return service.team_skills(team_id, scenario_id=scenario_id)
