"""Cached planning reports over live or scenario data.

Reports are computed in a fresh session so a background refresh never
touches a request's session. Results are cached as JSON-ready dicts under
``reports:<scope>:<name>:<params>`` where scope is ``live`` or a scenario id.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel

from planpulse.api.exceptions import EntityNotFoundError, ValidationError
from planpulse.common.dto.models import AppSettings, PlanningSnapshot
from planpulse.common.storage.repository import load_snapshot
from planpulse.planning import capacity, conflicts, cycles, financials, projection, skills

logger = logging.getLogger(__name__)

LIVE_SCOPE = "live"


def to_jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, list):
        return [to_jsonable(item) for item in value]
    if isinstance(value, tuple):
        return [to_jsonable(item) for item in value]
    if isinstance(value, dict):
        return {key: to_jsonable(item) for key, item in value.items()}
    return value


def _require(snapshot: PlanningSnapshot, collection: str, entity_id: str):
    record = snapshot.find(collection, entity_id)
    if record is None:
        raise EntityNotFoundError(f"{collection} '{entity_id}' not found")
    return record


class ReportService:
    def __init__(self, db, cache, settings_service, scenario_service):
        self._db = db
        self._cache = cache
        self._settings_service = settings_service
        self._scenario_service = scenario_service

    def _load(self, session, scenario_id: Optional[str]) -> PlanningSnapshot:
        if scenario_id:
            return self._scenario_service.get_data(session, scenario_id)
        return load_snapshot(session)

    def _report(
        self,
        name: str,
        scenario_id: Optional[str],
        compute: Callable[[PlanningSnapshot, AppSettings], Any],
        **params: Any,
    ) -> Any:
        scope = scenario_id or LIVE_SCOPE
        query = "&".join(f"{k}={v}" for k, v in sorted(params.items()) if v is not None)
        key = f"reports:{scope}:{name}:{query}"

        def fetch():
            with self._db.session_scope() as session:
                snapshot = self._load(session, scenario_id)
                settings = self._settings_service.get_settings(session)
            logger.debug("Computing report %s", key)
            return to_jsonable(compute(snapshot, settings))

        return self._cache.get_or_fetch(key, fetch, stale_while_revalidate=True)

    # Financials

    def project_cost(self, project_id: str, scenario_id: Optional[str] = None) -> Dict[str, Any]:
        def compute(snapshot, settings):
            project = _require(snapshot, "projects", project_id)
            cost = financials.calculate_project_cost(project, snapshot, settings)
            return {"cost": cost, "budget_variance": financials.calculate_budget_variance(project, cost)}

        return self._report("project-cost", scenario_id, compute, project=project_id)

    def project_year_cost(self, project_id: str, scenario_id: Optional[str] = None) -> Dict[str, Any]:
        def compute(snapshot, settings):
            project = _require(snapshot, "projects", project_id)
            return financials.calculate_project_cost_for_year(project, snapshot, settings)

        return self._report("project-year-cost", scenario_id, compute, project=project_id)

    def team_cost(self, team_id: str, scenario_id: Optional[str] = None) -> Dict[str, Any]:
        def compute(snapshot, settings):
            _require(snapshot, "teams", team_id)
            members = [p for p in snapshot.people if p.team_id == team_id and p.is_active]
            return financials.calculate_team_cost(members, snapshot.roles, settings, team_id=team_id)

        return self._report("team-cost", scenario_id, compute, team=team_id)

    def person_cost(self, person_id: str, scenario_id: Optional[str] = None) -> Dict[str, Any]:
        def compute(snapshot, settings):
            person = _require(snapshot, "people", person_id)
            role = snapshot.find("roles", person.role_id)
            if role is None:
                raise ValidationError(f"Person '{person_id}' has no role, so no rate can be resolved")
            return {
                "cost": financials.calculate_person_cost(person, role, settings),
                "rate_validation": financials.validate_rate_configuration(person, role),
            }

        return self._report("person-cost", scenario_id, compute, person=person_id)

    # Capacity and allocations

    def team_capacity(self, team_id: str, cycle_id: str, scenario_id: Optional[str] = None) -> Dict[str, Any]:
        def compute(snapshot, settings):
            team = _require(snapshot, "teams", team_id)
            cycle = _require(snapshot, "cycles", cycle_id)
            return capacity.calculate_team_capacity_utilization(
                team, snapshot.allocations, cycle, snapshot.epics, cycles=snapshot.cycles
            )

        return self._report("team-capacity", scenario_id, compute, team=team_id, cycle=cycle_id)

    def team_allocation_summary(self, team_id: str, cycle_id: str, scenario_id: Optional[str] = None):
        def compute(snapshot, settings):
            team = _require(snapshot, "teams", team_id)
            cycle = _require(snapshot, "cycles", cycle_id)
            return capacity.summarize_team_allocations(team, snapshot.allocations, cycle, snapshot.run_work_categories)

        return self._report("team-allocations", scenario_id, compute, team=team_id, cycle=cycle_id)

    def allocation_validation(self, cycle_id: Optional[str] = None, scenario_id: Optional[str] = None):
        def compute(snapshot, settings):
            allocations = [a for a in snapshot.allocations if not cycle_id or a.cycle_id == cycle_id]
            return capacity.validate_allocation_consistency(
                allocations, snapshot.teams, snapshot.epics, snapshot.cycles, snapshot.run_work_categories
            )

        return self._report("allocation-validation", scenario_id, compute, cycle=cycle_id)

    def allocation_recommendations(self, cycle_id: Optional[str] = None, scenario_id: Optional[str] = None):
        def compute(snapshot, settings):
            allocations = [a for a in snapshot.allocations if not cycle_id or a.cycle_id == cycle_id]
            return {
                "recommendations": capacity.generate_allocation_recommendations(
                    allocations, snapshot.teams, snapshot.epics
                ),
                "dependencies": capacity.calculate_cross_team_dependencies(allocations, snapshot.epics),
            }

        return self._report("allocation-recommendations", scenario_id, compute, cycle=cycle_id)

    def allocation_conflicts(self, cycle_id: str, scenario_id: Optional[str] = None):
        def compute(snapshot, settings):
            _require(snapshot, "cycles", cycle_id)
            return conflicts.detect_allocation_conflicts(snapshot, cycle_id)

        return self._report("conflicts", scenario_id, compute, cycle=cycle_id)

    # Projection and skills

    def projected_end_date(self, project_id: str, scenario_id: Optional[str] = None):
        def compute(snapshot, settings):
            project = _require(snapshot, "projects", project_id)
            return projection.project_end_date_report(project, snapshot)

        return self._report("projected-end-date", scenario_id, compute, project=project_id)

    def team_recommendations(self, project_id: str, scenario_id: Optional[str] = None):
        def compute(snapshot, settings):
            project = _require(snapshot, "projects", project_id)
            return skills.recommend_teams_for_project(
                project, snapshot.teams, snapshot.project_skills, snapshot.skills
            )

        return self._report("team-recommendations", scenario_id, compute, project=project_id)

    def project_skill_gaps(self, project_id: str, scenario_id: Optional[str] = None):
        def compute(snapshot, settings):
            project = _require(snapshot, "projects", project_id)
            return skills.analyze_project_skill_gaps(
                project, snapshot.teams, snapshot.project_skills, snapshot.skills
            )

        return self._report("skill-gaps", scenario_id, compute, project=project_id)

    def skill_coverage(self, scenario_id: Optional[str] = None):
        def compute(snapshot, settings):
            return skills.analyze_skill_coverage(snapshot.teams, snapshot.skills)

        return self._report("skill-coverage", scenario_id, compute)

    def team_skills(self, team_id: str, scenario_id: Optional[str] = None):
        def compute(snapshot, settings):
            team = _require(snapshot, "teams", team_id)
            return skills.team_skill_coverage(team, snapshot.people, snapshot.person_skills, snapshot.skills)

        return self._report("team-skills", scenario_id, compute, team=team_id)

    def current_cycle(self, session) -> Dict[str, Any]:
        """Not cached: depends on today's date."""
        current = cycles.get_current_iteration(load_snapshot(session).cycles)
        return to_jsonable(current) if current else {"quarter": None, "iteration": None, "iteration_number": None}
