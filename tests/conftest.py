"""Shared fixtures: a small planning dataset used across the planning tests."""

from datetime import date

import pytest

from planpulse.common.dto.models import (
    AllocationRecord,
    CycleRecord,
    EpicRecord,
    PersonRecord,
    PlanningSnapshot,
    ProjectRecord,
    ProjectSkillRecord,
    RoleRecord,
    RunWorkCategoryRecord,
    SkillRecord,
    TeamRecord,
)


@pytest.fixture
def snapshot() -> PlanningSnapshot:
    """Two teams on one project in the first iteration of Q1 2025.

    Ann (Alpha) costs 400/day from the role salary; Bob (Beta) is a
    contractor at the role's 100/hour, so 800/day.
    """
    return PlanningSnapshot(
        roles=[
            RoleRecord(id="r-dev", name="Senior Developer", default_annual_salary=104000),
            RoleRecord(id="r-contract", name="Contractor", default_hourly_rate=100),
        ],
        teams=[
            TeamRecord(id="t-alpha", name="Alpha", capacity=40, target_skills=["s-py", "s-sql"]),
            TeamRecord(id="t-beta", name="Beta", capacity=40, target_skills=["s-react"]),
        ],
        people=[
            PersonRecord(id="p-ann", name="Ann", email="ann@example.com", team_id="t-alpha", role_id="r-dev"),
            PersonRecord(
                id="p-bob", name="Bob", email="bob@example.com", team_id="t-beta",
                role_id="r-contract", employment_type="contractor",
            ),
        ],
        skills=[
            SkillRecord(id="s-py", name="Python", category="backend"),
            SkillRecord(id="s-sql", name="SQL", category="backend"),
            SkillRecord(id="s-react", name="React", category="frontend"),
        ],
        projects=[
            ProjectRecord(
                id="pr-web", name="Web Platform", budget=2000,
                start_date=date(2025, 4, 1), end_date=date(2025, 6, 30),
            ),
        ],
        epics=[
            EpicRecord(
                id="e-api", project_id="pr-web", name="API", status="in-progress",
                estimated_effort=20, required_skills=["s-py"],
            ),
            EpicRecord(id="e-ui", project_id="pr-web", name="UI", estimated_effort=10, required_skills=["s-react"]),
        ],
        cycles=[
            CycleRecord(id="q1", name="Q1 2025", type="quarterly", start_date=date(2025, 4, 1), end_date=date(2025, 6, 30)),
            CycleRecord(
                id="q1-i1", name="Q1 2025 - Iteration 1", type="iteration",
                start_date=date(2025, 4, 1), end_date=date(2025, 4, 14), parent_cycle_id="q1",
            ),
            CycleRecord(
                id="q1-i2", name="Q1 2025 - Iteration 2", type="iteration",
                start_date=date(2025, 4, 15), end_date=date(2025, 4, 28), parent_cycle_id="q1",
            ),
        ],
        run_work_categories=[RunWorkCategoryRecord(id="rw-support", name="Support")],
        allocations=[
            AllocationRecord(id="a1", team_id="t-alpha", cycle_id="q1", iteration_number=1, epic_id="e-api", percentage=50),
            AllocationRecord(id="a2", team_id="t-beta", cycle_id="q1", iteration_number=1, epic_id="e-ui", percentage=60),
        ],
        project_skills=[
            ProjectSkillRecord(id="ps1", project_id="pr-web", skill_id="s-py", importance="high"),
            ProjectSkillRecord(id="ps2", project_id="pr-web", skill_id="s-react"),
        ],
    )
