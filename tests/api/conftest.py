"""Pytest fixtures for API tests."""

import os
import pytest
from typing import Iterator
from fastapi.testclient import TestClient
from planpulse.api.server import app

ENV_KEYS = (
    "PLANPULSE_DATA_ROOT",
    "PLANPULSE_DATABASE_PATH",
    "PLANPULSE_CACHE_PERSIST",
    "PLANPULSE_CACHE_ENCRYPTION_KEY",
)


@pytest.fixture
def client(tmp_path) -> Iterator[TestClient]:
    """Test client backed by a fresh database under ``tmp_path``."""
    prev = {key: os.environ.get(key) for key in ENV_KEYS}
    try:
        for key in ENV_KEYS:
            os.environ.pop(key, None)
        os.environ["PLANPULSE_DATA_ROOT"] = str(tmp_path)
        with TestClient(app) as test_client:
            yield test_client
    finally:
        for key, value in prev.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value


SEED = (
    ("roles", {"id": "r-dev", "name": "Senior Developer", "default_annual_salary": 104000}),
    ("teams", {"id": "t-alpha", "name": "Alpha", "capacity": 40, "target_skills": ["s-py"]}),
    ("teams", {"id": "t-beta", "name": "Beta", "capacity": 40}),
    ("people", {"id": "p-ann", "name": "Ann", "email": "ann@example.com", "team_id": "t-alpha", "role_id": "r-dev"}),
    ("skills", {"id": "s-py", "name": "Python", "category": "backend"}),
    ("projects", {"id": "pr-web", "name": "Web Platform", "budget": 2000,
                  "start_date": "2025-04-01", "end_date": "2025-06-30"}),
    ("epics", {"id": "e-api", "project_id": "pr-web", "name": "API", "status": "in-progress",
               "estimated_effort": 20, "required_skills": ["s-py"]}),
    ("cycles", {"id": "q1", "name": "Q1 2025", "type": "quarterly",
                "start_date": "2025-04-01", "end_date": "2025-06-30"}),
    ("cycles", {"id": "q1-i1", "name": "Q1 2025 - Iteration 1", "type": "iteration", "parent_cycle_id": "q1",
                "start_date": "2025-04-01", "end_date": "2025-04-14"}),
    ("run-work-categories", {"id": "rw-support", "name": "Support"}),
    ("project-skills", {"id": "ps1", "project_id": "pr-web", "skill_id": "s-py", "importance": "high"}),
    ("allocations", {"id": "a1", "team_id": "t-alpha", "cycle_id": "q1", "iteration_number": 1,
                     "epic_id": "e-api", "percentage": 50}),
)


@pytest.fixture
def seeded(client) -> TestClient:
    """Client with one team working half-time on one epic in Q1 2025."""
    for path, payload in SEED:
        response = client.post(f"/api/v1/{path}/", json=payload)
        assert response.status_code == 201, response.text
    return client
