"""Tests for allocation conflict detection."""

from planpulse.common.dto.models import AllocationRecord, EpicRecord, PersonSkillRecord
from planpulse.planning.conflicts import detect_allocation_conflicts, overallocation_severity


def _types(report):
    return sorted(c.type for c in report.conflicts)


def test_clean_plan_has_no_conflicts(snapshot):
    report = detect_allocation_conflicts(snapshot, "q1")
    assert report.conflicts == []
    assert report.overall_risk_score == 0
    assert report.summary.total == 0


def test_overallocation(snapshot):
    snapshot.allocations.append(
        AllocationRecord(id="a3", team_id="t-alpha", cycle_id="q1", iteration_number=1, epic_id="e-api", percentage=70)
    )
    report = detect_allocation_conflicts(snapshot, "q1")

    conflict = report.conflicts[0]
    assert conflict.id == "overallocation-t-alpha-1"
    assert conflict.severity == "medium"
    assert conflict.description == "Team is allocated 120% capacity (20% over limit)"
    assert conflict.impact.delay_risk == 40
    assert sorted(conflict.affected_allocations) == ["a1", "a3"]
    assert report.summary.medium == 1
    assert report.overall_risk_score == 50


def test_overallocation_severity_bands():
    assert overallocation_severity(105) == "low"
    assert overallocation_severity(115) == "medium"
    assert overallocation_severity(130) == "high"
    assert overallocation_severity(151) == "critical"


def test_skill_mismatch_uses_member_skills(snapshot):
    snapshot.allocations.append(
        AllocationRecord(id="a3", team_id="t-beta", cycle_id="q1", iteration_number=3, epic_id="e-api", percentage=30)
    )
    report = detect_allocation_conflicts(snapshot, "q1")
    mismatch = next(c for c in report.conflicts if c.type == "skill-mismatch")
    assert mismatch.severity == "high"
    assert "Python" in mismatch.description

    snapshot.person_skills.append(PersonSkillRecord(id="x", person_id="p-bob", skill_id="s-py"))
    report = detect_allocation_conflicts(snapshot, "q1")
    assert "skill-mismatch" not in _types(report)


def test_contention_and_dependency_risk(snapshot):
    snapshot.allocations.append(
        AllocationRecord(id="a3", team_id="t-beta", cycle_id="q1", iteration_number=2, epic_id="e-ui", percentage=20)
    )
    snapshot.allocations.append(
        AllocationRecord(id="a4", team_id="t-beta", cycle_id="q1", iteration_number=1, epic_id="e-api", percentage=20)
    )
    snapshot.person_skills = []
    snapshot.teams[1].target_skills = ["s-react", "s-py"]
    report = detect_allocation_conflicts(snapshot, "q1")

    assert _types(report) == ["dependency-violation", "resource-contention"]
    contention = next(c for c in report.conflicts if c.type == "resource-contention")
    assert contention.affected_teams == ["t-alpha", "t-beta"]


def test_timeline_compression(snapshot):
    snapshot.epics.append(EpicRecord(id="e-docs", project_id="pr-web", name="Docs"))
    report = detect_allocation_conflicts(snapshot, "q1")

    timeline = next(c for c in report.conflicts if c.type == "timeline-overlap")
    assert timeline.severity == "high"
    assert timeline.description == "Project has 3 epics compressed into 1 iteration"
    assert report.affected_epics_count == 3


def test_other_cycles_are_ignored(snapshot):
    snapshot.allocations.append(
        AllocationRecord(id="z", team_id="t-alpha", cycle_id="q2", iteration_number=1, epic_id="e-api", percentage=90)
    )
    assert detect_allocation_conflicts(snapshot, "q1").conflicts == []
