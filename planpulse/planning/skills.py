"""Skill-based team matching, gap analysis and coverage."""

from __future__ import annotations

from typing import Dict, Iterable, List, Literal, Optional

from pydantic import BaseModel, Field

from planpulse.common.dto.models import (
    PersonRecord,
    PersonSkillRecord,
    ProjectRecord,
    ProjectSkillRecord,
    SkillRecord,
    TeamRecord,
)

UNCATEGORIZED = "uncategorized"


class RequiredSkill(BaseModel):
    skill_id: str
    skill_name: str
    category: str
    importance: str = "medium"


class SkillMatch(BaseModel):
    skill_id: str
    skill_name: str
    category: str
    team_has_skill: bool
    match_type: Literal["exact", "category", "missing"]


class CategoryCount(BaseModel):
    required: int = 0
    matched: int = 0


class TeamProjectCompatibility(BaseModel):
    team_id: Optional[str]
    project_id: Optional[str]
    compatibility_score: float
    skill_matches: List[SkillMatch]
    skills_matched: int
    skills_required: int
    skills_gap: int
    category_distribution: Dict[str, CategoryCount]
    recommendation: Literal["excellent", "good", "fair", "poor"]
    reasoning: List[str]


class TeamRecommendation(BaseModel):
    team_id: Optional[str]
    team_name: str
    rank: int
    recommendation: str
    compatibility: TeamProjectCompatibility


class SkillGap(BaseModel):
    skill_name: str
    category: str
    teams_needing: List[str] = Field(default_factory=list)
    priority: Literal["critical", "important", "nice-to-have"] = "important"


def _category(skill: SkillRecord) -> str:
    return skill.category or UNCATEGORIZED


def get_project_required_skills(
    project: ProjectRecord,
    project_skills: Iterable[ProjectSkillRecord],
    skills: Iterable[SkillRecord],
) -> List[RequiredSkill]:
    """Skills linked to a project, skipping links to unknown skills."""
    skills_by_id = {skill.id: skill for skill in skills}
    required = []
    seen = set()
    for link in project_skills:
        if link.project_id != project.id or link.skill_id in seen:
            continue
        skill = skills_by_id.get(link.skill_id)
        if skill is None:
            continue
        seen.add(link.skill_id)
        required.append(
            RequiredSkill(skill_id=skill.id, skill_name=skill.name, category=_category(skill), importance=link.importance)
        )
    return required


def recommendation_for(score: float) -> str:
    if score >= 0.9:
        return "excellent"
    if score >= 0.7:
        return "good"
    if score >= 0.5:
        return "fair"
    return "poor"


def calculate_team_project_compatibility(
    team: TeamRecord,
    project: ProjectRecord,
    project_skills: Iterable[ProjectSkillRecord],
    skills: Iterable[SkillRecord],
) -> TeamProjectCompatibility:
    """Score 0-1: exact skill matches over required skills, plus up to 0.1
    for required skills whose category the team already works in."""
    skills = list(skills)
    skills_by_id = {skill.id: skill for skill in skills}
    required = get_project_required_skills(project, project_skills, skills)
    team_skill_ids = set(team.target_skills)
    team_categories = {_category(skills_by_id[s]) for s in team.target_skills if s in skills_by_id}

    matches: List[SkillMatch] = []
    distribution: Dict[str, CategoryCount] = {}
    exact = 0
    by_category = 0
    for item in required:
        counts = distribution.setdefault(item.category, CategoryCount())
        counts.required += 1
        has_skill = item.skill_id in team_skill_ids
        if has_skill:
            match_type = "exact"
            exact += 1
            counts.matched += 1
        elif item.category in team_categories:
            match_type = "category"
            by_category += 1
        else:
            match_type = "missing"
        matches.append(
            SkillMatch(
                skill_id=item.skill_id,
                skill_name=item.skill_name,
                category=item.category,
                team_has_skill=has_skill,
                match_type=match_type,
            )
        )

    total = len(required)
    gap = total - exact
    score = 0.0
    if total:
        bonus = min(0.1, by_category * 0.1 / total)
        score = min(1.0, exact / total + bonus)

    level = recommendation_for(score)
    percent = round(score * 100)
    reasoning: List[str] = []
    if level == "excellent":
        reasoning.append(f"High skill match ({percent}%)")
    elif level == "good":
        reasoning.append(f"Good skill compatibility ({percent}%)")
    elif level == "fair":
        reasoning.append(f"Moderate skill match ({percent}%)")
        if gap:
            reasoning.append(f"{gap} skill gap{'s' if gap > 1 else ''} need addressing")
    else:
        reasoning.append(f"Low skill compatibility ({percent}%)")
        reasoning.append(f"{gap} critical skills missing")

    strong = [c for c, d in distribution.items() if d.required and d.matched == d.required]
    weak = [c for c, d in distribution.items() if d.required and d.matched == 0]
    if strong:
        reasoning.append(f"Strong in: {', '.join(strong)}")
    if weak:
        reasoning.append(f"Needs development in: {', '.join(weak)}")

    return TeamProjectCompatibility(
        team_id=team.id,
        project_id=project.id,
        compatibility_score=score,
        skill_matches=matches,
        skills_matched=exact,
        skills_required=total,
        skills_gap=gap,
        category_distribution=distribution,
        recommendation=level,
        reasoning=reasoning,
    )


def recommend_teams_for_project(
    project: ProjectRecord,
    teams: Iterable[TeamRecord],
    project_skills: Iterable[ProjectSkillRecord],
    skills: Iterable[SkillRecord],
    max_recommendations: int = 3,
) -> List[TeamRecommendation]:
    """Best-matching teams, highest score first."""
    teams = list(teams)
    project_skills = list(project_skills)
    skills = list(skills)
    scored = [
        (team, calculate_team_project_compatibility(team, project, project_skills, skills))
        for team in teams
    ]
    scored.sort(key=lambda pair: pair[1].compatibility_score, reverse=True)

    results = []
    for index, (team, compatibility) in enumerate(scored[:max_recommendations]):
        score = compatibility.compatibility_score
        if index == 0:
            if score > 0.8:
                text = "Excellent match - highly recommended"
            elif score > 0.6:
                text = "Good match with some skill gaps"
            else:
                text = "Best available option but requires skill development"
        elif score > 0.7:
            text = "Strong alternative choice"
        elif score > 0.5:
            text = "Viable option with training"
        else:
            text = "Requires significant skill development"
        results.append(
            TeamRecommendation(
                team_id=team.id,
                team_name=team.name,
                rank=index + 1,
                recommendation=text,
                compatibility=compatibility,
            )
        )
    return results


def analyze_project_skill_gaps(
    project: ProjectRecord,
    teams: Iterable[TeamRecord],
    project_skills: Iterable[ProjectSkillRecord],
    skills: Iterable[SkillRecord],
) -> dict:
    """Skill gaps for a project across all teams, with training and hiring needs.

    A gap shared by at least 70% of teams is critical (hire), at least 30%
    important (train), otherwise nice-to-have.
    """
    teams = list(teams)
    project_skills = list(project_skills)
    skills = list(skills)
    required = get_project_required_skills(project, project_skills, skills)
    compatibilities = [
        (team, calculate_team_project_compatibility(team, project, project_skills, skills)) for team in teams
    ]

    gaps: Dict[str, SkillGap] = {}
    available = []
    for team, compatibility in compatibilities:
        missing = [m for m in compatibility.skill_matches if m.match_type == "missing"]
        for match in missing:
            gap = gaps.setdefault(match.skill_id, SkillGap(skill_name=match.skill_name, category=match.category))
            gap.teams_needing.append(team.name)
        available.append({
            "team_id": team.id,
            "team_name": team.name,
            "compatibility": compatibility,
            "missing_skills": [m.skill_name for m in missing],
            "strengths": [m.skill_name for m in compatibility.skill_matches if m.match_type == "exact"],
        })

    for gap in gaps.values():
        needing = len(gap.teams_needing)
        if needing >= len(teams) * 0.7:
            gap.priority = "critical"
        elif needing >= len(teams) * 0.3:
            gap.priority = "important"
        else:
            gap.priority = "nice-to-have"

    best = max(compatibilities, key=lambda pair: pair[1].compatibility_score, default=None)
    best_team = best[0].id if best and best[1].compatibility_score > 0.5 else None
    priorities = {gap.skill_name: gap.priority for gap in gaps.values()}
    return {
        "project_id": project.id,
        "project_name": project.name,
        "required_skills": [
            {**item.model_dump(), "priority": priorities.get(item.skill_name, "nice-to-have")} for item in required
        ],
        "available_teams": available,
        "recommendations": {
            "best_team": best_team,
            "skill_gaps": list(gaps.values()),
            "training_needs": [g.skill_name for g in gaps.values() if g.priority == "important" and len(g.teams_needing) > 1],
            "hiring_needs": [g.skill_name for g in gaps.values() if g.priority == "critical"],
        },
    }


def filter_teams_by_skills(
    teams: Iterable[TeamRecord],
    skill_ids: List[str],
    skills: Iterable[SkillRecord] = (),
    match_all: bool = False,
    min_score: float = 0.3,
) -> List[dict]:
    """Teams ranked by the share of ``skill_ids`` they target.

    With ``match_all`` only teams covering every skill are kept, otherwise
    teams scoring at least ``min_score``.
    """
    teams = list(teams)
    names = {skill.id: skill.name for skill in skills}
    if not skill_ids:
        return [{"team": team, "compatibility_score": 1.0, "matching_skills": []} for team in teams]

    results = []
    for team in teams:
        matching = [s for s in skill_ids if s in team.target_skills]
        score = len(matching) / len(skill_ids)
        if match_all and score < 1.0:
            continue
        if not match_all and score < min_score:
            continue
        results.append({
            "team": team,
            "compatibility_score": score,
            "matching_skills": [names.get(s, s) for s in matching],
        })
    results.sort(key=lambda item: item["compatibility_score"], reverse=True)
    return results


def analyze_skill_coverage(teams: Iterable[TeamRecord], skills: Iterable[SkillRecord]) -> dict:
    """How many teams target each skill, with at-risk and well-covered lists."""
    teams = list(teams)
    skills = list(skills)
    coverage = []
    for skill in skills:
        holders = [{"team_id": t.id, "team_name": t.name} for t in teams if skill.id in t.target_skills]
        count = len(holders)
        coverage.append({
            "skill_id": skill.id,
            "skill_name": skill.name,
            "category": _category(skill),
            "teams_with_skill": holders,
            "coverage_count": count,
            "is_well_covered": count >= max(2, len(teams) * 0.3),
            "is_at_risk": count <= 1,
        })

    categories: Dict[str, dict] = {}
    for item in coverage:
        data = categories.setdefault(item["category"], {"total_skills": 0, "covered_skills": 0, "teams": 0})
        data["total_skills"] += 1
        data["teams"] += item["coverage_count"]
        if item["coverage_count"] > 0:
            data["covered_skills"] += 1
    category_analysis = {
        name: {
            "total_skills": data["total_skills"],
            "covered_skills": data["covered_skills"],
            "coverage_percentage": data["covered_skills"] / data["total_skills"] * 100,
            "average_teams_per_skill": data["teams"] / data["total_skills"],
        }
        for name, data in categories.items()
    }

    covered = sum(1 for item in coverage if item["coverage_count"] > 0)
    return {
        "total_skills": len(skills),
        "covered_skills": covered,
        "coverage_percentage": covered / len(skills) * 100 if skills else 0.0,
        "skill_coverage": coverage,
        "category_analysis": category_analysis,
        "recommendations": {
            "skills_at_risk": [c["skill_name"] for c in coverage if c["is_at_risk"]],
            "skills_well_covered": [c["skill_name"] for c in coverage if c["is_well_covered"]],
            "categories_needing_attention": [
                name for name, data in category_analysis.items()
                if data["coverage_percentage"] < 60 or data["average_teams_per_skill"] < 1.5
            ],
        },
    }


def team_skill_coverage(
    team: TeamRecord,
    people: Iterable[PersonRecord],
    person_skills: Iterable[PersonSkillRecord],
    skills: Iterable[SkillRecord],
) -> dict:
    """Skills held by a team's active members compared with the team's target skills."""
    names = {skill.id: skill.name for skill in skills}
    members = {p.id: p.name for p in people if p.team_id == team.id and p.is_active}
    held: Dict[str, List[dict]] = {}
    for link in person_skills:
        if link.person_id in members:
            held.setdefault(link.skill_id, []).append(
                {"person_id": link.person_id, "person_name": members[link.person_id],
                 "proficiency_level": link.proficiency_level}
            )
    targets = list(team.target_skills)
    missing = [s for s in targets if s not in held]
    return {
        "team_id": team.id,
        "member_count": len(members),
        "skills": [
            {"skill_id": skill_id, "skill_name": names.get(skill_id, skill_id), "holders": holders}
            for skill_id, holders in held.items()
        ],
        "target_skills": targets,
        "missing_target_skills": [names.get(s, s) for s in missing],
        "target_coverage_percentage": (len(targets) - len(missing)) / len(targets) * 100 if targets else 100.0,
    }
