"""SQLAlchemy schema definitions for PlanPulse (shared).

Entities reference each other by string id only. Links are resolved at read
time so that dangling references surface as validation findings instead of
insert failures.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    Integer,
    String,
    Date,
    DateTime,
    Float,
    Text,
    JSON,
    Boolean,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utc_now() -> datetime:
    """Return current UTC time with timezone info."""
    return datetime.now(timezone.utc)


class Division(Base):
    __tablename__ = "divisions"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=True)
    budget = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)


class Team(Base):
    __tablename__ = "teams"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=True)
    division_id = Column(String(64), nullable=True, index=True)
    capacity = Column(Float, nullable=False, default=40.0)  # hours per week
    product_owner_id = Column(String(64), nullable=True)
    target_skills = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)


class Role(Base):
    __tablename__ = "roles"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False, index=True)
    default_annual_salary = Column(Float, nullable=True)
    default_hourly_rate = Column(Float, nullable=True)
    default_daily_rate = Column(Float, nullable=True)
    default_rate = Column(Float, nullable=True)  # legacy hourly rate
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)


class Person(Base):
    __tablename__ = "people"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True, index=True)
    role_id = Column(String(64), nullable=True, index=True)
    team_id = Column(String(64), nullable=True, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    employment_type = Column(String(32), nullable=False, default="permanent")
    annual_salary = Column(Float, nullable=True)
    hourly_rate = Column(Float, nullable=True)
    daily_rate = Column(Float, nullable=True)
    seniority_level = Column(String(32), nullable=True)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)


class Project(Base):
    __tablename__ = "projects"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=True)
    status = Column(String(32), nullable=False, default="planning")
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    budget = Column(Float, nullable=True)
    priority = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)


class Epic(Base):
    __tablename__ = "epics"

    id = Column(String(64), primary_key=True)
    project_id = Column(String(64), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(32), nullable=False, default="not-started")
    estimated_effort = Column(Float, nullable=True)  # story points
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    target_date = Column(Date, nullable=True)
    assigned_team_id = Column(String(64), nullable=True, index=True)
    required_skills = Column(JSON, nullable=False, default=list)
    dependencies = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)


class Milestone(Base):
    __tablename__ = "milestones"

    id = Column(String(64), primary_key=True)
    project_id = Column(String(64), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    due_date = Column(Date, nullable=True)
    status = Column(String(32), nullable=False, default="not-started")
    is_completed = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)


class Cycle(Base):
    __tablename__ = "cycles"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False, index=True)
    type = Column(String(32), nullable=False)  # annual, quarterly, iteration
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    parent_cycle_id = Column(String(64), nullable=True, index=True)
    status = Column(String(32), nullable=False, default="planning")
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)


class RunWorkCategory(Base):
    __tablename__ = "run_work_categories"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=True)
    color = Column(String(16), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)


class Allocation(Base):
    __tablename__ = "allocations"

    id = Column(String(64), primary_key=True)
    team_id = Column(String(64), nullable=False, index=True)
    cycle_id = Column(String(64), nullable=False, index=True)  # quarter
    iteration_number = Column(Integer, nullable=False, default=1)
    epic_id = Column(String(64), nullable=True, index=True)
    run_work_category_id = Column(String(64), nullable=True, index=True)
    percentage = Column(Float, nullable=False, default=0.0)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)


class Skill(Base):
    __tablename__ = "skills"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False, index=True)
    category = Column(String(64), nullable=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)


class PersonSkill(Base):
    __tablename__ = "person_skills"
    __table_args__ = (UniqueConstraint("person_id", "skill_id", name="uq_person_skill"),)

    id = Column(String(64), primary_key=True)
    person_id = Column(String(64), nullable=False, index=True)
    skill_id = Column(String(64), nullable=False, index=True)
    proficiency_level = Column(String(32), nullable=False, default="intermediate")
    years_of_experience = Column(Float, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)


class ProjectSkill(Base):
    __tablename__ = "project_skills"
    __table_args__ = (UniqueConstraint("project_id", "skill_id", name="uq_project_skill"),)

    id = Column(String(64), primary_key=True)
    project_id = Column(String(64), nullable=False, index=True)
    skill_id = Column(String(64), nullable=False, index=True)
    importance = Column(String(32), nullable=False, default="medium")
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)


class Goal(Base):
    __tablename__ = "goals"

    id = Column(String(64), primary_key=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(32), nullable=False, default="not-started")
    target_date = Column(Date, nullable=True)
    epic_ids = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)


class Scenario(Base):
    __tablename__ = "scenarios"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    template_id = Column(String(64), nullable=True)
    template_name = Column(String(255), nullable=True)
    data = Column(JSON, nullable=False)
    modifications = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    last_modified = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)


class Setting(Base):
    __tablename__ = "settings"

    key = Column(String(128), primary_key=True)
    value_json = Column("value", Text, nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)


class AuditLog(Base):
    __tablename__ = "audit_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_type = Column(String(64), nullable=False, index=True)
    entity_id = Column(String(64), nullable=True)
    actor = Column(String(255), nullable=True)
    context = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False, index=True)
