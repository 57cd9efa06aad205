from __future__ import annotations

from datetime import date, datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from teamhealth.db import Base

CADENCES = ("weekly", "biweekly", "monthly", "quarterly")
TRENDS = ("improving", "stable", "declining")
PERMISSION_FIELDS = (
    "can_view_all_teams",
    "can_edit_teams",
    "can_manage_users",
    "can_take_survey",
    "can_view_analytics",
    "can_configure_system",
    "can_view_reports",
    "can_export_data",
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


team_members = Table(
    "team_members",
    Base.metadata,
    Column("team_id", ForeignKey("teams.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)


class HierarchyLevel(Base):
    __tablename__ = "hierarchy_levels"
    __table_args__ = (UniqueConstraint("position", name="uq_hierarchy_levels_position"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    color: Mapped[str | None] = mapped_column(String(20), nullable=True)
    can_view_all_teams: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    can_edit_teams: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    can_manage_users: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    can_take_survey: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    can_view_analytics: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    can_configure_system: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    can_view_reports: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    can_export_data: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("reports_to IS NULL OR reports_to <> id", name="ck_users_not_self_reporting"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    username: Mapped[str] = mapped_column(String(50), nullable=False, unique=True, index=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    hierarchy_level_id: Mapped[str] = mapped_column(ForeignKey("hierarchy_levels.id"), nullable=False, index=True)
    reports_to: Mapped[str | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    teams = relationship("Team", secondary=team_members, back_populates="members")


class Team(Base):
    __tablename__ = "teams"
    __table_args__ = (
        CheckConstraint(
            "cadence IS NULL OR cadence IN ('weekly', 'biweekly', 'monthly', 'quarterly')",
            name="ck_teams_cadence",
        ),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    team_lead_id: Mapped[str | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    cadence: Mapped[str | None] = mapped_column(String(20), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    members = relationship("User", secondary=team_members, back_populates="teams")


class TeamSupervisor(Base):
    __tablename__ = "team_supervisors"
    __table_args__ = (
        UniqueConstraint("team_id", "position", name="uq_team_supervisors_position"),
        Index("ix_team_supervisors_user_id", "user_id"),
    )

    team_id: Mapped[str] = mapped_column(ForeignKey("teams.id", ondelete="CASCADE"), primary_key=True)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    hierarchy_level_id: Mapped[str] = mapped_column(ForeignKey("hierarchy_levels.id"), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)


class HealthDimension(Base):
    __tablename__ = "health_dimensions"
    __table_args__ = (CheckConstraint("weight > 0", name="ck_health_dimensions_weight"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    good_description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    bad_description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    weight: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class HealthCheckSession(Base):
    __tablename__ = "health_check_sessions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    team_id: Mapped[str] = mapped_column(ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    session_date: Mapped[date] = mapped_column("date", Date, nullable=False)
    assessment_period: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class HealthCheckResponse(Base):
    __tablename__ = "health_check_responses"
    __table_args__ = (
        CheckConstraint("score BETWEEN 1 AND 3", name="ck_health_check_responses_score"),
        CheckConstraint(
            "trend IN ('improving', 'stable', 'declining')",
            name="ck_health_check_responses_trend",
        ),
        UniqueConstraint("session_id", "dimension_id", name="uq_health_check_responses_dimension"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    session_id: Mapped[str] = mapped_column(
        ForeignKey("health_check_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    dimension_id: Mapped[str] = mapped_column(ForeignKey("health_dimensions.id"), nullable=False)
    score: Mapped[int] = mapped_column(Integer, nullable=False)
    trend: Mapped[str] = mapped_column(String(20), nullable=False)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
