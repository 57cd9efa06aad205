from __future__ import annotations

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, Field

from teamhealth.models import HealthDimension, HierarchyLevel, PERMISSION_FIELDS, Team, User

UNCHANGED: Any = object()


class Permissions(BaseModel):
    can_view_all_teams: bool = False
    can_edit_teams: bool = False
    can_manage_users: bool = False
    can_take_survey: bool = False
    can_view_analytics: bool = False
    can_configure_system: bool = False
    can_view_reports: bool = False
    can_export_data: bool = False

    @classmethod
    def from_orm_level(cls, level: HierarchyLevel) -> "Permissions":
        return cls(**{name: getattr(level, name) for name in PERMISSION_FIELDS})


class HierarchyLevelOut(BaseModel):
    id: str
    name: str
    position: int
    color: str | None = None
    permissions: Permissions
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_orm_level(cls, level: HierarchyLevel) -> "HierarchyLevelOut":
        return cls(
            id=level.id,
            name=level.name,
            position=level.position,
            color=level.color,
            permissions=Permissions.from_orm_level(level),
            created_at=level.created_at,
            updated_at=level.updated_at,
        )


class SupervisorLink(BaseModel):
    user_id: str
    hierarchy_level_id: str


class HealthCheckResponseIn(BaseModel):
    # score and trend stay loose here so the session store can report field-level errors
    dimension_id: str
    score: int
    trend: str
    comment: str | None = None


class HealthCheckSessionIn(BaseModel):
    id: str | None = None
    team_id: str
    user_id: str
    date: date
    assessment_period: str | None = None
    completed: bool = True
    responses: list[HealthCheckResponseIn] = Field(default_factory=list)


class HealthCheckResponseOut(BaseModel):
    dimension_id: str
    score: int
    trend: str
    comment: str | None = None


class HealthCheckSessionOut(BaseModel):
    id: str
    team_id: str
    user_id: str
    date: date
    assessment_period: str | None = None
    completed: bool
    responses: list[HealthCheckResponseOut] = Field(default_factory=list)


class DimensionSummary(BaseModel):
    dimension_id: str
    avg_score: float
    response_count: int


class TeamHealthSummary(BaseModel):
    team_id: str
    team_name: str
    submission_count: int = 0
    overall_health: float | None = None
    dimensions: list[DimensionSummary] = Field(default_factory=list)


class DimensionTrend(BaseModel):
    dimension_id: str
    scores: list[float | None]


class TrendReport(BaseModel):
    periods: list[str] = Field(default_factory=list)
    dimensions: list[DimensionTrend] = Field(default_factory=list)


class HealthDimensionOut(BaseModel):
    id: str
    name: str
    description: str | None = None
    good_description: str
    bad_description: str
    is_active: bool
    weight: float

    @classmethod
    def from_orm_dimension(cls, dimension: HealthDimension) -> "HealthDimensionOut":
        return cls(
            id=dimension.id,
            name=dimension.name,
            description=dimension.description,
            good_description=dimension.good_description,
            bad_description=dimension.bad_description,
            is_active=dimension.is_active,
            weight=dimension.weight,
        )


class TeamOut(BaseModel):
    id: str
    name: str
    team_lead_id: str | None = None
    cadence: str | None = None
    member_ids: list[str] = Field(default_factory=list)
    supervisor_chain: list[SupervisorLink] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_orm_team(cls, team: Team, chain: list[SupervisorLink]) -> "TeamOut":
        return cls(
            id=team.id,
            name=team.name,
            team_lead_id=team.team_lead_id,
            cadence=team.cadence,
            member_ids=sorted(member.id for member in team.members),
            supervisor_chain=chain,
            created_at=team.created_at,
            updated_at=team.updated_at,
        )


class UserOut(BaseModel):
    id: str
    username: str
    email: str
    full_name: str
    hierarchy_level_id: str
    reports_to: str | None = None

    @classmethod
    def from_orm_user(cls, user: User) -> "UserOut":
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            full_name=user.full_name,
            hierarchy_level_id=user.hierarchy_level_id,
            reports_to=user.reports_to,
        )


class SurveyHistoryEntry(BaseModel):
    session_id: str
    team_id: str
    team_name: str
    date: date
    assessment_period: str | None = None
    completed: bool
    avg_score: float | None = None
    response_count: int = 0
    responses: list[HealthCheckResponseOut] = Field(default_factory=list)
