from __future__ import annotations

from datetime import date
from typing import Literal

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from teamhealth.aggregation import HealthAggregationEngine
from teamhealth.db import get_db
from teamhealth.dimensions import DimensionCatalog
from teamhealth.errors import (
    ConflictError,
    DataIntegrityError,
    NotFoundError,
    TeamHealthError,
    TransactionError,
    ValidationError,
)
from teamhealth.hierarchy import HierarchyLevelStore
from teamhealth.models import HierarchyLevel, Team, User
from teamhealth.schemas import (
    UNCHANGED,
    DimensionSummary,
    HealthCheckResponseIn,
    HealthCheckSessionIn,
    HealthCheckSessionOut,
    HealthDimensionOut,
    HierarchyLevelOut,
    Permissions,
    SurveyHistoryEntry,
    TeamHealthSummary,
    TeamOut,
    TrendReport,
    UserOut,
)
from teamhealth.scope import SupervisorScopeResolver
from teamhealth.sessions import DEFAULT_HISTORY_LIMIT, SessionStore
from teamhealth.teams import TeamStore
from teamhealth.users import UserStore

app = FastAPI(title="Team Health API")

ERROR_STATUS = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ValidationError: status.HTTP_400_BAD_REQUEST,
    ConflictError: status.HTTP_409_CONFLICT,
    DataIntegrityError: status.HTTP_500_INTERNAL_SERVER_ERROR,
    TransactionError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


@app.middleware("http")
async def disable_cache_for_api(request: Request, call_next):
    response = await call_next(request)
    if request.url.path.startswith("/api/"):
        response.headers["Cache-Control"] = "no-store, no-cache, max-age=0, must-revalidate"
        response.headers["Pragma"] = "no-cache"
    return response


@app.exception_handler(TeamHealthError)
async def team_health_error_handler(request: Request, exc: TeamHealthError) -> JSONResponse:
    status_code = next(
        (code for error_type, code in ERROR_STATUS.items() if isinstance(exc, error_type)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    body: dict = {"detail": str(exc)}
    if isinstance(exc, ValidationError):
        body["errors"] = exc.field_errors
    return JSONResponse(status_code=status_code, content=body)


class HierarchyLevelCreatePayload(BaseModel):
    name: str
    color: str | None = None
    position: int | None = None
    permissions: Permissions = Field(default_factory=Permissions)


class HierarchyLevelPatchPayload(BaseModel):
    name: str | None = None
    color: str | None = None
    permissions: Permissions | None = None


class HierarchyMovePayload(BaseModel):
    direction: Literal["up", "down"]


class HierarchyPositionPayload(BaseModel):
    new_position: int


class HealthCheckSubmitPayload(BaseModel):
    id: str | None = None
    team_id: str
    date: date
    assessment_period: str | None = None
    completed: bool = True
    responses: list[HealthCheckResponseIn]


class TeamCreatePayload(BaseModel):
    id: str | None = None
    name: str
    team_lead_id: str | None = None
    cadence: str | None = None
    member_ids: list[str] = Field(default_factory=list)


class TeamPatchPayload(BaseModel):
    name: str | None = None
    team_lead_id: str | None = None
    cadence: str | None = None
    member_ids: list[str] | None = None


class UserCreatePayload(BaseModel):
    id: str | None = None
    username: str
    email: str
    full_name: str = ""
    hierarchy_level_id: str
    reports_to: str | None = None


class UserPatchPayload(BaseModel):
    full_name: str | None = None
    email: str | None = None
    hierarchy_level_id: str | None = None
    reports_to: str | None = None


class CreatedOut(BaseModel):
    id: str


def get_current_user(
    db: Session = Depends(get_db),
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
) -> User:
    # The upstream auth layer has already validated the caller and forwards its id.
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    user = db.get(User, x_user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    return user


def get_admin_user(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> User:
    level = db.get(HierarchyLevel, current_user.hierarchy_level_id)
    if level is None or not level.can_configure_system:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return current_user


def require_permission(permission: str):
    def dependency(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> User:
        level = db.get(HierarchyLevel, current_user.hierarchy_level_id)
        if level is None or not getattr(level, permission):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return current_user

    return dependency


def ensure_team_visible(db: Session, user: User, team_id: str) -> Team:
    """Team members, the team lead, anyone in the supervisor chain and org-wide viewers may look at a team."""
    team = db.get(Team, team_id)
    if team is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Team not found")
    level = db.get(HierarchyLevel, user.hierarchy_level_id)
    if level is not None and level.can_view_all_teams:
        return team
    if team.team_lead_id == user.id or any(member.id == user.id for member in team.members):
        return team
    if team_id in SupervisorScopeResolver(db).teams_for(user.id):
        return team
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Team is outside your scope")


def team_out(db: Session, team: Team) -> TeamOut:
    return TeamOut.from_orm_team(team, SupervisorScopeResolver(db).supervisor_chain(team.id))


@app.get("/health")
def health() -> dict[str, bool | str]:
    return {"ok": True, "service": "teamhealth"}


@app.get("/api/admin/hierarchy-levels", response_model=list[HierarchyLevelOut])
def list_hierarchy_levels(
    _: User = Depends(get_admin_user),
    db: Session = Depends(get_db),
) -> list[HierarchyLevelOut]:
    return [HierarchyLevelOut.from_orm_level(level) for level in HierarchyLevelStore(db).list_levels()]


@app.post("/api/admin/hierarchy-levels", response_model=HierarchyLevelOut, status_code=status.HTTP_201_CREATED)
def create_hierarchy_level(
    payload: HierarchyLevelCreatePayload,
    _: User = Depends(get_admin_user),
    db: Session = Depends(get_db),
) -> HierarchyLevelOut:
    level = HierarchyLevelStore(db).create(
        payload.name,
        payload.permissions,
        color=payload.color,
        position=payload.position,
    )
    return HierarchyLevelOut.from_orm_level(level)


@app.put("/api/admin/hierarchy-levels/{level_id}", response_model=HierarchyLevelOut)
def update_hierarchy_level(
    level_id: str,
    payload: HierarchyLevelPatchPayload,
    _: User = Depends(get_admin_user),
    db: Session = Depends(get_db),
) -> HierarchyLevelOut:
    level = HierarchyLevelStore(db).update(
        level_id,
        name=payload.name,
        color=payload.color,
        permissions=payload.permissions,
    )
    return HierarchyLevelOut.from_orm_level(level)


@app.post("/api/admin/hierarchy-levels/{level_id}/move", response_model=list[HierarchyLevelOut])
def move_hierarchy_level(
    level_id: str,
    payload: HierarchyMovePayload,
    _: User = Depends(get_admin_user),
    db: Session = Depends(get_db),
) -> list[HierarchyLevelOut]:
    store = HierarchyLevelStore(db)
    store.move(level_id, payload.direction)
    return [HierarchyLevelOut.from_orm_level(level) for level in store.list_levels()]


@app.put("/api/admin/hierarchy-levels/{level_id}/position", response_model=list[HierarchyLevelOut])
def update_hierarchy_position(
    level_id: str,
    payload: HierarchyPositionPayload,
    _: User = Depends(get_admin_user),
    db: Session = Depends(get_db),
) -> list[HierarchyLevelOut]:
    store = HierarchyLevelStore(db)
    store.move_to(level_id, payload.new_position)
    return [HierarchyLevelOut.from_orm_level(level) for level in store.list_levels()]


@app.delete("/api/admin/hierarchy-levels/{level_id}")
def delete_hierarchy_level(
    level_id: str,
    _: User = Depends(get_admin_user),
    db: Session = Depends(get_db),
) -> dict[str, bool]:
    HierarchyLevelStore(db).delete(level_id)
    return {"ok": True}


@app.get("/api/health-dimensions", response_model=list[HealthDimensionOut])
def list_health_dimensions(
    _: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[HealthDimensionOut]:
    return [HealthDimensionOut.from_orm_dimension(d) for d in DimensionCatalog(db).list_dimensions()]


@app.post("/api/health-checks", response_model=CreatedOut, status_code=status.HTTP_201_CREATED)
def submit_health_check(
    payload: HealthCheckSubmitPayload,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> CreatedOut:
    session = HealthCheckSessionIn(
        id=payload.id,
        team_id=payload.team_id,
        user_id=current_user.id,
        date=payload.date,
        assessment_period=payload.assessment_period,
        completed=payload.completed,
        responses=payload.responses,
    )
    return CreatedOut(id=SessionStore(db).save(session))


@app.get("/api/health-checks/{session_id}", response_model=HealthCheckSessionOut)
def get_health_check(
    session_id: str,
    _: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> HealthCheckSessionOut:
    return SessionStore(db).find_by_id(session_id)


@app.delete("/api/health-checks/{session_id}")
def delete_health_check(
    session_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict[str, bool]:
    store = SessionStore(db)
    if store.find_by_id(session_id).user_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the submitter can delete a health check")
    store.delete(session_id)
    return {"ok": True}


@app.get("/api/teams/{team_id}/health-checks", response_model=list[HealthCheckSessionOut])
def list_team_health_checks(
    team_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[HealthCheckSessionOut]:
    ensure_team_visible(db, current_user, team_id)
    return SessionStore(db).find_by_team_id(team_id)


@app.get("/api/manager/teams-health", response_model=list[TeamHealthSummary])
def manager_teams_health(
    assessment_period: str | None = Query(default=None, alias="assessmentPeriod"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[TeamHealthSummary]:
    return HealthAggregationEngine(db).team_health_for_manager(current_user.id, assessment_period)


@app.get("/api/manager/dimensions", response_model=list[DimensionSummary])
def manager_dimensions(
    assessment_period: str | None = Query(default=None, alias="assessmentPeriod"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[DimensionSummary]:
    return HealthAggregationEngine(db).dimensions_for_manager(current_user.id, assessment_period)


@app.get("/api/manager/trends", response_model=TrendReport)
def manager_trends(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> TrendReport:
    return HealthAggregationEngine(db).trends_for_manager(current_user.id)


@app.get("/api/teams/{team_id}/dashboard/health-summary", response_model=TeamHealthSummary)
def team_health_summary(
    team_id: str,
    assessment_period: str | None = Query(default=None, alias="assessmentPeriod"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> TeamHealthSummary:
    ensure_team_visible(db, current_user, team_id)
    return HealthAggregationEngine(db).team_summary(team_id, assessment_period)


@app.get("/api/users/{user_id}/survey-history", response_model=list[SurveyHistoryEntry])
def user_survey_history(
    user_id: str,
    assessment_period: str | None = Query(default=None, alias="assessmentPeriod"),
    limit: int = Query(default=DEFAULT_HISTORY_LIMIT, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[SurveyHistoryEntry]:
    if user_id != current_user.id:
        level = db.get(HierarchyLevel, current_user.hierarchy_level_id)
        if level is None or not level.can_view_all_teams:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only your own survey history is visible")
    return SessionStore(db).survey_history(user_id, assessment_period, limit)


@app.get("/api/admin/teams", response_model=list[TeamOut])
def list_teams(
    _: User = Depends(require_permission("can_edit_teams")),
    db: Session = Depends(get_db),
) -> list[TeamOut]:
    return [team_out(db, team) for team in TeamStore(db).list_teams()]


@app.post("/api/admin/teams", response_model=TeamOut, status_code=status.HTTP_201_CREATED)
def create_team(
    payload: TeamCreatePayload,
    _: User = Depends(require_permission("can_edit_teams")),
    db: Session = Depends(get_db),
) -> TeamOut:
    team = TeamStore(db).create(
        payload.name,
        team_lead_id=payload.team_lead_id,
        cadence=payload.cadence,
        member_ids=payload.member_ids,
        team_id=payload.id,
    )
    return team_out(db, team)


@app.put("/api/admin/teams/{team_id}", response_model=TeamOut)
def update_team(
    team_id: str,
    payload: TeamPatchPayload,
    _: User = Depends(require_permission("can_edit_teams")),
    db: Session = Depends(get_db),
) -> TeamOut:
    fields = payload.model_fields_set
    team = TeamStore(db).update(
        team_id,
        name=payload.name,
        team_lead_id=payload.team_lead_id if "team_lead_id" in fields else UNCHANGED,
        cadence=payload.cadence if "cadence" in fields else UNCHANGED,
        member_ids=payload.member_ids,
    )
    return team_out(db, team)


@app.delete("/api/admin/teams/{team_id}")
def delete_team(
    team_id: str,
    _: User = Depends(require_permission("can_edit_teams")),
    db: Session = Depends(get_db),
) -> dict[str, bool]:
    TeamStore(db).delete(team_id)
    return {"ok": True}


@app.get("/api/admin/users", response_model=list[UserOut])
def list_users(
    _: User = Depends(require_permission("can_manage_users")),
    db: Session = Depends(get_db),
) -> list[UserOut]:
    return [UserOut.from_orm_user(user) for user in UserStore(db).list_users()]


@app.post("/api/admin/users", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def create_user(
    payload: UserCreatePayload,
    _: User = Depends(require_permission("can_manage_users")),
    db: Session = Depends(get_db),
) -> UserOut:
    user = UserStore(db).create(
        payload.username,
        payload.email,
        payload.full_name,
        payload.hierarchy_level_id,
        reports_to=payload.reports_to,
        user_id=payload.id,
    )
    return UserOut.from_orm_user(user)


@app.put("/api/admin/users/{user_id}", response_model=UserOut)
def update_user(
    user_id: str,
    payload: UserPatchPayload,
    _: User = Depends(require_permission("can_manage_users")),
    db: Session = Depends(get_db),
) -> UserOut:
    user = UserStore(db).update(
        user_id,
        full_name=payload.full_name,
        email=payload.email,
        hierarchy_level_id=payload.hierarchy_level_id,
        reports_to=payload.reports_to if "reports_to" in payload.model_fields_set else UNCHANGED,
    )
    return UserOut.from_orm_user(user)
