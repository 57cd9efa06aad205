"""Manager dashboard aggregates.

Only completed sessions count. A team's overall health is the flat mean of every
individual response score across its matching sessions, not a mean of per-session
means. Teams are returned worst first so the ones needing attention lead the list;
equal scores fall back to team name, and teams without any scored responses come
last with ``overall_health=None``.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from teamhealth.errors import NotFoundError
from teamhealth.models import HealthCheckResponse, HealthCheckSession, Team
from teamhealth.periods import period_sort_key
from teamhealth.schemas import DimensionSummary, DimensionTrend, TeamHealthSummary, TrendReport
from teamhealth.scope import SupervisorScopeResolver

logger = logging.getLogger(__name__)


@dataclass
class ScoreTally:
    total: int = 0
    count: int = 0

    def add(self, score: int) -> None:
        self.total += score
        self.count += 1

    @property
    def mean(self) -> float | None:
        if self.count == 0:
            return None
        return self.total / self.count


def _dimension_summaries(tallies: dict[str, ScoreTally]) -> list[DimensionSummary]:
    return [
        DimensionSummary(dimension_id=dimension_id, avg_score=tally.mean, response_count=tally.count)
        for dimension_id, tally in sorted(tallies.items())
    ]


def attention_order(summary: TeamHealthSummary) -> tuple[bool, float, str]:
    health = summary.overall_health
    return (health is None, health if health is not None else 0.0, summary.team_name)


class HealthAggregationEngine:
    def __init__(self, db: Session, scope: SupervisorScopeResolver | None = None):
        self.db = db
        self.scope = scope or SupervisorScopeResolver(db)

    def team_health(self, team_ids: Iterable[str], assessment_period: str | None = None) -> list[TeamHealthSummary]:
        team_ids = set(team_ids)
        if not team_ids:
            return []
        teams = self.db.execute(select(Team.id, Team.name).where(Team.id.in_(team_ids))).all()

        sessions_by_team: dict[str, set[str]] = defaultdict(set)
        overall: dict[str, ScoreTally] = defaultdict(ScoreTally)
        by_dimension: dict[str, dict[str, ScoreTally]] = defaultdict(lambda: defaultdict(ScoreTally))
        for team_id, session_id, dimension_id, score in self.db.execute(
            self._completed_responses(team_ids, assessment_period)
        ):
            sessions_by_team[team_id].add(session_id)
            if dimension_id is None:
                continue
            overall[team_id].add(score)
            by_dimension[team_id][dimension_id].add(score)

        summaries = [
            TeamHealthSummary(
                team_id=team_id,
                team_name=team_name,
                submission_count=len(sessions_by_team.get(team_id, ())),
                overall_health=overall[team_id].mean if team_id in overall else None,
                dimensions=_dimension_summaries(by_dimension.get(team_id, {})),
            )
            for team_id, team_name in teams
        ]
        summaries.sort(key=attention_order)
        return summaries

    def team_summary(self, team_id: str, assessment_period: str | None = None) -> TeamHealthSummary:
        """One team's dashboard summary; the team must exist."""
        if self.db.get(Team, team_id) is None:
            raise NotFoundError(f"Team not found: {team_id}")
        return self.team_health([team_id], assessment_period)[0]

    def team_health_for_manager(
        self, manager_id: str, assessment_period: str | None = None
    ) -> list[TeamHealthSummary]:
        team_ids = self.scope.teams_for(manager_id)
        logger.debug("Manager %s supervises %d teams", manager_id, len(team_ids))
        return self.team_health(team_ids, assessment_period)

    def aggregated_dimensions(
        self, team_ids: Iterable[str], assessment_period: str | None = None
    ) -> list[DimensionSummary]:
        team_ids = set(team_ids)
        if not team_ids:
            return []
        tallies: dict[str, ScoreTally] = defaultdict(ScoreTally)
        for _, _, dimension_id, score in self.db.execute(self._completed_responses(team_ids, assessment_period)):
            if dimension_id is not None:
                tallies[dimension_id].add(score)
        return _dimension_summaries(tallies)

    def dimensions_for_manager(
        self, manager_id: str, assessment_period: str | None = None
    ) -> list[DimensionSummary]:
        return self.aggregated_dimensions(self.scope.teams_for(manager_id), assessment_period)

    def trends(self, team_ids: Iterable[str]) -> TrendReport:
        """Mean score per dimension per assessment period, periods in chronological order."""
        team_ids = set(team_ids)
        if not team_ids:
            return TrendReport()
        rows = self.db.execute(
            select(HealthCheckSession.assessment_period, HealthCheckResponse.dimension_id, HealthCheckResponse.score)
            .join(HealthCheckResponse, HealthCheckResponse.session_id == HealthCheckSession.id)
            .where(
                HealthCheckSession.team_id.in_(team_ids),
                HealthCheckSession.completed.is_(True),
                HealthCheckSession.assessment_period.is_not(None),
                HealthCheckSession.assessment_period != "",
            )
        ).all()
        if not rows:
            return TrendReport()

        tallies: dict[str, dict[str, ScoreTally]] = defaultdict(lambda: defaultdict(ScoreTally))
        for period, dimension_id, score in rows:
            tallies[dimension_id][period].add(score)
        periods = sorted({period for period, _, _ in rows}, key=period_sort_key)
        dimensions = [
            DimensionTrend(
                dimension_id=dimension_id,
                scores=[by_period[period].mean if period in by_period else None for period in periods],
            )
            for dimension_id, by_period in sorted(tallies.items())
        ]
        return TrendReport(periods=periods, dimensions=dimensions)

    def trends_for_manager(self, manager_id: str) -> TrendReport:
        return self.trends(self.scope.teams_for(manager_id))

    def _completed_responses(self, team_ids: set[str], assessment_period: str | None):
        stmt = (
            select(
                HealthCheckSession.team_id,
                HealthCheckSession.id,
                HealthCheckResponse.dimension_id,
                HealthCheckResponse.score,
            )
            .outerjoin(HealthCheckResponse, HealthCheckResponse.session_id == HealthCheckSession.id)
            .where(HealthCheckSession.team_id.in_(team_ids), HealthCheckSession.completed.is_(True))
        )
        if assessment_period:
            stmt = stmt.where(HealthCheckSession.assessment_period == assessment_period)
        return stmt
