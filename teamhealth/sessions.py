"""Health check sessions and their per-dimension responses.

A session is always written as a whole: the session row is upserted, every
stored response for it is removed, and the submitted responses are inserted, all
inside one transaction. Readers never see a mix of old and new responses.
"""

from __future__ import annotations

import logging
import uuid

from sqlalchemy import and_, delete, select
from sqlalchemy.orm import Session

from teamhealth.db import atomic, check_deadline
from teamhealth.errors import ConflictError, NotFoundError, ValidationError
from teamhealth.models import (
    TRENDS,
    HealthCheckResponse,
    HealthCheckSession,
    HealthDimension,
    Team,
    User,
    utcnow,
)
from teamhealth.periods import assessment_period_for
from teamhealth.schemas import (
    HealthCheckResponseOut,
    HealthCheckSessionIn,
    HealthCheckSessionOut,
    SurveyHistoryEntry,
)

logger = logging.getLogger(__name__)

MIN_SCORE = 1
MAX_SCORE = 3
MAX_COMMENT_LENGTH = 1000
DEFAULT_HISTORY_LIMIT = 10


class SessionStore:
    def __init__(self, db: Session):
        self.db = db

    def save(self, session: HealthCheckSessionIn, deadline: float | None = None) -> str:
        self._validate(session)
        session_id = session.id or f"session-{uuid.uuid4().hex}"
        period = session.assessment_period or assessment_period_for(session.date)

        with atomic(self.db, deadline):
            row = self.db.get(HealthCheckSession, session_id)
            if row is None:
                row = HealthCheckSession(id=session_id)
                self.db.add(row)
            row.team_id = session.team_id
            row.user_id = session.user_id
            row.session_date = session.date
            row.assessment_period = period
            row.completed = session.completed
            row.updated_at = utcnow()
            self.db.flush()

            self.db.execute(delete(HealthCheckResponse).where(HealthCheckResponse.session_id == session_id))
            for response in session.responses:
                check_deadline(deadline)
                self.db.add(
                    HealthCheckResponse(
                        session_id=session_id,
                        dimension_id=response.dimension_id,
                        score=response.score,
                        trend=response.trend,
                        comment=response.comment or None,
                    )
                )
            self.db.flush()
        logger.info(
            "Saved health check session %s for team %s with %d responses",
            session_id,
            session.team_id,
            len(session.responses),
        )
        return session_id

    def find_by_id(self, session_id: str) -> HealthCheckSessionOut:
        sessions = self._find(HealthCheckSession.id == session_id)
        if not sessions:
            raise NotFoundError(f"Health check session not found: {session_id}")
        return sessions[0]

    def find_by_team_id(self, team_id: str) -> list[HealthCheckSessionOut]:
        return self._find(HealthCheckSession.team_id == team_id)

    def find_by_user_id(self, user_id: str) -> list[HealthCheckSessionOut]:
        return self._find(HealthCheckSession.user_id == user_id)

    def find_by_period(self, assessment_period: str) -> list[HealthCheckSessionOut]:
        return self._find(HealthCheckSession.assessment_period == assessment_period)

    def survey_history(
        self, user_id: str, assessment_period: str | None = None, limit: int = DEFAULT_HISTORY_LIMIT
    ) -> list[SurveyHistoryEntry]:
        """A user's most recent submissions, newest first, each with its mean score."""
        condition = HealthCheckSession.user_id == user_id
        if assessment_period:
            condition = and_(condition, HealthCheckSession.assessment_period == assessment_period)
        sessions = self._find(condition)[: max(limit, 1)]
        team_names = dict(
            self.db.execute(select(Team.id, Team.name).where(Team.id.in_({s.team_id for s in sessions}))).all()
        )
        history = []
        for session in sessions:
            scores = [response.score for response in session.responses]
            history.append(
                SurveyHistoryEntry(
                    session_id=session.id,
                    team_id=session.team_id,
                    team_name=team_names.get(session.team_id, ""),
                    date=session.date,
                    assessment_period=session.assessment_period,
                    completed=session.completed,
                    avg_score=sum(scores) / len(scores) if scores else None,
                    response_count=len(scores),
                    responses=session.responses,
                )
            )
        return history

    def delete(self, session_id: str, deadline: float | None = None) -> None:
        with atomic(self.db, deadline):
            if self.db.get(HealthCheckSession, session_id) is None:
                raise NotFoundError(f"Health check session not found: {session_id}")
            self.db.execute(delete(HealthCheckResponse).where(HealthCheckResponse.session_id == session_id))
            self.db.execute(delete(HealthCheckSession).where(HealthCheckSession.id == session_id))
        logger.info("Deleted health check session %s", session_id)

    def _find(self, condition) -> list[HealthCheckSessionOut]:
        rows = self.db.execute(
            select(HealthCheckSession, HealthCheckResponse)
            .outerjoin(HealthCheckResponse, HealthCheckResponse.session_id == HealthCheckSession.id)
            .where(condition)
            .order_by(
                HealthCheckSession.session_date.desc(),
                HealthCheckSession.id,
                HealthCheckResponse.dimension_id,
            )
        ).all()

        grouped: dict[str, HealthCheckSessionOut] = {}
        for session_row, response_row in rows:
            out = grouped.get(session_row.id)
            if out is None:
                out = HealthCheckSessionOut(
                    id=session_row.id,
                    team_id=session_row.team_id,
                    user_id=session_row.user_id,
                    date=session_row.session_date,
                    assessment_period=session_row.assessment_period,
                    completed=session_row.completed,
                )
                grouped[session_row.id] = out
            if response_row is not None:
                out.responses.append(
                    HealthCheckResponseOut(
                        dimension_id=response_row.dimension_id,
                        score=response_row.score,
                        trend=response_row.trend,
                        comment=response_row.comment,
                    )
                )
        return list(grouped.values())

    def _validate(self, session: HealthCheckSessionIn) -> None:
        errors: dict[str, str] = {}
        if not session.team_id.strip():
            errors["team_id"] = "is required"
        elif self.db.get(Team, session.team_id) is None:
            errors["team_id"] = f"unknown team {session.team_id}"
        if not session.user_id.strip():
            errors["user_id"] = "is required"
        elif self.db.get(User, session.user_id) is None:
            errors["user_id"] = f"unknown user {session.user_id}"
        if not session.responses:
            errors["responses"] = "must not be empty"

        known_dimensions = set(self.db.scalars(select(HealthDimension.id)))
        for index, response in enumerate(session.responses):
            prefix = f"responses[{index}]"
            if not response.dimension_id:
                errors[f"{prefix}.dimension_id"] = "is required"
            elif response.dimension_id not in known_dimensions:
                errors[f"{prefix}.dimension_id"] = f"unknown dimension {response.dimension_id}"
            if not MIN_SCORE <= response.score <= MAX_SCORE:
                errors[f"{prefix}.score"] = f"must be between {MIN_SCORE} and {MAX_SCORE}"
            if response.trend not in TRENDS:
                errors[f"{prefix}.trend"] = "must be 'improving', 'stable', or 'declining'"
            if response.comment and len(response.comment) > MAX_COMMENT_LENGTH:
                errors[f"{prefix}.comment"] = f"must be at most {MAX_COMMENT_LENGTH} characters"
        if errors:
            raise ValidationError("Invalid health check submission", errors)

        seen: set[str] = set()
        for response in session.responses:
            if response.dimension_id in seen:
                raise ConflictError(f"Duplicate response for dimension {response.dimension_id}")
            seen.add(response.dimension_id)
