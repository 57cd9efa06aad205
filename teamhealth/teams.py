"""Team administration.

A team owns its supervisor chain: every create or update re-derives the chain
from the team lead's reporting line and rewrites it in the same transaction as
the team row and its member list.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from teamhealth.db import atomic
from teamhealth.errors import ConflictError, NotFoundError, ValidationError
from teamhealth.models import CADENCES, Team, User, utcnow
from teamhealth.schemas import UNCHANGED
from teamhealth.scope import SupervisorScopeResolver

logger = logging.getLogger(__name__)


class TeamStore:
    def __init__(self, db: Session, scope: SupervisorScopeResolver | None = None):
        self.db = db
        self.scope = scope or SupervisorScopeResolver(db)

    def list_teams(self) -> list[Team]:
        return list(self.db.scalars(select(Team).order_by(Team.name, Team.id)))

    def get(self, team_id: str) -> Team:
        team = self.db.get(Team, team_id)
        if team is None:
            raise NotFoundError(f"Team not found: {team_id}")
        return team

    def create(
        self,
        name: str,
        team_lead_id: str | None = None,
        cadence: str | None = None,
        member_ids: Iterable[str] = (),
        team_id: str | None = None,
        deadline: float | None = None,
    ) -> Team:
        member_ids = list(member_ids)
        if team_id is not None and self.db.get(Team, team_id) is not None:
            raise ConflictError(f"Team already exists: {team_id}")
        with atomic(self.db, deadline):
            team = Team(
                id=team_id or f"team-{uuid.uuid4().hex[:12]}",
                name=self._clean_name(name),
                team_lead_id=self._checked_lead(team_lead_id),
                cadence=self._checked_cadence(cadence),
            )
            team.members = self._members(member_ids)
            self.db.add(team)
            self.db.flush()
            self.scope.refresh_chains([team.id], deadline)
        logger.info("Created team %s led by %s with %d members", team.id, team.team_lead_id, len(member_ids))
        return team

    def update(
        self,
        team_id: str,
        name: str | None = None,
        team_lead_id=UNCHANGED,
        cadence=UNCHANGED,
        member_ids: Iterable[str] | None = None,
        deadline: float | None = None,
    ) -> Team:
        with atomic(self.db, deadline):
            team = self.get(team_id)
            if name is not None:
                team.name = self._clean_name(name)
            if team_lead_id is not UNCHANGED:
                team.team_lead_id = self._checked_lead(team_lead_id)
            if cadence is not UNCHANGED:
                team.cadence = self._checked_cadence(cadence)
            if member_ids is not None:
                team.members = self._members(list(member_ids))
            team.updated_at = utcnow()
            self.db.flush()
            self.scope.refresh_chains([team.id], deadline)
        logger.info("Updated team %s", team_id)
        return team

    def delete(self, team_id: str, deadline: float | None = None) -> None:
        """Remove a team; its members, chain and sessions go with it."""
        with atomic(self.db, deadline):
            self.db.delete(self.get(team_id))
        logger.info("Deleted team %s", team_id)

    def _clean_name(self, name: str | None) -> str:
        cleaned = (name or "").strip()
        if not cleaned:
            raise ValidationError("Team name is required", {"name": "must not be empty"})
        if len(cleaned) > 255:
            raise ValidationError("Team name is too long", {"name": "must be at most 255 characters"})
        return cleaned

    def _checked_lead(self, team_lead_id: str | None) -> str | None:
        if team_lead_id is None:
            return None
        if self.db.get(User, team_lead_id) is None:
            raise ValidationError("Unknown team lead", {"team_lead_id": f"unknown user {team_lead_id}"})
        return team_lead_id

    def _checked_cadence(self, cadence: str | None) -> str | None:
        if cadence is None or cadence == "":
            return None
        if cadence not in CADENCES:
            raise ValidationError("Invalid cadence", {"cadence": f"must be one of {', '.join(CADENCES)}"})
        return cadence

    def _members(self, member_ids: list[str]) -> list[User]:
        if not member_ids:
            return []
        users = list(self.db.scalars(select(User).where(User.id.in_(member_ids))))
        missing = sorted(set(member_ids) - {user.id for user in users})
        if missing:
            raise ValidationError("Unknown team members", {"member_ids": f"unknown users {', '.join(missing)}"})
        return users
