"""Which teams a manager may see.

Each team stores its full supervisor chain (team lead first, then every manager
above), written at edit time. Visibility is then a single indexed lookup on
``team_supervisors.user_id`` instead of a walk up the reports-to tree per request.
The chain is a cached view: whenever a team lead, a reports-to edge or a
supervisor's level changes, the writer rebuilds the chains of the affected teams
in the same transaction (see ``TeamStore`` and ``UserStore``).
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from teamhealth.db import atomic, check_deadline
from teamhealth.errors import NotFoundError, ValidationError
from teamhealth.models import Team, TeamSupervisor, User, utcnow
from teamhealth.org_tree import OrgTreeResolver
from teamhealth.schemas import SupervisorLink

logger = logging.getLogger(__name__)


def _as_link(entry: SupervisorLink | tuple[str, str]) -> SupervisorLink:
    if isinstance(entry, SupervisorLink):
        return entry
    user_id, hierarchy_level_id = entry
    return SupervisorLink(user_id=user_id, hierarchy_level_id=hierarchy_level_id)


def _unique_links(supervisors: Iterable[SupervisorLink | tuple[str, str]]) -> list[SupervisorLink]:
    links = [_as_link(entry) for entry in supervisors]
    seen: set[str] = set()
    for link in links:
        if link.user_id in seen:
            raise ValidationError(
                "A supervisor may appear only once in a chain",
                {"supervisors": f"duplicate user {link.user_id}"},
            )
        seen.add(link.user_id)
    return links


class SupervisorScopeResolver:
    def __init__(self, db: Session):
        self.db = db

    def teams_for(self, manager_id: str) -> set[str]:
        return set(self.db.scalars(select(TeamSupervisor.team_id).where(TeamSupervisor.user_id == manager_id)))

    def supervisor_chain(self, team_id: str) -> list[SupervisorLink]:
        rows = self.db.execute(
            select(TeamSupervisor.user_id, TeamSupervisor.hierarchy_level_id)
            .where(TeamSupervisor.team_id == team_id)
            .order_by(TeamSupervisor.position)
        ).all()
        return [SupervisorLink(user_id=user_id, hierarchy_level_id=level_id) for user_id, level_id in rows]

    def rebuild_chain(
        self,
        team_id: str,
        supervisors: Iterable[SupervisorLink | tuple[str, str]],
        deadline: float | None = None,
    ) -> None:
        """Replace a team's chain wholesale; positions restart at 0, nearest supervisor first."""
        links = _unique_links(supervisors)
        with atomic(self.db, deadline):
            self.replace_chain(team_id, links, deadline)
        logger.info("Rebuilt supervisor chain for team %s with %d supervisors", team_id, len(links))

    def replace_chain(
        self,
        team_id: str,
        supervisors: Iterable[SupervisorLink | tuple[str, str]],
        deadline: float | None = None,
    ) -> None:
        """Rewrite the chain rows inside the caller's transaction."""
        links = _unique_links(supervisors)
        team = self.db.get(Team, team_id)
        if team is None:
            raise NotFoundError(f"Team not found: {team_id}")
        self.db.execute(delete(TeamSupervisor).where(TeamSupervisor.team_id == team_id))
        for position, link in enumerate(links):
            check_deadline(deadline)
            self.db.add(
                TeamSupervisor(
                    team_id=team_id,
                    user_id=link.user_id,
                    hierarchy_level_id=link.hierarchy_level_id,
                    position=position,
                )
            )
        team.updated_at = utcnow()
        self.db.flush()

    def derive_chain(self, team_id: str) -> list[SupervisorLink]:
        """The chain implied by the current data: the team lead, then everyone the lead reports up to."""
        team = self.db.get(Team, team_id)
        if team is None:
            raise NotFoundError(f"Team not found: {team_id}")
        if team.team_lead_id is None:
            return []
        user_ids = [team.team_lead_id, *OrgTreeResolver(self.db).reporting_chain(team.team_lead_id)]
        levels = dict(
            self.db.execute(select(User.id, User.hierarchy_level_id).where(User.id.in_(user_ids))).all()
        )
        return [
            SupervisorLink(user_id=user_id, hierarchy_level_id=levels[user_id])
            for user_id in user_ids
            if user_id in levels
        ]

    def teams_affected_by(self, user_id: str) -> set[str]:
        """Teams whose chain depends on ``user_id``: led by them or by anyone below them, or listing them."""
        leads = {user_id, *OrgTreeResolver(self.db).subordinates(user_id)}
        led = set(self.db.scalars(select(Team.id).where(Team.team_lead_id.in_(leads))))
        return led | self.teams_for(user_id)

    def refresh_chains(self, team_ids: Iterable[str], deadline: float | None = None) -> None:
        """Re-derive and rewrite the given teams' chains inside the caller's transaction."""
        for team_id in sorted(set(team_ids)):
            self.replace_chain(team_id, self.derive_chain(team_id), deadline)
